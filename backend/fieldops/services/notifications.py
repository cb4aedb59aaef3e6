from __future__ import annotations
"""Notification rows addressed to users.

Notifications are a side effect of ticket mutations. `notify_safely` runs the
insert inside a SAVEPOINT so a failure is logged and the primary change still
commits.
"""
import logging
from typing import Iterable, List, Optional
from sqlalchemy.exc import SQLAlchemyError
from fieldops.models.notification import Notification
from fieldops.models.user import User

logger = logging.getLogger(__name__)


def notify(session, user_id: int, title: str, message: str, type: str = 'info', related_id: Optional[int] = None, related_type: Optional[str] = None) -> Notification:
    n = Notification(user_id=user_id, title=title, message=message, type=type, related_id=related_id, related_type=related_type)
    session.add(n)
    session.flush()
    return n


def notify_safely(session, user_id: int, title: str, message: str, **kwargs) -> Optional[Notification]:
    try:
        with session.begin_nested():
            return notify(session, user_id, title, message, **kwargs)
    except SQLAlchemyError:
        logger.warning('notification for user %s failed: %s', user_id, title, exc_info=True)
        return None


def user_ids_with_roles(session, roles: Iterable[str]) -> List[int]:
    rows = session.query(User.id).filter(User.role.in_(list(roles)), User.is_active.is_(True)).order_by(User.id).all()
    return [r[0] for r in rows]


def notify_role(session, roles: Iterable[str], title: str, message: str, **kwargs) -> int:
    """Fan a notification out to every active user holding one of roles. Returns the count sent."""
    sent = 0
    for uid in user_ids_with_roles(session, roles):
        if notify_safely(session, uid, title, message, **kwargs) is not None:
            sent += 1
    return sent

__all__ = ['notify', 'notify_safely', 'notify_role', 'user_ids_with_roles']
