from __future__ import annotations
"""Authorization policy.

`can_transition` is the one place that decides who may move a ticket between
statuses; routes, the intervention flow and offline replay all call it.
Permission codes (TKT.READ, ...) gate endpoints; restaurant scoping limits
restaurant_staff to their own site.
"""
from dataclasses import dataclass
from typing import Optional, Set
from flask import abort
from flask_jwt_extended import get_jwt, get_jwt_identity
from fieldops.models.user import User
from fieldops.models.ticket import Ticket


@dataclass(frozen=True)
class Actor:
    id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == User.ROLE_ADMIN


def current_actor() -> Actor:
    claims = get_jwt()
    return Actor(id=int(get_jwt_identity()), role=claims.get('role', ''))


def current_permissions() -> Set[str]:
    claims = get_jwt()
    return set(claims.get('perms', []))


def has_permissions(*codes: str) -> bool:
    perms = current_permissions()
    return all(c in perms for c in codes)


def restaurant_scope() -> list:
    """Restaurant ids the caller is confined to; empty means unscoped."""
    return list(get_jwt().get('restaurant_ids') or [])


def assert_restaurant_access(restaurant_id: int):
    scope = restaurant_scope()
    if not scope:
        return  # No scoping
    if restaurant_id not in scope:
        abort(403, description='Restaurant access denied')


def filter_query_by_restaurants(query, model_restaurant_column):
    scope = restaurant_scope()
    if scope:
        return query.filter(model_restaurant_column.in_(scope))
    return query


def can_transition(user, ticket, target: str, assignee_id: Optional[int] = None) -> bool:
    """Return True if user may move ticket to target.

    user: anything with `id` and `role`; ticket: anything with `status` and `assignee_id`.
    For new -> assigned, assignee_id is the user being assigned (defaults to user.id).
    """
    is_admin = user.role == User.ROLE_ADMIN
    if ticket.status == Ticket.STATUS_NEW and target == Ticket.STATUS_ASSIGNED:
        who = user.id if assignee_id is None else assignee_id
        return who == user.id or is_admin
    if ticket.status in (Ticket.STATUS_ASSIGNED, Ticket.STATUS_SCHEDULED, Ticket.STATUS_IN_PROGRESS, Ticket.STATUS_RESOLVED):
        return is_admin or (ticket.assignee_id is not None and ticket.assignee_id == user.id)
    return False


def assert_can_transition(user, ticket, target: str, assignee_id: Optional[int] = None):
    if not can_transition(user, ticket, target, assignee_id):
        abort(403, description='Permission denied')
