from __future__ import annotations
"""Typed row-change feed.

Committed inserts/updates/deletes on tracked tables are published as
`ChangeEvent`s carrying the table, operation and row id, so list consumers can
merge the single changed row instead of refetching the whole table.

Events are collected in `after_flush` (where the session still knows which
objects are new/dirty/deleted), held in `session.info` until the transaction
commits, and dropped on rollback. Rolling back a SAVEPOINT drops only the
events queued inside it.
"""
import itertools
import logging
import threading
from collections import deque
from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional
from sqlalchemy import event
from fieldops.models.base import utcnow, iso

logger = logging.getLogger(__name__)

PENDING_KEY = 'fieldops.pending_changes'
MARKS_KEY = 'fieldops.savepoint_marks'

TRACKED_TABLES = frozenset({
    'tickets', 'ticket_history', 'ticket_comments', 'devices', 'restaurants',
    'equipment_inventory', 'maintenance_records', 'notifications', 'knowledge_articles',
    'users', 'interventions', 'equipment_movements',
})


class ChangeOp(str, Enum):
    INSERT = 'INSERT'
    UPDATE = 'UPDATE'
    DELETE = 'DELETE'


@dataclass(frozen=True)
class ChangeEvent:
    seq: int
    table: str
    op: ChangeOp
    row_id: int
    at: datetime

    def to_dict(self) -> dict:
        out = asdict(self)
        out['op'] = self.op.value
        out['at'] = iso(self.at)
        return out


Subscriber = Callable[[ChangeEvent], None]


class ChangeFeed:
    """Bounded in-memory log of committed changes plus per-table subscribers."""

    def __init__(self, maxlen: int = 1000):
        self._log: deque = deque(maxlen=maxlen)
        self._seq = itertools.count(1)
        self._last_seq = 0
        self._subscribers: Dict[Optional[str], List[Subscriber]] = {}
        self._lock = threading.Lock()

    @property
    def last_seq(self) -> int:
        return self._last_seq

    def subscribe(self, table: Optional[str], callback: Subscriber) -> Callable[[], None]:
        """Register callback for one table (or every table when table is None).

        Returns a function that removes the subscription.
        """
        with self._lock:
            self._subscribers.setdefault(table, []).append(callback)

        def unsubscribe():
            with self._lock:
                subs = self._subscribers.get(table, [])
                if callback in subs:
                    subs.remove(callback)
        return unsubscribe

    def publish(self, table: str, op: ChangeOp, row_id: int, at: Optional[datetime] = None) -> ChangeEvent:
        with self._lock:
            seq = next(self._seq)
            evt = ChangeEvent(seq=seq, table=table, op=ChangeOp(op), row_id=row_id, at=at or utcnow())
            self._log.append(evt)
            self._last_seq = seq
            targets = list(self._subscribers.get(table, [])) + list(self._subscribers.get(None, []))
        for cb in targets:
            try:
                cb(evt)
            except Exception:
                logger.exception('change subscriber failed for %s#%s', table, row_id)
        return evt

    def since(self, seq: int = 0, table: Optional[str] = None) -> List[ChangeEvent]:
        with self._lock:
            events = list(self._log)
        return [e for e in events if e.seq > seq and (table is None or e.table == table)]


def _collect(session, objs, op: ChangeOp):
    pending = session.info.setdefault(PENDING_KEY, [])
    for obj in objs:
        table = getattr(obj, '__tablename__', None)
        if table not in TRACKED_TABLES:
            continue
        if op is ChangeOp.UPDATE and not session.is_modified(obj, include_collections=False):
            continue
        row_id = getattr(obj, 'id', None)
        if row_id is None:
            continue
        pending.append((table, op, row_id))


def record_change(session, table: str, op: ChangeOp, row_id: int):
    """Queue a change the flush hooks cannot see (bulk UPDATE statements)."""
    session.info.setdefault(PENDING_KEY, []).append((table, ChangeOp(op), row_id))


def install_change_tracking(session_factory, feed: ChangeFeed):
    """Attach flush/commit/rollback listeners to session_factory (a sessionmaker)."""

    @event.listens_for(session_factory, 'after_flush')
    def _after_flush(session, flush_context):
        _collect(session, session.new, ChangeOp.INSERT)
        _collect(session, session.dirty, ChangeOp.UPDATE)
        _collect(session, session.deleted, ChangeOp.DELETE)

    @event.listens_for(session_factory, 'after_transaction_create')
    def _mark_savepoint(session, transaction):
        if transaction.nested:
            marks = session.info.setdefault(MARKS_KEY, {})
            marks[transaction] = len(session.info.get(PENDING_KEY, []))

    @event.listens_for(session_factory, 'after_commit')
    def _after_commit(session):
        # Releasing a SAVEPOINT also fires after_commit; wait for the outer transaction
        if session.in_nested_transaction():
            return
        session.info.pop(MARKS_KEY, None)
        pending = session.info.pop(PENDING_KEY, [])
        seen = set()
        for table, op, row_id in pending:
            key = (table, op, row_id)
            # Several flushes in one transaction can report the same row update
            if key in seen:
                continue
            seen.add(key)
            feed.publish(table, op, row_id)

    @event.listens_for(session_factory, 'after_soft_rollback')
    def _after_rollback(session, previous_transaction):
        if previous_transaction.parent is None:
            session.info.pop(PENDING_KEY, None)
            session.info.pop(MARKS_KEY, None)
            return
        # A rolled-back SAVEPOINT drops only the events queued since it began
        mark = session.info.get(MARKS_KEY, {}).pop(previous_transaction, None)
        pending = session.info.get(PENDING_KEY)
        if mark is not None and pending is not None:
            del pending[mark:]

    return feed

__all__ = ['ChangeOp', 'ChangeEvent', 'ChangeFeed', 'record_change', 'install_change_tracking', 'TRACKED_TABLES']
