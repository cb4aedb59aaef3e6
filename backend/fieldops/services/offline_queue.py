from __future__ import annotations
"""Offline mutation queue.

Client side: `OfflineQueue` appends mutations while offline, persists them in
the key-value store and replays them in enqueue order once back online. Replay
is blind: the same mutation is fired again with no check against server state.

Server side: `apply_action` is the dispatcher for replayed actions. Only the
mutation kinds that are ever queued are accepted: ticket UPDATE and
ticket_history CREATE.
"""
import itertools
import logging
import time
import uuid
from dataclasses import dataclass, field, asdict
from typing import Any, Callable, Dict, List, Optional
from flask import abort
from fieldops.models.base import utcnow, iso
from fieldops.models.ticket import Ticket, TicketHistory
from fieldops.services.kv_store import JsonKeyValueStore, OFFLINE_QUEUE_KEY
from fieldops.services.lifecycle import apply_transition
from fieldops.services.policy import assert_restaurant_access
from fieldops.services.tickets import EDITABLE_FIELDS, clean_ticket_edits
from fieldops.utils.validation import get_or_404, parse_int, parse_text, validate_status

logger = logging.getLogger(__name__)

OPS = ('CREATE', 'UPDATE', 'DELETE')
# Keys of a queued ticket UPDATE that drive a status move instead of a column write
TRANSITION_KEYS = ('status', 'notes', 'assignee_id', 'resolution', 'when')

_counter = itertools.count(1)


@dataclass
class QueuedAction:
    op: str
    table: str
    data: Dict[str, Any]
    id: str = field(default_factory=lambda: f'action_{int(time.time() * 1000)}_{next(_counter)}_{uuid.uuid4().hex[:6]}')
    enqueued_at: str = field(default_factory=lambda: iso(utcnow()))
    retry_count: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'QueuedAction':
        return cls(
            op=raw['op'], table=raw['table'], data=raw.get('data') or {},
            id=raw.get('id') or f'action_{next(_counter)}_{uuid.uuid4().hex[:6]}',
            enqueued_at=raw.get('enqueued_at') or iso(utcnow()),
            retry_count=int(raw.get('retry_count') or 0), error=raw.get('error'),
        )


@dataclass
class SyncResult:
    synced: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.failed == 0


Dispatcher = Callable[[QueuedAction], None]


class OfflineQueue:
    """Enqueue-and-replay queue; dispatcher raises on failure."""

    def __init__(self, store: JsonKeyValueStore, dispatcher: Dispatcher, max_retries: int = 3, online: bool = True):
        self.store = store
        self.dispatcher = dispatcher
        self.max_retries = max_retries
        self.online = online
        self._replaying = False
        self._actions: List[QueuedAction] = [QueuedAction.from_dict(r) for r in (store.get(OFFLINE_QUEUE_KEY) or [])]

    def _persist(self):
        self.store.set(OFFLINE_QUEUE_KEY, [a.to_dict() for a in self._actions])

    def pending(self) -> List[QueuedAction]:
        return list(self._actions)

    def submit(self, op: str, table: str, data: Dict[str, Any]) -> QueuedAction:
        if op not in OPS:
            raise ValueError(f'unknown op {op}')
        action = QueuedAction(op=op, table=table, data=dict(data))
        self._actions.append(action)
        self._persist()
        logger.info('queued %s %s (%s)', op, table, action.id)
        if self.online:
            self.replay()
        return action

    def set_online(self, online: bool) -> Optional[SyncResult]:
        came_back = online and not self.online
        self.online = online
        if came_back:
            logger.info('back online, replaying %d action(s)', len(self._actions))
            return self.replay()
        return None

    def replay(self) -> SyncResult:
        result = SyncResult()
        if not self.online or self._replaying:
            return result
        self._replaying = True
        try:
            remaining: List[QueuedAction] = []
            for action in list(self._actions):
                try:
                    self.dispatcher(action)
                except Exception as e:
                    action.retry_count += 1
                    action.error = str(e)
                    result.failed += 1
                    result.errors.append(f'{action.op} {action.table}: {action.error}')
                    if action.retry_count >= self.max_retries:
                        logger.warning('dropping %s after %d failed attempts', action.id, action.retry_count)
                    else:
                        remaining.append(action)
                    continue
                result.synced += 1
            self._actions = remaining
            self._persist()
        finally:
            self._replaying = False
        logger.info('replay done: %d synced, %d failed', result.synced, result.failed)
        return result

    def clear(self):
        self._actions = []
        self._persist()


def _apply_ticket_update(session, actor, data: Dict[str, Any]) -> Ticket:
    ticket = get_or_404(session, Ticket, parse_int(data.get('id'), 'id', minimum=1))
    assert_restaurant_access(ticket.restaurant_id)
    unknown = [k for k in data if k not in EDITABLE_FIELDS and k not in TRANSITION_KEYS and k != 'id']
    if unknown:
        abort(400, description=f"not editable: {', '.join(sorted(unknown))}")
    for key, value in clean_ticket_edits(data).items():
        setattr(ticket, key, value)
    target = data.get('status')
    if target is not None:
        validate_status(target, Ticket.ALL_STATUSES)
    if target and target != ticket.status:
        assignee_id = data.get('assignee_id')
        apply_transition(
            session, actor, ticket, target,
            notes=data.get('notes'),
            assignee_id=parse_int(assignee_id, 'assignee_id', minimum=1) if assignee_id is not None else None,
            resolution=data.get('resolution'),
            when=data.get('when'),
        )
    else:
        ticket.updated_at = utcnow()
    return ticket


def _apply_history_create(session, actor, data: Dict[str, Any]) -> TicketHistory:
    ticket = get_or_404(session, Ticket, parse_int(data.get('ticket_id'), 'ticket_id', minimum=1))
    assert_restaurant_access(ticket.restaurant_id)
    # A queued history row can annotate the current status; it cannot record a move
    if data.get('status', ticket.status) != ticket.status:
        abort(400, description='history status must match ticket status')
    entry = TicketHistory(ticket_id=ticket.id, status=ticket.status, notes=parse_text(data.get('notes'), 'notes', required=False), user_id=actor.id)
    session.add(entry)
    session.flush()
    return entry


def apply_action(session, actor, action: QueuedAction):
    """Perform one replayed action against the database. Caller commits."""
    if not isinstance(action.data, dict):
        abort(400, description='action data must be an object')
    if action.op == 'UPDATE' and action.table == Ticket.__tablename__:
        return _apply_ticket_update(session, actor, action.data)
    if action.op == 'CREATE' and action.table == TicketHistory.__tablename__:
        return _apply_history_create(session, actor, action.data)
    abort(400, description=f'unsupported action {action.op} {action.table}')

__all__ = ['QueuedAction', 'SyncResult', 'OfflineQueue', 'apply_action', 'OPS']
