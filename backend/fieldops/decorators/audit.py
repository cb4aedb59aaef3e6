from __future__ import annotations
"""Audit logging decorator to keep add_audit() calls out of route bodies.

Usage examples:

@audit_log('TKT.CREATE', entity='Ticket', entity_id_key='id', meta_keys=['priority', 'restaurant_id'])
def create_ticket():
    ... return _ticket_json(t), 201

@audit_log('TKT.ASSIGN', entity='Ticket', entity_id_key='id', diff_keys=['status', 'assignee_id'],
           pre_fetch=lambda a, kw: _prefetch_ticket(kw.get('ticket_id')))
def assign_ticket(ticket_id): ...

Parameters:
  action: required audit action code (e.g. TKT.CREATE)
  entity: optional entity label (Ticket, Device, EquipmentItem)
  entity_id_key: key in the returned JSON object whose value becomes entity_id.
  entity_id_arg: name of the path parameter to use for entity_id (fallback if entity_id_key absent).
  meta_keys: list of keys to project from returned JSON into meta dict (shallow copy).
  meta_builder: callable returning a meta dict; receives (data, original_return_value, args, kwargs). Overrides meta_keys.
  diff_keys / pre_fetch: pre_fetch(args, kwargs) snapshots the record before the view runs; keys in
    diff_keys whose value changed are recorded under meta['changes'] as {'before', 'after'}.

Only successful responses are audited: an abort() inside the view propagates before
the decorator writes anything. The view commits its own unit of work; the audit row
is committed separately afterwards, and a failure there is logged, never raised.
"""

import logging
from functools import wraps
from typing import Any, Callable, Iterable, Optional, Dict

from sqlalchemy.exc import SQLAlchemyError
from fieldops.services.audit import add_audit
from fieldops import get_db

logger = logging.getLogger(__name__)


def _extract_payload(rv: Any):
    """Return the JSON-able dict of a view return value (dict, (dict, status), (dict, status, headers))."""
    if isinstance(rv, tuple) and rv:
        return rv[0]
    return rv


def _diff(before: Dict[str, Any], after: Dict[str, Any], keys: Iterable[str]) -> Dict[str, Any]:
    changes = {}
    for k in keys:
        if k in before and k in after and before.get(k) != after.get(k):
            changes[k] = {'before': before.get(k), 'after': after.get(k)}
    return changes


def audit_log(
    action: str,
    *,
    entity: Optional[str] = None,
    entity_id_key: Optional[str] = None,
    entity_id_arg: Optional[str] = None,
    meta_keys: Optional[Iterable[str]] = None,
    meta_builder: Optional[Callable[[dict, Any, tuple, dict], dict]] = None,
    diff_keys: Optional[Iterable[str]] = None,
    pre_fetch: Optional[Callable[[tuple, dict], Dict[str, Any]]] = None,
):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            before_snapshot = pre_fetch(args, kwargs) if (diff_keys and pre_fetch) else None
            rv = fn(*args, **kwargs)
            data = _extract_payload(rv)
            if not isinstance(data, dict):
                data = {}
            entity_id = None
            if entity_id_key and entity_id_key in data:
                entity_id = data.get(entity_id_key)
            elif entity_id_arg and entity_id_arg in kwargs:
                entity_id = kwargs.get(entity_id_arg)
            if meta_builder:
                meta = meta_builder(data, rv, args, kwargs) or {}
            elif meta_keys:
                meta = {k: data.get(k) for k in meta_keys if k in data}
            else:
                meta = {}
            if diff_keys and isinstance(before_snapshot, dict):
                changes = _diff(before_snapshot, data, diff_keys)
                if changes:
                    meta['changes'] = changes
            session = get_db()
            try:
                add_audit(action, entity, entity_id, meta)
                session.commit()
            except SQLAlchemyError:
                session.rollback()
                logger.warning('audit %s for %s#%s not recorded', action, entity, entity_id, exc_info=True)
            return rv
        return wrapper
    return outer
