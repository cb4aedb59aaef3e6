from __future__ import annotations
from datetime import datetime, timedelta
from typing import Optional
from flask import abort
from fieldops.config.sla import SLA_TABLES, STANDARD, URGENCY_FLOOR
from fieldops.models.base import utcnow
from fieldops.models.ticket import Ticket

_RANK = {p: i for i, p in enumerate(Ticket.ALL_PRIORITIES)}


def effective_priority(priority: str, urgency_level: Optional[str] = None) -> str:
    """Raise priority to the floor implied by urgency_level; never lower it."""
    floor = URGENCY_FLOOR.get(urgency_level or '')
    if floor and _RANK[floor] > _RANK[priority]:
        return floor
    return priority


def compute_sla_due(priority: str, now: Optional[datetime] = None, urgency_level: Optional[str] = None, table: str = STANDARD) -> datetime:
    """Return now + the SLA offset for priority in the given table.

    Computed once at creation and stored on the ticket; never recomputed.
    """
    if priority not in _RANK:
        abort(400, description='priority invalid')
    if urgency_level is not None and urgency_level not in URGENCY_FLOOR:
        abort(400, description='urgency_level invalid')
    hours = SLA_TABLES[table][effective_priority(priority, urgency_level)]
    return (now or utcnow()) + timedelta(hours=hours)

__all__ = ['compute_sla_due', 'effective_priority']
