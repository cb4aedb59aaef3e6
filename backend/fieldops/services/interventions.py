from __future__ import annotations
import logging
from typing import Any, Dict, Mapping
from flask import abort
from fieldops.models.base import utcnow
from fieldops.models.intervention import Intervention
from fieldops.models.ticket import Ticket
from fieldops.services.inventory import parse_lines, check_availability, line_cost_cents, consume_inventory
from fieldops.services.lifecycle import check_transition, apply_transition
from fieldops.utils.validation import require_text, parse_int

logger = logging.getLogger(__name__)


def _hours(value) -> float | None:
    if value in (None, ''):
        return None
    try:
        out = float(value)
    except (TypeError, ValueError):
        abort(400, description='time_spent_hours must be a number')
    if out < 0:
        abort(400, description='time_spent_hours must be >= 0')
    return out


def complete_intervention(session, actor, ticket: Ticket, data: Mapping[str, Any]) -> Dict[str, Any]:
    """Resolve an in-progress ticket with a field intervention record.

    Validation happens before any write: required text, the resolve transition
    itself, and stock for every inventory line. The ticket is then resolved
    (one history row), the Intervention inserted and stock consumed. Caller commits.
    """
    text = require_text(data, 'work_performed', 'resolution')
    resolution = text['resolution']
    check_transition(actor, ticket, Ticket.STATUS_RESOLVED, resolution=resolution)
    lines = parse_lines(data.get('inventory_used'))
    items = check_availability(session, lines)
    hours = _hours(data.get('time_spent_hours'))
    satisfaction = data.get('customer_satisfaction')
    if satisfaction is not None and satisfaction not in Intervention.SATISFACTION_LEVELS:
        abort(400, description='customer_satisfaction invalid')

    parts_cents = line_cost_cents(items, lines)
    labor_cents = parse_int(data.get('labor_cost_cents') or 0, 'labor_cost_cents', minimum=0)
    total_cents = parts_cents + labor_cents
    now = utcnow()

    notes = f'Intervention completed. {len(lines)} items used. Total cost: {total_cents / 100:.2f}'
    apply_transition(session, actor, ticket, Ticket.STATUS_RESOLVED, notes=notes, resolution=resolution, now=now)
    ticket.time_spent_minutes = int(round(hours * 60)) if hours is not None else None
    ticket.total_cost_cents = total_cents

    intervention = Intervention(
        ticket_id=ticket.id,
        technician_id=actor.id,
        work_performed=text['work_performed'],
        root_cause=data.get('root_cause'),
        resolution=resolution,
        preventive_measures=data.get('preventive_measures'),
        customer_satisfaction=satisfaction,
        time_spent_hours=hours,
        follow_up_required=bool(data.get('follow_up_required', False)),
        follow_up_notes=data.get('follow_up_notes'),
        technician_notes=data.get('technician_notes'),
        total_cost_cents=total_cents,
        completed_at=now,
    )
    session.add(intervention)
    session.flush()
    usages = consume_inventory(session, ticket.id, intervention.id, actor.id, lines, items=items)
    logger.info('ticket %s resolved by intervention %s', ticket.id, intervention.id)
    return {'intervention': intervention, 'usages': usages}

__all__ = ['complete_intervention']
