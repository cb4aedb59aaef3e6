from __future__ import annotations
"""Ticket creation (standard form and helpdesk flow)."""
import logging
from datetime import datetime
from typing import Any, Dict, Mapping, Optional
from flask import abort
from fieldops.config.sla import STANDARD, HELPDESK
from fieldops.models.base import utcnow
from fieldops.models.device import Device
from fieldops.models.restaurant import Restaurant
from fieldops.models.ticket import Ticket, TicketHistory
from fieldops.models.user import User
from fieldops.services.notifications import notify_role
from fieldops.services.policy import assert_restaurant_access
from fieldops.services.sla import compute_sla_due
from fieldops.utils.validation import require_fields, parse_int, parse_string_list, parse_text, validate_status, get_or_404

logger = logging.getLogger(__name__)

HELPDESK_FIELDS = (
    'jira_ticket_id', 'customer_report', 'problem_description', 'initial_diagnosis',
    'remote_steps_attempted', 'business_impact', 'estimated_duration', 'urgency_level',
    'preferred_time_slot', 'contact_person', 'contact_phone', 'access_instructions',
)

# Fields PATCH /tickets/<id> may change; status and assignment go through the lifecycle
EDITABLE_FIELDS = ('title', 'diagnostic_info', 'priority') + tuple(f for f in HELPDESK_FIELDS if f != 'urgency_level')


def _clean_field(key: str, value: Any) -> Any:
    if key == 'title':
        return parse_text(value, 'title')
    if key == 'priority':
        return validate_status(value, Ticket.ALL_PRIORITIES, 'priority')
    if key == 'estimated_duration' and isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return parse_text(value, key, required=False)


def clean_ticket_edits(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Validated values for the EDITABLE_FIELDS present in data (400 on bad input)."""
    return {key: _clean_field(key, data[key]) for key in EDITABLE_FIELDS if key in data}


def compose_helpdesk_diagnostics(data: Mapping[str, Any]) -> str:
    """Fold the helpdesk form into the single diagnostic text technicians read."""
    onsite = 'Yes' if data.get('requires_onsite', True) else 'No'
    sections = [
        f"JIRA Ticket: {data.get('jira_ticket_id') or 'N/A'}",
        f"Customer Report:\n{data.get('customer_report') or ''}",
        f"Problem Description:\n{data.get('problem_description') or ''}",
        f"Initial Diagnosis:\n{data.get('initial_diagnosis') or ''}",
        f"Remote Steps Attempted:\n{data.get('remote_steps_attempted') or ''}",
        f"Business Impact:\n{data.get('business_impact') or ''}",
        "Field Work Details:\n"
        f"- On-site Required: {onsite}\n"
        f"- Estimated Duration: {data.get('estimated_duration') or '?'} hours\n"
        f"- Urgency Level: {data.get('urgency_level') or 'normal'}\n"
        f"- Preferred Time: {data.get('preferred_time_slot') or 'Any time'}",
        "Contact Information:\n"
        f"- Contact Person: {data.get('contact_person') or ''}\n"
        f"- Phone: {data.get('contact_phone') or ''}",
        f"Access Instructions:\n{data.get('access_instructions') or ''}",
        f"Additional Technical Details:\n{data.get('diagnostic_info') or ''}",
    ]
    return '\n\n'.join(sections).strip()


def create_ticket(session, actor, data: Mapping[str, Any], flow: str = STANDARD, now: Optional[datetime] = None) -> Ticket:
    """Insert a new ticket, its "new" history row and the creation notifications.

    The device moves to maintenance. Caller commits.
    """
    require_fields(data, 'title', 'priority', 'device_id', 'restaurant_id')
    title = parse_text(data['title'], 'title')
    priority = validate_status(data['priority'], Ticket.ALL_PRIORITIES, 'priority')
    device_id = parse_int(data['device_id'], 'device_id', minimum=1)
    restaurant_id = parse_int(data['restaurant_id'], 'restaurant_id', minimum=1)
    assert_restaurant_access(restaurant_id)
    restaurant = get_or_404(session, Restaurant, restaurant_id)
    device = get_or_404(session, Device, device_id)
    if device.restaurant_id != restaurant.id:
        abort(400, description='device does not belong to restaurant')
    photos = parse_string_list(data.get('photos'), 'photos')
    now = now or utcnow()

    urgency = data.get('urgency_level') or None
    if flow == HELPDESK:
        if urgency is not None and urgency not in Ticket.URGENCY_LEVELS:
            abort(400, description='urgency_level invalid')
        sla_due = compute_sla_due(priority, now=now, urgency_level=urgency, table=HELPDESK)
        diagnostic = compose_helpdesk_diagnostics(data)
    else:
        sla_due = compute_sla_due(priority, now=now, table=STANDARD)
        diagnostic = parse_text(data.get('diagnostic_info'), 'diagnostic_info', required=False) or ''

    t = Ticket(
        title=title,
        diagnostic_info=diagnostic,
        priority=priority,
        status=Ticket.STATUS_NEW,
        device_id=device.id,
        restaurant_id=restaurant.id,
        created_by=actor.id,
        photos=photos,
        created_at=now,
        updated_at=now,
        sla_due_at=sla_due,
        source=flow,
    )
    if flow == HELPDESK:
        for field in HELPDESK_FIELDS:
            if field in data:
                setattr(t, field, _clean_field(field, data[field]))
        t.urgency_level = urgency
        t.requires_onsite = bool(data.get('requires_onsite', True))
    session.add(t)
    device.status = Device.STATUS_MAINTENANCE
    session.flush()

    if flow == HELPDESK:
        jira = data.get('jira_ticket_id')
        notes = 'Ticket created by helpdesk.' + (f' JIRA: {jira}' if jira else '')
    else:
        notes = 'Ticket created'
    session.add(TicketHistory(ticket_id=t.id, status=Ticket.STATUS_NEW, notes=notes, user_id=actor.id, timestamp=now))
    session.flush()

    if flow == HELPDESK:
        sent = notify_role(session, [User.ROLE_TECHNICIAN], 'New Field Ticket Available',
                           f'{t.title} at {restaurant.name} - {priority.upper()} priority',
                           type='info', related_id=t.id, related_type='ticket')
    else:
        sent = notify_role(session, [User.ROLE_ADMIN, User.ROLE_MANAGER], 'New Ticket Created',
                           f'A new ticket "{t.title}" has been created for {restaurant.name}',
                           type='info', related_id=t.id, related_type='ticket')
    logger.info('ticket %s created via %s flow, %d notification(s)', t.id, flow, sent)
    return t

__all__ = ['create_ticket', 'clean_ticket_edits', 'compose_helpdesk_diagnostics', 'HELPDESK_FIELDS', 'EDITABLE_FIELDS']
