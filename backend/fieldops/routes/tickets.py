from __future__ import annotations
from flask import Blueprint, request, abort
from flask_jwt_extended import get_jwt_identity
from fieldops import get_db
from fieldops.config.sla import STANDARD, HELPDESK
from fieldops.decorators.auth import require_permissions
from fieldops.decorators.audit import audit_log
from fieldops.models.base import iso
from fieldops.models.device import Device
from fieldops.models.restaurant import Restaurant
from fieldops.models.user import User
from fieldops.models.intervention import Intervention
from fieldops.models.ticket import Ticket, TicketHistory, TicketComment
from fieldops.services.commands import TicketCommand
from fieldops.services.interventions import complete_intervention
from fieldops.services.lifecycle import apply_transition, next_status, reassign_ticket
from fieldops.services.policy import current_actor, assert_restaurant_access, filter_query_by_restaurants
from fieldops.services.tickets import create_ticket as create_ticket_record, clean_ticket_edits, EDITABLE_FIELDS
from fieldops.utils.filters import apply_filters, apply_search, parse_bool
from fieldops.utils.listing import list_response, detail_response
from fieldops.utils.sorting import apply_multi_sort
from fieldops.utils.validation import get_or_404, parse_int, parse_text, validate_status

tickets_bp = Blueprint('tickets', __name__)

SORT_FIELDS = {
    'created_at': Ticket.created_at,
    'updated_at': Ticket.updated_at,
    'sla_due_at': Ticket.sla_due_at,
    'priority': Ticket.priority,
    'status': Ticket.status,
    'title': Ticket.title,
    'id': Ticket.id,
}


def _status_list(value: str):
    statuses = [s.strip() for s in value.split(',') if s.strip()]
    for s in statuses:
        validate_status(s, Ticket.ALL_STATUSES)
    return statuses


def _load_ticket(ticket_id: int) -> Ticket:
    t = get_or_404(get_db(), Ticket, ticket_id)
    assert_restaurant_access(t.restaurant_id)
    return t


def _prefetch_ticket(ticket_id):
    t = get_db().get(Ticket, ticket_id) if ticket_id is not None else None
    return _ticket_json(t) if t else None


@tickets_bp.route('', methods=['GET', 'HEAD'])
@require_permissions('TKT.READ')
def list_tickets():
    session = get_db()
    q = filter_query_by_restaurants(session.query(Ticket), Ticket.restaurant_id)
    me = int(get_jwt_identity())
    filter_specs = {
        'status': {'coerce': _status_list, 'op': lambda qu, v: qu.filter(Ticket.status.in_(v))},
        'priority': {'validate': lambda v: v in Ticket.ALL_PRIORITIES, 'op': lambda qu, v: qu.filter(Ticket.priority == v)},
        'assignee_id': {'coerce': int, 'op': lambda qu, v: qu.filter(Ticket.assignee_id == v)},
        'restaurant_id': {'coerce': int, 'op': lambda qu, v: qu.filter(Ticket.restaurant_id == v)},
        'device_id': {'coerce': int, 'op': lambda qu, v: qu.filter(Ticket.device_id == v)},
        'source': {'validate': lambda v: v in (STANDARD, HELPDESK), 'op': lambda qu, v: qu.filter(Ticket.source == v)},
        'mine': {'coerce': parse_bool, 'op': lambda qu, v: qu.filter(Ticket.assignee_id == me) if v else qu},
        'unassigned': {'coerce': parse_bool, 'op': lambda qu, v: qu.filter(Ticket.assignee_id.is_(None)) if v else qu},
    }
    q = apply_filters(q, filter_specs, request.args)
    q = apply_search(q, request.args.get('q'), [Ticket.title, Ticket.diagnostic_info, Ticket.jira_ticket_id])
    q = apply_multi_sort(q, request.args.get('sort'), SORT_FIELDS, Ticket.id, default=Ticket.created_at.desc())
    return list_response(q, _ticket_json)


@tickets_bp.post('')
@require_permissions('TKT.CREATE')
@audit_log('TKT.CREATE', entity='Ticket', entity_id_key='id', meta_keys=['priority', 'restaurant_id', 'device_id', 'source'])
def create_ticket():
    session = get_db()
    t = create_ticket_record(session, current_actor(), request.get_json(silent=True) or {}, flow=STANDARD)
    session.commit()
    return _ticket_json(t), 201


@tickets_bp.post('/helpdesk')
@require_permissions('TKT.CREATE')
@audit_log('TKT.CREATE', entity='Ticket', entity_id_key='id', meta_keys=['priority', 'restaurant_id', 'device_id', 'source', 'urgency_level'])
def create_helpdesk_ticket():
    session = get_db()
    t = create_ticket_record(session, current_actor(), request.get_json(silent=True) or {}, flow=HELPDESK)
    session.commit()
    return _ticket_json(t), 201


@tickets_bp.route('/<int:ticket_id>', methods=['GET', 'HEAD'])
@require_permissions('TKT.READ')
def get_ticket(ticket_id: int):
    t = _load_ticket(ticket_id)
    return detail_response(t, _ticket_detail_json(t))


@tickets_bp.patch('/<int:ticket_id>')
@require_permissions('TKT.UPDATE')
@audit_log('TKT.UPDATE', entity='Ticket', entity_id_key='id', diff_keys=list(EDITABLE_FIELDS), pre_fetch=lambda a, kw: _prefetch_ticket(kw.get('ticket_id')))
def update_ticket(ticket_id: int):
    session = get_db()
    t = _load_ticket(ticket_id)
    data = request.get_json(silent=True) or {}
    blocked = sorted(k for k in data if k not in EDITABLE_FIELDS)
    if blocked:
        abort(400, description=f"not editable: {', '.join(blocked)}")
    changes = clean_ticket_edits(data)

    def mutate(ticket: Ticket):
        for key, value in changes.items():
            setattr(ticket, key, value)

    TicketCommand(session, t, 'Update ticket').run(mutate)
    return _ticket_json(t)


def _transition(ticket_id: int, target: str, action: str, **kwargs):
    session = get_db()
    t = _load_ticket(ticket_id)
    data = request.get_json(silent=True) or {}
    actor = current_actor()
    TicketCommand(session, t, action).run(
        lambda ticket: apply_transition(session, actor, ticket, target, notes=data.get('notes'), **kwargs)
    )
    return _ticket_json(t)


def _optional_id(data, key):
    value = data.get(key)
    return parse_int(value, key, minimum=1) if value is not None else None


# Transition endpoints only need read access; who may move a ticket is decided by policy.can_transition
@tickets_bp.post('/<int:ticket_id>/assign')
@require_permissions('TKT.READ')
@audit_log('TKT.ASSIGN', entity='Ticket', entity_id_key='id', diff_keys=['status', 'assignee_id'], pre_fetch=lambda a, kw: _prefetch_ticket(kw.get('ticket_id')))
def assign_ticket(ticket_id: int):
    data = request.get_json(silent=True) or {}
    return _transition(ticket_id, Ticket.STATUS_ASSIGNED, 'Assign ticket', assignee_id=_optional_id(data, 'assignee_id'))


@tickets_bp.post('/<int:ticket_id>/schedule')
@require_permissions('TKT.READ')
@audit_log('TKT.SCHEDULE', entity='Ticket', entity_id_key='id', diff_keys=['status', 'scheduled_for'], pre_fetch=lambda a, kw: _prefetch_ticket(kw.get('ticket_id')))
def schedule_ticket(ticket_id: int):
    data = request.get_json(silent=True) or {}
    return _transition(ticket_id, Ticket.STATUS_SCHEDULED, 'Schedule ticket', when=data.get('when'))


@tickets_bp.post('/<int:ticket_id>/start')
@require_permissions('TKT.READ')
@audit_log('TKT.START', entity='Ticket', entity_id_key='id', diff_keys=['status'], pre_fetch=lambda a, kw: _prefetch_ticket(kw.get('ticket_id')))
def start_ticket(ticket_id: int):
    return _transition(ticket_id, Ticket.STATUS_IN_PROGRESS, 'Start work')


@tickets_bp.post('/<int:ticket_id>/resolve')
@require_permissions('TKT.READ')
@audit_log('TKT.RESOLVE', entity='Ticket', entity_id_key='id', diff_keys=['status'], pre_fetch=lambda a, kw: _prefetch_ticket(kw.get('ticket_id')))
def resolve_ticket(ticket_id: int):
    data = request.get_json(silent=True) or {}
    return _transition(ticket_id, Ticket.STATUS_RESOLVED, 'Resolve ticket', resolution=data.get('resolution'))


@tickets_bp.post('/<int:ticket_id>/close')
@require_permissions('TKT.READ')
@audit_log('TKT.CLOSE', entity='Ticket', entity_id_key='id', diff_keys=['status'], pre_fetch=lambda a, kw: _prefetch_ticket(kw.get('ticket_id')))
def close_ticket(ticket_id: int):
    return _transition(ticket_id, Ticket.STATUS_CLOSED, 'Close ticket')


@tickets_bp.post('/<int:ticket_id>/advance')
@require_permissions('TKT.READ')
@audit_log('TKT.ADVANCE', entity='Ticket', entity_id_key='id', diff_keys=['status', 'assignee_id'], pre_fetch=lambda a, kw: _prefetch_ticket(kw.get('ticket_id')))
def advance_ticket(ticket_id: int):
    t = _load_ticket(ticket_id)
    target = next_status(t.status)
    if target is None:
        abort(400, description=f'No next status after {t.status}')
    data = request.get_json(silent=True) or {}
    return _transition(ticket_id, target, 'Update status',
                       assignee_id=_optional_id(data, 'assignee_id'),
                       resolution=data.get('resolution'),
                       when=data.get('when'))


@tickets_bp.post('/<int:ticket_id>/reassign')
@require_permissions('TKT.READ')
@audit_log('TKT.REASSIGN', entity='Ticket', entity_id_key='id', diff_keys=['assignee_id'], pre_fetch=lambda a, kw: _prefetch_ticket(kw.get('ticket_id')))
def reassign(ticket_id: int):
    session = get_db()
    t = _load_ticket(ticket_id)
    data = request.get_json(silent=True) or {}
    if data.get('assignee_id') is None:
        abort(400, description='assignee_id required')
    assignee_id = parse_int(data['assignee_id'], 'assignee_id', minimum=1)
    actor = current_actor()
    TicketCommand(session, t, 'Reassign ticket').run(
        lambda ticket: reassign_ticket(session, actor, ticket, assignee_id, notes=data.get('notes'))
    )
    return _ticket_json(t)


@tickets_bp.route('/<int:ticket_id>/history', methods=['GET', 'HEAD'])
@require_permissions('TKT.READ')
def list_history(ticket_id: int):
    t = _load_ticket(ticket_id)
    q = get_db().query(TicketHistory).filter(TicketHistory.ticket_id == t.id).order_by(TicketHistory.id.asc())
    return list_response(q, _history_json, ts_attr='timestamp')


@tickets_bp.route('/<int:ticket_id>/comments', methods=['GET', 'HEAD'])
@require_permissions('TKT.READ')
def list_comments(ticket_id: int):
    t = _load_ticket(ticket_id)
    q = get_db().query(TicketComment).filter(TicketComment.ticket_id == t.id).order_by(TicketComment.id.asc())
    return list_response(q, _comment_json, ts_attr='created_at')


@tickets_bp.post('/<int:ticket_id>/comments')
@require_permissions('TKT.READ')
@audit_log('TKT.COMMENT', entity='Ticket', entity_id_arg='ticket_id')
def add_comment(ticket_id: int):
    session = get_db()
    t = _load_ticket(ticket_id)
    data = request.get_json(silent=True) or {}
    body = parse_text(data.get('body'), 'body')
    c = TicketComment(ticket_id=t.id, user_id=int(get_jwt_identity()), body=body)
    session.add(c)
    session.commit()
    return _comment_json(c), 201


@tickets_bp.post('/<int:ticket_id>/photos')
@require_permissions('TKT.UPDATE')
@audit_log('TKT.PHOTO.ADD', entity='Ticket', entity_id_key='id', meta_builder=lambda data, rv, a, kw: {'count': len(data.get('photos', []))})
def add_photo(ticket_id: int):
    session = get_db()
    t = _load_ticket(ticket_id)
    data = request.get_json(silent=True) or {}
    url = parse_text(data.get('url'), 'url')

    def mutate(ticket: Ticket):
        # Reassign so the JSON column is flagged dirty
        ticket.photos = list(ticket.photos or []) + [url]

    TicketCommand(session, t, 'Add photo').run(mutate)
    return _ticket_json(t), 201


@tickets_bp.route('/<int:ticket_id>/interventions', methods=['GET', 'HEAD'])
@require_permissions('TKT.READ')
def list_interventions(ticket_id: int):
    t = _load_ticket(ticket_id)
    q = get_db().query(Intervention).filter(Intervention.ticket_id == t.id).order_by(Intervention.id.asc())
    return list_response(q, _intervention_json, ts_attr='completed_at')


@tickets_bp.post('/<int:ticket_id>/interventions')
@require_permissions('TKT.UPDATE')
@audit_log('TKT.INTERVENTION', entity='Ticket', entity_id_arg='ticket_id', meta_builder=lambda data, rv, a, kw: {'intervention_id': data.get('id'), 'total_cost_cents': data.get('total_cost_cents')})
def add_intervention(ticket_id: int):
    session = get_db()
    t = _load_ticket(ticket_id)
    data = request.get_json(silent=True) or {}
    actor = current_actor()
    out = TicketCommand(session, t, 'Complete intervention').run(
        lambda ticket: complete_intervention(session, actor, ticket, data)
    )
    body = _intervention_json(out['intervention'])
    body['inventory_used'] = [
        {'equipment_id': u.equipment_id, 'quantity_used': u.quantity_used, 'total_cost_cents': u.total_cost_cents}
        for u in out['usages']
    ]
    body['ticket'] = _ticket_json(t)
    return body, 201


def _ticket_json(t: Ticket):
    return {
        'id': t.id,
        'title': t.title,
        'diagnostic_info': t.diagnostic_info,
        'priority': t.priority,
        'status': t.status,
        'source': t.source,
        'device_id': t.device_id,
        'restaurant_id': t.restaurant_id,
        'created_by': t.created_by,
        'assignee_id': t.assignee_id,
        'photos': list(t.photos or []),
        'sla_due_at': iso(t.sla_due_at),
        'scheduled_for': t.scheduled_for,
        'resolution': t.resolution,
        'time_spent_minutes': t.time_spent_minutes,
        'total_cost_cents': t.total_cost_cents,
        'urgency_level': t.urgency_level,
        'jira_ticket_id': t.jira_ticket_id,
        'created_at': iso(t.created_at),
        'updated_at': iso(t.updated_at),
        'assigned_at': iso(t.assigned_at),
        'first_response_at': iso(t.first_response_at),
        'resolved_at': iso(t.resolved_at),
        'closed_at': iso(t.closed_at),
    }


def _ticket_detail_json(t: Ticket):
    # Related rows are queried by id; relationship collections can be stale in a long-lived session
    session = get_db()
    device = session.get(Device, t.device_id)
    restaurant = session.get(Restaurant, t.restaurant_id)
    assignee = session.get(User, t.assignee_id) if t.assignee_id else None
    history = session.query(TicketHistory).filter(TicketHistory.ticket_id == t.id).order_by(TicketHistory.id.asc()).all()
    comments = session.query(TicketComment).filter(TicketComment.ticket_id == t.id).order_by(TicketComment.id.asc()).all()
    body = _ticket_json(t)
    body.update({
        'customer_report': t.customer_report,
        'problem_description': t.problem_description,
        'initial_diagnosis': t.initial_diagnosis,
        'remote_steps_attempted': t.remote_steps_attempted,
        'business_impact': t.business_impact,
        'requires_onsite': t.requires_onsite,
        'estimated_duration': t.estimated_duration,
        'preferred_time_slot': t.preferred_time_slot,
        'contact_person': t.contact_person,
        'contact_phone': t.contact_phone,
        'access_instructions': t.access_instructions,
        'device': {'id': device.id, 'name': device.name, 'type': device.type, 'serial_number': device.serial_number, 'status': device.status} if device else None,
        'restaurant': {'id': restaurant.id, 'name': restaurant.name, 'address': restaurant.address, 'phone': restaurant.phone} if restaurant else None,
        'assignee': {'id': assignee.id, 'name': assignee.name, 'email': assignee.email, 'phone': assignee.phone} if assignee else None,
        'history': [_history_json(h) for h in history],
        'comments': [_comment_json(c) for c in comments],
        'next_status': next_status(t.status),
    })
    return body


def _history_json(h: TicketHistory):
    return {
        'id': h.id,
        'ticket_id': h.ticket_id,
        'status': h.status,
        'notes': h.notes,
        'user_id': h.user_id,
        'timestamp': iso(h.timestamp),
    }


def _comment_json(c: TicketComment):
    return {
        'id': c.id,
        'ticket_id': c.ticket_id,
        'user_id': c.user_id,
        'author_name': c.author.name if c.author else None,
        'body': c.body,
        'created_at': iso(c.created_at),
    }


def _intervention_json(i: Intervention):
    return {
        'id': i.id,
        'ticket_id': i.ticket_id,
        'technician_id': i.technician_id,
        'work_performed': i.work_performed,
        'root_cause': i.root_cause,
        'resolution': i.resolution,
        'preventive_measures': i.preventive_measures,
        'customer_satisfaction': i.customer_satisfaction,
        'time_spent_hours': i.time_spent_hours,
        'follow_up_required': i.follow_up_required,
        'follow_up_notes': i.follow_up_notes,
        'technician_notes': i.technician_notes,
        'total_cost_cents': i.total_cost_cents,
        'completed_at': iso(i.completed_at),
    }
