from __future__ import annotations
from flask import Blueprint, request, abort
from sqlalchemy.exc import IntegrityError
from fieldops import get_db
from fieldops.decorators.auth import require_permissions
from fieldops.decorators.audit import audit_log
from fieldops.models.base import iso, utcnow
from fieldops.models.device import Device
from fieldops.models.restaurant import Restaurant
from fieldops.models.ticket import Ticket
from fieldops.services.policy import assert_restaurant_access, filter_query_by_restaurants
from fieldops.utils.filters import apply_filters, apply_search
from fieldops.utils.listing import list_response, detail_response
from fieldops.utils.sorting import apply_multi_sort
from fieldops.utils.validation import get_or_404, parse_int, parse_text, require_fields, require_text, validate_status

devices_bp = Blueprint('devices', __name__)

EDITABLE = ('name', 'type', 'serial_number', 'model', 'restaurant_id')


def _load_device(device_id: int) -> Device:
    d = get_or_404(get_db(), Device, device_id)
    assert_restaurant_access(d.restaurant_id)
    return d


def _prefetch_device(device_id):
    d = get_db().get(Device, device_id) if device_id is not None else None
    return _device_json(d) if d else None


@devices_bp.route('', methods=['GET', 'HEAD'])
@require_permissions('DEV.READ')
def list_devices():
    session = get_db()
    q = filter_query_by_restaurants(session.query(Device), Device.restaurant_id)
    filter_specs = {
        'status': {'validate': lambda v: v in Device.ALL_STATUSES, 'op': lambda qu, v: qu.filter(Device.status == v)},
        'type': {'op': lambda qu, v: qu.filter(Device.type == v)},
        'restaurant_id': {'coerce': int, 'op': lambda qu, v: qu.filter(Device.restaurant_id == v)},
    }
    q = apply_filters(q, filter_specs, request.args)
    q = apply_search(q, request.args.get('q'), [Device.name, Device.serial_number, Device.model])
    allowed = {'name': Device.name, 'status': Device.status, 'updated_at': Device.updated_at, 'id': Device.id}
    q = apply_multi_sort(q, request.args.get('sort'), allowed, Device.id)
    return list_response(q, _device_json)


@devices_bp.post('')
@require_permissions('DEV.MANAGE')
@audit_log('DEV.CREATE', entity='Device', entity_id_key='id', meta_keys=['name', 'serial_number', 'restaurant_id'])
def create_device():
    session = get_db()
    data = request.json or {}
    require_fields(data, 'name', 'type', 'restaurant_id')
    text = require_text(data, 'name', 'type')
    restaurant = get_or_404(session, Restaurant, parse_int(data['restaurant_id'], 'restaurant_id', minimum=1))
    status = validate_status(data.get('status') or Device.STATUS_OPERATIONAL, Device.ALL_STATUSES)
    d = Device(
        name=text['name'],
        type=text['type'],
        serial_number=data.get('serial_number'),
        model=data.get('model'),
        status=status,
        restaurant_id=restaurant.id,
    )
    session.add(d)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        abort(409, description='serial_number already exists')
    return _device_json(d), 201


@devices_bp.route('/<int:device_id>', methods=['GET', 'HEAD'])
@require_permissions('DEV.READ')
def get_device(device_id: int):
    d = _load_device(device_id)
    body = _device_json(d)
    restaurant = get_db().get(Restaurant, d.restaurant_id)
    body['restaurant'] = {'id': restaurant.id, 'name': restaurant.name} if restaurant else None
    body['open_ticket_count'] = get_db().query(Ticket).filter(Ticket.device_id == d.id, Ticket.status.in_(Ticket.OPEN_STATUSES)).count()
    return detail_response(d, body)


@devices_bp.patch('/<int:device_id>')
@require_permissions('DEV.MANAGE')
@audit_log('DEV.UPDATE', entity='Device', entity_id_key='id', diff_keys=list(EDITABLE), pre_fetch=lambda a, kw: _prefetch_device(kw.get('device_id')))
def update_device(device_id: int):
    session = get_db()
    d = _load_device(device_id)
    data = request.json or {}
    for key in EDITABLE:
        if key not in data:
            continue
        value = data[key]
        if key == 'restaurant_id':
            value = get_or_404(session, Restaurant, parse_int(value, 'restaurant_id', minimum=1)).id
        elif key in ('name', 'type'):
            value = parse_text(value, key)
        setattr(d, key, value)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        abort(409, description='serial_number already exists')
    return _device_json(d)


@devices_bp.post('/<int:device_id>/status')
@require_permissions('DEV.STATUS')
@audit_log('DEV.STATUS', entity='Device', entity_id_key='id', diff_keys=['status'], pre_fetch=lambda a, kw: _prefetch_device(kw.get('device_id')))
def set_device_status(device_id: int):
    session = get_db()
    d = _load_device(device_id)
    data = request.json or {}
    d.status = validate_status(data.get('status'), Device.ALL_STATUSES)
    if d.status == Device.STATUS_OPERATIONAL and data.get('maintenance_done'):
        d.last_maintenance_at = utcnow()
    session.commit()
    return _device_json(d)


@devices_bp.route('/<int:device_id>/tickets', methods=['GET', 'HEAD'])
@require_permissions('DEV.READ', 'TKT.READ')
def device_tickets(device_id: int):
    from fieldops.routes.tickets import _ticket_json
    d = _load_device(device_id)
    q = get_db().query(Ticket).filter(Ticket.device_id == d.id)
    if request.args.get('open') in ('1', 'true', 'yes'):
        q = q.filter(Ticket.status.in_(Ticket.OPEN_STATUSES))
    q = q.order_by(Ticket.created_at.desc(), Ticket.id.asc())
    return list_response(q, _ticket_json)


def _device_json(d: Device):
    return {
        'id': d.id,
        'name': d.name,
        'type': d.type,
        'serial_number': d.serial_number,
        'model': d.model,
        'status': d.status,
        'restaurant_id': d.restaurant_id,
        'last_maintenance_at': iso(d.last_maintenance_at),
        'created_at': iso(d.created_at),
        'updated_at': iso(d.updated_at),
    }
