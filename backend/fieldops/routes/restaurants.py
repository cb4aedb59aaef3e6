from __future__ import annotations
from flask import Blueprint, request, abort
from fieldops import get_db
from fieldops.decorators.auth import require_permissions
from fieldops.decorators.audit import audit_log
from fieldops.models.base import iso
from fieldops.models.device import Device
from fieldops.models.restaurant import Restaurant
from fieldops.models.ticket import Ticket
from fieldops.services.policy import assert_restaurant_access, filter_query_by_restaurants
from fieldops.utils.filters import apply_search
from fieldops.utils.listing import list_response, detail_response
from fieldops.utils.sorting import apply_multi_sort
from fieldops.utils.validation import get_or_404, parse_text, require_fields

restaurants_bp = Blueprint('restaurants', __name__)

EDITABLE = ('name', 'address', 'phone')


def _prefetch_restaurant(restaurant_id):
    r = get_db().get(Restaurant, restaurant_id) if restaurant_id is not None else None
    return _restaurant_json(r) if r else None


@restaurants_bp.route('', methods=['GET', 'HEAD'])
@require_permissions('RST.READ')
def list_restaurants():
    session = get_db()
    q = filter_query_by_restaurants(session.query(Restaurant), Restaurant.id)
    q = apply_search(q, request.args.get('q'), [Restaurant.name, Restaurant.address])
    allowed = {'name': Restaurant.name, 'updated_at': Restaurant.updated_at, 'id': Restaurant.id}
    q = apply_multi_sort(q, request.args.get('sort'), allowed, Restaurant.id, default=Restaurant.name.asc())
    return list_response(q, _restaurant_json)


@restaurants_bp.post('')
@require_permissions('RST.MANAGE')
@audit_log('RST.CREATE', entity='Restaurant', entity_id_key='id', meta_keys=['name'])
def create_restaurant():
    session = get_db()
    data = request.json or {}
    require_fields(data, 'name')
    r = Restaurant(name=parse_text(data['name'], 'name'), address=data.get('address'), phone=data.get('phone'))
    session.add(r)
    session.commit()
    return _restaurant_json(r), 201


@restaurants_bp.route('/<int:restaurant_id>', methods=['GET', 'HEAD'])
@require_permissions('RST.READ')
def get_restaurant(restaurant_id: int):
    session = get_db()
    r = get_or_404(session, Restaurant, restaurant_id)
    assert_restaurant_access(r.id)
    body = _restaurant_json(r)
    body['device_count'] = session.query(Device).filter(Device.restaurant_id == r.id).count()
    body['open_ticket_count'] = session.query(Ticket).filter(Ticket.restaurant_id == r.id, Ticket.status.in_(Ticket.OPEN_STATUSES)).count()
    return detail_response(r, body)


@restaurants_bp.patch('/<int:restaurant_id>')
@require_permissions('RST.MANAGE')
@audit_log('RST.UPDATE', entity='Restaurant', entity_id_key='id', diff_keys=list(EDITABLE), pre_fetch=lambda a, kw: _prefetch_restaurant(kw.get('restaurant_id')))
def update_restaurant(restaurant_id: int):
    session = get_db()
    r = get_or_404(session, Restaurant, restaurant_id)
    data = request.json or {}
    for key in EDITABLE:
        if key in data:
            setattr(r, key, parse_text(data[key], key) if key == 'name' else data[key])
    session.commit()
    return _restaurant_json(r)


def _restaurant_json(r: Restaurant):
    return {
        'id': r.id,
        'name': r.name,
        'address': r.address,
        'phone': r.phone,
        'created_at': iso(r.created_at),
        'updated_at': iso(r.updated_at),
    }
