from __future__ import annotations
from flask import Blueprint, request, abort
from flask_jwt_extended import get_jwt_identity
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from fieldops import get_db
from fieldops.decorators.auth import require_permissions
from fieldops.decorators.audit import audit_log
from fieldops.models.base import iso, utcnow
from fieldops.models.equipment import EquipmentItem, EquipmentMovement, InventoryUsage
from fieldops.services.events import ChangeOp, record_change
from fieldops.utils.filters import apply_filters, apply_search
from fieldops.utils.listing import list_response, detail_response
from fieldops.utils.sorting import apply_multi_sort
from fieldops.utils.validation import get_or_404, parse_int, parse_text, require_fields, require_text

equipment_bp = Blueprint('equipment', __name__)

EDITABLE = ('name', 'type', 'part_number', 'min_stock_level', 'max_stock_level', 'warehouse_location', 'supplier', 'unit_cost_cents')
INT_FIELDS = ('min_stock_level', 'max_stock_level', 'unit_cost_cents')

SORT_FIELDS = {
    'name': EquipmentItem.name,
    'stock_level': EquipmentItem.stock_level,
    'updated_at': EquipmentItem.updated_at,
    'id': EquipmentItem.id,
}


def _prefetch_item(item_id):
    e = get_db().get(EquipmentItem, item_id) if item_id is not None else None
    return _item_json(e) if e else None


def _coerce(data, key):
    value = data.get(key)
    if key in INT_FIELDS:
        if value is None and key == 'max_stock_level':
            return None
        return parse_int(value, key, minimum=0)
    return value


@equipment_bp.route('', methods=['GET', 'HEAD'])
@require_permissions('EQP.READ')
def list_equipment():
    session = get_db()
    q = session.query(EquipmentItem)
    filter_specs = {
        'type': {'op': lambda qu, v: qu.filter(EquipmentItem.type == v)},
        'supplier': {'op': lambda qu, v: qu.filter(EquipmentItem.supplier == v)},
        'warehouse_location': {'op': lambda qu, v: qu.filter(EquipmentItem.warehouse_location == v)},
    }
    q = apply_filters(q, filter_specs, request.args)
    q = apply_search(q, request.args.get('q'), [EquipmentItem.name, EquipmentItem.part_number, EquipmentItem.supplier])
    q = apply_multi_sort(q, request.args.get('sort'), SORT_FIELDS, EquipmentItem.id)
    return list_response(q, _item_json)


@equipment_bp.route('/low-stock', methods=['GET', 'HEAD'])
@require_permissions('EQP.READ')
def list_low_stock():
    q = get_db().query(EquipmentItem).filter(EquipmentItem.stock_level <= EquipmentItem.min_stock_level)
    q = apply_multi_sort(q, request.args.get('sort'), SORT_FIELDS, EquipmentItem.id, default=EquipmentItem.stock_level.asc())
    return list_response(q, _item_json)


@equipment_bp.post('')
@require_permissions('EQP.MANAGE')
@audit_log('EQP.CREATE', entity='EquipmentItem', entity_id_key='id', meta_keys=['name', 'part_number', 'stock_level'])
def create_item():
    session = get_db()
    data = request.json or {}
    require_fields(data, 'name', 'type')
    text = require_text(data, 'name', 'type')
    e = EquipmentItem(
        name=text['name'],
        type=text['type'],
        stock_level=parse_int(data.get('stock_level', 0), 'stock_level', minimum=0),
    )
    for key in EDITABLE:
        if key in data and key not in ('name', 'type'):
            setattr(e, key, _coerce(data, key))
    session.add(e)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        abort(409, description='part_number already exists')
    return _item_json(e), 201


@equipment_bp.route('/<int:item_id>', methods=['GET', 'HEAD'])
@require_permissions('EQP.READ')
def get_item(item_id: int):
    e = get_or_404(get_db(), EquipmentItem, item_id)
    return detail_response(e, _item_json(e))


@equipment_bp.patch('/<int:item_id>')
@require_permissions('EQP.MANAGE')
@audit_log('EQP.UPDATE', entity='EquipmentItem', entity_id_key='id', diff_keys=list(EDITABLE), pre_fetch=lambda a, kw: _prefetch_item(kw.get('item_id')))
def update_item(item_id: int):
    session = get_db()
    e = get_or_404(session, EquipmentItem, item_id)
    data = request.json or {}
    if 'stock_level' in data:
        abort(400, description='stock_level changes go through /adjust')
    for key in EDITABLE:
        if key in data:
            setattr(e, key, _coerce(data, key))
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        abort(409, description='part_number already exists')
    return _item_json(e)


@equipment_bp.post('/<int:item_id>/adjust')
@require_permissions('EQP.ADJUST')
@audit_log('EQP.ADJUST', entity='EquipmentItem', entity_id_key='id', diff_keys=['stock_level'], pre_fetch=lambda a, kw: _prefetch_item(kw.get('item_id')), meta_builder=lambda data, rv, a, kw: {'reason': _reason()})
def adjust_stock(item_id: int):
    session = get_db()
    e = get_or_404(session, EquipmentItem, item_id)
    data = request.json or {}
    delta = parse_int(data.get('delta'), 'delta')
    if delta == 0:
        abort(400, description='delta must be non-zero')
    reason = parse_text(data.get('reason'), 'reason', required=False) or None
    result = session.execute(
        update(EquipmentItem)
        .where(EquipmentItem.id == e.id, EquipmentItem.stock_level + delta >= 0)
        .values(stock_level=EquipmentItem.stock_level + delta, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        session.rollback()
        abort(400, description='stock_level cannot go below zero')
    session.refresh(e)
    record_change(session, EquipmentItem.__tablename__, ChangeOp.UPDATE, e.id)
    session.add(EquipmentMovement(
        equipment_id=e.id,
        movement_type=EquipmentMovement.TYPE_IN if delta > 0 else EquipmentMovement.TYPE_OUT,
        quantity=abs(delta),
        reason=reason,
        user_id=int(get_jwt_identity()),
    ))
    session.commit()
    return _item_json(e)


def _reason():
    return (request.get_json(silent=True) or {}).get('reason')


@equipment_bp.route('/<int:item_id>/movements', methods=['GET', 'HEAD'])
@require_permissions('EQP.READ')
def list_movements(item_id: int):
    session = get_db()
    e = get_or_404(session, EquipmentItem, item_id)
    q = session.query(EquipmentMovement).filter(EquipmentMovement.equipment_id == e.id)
    q = apply_filters(q, {'type': {
        'op': lambda qu, v: qu.filter(EquipmentMovement.movement_type == v),
        'validate': lambda v: v in EquipmentMovement.TYPES,
    }}, request.args)
    q = q.order_by(EquipmentMovement.created_at.desc(), EquipmentMovement.id.desc())
    return list_response(q, _movement_json, ts_attr='created_at')


@equipment_bp.route('/<int:item_id>/usage', methods=['GET', 'HEAD'])
@require_permissions('EQP.READ')
def list_usage(item_id: int):
    e = get_or_404(get_db(), EquipmentItem, item_id)
    q = get_db().query(InventoryUsage).filter(InventoryUsage.equipment_id == e.id).order_by(InventoryUsage.used_at.desc(), InventoryUsage.id.asc())
    return list_response(q, _usage_json, ts_attr='used_at')


def _item_json(e: EquipmentItem):
    return {
        'id': e.id,
        'name': e.name,
        'type': e.type,
        'part_number': e.part_number,
        'stock_level': e.stock_level,
        'min_stock_level': e.min_stock_level,
        'max_stock_level': e.max_stock_level,
        'warehouse_location': e.warehouse_location,
        'supplier': e.supplier,
        'unit_cost_cents': e.unit_cost_cents,
        'low_stock': e.stock_level <= e.min_stock_level,
        'created_at': iso(e.created_at),
        'updated_at': iso(e.updated_at),
    }


def _usage_json(u: InventoryUsage):
    return {
        'id': u.id,
        'equipment_id': u.equipment_id,
        'ticket_id': u.ticket_id,
        'intervention_id': u.intervention_id,
        'quantity_used': u.quantity_used,
        'unit_cost_cents': u.unit_cost_cents,
        'total_cost_cents': u.total_cost_cents,
        'used_by': u.used_by,
        'used_at': iso(u.used_at),
    }


def _movement_json(m: EquipmentMovement):
    return {
        'id': m.id,
        'equipment_id': m.equipment_id,
        'movement_type': m.movement_type,
        'quantity': m.quantity,
        'signed_quantity': m.signed_quantity,
        'reason': m.reason,
        'user_id': m.user_id,
        'ticket_id': m.ticket_id,
        'created_at': iso(m.created_at),
    }
