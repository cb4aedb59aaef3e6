from __future__ import annotations
from flask import Blueprint, request, abort
from flask_jwt_extended import get_jwt_identity
from fieldops import get_db
from fieldops.decorators.auth import require_permissions
from fieldops.decorators.audit import audit_log
from fieldops.models.base import iso, utcnow
from fieldops.models.device import Device
from fieldops.models.maintenance import MaintenanceRecord
from fieldops.models.user import User
from fieldops.services.notifications import notify_safely
from fieldops.services.policy import assert_restaurant_access
from fieldops.utils.filters import apply_filters, parse_bool
from fieldops.utils.fsm import TransitionValidator
from fieldops.utils.listing import list_response, detail_response
from fieldops.utils.sorting import apply_multi_sort
from fieldops.utils.validation import get_or_404, parse_int, parse_datetime, parse_text, require_fields, validate_status

maintenance_bp = Blueprint('maintenance', __name__)

MAINTENANCE_FSM = TransitionValidator({
    MaintenanceRecord.STATUS_SCHEDULED: {MaintenanceRecord.STATUS_COMPLETED},
    MaintenanceRecord.STATUS_COMPLETED: set(),
})


def _load_record(record_id: int) -> MaintenanceRecord:
    session = get_db()
    m = get_or_404(session, MaintenanceRecord, record_id)
    assert_restaurant_access(session.get(Device, m.device_id).restaurant_id)
    return m


@maintenance_bp.route('', methods=['GET', 'HEAD'])
@require_permissions('MNT.READ')
def list_records():
    session = get_db()
    q = session.query(MaintenanceRecord)
    now = utcnow()
    filter_specs = {
        'device_id': {'coerce': int, 'op': lambda qu, v: qu.filter(MaintenanceRecord.device_id == v)},
        'status': {'validate': lambda v: v in MaintenanceRecord.ALL_STATUSES, 'op': lambda qu, v: qu.filter(MaintenanceRecord.status == v)},
        'technician_id': {'coerce': int, 'op': lambda qu, v: qu.filter(MaintenanceRecord.technician_id == v)},
        'upcoming': {'coerce': parse_bool, 'op': lambda qu, v: qu.filter(MaintenanceRecord.status == MaintenanceRecord.STATUS_SCHEDULED, MaintenanceRecord.scheduled_date >= now) if v else qu},
        'overdue': {'coerce': parse_bool, 'op': lambda qu, v: qu.filter(MaintenanceRecord.status == MaintenanceRecord.STATUS_SCHEDULED, MaintenanceRecord.scheduled_date < now) if v else qu},
    }
    q = apply_filters(q, filter_specs, request.args)
    allowed = {'scheduled_date': MaintenanceRecord.scheduled_date, 'status': MaintenanceRecord.status, 'id': MaintenanceRecord.id}
    q = apply_multi_sort(q, request.args.get('sort'), allowed, MaintenanceRecord.id, default=MaintenanceRecord.scheduled_date.asc())
    return list_response(q, _record_json)


@maintenance_bp.post('')
@require_permissions('MNT.MANAGE')
@audit_log('MNT.SCHEDULE', entity='MaintenanceRecord', entity_id_key='id', meta_keys=['device_id', 'maintenance_type', 'scheduled_date'])
def schedule_maintenance():
    session = get_db()
    data = request.json or {}
    require_fields(data, 'device_id', 'maintenance_type', 'description', 'scheduled_date')
    device = get_or_404(session, Device, parse_int(data['device_id'], 'device_id', minimum=1))
    assert_restaurant_access(device.restaurant_id)
    technician_id = None
    if data.get('technician_id') is not None:
        technician_id = get_or_404(session, User, parse_int(data['technician_id'], 'technician_id', minimum=1)).id
    m = MaintenanceRecord(
        device_id=device.id,
        maintenance_type=validate_status(data['maintenance_type'], MaintenanceRecord.TYPES, 'maintenance_type'),
        description=parse_text(data['description'], 'description'),
        scheduled_date=parse_datetime(data['scheduled_date'], 'scheduled_date'),
        technician_id=technician_id,
        notes=data.get('notes'),
        created_by=int(get_jwt_identity()),
    )
    session.add(m)
    session.flush()
    if technician_id and technician_id != m.created_by:
        notify_safely(session, technician_id, 'Maintenance Scheduled',
                      f'{m.maintenance_type.capitalize()} maintenance for {device.name} on {iso(m.scheduled_date)}',
                      type='info', related_id=m.id, related_type='maintenance')
    session.commit()
    return _record_json(m), 201


@maintenance_bp.route('/<int:record_id>', methods=['GET', 'HEAD'])
@require_permissions('MNT.READ')
def get_record(record_id: int):
    m = _load_record(record_id)
    return detail_response(m, _record_json(m))


@maintenance_bp.post('/<int:record_id>/complete')
@require_permissions('MNT.MANAGE')
@audit_log('MNT.COMPLETE', entity='MaintenanceRecord', entity_id_key='id', meta_keys=['device_id', 'status'])
def complete_maintenance(record_id: int):
    session = get_db()
    m = _load_record(record_id)
    MAINTENANCE_FSM.assert_can_transition(m.status, MaintenanceRecord.STATUS_COMPLETED)
    data = request.get_json(silent=True) or {}
    now = utcnow()
    m.status = MaintenanceRecord.STATUS_COMPLETED
    m.completed_at = now
    if data.get('notes'):
        m.notes = data['notes']
    if m.technician_id is None:
        m.technician_id = int(get_jwt_identity())
    device = session.get(Device, m.device_id)
    device.status = Device.STATUS_OPERATIONAL
    device.last_maintenance_at = now
    session.commit()
    return _record_json(m)


def _record_json(m: MaintenanceRecord):
    return {
        'id': m.id,
        'device_id': m.device_id,
        'maintenance_type': m.maintenance_type,
        'description': m.description,
        'status': m.status,
        'scheduled_date': iso(m.scheduled_date),
        'completed_at': iso(m.completed_at),
        'technician_id': m.technician_id,
        'notes': m.notes,
        'created_by': m.created_by,
        'created_at': iso(m.created_at),
        'updated_at': iso(m.updated_at),
    }
