from flask import Blueprint, request
from fieldops import get_db
from fieldops.decorators.auth import require_permissions
from fieldops.models.audit import AuditLog
from fieldops.models.base import iso
from fieldops.utils.filters import apply_filters
from fieldops.utils.listing import list_response

audit_bp = Blueprint('audit', __name__)


@audit_bp.route('/logs', methods=['GET', 'HEAD'])
@require_permissions('ADMIN.AUDIT.READ')
def list_audit_logs():
    session = get_db()
    q = session.query(AuditLog)
    filter_specs = {
        'action': {'op': lambda qu, v: qu.filter(AuditLog.action == v)},
        'entity': {'op': lambda qu, v: qu.filter(AuditLog.entity == v)},
        'entity_id': {'op': lambda qu, v: qu.filter(AuditLog.entity_id == v)},
        'actor_user_id': {'coerce': int, 'op': lambda qu, v: qu.filter(AuditLog.actor_user_id == v)},
    }
    q = apply_filters(q, filter_specs, request.args)
    q = q.order_by(AuditLog.id.desc())
    return list_response(q, _audit_json, ts_attr='created_at')


def _audit_json(a: AuditLog):
    return {
        'id': a.id,
        'actor_user_id': a.actor_user_id,
        'role': a.role,
        'action': a.action,
        'entity': a.entity,
        'entity_id': a.entity_id,
        'meta': a.meta or {},
        'created_at': iso(a.created_at),
    }
