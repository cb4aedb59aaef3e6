from __future__ import annotations
from flask import Blueprint, request, abort
from flask_jwt_extended import get_jwt_identity
from fieldops import get_db
from fieldops.decorators.auth import require_permissions, require_roles
from fieldops.decorators.audit import audit_log
from fieldops.models.restaurant import Restaurant
from fieldops.models.ticket import Ticket
from fieldops.models.user import User
from fieldops.routes.auth import _user_json
from fieldops.utils.filters import apply_filters, apply_search, parse_bool
from fieldops.utils.listing import list_response, detail_response
from fieldops.utils.sorting import apply_multi_sort
from fieldops.utils.validation import get_or_404, parse_int, parse_text, validate_status

users_bp = Blueprint('users', __name__)

PROFILE_FIELDS = ('name', 'phone', 'specialization', 'avatar_url')
ADMIN_FIELDS = PROFILE_FIELDS + ('role', 'restaurant_id', 'is_active')

SORT_FIELDS = {'name': User.name, 'role': User.role, 'created_at': User.created_at, 'id': User.id}


def _prefetch_user(user_id):
    u = get_db().get(User, user_id) if user_id is not None else None
    return _user_json(u) if u else None


def _apply_fields(session, u: User, data, fields):
    blocked = sorted(k for k in data if k not in fields)
    if blocked:
        abort(400, description=f"not editable: {', '.join(blocked)}")
    if 'name' in data:
        data = {**data, 'name': parse_text(data['name'], 'name')}
    for key in fields:
        if key not in data:
            continue
        value = data[key]
        if key == 'role':
            value = validate_status(value, User.ALL_ROLES, 'role')
        elif key == 'restaurant_id' and value is not None:
            value = get_or_404(session, Restaurant, parse_int(value, 'restaurant_id', minimum=1)).id
        elif key == 'is_active':
            value = bool(value)
        setattr(u, key, value)


@users_bp.route('', methods=['GET', 'HEAD'])
@require_permissions('USR.READ')
def list_users():
    session = get_db()
    q = session.query(User)
    filter_specs = {
        'role': {'validate': lambda v: v in User.ALL_ROLES, 'op': lambda qu, v: qu.filter(User.role == v)},
        'restaurant_id': {'coerce': int, 'op': lambda qu, v: qu.filter(User.restaurant_id == v)},
        'active': {'coerce': parse_bool, 'op': lambda qu, v: qu.filter(User.is_active.is_(v))},
    }
    q = apply_filters(q, filter_specs, request.args)
    q = apply_search(q, request.args.get('q'), [User.name, User.email, User.specialization])
    q = apply_multi_sort(q, request.args.get('sort'), SORT_FIELDS, User.id, default=User.name.asc())
    return list_response(q, _user_json)


@users_bp.route('/technicians', methods=['GET', 'HEAD'])
@require_permissions('USR.READ')
def list_technicians():
    """Field staff available for assignment, with their open ticket load."""
    session = get_db()
    q = session.query(User).filter(User.role.in_(User.FIELD_ROLES), User.is_active.is_(True))
    q = apply_search(q, request.args.get('q'), [User.name, User.specialization])
    q = apply_multi_sort(q, request.args.get('sort'), SORT_FIELDS, User.id, default=User.name.asc())

    def serialize(u: User):
        body = _user_json(u)
        body['open_tickets'] = session.query(Ticket).filter(Ticket.assignee_id == u.id, Ticket.status.in_(Ticket.OPEN_STATUSES)).count()
        return body
    return list_response(q, serialize)


@users_bp.patch('/me')
@require_permissions('USR.READ')
@audit_log('USR.PROFILE.UPDATE', entity='User', entity_id_key='id', diff_keys=list(PROFILE_FIELDS), pre_fetch=lambda a, kw: _prefetch_user(int(get_jwt_identity())))
def update_me():
    session = get_db()
    u = get_or_404(session, User, int(get_jwt_identity()))
    _apply_fields(session, u, request.json or {}, PROFILE_FIELDS)
    session.commit()
    return _user_json(u)


@users_bp.route('/<int:user_id>', methods=['GET', 'HEAD'])
@require_permissions('USR.READ')
def get_user(user_id: int):
    u = get_or_404(get_db(), User, user_id)
    return detail_response(u, _user_json(u))


@users_bp.patch('/<int:user_id>')
@require_roles(User.ROLE_ADMIN)
@audit_log('USR.UPDATE', entity='User', entity_id_key='id', diff_keys=list(ADMIN_FIELDS), pre_fetch=lambda a, kw: _prefetch_user(kw.get('user_id')))
def update_user(user_id: int):
    session = get_db()
    u = get_or_404(session, User, user_id)
    data = request.json or {}
    if u.id == int(get_jwt_identity()) and ('role' in data or data.get('is_active') is False):
        abort(400, description='Cannot change own role or deactivate self')
    _apply_fields(session, u, data, ADMIN_FIELDS)
    session.commit()
    return _user_json(u)
