from flask import Blueprint, request, abort
from flask_jwt_extended import create_access_token, jwt_required, get_jwt_identity, get_jwt
from sqlalchemy.exc import IntegrityError
from fieldops import get_db
from fieldops.constants.permissions import permissions_for_role
from fieldops.models.base import iso
from fieldops.models.restaurant import Restaurant
from fieldops.models.user import User, TokenBlocklist
from fieldops.utils.validation import get_or_404, parse_int, parse_text, require_fields, require_text, validate_status

auth_bp = Blueprint('auth', __name__)

# Roles a user may pick at sign-up; admin/manager are granted by an admin
SELF_SIGNUP_ROLES = (User.ROLE_TECHNICIAN, User.ROLE_SOFTWARE_TECH, User.ROLE_RESTAURANT_STAFF, User.ROLE_WAREHOUSE)


def issue_token(user: User) -> str:
    restaurant_ids = [user.restaurant_id] if user.role == User.ROLE_RESTAURANT_STAFF and user.restaurant_id else []
    return create_access_token(identity=str(user.id), additional_claims={
        'role': user.role,
        'name': user.name,
        'perms': permissions_for_role(user.role),
        'restaurant_ids': restaurant_ids,
    })


def _user_json(u: User):
    return {
        'id': u.id,
        'name': u.name,
        'email': u.email,
        'phone': u.phone,
        'role': u.role,
        'specialization': u.specialization,
        'avatar_url': u.avatar_url,
        'restaurant_id': u.restaurant_id,
        'is_active': u.is_active,
        'created_at': iso(u.created_at),
        'updated_at': iso(u.updated_at),
    }


@auth_bp.post('/signup')
def signup():
    session = get_db()
    data = request.json or {}
    require_fields(data, 'name', 'email', 'password')
    text = require_text(data, 'name', 'email', 'password')
    role = validate_status(data.get('role') or User.ROLE_TECHNICIAN, SELF_SIGNUP_ROLES, 'role')
    email = text['email'].lower()
    if session.query(User).filter_by(email=email).one_or_none():
        abort(409, description='Email already registered')
    restaurant_id = data.get('restaurant_id')
    if role == User.ROLE_RESTAURANT_STAFF and restaurant_id in (None, ''):
        abort(400, description='restaurant_id required for restaurant_staff')
    if restaurant_id not in (None, ''):
        restaurant_id = get_or_404(session, Restaurant, parse_int(restaurant_id, 'restaurant_id', minimum=1)).id
    else:
        restaurant_id = None
    u = User(
        name=text['name'],
        email=email,
        password_hash='',
        role=role,
        phone=data.get('phone'),
        specialization=data.get('specialization'),
        restaurant_id=restaurant_id,
    )
    u.set_password(data['password'])
    session.add(u)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        abort(409, description='Email already registered')
    return {'user': _user_json(u), 'access_token': issue_token(u)}, 201


@auth_bp.post('/login')
def login():
    session = get_db()
    data = request.json or {}
    email = (parse_text(data.get('email'), 'email', required=False) or '').lower()
    password = data.get('password')
    if not email or not password:
        abort(400, description='email and password required')
    user = session.query(User).filter_by(email=email).one_or_none()
    if not user or not user.verify_password(password):
        abort(401, description='Invalid credentials')
    if not user.is_active:
        abort(403, description='Account disabled')
    return {'access_token': issue_token(user), 'user': _user_json(user)}


@auth_bp.get('/me')
@jwt_required()
def me():
    session = get_db()
    user = session.get(User, int(get_jwt_identity()))
    if not user:
        abort(404)
    claims = get_jwt()
    return {'user': _user_json(user), 'perms': claims.get('perms', []), 'restaurant_ids': claims.get('restaurant_ids', [])}


@auth_bp.post('/logout')
@jwt_required()
def logout():
    session = get_db()
    claims = get_jwt()
    session.add(TokenBlocklist(jti=claims['jti'], user_id=int(get_jwt_identity())))
    session.commit()
    return {'status': 'signed_out'}
