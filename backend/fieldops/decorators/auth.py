from functools import wraps
from flask import abort
from flask_jwt_extended import verify_jwt_in_request, get_jwt
from fieldops.services.policy import has_permissions, current_permissions


def require_permissions(*codes: str, any_of: bool = False):
    """Verify the JWT and require every code (or at least one when any_of=True)."""
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            if any_of:
                allowed = bool(current_permissions() & set(codes))
            else:
                allowed = has_permissions(*codes)
            if not allowed:
                abort(403, description='Missing permission')
            return fn(*args, **kwargs)
        return wrapper
    return outer


def require_roles(*roles: str):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            if get_jwt().get('role') not in roles:
                abort(403, description='Role not permitted')
            return fn(*args, **kwargs)
        return wrapper
    return outer
