from __future__ import annotations
"""Request validation helpers.

All of them abort with 400 (or 404 for lookups) so route handlers can use them
inline without branching.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Optional, Type, TypeVar
from flask import abort

T = TypeVar('T')


def validate_status(new_status: str, allowed: Iterable[str], field_name: str = 'status') -> str:
    """Return new_status if it is one of allowed, else abort 400."""
    if new_status not in allowed:
        abort(400, description=f"{field_name} invalid")
    return new_status


def require_fields(data: Mapping[str, Any], *names: str) -> None:
    missing = [n for n in names if data.get(n) in (None, '') or (isinstance(data.get(n), str) and not data.get(n).strip())]
    if missing:
        abort(400, description=f"{', '.join(names)} required")


def parse_int(value: Any, field_name: str, minimum: Optional[int] = None) -> int:
    try:
        out = int(value)
    except (TypeError, ValueError):
        abort(400, description=f'{field_name} must be int')
    if minimum is not None and out < minimum:
        abort(400, description=f'{field_name} must be >= {minimum}')
    return out


def parse_datetime(value: Any, field_name: str) -> datetime:
    if not isinstance(value, str):
        abort(400, description=f'{field_name} must be an ISO 8601 timestamp')
    try:
        dt = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        abort(400, description=f'{field_name} must be an ISO 8601 timestamp')
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_text(value: Any, field_name: str, required: bool = True) -> Optional[str]:
    """Stripped string value; 400 unless a str (or, when not required, None)."""
    if value is None and not required:
        return None
    if not isinstance(value, str):
        abort(400, description=f'{field_name} must be a string')
    out = value.strip()
    if required and not out:
        abort(400, description=f'{field_name} required')
    return out


def require_text(data: Mapping[str, Any], *names: str) -> Dict[str, str]:
    """Stripped values of the non-empty string fields names; 400 otherwise."""
    return {n: parse_text(data.get(n), n) for n in names}


def parse_string_list(value: Any, field_name: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list) or any(not isinstance(v, str) for v in value):
        abort(400, description=f'{field_name} must be list[str]')
    return list(value)


def get_or_404(session, model: Type[T], obj_id: int) -> T:
    obj = session.get(model, obj_id)
    if obj is None:
        abort(404)
    return obj

__all__ = ['validate_status', 'require_fields', 'require_text', 'parse_int', 'parse_datetime', 'parse_text', 'parse_string_list', 'get_or_404']
