from __future__ import annotations
from typing import Any, Dict, Iterable
from flask import abort
from sqlalchemy import or_


def apply_filters(query, specs: Dict[str, Dict[str, Any]], params):
    """Generic filter builder.

    specs: { param_name: { 'op': callable(query, value)->query, 'coerce': type/func, 'validate': callable(optional) } }
    """
    for name, meta in specs.items():
        val = params.get(name)
        if val is None or val == '':
            continue
        if 'coerce' in meta:
            try:
                val = meta['coerce'](val)
            except (TypeError, ValueError):
                abort(400, description=f'{name} invalid')
        if 'validate' in meta and not meta['validate'](val):
            abort(400, description=f'{name} invalid')
        query = meta['op'](query, val)
    return query


def apply_search(query, term, columns: Iterable):
    """Case-insensitive substring match of term against any of columns."""
    if not term:
        return query
    pattern = f"%{term.strip()}%"
    return query.filter(or_(*[c.ilike(pattern) for c in columns]))


def parse_bool(value: str) -> bool:
    lowered = str(value).strip().lower()
    if lowered in {'1', 'true', 'yes'}:
        return True
    if lowered in {'0', 'false', 'no'}:
        return False
    raise ValueError(value)
