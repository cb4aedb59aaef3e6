from __future__ import annotations
"""List/detail response helpers: pagination envelope, ETag and Last-Modified validators, 304s.

Every list endpoint answers GET and HEAD through `list_response`; every detail
endpoint through `detail_response`. HEAD gets the same headers with an empty body.
"""
from typing import Any, Callable, Iterable, Optional, Tuple
from flask import request, abort, make_response, jsonify
from sqlalchemy.orm import Query
from fieldops.config.pagination import normalize_pagination
from fieldops.models.base import as_utc
import hashlib
import json
from datetime import datetime, timedelta
from email.utils import parsedate_to_datetime, format_datetime

TIMESTAMP_TOLERANCE = timedelta(seconds=1)


def canonicalize_timestamp(dt: datetime) -> datetime:
    """Return UTC tz-aware timestamp truncated to whole seconds."""
    return as_utc(dt).replace(microsecond=0)


def _iso(dt: datetime) -> str:
    return dt.isoformat().replace('+00:00', 'Z')


def http_date(dt: datetime) -> str:
    """RFC 1123 HTTP-date in GMT."""
    return format_datetime(dt, usegmt=True)


def apply_pagination(q: Query) -> Tuple[Query, int, int, int]:
    try:
        limit, offset = normalize_pagination(request.args.get('limit'), request.args.get('offset'))
    except ValueError as e:
        abort(400, description=str(e))
    total = q.order_by(None).count()
    return q.offset(offset).limit(limit), total, limit, offset


def compute_etag(ids: Iterable[Any], total: int, limit: int, offset: int, latest_ts: Optional[str] = '', content: Any = None) -> str:
    seed = f"{list(ids)}|{total}|{limit}|{offset}|{latest_ts or ''}"
    if content is not None:
        # Timestamps are whole seconds; the serialized rows catch edits within the same second
        seed += '|' + json.dumps(content, sort_keys=True, default=str)
    return hashlib.sha256(seed.encode()).hexdigest()[:32]


def build_list_payload(rows: list, total: int, limit: int, offset: int):
    return {
        'data': rows,
        'pagination': {
            'total': total,
            'limit': limit,
            'offset': offset,
            'returned': len(rows)
        }
    }


def _set_validators(resp, etag: str, latest: Optional[datetime]):
    resp.headers['ETag'] = etag
    if latest:
        resp.headers['Last-Modified'] = http_date(latest)
        resp.headers['X-Last-Modified-ISO'] = _iso(latest)
    return resp


def _parse_if_modified_since(header_val: str) -> Optional[datetime]:
    if not header_val:
        return None
    try:
        return as_utc(datetime.fromisoformat(header_val.replace('Z', '+00:00')))
    except ValueError:
        pass
    try:
        return as_utc(parsedate_to_datetime(header_val))
    except (TypeError, ValueError):
        return None


def handle_conditional(etag_value: str, latest: Optional[datetime]):
    """Evaluate If-None-Match (takes precedence) then If-Modified-Since.

    Returns a 304 response if the client copy is current, else None.
    """
    inm = request.headers.get('If-None-Match')
    if inm:
        if inm.strip('"') == etag_value:
            return _set_validators(make_response('', 304), etag_value, latest)
        return None
    ims_dt = _parse_if_modified_since(request.headers.get('If-Modified-Since'))
    if ims_dt and latest and latest <= canonicalize_timestamp(ims_dt) + TIMESTAMP_TOLERANCE:
        return _set_validators(make_response('', 304), etag_value, latest)
    return None


def _latest(rows: list, ts_attr: str) -> Optional[datetime]:
    stamps = [getattr(r, ts_attr, None) for r in rows]
    stamps = [canonicalize_timestamp(s) for s in stamps if s is not None]
    return max(stamps) if stamps else None


def _finish(resp):
    if request.method == 'HEAD':
        resp.set_data(b'')
    return resp


def list_response(q: Query, serialize: Callable[[Any], dict], ts_attr: str = 'updated_at'):
    paged_q, total, limit, offset = apply_pagination(q)
    rows = paged_q.all()
    rows_json = [serialize(r) for r in rows]
    latest = _latest(rows, ts_attr)
    etag = compute_etag([r.get('id') for r in rows_json], total, limit, offset, _iso(latest) if latest else '', content=rows_json)
    cond = handle_conditional(etag, latest)
    if cond:
        return cond
    resp = make_response(build_list_payload(rows_json, total, limit, offset))
    return _finish(_set_validators(resp, etag, latest))


def detail_response(obj: Any, body: dict, ts_attr: str = 'updated_at'):
    latest = _latest([obj], ts_attr)
    etag = compute_etag([body.get('id')], 1, 1, 0, _iso(latest) if latest else '', content=body)
    cond = handle_conditional(etag, latest)
    if cond:
        return cond
    resp = make_response(jsonify(body))
    return _finish(_set_validators(resp, etag, latest))
