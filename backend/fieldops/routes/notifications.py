from __future__ import annotations
from flask import Blueprint, request, abort
from flask_jwt_extended import jwt_required, get_jwt_identity
from fieldops import get_db
from fieldops.models.base import iso
from fieldops.models.notification import Notification
from fieldops.utils.filters import apply_filters, parse_bool
from fieldops.utils.listing import list_response
from fieldops.utils.validation import get_or_404

notifications_bp = Blueprint('notifications', __name__)


def _own(notification_id: int) -> Notification:
    n = get_or_404(get_db(), Notification, notification_id)
    if n.user_id != int(get_jwt_identity()):
        abort(404)
    return n


@notifications_bp.route('', methods=['GET', 'HEAD'])
@jwt_required()
def list_notifications():
    session = get_db()
    q = session.query(Notification).filter(Notification.user_id == int(get_jwt_identity()))
    filter_specs = {
        'read': {'coerce': parse_bool, 'op': lambda qu, v: qu.filter(Notification.read.is_(v))},
        'type': {'validate': lambda v: v in Notification.TYPES, 'op': lambda qu, v: qu.filter(Notification.type == v)},
    }
    q = apply_filters(q, filter_specs, request.args)
    q = q.order_by(Notification.created_at.desc(), Notification.id.desc())
    return list_response(q, _notification_json, ts_attr='created_at')


@notifications_bp.get('/unread-count')
@jwt_required()
def unread_count():
    session = get_db()
    count = session.query(Notification).filter(Notification.user_id == int(get_jwt_identity()), Notification.read.is_(False)).count()
    return {'unread': count}


@notifications_bp.post('/<int:notification_id>/read')
@jwt_required()
def mark_read(notification_id: int):
    session = get_db()
    n = _own(notification_id)
    n.read = True
    session.commit()
    return _notification_json(n)


@notifications_bp.post('/read-all')
@jwt_required()
def mark_all_read():
    session = get_db()
    unread = session.query(Notification).filter(Notification.user_id == int(get_jwt_identity()), Notification.read.is_(False)).all()
    for n in unread:
        n.read = True
    session.commit()
    return {'updated': len(unread)}


def _notification_json(n: Notification):
    return {
        'id': n.id,
        'title': n.title,
        'message': n.message,
        'type': n.type,
        'related_id': n.related_id,
        'related_type': n.related_type,
        'read': n.read,
        'created_at': iso(n.created_at),
    }
