from flask import Blueprint, request, abort
from flask_jwt_extended import jwt_required
from fieldops import get_context
from fieldops.services.events import TRACKED_TABLES
from fieldops.utils.validation import parse_int

changes_bp = Blueprint('changes', __name__)


@changes_bp.get('')
@jwt_required()
def poll_changes():
    """Committed row changes after ?since=<seq>, optionally for one ?table=.

    Clients keep the returned last_seq and pass it back as since on the next poll.
    """
    since = parse_int(request.args.get('since', 0), 'since', minimum=0)
    table = request.args.get('table') or None
    if table is not None and table not in TRACKED_TABLES:
        abort(400, description='table invalid')
    feed = get_context().changes
    events = feed.since(since, table)
    return {'data': [e.to_dict() for e in events], 'last_seq': feed.last_seq}
