from __future__ import annotations
import logging
from flask import Blueprint, request, abort
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException
from fieldops import get_db
from fieldops.decorators.auth import require_permissions
from fieldops.services.offline_queue import QueuedAction, SyncResult, apply_action, OPS
from fieldops.services.policy import current_actor

sync_bp = Blueprint('sync', __name__)
logger = logging.getLogger(__name__)

MAX_BATCH = 100


def _reject(session, result: SyncResult, results: list, action: QueuedAction, status: int, error: str):
    session.rollback()
    result.failed += 1
    result.errors.append(f'{action.op} {action.table}: {error}')
    results.append({'id': action.id, 'ok': False, 'status': status, 'error': error})


@sync_bp.post('/actions')
@require_permissions('TKT.UPDATE')
def replay_actions():
    """Replay a client's offline queue in the order given.

    Each action is its own unit of work: a rejected action is rolled back and
    reported, and replay continues with the next one.
    """
    session = get_db()
    data = request.get_json(silent=True) or {}
    raw = data.get('actions') if isinstance(data, dict) else None
    if not isinstance(raw, list):
        abort(400, description='actions must be a list')
    if len(raw) > MAX_BATCH:
        abort(400, description=f'at most {MAX_BATCH} actions per batch')
    actions = []
    for item in raw:
        if not isinstance(item, dict) or item.get('op') not in OPS or not item.get('table'):
            abort(400, description='each action needs op and table')
        try:
            actions.append(QueuedAction.from_dict(item))
        except (TypeError, ValueError):
            abort(400, description='malformed action')

    actor = current_actor()
    result = SyncResult()
    results = []
    for action in actions:
        try:
            apply_action(session, actor, action)
            session.commit()
        except HTTPException as e:
            _reject(session, result, results, action, e.code, e.description)
            continue
        except SQLAlchemyError:
            logger.warning('sync action %s hit a database error', action.id, exc_info=True)
            _reject(session, result, results, action, 409, f'{action.op} {action.table} failed')
            continue
        except Exception:
            logger.exception('sync action %s failed unexpectedly', action.id)
            _reject(session, result, results, action, 500, 'Unexpected error')
            continue
        result.synced += 1
        results.append({'id': action.id, 'ok': True})
    logger.info('sync batch from user %s: %d synced, %d failed', actor.id, result.synced, result.failed)
    return {'synced': result.synced, 'failed': result.failed, 'errors': result.errors, 'results': results}
