from __future__ import annotations
from typing import Any, Dict, Optional
from flask_jwt_extended import get_jwt, get_jwt_identity
from fieldops import get_db
from fieldops.models.audit import AuditLog


def add_audit(action: str, entity: Optional[str] = None, entity_id: Optional[Any] = None, meta: Optional[Dict[str, Any]] = None):
    """Persist an audit log entry within the current DB session.

    Parameters:
      action: short action code e.g. TKT.CREATE, TKT.ASSIGN, EQP.ADJUST
      entity: optional entity name (Ticket, Device, etc.)
      entity_id: optional primary key (stored as string)
      meta: additional JSON-safe dictionary (will be shallow copied)

    Only called from endpoints behind require_permissions, so a verified JWT is present.
    """
    session = get_db()
    claims = get_jwt() or {}
    ident = get_jwt_identity()
    log = AuditLog(
        actor_user_id=int(ident) if ident is not None else 0,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        role=claims.get('role'),
        meta=dict(meta or {}),
    )
    session.add(log)
    # No commit here; caller's transaction boundary controls durability.
    return log
