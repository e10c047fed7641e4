from __future__ import annotations
from typing import Any, Dict, Optional
from flask import current_app
from flask_jwt_extended import get_jwt_identity, get_jwt
from mutka import get_db
from mutka.models.audit import AuditLog
from mutka.services.viewas import caller_view_as_session


def _claims() -> dict:
    try:
        return get_jwt() or {}
    except RuntimeError:
        # outside a verified request (seed scripts, CLI)
        return {}


def add_audit(action: str, entity: Optional[str] = None, entity_id: Optional[Any] = None,
              meta: Optional[Dict[str, Any]] = None, *, module: Optional[str] = None,
              before: Optional[Dict[str, Any]] = None, after: Optional[Dict[str, Any]] = None,
              company_id: Optional[int] = None):
    """Stage an audit row in the current DB session.

    Parameters:
      action: short action code e.g. CASH.TRANSFER, exchange_submit
      module: owning module (cash, exchange, auto, ...)
      entity / entity_id: the affected record
      before / after: changed fields only
      meta: additional JSON-safe dictionary
    The caller's commit makes it durable; a failure here is logged, never raised.
    """
    claims = _claims()
    try:
        ident = get_jwt_identity() if claims else None
        actor = int(ident) if ident is not None else 0
        viewer = None
        perms = claims.get('perms', [])
        scope = claims.get('company_ids') or []
        if claims:
            view_as = caller_view_as_session()
            if view_as:
                viewer = actor
                actor = int(view_as['target_user_id'])
                perms = view_as.get('perms', [])
                scope = [view_as['target_company_id']]
        if company_id is None and scope:
            company_id = scope[0]
        log = AuditLog(
            company_id=company_id,
            actor_user_id=actor,
            viewer_admin_user_id=viewer,
            action=action,
            module=module,
            entity=entity,
            entity_id=str(entity_id) if entity_id is not None else None,
            perms_snapshot={'perms': list(perms)},
            before=before,
            after=after,
            meta=dict(meta or {}),
        )
        get_db().add(log)
        return log
    except Exception:
        current_app.logger.exception('Audit write failed for %s', action)
        return None
