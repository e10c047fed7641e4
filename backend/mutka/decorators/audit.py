from __future__ import annotations
"""Audit decorator for route handlers.

@audit_log('CASH.CASHBOX.CREATE', module='cash', entity='Cashbox', entity_id_key='id', meta_keys=['name', 'currency'])
def create_cashbox(): ... return _cashbox_json(cb), 201

@audit_log('ASSET.UPDATE', module='assets', entity='Asset', entity_id_arg='asset_id',
           diff_keys=['name', 'status'], pre_fetch=lambda a, kw: _prefetch_asset(kw['asset_id']))
def update_asset(asset_id): ...

The handler commits its own work first; the audit row is written afterwards in a
second commit so that a broken audit never undoes the business change.
`diff_keys` + `pre_fetch` store only the changed fields in `before`/`after`.
"""

from functools import wraps
from typing import Any, Callable, Dict, Iterable, Optional

from flask import current_app
from werkzeug.exceptions import HTTPException
from mutka.services.audit import add_audit
from mutka import get_db


def _payload_of(rv: Any):
    if isinstance(rv, tuple) and rv:
        return rv[0]
    if hasattr(rv, 'get_json'):
        return rv.get_json(silent=True)
    return rv


def _diff(before: Dict[str, Any], after: Dict[str, Any], keys: Iterable[str]):
    b, a = {}, {}
    for k in keys:
        if k in before and k in after and before[k] != after[k]:
            b[k] = before[k]
            a[k] = after[k]
    return b, a


def audit_log(
    action: str,
    *,
    module: Optional[str] = None,
    entity: Optional[str] = None,
    entity_id_key: Optional[str] = None,
    entity_id_arg: Optional[str] = None,
    meta_keys: Optional[Iterable[str]] = None,
    meta_builder: Optional[Callable[[dict, Any, tuple, dict], dict]] = None,
    diff_keys: Optional[Iterable[str]] = None,
    pre_fetch: Optional[Callable[[tuple, dict], Dict[str, Any]]] = None,
):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            snapshot = None
            if diff_keys and pre_fetch:
                try:
                    snapshot = pre_fetch(args, kwargs)
                except HTTPException:
                    raise
                except Exception:
                    current_app.logger.exception('Audit snapshot failed for %s', action)
            rv = fn(*args, **kwargs)
            data = _payload_of(rv)
            if not isinstance(data, dict):
                data = {}
            entity_id = data.get(entity_id_key) if entity_id_key else None
            if entity_id is None and entity_id_arg:
                entity_id = kwargs.get(entity_id_arg)
            meta = None
            if meta_builder:
                try:
                    meta = meta_builder(data, rv, args, kwargs)
                except Exception:
                    current_app.logger.exception('Audit meta failed for %s', action)
            else:
                meta = {k: data.get(k) for k in (meta_keys or []) if k in data}
            before = after = None
            if diff_keys and isinstance(snapshot, dict):
                before, after = _diff(snapshot, data, diff_keys)
                if not before:
                    before = after = None
            company_id = data.get('company_id') if isinstance(data.get('company_id'), int) else None
            session = get_db()
            try:
                add_audit(action, entity, entity_id, meta, module=module,
                          before=before, after=after, company_id=company_id)
                session.commit()
            except Exception:
                session.rollback()
                current_app.logger.exception('Audit commit failed for %s', action)
            return rv
        return wrapper
    return outer
