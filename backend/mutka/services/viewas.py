"""Read-only "view as" sessions for platform admins.

The session lives in a signed HS256 cookie (PyJWT, keyed by VIEW_AS_SECRET) and
carries a snapshot of the target user's effective permissions. While the cookie
belongs to the calling admin, permission checks and company scoping follow the
target, and every mutating request is refused.
"""
from __future__ import annotations
from datetime import timedelta
from typing import Any, Dict, Optional

import jwt
from flask import current_app, request
from flask_jwt_extended import get_jwt_identity

from mutka.errors import ReadOnlyMode
from mutka.utils.dates import utcnow

COOKIE_NAME = 'mutka_view_as'
MODE_READONLY = 'readonly_view_as'
SAFE_METHODS = ('GET', 'HEAD', 'OPTIONS')


def create_view_as_session(data: Dict[str, Any]) -> str:
    ttl = int(current_app.config.get('VIEW_AS_TTL_MINUTES', 30))
    now = utcnow()
    payload = {
        'target_user_id': data['target_user_id'],
        'target_company_id': data['target_company_id'],
        'target_employee_id': data.get('target_employee_id'),
        'target_display_name': data.get('target_display_name'),
        'company_name': data.get('company_name'),
        'viewer_admin_user_id': data['viewer_admin_user_id'],
        'perms': sorted(data.get('perms') or []),
        'role_names': sorted(data.get('role_names') or []),
        'mode': MODE_READONLY,
        'iat': now,
        'exp': now + timedelta(minutes=ttl),
    }
    return jwt.encode(payload, current_app.config['VIEW_AS_SECRET'], algorithm='HS256')


def decode_view_as_token(token: Optional[str]) -> Optional[Dict[str, Any]]:
    if not token:
        return None
    try:
        payload = jwt.decode(token, current_app.config['VIEW_AS_SECRET'], algorithms=['HS256'])
    except jwt.PyJWTError as e:
        current_app.logger.debug('view-as token rejected: %s', e)
        return None
    if payload.get('mode') != MODE_READONLY:
        return None
    exp = payload.get('exp')
    if exp is None or exp <= utcnow().timestamp():
        return None
    return payload


def get_view_as_session() -> Optional[Dict[str, Any]]:
    return decode_view_as_token(request.cookies.get(COOKIE_NAME))


def is_view_as_active() -> bool:
    return get_view_as_session() is not None


def assert_not_read_only():
    if is_view_as_active():
        raise ReadOnlyMode()


def caller_view_as_session() -> Optional[Dict[str, Any]]:
    """Session applicable to the current JWT identity, or None.

    Must run after the access token has been verified.
    """
    session = get_view_as_session()
    if not session:
        return None
    identity = get_jwt_identity()
    if identity is None or str(session.get('viewer_admin_user_id')) != str(identity):
        return None
    return session


def set_view_as_cookie(resp, token: str):
    ttl = int(current_app.config.get('VIEW_AS_TTL_MINUTES', 30))
    resp.set_cookie(
        COOKIE_NAME,
        token,
        max_age=ttl * 60,
        httponly=True,
        secure=bool(current_app.config.get('VIEW_AS_COOKIE_SECURE')),
        samesite='Lax',
        path='/',
    )
    return resp


def clear_view_as_cookie(resp):
    resp.delete_cookie(COOKIE_NAME, path='/')
    return resp

__all__ = [
    'COOKIE_NAME', 'MODE_READONLY', 'create_view_as_session', 'decode_view_as_token', 'get_view_as_session',
    'is_view_as_active', 'assert_not_read_only', 'caller_view_as_session', 'set_view_as_cookie', 'clear_view_as_cookie',
]
