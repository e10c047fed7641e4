from functools import wraps
from flask import abort, request
from flask_jwt_extended import verify_jwt_in_request, get_jwt
from mutka.errors import ReadOnlyMode
from mutka.services.policy import has_permissions
from mutka.services.viewas import caller_view_as_session, SAFE_METHODS


def require_permissions(*codes: str):
    """Verify the access token and the listed permission codes.

    An active view-as session owned by the caller swaps in the target's permissions
    and turns every mutating request into a ReadOnlyMode refusal.
    """
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            if request.method not in SAFE_METHODS and caller_view_as_session():
                raise ReadOnlyMode()
            if not has_permissions(*codes):
                abort(403, description='Missing permission')
            return fn(*args, **kwargs)
        return wrapper
    return outer


def require_platform_admin(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        verify_jwt_in_request()
        if not get_jwt().get('platform_admin'):
            abort(403, description='Platform admin required')
        return fn(*args, **kwargs)
    return wrapper
