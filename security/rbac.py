from functools import wraps
from flask import g

from utils.i18n import error_response


def require_roles(*role_names: str):
    """Allow the view only to signed-in users holding one of ``role_names``.

    Usage: @require_roles("ADMIN")
    Anonymous callers get 401, signed-in users without the role get 403.
    """
    allowed = set(role_names)

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                return error_response("auth_required", 401)
            if allowed.isdisjoint(r.name for r in user.roles):
                return error_response("forbidden", 403)
            return fn(*args, **kwargs)
        return wrapper
    return decorator
