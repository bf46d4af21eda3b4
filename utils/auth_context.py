from functools import wraps
from flask import g, current_app
from security.session import get_session_from_request
from models.user import User
from utils.i18n import error_response

def load_current_user():
    sess = get_session_from_request()
    if not sess:
        g.user = None
        g.session = None
        return
    g.session = sess
    g.user = User.query.get(sess.user_id)

def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            return error_response("auth_required", 401)
        return fn(*args, **kwargs)
    return wrapper


def profile_required_fields():
    fields = current_app.config.get("PROFILE_REQUIRED_FIELDS", ["full_name", "phone_number"])
    if not isinstance(fields, (list, tuple)):
        return ["full_name", "phone_number"]
    return [f for f in fields if isinstance(f, str)]


def is_profile_complete(user) -> bool:
    for field in profile_required_fields():
        value = getattr(user, field, None)
        if not isinstance(value, str) or not value.strip():
            return False
    return True
