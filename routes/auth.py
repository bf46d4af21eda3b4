from datetime import datetime

from flask import Blueprint, request, jsonify, current_app, g
from sqlalchemy.exc import IntegrityError

from models import db
from models.user import User, Role
from security.bruteforce import is_locked, register_failure, reset_attempts
from security.csrf import issue_csrf_token
from security.password import hash_password, verify_password
from security.password_policy import validate_password, password_strength
from security.rate_limit import check_and_increment_login_rate
from security.session import (
    create_session,
    revoke_session,
    revoke_all_sessions,
    set_session_cookie,
    clear_session_cookie,
    request_token,
)
from utils.audit import log_event
from utils.auth_context import login_required, is_profile_complete, profile_required_fields
from utils.i18n import error_response, user_language
from utils.roles import filter_role_names

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

LANGUAGES = ("ar", "en")


def _is_valid_email(email: str) -> bool:
    return isinstance(email, str) and "@" in email and "." in email.split("@")[-1] and len(email) <= 255


def _policy_error(password: str):
    valid, errors = validate_password(password)
    if valid:
        return None
    _, errors_ar = validate_password(password, lang="ar")
    return error_response("password_policy", 400, details=errors, details_arabic=errors_ar)


def _profile_payload(user: User) -> dict:
    return {
        "full_name": user.full_name,
        "phone_number": user.phone_number,
        "preferred_language": user_language(user),
        "profile_complete": is_profile_complete(user),
        "profile_required_fields": profile_required_fields(),
    }


def _apply_profile(user: User, data: dict):
    """Copy profile fields from ``data``. Returns an error response or None."""
    full_name = data.get("full_name")
    phone_number = data.get("phone_number")
    language = data.get("preferred_language")

    if full_name is not None:
        if not isinstance(full_name, str) or len(full_name.strip()) > 120:
            return error_response("validation_failed", 400, field="full_name")
        user.full_name = full_name.strip()

    if phone_number is not None:
        if not isinstance(phone_number, str) or len(phone_number.strip()) > 30:
            return error_response("validation_failed", 400, field="phone_number")
        user.phone_number = phone_number.strip()

    if language is not None:
        if language not in LANGUAGES:
            return error_response("validation_failed", 400, field="preferred_language")
        user.preferred_language = language
    return None


@auth_bp.post("/register")
def register():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    if not _is_valid_email(email):
        return error_response("invalid_email", 400)
    failure = _policy_error(password)
    if failure:
        return failure

    if User.query.filter_by(email=email).first():
        log_event("REGISTER_FAIL_EMAIL_EXISTS", metadata={"email": email})
        return error_response("email_exists", 409)

    user = User(
        email=email,
        password_hash=hash_password(password),
        preferred_language=current_app.config.get("DEFAULT_LANGUAGE", "ar"),
    )
    failure = _apply_profile(user, data)
    if failure:
        return failure

    client_role = Role.query.filter_by(name="CLIENT").first()
    if client_role:
        user.roles.append(client_role)

    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return error_response("email_exists", 409)

    log_event("REGISTER_SUCCESS", user_id=user.id)
    return jsonify(message="Registered successfully", id=user.id), 201


@auth_bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    allowed, retry_after = check_and_increment_login_rate()
    if not allowed:
        log_event("LOGIN_RATE_LIMIT", metadata={"email": email, "retry_after": retry_after})
        return error_response("rate_limited", 429, retry_after_seconds=retry_after)

    locked, seconds_left = is_locked(email)
    if locked:
        log_event("LOGIN_LOCKED", metadata={"email": email, "seconds_left": seconds_left})
        return error_response("account_locked", 429, retry_after_seconds=seconds_left)

    user = User.query.filter_by(email=email).first()
    if not user or not verify_password(password, user.password_hash):
        fail_count, locked_now = register_failure(email)
        log_event(
            "LOGIN_FAIL",
            user_id=user.id if user else None,
            metadata={"email": email, "fail_count": fail_count, "locked_now": locked_now},
        )
        if locked_now:
            return error_response(
                "account_locked", 429,
                lockout_minutes=current_app.config.get("LOCKOUT_MINUTES", 5),
            )
        return error_response("invalid_credentials", 401)

    reset_attempts(email)

    # rotate: one live session per user
    revoked_count = revoke_all_sessions(user.id)
    raw_token = create_session(user.id)

    resp = jsonify(message="Login OK", roles=filter_role_names(user.roles))
    set_session_cookie(resp, raw_token)
    issue_csrf_token(resp)

    log_event("LOGIN_SUCCESS", user_id=user.id, metadata={"revoked_sessions": revoked_count})
    return resp, 200


@auth_bp.post("/password_strength")
def check_password_strength():
    data = request.get_json(silent=True) or {}
    return jsonify(password_strength(data.get("password") or "")), 200


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(
        id=g.user.id,
        email=g.user.email,
        roles=filter_role_names(g.user.roles),
        **_profile_payload(g.user),
    ), 200


@auth_bp.post("/logout")
@login_required
def logout():
    revoke_session(request_token())
    log_event("LOGOUT", user_id=g.user.id)

    resp = jsonify(message="Logged out")
    clear_session_cookie(resp)
    return resp, 200


@auth_bp.post("/logout_all")
@login_required
def logout_all():
    count = revoke_all_sessions(g.user.id)
    log_event("LOGOUT_ALL", user_id=g.user.id, metadata={"revoked_sessions": count})

    resp = jsonify(message="Logged out everywhere", revoked_sessions=count)
    clear_session_cookie(resp)
    return resp, 200


@auth_bp.post("/change_password")
@login_required
def change_password():
    data = request.get_json(silent=True) or {}
    current_password = data.get("current_password") or ""
    new_password = data.get("new_password") or ""

    if not verify_password(current_password, g.user.password_hash):
        return error_response("invalid_current_password", 401)

    failure = _policy_error(new_password)
    if failure:
        return failure

    g.user.password_hash = hash_password(new_password)
    g.user.password_changed_at = datetime.utcnow()
    db.session.commit()

    log_event("PASSWORD_CHANGED", user_id=g.user.id)
    return jsonify(message="Password updated"), 200


@auth_bp.get("/profile")
@login_required
def get_profile():
    return jsonify(_profile_payload(g.user)), 200


@auth_bp.post("/profile")
@login_required
def update_profile():
    data = request.get_json(silent=True) or {}
    failure = _apply_profile(g.user, data)
    if failure:
        db.session.rollback()
        return failure

    db.session.commit()
    log_event("PROFILE_UPDATE", user_id=g.user.id)
    return jsonify(message="Profile updated", **_profile_payload(g.user)), 200
