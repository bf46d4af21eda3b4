from datetime import datetime, timedelta
from flask import request, current_app

from models import db
from models.rate_limit_bucket import RateLimitBucket


def client_ip() -> str:
    forwarded = request.headers.get("X-Forwarded-For", "")
    # first hop is the original client
    return forwarded.split(",")[0].strip() or request.remote_addr or "unknown"


def hit(scope: str, key: str, max_requests: int, window_seconds: int) -> tuple[bool, int]:
    """Count one request in the (scope, key) window.

    Returns (allowed, retry_after_seconds). Commits the counter.
    """
    now = datetime.utcnow()
    window = timedelta(seconds=window_seconds)

    row = RateLimitBucket.query.filter_by(scope=scope, key=key).first()
    if not row:
        row = RateLimitBucket(scope=scope, key=key, window_start=now, count=0)
        db.session.add(row)

    if now >= row.window_start + window:
        row.window_start = now
        row.count = 0

    row.count += 1
    db.session.commit()

    if row.count > max_requests:
        retry_after = int((row.window_start + window - now).total_seconds())
        return False, max(retry_after, 1)
    return True, 0


def check_and_increment_login_rate() -> tuple[bool, int]:
    cfg = current_app.config
    return hit(
        "login",
        client_ip(),
        cfg.get("LOGIN_RATE_MAX_REQUESTS", 15),
        cfg.get("LOGIN_RATE_WINDOW_SECONDS", 60),
    )


def check_coupon_rate(user_id: int) -> tuple[bool, int]:
    # per user, so codes cannot be guessed by walking the keyspace
    cfg = current_app.config
    return hit(
        "coupon",
        str(user_id),
        cfg.get("COUPON_RATE_MAX_REQUESTS", 20),
        cfg.get("COUPON_RATE_WINDOW_SECONDS", 300),
    )
