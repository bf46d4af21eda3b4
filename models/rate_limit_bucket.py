from datetime import datetime
from models.db import db

class RateLimitBucket(db.Model):
    """Fixed-window request counter, one row per (scope, key)."""
    __tablename__ = "rate_limit_buckets"

    id = db.Column(db.Integer, primary_key=True)
    scope = db.Column(db.String(30), nullable=False)   # login | coupon
    key = db.Column(db.String(255), nullable=False)    # client ip, or user id

    window_start = db.Column(db.DateTime, nullable=False)
    count = db.Column(db.Integer, default=0, nullable=False)

    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("scope", "key", name="uq_rate_limit_scope_key"),
    )
