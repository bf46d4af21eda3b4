from datetime import datetime
from models.db import db

DISCOUNT_TYPES = ("percentage", "fixed")
APPLICABLE_TO = ("all", "consultations", "specific")


class Coupon(db.Model):
    __tablename__ = "coupons"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(40), unique=True, nullable=False, index=True)  # stored upper-case

    discount_type = db.Column(db.String(20), nullable=False)
    discount_value = db.Column(db.Integer, nullable=False)  # percent, or smallest unit for fixed

    max_uses = db.Column(db.Integer, nullable=True)  # NULL = unlimited
    used_count = db.Column(db.Integer, default=0, nullable=False)

    valid_from = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    valid_until = db.Column(db.DateTime, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    applicable_to = db.Column(db.String(20), nullable=False, default="all")
    consultation_ids = db.Column(db.JSON, nullable=False, default=list)
    min_purchase_amount = db.Column(db.Integer, default=0, nullable=False)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)


class CouponRedemption(db.Model):
    __tablename__ = "coupon_redemptions"

    id = db.Column(db.Integer, primary_key=True)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False)
    used_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("coupon_id", "user_id", name="uq_coupon_once_per_user"),
    )
