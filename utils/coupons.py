from datetime import datetime

from models import db
from models.booking import Booking
from models.coupon import Coupon, CouponRedemption
from utils.booking_rules import LIVE_STATUSES


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def find_valid_coupon(code: str, now=None):
    code = normalize_code(code)
    if not code:
        return None
    coupon = Coupon.query.filter_by(code=code, is_active=True).first()
    if not coupon:
        return None

    now = now or datetime.utcnow()
    if not (coupon.valid_from <= now <= coupon.valid_until):
        return None
    if coupon.max_uses is not None and coupon.used_count >= coupon.max_uses:
        return None
    return coupon


def calculate_discount(coupon: Coupon, amount: int) -> int:
    if coupon.discount_type == "percentage":
        percent = min(max(coupon.discount_value, 0), 100)
        return (amount * percent) // 100
    # never discount more than the total
    return min(max(coupon.discount_value, 0), amount)


def check_coupon(coupon: Coupon, consultation, user_id: int, amount: int):
    """Returns an i18n error key, or None when the coupon applies."""
    if coupon.applicable_to == "specific" and consultation.id not in (coupon.consultation_ids or []):
        return "coupon_not_applicable"
    if coupon.applicable_to not in ("all", "consultations", "specific"):
        return "coupon_not_applicable"
    if amount < (coupon.min_purchase_amount or 0):
        return "coupon_min_amount"
    if CouponRedemption.query.filter_by(coupon_id=coupon.id, user_id=user_id).first():
        return "coupon_used"
    if _live_bookings(coupon.code).filter(Booking.user_id == user_id).first():
        return "coupon_used"
    if coupon.max_uses is not None:
        # unpaid bookings hold a use until they are paid or cancelled
        reserved = _live_bookings(coupon.code).filter(Booking.payment_status != "completed").count()
        if coupon.used_count + reserved >= coupon.max_uses:
            return "coupon_invalid"
    return None


def _live_bookings(code: str):
    return Booking.query.filter(Booking.coupon_code == code, Booking.status.in_(LIVE_STATUSES))


def redeem_coupon(booking) -> bool:
    """Count a coupon use once the booking is paid."""
    if not booking.coupon_code:
        return False
    coupon = Coupon.query.filter_by(code=booking.coupon_code).first()
    if not coupon:
        return False
    already = CouponRedemption.query.filter_by(coupon_id=coupon.id, user_id=booking.user_id).first()
    if already:
        return False

    coupon.used_count += 1
    db.session.add(CouponRedemption(coupon_id=coupon.id, user_id=booking.user_id, booking_id=booking.id))
    return True
