"""Apply payment-provider outcomes to Payment and Booking state.

Stripe webhooks, PayPal captures, bank-transfer reviews and admin refunds all
end up in :func:`apply_payment_outcome`, so the three rails reconcile the
same way. The function never commits; callers commit and audit.
"""
import logging
from datetime import datetime

from models.payment import Payment
from utils.audit import log_event
from utils.booking_rules import LIVE_STATUSES, set_payment_status, transition
from utils.coupons import redeem_coupon
from utils.notifications import notify

logger = logging.getLogger(__name__)

APPLIED = "applied"
NOOP = "noop"
NEEDS_REFUND = "needs_refund"


def _complete(payment: Payment, transaction_id, now) -> str:
    if payment.status in ("completed", "refunded"):
        return NOOP

    booking = payment.booking
    payment.status = "completed"
    payment.completed_at = now
    if transaction_id:
        payment.transaction_id = transaction_id

    # any other open attempt for this booking is now moot
    for other in booking.payments.filter(Payment.id != payment.id, Payment.status == "pending"):
        other.status = "cancelled"

    if booking.payment_status in ("completed", "refunded"):
        logger.warning("Booking %s already %s; payment %s needs a refund",
                       booking.id, booking.payment_status, payment.id)
        return NEEDS_REFUND

    set_payment_status(booking, "completed", now)
    booking.payment_method = payment.provider
    if booking.status == "cancelled":
        logger.warning("Payment %s completed for cancelled booking %s", payment.id, booking.id)
        return NEEDS_REFUND

    redeem_coupon(booking)
    booking.consultation.total_bookings += 1

    if booking.status == "pending" and not booking.consultation.requires_approval:
        transition(booking, "confirmed", now)
        notify(booking, "confirmation")
    return APPLIED


def _fail(payment: Payment, reason, now) -> str:
    if payment.status != "pending":
        return NOOP

    booking = payment.booking
    payment.status = "failed"
    payment.failure_reason = reason
    still_open = booking.payments.filter(Payment.id != payment.id, Payment.status == "pending").first()
    if booking.payment_status == "pending" and still_open is None:
        set_payment_status(booking, "failed", now)
    return APPLIED


def _refund(payment: Payment, reason, cancelled_by, now) -> str:
    if payment.status != "completed":
        return NOOP

    booking = payment.booking
    payment.status = "refunded"
    payment.refunded_at = now
    payment.refund_reason = reason

    if booking.payment_status == "completed":
        set_payment_status(booking, "refunded", now)
    if booking.status in LIVE_STATUSES:
        booking.cancelled_by = cancelled_by
        booking.cancel_reason = booking.cancel_reason or reason
        transition(booking, "cancelled", now)
        notify(booking, "cancellation")
    return APPLIED


def apply_payment_outcome(payment: Payment, outcome: str, transaction_id=None, reason=None,
                          cancelled_by: str = "system", now=None) -> str:
    """Apply ``completed``, ``failed`` or ``refunded`` to a payment.

    Returns APPLIED, NOOP (repeat or out-of-order event) or NEEDS_REFUND
    (money arrived for a booking that can no longer use it).
    """
    now = now or datetime.utcnow()
    if outcome == "completed":
        return _complete(payment, transaction_id, now)
    if outcome == "failed":
        return _fail(payment, reason, now)
    if outcome == "refunded":
        return _refund(payment, reason, cancelled_by, now)
    raise ValueError(f"unknown payment outcome: {outcome}")


def audit_outcome(action: str, payment: Payment, result: str, user_id=None, **extra) -> None:
    """Audit a reconciliation after the caller committed it."""
    log_event(action, user_id=user_id, entity="payment", entity_id=payment.id,
              metadata={"booking_id": payment.booking_id, "result": result, **extra})
    if result == NEEDS_REFUND:
        # money arrived for a booking that cannot use it; an admin must refund
        log_event("PAYMENT_NEEDS_REFUND", entity="payment", entity_id=payment.id,
                  metadata={"booking_id": payment.booking_id, "provider": payment.provider})
