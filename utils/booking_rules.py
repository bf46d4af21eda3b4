"""Booking lifecycle rules.

Two independent state machines live on a booking, ``status`` and
``payment_status``. Every change goes through :func:`transition` or
:func:`set_payment_status` so the allowed edges and the cross-field
consistency rules are checked in one place.
"""
from datetime import datetime

from flask import current_app
from sqlalchemy import func

from models import db
from models.booking import Booking
from models.payment import Payment, BankTransfer
from utils.slots import release_slot

STATUS_TRANSITIONS = {
    "pending": {"confirmed", "cancelled"},
    "confirmed": {"completed", "cancelled"},
    "cancelled": set(),
    "completed": set(),
}

PAYMENT_TRANSITIONS = {
    "pending": {"completed", "failed"},
    "failed": {"pending", "completed"},
    "completed": {"refunded"},
    "refunded": set(),
}

LIVE_STATUSES = ("pending", "confirmed")


class BookingRuleError(Exception):
    """A requested change breaks a booking rule. Carries an i18n message key."""

    def __init__(self, key: str, status: int = 409, **params):
        super().__init__(key)
        self.key = key
        self.status = status
        self.params = params


def _check_consistency(status: str, payment_status: str, payment_method: str):
    if status == "confirmed" and payment_status != "completed" and payment_method != "bank_transfer":
        raise BookingRuleError("payment_inconsistent", target=status, payment_status=payment_status)
    if status == "completed" and payment_status != "completed":
        raise BookingRuleError("payment_inconsistent", target=status, payment_status=payment_status)


def transition(booking: Booking, target: str, now=None) -> None:
    """Move ``booking.status`` to ``target`` or raise BookingRuleError."""
    if target not in STATUS_TRANSITIONS.get(booking.status, set()):
        raise BookingRuleError("invalid_transition", current=booking.status, target=target)
    _check_consistency(target, booking.payment_status, booking.payment_method)

    now = now or datetime.utcnow()
    booking.status = target
    if target == "confirmed":
        booking.confirmed_at = booking.confirmed_at or now
    elif target == "completed":
        booking.completed_at = now
    elif target == "cancelled":
        booking.cancelled_at = now
        booking.active_slot_id = None
        if booking.time_slot is not None:
            release_slot(booking.time_slot)


def receipt_under_review(booking: Booking) -> bool:
    """True while a bank-transfer receipt for the booking awaits an admin."""
    return (
        booking.payments
        .join(BankTransfer, BankTransfer.payment_id == Payment.id)
        .filter(
            Payment.provider == "bank_transfer",
            Payment.status == "pending",
            BankTransfer.verification_status == "pending",
        )
        .first()
        is not None
    )


def return_to_pending(booking: Booking) -> None:
    """A rescheduled booking that needs approval waits for the admin again."""
    if booking.status != "confirmed":
        raise BookingRuleError("invalid_transition", current=booking.status, target="pending")
    booking.status = "pending"
    booking.confirmed_at = None


def set_payment_status(booking: Booking, target: str, now=None) -> None:
    if target == booking.payment_status:
        return
    if target not in PAYMENT_TRANSITIONS.get(booking.payment_status, set()):
        raise BookingRuleError("invalid_payment_transition", current=booking.payment_status, target=target)
    booking.payment_status = target
    if target == "completed":
        booking.payment_completed_at = now or datetime.utcnow()


def can_cancel(booking: Booking, now=None):
    """Returns (allowed, error_key, params)."""
    if booking.status not in LIVE_STATUSES:
        return False, "booking_not_cancellable", {}

    # unpaid holds can always be released
    if booking.status == "pending" and booking.payment_status != "completed":
        return True, None, {}

    now = now or datetime.utcnow()
    cutoff_hours = current_app.config.get("CANCEL_CUTOFF_HOURS", 24)
    start = booking.time_slot.start_time
    if (start - now).total_seconds() < cutoff_hours * 3600:
        return False, "cancel_window", {"hours": cutoff_hours}
    return True, None, {}


def can_reschedule(booking: Booking, now=None):
    if booking.status not in LIVE_STATUSES:
        return False, "booking_not_reschedulable", {}

    max_reschedules = current_app.config.get("MAX_RESCHEDULES", 2)
    if booking.rescheduled_count >= max_reschedules:
        return False, "reschedule_limit", {"limit": max_reschedules}

    now = now or datetime.utcnow()
    cutoff_hours = current_app.config.get("CANCEL_CUTOFF_HOURS", 24)
    if (booking.time_slot.start_time - now).total_seconds() < cutoff_hours * 3600:
        return False, "booking_not_reschedulable", {}
    return True, None, {}


def next_booking_number(now=None) -> str:
    now = now or datetime.utcnow()
    prefix = f"CB-{now:%Y%m%d}-"
    last = (
        db.session.query(func.max(Booking.booking_number))
        .filter(Booking.booking_number.like(prefix + "%"))
        .scalar()
    )
    sequence = int(last.rsplit("-", 1)[1]) + 1 if last else 1
    return f"{prefix}{sequence:04d}"
