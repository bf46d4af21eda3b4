"""Periodic jobs: expire unpaid holds and send reminders.

Run from the CLI (``flask release-expired-holds`` / ``flask send-reminders``)
or from the admin maintenance endpoints.
"""
import logging
from datetime import datetime, timedelta

from flask import current_app

from models import db
from models.booking import Booking
from models.payment import Payment
from models.time_slot import TimeSlot
from utils.audit import log_event
from utils.booking_rules import receipt_under_review, transition
from utils.notifications import notify

logger = logging.getLogger(__name__)

HOLD_EXPIRED_REASON = "Payment not received before the hold expired"


def release_expired_holds(now=None) -> int:
    """Cancel unpaid pending bookings whose hold ran out. Returns the count."""
    now = now or datetime.utcnow()
    card_cutoff = now - timedelta(minutes=current_app.config.get("BOOKING_HOLD_MINUTES", 30))
    bank_cutoff = now - timedelta(hours=current_app.config.get("BANK_TRANSFER_HOLD_HOURS", 48))

    candidates = (
        Booking.query
        .filter(
            Booking.status == "pending",
            Booking.payment_status.in_(("pending", "failed")),
            Booking.created_at < card_cutoff,
        )
        .all()
    )

    released = []
    for booking in candidates:
        if booking.payment_method == "bank_transfer":
            if booking.created_at >= bank_cutoff or receipt_under_review(booking):
                continue

        for payment in booking.payments.filter(Payment.status == "pending"):
            payment.status = "cancelled"
        booking.cancelled_by = "system"
        booking.cancel_reason = HOLD_EXPIRED_REASON
        transition(booking, "cancelled", now)
        notify(booking, "cancellation")
        released.append(booking.id)

    db.session.commit()
    for booking_id in released:
        log_event("BOOKING_HOLD_EXPIRED", entity="booking", entity_id=booking_id)

    if released:
        logger.info("Released %d expired booking holds", len(released))
    return len(released)


def send_reminders(now=None) -> int:
    """Notify confirmed bookings starting within the reminder window."""
    now = now or datetime.utcnow()
    window_end = now + timedelta(hours=current_app.config.get("REMINDER_WINDOW_HOURS", 24))

    due = (
        Booking.query
        .join(TimeSlot, Booking.time_slot_id == TimeSlot.id)
        .filter(
            Booking.status == "confirmed",
            Booking.reminder_sent.is_(False),
            TimeSlot.start_time > now,
            TimeSlot.start_time <= window_end,
        )
        .all()
    )

    for booking in due:
        notify(booking, "reminder")
        booking.reminder_sent = True
    db.session.commit()

    if due:
        logger.info("Sent %d booking reminders", len(due))
    return len(due)
