import logging
from datetime import datetime

from flask import Blueprint, request, jsonify, g
from sqlalchemy.exc import IntegrityError

from models import db
from models.booking import Booking, BOOKING_STATUSES, PAYMENT_METHODS
from models.feedback import ConsultationFeedback
from models.notification import BookingNotification
from models.payment import Payment
from models.time_slot import TimeSlot
from utils.audit import log_event
from utils.auth_context import login_required, is_profile_complete
from utils.booking_rules import (
    can_cancel,
    can_reschedule,
    next_booking_number,
    return_to_pending,
    transition,
)
from utils.coupons import calculate_discount, check_coupon, find_valid_coupon, normalize_code
from utils.i18n import error_response
from utils.notifications import notify
from utils.reconcile import apply_payment_outcome, audit_outcome
from utils.serializers import booking_to_dict, feedback_to_dict, notification_to_dict
from utils.slots import bookings_on_day, hold_slot, release_slot

logger = logging.getLogger(__name__)

booking_bp = Blueprint("booking", __name__)

BOOKING_NUMBER_ATTEMPTS = 5


def _own_booking(booking_id: int):
    booking = Booking.query.get(booking_id)
    if not booking or booking.user_id != g.user.id:
        return None
    return booking


def _bookable_slot(slot_id, field: str):
    """Returns (slot, error_response)."""
    if isinstance(slot_id, bool) or not isinstance(slot_id, int):
        return None, error_response("validation_failed", 400, fields=[field])
    slot = TimeSlot.query.get(slot_id)
    if not slot or not slot.is_active:
        return None, error_response("slot_not_found", 404)
    if not slot.consultation.is_active:
        return None, error_response("consultation_not_found", 404)
    if slot.start_time <= datetime.utcnow():
        return None, error_response("slot_started", 400)
    if not slot.is_available:
        return None, error_response("slot_unavailable", 409)
    return slot, None


# ---------- CLIENTS: book a slot (DOUBLE-BOOKING SAFE) ----------
@booking_bp.post("/bookings")
@login_required
def create_booking():
    if not is_profile_complete(g.user):
        return error_response("profile_incomplete", 400)

    data = request.get_json(silent=True) or {}
    payment_method = data.get("payment_method")
    if payment_method not in PAYMENT_METHODS:
        return error_response("invalid_payment_method", 400)

    notes = data.get("notes")
    if notes is not None and (not isinstance(notes, str) or len(notes) > 1000):
        return error_response("validation_failed", 400, fields=["notes"])

    slot, failure = _bookable_slot(data.get("time_slot_id"), "time_slot_id")
    if failure:
        return failure
    consultation = slot.consultation

    if bookings_on_day(consultation.id, slot.start_time) >= consultation.max_bookings_per_day:
        return error_response("daily_limit", 409)

    discount = 0
    coupon_code = normalize_code(data.get("coupon_code")) or None
    if coupon_code:
        coupon = find_valid_coupon(coupon_code)
        if not coupon:
            return error_response("coupon_invalid", 400)
        problem = check_coupon(coupon, consultation, g.user.id, consultation.price)
        if problem:
            return error_response(problem, 400)
        discount = calculate_discount(coupon, consultation.price)

    for _ in range(BOOKING_NUMBER_ATTEMPTS):
        if not hold_slot(slot.id):
            db.session.rollback()
            log_event("BOOKING_FAIL_ALREADY_HELD", user_id=g.user.id, entity="slot", entity_id=slot.id)
            return error_response("slot_unavailable", 409)

        booking = Booking(
            booking_number=next_booking_number(),
            user_id=g.user.id,
            consultation_id=consultation.id,
            time_slot_id=slot.id,
            active_slot_id=slot.id,
            payment_method=payment_method,
            original_amount=consultation.price,
            discount_amount=discount,
            amount=consultation.price - discount,
            coupon_code=coupon_code,
            currency=consultation.currency,
            notes=notes,
        )
        db.session.add(booking)
        try:
            db.session.commit()
            break
        except IntegrityError:
            # booking number taken concurrently, or the slot was grabbed
            db.session.rollback()
            logger.info("Booking insert conflict for slot %s, retrying", slot.id)
    else:
        return error_response("slot_unavailable", 409)

    log_event("BOOKING_CREATE", user_id=g.user.id, entity="booking", entity_id=booking.id,
              metadata={"slot_id": slot.id, "number": booking.booking_number, "coupon": coupon_code})

    if booking.amount == 0:
        _settle_free_booking(booking)
    return jsonify(booking_to_dict(booking)), 201


def _settle_free_booking(booking: Booking) -> None:
    """Nothing to charge: record a zero payment and complete it now."""
    payment = Payment(
        booking_id=booking.id,
        user_id=booking.user_id,
        provider=booking.payment_method,
        amount=0,
        currency=booking.currency,
    )
    db.session.add(payment)
    db.session.flush()
    result = apply_payment_outcome(payment, "completed")
    db.session.commit()
    audit_outcome("PAYMENT_FREE_BOOKING", payment, result, user_id=booking.user_id)


# ---------- CLIENTS: my bookings ----------
@booking_bp.get("/bookings/me")
@login_required
def my_bookings():
    status = request.args.get("status")
    q = Booking.query.filter_by(user_id=g.user.id)
    if status:
        if status not in BOOKING_STATUSES:
            return error_response("validation_failed", 400, fields=["status"])
        q = q.filter_by(status=status)

    rows = q.order_by(Booking.created_at.desc()).all()
    return jsonify([booking_to_dict(b) for b in rows]), 200


@booking_bp.get("/bookings/<int:booking_id>")
@login_required
def get_booking(booking_id: int):
    booking = Booking.query.get(booking_id)
    if not booking or (booking.user_id != g.user.id and not g.user.is_admin):
        return error_response("booking_not_found", 404)
    return jsonify(booking_to_dict(booking, admin=g.user.is_admin)), 200


# ---------- CLIENTS: cancel (policy window) ----------
@booking_bp.post("/bookings/<int:booking_id>/cancel")
@login_required
def cancel_booking(booking_id: int):
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip()[:500] or None

    booking = _own_booking(booking_id)
    if not booking:
        return error_response("booking_not_found", 404)

    allowed, key, params = can_cancel(booking)
    if not allowed:
        return error_response(key, 400 if key == "booking_not_cancellable" else 403, params)

    for payment in booking.payments.filter(Payment.status == "pending"):
        payment.status = "cancelled"
    booking.cancelled_by = "user"
    booking.cancel_reason = reason
    transition(booking, "cancelled")
    notify(booking, "cancellation")
    db.session.commit()

    log_event("BOOKING_CANCEL", user_id=g.user.id, entity="booking", entity_id=booking.id,
              metadata={"reason": reason, "payment_status": booking.payment_status})
    return jsonify(
        message="Cancelled",
        refund_pending=booking.payment_status == "completed",
        booking=booking_to_dict(booking),
    ), 200


# ---------- CLIENTS: reschedule ----------
@booking_bp.post("/bookings/<int:booking_id>/reschedule")
@login_required
def reschedule_booking(booking_id: int):
    data = request.get_json(silent=True) or {}

    booking = _own_booking(booking_id)
    if not booking:
        return error_response("booking_not_found", 404)

    allowed, key, params = can_reschedule(booking)
    if not allowed:
        return error_response(key, 400, params)

    new_slot, failure = _bookable_slot(data.get("new_time_slot_id"), "new_time_slot_id")
    if failure:
        return failure
    if new_slot.consultation_id != booking.consultation_id:
        return error_response("reschedule_other_consultation", 400)

    consultation = booking.consultation
    old_slot = booking.time_slot
    if new_slot.start_time.date() != old_slot.start_time.date():
        if bookings_on_day(consultation.id, new_slot.start_time) >= consultation.max_bookings_per_day:
            return error_response("daily_limit", 409)

    if not hold_slot(new_slot.id):
        db.session.rollback()
        return error_response("slot_unavailable", 409)

    release_slot(old_slot)
    booking.time_slot = new_slot
    booking.active_slot_id = new_slot.id
    booking.rescheduled_count += 1
    booking.reminder_sent = False
    if consultation.requires_approval and booking.status == "confirmed":
        return_to_pending(booking)
    notify(booking, "rescheduled")

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return error_response("slot_unavailable", 409)

    log_event("BOOKING_RESCHEDULE", user_id=g.user.id, entity="booking", entity_id=booking.id,
              metadata={"from_slot": old_slot.id, "to_slot": new_slot.id})
    return jsonify(booking_to_dict(booking)), 200


# ---------- CLIENTS: feedback ----------
@booking_bp.post("/bookings/<int:booking_id>/feedback")
@login_required
def submit_feedback(booking_id: int):
    data = request.get_json(silent=True) or {}

    booking = _own_booking(booking_id)
    if not booking:
        return error_response("booking_not_found", 404)
    if booking.status != "completed":
        return error_response("feedback_not_allowed", 400)

    rating = data.get("rating")
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        return error_response("invalid_rating", 400)
    comment = data.get("comment")
    if comment is not None and (not isinstance(comment, str) or len(comment) > 1000):
        return error_response("validation_failed", 400, fields=["comment"])

    if ConsultationFeedback.query.filter_by(booking_id=booking.id).first():
        return error_response("feedback_exists", 409)

    feedback = ConsultationFeedback(
        booking_id=booking.id,
        user_id=g.user.id,
        consultation_id=booking.consultation_id,
        rating=rating,
        comment=comment,
    )
    db.session.add(feedback)
    booking.consultation.record_rating(rating)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return error_response("feedback_exists", 409)

    log_event("FEEDBACK_CREATE", user_id=g.user.id, entity="booking", entity_id=booking.id,
              metadata={"rating": rating})
    return jsonify(feedback_to_dict(feedback)), 201


# ---------- CLIENTS: notifications ----------
@booking_bp.get("/notifications")
@login_required
def my_notifications():
    q = BookingNotification.query.filter_by(user_id=g.user.id)
    if request.args.get("unread") in ("1", "true"):
        q = q.filter_by(is_read=False)
    rows = q.order_by(BookingNotification.created_at.desc()).limit(100).all()
    return jsonify([notification_to_dict(n) for n in rows]), 200


@booking_bp.post("/notifications/<int:notification_id>/read")
@login_required
def mark_notification_read(notification_id: int):
    n = BookingNotification.query.get(notification_id)
    if not n or n.user_id != g.user.id:
        return error_response("notification_not_found", 404)

    n.is_read = True
    db.session.commit()
    return jsonify(notification_to_dict(n)), 200
