from datetime import datetime, timedelta

from flask import Blueprint, jsonify, g, request
from sqlalchemy import func

from models import db
from models.booking import Booking
from models.feedback import ConsultationFeedback
from models.payment import Payment, BankTransfer
from models.time_slot import TimeSlot
from models.user import User, Role
from security.rbac import require_roles
from utils.audit import log_event
from utils.booking_rules import LIVE_STATUSES, receipt_under_review, return_to_pending, transition
from utils.i18n import error_response
from utils.maintenance import release_expired_holds, send_reminders
from utils.notifications import notify
from utils.payment_providers import refund_payment
from utils.reconcile import apply_payment_outcome, audit_outcome
from utils.roles import filter_role_names
from utils.serializers import booking_to_dict, feedback_to_dict, payment_to_dict
from utils.slots import parse_day

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")

MAX_PAGE_SIZE = 100


def _page_args():
    page = max(request.args.get("page", type=int) or 1, 1)
    per_page = request.args.get("per_page", type=int) or 20
    return page, max(1, min(per_page, MAX_PAGE_SIZE))


def _parse_range():
    """Optional ?from=YYYY-MM-DD&to=YYYY-MM-DD, both inclusive."""
    start = end = None
    if request.args.get("from"):
        start, _ = parse_day(request.args["from"])
    if request.args.get("to"):
        _, end = parse_day(request.args["to"])
    return start, end


def _refund(payment: Payment, reason: str):
    """Refund at the provider, then reconcile. Caller commits."""
    refund_payment(payment)
    return apply_payment_outcome(payment, "refunded", reason=reason, cancelled_by="admin")


# ---------- Dashboard ----------
@admin_bp.get("/dashboard")
@require_roles("ADMIN")
def dashboard():
    now = datetime.utcnow()
    today = datetime(now.year, now.month, now.day)

    by_status = dict(
        db.session.query(Booking.status, func.count(Booking.id)).group_by(Booking.status).all()
    )
    confirmed = Booking.query.join(TimeSlot, Booking.time_slot_id == TimeSlot.id).filter(
        Booking.status == "confirmed"
    )
    pending_reviews = (
        BankTransfer.query
        .join(Payment, BankTransfer.payment_id == Payment.id)
        .filter(BankTransfer.verification_status == "pending", Payment.status == "pending")
        .count()
    )

    log_event("ADMIN_DASHBOARD_VIEW", user_id=g.user.id)
    return jsonify(
        bookings={status: by_status.get(status, 0) for status in ("pending", "confirmed", "cancelled", "completed")},
        pending_bank_transfers=pending_reviews,
        today_confirmed=confirmed.filter(
            TimeSlot.start_time >= today, TimeSlot.start_time < today + timedelta(days=1)
        ).count(),
        upcoming_confirmed=confirmed.filter(TimeSlot.start_time > now).count(),
        users=User.query.count(),
    ), 200


@admin_bp.get("/revenue")
@require_roles("ADMIN")
def revenue():
    try:
        start, end = _parse_range()
    except ValueError:
        return error_response("invalid_date", 400)

    q = db.session.query(
        Payment.currency, func.sum(Payment.amount), func.count(Payment.id)
    ).filter(Payment.status == "completed")
    if start:
        q = q.filter(Payment.completed_at >= start)
    if end:
        q = q.filter(Payment.completed_at < end)

    out = {}
    for currency, total, count in q.group_by(Payment.currency).all():
        total = int(total or 0)
        out[currency] = {"total": total, "count": count, "average": total // count if count else 0}
    return jsonify(revenue=out), 200


# ---------- Bookings ----------
@admin_bp.get("/bookings")
@require_roles("ADMIN")
def list_bookings():
    q = Booking.query.join(TimeSlot, Booking.time_slot_id == TimeSlot.id)
    for field in ("status", "payment_status", "payment_method"):
        value = request.args.get(field)
        if value:
            q = q.filter(getattr(Booking, field) == value)
    consultation_id = request.args.get("consultation_id", type=int)
    if consultation_id:
        q = q.filter(Booking.consultation_id == consultation_id)

    date_str = request.args.get("date")
    if date_str:
        try:
            start, end = parse_day(date_str)
        except ValueError:
            return error_response("invalid_date", 400)
        q = q.filter(TimeSlot.start_time >= start, TimeSlot.start_time < end)

    page, per_page = _page_args()
    total = q.count()
    rows = q.order_by(Booking.created_at.desc()).offset((page - 1) * per_page).limit(per_page).all()
    return jsonify(
        items=[booking_to_dict(b, admin=True) for b in rows],
        page=page,
        per_page=per_page,
        total=total,
    ), 200


@admin_bp.post("/bookings/<int:booking_id>/confirm")
@require_roles("ADMIN")
def confirm_booking(booking_id: int):
    booking = Booking.query.get(booking_id)
    if not booking:
        return error_response("booking_not_found", 404)

    # an unpaid bank transfer can only be confirmed against a receipt
    if (booking.payment_method == "bank_transfer" and booking.payment_status != "completed"
            and not receipt_under_review(booking)):
        return error_response("transfer_not_pending", 409)

    data = request.get_json(silent=True) or {}
    transition(booking, "confirmed")
    for field in ("meeting_url", "meeting_password", "admin_notes"):
        if isinstance(data.get(field), str):
            setattr(booking, field, data[field].strip() or None)
    notify(booking, "confirmation")
    db.session.commit()

    log_event("ADMIN_BOOKING_CONFIRM", user_id=g.user.id, entity="booking", entity_id=booking.id)
    return jsonify(booking_to_dict(booking, admin=True)), 200


@admin_bp.post("/bookings/<int:booking_id>/complete")
@require_roles("ADMIN")
def complete_booking(booking_id: int):
    booking = Booking.query.get(booking_id)
    if not booking:
        return error_response("booking_not_found", 404)

    transition(booking, "completed")
    booking.consultation.completed_bookings += 1
    booking.consultation.total_revenue += booking.amount
    db.session.commit()

    log_event("ADMIN_BOOKING_COMPLETE", user_id=g.user.id, entity="booking", entity_id=booking.id)
    return jsonify(booking_to_dict(booking, admin=True)), 200


@admin_bp.post("/bookings/<int:booking_id>/cancel")
@require_roles("ADMIN")
def admin_cancel_booking(booking_id: int):
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip()[:500] or "Admin cancellation"
    want_refund = bool(data.get("refund"))

    booking = Booking.query.get(booking_id)
    if not booking:
        return error_response("booking_not_found", 404)
    if booking.status not in LIVE_STATUSES:
        return error_response("booking_not_cancellable", 400)

    paid = booking.payments.filter(Payment.status == "completed").first()
    refunded = False
    if want_refund and paid:
        booking.cancel_reason = reason
        _refund(paid, reason)
        refunded = True
    else:
        for payment in booking.payments.filter(Payment.status == "pending"):
            payment.status = "cancelled"
        booking.cancelled_by = "admin"
        booking.cancel_reason = reason
        transition(booking, "cancelled")
        notify(booking, "cancellation")
    db.session.commit()

    log_event("ADMIN_BOOKING_CANCEL", user_id=g.user.id, entity="booking", entity_id=booking.id,
              metadata={"reason": reason, "refunded": refunded})
    return jsonify(message="Cancelled by admin", refunded=refunded,
                   booking=booking_to_dict(booking, admin=True)), 200


# ---------- Payments ----------
@admin_bp.get("/payments")
@require_roles("ADMIN")
def list_payments():
    q = Payment.query
    provider = request.args.get("provider")
    status = request.args.get("status")
    verification = request.args.get("verification_status")
    if provider:
        q = q.filter(Payment.provider == provider)
    if status:
        q = q.filter(Payment.status == status)
    if verification:
        q = q.join(BankTransfer, BankTransfer.payment_id == Payment.id).filter(
            BankTransfer.verification_status == verification
        )

    page, per_page = _page_args()
    total = q.count()
    rows = q.order_by(Payment.created_at.desc()).offset((page - 1) * per_page).limit(per_page).all()
    return jsonify(items=[payment_to_dict(p) for p in rows], page=page, per_page=per_page, total=total), 200


def _pending_transfer(payment_id: int):
    payment = Payment.query.get(payment_id)
    if not payment or payment.provider != "bank_transfer" or payment.bank_transfer is None:
        return None, error_response("payment_not_found", 404)
    if payment.bank_transfer.verification_status != "pending" or payment.status != "pending":
        return None, error_response("transfer_not_pending", 409)
    return payment, None


@admin_bp.post("/payments/<int:payment_id>/verify")
@require_roles("ADMIN")
def verify_bank_transfer(payment_id: int):
    payment, failure = _pending_transfer(payment_id)
    if failure:
        return failure

    transfer = payment.bank_transfer
    transfer.verification_status = "verified"
    transfer.verified_by = g.user.id
    transfer.verified_at = datetime.utcnow()
    result = apply_payment_outcome(payment, "completed", transaction_id=transfer.transfer_reference)
    db.session.commit()

    audit_outcome("BANK_TRANSFER_VERIFIED", payment, result, user_id=g.user.id)
    return jsonify(payment=payment_to_dict(payment), result=result), 200


@admin_bp.post("/payments/<int:payment_id>/reject")
@require_roles("ADMIN")
def reject_bank_transfer(payment_id: int):
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip()[:500]
    if not reason:
        return error_response("validation_failed", 400, fields=["reason"])

    payment, failure = _pending_transfer(payment_id)
    if failure:
        return failure

    transfer = payment.bank_transfer
    transfer.verification_status = "rejected"
    transfer.rejection_reason = reason
    transfer.verified_by = g.user.id
    transfer.verified_at = datetime.utcnow()
    result = apply_payment_outcome(payment, "failed", reason=reason)
    booking = payment.booking
    if booking.status == "confirmed" and booking.payment_status != "completed":
        # confirmed on the strength of this receipt; the hold can expire again
        return_to_pending(booking)
    db.session.commit()

    audit_outcome("BANK_TRANSFER_REJECTED", payment, result, user_id=g.user.id, reason=reason)
    return jsonify(payment=payment_to_dict(payment), result=result), 200


@admin_bp.post("/payments/<int:payment_id>/refund")
@require_roles("ADMIN")
def refund(payment_id: int):
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip()[:500] or "Refunded by admin"

    payment = Payment.query.get(payment_id)
    if not payment:
        return error_response("payment_not_found", 404)
    # a delivered consultation is final
    if payment.status != "completed" or payment.booking.status == "completed":
        return error_response("not_refundable", 409)

    result = _refund(payment, reason)
    db.session.commit()

    audit_outcome("PAYMENT_REFUNDED", payment, result, user_id=g.user.id, reason=reason)
    return jsonify(payment=payment_to_dict(payment), result=result), 200


# ---------- Users ----------
@admin_bp.get("/users")
@require_roles("ADMIN")
def list_users():
    role_filter = (request.args.get("role") or "").strip().upper()
    q = User.query
    if role_filter:
        q = q.join(User.roles).filter(Role.name == role_filter)

    users = q.order_by(User.created_at.desc()).limit(200).all()
    return jsonify([
        {
            "id": u.id,
            "email": u.email,
            "full_name": u.full_name,
            "phone_number": u.phone_number,
            "preferred_language": u.preferred_language,
            "roles": filter_role_names(u.roles),
            "created_at": u.created_at.isoformat(),
        }
        for u in users
    ]), 200


@admin_bp.post("/users/<int:user_id>/roles")
@require_roles("ADMIN")
def update_user_roles(user_id: int):
    data = request.get_json(silent=True) or {}
    roles = data.get("roles")
    if not isinstance(roles, list) or not roles:
        return error_response("validation_failed", 400, fields=["roles"])

    role_names = {name.strip().upper() for name in roles if isinstance(name, str) and name.strip()}
    available_roles = Role.query.filter(Role.name.in_(role_names)).all()
    missing = role_names - {r.name for r in available_roles}
    if not role_names or missing:
        return error_response("validation_failed", 400, fields=["roles"], missing=sorted(missing))

    user = User.query.get(user_id)
    if not user:
        return error_response("user_not_found", 404)

    if "ADMIN" not in role_names and user.is_admin:
        admin_count = User.query.join(User.roles).filter(Role.name == "ADMIN").count()
        if admin_count <= 1:
            return error_response("last_admin", 403)

    user.roles = available_roles
    db.session.commit()

    log_event("ADMIN_UPDATE_ROLES", user_id=g.user.id, entity="user", entity_id=user.id,
              metadata={"roles": sorted(role_names)})
    return jsonify(message="Roles updated", roles=filter_role_names(user.roles)), 200


# ---------- Feedback ----------
@admin_bp.get("/feedback")
@require_roles("ADMIN")
def list_feedback():
    q = ConsultationFeedback.query
    consultation_id = request.args.get("consultation_id", type=int)
    if consultation_id:
        q = q.filter_by(consultation_id=consultation_id)
    rows = q.order_by(ConsultationFeedback.created_at.desc()).limit(200).all()
    return jsonify([feedback_to_dict(f) for f in rows]), 200


@admin_bp.post("/feedback/<int:feedback_id>/visibility")
@require_roles("ADMIN")
def set_feedback_visibility(feedback_id: int):
    data = request.get_json(silent=True) or {}
    if not isinstance(data.get("is_public"), bool):
        return error_response("validation_failed", 400, fields=["is_public"])

    feedback = ConsultationFeedback.query.get(feedback_id)
    if not feedback:
        return error_response("feedback_not_found", 404)

    feedback.is_public = data["is_public"]
    db.session.commit()

    log_event("FEEDBACK_VISIBILITY", user_id=g.user.id, entity="feedback", entity_id=feedback.id,
              metadata={"is_public": feedback.is_public})
    return jsonify(feedback_to_dict(feedback)), 200


# ---------- Maintenance ----------
@admin_bp.post("/maintenance/release-holds")
@require_roles("ADMIN")
def run_release_holds():
    count = release_expired_holds()
    log_event("ADMIN_RELEASE_HOLDS", user_id=g.user.id, metadata={"released": count})
    return jsonify(released=count), 200


@admin_bp.post("/maintenance/send-reminders")
@require_roles("ADMIN")
def run_send_reminders():
    count = send_reminders()
    log_event("ADMIN_SEND_REMINDERS", user_id=g.user.id, metadata={"sent": count})
    return jsonify(sent=count), 200
