from datetime import datetime
from urllib.parse import urlencode, urlparse, parse_qsl, urlunparse

from flask import Blueprint, request, jsonify, g, current_app, url_for

from models import db
from models.booking import Booking
from models.payment import Payment, BankTransfer
from utils.audit import log_event
from utils.auth_context import login_required
from utils.booking_rules import LIVE_STATUSES, set_payment_status
from utils.i18n import error_response
from utils.payment_providers import PaymentProviderError, PayPalClient, create_stripe_checkout
from utils.reconcile import apply_payment_outcome, audit_outcome
from utils.serializers import payment_to_dict

payments_bp = Blueprint("payments", __name__, url_prefix="/payments")


def _append_query(url: str, params: dict) -> str:
    if not url:
        return url
    parts = urlparse(url)
    query = dict(parse_qsl(parts.query))
    query.update({k: v for k, v in params.items() if v is not None})
    return urlunparse(parts._replace(query=urlencode(query)))


def _is_http_url(value) -> bool:
    if not isinstance(value, str) or len(value) > 1000:
        return False
    parts = urlparse(value.strip())
    return parts.scheme in ("http", "https") and bool(parts.netloc)


def _payable_booking(booking_id, method: str):
    """Returns (booking, error_response)."""
    if isinstance(booking_id, bool) or not isinstance(booking_id, int):
        return None, error_response("validation_failed", 400, fields=["booking_id"])
    booking = Booking.query.get(booking_id)
    if not booking or booking.user_id != g.user.id:
        return None, error_response("booking_not_found", 404)
    if booking.payment_status in ("completed", "refunded"):
        return None, error_response("already_paid", 409)
    if booking.status not in LIVE_STATUSES:
        return None, error_response("booking_not_payable", 409)
    if booking.payment_method != method:
        return None, error_response("wrong_payment_method", 400)
    return booking, None


def _open_attempt(booking: Booking, provider: str) -> Payment:
    # a failed booking payment goes back to pending on retry
    set_payment_status(booking, "pending")
    payment = Payment(
        booking_id=booking.id,
        user_id=booking.user_id,
        provider=provider,
        amount=booking.amount,
        currency=booking.currency,
    )
    db.session.add(payment)
    db.session.flush()
    return payment


# ---------- Stripe ----------
@payments_bp.post("/stripe/checkout")
@login_required
def stripe_checkout():
    data = request.get_json(silent=True) or {}
    booking, failure = _payable_booking(data.get("booking_id"), "stripe")
    if failure:
        return failure

    cfg = current_app.config
    success_url = cfg.get("STRIPE_SUCCESS_URL") or url_for("pay_pages.pay_success", _external=True)
    cancel_url = cfg.get("STRIPE_CANCEL_URL") or url_for("pay_pages.pay_cancel", _external=True)

    payment = _open_attempt(booking, "stripe")
    try:
        session = create_stripe_checkout(
            booking,
            payment,
            g.user.id,
            success_url=_append_query(success_url, {"booking": booking.booking_number}),
            cancel_url=_append_query(cancel_url, {"payment_id": str(payment.id)}),
        )
    except PaymentProviderError:
        db.session.rollback()
        log_event("PAYMENT_SESSION_FAILED", user_id=g.user.id, entity="booking", entity_id=booking.id)
        raise

    payment.provider_ref = session["id"]
    db.session.commit()

    log_event("PAYMENT_SESSION_CREATED", user_id=g.user.id, entity="payment", entity_id=payment.id,
              metadata={"stripe_session_id": session["id"], "booking_id": booking.id})
    return jsonify(checkout_url=session["url"], payment_id=payment.id), 200


# ---------- PayPal ----------
@payments_bp.post("/paypal/create")
@login_required
def paypal_create():
    data = request.get_json(silent=True) or {}
    booking, failure = _payable_booking(data.get("booking_id"), "paypal")
    if failure:
        return failure

    client = PayPalClient.from_config()
    payment = _open_attempt(booking, "paypal")
    title = booking.consultation.title_en or booking.consultation.title
    try:
        order_id, approval_url = client.create_order(
            booking.amount,
            booking.currency,
            reference=f"payment-{payment.id}",
            description=f"{title} ({booking.booking_number})",
            return_url=current_app.config.get("PAYPAL_RETURN_URL"),
            cancel_url=current_app.config.get("PAYPAL_CANCEL_URL"),
        )
    except PaymentProviderError:
        db.session.rollback()
        log_event("PAYPAL_ORDER_FAILED", user_id=g.user.id, entity="booking", entity_id=booking.id)
        raise

    payment.provider_ref = order_id
    db.session.commit()

    log_event("PAYPAL_ORDER_CREATED", user_id=g.user.id, entity="payment", entity_id=payment.id,
              metadata={"order_id": order_id, "booking_id": booking.id})
    return jsonify(order_id=order_id, approval_url=approval_url, payment_id=payment.id), 200


@payments_bp.post("/paypal/capture")
@login_required
def paypal_capture():
    data = request.get_json(silent=True) or {}
    order_id = (data.get("order_id") or "").strip()

    payment = Payment.query.filter_by(provider="paypal", provider_ref=order_id).first() if order_id else None
    if not payment or payment.user_id != g.user.id:
        return error_response("payment_not_found", 404)
    if payment.status == "completed":
        return jsonify(payment=payment_to_dict(payment), result="noop"), 200
    if payment.status != "pending":
        return error_response("booking_not_payable", 409)

    completed, capture_id = PayPalClient.from_config().capture_order(order_id)
    if completed:
        result = apply_payment_outcome(payment, "completed", transaction_id=capture_id)
    else:
        result = apply_payment_outcome(payment, "failed", reason="PayPal capture not completed")
    db.session.commit()

    audit_outcome("PAYPAL_CAPTURE", payment, result, user_id=g.user.id,
                  completed=completed, capture_id=capture_id)
    if not completed:
        return error_response("capture_failed", 402, payment=payment_to_dict(payment))
    return jsonify(payment=payment_to_dict(payment), result=result), 200


# ---------- Bank transfer ----------
def _transfer_fields(data: dict):
    transfer_date = data.get("transfer_date")
    if transfer_date:
        transfer_date = datetime.fromisoformat(transfer_date)
    return {
        "receipt_url": data["receipt_url"].strip(),
        "transfer_reference": (data.get("transfer_reference") or "").strip()[:120] or None,
        "bank_name": (data.get("bank_name") or "").strip()[:120] or None,
        "account_holder_name": (data.get("account_holder_name") or "").strip()[:120] or None,
        "transfer_date": transfer_date,
    }


def _check_receipt(data: dict):
    if not data.get("receipt_url"):
        return error_response("receipt_required", 400)
    if not _is_http_url(data["receipt_url"]):
        return error_response("receipt_url_invalid", 400)
    if data.get("transfer_date"):
        try:
            datetime.fromisoformat(data["transfer_date"])
        except (TypeError, ValueError):
            return error_response("invalid_datetime", 400)
    return None


@payments_bp.post("/bank-transfer")
@login_required
def submit_bank_transfer():
    data = request.get_json(silent=True) or {}
    booking, failure = _payable_booking(data.get("booking_id"), "bank_transfer")
    if failure:
        return failure
    failure = _check_receipt(data)
    if failure:
        return failure

    payment = booking.payments.filter(
        Payment.provider == "bank_transfer", Payment.status == "pending"
    ).first()
    if payment is None:
        payment = _open_attempt(booking, "bank_transfer")
        payment.bank_transfer = BankTransfer(**_transfer_fields(data))
    else:
        # still under review: replace the receipt in place
        for key, value in _transfer_fields(data).items():
            setattr(payment.bank_transfer, key, value)
        payment.bank_transfer.uploaded_at = datetime.utcnow()
    db.session.commit()

    log_event("BANK_TRANSFER_SUBMITTED", user_id=g.user.id, entity="payment", entity_id=payment.id,
              metadata={"booking_id": booking.id})
    return jsonify(payment_to_dict(payment)), 201


@payments_bp.post("/<int:payment_id>/receipt")
@login_required
def reupload_receipt(payment_id: int):
    data = request.get_json(silent=True) or {}
    payment = Payment.query.get(payment_id)
    if not payment or payment.user_id != g.user.id or payment.provider != "bank_transfer":
        return error_response("payment_not_found", 404)

    transfer = payment.bank_transfer
    if transfer is None or transfer.verification_status not in ("pending", "rejected"):
        return error_response("transfer_not_pending", 409)
    booking = payment.booking
    if booking.status not in LIVE_STATUSES or booking.payment_status in ("completed", "refunded"):
        return error_response("booking_not_payable", 409)

    failure = _check_receipt(data)
    if failure:
        return failure

    for key, value in _transfer_fields(data).items():
        setattr(transfer, key, value)
    transfer.uploaded_at = datetime.utcnow()
    if transfer.verification_status == "rejected":
        transfer.verification_status = "pending"
        transfer.rejection_reason = None
        transfer.verified_by = None
        transfer.verified_at = None
        payment.status = "pending"
        payment.failure_reason = None
        set_payment_status(booking, "pending")
    db.session.commit()

    log_event("BANK_TRANSFER_REUPLOADED", user_id=g.user.id, entity="payment", entity_id=payment.id)
    return jsonify(payment_to_dict(payment)), 200


# ---------- Reads ----------
@payments_bp.get("/me")
@login_required
def my_payments():
    rows = (
        Payment.query
        .filter_by(user_id=g.user.id)
        .order_by(Payment.created_at.desc())
        .limit(200)
        .all()
    )
    return jsonify([payment_to_dict(p) for p in rows]), 200


@payments_bp.get("/<int:payment_id>")
@login_required
def payment_status(payment_id: int):
    payment = Payment.query.get(payment_id)
    if not payment or (payment.user_id != g.user.id and not g.user.is_admin):
        return error_response("payment_not_found", 404)
    return jsonify(
        payment=payment_to_dict(payment),
        booking_status=payment.booking.status,
        booking_payment_status=payment.booking.payment_status,
    ), 200
