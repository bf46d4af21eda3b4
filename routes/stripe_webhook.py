import logging

import stripe
from flask import Blueprint, request, jsonify, current_app

from models import db
from models.payment import Payment
from utils.audit import log_event
from utils.i18n import error_response
from utils.reconcile import apply_payment_outcome, audit_outcome

logger = logging.getLogger(__name__)

webhook_bp = Blueprint("webhook", __name__, url_prefix="/webhooks")

SESSION_OUTCOMES = {
    "checkout.session.completed": "completed",
    "checkout.session.async_payment_succeeded": "completed",
    "checkout.session.async_payment_failed": "failed",
    "checkout.session.expired": "failed",
}


def _payment_for_session(session) -> Payment:
    meta = session.get("metadata") or {}
    payment_id = meta.get("payment_id")
    payment = None
    if payment_id and str(payment_id).isdigit():
        payment = Payment.query.get(int(payment_id))
    if payment is None and session.get("id"):
        payment = Payment.query.filter_by(provider="stripe", provider_ref=session["id"]).first()
    return payment


def _handle_session(event_type: str, session):
    outcome = SESSION_OUTCOMES[event_type]
    # delayed methods report completed before the money has settled
    if outcome == "completed" and session.get("payment_status") != "paid":
        return None

    payment = _payment_for_session(session)
    if payment is None:
        logger.warning("Stripe session %s has no matching payment", session.get("id"))
        return None

    if outcome == "completed":
        result = apply_payment_outcome(payment, "completed", transaction_id=session.get("payment_intent"))
    else:
        result = apply_payment_outcome(payment, "failed", reason=event_type)
    return payment, result


def _handle_refund(charge):
    if not charge.get("refunded"):
        # partial refunds are left for the admin
        return None
    intent = charge.get("payment_intent")
    payment = Payment.query.filter_by(provider="stripe", transaction_id=intent).first() if intent else None
    if payment is None:
        logger.warning("Stripe refund for unknown payment intent %s", intent)
        return None
    return payment, apply_payment_outcome(payment, "refunded", reason="Refunded in Stripe")


@webhook_bp.post("/stripe")
def stripe_webhook():
    endpoint_secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
    if not endpoint_secret:
        return error_response("webhook_secret_missing", 500)

    try:
        event = stripe.Webhook.construct_event(
            request.get_data(), request.headers.get("Stripe-Signature"), endpoint_secret
        )
    except (ValueError, stripe.SignatureVerificationError):
        log_event("STRIPE_WEBHOOK_BAD_SIGNATURE")
        return error_response("webhook_signature", 400)

    event_type = event["type"]
    obj = event["data"]["object"]

    if event_type in SESSION_OUTCOMES:
        handled = _handle_session(event_type, obj)
    elif event_type == "charge.refunded":
        handled = _handle_refund(obj)
    else:
        handled = None

    if handled:
        payment, result = handled
        db.session.commit()
        audit_outcome("STRIPE_WEBHOOK", payment, result, event_type=event_type, event_id=event.get("id"))

    return jsonify(received=True), 200
