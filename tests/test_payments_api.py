from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
import stripe

from models.booking import Booking
from models.consultation import Consultation
from models.notification import BookingNotification
from models.payment import Payment
from models.time_slot import TimeSlot
from utils.maintenance import release_expired_holds
from utils.payment_providers import PaymentProviderError

import factories

CHECKOUT = {"id": "cs_test_123", "url": "https://checkout.stripe.com/c/pay/cs_test_123"}


def _booking(app, user_id, slot_id, method="stripe", **kwargs):
    with app.app_context():
        return factories.make_booking(user_id, slot_id, payment_method=method, **kwargs)


def _session_event(payment_id, event_type="checkout.session.completed", payment_status="paid"):
    return {
        "id": "evt_1",
        "type": event_type,
        "data": {"object": {
            "id": CHECKOUT["id"],
            "payment_status": payment_status,
            "payment_intent": "pi_123",
            "metadata": {"payment_id": str(payment_id)},
        }},
    }


def _post_webhook(client, event):
    with patch("stripe.Webhook.construct_event", return_value=event):
        return client.post("/webhooks/stripe", data=b"{}", headers={"Stripe-Signature": "t=1,v1=sig"})


# ---------- Stripe ----------
def test_stripe_checkout_opens_payment(app, user_client, user_id, slot_id):
    booking_id = _booking(app, user_id, slot_id)

    with patch("routes.payments.create_stripe_checkout", return_value=CHECKOUT) as create:
        resp = user_client.post("/payments/stripe/checkout", json={"booking_id": booking_id})

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["checkout_url"] == CHECKOUT["url"]
    assert "booking=CB-" in create.call_args.kwargs["success_url"]

    with app.app_context():
        payment = Payment.query.get(body["payment_id"])
        assert payment.status == "pending"
        assert payment.provider_ref == CHECKOUT["id"]
        assert payment.amount == 10000


def test_checkout_rejects_other_payment_method(app, user_client, user_id, slot_id):
    booking_id = _booking(app, user_id, slot_id, method="paypal")
    resp = user_client.post("/payments/stripe/checkout", json={"booking_id": booking_id})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Booking was created with a different payment method"


def test_checkout_rejects_paid_booking(app, user_client, user_id, slot_id):
    booking_id = _booking(app, user_id, slot_id, status="confirmed", payment_status="completed")
    resp = user_client.post("/payments/stripe/checkout", json={"booking_id": booking_id})
    assert resp.status_code == 409
    assert resp.get_json()["arabic"] == "تم الدفع مسبقاً لهذا الحجز"


def test_checkout_provider_failure(app, user_client, user_id, slot_id):
    booking_id = _booking(app, user_id, slot_id)

    with patch("routes.payments.create_stripe_checkout", side_effect=PaymentProviderError("boom")):
        resp = user_client.post("/payments/stripe/checkout", json={"booking_id": booking_id})

    assert resp.status_code == 502
    assert resp.get_json()["error"] == "Payment provider error"
    with app.app_context():
        assert Payment.query.count() == 0


def test_webhook_confirms_booking_once(app, client, user_id, slot_id):
    booking_id = _booking(app, user_id, slot_id)
    with app.app_context():
        payment_id = factories.make_payment(booking_id, provider_ref=CHECKOUT["id"])

    assert _post_webhook(client, _session_event(payment_id)).status_code == 200
    # Stripe retries deliveries
    assert _post_webhook(client, _session_event(payment_id)).status_code == 200

    with app.app_context():
        booking = Booking.query.get(booking_id)
        assert booking.status == "confirmed"
        assert booking.payment_status == "completed"
        assert Payment.query.get(payment_id).transaction_id == "pi_123"
        assert Consultation.query.get(booking.consultation_id).total_bookings == 1
        assert BookingNotification.query.filter_by(booking_id=booking_id, type="confirmation").count() == 1


def test_webhook_waits_for_settled_payment(app, client, user_id, slot_id):
    booking_id = _booking(app, user_id, slot_id)
    with app.app_context():
        payment_id = factories.make_payment(booking_id, provider_ref=CHECKOUT["id"])

    _post_webhook(client, _session_event(payment_id, payment_status="unpaid"))
    with app.app_context():
        assert Booking.query.get(booking_id).status == "pending"
        assert Payment.query.get(payment_id).status == "pending"


def test_webhook_expired_session_fails_payment(app, client, user_id, slot_id):
    booking_id = _booking(app, user_id, slot_id)
    with app.app_context():
        payment_id = factories.make_payment(booking_id, provider_ref=CHECKOUT["id"])

    _post_webhook(client, _session_event(payment_id, event_type="checkout.session.expired"))
    with app.app_context():
        assert Payment.query.get(payment_id).status == "failed"
        assert Booking.query.get(booking_id).payment_status == "failed"


def test_webhook_full_refund_cancels_booking(app, client, user_id, slot_id):
    booking_id = _booking(app, user_id, slot_id, status="confirmed", payment_status="completed")
    with app.app_context():
        factories.make_payment(booking_id, status="completed", transaction_id="pi_123")

    event = {
        "id": "evt_2",
        "type": "charge.refunded",
        "data": {"object": {"payment_intent": "pi_123", "refunded": True}},
    }
    assert _post_webhook(client, event).status_code == 200

    with app.app_context():
        booking = Booking.query.get(booking_id)
        assert booking.status == "cancelled"
        assert booking.payment_status == "refunded"
        assert TimeSlot.query.get(slot_id).is_available is True


def test_webhook_bad_signature(client):
    error = stripe.SignatureVerificationError("No signatures found", "bad")
    with patch("stripe.Webhook.construct_event", side_effect=error):
        resp = client.post("/webhooks/stripe", data=b"{}", headers={"Stripe-Signature": "bad"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Invalid webhook signature"


# ---------- PayPal ----------
@pytest.fixture
def paypal():
    with patch("routes.payments.PayPalClient") as client_cls:
        client = client_cls.from_config.return_value
        client.create_order.return_value = ("ORDER-1", "https://www.sandbox.paypal.com/checkoutnow?token=ORDER-1")
        client.capture_order.return_value = (True, "CAPTURE-1")
        yield client


def test_paypal_create_and_capture(app, user_client, user_id, slot_id, paypal):
    booking_id = _booking(app, user_id, slot_id, method="paypal")

    resp = user_client.post("/payments/paypal/create", json={"booking_id": booking_id})
    assert resp.status_code == 200
    assert resp.get_json()["order_id"] == "ORDER-1"
    assert paypal.create_order.call_args.args[:2] == (10000, "USD")

    resp = user_client.post("/payments/paypal/capture", json={"order_id": "ORDER-1"})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["result"] == "applied"
    assert body["payment"]["transaction_id"] == "CAPTURE-1"

    # capturing again does not call PayPal
    resp = user_client.post("/payments/paypal/capture", json={"order_id": "ORDER-1"})
    assert resp.get_json()["result"] == "noop"
    assert paypal.capture_order.call_count == 1

    with app.app_context():
        assert Booking.query.get(booking_id).status == "confirmed"


def test_paypal_capture_not_completed(app, user_client, user_id, slot_id, paypal):
    booking_id = _booking(app, user_id, slot_id, method="paypal")
    with app.app_context():
        factories.make_payment(booking_id, provider="paypal", provider_ref="ORDER-9")
    paypal.capture_order.return_value = (False, None)

    resp = user_client.post("/payments/paypal/capture", json={"order_id": "ORDER-9"})
    assert resp.status_code == 402
    assert resp.get_json()["payment"]["status"] == "failed"
    with app.app_context():
        assert Booking.query.get(booking_id).payment_status == "failed"


# ---------- Bank transfer ----------
RECEIPT = {
    "receipt_url": "https://files.example.com/receipts/1.jpg",
    "transfer_reference": "TRX-889",
    "bank_name": "Al Rajhi",
    "transfer_date": "2026-03-01T10:00:00",
}


def test_bank_transfer_verified_by_admin(app, user_client, admin_client, user_id, slot_id):
    booking_id = _booking(app, user_id, slot_id, method="bank_transfer")

    resp = user_client.post("/payments/bank-transfer", json={"booking_id": booking_id, **RECEIPT})
    assert resp.status_code == 201
    payment = resp.get_json()
    assert payment["bank_transfer"]["verification_status"] == "pending"

    resp = admin_client.post(f"/admin/payments/{payment['id']}/verify")
    assert resp.status_code == 200
    assert resp.get_json()["payment"]["transaction_id"] == "TRX-889"

    with app.app_context():
        booking = Booking.query.get(booking_id)
        assert booking.status == "confirmed"
        assert booking.payment_status == "completed"


def test_bank_transfer_requires_valid_receipt(app, user_client, user_id, slot_id):
    booking_id = _booking(app, user_id, slot_id, method="bank_transfer")

    resp = user_client.post("/payments/bank-transfer", json={"booking_id": booking_id})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Receipt image is required for bank transfer"

    resp = user_client.post("/payments/bank-transfer", json={"booking_id": booking_id, "receipt_url": "ftp://x/y"})
    assert resp.status_code == 400
    assert resp.get_json()["arabic"] == "تنسيق رابط صورة الإيصال غير صالح"


def test_rejected_transfer_can_be_reuploaded(app, user_client, admin_client, user_id, slot_id):
    booking_id = _booking(app, user_id, slot_id, method="bank_transfer")
    payment_id = user_client.post("/payments/bank-transfer", json={"booking_id": booking_id, **RECEIPT}).get_json()["id"]

    assert admin_client.post(f"/admin/payments/{payment_id}/reject", json={}).status_code == 400
    resp = admin_client.post(f"/admin/payments/{payment_id}/reject", json={"reason": "blurry image"})
    assert resp.status_code == 200
    assert resp.get_json()["payment"]["status"] == "failed"

    resp = user_client.post(f"/payments/{payment_id}/receipt", json={"receipt_url": "https://files.example.com/2.jpg"})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "pending"
    assert body["bank_transfer"]["verification_status"] == "pending"
    assert body["bank_transfer"]["rejection_reason"] is None

    with app.app_context():
        assert Booking.query.get(booking_id).payment_status == "pending"


def test_rejected_receipt_reopens_confirmed_booking(app, user_client, admin_client, user_id, slot_id):
    booking_id = _booking(app, user_id, slot_id, method="bank_transfer")
    payment_id = user_client.post("/payments/bank-transfer", json={"booking_id": booking_id, **RECEIPT}).get_json()["id"]
    assert admin_client.post(f"/admin/bookings/{booking_id}/confirm").status_code == 200

    admin_client.post(f"/admin/payments/{payment_id}/reject", json={"reason": "wrong amount"})
    with app.app_context():
        booking = Booking.query.get(booking_id)
        assert booking.status == "pending"
        assert booking.payment_status == "failed"

        assert release_expired_holds(now=datetime.utcnow() + timedelta(hours=49)) == 1
        assert Booking.query.get(booking_id).status == "cancelled"
        assert TimeSlot.query.get(slot_id).is_available is True


def test_payment_endpoints_reject_non_integer_booking_id(user_client):
    resp = user_client.post("/payments/stripe/checkout", json={"booking_id": [1]})
    assert resp.status_code == 400
    assert resp.get_json()["fields"] == ["booking_id"]
    assert user_client.post("/payments/paypal/create", json={"booking_id": "1"}).status_code == 400


# ---------- Refunds ----------
def test_admin_refund(app, admin_client, user_id, slot_id):
    booking_id = _booking(app, user_id, slot_id, status="confirmed", payment_status="completed")
    with app.app_context():
        payment_id = factories.make_payment(booking_id, status="completed", transaction_id="pi_123")

    with patch("routes.admin.refund_payment") as provider_refund:
        resp = admin_client.post(f"/admin/payments/{payment_id}/refund", json={"reason": "coach unavailable"})

    assert resp.status_code == 200
    assert provider_refund.call_count == 1
    assert resp.get_json()["payment"]["status"] == "refunded"
    with app.app_context():
        booking = Booking.query.get(booking_id)
        assert booking.status == "cancelled"
        assert booking.cancelled_by == "admin"
        assert booking.payment_status == "refunded"


def test_completed_consultation_not_refundable(app, admin_client, user_id, slot_id):
    booking_id = _booking(app, user_id, slot_id, status="completed", payment_status="completed")
    with app.app_context():
        payment_id = factories.make_payment(booking_id, status="completed", transaction_id="pi_123")

    with patch("routes.admin.refund_payment") as provider_refund:
        resp = admin_client.post(f"/admin/payments/{payment_id}/refund")
    assert resp.status_code == 409
    assert provider_refund.call_count == 0


def test_other_users_cannot_read_payment(app, user_client, slot_id):
    with app.app_context():
        other_id = factories.make_user("stranger@example.com")
        booking_id = factories.make_booking(other_id, slot_id)
        payment_id = factories.make_payment(booking_id)

    assert user_client.get(f"/payments/{payment_id}").status_code == 404


def test_admin_lists_transfers_awaiting_review(app, user_client, admin_client, user_id, slot_id):
    booking_id = _booking(app, user_id, slot_id, method="bank_transfer")
    user_client.post("/payments/bank-transfer", json={"booking_id": booking_id, **RECEIPT})

    body = admin_client.get("/admin/payments?verification_status=pending").get_json()
    assert body["total"] == 1
    assert body["items"][0]["bank_transfer"]["bank_name"] == "Al Rajhi"
    assert admin_client.get("/admin/payments?provider=stripe").get_json()["total"] == 0
