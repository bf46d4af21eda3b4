"""Thin adapters over the Stripe SDK and the PayPal Orders v2 REST API."""
import logging

import requests
import stripe
from flask import current_app

logger = logging.getLogger(__name__)

PAYPAL_API = {
    "sandbox": "https://api-m.sandbox.paypal.com",
    "production": "https://api-m.paypal.com",
}


class PaymentProviderError(Exception):
    pass


def minor_to_decimal(amount: int) -> str:
    return f"{amount / 100:.2f}"


# ---------- Stripe ----------
def _stripe():
    key = current_app.config.get("STRIPE_SECRET_KEY")
    if not key:
        raise PaymentProviderError("Stripe secret key missing (STRIPE_SECRET_KEY)")
    stripe.api_key = key
    return stripe


def create_stripe_checkout(booking, payment, user_id: int, success_url: str, cancel_url: str):
    client = _stripe()
    title = booking.consultation.title_en or booking.consultation.title
    try:
        return client.checkout.Session.create(
            mode="payment",
            line_items=[{
                "price_data": {
                    "currency": booking.currency.lower(),
                    "product_data": {"name": f"{title} ({booking.booking_number})"},
                    "unit_amount": payment.amount,
                },
                "quantity": 1,
            }],
            success_url=success_url,
            cancel_url=cancel_url,
            client_reference_id=booking.booking_number,
            metadata={
                "booking_id": str(booking.id),
                "payment_id": str(payment.id),
                "user_id": str(user_id),
            },
        )
    except stripe.StripeError as exc:
        logger.error("Stripe checkout failed for booking %s: %s", booking.id, exc)
        raise PaymentProviderError(str(exc)) from exc


def refund_stripe(payment):
    client = _stripe()
    if not payment.transaction_id:
        raise PaymentProviderError("Stripe payment has no payment intent")
    try:
        return client.Refund.create(payment_intent=payment.transaction_id)
    except stripe.StripeError as exc:
        logger.error("Stripe refund failed for payment %s: %s", payment.id, exc)
        raise PaymentProviderError(str(exc)) from exc


# ---------- PayPal ----------
class PayPalClient:
    def __init__(self, client_id: str, client_secret: str, mode: str = "sandbox", timeout: int = 15):
        if not client_id or not client_secret:
            raise PaymentProviderError("PayPal credentials missing (PAYPAL_CLIENT_ID / PAYPAL_CLIENT_SECRET)")
        self.client_id = client_id
        self.client_secret = client_secret
        self.base_url = PAYPAL_API["production" if mode == "production" else "sandbox"]
        self.timeout = timeout

    @classmethod
    def from_config(cls):
        cfg = current_app.config
        return cls(
            cfg.get("PAYPAL_CLIENT_ID"),
            cfg.get("PAYPAL_CLIENT_SECRET"),
            cfg.get("PAYPAL_MODE", "sandbox"),
            cfg.get("PAYPAL_TIMEOUT_SECONDS", 15),
        )

    def _request(self, method: str, path: str, **kwargs) -> dict:
        try:
            resp = requests.request(method, self.base_url + path, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            logger.error("PayPal %s %s failed: %s", method, path, exc)
            raise PaymentProviderError(str(exc)) from exc
        if resp.status_code >= 400:
            logger.error("PayPal %s %s -> %s %s", method, path, resp.status_code, resp.text[:500])
            raise PaymentProviderError(f"PayPal responded {resp.status_code}")
        return resp.json() if resp.content else {}

    def _token(self) -> str:
        data = self._request(
            "POST",
            "/v1/oauth2/token",
            auth=(self.client_id, self.client_secret),
            data={"grant_type": "client_credentials"},
        )
        return data["access_token"]

    def _authed(self, method: str, path: str, body=None, request_id=None) -> dict:
        headers = {
            "Authorization": f"Bearer {self._token()}",
            "Content-Type": "application/json",
        }
        if request_id:
            headers["PayPal-Request-Id"] = request_id
        return self._request(method, path, json=body or {}, headers=headers)

    def create_order(self, amount: int, currency: str, reference: str, description: str,
                     return_url=None, cancel_url=None):
        body = {
            "intent": "CAPTURE",
            "purchase_units": [{
                "reference_id": reference,
                "description": description[:127],
                "amount": {"currency_code": currency, "value": minor_to_decimal(amount)},
            }],
        }
        if return_url and cancel_url:
            body["application_context"] = {"return_url": return_url, "cancel_url": cancel_url}

        order = self._authed("POST", "/v2/checkout/orders", body, request_id=f"create-{reference}")
        approval_url = next(
            (link["href"] for link in order.get("links", []) if link.get("rel") in ("approve", "payer-action")),
            None,
        )
        return order["id"], approval_url

    def capture_order(self, order_id: str):
        """Returns (completed, capture_id)."""
        data = self._authed("POST", f"/v2/checkout/orders/{order_id}/capture", request_id=f"capture-{order_id}")
        capture_id = None
        for unit in data.get("purchase_units", []):
            for capture in unit.get("payments", {}).get("captures", []):
                capture_id = capture.get("id")
        return data.get("status") == "COMPLETED", capture_id

    def refund_capture(self, capture_id: str, amount: int, currency: str) -> dict:
        body = {"amount": {"currency_code": currency, "value": minor_to_decimal(amount)}}
        return self._authed("POST", f"/v2/payments/captures/{capture_id}/refund", body,
                            request_id=f"refund-{capture_id}")


def refund_payment(payment) -> None:
    """Ask the provider to return the money. Bank transfers are refunded by hand."""
    if payment.provider == "stripe":
        refund_stripe(payment)
    elif payment.provider == "paypal":
        if not payment.transaction_id:
            raise PaymentProviderError("PayPal payment has no capture id")
        PayPalClient.from_config().refund_capture(payment.transaction_id, payment.amount, payment.currency)
