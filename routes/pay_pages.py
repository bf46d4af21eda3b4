from html import escape

from flask import Blueprint, request, current_app

from models import db
from models.payment import Payment
from utils.audit import log_event

pay_pages_bp = Blueprint("pay_pages", __name__)

PAGE = """<!doctype html>
<html lang="ar" dir="rtl">
  <head><meta charset="utf-8"><title>{title}</title></head>
  <body style="font-family: system-ui; max-width: 720px; margin: 40px auto;">
    <h1>{heading_ar}</h1>
    <p>{body_ar}</p>
    <div dir="ltr">
      <h2>{heading_en}</h2>
      <p>{body_en}</p>
    </div>
    <a href="{link}" style="display: inline-block; padding: 12px 18px; background: #0ea5e9; color: white;
       text-decoration: none; border-radius: 8px; font-weight: 600;">حجوزاتي / My bookings</a>
  </body>
</html>
"""


def _bookings_url() -> str:
    return current_app.config.get("FRONTEND_BASE_URL", "http://localhost:3000").rstrip("/") + "/bookings"


@pay_pages_bp.get("/pay/success")
def pay_success():
    # Stripe redirects here; the webhook confirms the booking
    number = escape(request.args.get("booking") or "")
    suffix = f" ({number})" if number else ""
    return PAGE.format(
        title="Payment received",
        heading_ar="تم استلام الدفع",
        body_ar=f"سيتم تأكيد حجزك{suffix} تلقائياً خلال لحظات.",
        heading_en="Payment received",
        body_en=f"Your booking{suffix} will be confirmed automatically in a moment.",
        link=escape(_bookings_url()),
    ), 200


@pay_pages_bp.get("/pay/cancel")
def pay_cancel():
    payment_id = request.args.get("payment_id", type=int)

    payment = Payment.query.get(payment_id) if payment_id else None
    if payment and payment.provider == "stripe" and payment.status == "pending":
        # the slot stays held until the booking hold expires
        payment.status = "cancelled"
        db.session.commit()
        log_event("PAYMENT_CANCELLED", entity="payment", entity_id=payment.id,
                  metadata={"reason": "stripe_cancel"})

    return PAGE.format(
        title="Payment cancelled",
        heading_ar="تم إلغاء الدفع",
        body_ar="لم يتم خصم أي مبلغ. يمكنك المحاولة مرة أخرى من صفحة حجوزاتي.",
        heading_en="Payment cancelled",
        body_en="No payment was taken. You can try again from My bookings.",
        link=escape(_bookings_url()),
    ), 200
