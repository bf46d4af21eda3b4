"""Row builders for tests. All of them need an active app context."""
from datetime import datetime, timedelta

from models import db
from models.booking import Booking
from models.consultation import Consultation
from models.coupon import Coupon
from models.payment import Payment, BankTransfer
from models.time_slot import TimeSlot
from models.user import User, Role
from security.password import hash_password
from utils.booking_rules import next_booking_number

PASSWORD = "Str0ng!Passw0rd"


def make_user(email, admin=False, full_name="Test Client", phone="+966500000000", language="en"):
    user = User(
        email=email,
        password_hash=hash_password(PASSWORD),
        full_name=full_name,
        phone_number=phone,
        preferred_language=language,
    )
    user.roles.append(Role.query.filter_by(name="CLIENT").first())
    if admin:
        user.roles.append(Role.query.filter_by(name="ADMIN").first())
    db.session.add(user)
    db.session.commit()
    return user.id


def make_consultation(**overrides):
    fields = {
        "title": "استشارة تجريبية",
        "title_en": "Trial Consultation",
        "description": "وصف",
        "duration_minutes": 60,
        "price": 10000,
        "currency": "USD",
        "category": "sports",
        "slug": "trial-consultation",
        "tags": [],
    }
    fields.update(overrides)
    c = Consultation(**fields)
    db.session.add(c)
    db.session.commit()
    return c.id


def make_slot(consultation_id, hours_ahead=72, start=None):
    start = start or (datetime.utcnow() + timedelta(hours=hours_ahead)).replace(microsecond=0)
    slot = TimeSlot(consultation_id=consultation_id, start_time=start, end_time=start + timedelta(hours=1))
    db.session.add(slot)
    db.session.commit()
    return slot.id


def make_booking(user_id, slot_id, payment_method="stripe", status="pending",
                 payment_status="pending", coupon_code=None, created_at=None):
    """Insert a booking that already holds its slot."""
    slot = TimeSlot.query.get(slot_id)
    slot.is_available = False
    consultation = slot.consultation
    booking = Booking(
        booking_number=next_booking_number(),
        user_id=user_id,
        consultation_id=consultation.id,
        time_slot_id=slot.id,
        active_slot_id=slot.id,
        status=status,
        payment_status=payment_status,
        payment_method=payment_method,
        amount=consultation.price,
        original_amount=consultation.price,
        currency=consultation.currency,
        coupon_code=coupon_code,
        created_at=created_at or datetime.utcnow(),
    )
    db.session.add(booking)
    db.session.commit()
    return booking.id


def make_payment(booking_id, provider="stripe", status="pending", provider_ref=None, transaction_id=None):
    booking = Booking.query.get(booking_id)
    payment = Payment(
        booking_id=booking.id,
        user_id=booking.user_id,
        provider=provider,
        amount=booking.amount,
        currency=booking.currency,
        status=status,
        provider_ref=provider_ref,
        transaction_id=transaction_id,
    )
    if provider == "bank_transfer":
        payment.bank_transfer = BankTransfer(receipt_url="https://files.example.com/receipt.jpg")
    db.session.add(payment)
    db.session.commit()
    return payment.id


def make_coupon(code="SAVE10", discount_type="percentage", discount_value=10, **overrides):
    fields = {
        "code": code,
        "discount_type": discount_type,
        "discount_value": discount_value,
        "valid_from": datetime.utcnow() - timedelta(days=1),
        "valid_until": datetime.utcnow() + timedelta(days=30),
        "consultation_ids": [],
    }
    fields.update(overrides)
    coupon = Coupon(**fields)
    db.session.add(coupon)
    db.session.commit()
    return coupon.id
