from datetime import datetime
from models.db import db

PROVIDERS = ("stripe", "paypal", "bank_transfer")
PAYMENT_RECORD_STATUSES = ("pending", "completed", "failed", "refunded", "cancelled")
VERIFICATION_STATUSES = ("pending", "verified", "rejected")


class Payment(db.Model):
    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    provider = db.Column(db.String(20), nullable=False)
    amount = db.Column(db.Integer, nullable=False)   # smallest unit
    currency = db.Column(db.String(3), nullable=False, default="USD")

    status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    # stripe checkout session id / paypal order id
    provider_ref = db.Column(db.String(255), nullable=True, unique=True, index=True)
    # stripe payment intent / paypal capture id
    transaction_id = db.Column(db.String(255), nullable=True, index=True)

    failure_reason = db.Column(db.String(500), nullable=True)
    refund_reason = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    completed_at = db.Column(db.DateTime, nullable=True)
    refunded_at = db.Column(db.DateTime, nullable=True)

    booking = db.relationship("Booking", backref=db.backref("payments", lazy="dynamic"))
    bank_transfer = db.relationship("BankTransfer", uselist=False, back_populates="payment")


class BankTransfer(db.Model):
    __tablename__ = "bank_transfers"

    id = db.Column(db.Integer, primary_key=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=False, unique=True)

    receipt_url = db.Column(db.String(1000), nullable=False)
    transfer_reference = db.Column(db.String(120), nullable=True)
    bank_name = db.Column(db.String(120), nullable=True)
    account_holder_name = db.Column(db.String(120), nullable=True)
    transfer_date = db.Column(db.DateTime, nullable=True)

    verification_status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    verified_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    verified_at = db.Column(db.DateTime, nullable=True)
    rejection_reason = db.Column(db.String(500), nullable=True)

    uploaded_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    payment = db.relationship("Payment", back_populates="bank_transfer")
