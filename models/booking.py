from datetime import datetime
from models.db import db

BOOKING_STATUSES = ("pending", "confirmed", "cancelled", "completed")
PAYMENT_STATUSES = ("pending", "completed", "failed", "refunded")
PAYMENT_METHODS = ("stripe", "paypal", "bank_transfer")


class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)
    booking_number = db.Column(db.String(20), unique=True, nullable=False, index=True)  # CB-YYYYMMDD-NNNN

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    consultation_id = db.Column(db.Integer, db.ForeignKey("consultations.id"), nullable=False, index=True)
    time_slot_id = db.Column(db.Integer, db.ForeignKey("time_slots.id"), nullable=False, index=True)
    # mirrors time_slot_id while the booking is live, NULL once cancelled
    active_slot_id = db.Column(db.Integer, db.ForeignKey("time_slots.id"), nullable=True)

    status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    payment_status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    payment_method = db.Column(db.String(20), nullable=False)

    amount = db.Column(db.Integer, nullable=False)   # smallest unit, after discount
    original_amount = db.Column(db.Integer, nullable=False)
    discount_amount = db.Column(db.Integer, nullable=False, default=0)
    coupon_code = db.Column(db.String(40), nullable=True)
    currency = db.Column(db.String(3), nullable=False, default="USD")

    notes = db.Column(db.Text, nullable=True)
    admin_notes = db.Column(db.Text, nullable=True)
    meeting_url = db.Column(db.String(500), nullable=True)
    meeting_password = db.Column(db.String(100), nullable=True)

    reminder_sent = db.Column(db.Boolean, default=False, nullable=False)
    rescheduled_count = db.Column(db.Integer, default=0, nullable=False)

    cancel_reason = db.Column(db.String(500), nullable=True)
    cancelled_by = db.Column(db.String(10), nullable=True)  # user | admin | system

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    confirmed_at = db.Column(db.DateTime, nullable=True)
    payment_completed_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)

    user = db.relationship("User")
    consultation = db.relationship("Consultation")
    time_slot = db.relationship("TimeSlot", foreign_keys=[time_slot_id])

    __table_args__ = (
        # a slot can back at most one live booking
        db.UniqueConstraint("active_slot_id", name="uq_booking_active_slot"),
    )
