from datetime import datetime
from models.db import db

NOTIFICATION_TYPES = ("confirmation", "reminder", "cancellation", "rescheduled")
CHANNELS = ("email", "sms", "in-app")


class BookingNotification(db.Model):
    __tablename__ = "booking_notifications"

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    type = db.Column(db.String(20), nullable=False)
    message = db.Column(db.Text, nullable=False)
    is_read = db.Column(db.Boolean, default=False, nullable=False)
    sent_via = db.Column(db.String(10), nullable=False, default="in-app")

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
