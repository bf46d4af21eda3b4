from datetime import datetime
from models.db import db

class TimeSlot(db.Model):
    __tablename__ = "time_slots"

    id = db.Column(db.Integer, primary_key=True)

    consultation_id = db.Column(db.Integer, db.ForeignKey("consultations.id"), nullable=False, index=True)
    start_time = db.Column(db.DateTime, nullable=False, index=True)
    end_time = db.Column(db.DateTime, nullable=False)

    # flipped false while a live booking holds the slot
    is_available = db.Column(db.Boolean, default=True, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    consultation = db.relationship("Consultation", back_populates="time_slots")

    __table_args__ = (
        db.UniqueConstraint("consultation_id", "start_time", name="uq_consultation_slot_start"),
    )
