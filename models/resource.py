from datetime import datetime
from models.db import db

RESOURCE_TYPES = ("pdf", "image", "video", "audio", "link")


class ConsultationResource(db.Model):
    __tablename__ = "consultation_resources"

    id = db.Column(db.Integer, primary_key=True)
    consultation_id = db.Column(db.Integer, db.ForeignKey("consultations.id"), nullable=False, index=True)

    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    type = db.Column(db.String(10), nullable=False)
    url = db.Column(db.String(1000), nullable=False)
    # private resources are only shown after booking
    is_public = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
