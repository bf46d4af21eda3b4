import re
from datetime import datetime
from models.db import db

CURRENCIES = ("USD", "SAR", "EGP")
CATEGORIES = ("sports", "life_coaching", "group", "vip", "nutrition", "general")
CONSULTATION_TYPES = ("video", "audio", "in_person")

CURRENCY_SYMBOLS = {"USD": "$", "SAR": "ر.س", "EGP": "ج.م"}


def slugify(text: str) -> str:
    # keeps Arabic letters; \w is unicode-aware
    slug = (text or "").strip().lower()
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"[^\w\-]+", "", slug)
    slug = re.sub(r"-{2,}", "-", slug)
    return slug.strip("-_")


def format_price(amount: int, currency: str) -> str:
    symbol = CURRENCY_SYMBOLS.get(currency, currency)
    value = (amount or 0) / 100
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text}{symbol}"


class Consultation(db.Model):
    __tablename__ = "consultations"

    id = db.Column(db.Integer, primary_key=True)

    title = db.Column(db.String(200), nullable=False)         # Arabic
    title_en = db.Column(db.String(200), nullable=True)
    description = db.Column(db.Text, nullable=False)
    description_en = db.Column(db.Text, nullable=True)

    duration_minutes = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Integer, nullable=False, default=0)   # smallest unit
    original_price = db.Column(db.Integer, nullable=True)
    currency = db.Column(db.String(3), nullable=False, default="USD")

    category = db.Column(db.String(30), nullable=False, default="general", index=True)
    consultation_type = db.Column(db.String(20), nullable=False, default="video")
    tags = db.Column(db.JSON, nullable=False, default=list)

    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)
    requires_approval = db.Column(db.Boolean, default=False, nullable=False)
    max_bookings_per_day = db.Column(db.Integer, default=5, nullable=False)
    display_order = db.Column(db.Integer, default=0, nullable=False)
    slug = db.Column(db.String(220), unique=True, nullable=True)

    total_bookings = db.Column(db.Integer, default=0, nullable=False)
    completed_bookings = db.Column(db.Integer, default=0, nullable=False)
    total_revenue = db.Column(db.Integer, default=0, nullable=False)
    average_rating = db.Column(db.Float, default=0.0, nullable=False)
    total_reviews = db.Column(db.Integer, default=0, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    time_slots = db.relationship("TimeSlot", back_populates="consultation", lazy="dynamic")

    @property
    def formatted_price(self) -> str:
        return format_price(self.price, self.currency)

    @property
    def discount_percentage(self) -> int:
        if not self.original_price or self.original_price <= self.price:
            return 0
        return round((self.original_price - self.price) * 100 / self.original_price)

    def record_rating(self, rating: int) -> None:
        total = self.average_rating * self.total_reviews
        self.total_reviews += 1
        self.average_rating = round((total + rating) / self.total_reviews, 2)
