from .health import health_bp
from .auth import auth_bp
from .consultations import consultations_bp
from .timeslots import timeslots_bp
from .booking import booking_bp
from .payments import payments_bp
from .stripe_webhook import webhook_bp
from .pay_pages import pay_pages_bp
from .coupons import coupons_bp
from .admin import admin_bp
from .audit_logs import audit_bp

ALL_BLUEPRINTS = (
    health_bp,
    auth_bp,
    consultations_bp,
    timeslots_bp,
    booking_bp,
    payments_bp,
    webhook_bp,
    pay_pages_bp,
    coupons_bp,
    admin_bp,
    audit_bp,
)
