import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as coaching.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "coaching.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Session cookie name for our auth token
    AUTH_COOKIE_NAME = "coaching_session"

    # 8 hours session lifetime
    SESSION_LIFETIME_SECONDS = 8 * 60 * 60

    # Idle timeout: 30 minutes
    IDLE_TIMEOUT_SECONDS = 30 * 60

    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "false").lower() == "true"

    # Brute-force protection
    MAX_LOGIN_ATTEMPTS = 5
    LOCKOUT_MINUTES = 5

    # Fixed-window rate limits: login per IP, coupon validation per user
    LOGIN_RATE_WINDOW_SECONDS = 60
    LOGIN_RATE_MAX_REQUESTS = 15
    COUPON_RATE_WINDOW_SECONDS = 300
    COUPON_RATE_MAX_REQUESTS = 20

    # Password policy
    PASSWORD_MIN_LEN = 12
    PASSWORD_MAX_LEN = 128
    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

    PROFILE_REQUIRED_FIELDS = ["full_name", "phone_number"]  # required before booking

    # Arabic-first
    DEFAULT_LANGUAGE = os.getenv("DEFAULT_LANGUAGE", "ar")
    DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "USD")

    # Booking policy
    CANCEL_CUTOFF_HOURS = int(os.getenv("CANCEL_CUTOFF_HOURS", "24"))
    MAX_RESCHEDULES = int(os.getenv("MAX_RESCHEDULES", "2"))
    BOOKING_HOLD_MINUTES = int(os.getenv("BOOKING_HOLD_MINUTES", "30"))
    BANK_TRANSFER_HOLD_HOURS = int(os.getenv("BANK_TRANSFER_HOLD_HOURS", "48"))
    REMINDER_WINDOW_HOURS = int(os.getenv("REMINDER_WINDOW_HOURS", "24"))

    # Stripe
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
    STRIPE_SUCCESS_URL = os.getenv("STRIPE_SUCCESS_URL")
    STRIPE_CANCEL_URL = os.getenv("STRIPE_CANCEL_URL")

    # PayPal (Orders v2 REST)
    PAYPAL_CLIENT_ID = os.getenv("PAYPAL_CLIENT_ID")
    PAYPAL_CLIENT_SECRET = os.getenv("PAYPAL_CLIENT_SECRET")
    PAYPAL_MODE = os.getenv("PAYPAL_MODE", "sandbox")
    PAYPAL_RETURN_URL = os.getenv("PAYPAL_RETURN_URL")
    PAYPAL_CANCEL_URL = os.getenv("PAYPAL_CANCEL_URL")
    PAYPAL_TIMEOUT_SECONDS = 15

    FRONTEND_BASE_URL = os.getenv("FRONTEND_BASE_URL", "http://localhost:3000")

    # Email (SMTP)
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")
    SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() == "true"

    # Basic app settings
    DEBUG = False
