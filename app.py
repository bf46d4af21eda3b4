import logging

import click
from flask import Flask, request, g
from flask_migrate import Migrate
from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError

from config import Config
from models import db
from models.user import User, Role
from routes import ALL_BLUEPRINTS
from security.csrf import require_csrf
from utils.auth_context import load_current_user
from utils.booking_rules import BookingRuleError
from utils.i18n import error_response
from utils.maintenance import release_expired_holds, send_reminders
from utils.payment_providers import PaymentProviderError
from utils.seed import seed_roles, seed_consultations

logger = logging.getLogger(__name__)

CSRF_EXEMPT_PATHS = {
    "/auth/login",
    "/auth/register",
    "/health",
    "/webhooks/stripe",
}


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    for bp in ALL_BLUEPRINTS:
        app.register_blueprint(bp)

    db.init_app(app)
    Migrate(app, db)

    # Seed default roles once the schema exists (idempotent)
    with app.app_context():
        if inspect(db.engine).has_table("roles"):
            seed_roles()

    @app.before_request
    def _load_user():
        load_current_user()

    @app.before_request
    def _csrf_protect():
        # Only state-changing requests from cookie-authenticated users
        if request.method not in ("POST", "PUT", "PATCH", "DELETE"):
            return None
        if request.path in CSRF_EXEMPT_PATHS:
            return None
        if getattr(g, "user", None) is not None:
            return require_csrf()
        return None

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        if resp.mimetype == "text/html":
            resp.headers["Content-Security-Policy"] = "default-src 'none'; style-src 'unsafe-inline'; frame-ancestors 'none';"
        else:
            resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_error_handlers(app)
    register_cli(app)

    return app


def register_error_handlers(app):
    @app.errorhandler(BookingRuleError)
    def _booking_rule(exc):
        db.session.rollback()
        return error_response(exc.key, exc.status, exc.params)

    @app.errorhandler(PaymentProviderError)
    def _provider(exc):
        db.session.rollback()
        logger.error("Payment provider error on %s: %s", request.path, exc)
        return error_response("provider_error", 502)

    @app.errorhandler(IntegrityError)
    def _integrity(exc):
        db.session.rollback()
        logger.warning("Integrity error on %s: %s", request.path, exc.orig)
        return error_response("conflict", 409)


def register_cli(app):
    @app.cli.command("make-admin")
    @click.argument("email")
    def make_admin(email):
        """Promote a user to ADMIN by email (bootstrap)."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            click.echo("User not found", err=True)
            raise SystemExit(1)

        admin_role = Role.query.filter_by(name="ADMIN").first()
        if not admin_role:
            admin_role = Role(name="ADMIN")
            db.session.add(admin_role)

        if admin_role not in user.roles:
            user.roles.append(admin_role)
        db.session.commit()

        click.echo(f"{user.email} promoted to ADMIN")

    @app.cli.command("release-expired-holds")
    def release_holds_command():
        """Cancel unpaid bookings whose slot hold has expired."""
        click.echo(f"Released {release_expired_holds()} booking(s)")

    @app.cli.command("send-reminders")
    def send_reminders_command():
        """Send reminders for confirmed bookings starting soon."""
        click.echo(f"Sent {send_reminders()} reminder(s)")

    @app.cli.command("seed-consultations")
    @click.option("--currency", default=None, help="USD, SAR or EGP (defaults to DEFAULT_CURRENCY)")
    def seed_consultations_command(currency):
        """Create the sample consultation catalog if missing."""
        seed_roles()
        created = seed_consultations(currency or app.config.get("DEFAULT_CURRENCY", "USD"))
        click.echo(f"Created {created} consultation(s)")


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
