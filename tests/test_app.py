from models.consultation import Consultation
from models.payment import Payment
from models.user import User

import factories


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok", "database": True}
    assert resp.headers["X-Frame-Options"] == "DENY"


def test_unknown_consultation_is_bilingual(client):
    resp = client.get("/consultations/does-not-exist")
    assert resp.status_code == 404
    assert resp.get_json() == {"error": "Consultation not found", "arabic": "الاستشارة غير موجودة"}


def test_pay_success_page_escapes_input(client):
    resp = client.get("/pay/success?booking=<script>")
    assert resp.status_code == 200
    assert resp.mimetype == "text/html"
    assert b"<script>" not in resp.data
    assert "style-src 'unsafe-inline'" in resp.headers["Content-Security-Policy"]


def test_pay_cancel_page_cancels_pending_stripe_payment(app, client, user_id, slot_id):
    with app.app_context():
        booking_id = factories.make_booking(user_id, slot_id)
        payment_id = factories.make_payment(booking_id, provider_ref="cs_test_cancel")

    assert client.get(f"/pay/cancel?payment_id={payment_id}").status_code == 200
    with app.app_context():
        assert Payment.query.get(payment_id).status == "cancelled"


def test_make_admin_command(app, user_id):
    result = app.test_cli_runner().invoke(args=["make-admin", "client@example.com"])
    assert "promoted to ADMIN" in result.output
    with app.app_context():
        assert User.query.get(user_id).is_admin


def test_seed_consultations_command(app):
    runner = app.test_cli_runner()
    assert "Created 4 consultation(s)" in runner.invoke(args=["seed-consultations", "--currency", "SAR"]).output
    assert "Created 0 consultation(s)" in runner.invoke(args=["seed-consultations"]).output
    with app.app_context():
        assert {c.currency for c in Consultation.query.all()} == {"SAR"}


def test_maintenance_commands(app):
    runner = app.test_cli_runner()
    assert "Released 0 booking(s)" in runner.invoke(args=["release-expired-holds"]).output
    assert "Sent 0 reminder(s)" in runner.invoke(args=["send-reminders"]).output
