from datetime import date, datetime, timedelta

from models import db
from models.booking import Booking
from models.feedback import ConsultationFeedback

import factories


def test_admin_routes_forbidden_for_clients(user_client):
    for path in ("/admin/dashboard", "/admin/bookings", "/admin/payments", "/admin/audit-logs"):
        resp = user_client.get(path)
        assert resp.status_code == 403, path


def test_admin_routes_require_login(client):
    resp = client.get("/admin/dashboard")
    assert resp.status_code == 401


def test_dashboard_counts(app, admin_client, user_id, slot_id):
    with app.app_context():
        factories.make_booking(user_id, slot_id, status="confirmed", payment_status="completed")

    body = admin_client.get("/admin/dashboard").get_json()
    assert body["bookings"] == {"pending": 0, "confirmed": 1, "cancelled": 0, "completed": 0}
    assert body["upcoming_confirmed"] == 1
    assert body["users"] == 2


def test_revenue_per_currency(app, admin_client, user_id, consultation_id):
    with app.app_context():
        for hours in (72, 96):
            slot = factories.make_slot(consultation_id, hours_ahead=hours)
            booking_id = factories.make_booking(user_id, slot, status="confirmed", payment_status="completed")
            factories.make_payment(booking_id, status="completed", transaction_id=f"pi_{hours}")

    body = admin_client.get("/admin/revenue").get_json()
    # factory payments carry no completed_at, so only the unfiltered total sees them
    assert body["revenue"] == {"USD": {"total": 20000, "count": 2, "average": 10000}}
    assert admin_client.get("/admin/revenue?from=bad").status_code == 400


def test_confirm_and_complete_booking(app, admin_client, user_id, slot_id, consultation_id):
    with app.app_context():
        booking_id = factories.make_booking(user_id, slot_id, payment_method="bank_transfer")

    # nothing to review yet
    resp = admin_client.post(f"/admin/bookings/{booking_id}/confirm")
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "Bank transfer is not awaiting review"

    with app.app_context():
        factories.make_payment(booking_id, provider="bank_transfer")

    resp = admin_client.post(f"/admin/bookings/{booking_id}/confirm", json={
        "meeting_url": "https://meet.example.com/abc",
        "admin_notes": "first call",
    })
    assert resp.status_code == 200
    assert resp.get_json()["meeting_url"] == "https://meet.example.com/abc"

    # money has not arrived yet
    resp = admin_client.post(f"/admin/bookings/{booking_id}/complete")
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "Booking cannot be completed while payment is pending"

    with app.app_context():
        Booking.query.get(booking_id).payment_status = "completed"
        db.session.commit()

    resp = admin_client.post(f"/admin/bookings/{booking_id}/complete")
    assert resp.status_code == 200
    consultation = admin_client.get(f"/consultations/{consultation_id}").get_json()
    assert consultation["completed_bookings"] == 1
    assert consultation["total_revenue"] == 10000


def test_admin_cancel_releases_slot(app, admin_client, user_id, slot_id):
    with app.app_context():
        booking_id = factories.make_booking(user_id, slot_id)

    resp = admin_client.post(f"/admin/bookings/{booking_id}/cancel", json={"reason": "coach sick"})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["refunded"] is False
    assert body["booking"]["cancelled_by"] == "admin"

    slots = admin_client.get(f"/consultations/{body['booking']['consultation_id']}/slots").get_json()
    assert [s["id"] for s in slots] == [slot_id]


def test_booking_list_filters_and_pages(app, admin_client, user_id, consultation_id):
    with app.app_context():
        for hours in (72, 96, 120):
            slot = factories.make_slot(consultation_id, hours_ahead=hours)
            factories.make_booking(user_id, slot)

    body = admin_client.get("/admin/bookings?status=pending&per_page=2").get_json()
    assert body["total"] == 3
    assert len(body["items"]) == 2
    assert body["items"][0]["user_email"] == "client@example.com"
    assert admin_client.get("/admin/bookings?status=confirmed").get_json()["total"] == 0


def test_consultation_crud(admin_client, client):
    resp = admin_client.post("/consultations", json={
        "title": "تدريب الحياة",
        "title_en": "Life Coaching 101",
        "description": "جلسة",
        "duration_minutes": 45,
        "price": 25000,
        "currency": "SAR",
        "category": "life_coaching",
    })
    assert resp.status_code == 201
    created = resp.get_json()
    assert created["slug"] == "life-coaching-101"

    assert client.get("/consultations/life-coaching-101").get_json()["price"] == 25000

    resp = admin_client.patch(f"/consultations/{created['id']}", json={"price": -5})
    assert resp.status_code == 400
    assert resp.get_json()["fields"] == ["price"]

    resp = admin_client.patch(f"/consultations/{created['id']}", json={"original_price": 30000})
    assert resp.get_json()["discount_percentage"] == 17

    assert admin_client.post(f"/consultations/{created['id']}/deactivate").status_code == 200
    assert client.get(f"/consultations/{created['id']}").status_code == 404
    assert admin_client.delete(f"/consultations/{created['id']}").status_code == 200


def test_consultation_with_bookings_cannot_be_deleted(app, admin_client, user_id, consultation_id, slot_id):
    with app.app_context():
        factories.make_booking(user_id, slot_id)

    resp = admin_client.delete(f"/consultations/{consultation_id}")
    assert resp.status_code == 409
    assert resp.get_json()["arabic"] == "لا يمكن حذف استشارة لها حجوزات"


def test_private_resources_need_a_confirmed_booking(app, admin_client, user_client, user_id, consultation_id, slot_id):
    resp = admin_client.post(f"/consultations/{consultation_id}/resources", json={
        "title": "Workbook", "url": "https://files.example.com/workbook.pdf", "type": "pdf",
    })
    assert resp.status_code == 201

    assert user_client.get(f"/consultations/{consultation_id}/resources").get_json() == []
    with app.app_context():
        factories.make_booking(user_id, slot_id, status="confirmed", payment_status="completed")
    titles = [r["title"] for r in user_client.get(f"/consultations/{consultation_id}/resources").get_json()]
    assert titles == ["Workbook"]


def test_create_slot(admin_client, consultation_id):
    start = (datetime.utcnow() + timedelta(days=5)).replace(microsecond=0)
    resp = admin_client.post("/slots", json={"consultation_id": consultation_id, "start_time": start.isoformat()})
    assert resp.status_code == 201
    assert resp.get_json()["end_time"] == (start + timedelta(minutes=60)).isoformat()

    again = admin_client.post("/slots", json={"consultation_id": consultation_id, "start_time": start.isoformat()})
    assert again.status_code == 409

    past = (datetime.utcnow() - timedelta(days=1)).isoformat()
    resp = admin_client.post("/slots", json={"consultation_id": consultation_id, "start_time": past})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Cannot create time slots in the past"


def test_generate_slots_skips_existing(admin_client, consultation_id):
    first = date.today() + timedelta(days=2)
    payload = {
        "consultation_id": consultation_id,
        "start_date": first.isoformat(),
        "end_date": (first + timedelta(days=2)).isoformat(),
        "times": ["09:00", "14:30"],
    }
    assert admin_client.post("/slots/generate", json=payload).get_json() == {"created": 6, "skipped": 0}
    assert admin_client.post("/slots/generate", json=payload).get_json() == {"created": 0, "skipped": 6}

    payload["end_date"] = (first + timedelta(days=120)).isoformat()
    assert admin_client.post("/slots/generate", json=payload).status_code == 400


def test_release_holds_endpoint(app, admin_client, user_id, slot_id):
    with app.app_context():
        booking_id = factories.make_booking(user_id, slot_id, created_at=datetime.utcnow() - timedelta(hours=1))

    assert admin_client.post("/admin/maintenance/release-holds").get_json() == {"released": 1}
    assert admin_client.get(f"/bookings/{booking_id}").get_json()["status"] == "cancelled"


def test_feedback_visibility(app, admin_client, client, user_id, consultation_id):
    with app.app_context():
        slot = factories.make_slot(consultation_id, hours_ahead=-48)
        booking_id = factories.make_booking(user_id, slot, status="completed", payment_status="completed")
        feedback = ConsultationFeedback(booking_id=booking_id, user_id=user_id,
                                        consultation_id=consultation_id, rating=5)
        db.session.add(feedback)
        db.session.commit()
        feedback_id = feedback.id

    assert client.get(f"/consultations/{consultation_id}/feedback").get_json() == []
    resp = admin_client.post(f"/admin/feedback/{feedback_id}/visibility", json={"is_public": True})
    assert resp.status_code == 200
    assert len(client.get(f"/consultations/{consultation_id}/feedback").get_json()) == 1
    assert admin_client.post("/admin/feedback/999/visibility", json={"is_public": True}).status_code == 404


def test_audit_log_filters(admin_client, admin_id):
    admin_client.get("/admin/dashboard")

    rows = admin_client.get("/admin/audit-logs?action=ADMIN_DASHBOARD_VIEW").get_json()
    assert len(rows) == 1
    assert rows[0]["user_id"] == admin_id

    logins = admin_client.get("/admin/audit-logs?action=LOGIN_SUCCESS").get_json()
    assert logins[0]["metadata"] == {"revoked_sessions": 0}
    assert admin_client.get("/admin/audit-logs?date=yesterday").status_code == 400
