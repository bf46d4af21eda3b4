from conftest import login

import factories


def test_register_login_me(client):
    resp = client.post("/auth/register", json={
        "email": "New@Example.com",
        "password": factories.PASSWORD,
        "full_name": "Sara Ali",
        "phone_number": "+966511111111",
    })
    assert resp.status_code == 201

    login(client, "new@example.com")
    me = client.get("/auth/me").get_json()
    assert me["email"] == "new@example.com"
    assert me["roles"] == ["CLIENT"]
    assert me["preferred_language"] == "ar"
    assert me["profile_complete"] is True


def test_register_rejects_weak_password_in_both_languages(client):
    resp = client.post("/auth/register", json={"email": "weak@example.com", "password": "short"})
    assert resp.status_code == 400

    body = resp.get_json()
    assert body["error"] == "Password does not meet policy"
    assert body["arabic"] == "كلمة المرور لا تستوفي الشروط"
    assert "Password must be at least 12 characters" in body["details"]
    assert len(body["details_arabic"]) == len(body["details"])


def test_register_duplicate_email(client, user_id):
    resp = client.post("/auth/register", json={"email": "client@example.com", "password": factories.PASSWORD})
    assert resp.status_code == 409
    assert resp.get_json()["arabic"] == "البريد الإلكتروني مسجل مسبقاً"


def test_bad_credentials(client, user_id):
    resp = client.post("/auth/login", json={"email": "client@example.com", "password": "Wrong!Passw0rd"})
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "Invalid credentials"


def test_lockout_after_repeated_failures(client, user_id):
    for _ in range(4):
        resp = client.post("/auth/login", json={"email": "client@example.com", "password": "nope"})
        assert resp.status_code == 401

    resp = client.post("/auth/login", json={"email": "client@example.com", "password": "nope"})
    assert resp.status_code == 429
    assert resp.get_json()["lockout_minutes"] == 5

    # even the right password is refused while locked
    resp = client.post("/auth/login", json={"email": "client@example.com", "password": factories.PASSWORD})
    assert resp.status_code == 429
    assert resp.get_json()["retry_after_seconds"] > 0


def test_me_requires_login(client):
    resp = client.get("/auth/me")
    assert resp.status_code == 401
    assert resp.get_json()["arabic"] == "يجب تسجيل الدخول"


def test_state_change_requires_csrf_header(user_client):
    del user_client.environ_base["HTTP_X_CSRF_TOKEN"]
    resp = user_client.post("/auth/profile", json={"full_name": "Changed"})
    assert resp.status_code == 403
    assert resp.get_json()["error"] == "CSRF validation failed"


def test_profile_update(user_client):
    resp = user_client.post("/auth/profile", json={"full_name": " Omar ", "preferred_language": "en"})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["full_name"] == "Omar"
    assert body["preferred_language"] == "en"

    resp = user_client.post("/auth/profile", json={"preferred_language": "fr"})
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "preferred_language"


def test_change_password_and_logout(user_client):
    new_password = "An0ther!Passw0rd"
    resp = user_client.post("/auth/change_password", json={
        "current_password": factories.PASSWORD,
        "new_password": new_password,
    })
    assert resp.status_code == 200

    assert user_client.post("/auth/logout").status_code == 200
    assert user_client.get("/auth/me").status_code == 401
    login(user_client, "client@example.com", new_password)


def test_second_login_revokes_first_session(app, user_id):
    first = login(app.test_client(), "client@example.com")
    login(app.test_client(), "client@example.com")
    assert first.get("/auth/me").status_code == 401


def test_password_strength(client):
    weak = client.post("/auth/password_strength", json={"password": "abc"}).get_json()
    strong = client.post("/auth/password_strength", json={"password": "Correct!Horse9Battery"}).get_json()
    assert weak["valid"] is False
    assert strong["valid"] is True
    assert strong["score"] > weak["score"]


def test_last_admin_cannot_be_demoted(admin_client, admin_id):
    resp = admin_client.post(f"/admin/users/{admin_id}/roles", json={"roles": ["CLIENT"]})
    assert resp.status_code == 403
    assert resp.get_json()["error"] == "Cannot remove the last ADMIN"


def test_clients_cannot_use_admin_routes(user_client, user_id):
    resp = user_client.post(f"/admin/users/{user_id}/roles", json={"roles": ["ADMIN"]})
    assert resp.status_code == 403
    assert resp.get_json()["arabic"] == "غير مصرح لك بالوصول"
