import pytest

from app import create_app
from config import Config
from models import db
from utils.seed import seed_roles

import factories


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    LOG_LEVEL = "WARNING"
    BCRYPT_ROUNDS = 4
    LOGIN_RATE_MAX_REQUESTS = 1000
    DEFAULT_LANGUAGE = "ar"
    STRIPE_SECRET_KEY = "sk_test_dummy"
    STRIPE_WEBHOOK_SECRET = "whsec_dummy"
    STRIPE_SUCCESS_URL = "http://frontend.test/pay/success"
    STRIPE_CANCEL_URL = "http://frontend.test/pay/cancel"
    PAYPAL_CLIENT_ID = "paypal-client"
    PAYPAL_CLIENT_SECRET = "paypal-secret"
    SMTP_HOST = None


@pytest.fixture
def app(tmp_path):
    config = type("PerTestConfig", (TestConfig,), {
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'test.db'}",
    })
    app = create_app(config)
    with app.app_context():
        db.create_all()
        seed_roles()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield app
        db.session.rollback()


@pytest.fixture
def client(app):
    return app.test_client()


def login(client, email, password=factories.PASSWORD):
    resp = client.post("/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.get_json()
    # double-submit: echo the csrf cookie back in the header
    client.environ_base["HTTP_X_CSRF_TOKEN"] = client.get_cookie("csrf_token").value
    return client


@pytest.fixture
def user_id(app):
    with app.app_context():
        return factories.make_user("client@example.com")


@pytest.fixture
def admin_id(app):
    with app.app_context():
        return factories.make_user("admin@example.com", admin=True)


@pytest.fixture
def user_client(app, user_id):
    return login(app.test_client(), "client@example.com")


@pytest.fixture
def admin_client(app, admin_id):
    return login(app.test_client(), "admin@example.com")


@pytest.fixture
def consultation_id(app):
    with app.app_context():
        return factories.make_consultation()


@pytest.fixture
def slot_id(app, consultation_id):
    with app.app_context():
        return factories.make_slot(consultation_id, hours_ahead=72)
