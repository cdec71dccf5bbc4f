import pytest

from app import create_app
from config import TestConfig
from models import db as _db
from models.user import User
from security.csrf import CSRF_COOKIE, CSRF_HEADER
from security.password import hash_password


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def make_user(db):
    def _make(email="buyer@example.com", password="Correct-Horse-1", account_type="buyer", status="active"):
        user = User(
            email=email,
            password_hash=hash_password(password),
            account_type=account_type,
            status=status,
        )
        db.session.add(user)
        db.session.commit()
        return user
    return _make


@pytest.fixture
def admin_client(client, make_user):
    """Client logged in as an active admin; returns (client, admin, csrf_headers)."""
    admin = make_user(email="admin@example.com", password="Admin-Pass-123", account_type="admin")
    resp = client.post("/auth/login", json={"email": "admin@example.com", "password": "Admin-Pass-123"})
    assert resp.status_code == 200
    token = client.get_cookie(CSRF_COOKIE).value
    return client, admin, {CSRF_HEADER: token}
