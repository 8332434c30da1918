"""
Test configuration for the promo API.
"""
import pytest
from flask_jwt_extended import create_access_token
from werkzeug.security import generate_password_hash

from promoapi import create_app
from promoapi.config import TestConfig
from promoapi.extensions import db
from promoapi.model import User


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _user(email, role, groups=None):
    u = User(email=email, name=email.split("@")[0], role=role, groups=groups,
             password_hash=generate_password_hash("secret123"))
    db.session.add(u)
    db.session.commit()
    return u


@pytest.fixture
def admin(app):
    return _user("admin@example.com", "admin")


@pytest.fixture
def shopper(app):
    return _user("shopper@example.com", "user", groups=["vip"])


@pytest.fixture
def admin_headers(admin):
    return {"Authorization": f"Bearer {create_access_token(identity=str(admin.id))}"}


@pytest.fixture
def shopper_headers(shopper):
    return {"Authorization": f"Bearer {create_access_token(identity=str(shopper.id))}"}


@pytest.fixture
def coupon_payload():
    """Minimal valid coupon; tests override what they care about."""
    def build(**overrides):
        payload = {
            "code": "save20",
            "name": "Save 20%",
            "type": "percentage",
            "value": 20,
            "valid_from": "2020-01-01T00:00:00Z",
            "valid_until": "2099-01-01T00:00:00Z",
        }
        payload.update(overrides)
        return payload
    return build
