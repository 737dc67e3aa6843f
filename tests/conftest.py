import hashlib
import hmac
import json
import time
from unittest.mock import Mock

import pytest
from faker import Faker

from marketingpro import create_app
from marketingpro.extensions import db
from marketingpro.models import SubscriptionState, User
from marketingpro.services.telephony import AssignedNumber

# Initialize Faker for generating test data
fake = Faker()

WEBHOOK_SECRET = "whsec_test_secret"


# Custom pytest marks for organizing tests
def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "integration: mark test as exercising the full HTTP stack"
    )
    config.addinivalue_line(
        "markers",
        "payment: mark test as payment-related"
    )


def sign_payload(payload, secret=WEBHOOK_SECRET, timestamp=None):
    """Build a Stripe-Signature header the way Stripe signs webhook bodies."""
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8")
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed_payload = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def stripe_event(event_type, obj, event_id=None):
    """Serialized Stripe event envelope."""
    return json.dumps({
        "id": event_id or f"evt_{fake.uuid4().replace('-', '')[:24]}",
        "object": "event",
        "type": event_type,
        "created": int(time.time()),
        "livemode": False,
        "data": {"object": obj},
    })


@pytest.fixture()
def app():
    """Application on in-memory SQLite with mocked outbound collaborators"""
    app = create_app("testing")

    telephony = Mock(name="telephony")
    telephony.assign_number.side_effect = lambda user_id, area_code=None: AssignedNumber(
        phone_number=f"+1555{fake.numerify('#######')}",
        provider_number_id=f"num_{fake.uuid4()[:8]}",
    )
    app.extensions["telephony"] = telephony
    app.extensions["notifier"] = Mock(name="notifier")

    with app.app_context():
        db.create_all()

        yield app

        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def telephony(app):
    return app.extensions["telephony"]


@pytest.fixture()
def notifier(app):
    return app.extensions["notifier"]


@pytest.fixture()
def make_user(app):
    """Factory creating users directly in the datastore"""
    def _make_user(**overrides):
        data = {
            "id": f"user_{fake.uuid4()[:12]}",
            "email": fake.unique.email(),
            "email_verified": False,
            "subscription_state": SubscriptionState.NONE,
        }
        data.update(overrides)
        user = User(**data)
        db.session.add(user)
        db.session.commit()
        return user

    return _make_user


@pytest.fixture()
def reload():
    """Re-read a row from the datastore, bypassing the identity map"""
    def _reload(model, pk):
        return db.session.get(model, pk, populate_existing=True)

    return _reload


@pytest.fixture()
def post_webhook(client):
    """POST a signed Stripe event to the webhook endpoint"""
    def _post(body, signature=None, sign=True):
        headers = {"Content-Type": "application/json"}
        if sign:
            headers["Stripe-Signature"] = signature or sign_payload(body)
        return client.post("/api/webhooks/stripe", data=body, headers=headers)

    return _post


@pytest.fixture()
def sign():
    return sign_payload


@pytest.fixture()
def make_event():
    return stripe_event
