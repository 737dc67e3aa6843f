from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest

from marketingpro.billing.state_machine import SubscriptionStateMachine
from marketingpro.errors import DatastoreUnavailable, GatewayUnavailable
from marketingpro.extensions import db
from marketingpro.models import CheckoutSession, CheckoutStatus, Payment, PhoneAssignment, ProcessedEvent, SubscriptionState, User
from marketingpro.services.payment_gateway import StripeGateway
from marketingpro.utils.dates import utcnow

pytestmark = [pytest.mark.integration, pytest.mark.payment]


def checkout_object(user_id, plan="pro", checkout_session_id=None, email="buyer@example.com"):
    metadata = {"userId": user_id, "plan": plan}
    if checkout_session_id:
        metadata["checkoutSessionId"] = checkout_session_id
    return {
        "id": "cs_test_a1",
        "object": "checkout.session",
        "customer": "cus_123",
        "subscription": "sub_123",
        "customer_email": email,
        "payment_status": "paid",
        "payment_intent": "pi_123",
        "amount_total": 4900,
        "currency": "usd",
        "metadata": metadata,
    }


@pytest.fixture
def activate(make_event, post_webhook):
    def _activate(user, plan="pro", event_id=None):
        body = make_event("checkout.session.completed", checkout_object(user.id, plan), event_id=event_id)
        response = post_webhook(body)
        assert response.status_code == 200
        return response

    return _activate


def test_checkout_end_to_end(client, make_user, make_event, post_webhook, telephony, notifier, reload):
    """Pending checkout, paid checkout webhook, active subscription with a phone number"""
    user = make_user(subscription_state=SubscriptionState.NONE)
    created = client.post("/api/payments/checkout-session", json={
        "userId": user.id, "email": user.email, "plan": "pro", "price": 49,
    })
    session_id = created.get_json()["sessionId"]

    body = make_event("checkout.session.completed", checkout_object(user.id, "pro"), event_id="evt_e2e")
    response = post_webhook(body)

    assert response.status_code == 200
    assert response.get_json() == {"received": True}

    refreshed = reload(User, user.id)
    assert refreshed.subscription_state == SubscriptionState.ACTIVE
    assert refreshed.subscription_plan == "pro"
    assert refreshed.subscription_end_date > utcnow()
    assert refreshed.assigned_phone_number is not None

    checkout = reload(CheckoutSession, session_id)
    assert checkout.status == CheckoutStatus.COMPLETED
    assert checkout.provider_session_id == "cs_test_a1"

    assert PhoneAssignment.query.filter_by(user_id=user.id).count() == 1
    telephony.assign_number.assert_called_once_with(user.id)
    notifier.send_verification_email.assert_called_once()
    assert ProcessedEvent.query.filter_by(provider_event_id="evt_e2e").count() == 1


def test_checkout_completes_referenced_session(make_user, make_event, post_webhook, reload):
    user = make_user()
    checkout = CheckoutSession(
        user_id=user.id, email=user.email, plan="pro", price=49,
        expires_at=utcnow() + timedelta(hours=1),
    )
    db.session.add(checkout)
    db.session.commit()

    body = make_event("checkout.session.completed", checkout_object(user.id, "pro", checkout.id))
    assert post_webhook(body).status_code == 200

    assert reload(CheckoutSession, checkout.id).status == CheckoutStatus.COMPLETED


def test_checkout_for_cancelled_session_still_activates(client, make_user, make_event, post_webhook, reload):
    """Payment already taken; a terminal session is logged, not an error"""
    user = make_user()
    created = client.post("/api/payments/checkout-session", json={
        "userId": user.id, "email": user.email, "plan": "pro", "price": 49,
    })
    session_id = created.get_json()["sessionId"]
    client.patch("/api/payments/checkout-session", json={"sessionId": session_id, "status": "cancelled"})

    body = make_event("checkout.session.completed", checkout_object(user.id, "pro", session_id))
    assert post_webhook(body).status_code == 200

    assert reload(User, user.id).subscription_state == SubscriptionState.ACTIVE
    assert reload(CheckoutSession, session_id).status == CheckoutStatus.CANCELLED


def test_duplicate_delivery_is_applied_once(make_user, make_event, post_webhook, telephony):
    user = make_user()
    body = make_event("checkout.session.completed", checkout_object(user.id), event_id="evt_dup")

    with patch.object(SubscriptionStateMachine, "apply_checkout_completed",
                      wraps=SubscriptionStateMachine().apply_checkout_completed) as apply:
        first = post_webhook(body)
        second = post_webhook(body)

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.get_json()["duplicate"] is True
    assert apply.call_count == 1
    assert telephony.assign_number.call_count == 1
    assert ProcessedEvent.query.filter_by(provider_event_id="evt_dup").count() == 1


def test_checkout_records_payment_once(make_user, make_event, post_webhook):
    """A redelivery that slips past the ledger adds no second payment"""
    user = make_user()
    body = make_event("checkout.session.completed", checkout_object(user.id), event_id="evt_pay")

    assert post_webhook(body).status_code == 200
    ProcessedEvent.query.filter_by(provider_event_id="evt_pay").delete()
    db.session.commit()
    assert post_webhook(body).status_code == 200

    payments = Payment.query.filter_by(user_id=user.id).all()
    assert len(payments) == 1
    payment = payments[0]
    assert payment.transaction_id == "cs_test_a1"
    assert payment.payment_intent_id == "pi_123"
    assert payment.amount == 4900
    assert payment.currency == "usd"
    assert payment.provider == "stripe"
    assert payment.status == "completed"
    assert payment.plan == "pro"


def test_invalid_signature_writes_nothing(make_user, make_event, post_webhook, sign, reload):
    user = make_user()
    body = make_event("checkout.session.completed", checkout_object(user.id))

    response = post_webhook(body, signature=sign(body, "whsec_wrong"))

    assert response.status_code == 400
    assert reload(User, user.id).subscription_state == SubscriptionState.NONE
    assert ProcessedEvent.query.count() == 0


def test_missing_signature_is_rejected(make_user, make_event, post_webhook):
    user = make_user()
    body = make_event("checkout.session.completed", checkout_object(user.id))

    response = post_webhook(body, sign=False)

    assert response.status_code == 400
    assert ProcessedEvent.query.count() == 0


@pytest.mark.parametrize("body", [
    "this is not json",
    '{"id": "evt_nodata", "type": "checkout.session.completed", "data": {}}',
])
def test_signed_unparseable_body_is_acknowledged(post_webhook, body):
    response = post_webhook(body)

    assert response.status_code == 200
    assert response.get_json() == {"received": True, "applied": False}
    assert ProcessedEvent.query.count() == 0


def test_unknown_event_is_acknowledged(make_event, post_webhook):
    body = make_event("customer.created", {"id": "cus_1", "object": "customer"})

    response = post_webhook(body)

    assert response.status_code == 200
    assert response.get_json()["ignored"] is True


def test_unknown_user_is_acknowledged_without_marking(make_event, post_webhook):
    body = make_event("checkout.session.completed", checkout_object("user_missing"), event_id="evt_nouser")

    response = post_webhook(body)

    assert response.status_code == 200
    assert response.get_json()["applied"] is False
    assert ProcessedEvent.query.count() == 0


def test_datastore_failure_is_retryable(make_user, make_event, post_webhook, reload):
    """503 without a ledger row, so the redelivery is applied"""
    user = make_user()
    body = make_event("checkout.session.completed", checkout_object(user.id), event_id="evt_retry")

    with patch.object(SubscriptionStateMachine, "apply_checkout_completed",
                      side_effect=DatastoreUnavailable("database is locked")):
        response = post_webhook(body)

    assert response.status_code == 503
    assert ProcessedEvent.query.count() == 0
    assert reload(User, user.id).subscription_state == SubscriptionState.NONE

    redelivery = post_webhook(body)

    assert redelivery.status_code == 200
    assert reload(User, user.id).subscription_state == SubscriptionState.ACTIVE
    assert ProcessedEvent.query.filter_by(provider_event_id="evt_retry").count() == 1


def test_unexpected_handler_error_is_500(make_user, make_event, post_webhook):
    user = make_user()
    body = make_event("checkout.session.completed", checkout_object(user.id))

    with patch.object(SubscriptionStateMachine, "apply_checkout_completed", side_effect=RuntimeError("bug")):
        response = post_webhook(body)

    assert response.status_code == 500
    assert ProcessedEvent.query.count() == 0


def test_provisioning_failure_keeps_subscription_active(make_user, make_event, post_webhook, telephony, reload):
    telephony.assign_number.side_effect = RuntimeError("Telnyx outage")
    user = make_user()
    body = make_event("checkout.session.completed", checkout_object(user.id))

    response = post_webhook(body)

    assert response.status_code == 200
    refreshed = reload(User, user.id)
    assert refreshed.subscription_state == SubscriptionState.ACTIVE
    assert refreshed.assigned_phone_number is None


def test_subscription_updated_before_checkout(make_user, make_event, post_webhook, activate, reload):
    """Out-of-order delivery still ends Active with the checkout's plan"""
    user = make_user()
    update = make_event("customer.subscription.updated", {
        "id": "sub_123", "status": "active", "metadata": {"userId": user.id},
    })

    assert post_webhook(update).status_code == 200
    activate(user, plan="pro")

    refreshed = reload(User, user.id)
    assert refreshed.subscription_state == SubscriptionState.ACTIVE
    assert refreshed.subscription_plan == "pro"


def test_subscription_lapse_and_deletion(make_user, make_event, post_webhook, activate, reload):
    user = make_user()
    activate(user)

    lapse = make_event("customer.subscription.updated", {
        "id": "sub_123", "status": "past_due", "metadata": {"userId": user.id},
    })
    assert post_webhook(lapse).status_code == 200
    assert reload(User, user.id).subscription_state == SubscriptionState.PAST_DUE

    deleted = make_event("customer.subscription.deleted", {"id": "sub_123", "metadata": {"userId": user.id}})
    assert post_webhook(deleted).status_code == 200
    assert reload(User, user.id).subscription_state == SubscriptionState.CANCELLED


def test_payment_failed_resolves_user_through_gateway(make_user, make_event, post_webhook, activate, reload):
    user = make_user()
    activate(user)
    body = make_event("invoice.payment_failed", {"id": "in_1", "subscription": "sub_123", "metadata": {}})

    with patch.object(StripeGateway, "retrieve_subscription",
                      return_value={"id": "sub_123", "metadata": {"userId": user.id}}) as retrieve:
        response = post_webhook(body)

    assert response.status_code == 200
    retrieve.assert_called_once_with("sub_123")
    assert reload(User, user.id).subscription_state == SubscriptionState.PAST_DUE


def test_gateway_outage_is_retryable(make_user, make_event, post_webhook, activate):
    user = make_user()
    activate(user)
    body = make_event("invoice.payment_failed", {"id": "in_1", "subscription": "sub_123"})

    with patch.object(StripeGateway, "retrieve_subscription", side_effect=GatewayUnavailable("stripe down")):
        response = post_webhook(body)

    assert response.status_code == 503
    assert ProcessedEvent.query.count() == 1  # only the activation


def test_renewal_reactivates_past_due_user(make_user, make_event, post_webhook, activate, reload):
    user = make_user()
    activate(user, plan="starter")
    failed = make_event("invoice.payment_failed", {
        "id": "in_1", "subscription": "sub_123", "metadata": {"userId": user.id},
    })
    post_webhook(failed)

    renewal = make_event("invoice.payment_succeeded", {
        "id": "in_2",
        "subscription": "sub_123",
        "billing_reason": "subscription_cycle",
        "metadata": {"userId": user.id, "planName": "pro"},
    })
    assert post_webhook(renewal).status_code == 200

    refreshed = reload(User, user.id)
    assert refreshed.subscription_state == SubscriptionState.ACTIVE
    assert refreshed.subscription_plan == "pro"


def test_initial_invoice_does_not_activate(make_user, make_event, post_webhook, reload):
    user = make_user()
    body = make_event("invoice.payment_succeeded", {
        "id": "in_1",
        "subscription": "sub_123",
        "billing_reason": "subscription_create",
        "metadata": {"userId": user.id},
    })

    assert post_webhook(body).status_code == 200
    assert reload(User, user.id).subscription_state == SubscriptionState.NONE


def _counting_redis(count):
    client = MagicMock()
    client.pipeline.return_value.execute.return_value = [count, True]
    return client


def test_rate_limited_webhook_returns_429(app, make_event, post_webhook):
    redis_client = _counting_redis(count=10_000)
    app.extensions["redis"] = redis_client
    app.config["RATE_LIMITING_ENABLED"] = True

    response = post_webhook(make_event("customer.created", {"id": "cus_1"}))

    assert response.status_code == 429
    assert int(response.headers["Retry-After"]) > 0
    redis_client.pipeline.assert_called_once()
