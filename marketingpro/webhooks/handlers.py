# marketingpro/webhooks/handlers.py
"""
One handler per typed event.

Each handler receives the dispatcher (for its collaborators) and the event,
applies the event through the checkout tracker and the subscription state
machine, and returns the id of a user that needs provisioning, or None.
"""

import logging

from marketingpro.billing.payments import record_checkout_payment
from marketingpro.errors import AlreadyTerminal, CheckoutSessionNotFound, InvalidEventPayload
from marketingpro.webhooks.events import (
    CheckoutCompleted,
    InvoicePaymentFailed,
    InvoicePaymentSucceeded,
    SubscriptionDeleted,
    SubscriptionUpdated,
)

logger = logging.getLogger(__name__)


def _require_user_id(event):
    if not event.user_id:
        raise InvalidEventPayload(f"{event.event_type} {event.event_id} has no userId in metadata")
    return event.user_id


def handle_checkout_completed(dispatcher, event):
    user_id = _require_user_id(event)
    if not event.plan:
        raise InvalidEventPayload(f"Checkout {event.event_id} has no plan in metadata")

    dispatcher.state_machine.apply_checkout_completed(
        user_id,
        plan=event.plan,
        provider_session_id=event.provider_session_id,
        provider_customer_id=event.customer_id,
        provider_subscription_id=event.subscription_id,
    )

    _record_payment(event, user_id)
    _complete_checkout_session(dispatcher, event, user_id)
    return user_id


def _record_payment(event, user_id):
    if not event.provider_session_id:
        logger.warning(
            "Checkout has no provider session id, payment not recorded",
            extra={"event_id": event.event_id, "user_id": user_id},
        )
        return

    record_checkout_payment(
        user_id,
        event.provider_session_id,
        amount=event.amount_total,
        currency=event.currency,
        plan=event.plan,
        payment_intent_id=event.payment_intent_id,
    )


def _complete_checkout_session(dispatcher, event, user_id):
    tracker = dispatcher.tracker

    session_id = event.checkout_session_id
    if session_id is None:
        pending = tracker.find_pending(user_id, event.plan)
        if pending is None:
            logger.info(
                "No pending checkout session to complete",
                extra={"event_id": event.event_id, "user_id": user_id, "plan": event.plan},
            )
            return
        session_id = pending.id

    try:
        tracker.complete(
            session_id,
            provider_session_id=event.provider_session_id,
            provider_customer_id=event.customer_id,
        )
    except AlreadyTerminal as e:
        logger.info(
            "Checkout session already terminal",
            extra={"event_id": event.event_id, "session_id": session_id, "status": e.status},
        )
    except CheckoutSessionNotFound:
        logger.warning(
            "Checkout session referenced by webhook not found",
            extra={"event_id": event.event_id, "session_id": session_id},
        )


def handle_subscription_updated(dispatcher, event):
    user_id = _require_user_id(event)
    dispatcher.state_machine.apply_status_update(
        user_id,
        event.status,
        current_period_end=event.current_period_end,
    )
    return None


def handle_subscription_deleted(dispatcher, event):
    user_id = _require_user_id(event)
    dispatcher.state_machine.apply_cancellation(user_id)
    return None


def handle_invoice_payment_failed(dispatcher, event):
    user_id = event.user_id
    if not user_id and event.subscription_id:
        metadata = dispatcher.gateway.subscription_metadata(event.subscription_id)
        user_id = metadata.get("userId")

    if not user_id:
        raise InvalidEventPayload(f"Cannot resolve user for failed invoice {event.event_id}")

    dispatcher.state_machine.apply_payment_failed(user_id)
    return None


def handle_invoice_payment_succeeded(dispatcher, event):
    if event.billing_reason == "subscription_create":
        # First invoice of a subscription; checkout.session.completed activates
        logger.info(
            "Initial invoice acknowledged without renewal",
            extra={"event_id": event.event_id, "subscription_id": event.subscription_id},
        )
        return None

    user_id = _require_user_id(event)
    dispatcher.state_machine.apply_renewal(user_id, plan=event.plan)
    return user_id


HANDLERS = {
    CheckoutCompleted: handle_checkout_completed,
    SubscriptionUpdated: handle_subscription_updated,
    SubscriptionDeleted: handle_subscription_deleted,
    InvoicePaymentFailed: handle_invoice_payment_failed,
    InvoicePaymentSucceeded: handle_invoice_payment_succeeded,
}
