# marketingpro/webhooks/events.py
"""
Typed webhook events.

``parse_event`` turns a verified Stripe payload into one variant per event
type the billing core acts on. Everything else becomes ``UnknownEvent`` so
the dispatcher has a single default arm.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from marketingpro.errors import InvalidEventPayload
from marketingpro.utils.dates import from_unix


@dataclass(frozen=True)
class WebhookEvent:
    event_id: str
    event_type: str


@dataclass(frozen=True)
class CheckoutCompleted(WebhookEvent):
    user_id: Optional[str]
    plan: Optional[str]
    checkout_session_id: Optional[str]
    customer_email: Optional[str]
    provider_session_id: Optional[str]
    customer_id: Optional[str]
    subscription_id: Optional[str]
    amount_total: Optional[int] = None
    currency: Optional[str] = None
    payment_intent_id: Optional[str] = None


@dataclass(frozen=True)
class SubscriptionUpdated(WebhookEvent):
    user_id: Optional[str]
    status: Optional[str]
    current_period_end: Optional[datetime]


@dataclass(frozen=True)
class SubscriptionDeleted(WebhookEvent):
    user_id: Optional[str]


@dataclass(frozen=True)
class InvoicePaymentFailed(WebhookEvent):
    user_id: Optional[str]
    subscription_id: Optional[str]


@dataclass(frozen=True)
class InvoicePaymentSucceeded(WebhookEvent):
    user_id: Optional[str]
    plan: Optional[str]
    subscription_id: Optional[str]
    billing_reason: Optional[str]


@dataclass(frozen=True)
class UnknownEvent(WebhookEvent):
    pass


def _metadata(obj):
    return obj.get("metadata") or {}


def _invoice_metadata(invoice):
    """Invoice metadata, falling back to the parent subscription's metadata."""
    metadata = dict((invoice.get("subscription_details") or {}).get("metadata") or {})
    metadata.update({k: v for k, v in _metadata(invoice).items() if v})
    return metadata


def _checkout_completed(event_id, event_type, obj):
    metadata = _metadata(obj)
    checkout_session_id = metadata.get("checkoutSessionId")
    if checkout_session_id == "unknown":
        checkout_session_id = None

    return CheckoutCompleted(
        event_id=event_id,
        event_type=event_type,
        user_id=metadata.get("userId"),
        plan=metadata.get("plan") or metadata.get("planName"),
        checkout_session_id=checkout_session_id,
        customer_email=obj.get("customer_email"),
        provider_session_id=obj.get("id"),
        customer_id=obj.get("customer"),
        subscription_id=obj.get("subscription"),
        amount_total=obj.get("amount_total"),
        currency=obj.get("currency"),
        payment_intent_id=obj.get("payment_intent"),
    )


def _subscription_updated(event_id, event_type, obj):
    return SubscriptionUpdated(
        event_id=event_id,
        event_type=event_type,
        user_id=_metadata(obj).get("userId"),
        status=obj.get("status"),
        current_period_end=from_unix(obj.get("current_period_end")),
    )


def _subscription_deleted(event_id, event_type, obj):
    return SubscriptionDeleted(
        event_id=event_id,
        event_type=event_type,
        user_id=_metadata(obj).get("userId"),
    )


def _invoice_payment_failed(event_id, event_type, obj):
    return InvoicePaymentFailed(
        event_id=event_id,
        event_type=event_type,
        user_id=_invoice_metadata(obj).get("userId"),
        subscription_id=obj.get("subscription"),
    )


def _invoice_payment_succeeded(event_id, event_type, obj):
    metadata = _invoice_metadata(obj)
    return InvoicePaymentSucceeded(
        event_id=event_id,
        event_type=event_type,
        user_id=metadata.get("userId"),
        plan=metadata.get("planName"),
        subscription_id=obj.get("subscription"),
        billing_reason=obj.get("billing_reason"),
    )


PARSERS = {
    "checkout.session.completed": _checkout_completed,
    "customer.subscription.updated": _subscription_updated,
    "customer.subscription.deleted": _subscription_deleted,
    "invoice.payment_failed": _invoice_payment_failed,
    "invoice.payment_succeeded": _invoice_payment_succeeded,
}


def parse_event(raw_body):
    """Parse a verified webhook body into a typed event variant."""
    try:
        payload = json.loads(raw_body)
    except (TypeError, ValueError, UnicodeDecodeError):
        raise InvalidEventPayload("Webhook body is not valid JSON")

    if not isinstance(payload, dict):
        raise InvalidEventPayload("Webhook body must be a JSON object")

    event_id = payload.get("id")
    event_type = payload.get("type")
    if not event_id or not event_type:
        raise InvalidEventPayload("Webhook event is missing id or type")

    parser = PARSERS.get(event_type)
    if parser is None:
        return UnknownEvent(event_id=event_id, event_type=event_type)

    obj = (payload.get("data") or {}).get("object")
    if not isinstance(obj, dict):
        raise InvalidEventPayload(f"Event {event_id} has no data.object")

    try:
        return parser(event_id, event_type, obj)
    except (AttributeError, TypeError, ValueError) as e:
        raise InvalidEventPayload(f"Malformed {event_type} payload: {e}")
