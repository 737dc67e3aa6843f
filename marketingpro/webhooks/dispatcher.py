# marketingpro/webhooks/dispatcher.py
"""
Webhook entry point for the billing core.

Response codes are the contract with the provider: 2xx means "do not
redeliver", 400 means "this request is not from the provider", 5xx means
"try again later".
An event is only recorded as processed once its effects are committed, so
a 5xx never leaves a ledger row behind.
"""

import logging

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from marketingpro.billing.checkout_sessions import CheckoutSessionTracker
from marketingpro.billing.idempotency import IdempotencyGuard
from marketingpro.billing.provisioning import ProvisioningCoordinator
from marketingpro.billing.signature import SignatureVerifier
from marketingpro.billing.state_machine import SubscriptionStateMachine
from marketingpro.errors import (
    AlreadyProcessed,
    InvalidEventPayload,
    InvalidStateTransition,
    RetryableError,
    SignatureInvalid,
    UserNotFound,
)
from marketingpro.extensions import db
from marketingpro.webhooks.events import UnknownEvent, parse_event
from marketingpro.webhooks.handlers import HANDLERS

logger = logging.getLogger(__name__)

RECEIVED = {"received": True}


class EventDispatcher:

    def __init__(
        self,
        gateway,
        webhook_secret,
        tracker=None,
        state_machine=None,
        guard=None,
        schedule_provisioning=None,
    ):
        self.gateway = gateway
        self.webhook_secret = webhook_secret
        self.verifier = SignatureVerifier(gateway)
        self.tracker = tracker or CheckoutSessionTracker()
        self.state_machine = state_machine or SubscriptionStateMachine()
        self.guard = guard or IdempotencyGuard()
        self.schedule_provisioning = schedule_provisioning or ProvisioningCoordinator.schedule

    @classmethod
    def from_app(cls, app=None):
        app = app or current_app
        return cls(
            gateway=app.extensions["payment_gateway"],
            webhook_secret=app.config.get("STRIPE_WEBHOOK_SECRET"),
            state_machine=SubscriptionStateMachine(
                cancellation_policy=app.config.get("CANCELLATION_POLICY", "immediate")
            ),
        )

    def handle(self, raw_body, signature_header):
        """Process one webhook delivery. Returns ``(payload, status_code)``."""
        try:
            self.verifier.verify(raw_body, signature_header, self.webhook_secret)
        except SignatureInvalid as e:
            logger.warning("Webhook rejected", extra={"reason": e.message})
            return {"error": e.message}, 400

        try:
            event = parse_event(raw_body)
        except InvalidEventPayload as e:
            # Authentic but unusable; redelivery would carry the same body
            logger.warning("Unparseable webhook body acknowledged", extra={"reason": e.message})
            return {**RECEIVED, "applied": False}, 200

        log_context = {"event_id": event.event_id, "event_type": event.event_type}

        try:
            if self.guard.has_processed(event.event_id):
                logger.info("Duplicate webhook delivery skipped", extra=log_context)
                return {**RECEIVED, "duplicate": True}, 200

            if isinstance(event, UnknownEvent):
                logger.info("Unhandled webhook event type", extra=log_context)
                return {**RECEIVED, "ignored": True}, 200

            activated_user_id = HANDLERS[type(event)](self, event)
        except (UserNotFound, InvalidStateTransition, InvalidEventPayload) as e:
            # Redelivering the same payload cannot succeed; acknowledge it
            logger.warning(
                "Webhook event not applied",
                extra={**log_context, "error": e.__class__.__name__, "reason": e.message},
            )
            return {**RECEIVED, "applied": False}, 200
        except RetryableError as e:
            return self._retry_later(e, log_context)
        except SQLAlchemyError as e:
            db.session.rollback()
            return self._retry_later(e, log_context)
        except Exception:
            db.session.rollback()
            logger.exception("Webhook handler failed", extra=log_context)
            return {"error": "Internal error"}, 500

        if activated_user_id:
            self.schedule_provisioning(activated_user_id)

        try:
            self.guard.mark_processed(event.event_id, event.event_type)
        except AlreadyProcessed:
            pass
        except RetryableError as e:
            return self._retry_later(e, log_context)

        logger.info("Webhook event processed", extra=log_context)
        return dict(RECEIVED), 200

    @staticmethod
    def _retry_later(error, log_context):
        logger.error(
            "Webhook event deferred for redelivery",
            extra={**log_context, "error": error.__class__.__name__},
        )
        return {"error": "Temporarily unavailable"}, 503
