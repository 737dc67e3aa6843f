# marketingpro/services/payment_gateway.py
import logging

import stripe

from marketingpro.errors import GatewayUnavailable

logger = logging.getLogger(__name__)


class StripeGateway:
    """Thin wrapper over the Stripe SDK calls the billing core needs."""

    def __init__(self, api_key=None, webhook_tolerance=300, max_network_retries=2):
        self.api_key = api_key
        self.webhook_tolerance = webhook_tolerance
        self.max_network_retries = max_network_retries

    @classmethod
    def from_config(cls, config):
        return cls(
            api_key=config.get("STRIPE_SECRET_KEY"),
            webhook_tolerance=config.get("STRIPE_WEBHOOK_TOLERANCE", 300),
        )

    def verify_signature(self, body, header, secret):
        """
        Check a ``Stripe-Signature`` header against the raw request body.

        The body is decoded, never re-serialized, so the HMAC is computed over
        the exact bytes Stripe signed. Returns False for any failure.
        """
        if not header or not secret:
            return False

        try:
            payload = body.decode("utf-8") if isinstance(body, bytes) else body
            stripe.WebhookSignature.verify_header(payload, header, secret, self.webhook_tolerance)
        except UnicodeDecodeError:
            logger.warning("Webhook body is not valid UTF-8")
            return False
        except stripe.SignatureVerificationError as e:
            logger.warning("Invalid webhook signature", extra={"reason": str(e)})
            return False

        return True

    def retrieve_subscription(self, subscription_id):
        """Fetch a subscription so handlers can read its metadata."""
        try:
            subscription = stripe.Subscription.retrieve(subscription_id, api_key=self.api_key)
        except stripe.StripeError as e:
            logger.error(
                "Failed to retrieve Stripe subscription",
                extra={"subscription_id": subscription_id, "error": str(e)},
            )
            raise GatewayUnavailable(f"Could not retrieve subscription {subscription_id}") from e

        return subscription

    def subscription_metadata(self, subscription_id):
        subscription = self.retrieve_subscription(subscription_id)
        try:
            metadata = subscription["metadata"]
        except KeyError:
            return {}
        return dict(metadata or {})
