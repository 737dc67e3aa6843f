from flask import Blueprint, jsonify, request

from marketingpro.security.rate_limiter import rate_limit
from marketingpro.webhooks import EventDispatcher

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/api/webhooks")


@webhooks_bp.route("/stripe", methods=["POST"])
@rate_limit("stripe_webhook", "WEBHOOK_RATE_LIMIT_PER_MINUTE", window=60)
def stripe_webhook():
    """
    Stripe webhook endpoint. Authenticated only by the Stripe-Signature
    header; the raw body is passed through untouched for verification.
    """
    payload = request.get_data()
    sig_header = request.headers.get("Stripe-Signature")

    body, status_code = EventDispatcher.from_app().handle(payload, sig_header)
    return jsonify(body), status_code
