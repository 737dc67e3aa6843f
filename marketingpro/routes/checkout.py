# marketingpro/routes/checkout.py
import logging

from flask import Blueprint, jsonify, request

from marketingpro.billing.checkout_sessions import CheckoutSessionTracker

logger = logging.getLogger(__name__)

checkout_bp = Blueprint("checkout", __name__, url_prefix="/api/payments")


@checkout_bp.route("/checkout-session", methods=["GET"])
def get_checkout_session():
    """Latest checkout session for ``?userId=``."""
    user_id = request.args.get("userId")
    if not user_id:
        return jsonify({"error": "User ID is required"}), 400

    session = CheckoutSessionTracker.latest_for_user(user_id)
    if session is None:
        return jsonify({"error": "No checkout session found"}), 404

    return jsonify({"session": session.to_dict()}), 200


@checkout_bp.route("/checkout-session", methods=["POST"])
def create_checkout_session():
    data = request.get_json(silent=True) or {}

    user_id = data.get("userId")
    email = data.get("email")
    plan = data.get("plan")
    price = data.get("price")
    provider = data.get("provider", "stripe")

    if not user_id or not email or not plan or not price:
        return jsonify({"error": "Missing required fields"}), 400

    try:
        session = CheckoutSessionTracker().get_or_create(user_id, email, plan, price, provider)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({
        "sessionId": session.id,
        "expiresAt": session.expires_at.isoformat(),
        "message": "Checkout session created successfully",
    }), 200


@checkout_bp.route("/checkout-session", methods=["PATCH"])
def update_checkout_session():
    """
    Client-driven status change. Only cancellation is accepted here;
    completion arrives through the payment provider's webhook.
    """
    data = request.get_json(silent=True) or {}

    session_id = data.get("sessionId")
    status = data.get("status")
    if not session_id or not status:
        return jsonify({"error": "Session ID and status are required"}), 400

    if status != "cancelled":
        return jsonify({"error": f"Status '{status}' cannot be set by the client"}), 400

    # AlreadyTerminal / CheckoutSessionNotFound render through the BillingError handler
    session = CheckoutSessionTracker().cancel(session_id)

    return jsonify({
        "success": True,
        "session": session.to_dict(),
        "message": "Checkout session cancelled",
    }), 200
