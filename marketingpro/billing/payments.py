# marketingpro/billing/payments.py
import logging

from sqlalchemy.exc import IntegrityError

from marketingpro.models.payment import Payment
from marketingpro.utils.transactions import atomic

logger = logging.getLogger(__name__)


def record_checkout_payment(
    user_id,
    transaction_id,
    *,
    amount=None,
    currency=None,
    plan=None,
    payment_intent_id=None,
):
    """
    Record the charge behind a completed checkout.

    The unique transaction id makes this safe to call for every delivery of
    the same checkout; only the first insert creates a row. Returns the new
    Payment, or None when the charge was already recorded.
    """
    payment = Payment(
        user_id=user_id,
        transaction_id=transaction_id,
        payment_intent_id=payment_intent_id,
        amount=amount or 0,
        currency=(currency or "usd").lower(),
        plan=plan,
        provider="stripe",
        status="completed",
    )
    try:
        with atomic() as session:
            session.add(payment)
    except IntegrityError:
        logger.info(
            "Payment already recorded",
            extra={"user_id": user_id, "transaction_id": transaction_id},
        )
        return None

    logger.info(
        "Payment recorded",
        extra={"user_id": user_id, "transaction_id": transaction_id, "amount": payment.amount},
    )
    return payment
