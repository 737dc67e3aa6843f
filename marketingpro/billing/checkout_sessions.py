# marketingpro/billing/checkout_sessions.py
"""
Checkout session lifecycle: pending -> completed | cancelled | expired.

Every transition is a conditional UPDATE that only matches rows still in
``pending``. Concurrent writers (a webhook completing a session while the
expiry sweep runs, two instances creating the same session) are settled by
the datastore: one statement matches, the other observes a terminal row.
"""

import logging
from datetime import timedelta
from decimal import Decimal, InvalidOperation

from flask import current_app
from sqlalchemy.exc import IntegrityError

from marketingpro.errors import AlreadyTerminal, CheckoutSessionNotFound
from marketingpro.extensions import db
from marketingpro.models.checkout_session import PAYMENT_PROVIDERS, CheckoutSession, CheckoutStatus
from marketingpro.utils.dates import utcnow
from marketingpro.utils.transactions import atomic

logger = logging.getLogger(__name__)

DEFAULT_TTL_HOURS = 24


class CheckoutSessionTracker:

    def __init__(self, ttl=None):
        self._ttl = ttl

    @property
    def ttl(self):
        if self._ttl is not None:
            return self._ttl
        return timedelta(hours=current_app.config.get("CHECKOUT_SESSION_TTL_HOURS", DEFAULT_TTL_HOURS))

    # ------------------------------------------------------------------ reads

    @staticmethod
    def get(session_id):
        return db.session.get(CheckoutSession, session_id)

    @staticmethod
    def find_pending(user_id, plan):
        return CheckoutSession.query.filter_by(
            user_id=user_id, plan=plan, status=CheckoutStatus.PENDING
        ).first()

    @staticmethod
    def latest_for_user(user_id):
        return (
            CheckoutSession.query.filter_by(user_id=user_id)
            .order_by(CheckoutSession.created_at.desc())
            .first()
        )

    # ----------------------------------------------------------------- writes

    def get_or_create(self, user_id, email, plan, price, provider="stripe"):
        """
        Return the open checkout attempt for ``(user_id, plan)``, creating it
        if there is none. Idempotent across processes: a losing concurrent
        insert returns the winner's row.
        """
        if provider not in PAYMENT_PROVIDERS:
            raise ValueError(f"Unsupported payment provider: {provider}")
        price = self._validate_price(price)

        now = utcnow()
        existing = self.find_pending(user_id, plan)
        if existing is not None:
            if existing.expires_at > now:
                return existing
            # The partial unique index would reject a new row until this one leaves pending
            try:
                self._transition(existing.id, CheckoutStatus.EXPIRED, {})
            except AlreadyTerminal:
                pass

        session = CheckoutSession(
            user_id=user_id,
            email=email,
            plan=plan,
            price=price,
            provider=provider,
            status=CheckoutStatus.PENDING,
            created_at=now,
            expires_at=now + self.ttl,
        )
        try:
            with atomic() as db_session:
                db_session.add(session)
        except IntegrityError:
            winner = self.find_pending(user_id, plan)
            if winner is None:
                raise
            logger.info(
                "Concurrent checkout session creation resolved to existing row",
                extra={"user_id": user_id, "plan": plan, "session_id": winner.id},
            )
            return winner

        logger.info(
            "Checkout session created",
            extra={"user_id": user_id, "plan": plan, "session_id": session.id, "provider": provider},
        )
        return session

    def complete(self, session_id, provider_session_id=None, provider_customer_id=None):
        now = utcnow()
        return self._transition(
            session_id,
            CheckoutStatus.COMPLETED,
            {
                CheckoutSession.completed_at: now,
                CheckoutSession.provider_session_id: provider_session_id,
                CheckoutSession.provider_customer_id: provider_customer_id,
            },
        )

    def cancel(self, session_id):
        return self._transition(
            session_id,
            CheckoutStatus.CANCELLED,
            {CheckoutSession.cancelled_at: utcnow()},
        )

    @staticmethod
    def expire_stale(now=None):
        """Move every pending session past its expiry to ``expired``."""
        now = now or utcnow()
        with atomic() as session:
            count = (
                session.query(CheckoutSession)
                .filter(
                    CheckoutSession.status == CheckoutStatus.PENDING,
                    CheckoutSession.expires_at < now,
                )
                .update(
                    {
                        CheckoutSession.status: CheckoutStatus.EXPIRED,
                        CheckoutSession.updated_at: now,
                    },
                    synchronize_session=False,
                )
            )

        if count:
            logger.info("Expired stale checkout sessions", extra={"count": count})
        return count

    # --------------------------------------------------------------- helpers

    @staticmethod
    def _transition(session_id, target, fields):
        values = dict(fields)
        values[CheckoutSession.status] = target
        values[CheckoutSession.updated_at] = utcnow()

        with atomic() as session:
            matched = (
                session.query(CheckoutSession)
                .filter(
                    CheckoutSession.id == session_id,
                    CheckoutSession.status == CheckoutStatus.PENDING,
                )
                .update(values, synchronize_session=False)
            )

        checkout = db.session.get(CheckoutSession, session_id, populate_existing=True)
        if checkout is None:
            raise CheckoutSessionNotFound(session_id)
        if not matched:
            raise AlreadyTerminal(session_id, checkout.status.value)

        logger.info(
            "Checkout session transitioned",
            extra={"session_id": session_id, "status": target.value},
        )
        return checkout

    @staticmethod
    def _validate_price(price):
        try:
            value = Decimal(str(price))
        except (InvalidOperation, TypeError):
            raise ValueError(f"Invalid price: {price!r}")
        if value <= 0:
            raise ValueError("Price must be positive")
        return value
