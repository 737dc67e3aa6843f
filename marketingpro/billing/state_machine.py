# marketingpro/billing/state_machine.py
import logging
from enum import Enum

from sqlalchemy import case

from marketingpro.errors import InvalidStateTransition, UserNotFound
from marketingpro.extensions import db
from marketingpro.models.user import SubscriptionState, User
from marketingpro.utils.dates import add_months, utcnow
from marketingpro.utils.transactions import atomic

logger = logging.getLogger(__name__)

ACTIVE_PROVIDER_STATUSES = frozenset({"active"})


class Trigger(str, Enum):
    CHECKOUT_COMPLETED = "checkout_completed"
    STATUS_ACTIVE = "status_active"
    STATUS_LAPSED = "status_lapsed"
    PAYMENT_FAILED = "payment_failed"
    CANCELLED = "cancelled"
    RENEWED = "renewed"


# trigger -> (allowed source states, target state)
TRANSITIONS = {
    Trigger.CHECKOUT_COMPLETED: (
        frozenset(SubscriptionState),
        SubscriptionState.ACTIVE,
    ),
    Trigger.STATUS_ACTIVE: (
        frozenset({SubscriptionState.ACTIVE, SubscriptionState.PAST_DUE}),
        SubscriptionState.ACTIVE,
    ),
    Trigger.STATUS_LAPSED: (
        frozenset({SubscriptionState.ACTIVE, SubscriptionState.PAST_DUE}),
        SubscriptionState.PAST_DUE,
    ),
    Trigger.PAYMENT_FAILED: (
        frozenset({SubscriptionState.ACTIVE, SubscriptionState.PAST_DUE}),
        SubscriptionState.PAST_DUE,
    ),
    Trigger.CANCELLED: (
        frozenset({SubscriptionState.ACTIVE, SubscriptionState.PAST_DUE}),
        SubscriptionState.CANCELLED,
    ),
    Trigger.RENEWED: (
        frozenset({SubscriptionState.ACTIVE, SubscriptionState.PAST_DUE}),
        SubscriptionState.ACTIVE,
    ),
}


class SubscriptionStateMachine:
    """
    Authoritative subscription state machine.

    This class is the ONLY place where a user's subscription state, plan and
    billing dates change. Each operation is one conditional UPDATE guarded
    by the allowed source states, so concurrent webhooks for the same user
    cannot interleave a read and a write.

    Nothing here provisions resources or sends mail; callers hand a
    successful activation to the ProvisioningCoordinator.
    """

    def __init__(self, cancellation_policy="immediate"):
        self.cancellation_policy = cancellation_policy

    def apply_checkout_completed(
        self,
        user_id,
        *,
        plan,
        provider_session_id=None,
        provider_customer_id=None,
        provider_subscription_id=None,
    ) -> User:
        """The only entry point that moves a user into Active from a checkout."""
        if not plan:
            raise InvalidStateTransition("Activation requires a plan")

        now = utcnow()
        return self._apply(
            user_id,
            Trigger.CHECKOUT_COMPLETED,
            {
                User.subscription_plan: plan,
                User.subscription_start_date: now,
                User.subscription_end_date: add_months(now, 1),
                User.payment_provider_customer_id: provider_customer_id,
                User.payment_provider_subscription_id: provider_subscription_id,
                User.last_payment_reference: provider_session_id,
            },
        )

    def apply_status_update(self, user_id, provider_status, current_period_end=None) -> User:
        """Map the provider's subscription status onto Active / PastDue."""
        if provider_status in ACTIVE_PROVIDER_STATUSES:
            now = utcnow()
            # An Active user always ends up with a future end date
            if current_period_end is not None and current_period_end > now:
                end_date = current_period_end
            else:
                end_date = case(
                    (User.subscription_end_date > now, User.subscription_end_date),
                    else_=add_months(now, 1),
                )
            return self._apply(user_id, Trigger.STATUS_ACTIVE, {User.subscription_end_date: end_date})

        return self._apply(user_id, Trigger.STATUS_LAPSED, {})

    def apply_payment_failed(self, user_id) -> User:
        return self._apply(user_id, Trigger.PAYMENT_FAILED, {})

    def apply_cancellation(self, user_id) -> User:
        now = utcnow()
        if self.cancellation_policy == "period_end":
            end_date = case(
                (User.subscription_end_date > now, User.subscription_end_date),
                else_=now,
            )
        else:
            end_date = now

        return self._apply(user_id, Trigger.CANCELLED, {User.subscription_end_date: end_date})

    def apply_renewal(self, user_id, plan=None) -> User:
        """Extend the billing period by one month from now and ensure Active."""
        values = {User.subscription_end_date: add_months(utcnow(), 1)}
        if plan:
            values[User.subscription_plan] = plan
        return self._apply(user_id, Trigger.RENEWED, values)

    @staticmethod
    def _apply(user_id, trigger, values) -> User:
        sources, target = TRANSITIONS[trigger]

        values = dict(values)
        values[User.subscription_state] = target
        values[User.updated_at] = utcnow()

        with atomic() as session:
            matched = (
                session.query(User)
                .filter(User.id == user_id, User.subscription_state.in_(list(sources)))
                .update(values, synchronize_session=False)
            )

        user = db.session.get(User, user_id, populate_existing=True)
        if user is None:
            raise UserNotFound(user_id)

        if not matched:
            raise InvalidStateTransition(
                f"Cannot apply {trigger.value} to user {user_id} in state {user.subscription_state.value}"
            )

        logger.info(
            "Subscription state transitioned",
            extra={"user_id": user_id, "trigger": trigger.value, "state": target.value},
        )
        return user
