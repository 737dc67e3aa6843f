# marketingpro/billing/provisioning.py
"""
Best-effort side effects of a subscription activation.

Activation hooks run after the subscription transition has been committed.
They are never part of its transaction: a hook failing is logged and left
for a repair job, the subscription stays Active, and the remaining hooks
still run.
"""

import logging

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from marketingpro.extensions import db
from marketingpro.models.phone_assignment import PhoneAssignment
from marketingpro.models.user import SubscriptionState, User
from marketingpro.services.notifier import create_verification_token
from marketingpro.utils.transactions import atomic

logger = logging.getLogger(__name__)

ACTIVATION_HOOKS = []


def register_activation_hook(func):
    """Decorator adding ``func(coordinator, user)`` to the post-commit hook list."""
    ACTIVATION_HOOKS.append(func)
    return func


@register_activation_hook
def assign_phone_number(coordinator, user):
    if user.assigned_phone_number:
        return

    existing = PhoneAssignment.query.filter_by(user_id=user.id).first()
    if existing is not None:
        # Assignment row survived but the user update did not
        with atomic() as session:
            session.query(User).filter(
                User.id == user.id, User.assigned_phone_number.is_(None)
            ).update({User.assigned_phone_number: existing.phone_number}, synchronize_session=False)
        return

    number = coordinator.telephony.assign_number(user.id)

    try:
        with atomic() as session:
            session.add(
                PhoneAssignment(
                    user_id=user.id,
                    phone_number=number.phone_number,
                    provider_number_id=number.provider_number_id,
                )
            )
            session.query(User).filter(
                User.id == user.id, User.assigned_phone_number.is_(None)
            ).update({User.assigned_phone_number: number.phone_number}, synchronize_session=False)
    except IntegrityError:
        logger.warning(
            "Phone number already assigned by a concurrent activation, releasing duplicate",
            extra={"user_id": user.id, "phone_number": number.phone_number},
        )
        if number.provider_number_id:
            coordinator.telephony.release_number(number.provider_number_id)
        return

    logger.info(
        "Phone number assigned",
        extra={"user_id": user.id, "phone_number": number.phone_number},
    )


@register_activation_hook
def send_verification_email(coordinator, user):
    if user.email_verified:
        return

    token = create_verification_token(user.email)
    coordinator.notifier.send_verification_email(user.email, token)


class ProvisioningCoordinator:

    def __init__(self, telephony, notifier, hooks=None):
        self.telephony = telephony
        self.notifier = notifier
        self.hooks = list(ACTIVATION_HOOKS if hooks is None else hooks)

    @classmethod
    def from_app(cls, app=None):
        app = app or current_app
        return cls(
            telephony=app.extensions["telephony"],
            notifier=app.extensions["notifier"],
        )

    def on_activated(self, user_id) -> None:
        """Run every activation hook for ``user_id``. Never raises."""
        try:
            user = db.session.get(User, user_id)
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Provisioning skipped, could not load user", extra={"user_id": user_id})
            return

        if user is None:
            logger.warning("Provisioning skipped, user not found", extra={"user_id": user_id})
            return

        if user.subscription_state != SubscriptionState.ACTIVE:
            logger.info(
                "Provisioning skipped, subscription no longer active",
                extra={"user_id": user_id, "state": user.subscription_state.value},
            )
            return

        for hook in self.hooks:
            try:
                hook(self, user)
            except Exception:
                db.session.rollback()
                logger.exception(
                    "Provisioning step failed",
                    extra={"user_id": user_id, "step": hook.__name__},
                )

    @staticmethod
    def schedule(user_id) -> None:
        """Hand ``on_activated`` to a worker; the webhook response never waits on it."""
        from marketingpro.workers.tasks import provision_activated_user

        try:
            provision_activated_user.delay(user_id)
        except Exception:
            logger.exception("Failed to enqueue provisioning", extra={"user_id": user_id})
