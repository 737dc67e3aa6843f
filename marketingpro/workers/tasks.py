# marketingpro/workers/tasks.py
from datetime import timedelta

from celery import shared_task
from celery.utils.log import get_task_logger
from flask import current_app

from marketingpro.billing.checkout_sessions import CheckoutSessionTracker
from marketingpro.billing.idempotency import IdempotencyGuard
from marketingpro.billing.provisioning import ProvisioningCoordinator
from marketingpro.errors import DatastoreUnavailable
from marketingpro.utils.dates import utcnow

logger = get_task_logger(__name__)


@shared_task(ignore_result=True)
def provision_activated_user(user_id):
    # Not retried: provisioning gaps are reconciled by hand or a repair job
    ProvisioningCoordinator.from_app().on_activated(user_id)


@shared_task(
    bind=True,
    autoretry_for=(DatastoreUnavailable,),
    retry_backoff=30,
    retry_kwargs={"max_retries": 5},
    retry_jitter=True,
)
def expire_stale_checkout_sessions(self):
    count = CheckoutSessionTracker.expire_stale(utcnow())
    logger.info("Checkout expiry sweep finished", extra={"expired": count})
    return count


@shared_task(
    bind=True,
    autoretry_for=(DatastoreUnavailable,),
    retry_backoff=30,
    retry_kwargs={"max_retries": 5},
    retry_jitter=True,
)
def purge_processed_events(self):
    retention_days = current_app.config.get("PROCESSED_EVENT_RETENTION_DAYS", 90)
    return IdempotencyGuard.purge_older_than(utcnow() - timedelta(days=retention_days))
