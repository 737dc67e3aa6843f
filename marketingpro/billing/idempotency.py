# marketingpro/billing/idempotency.py
import logging

from sqlalchemy.exc import IntegrityError

from marketingpro.errors import AlreadyProcessed
from marketingpro.extensions import db
from marketingpro.models.processed_event import ProcessedEvent
from marketingpro.utils.transactions import atomic

logger = logging.getLogger(__name__)


class IdempotencyGuard:
    """
    Ledger of provider events whose effects have been committed.

    ``has_processed`` is a fast path that skips redundant work. The unique
    constraint hit by ``mark_processed`` is the correctness mechanism: two
    racing deliveries can both pass the read, only one insert wins.
    """

    @staticmethod
    def has_processed(event_id: str) -> bool:
        return (
            db.session.query(ProcessedEvent.id)
            .filter_by(provider_event_id=event_id)
            .first()
            is not None
        )

    @staticmethod
    def mark_processed(event_id: str, event_type: str) -> ProcessedEvent:
        record = ProcessedEvent(provider_event_id=event_id, event_type=event_type)
        try:
            with atomic() as session:
                session.add(record)
        except IntegrityError:
            logger.info(
                "Event already recorded by a concurrent delivery",
                extra={"event_id": event_id, "event_type": event_type},
            )
            raise AlreadyProcessed(f"Event {event_id} already processed")

        return record

    @staticmethod
    def purge_older_than(cutoff) -> int:
        """Drop ledger rows older than ``cutoff``; returns the number deleted."""
        with atomic() as session:
            deleted = (
                session.query(ProcessedEvent)
                .filter(ProcessedEvent.processed_at < cutoff)
                .delete(synchronize_session=False)
            )

        logger.info("Purged processed events", extra={"deleted": deleted, "cutoff": cutoff.isoformat()})
        return deleted
