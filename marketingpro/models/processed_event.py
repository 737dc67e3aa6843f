"""Idempotency ledger.

Every fully handled webhook is recorded by its provider event id. The unique
constraint on provider_event_id, not a prior read, is what makes a second
delivery of the same event a no-op.
"""

from marketingpro.extensions import db
from marketingpro.utils.dates import utcnow


class ProcessedEvent(db.Model):
    __tablename__ = "processed_events"

    id = db.Column(db.Integer, primary_key=True)
    provider_event_id = db.Column(db.String(255), unique=True, nullable=False)  # e.g. "evt_1Abc..."
    event_type = db.Column(db.String(255), nullable=False)  # e.g. "checkout.session.completed"
    processed_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    def __repr__(self):
        return f"<ProcessedEvent {self.provider_event_id} ({self.event_type})>"
