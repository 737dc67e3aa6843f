import uuid
from enum import Enum

from marketingpro.extensions import db
from marketingpro.models.user import enum_column
from marketingpro.utils.dates import utcnow


class CheckoutStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

    @property
    def is_terminal(self):
        return self is not CheckoutStatus.PENDING


PAYMENT_PROVIDERS = ("stripe", "paypal")


class CheckoutSession(db.Model):
    """One attempt by a user to pay for a plan."""
    __tablename__ = "checkout_sessions"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = db.Column(db.String(64), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=False)
    plan = db.Column(db.String(50), nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False)
    provider = db.Column(db.String(20), nullable=False, default="stripe")
    status = db.Column(
        enum_column(CheckoutStatus, "checkout_status"),
        nullable=False,
        default=CheckoutStatus.PENDING,
    )

    provider_session_id = db.Column(db.String(255), nullable=True)
    provider_customer_id = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    expires_at = db.Column(db.DateTime, nullable=False, index=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)

    __table_args__ = (
        # At most one pending attempt per user and plan
        db.Index(
            "uq_checkout_sessions_pending_user_plan",
            "user_id",
            "plan",
            unique=True,
            postgresql_where=db.text("status = 'pending'"),
            sqlite_where=db.text("status = 'pending'"),
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "email": self.email,
            "plan": self.plan,
            "price": float(self.price) if self.price is not None else None,
            "provider": self.provider,
            "status": self.status.value,
            "providerSessionId": self.provider_session_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "cancelledAt": self.cancelled_at.isoformat() if self.cancelled_at else None,
        }

    def __repr__(self):
        return f"<CheckoutSession {self.id} {self.user_id}/{self.plan} {self.status}>"
