from enum import Enum

from marketingpro.extensions import db
from marketingpro.utils.dates import utcnow


class SubscriptionState(str, Enum):
    NONE = "none"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELLED = "cancelled"


def enum_column(enum_cls, name):
    """Stores enum values (not member names) in a plain VARCHAR column."""
    return db.Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=20,
        values_callable=lambda members: [member.value for member in members],
    )


class User(db.Model):
    """
    Account owned by the surrounding application.

    The billing core only mutates the subscription and phone fields and
    never creates or deletes rows here.
    """
    __tablename__ = "users"

    id = db.Column(db.String(64), primary_key=True)
    email = db.Column(db.String(255), nullable=False, index=True)
    email_verified = db.Column(db.Boolean, nullable=False, default=False)

    subscription_state = db.Column(
        enum_column(SubscriptionState, "subscription_state"),
        nullable=False,
        default=SubscriptionState.NONE,
    )
    subscription_plan = db.Column(db.String(50), nullable=True)
    subscription_start_date = db.Column(db.DateTime, nullable=True)
    subscription_end_date = db.Column(db.DateTime, nullable=True)
    payment_provider_customer_id = db.Column(db.String(255), nullable=True, index=True)
    payment_provider_subscription_id = db.Column(db.String(255), nullable=True, index=True)
    last_payment_reference = db.Column(db.String(255), nullable=True)

    assigned_phone_number = db.Column(db.String(32), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def has_active_subscription(self):
        return self.subscription_state == SubscriptionState.ACTIVE

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "subscription_state": self.subscription_state.value if self.subscription_state else None,
            "subscription_plan": self.subscription_plan,
            "subscription_start_date": self.subscription_start_date.isoformat() if self.subscription_start_date else None,
            "subscription_end_date": self.subscription_end_date.isoformat() if self.subscription_end_date else None,
            "assigned_phone_number": self.assigned_phone_number,
        }

    def __repr__(self):
        return f"<User {self.id} {self.subscription_state}>"
