from marketingpro.models.checkout_session import CheckoutSession, CheckoutStatus
from marketingpro.models.payment import Payment
from marketingpro.models.phone_assignment import PhoneAssignment
from marketingpro.models.processed_event import ProcessedEvent
from marketingpro.models.user import SubscriptionState, User

__all__ = [
    "CheckoutSession",
    "CheckoutStatus",
    "Payment",
    "PhoneAssignment",
    "ProcessedEvent",
    "SubscriptionState",
    "User",
]
