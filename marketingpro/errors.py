"""
Billing error taxonomy.

Every error raised by the billing core derives from BillingError. The
webhook dispatcher decides per class whether the provider gets a 200
acknowledgment, a 400 rejection, or a 5xx retry signal.
"""


class BillingError(Exception):
    status_code = 400

    def __init__(self, message=None, payload=None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.payload = payload


class SignatureInvalid(BillingError):
    """Webhook body was not signed with the shared secret."""
    status_code = 400


class InvalidEventPayload(BillingError):
    """Verified body is missing fields a handler needs."""
    status_code = 400


class UnknownEventType(BillingError):
    status_code = 200


class AlreadyProcessed(BillingError):
    status_code = 200


class AlreadyTerminal(BillingError):
    status_code = 409

    def __init__(self, session_id, status):
        super().__init__(f"Checkout session {session_id} is already {status}")
        self.session_id = session_id
        self.status = status


class CheckoutSessionNotFound(BillingError):
    status_code = 404

    def __init__(self, session_id):
        super().__init__(f"Checkout session {session_id} not found")
        self.session_id = session_id


class UserNotFound(BillingError):
    status_code = 404

    def __init__(self, user_id):
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


class InvalidStateTransition(BillingError):
    status_code = 409


class RetryableError(BillingError):
    """Failure a later redelivery of the same event could fix."""
    status_code = 503


class DatastoreUnavailable(RetryableError):
    pass


class GatewayUnavailable(RetryableError):
    pass


class ProvisioningFailure(BillingError):
    status_code = 500


class RateLimitExceeded(BillingError):
    status_code = 429

    def __init__(self, retry_after):
        super().__init__("Rate limit exceeded", payload={"retry_after": retry_after})
        self.retry_after = retry_after
