# marketingpro/billing/signature.py
from marketingpro.errors import SignatureInvalid


class SignatureVerifier:
    """
    Authenticates inbound webhooks. This is the endpoint's only
    authentication: there is no session or API key.
    """

    def __init__(self, gateway):
        self.gateway = gateway

    def verify(self, raw_body, signature_header, secret):
        if not signature_header:
            raise SignatureInvalid("Missing signature header")

        if not secret:
            raise SignatureInvalid("Webhook secret is not configured")

        if not self.gateway.verify_signature(raw_body, signature_header, secret):
            raise SignatureInvalid("Invalid signature")
