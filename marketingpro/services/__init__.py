from marketingpro.services.notifier import MailNotifier
from marketingpro.services.payment_gateway import StripeGateway
from marketingpro.services.telephony import TelnyxClient


def init_services(app):
    """Register the outbound collaborators on the app so tests can swap them."""
    app.extensions["payment_gateway"] = StripeGateway.from_config(app.config)
    app.extensions["telephony"] = TelnyxClient.from_config(app.config)
    app.extensions["notifier"] = MailNotifier()
    return app
