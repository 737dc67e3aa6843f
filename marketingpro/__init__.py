"""
MarketingPro billing service.

Flask application factory wiring the billing core (webhook dispatcher,
checkout sessions, subscription state machine, provisioning) to its
datastore, Celery worker and outbound collaborators.
"""

import logging

import sentry_sdk
from flask import Flask
from sentry_sdk.integrations.flask import FlaskIntegration

from marketingpro.config import get_config
from marketingpro.error_handlers import register_error_handlers
from marketingpro.extensions import init_extensions
from marketingpro.logging_config import setup_logging
from marketingpro.services import init_services
from marketingpro.workers.celery_app import celery_init_app

logger = logging.getLogger(__name__)


def setup_sentry(app: Flask) -> None:
    """Initialize Sentry error tracking"""
    sentry_dsn = app.config.get("SENTRY_DSN")
    if not sentry_dsn:
        return

    sentry_sdk.init(
        dsn=sentry_dsn,
        integrations=[FlaskIntegration()],
        traces_sample_rate=0.1,
        environment=app.config.get("ENVIRONMENT"),
        release=app.config.get("APP_VERSION", "1.0.0"),
        send_default_pii=False,
    )
    logger.info("Sentry error tracking initialized")


def register_blueprints(app: Flask) -> None:
    from marketingpro.routes.checkout import checkout_bp
    from marketingpro.routes.health import health_bp
    from marketingpro.routes.webhooks import webhooks_bp

    app.register_blueprint(webhooks_bp)
    app.register_blueprint(checkout_bp)
    app.register_blueprint(health_bp)


def create_app(config_name=None) -> Flask:
    """
    Build the Flask app. ``config_name`` is one of development, testing,
    production; defaults to APP_ENV.
    """
    app = Flask(__name__)
    app.config.from_object(get_config(config_name))

    setup_logging(app)
    setup_sentry(app)

    init_extensions(app)
    init_services(app)
    celery_init_app(app)

    register_blueprints(app)
    register_error_handlers(app)

    logger.info(
        "Application initialized",
        extra={"environment": app.config.get("ENVIRONMENT")},
    )
    return app
