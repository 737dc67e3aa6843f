"""Celery entry point: ``celery -A marketingpro.worker worker --beat``."""

from marketingpro import create_app
from marketingpro.logging_config import configure_logging_for_worker

flask_app = create_app()
configure_logging_for_worker()
celery_app = flask_app.extensions["celery"]
