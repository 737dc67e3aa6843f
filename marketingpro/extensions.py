# marketingpro/extensions.py
"""
Flask extensions initialization module.
"""

import logging

import redis
from flask_mail import Mail
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

# Initialize extensions
db = SQLAlchemy()
migrate = Migrate()
mail = Mail()
redis_client = None

logger = logging.getLogger(__name__)


def init_extensions(app):
    """Initialize all Flask extensions."""

    db.init_app(app)
    logger.info("SQLAlchemy initialized")

    migrate.init_app(app, db)
    logger.info("Flask-Migrate initialized")

    mail.init_app(app)
    logger.info("Flask-Mail initialized")

    init_redis(app)

    # Register model tables on db.metadata
    from marketingpro import models  # noqa: F401

    if app.config.get("ENVIRONMENT") == "development" or app.config.get("CREATE_TABLES_ON_START", False):
        with app.app_context():
            db.create_all()
            logger.info("Database tables created")

    return app


def init_redis(app):
    """Initialize the Redis connection used for shared webhook counters."""
    global redis_client

    if not app.config.get("RATE_LIMITING_ENABLED", True):
        redis_client = None
        app.extensions["redis"] = None
        return

    redis_url = app.config.get("REDIS_URL", "redis://localhost:6379/0")
    redis_client = redis.from_url(
        redis_url,
        decode_responses=True,
        socket_timeout=5,
        socket_connect_timeout=5,
        retry_on_timeout=True,
        health_check_interval=30,
    )
    app.extensions["redis"] = redis_client

    try:
        redis_client.ping()
        logger.info("Redis initialized successfully")
    except redis.ConnectionError as e:
        # Rate limiter fails open while Redis is down
        logger.error(f"Failed to connect to Redis: {e}")
        if app.config.get("ENVIRONMENT") == "production":
            logger.warning("Webhook rate limiting is degraded without Redis")
