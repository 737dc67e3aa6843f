"""
Configuration management.

Class-based Flask configuration selected by APP_ENV. Production fails fast
on missing secrets instead of falling back to development defaults.
"""

import os
from datetime import timedelta
from enum import Enum
from urllib.parse import urlparse

from celery.schedules import crontab


class Environment(str, Enum):
    """Environment types"""
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"


class ConfigurationError(Exception):
    """Raised when an invalid or unsupported configuration is requested."""
    pass


def _int_env(name, default):
    try:
        return int(os.getenv(name, default))
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer")


class BaseConfig:
    """
    Base configuration shared by all environments.
    """

    APP_NAME = os.getenv("APP_NAME", "MarketingPro")
    APP_VERSION = os.getenv("APP_VERSION", "1.0.0")
    APP_URL = os.getenv("APP_URL", "http://localhost:3000").rstrip("/")
    ENVIRONMENT = Environment.DEVELOPMENT.value

    DEBUG = False
    TESTING = False
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")

    # Database
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///marketingpro.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    # Redis / Celery
    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    CHECKOUT_EXPIRY_SWEEP_MINUTES = _int_env("CHECKOUT_EXPIRY_SWEEP_MINUTES", 15)
    CELERY = {
        "broker_url": REDIS_URL,
        "result_backend": REDIS_URL,
        "task_serializer": "json",
        "result_serializer": "json",
        "accept_content": ["json"],
        "timezone": "UTC",
        "enable_utc": True,
        "task_acks_late": True,
        "worker_prefetch_multiplier": 1,
        "task_reject_on_worker_lost": True,
        "task_time_limit": 300,
        "task_soft_time_limit": 240,
        "beat_schedule": {
            "expire-stale-checkout-sessions": {
                "task": "marketingpro.workers.tasks.expire_stale_checkout_sessions",
                "schedule": crontab(minute=f"*/{CHECKOUT_EXPIRY_SWEEP_MINUTES}"),
            },
            "purge-processed-events-daily": {
                "task": "marketingpro.workers.tasks.purge_processed_events",
                "schedule": crontab(minute=30, hour=3),
            },
        },
    }

    # Stripe
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
    STRIPE_WEBHOOK_TOLERANCE = _int_env("STRIPE_WEBHOOK_TOLERANCE", 300)

    # Telnyx
    TELNYX_API_KEY = os.getenv("TELNYX_API_KEY", "")
    TELNYX_BASE_URL = os.getenv("TELNYX_BASE_URL", "https://api.telnyx.com/v2")
    TELNYX_TIMEOUT_SECONDS = _int_env("TELNYX_TIMEOUT_SECONDS", 10)

    # Mail
    MAIL_SERVER = os.getenv("MAIL_SERVER", "localhost")
    MAIL_PORT = _int_env("MAIL_PORT", 587)
    MAIL_USE_TLS = os.getenv("MAIL_USE_TLS", "true").lower() == "true"
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.getenv("MAIL_DEFAULT_SENDER", "noreply@marketingpro.app")
    VERIFICATION_TOKEN_MAX_AGE = timedelta(hours=24)

    # Billing
    CHECKOUT_SESSION_TTL_HOURS = _int_env("CHECKOUT_SESSION_TTL_HOURS", 24)
    PROCESSED_EVENT_RETENTION_DAYS = _int_env("PROCESSED_EVENT_RETENTION_DAYS", 90)
    CANCELLATION_POLICY = os.getenv("CANCELLATION_POLICY", "immediate").lower()

    # Webhook rate limiting
    RATE_LIMITING_ENABLED = os.getenv("RATE_LIMITING_ENABLED", "true").lower() == "true"
    WEBHOOK_RATE_LIMIT_PER_MINUTE = _int_env("WEBHOOK_RATE_LIMIT_PER_MINUTE", 300)

    # Logging / error tracking
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_REQUESTS = os.getenv("LOG_REQUESTS", "false").lower() == "true"
    SENTRY_DSN = os.getenv("SENTRY_DSN")

    @classmethod
    def validate(cls):
        if cls.CANCELLATION_POLICY not in ("immediate", "period_end"):
            raise ConfigurationError(
                f"CANCELLATION_POLICY must be 'immediate' or 'period_end', got {cls.CANCELLATION_POLICY!r}"
            )


class DevelopmentConfig(BaseConfig):
    """
    Development configuration.
    """

    DEBUG = True
    LOG_REQUESTS = True
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "whsec_development")


class TestingConfig(BaseConfig):
    ENVIRONMENT = Environment.TESTING.value
    TESTING = True
    SECRET_KEY = "test-secret-key"
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URI", "sqlite:///:memory:")
    SQLALCHEMY_ENGINE_OPTIONS = {}
    STRIPE_SECRET_KEY = "sk_test_mock"
    STRIPE_WEBHOOK_SECRET = "whsec_test_secret"
    TELNYX_API_KEY = "telnyx_test_key"
    MAIL_SUPPRESS_SEND = True
    MAIL_DEFAULT_SENDER = "test@example.com"
    RATE_LIMITING_ENABLED = False
    CELERY = dict(
        BaseConfig.CELERY,
        broker_url="memory://",
        result_backend="cache+memory://",
        task_always_eager=True,
        task_eager_propagates=False,
    )


class ProductionConfig(BaseConfig):
    """
    Production configuration.
    """

    ENVIRONMENT = Environment.PRODUCTION.value
    DEBUG = False
    SECRET_KEY = os.getenv("SECRET_KEY")

    @classmethod
    def validate(cls):
        super().validate()

        if not cls.SECRET_KEY or cls.SECRET_KEY == "dev-secret-key":
            raise ConfigurationError("SECRET_KEY must be set and secure in production")

        if not cls.STRIPE_WEBHOOK_SECRET:
            raise ConfigurationError("STRIPE_WEBHOOK_SECRET is required in production")

        if urlparse(cls.SQLALCHEMY_DATABASE_URI).scheme == "sqlite":
            raise ConfigurationError("SQLite is not allowed in production. Use PostgreSQL.")


CONFIG_BY_NAME = {
    Environment.DEVELOPMENT.value: DevelopmentConfig,
    Environment.TESTING.value: TestingConfig,
    Environment.PRODUCTION.value: ProductionConfig,
}


def get_config(name=None):
    """
    Resolve and return the configuration class for the given name, or
    for the APP_ENV environment variable when no name is passed.
    """

    env = (name or os.getenv("APP_ENV", "development")).lower()

    config = CONFIG_BY_NAME.get(env)
    if config is None:
        raise ConfigurationError(f"Invalid APP_ENV value: {env}")

    config.validate()
    return config
