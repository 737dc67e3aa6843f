import logging
import time
from functools import wraps
from typing import Optional, Tuple

import redis
from flask import current_app

from marketingpro.errors import RateLimitExceeded

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Fixed-window counter in Redis, shared by every app instance.

    The window index is part of the key, so each window starts from zero
    without a reset step. Redis being unreachable lets the request through.
    """

    def __init__(self, redis_client: Optional[redis.Redis], prefix: str = "rate_limit"):
        self.redis = redis_client
        self.prefix = prefix

    def _key(self, identifier: str, window: int, now: float) -> str:
        return f"{self.prefix}:{identifier}:{int(now // window)}"

    def hit(self, identifier: str, limit: int, window: int = 60, now: Optional[float] = None) -> Tuple[int, int]:
        """
        Count one request. Returns (remaining_requests, reset_in_seconds).
        """
        if self.redis is None:
            return limit, window

        now = time.time() if now is None else now
        key = self._key(identifier, window, now)
        reset_in = window - int(now % window)

        try:
            pipe = self.redis.pipeline()
            pipe.incr(key, 1)
            pipe.expire(key, window)
            count, _ = pipe.execute()
        except redis.RedisError as e:
            logger.warning("Rate limiter unavailable, allowing request", extra={"error": str(e)})
            return limit, window

        if count > limit:
            raise RateLimitExceeded(retry_after=reset_in)

        return limit - count, reset_in


def rate_limit(identifier: str, limit_key: str, window: int = 60):
    """
    Route decorator applying ``RateLimiter`` with the limit read from
    ``current_app.config[limit_key]``. Disabled by ``RATE_LIMITING_ENABLED``.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if current_app.config.get("RATE_LIMITING_ENABLED", True):
                limiter = RateLimiter(current_app.extensions.get("redis"))
                limiter.hit(identifier, current_app.config[limit_key], window)
            return f(*args, **kwargs)
        return decorated_function
    return decorator
