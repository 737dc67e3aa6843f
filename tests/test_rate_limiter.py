from unittest.mock import MagicMock

import pytest
import redis

from marketingpro.errors import RateLimitExceeded
from marketingpro.security.rate_limiter import RateLimiter


def _redis_returning(count):
    client = MagicMock()
    client.pipeline.return_value.execute.return_value = [count, True]
    return client


def test_within_limit_returns_remaining():
    limiter = RateLimiter(_redis_returning(3))

    remaining, reset_in = limiter.hit("stripe_webhook", limit=10, window=60, now=1_000_040.0)

    assert remaining == 7
    assert reset_in == 40


def test_over_limit_raises_with_retry_after():
    limiter = RateLimiter(_redis_returning(11))

    with pytest.raises(RateLimitExceeded) as exc_info:
        limiter.hit("stripe_webhook", limit=10, window=60, now=1_000_040.0)

    assert exc_info.value.status_code == 429
    assert exc_info.value.retry_after == 40
    assert exc_info.value.payload == {"retry_after": 40}


def test_key_is_scoped_to_the_window():
    client = _redis_returning(1)
    limiter = RateLimiter(client)

    limiter.hit("stripe_webhook", limit=10, window=60, now=120.0)

    pipe = client.pipeline.return_value
    pipe.incr.assert_called_once_with("rate_limit:stripe_webhook:2", 1)
    pipe.expire.assert_called_once_with("rate_limit:stripe_webhook:2", 60)


def test_redis_errors_fail_open():
    client = MagicMock()
    client.pipeline.return_value.execute.side_effect = redis.ConnectionError("connection refused")

    remaining, _ = RateLimiter(client).hit("stripe_webhook", limit=10)

    assert remaining == 10


def test_without_redis_requests_pass():
    assert RateLimiter(None).hit("stripe_webhook", limit=5) == (5, 60)
