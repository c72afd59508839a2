"""Redis-backed fixed window request gate shared across processes."""

from __future__ import annotations

import logging
import time
from typing import Callable

from redis import Redis, RedisError

logger = logging.getLogger(__name__)


class RedisFixedWindowRateLimiter:
    """Distributed limiter counting hits in a Redis key per window bucket.

    When Redis stops answering mid-flight the limiter fails open by default,
    so an outage of the shared counter does not take authentication down with
    it. Pass ``fail_open=False`` to reject requests instead.
    """

    def __init__(
        self,
        client: Redis,
        *,
        max_requests: int,
        window_seconds: int,
        key_prefix: str = "tenant-auth:rate",
        fail_open: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Keep the Redis client and window configuration."""
        if max_requests < 1 or window_seconds < 1:
            raise ValueError("max_requests and window_seconds must be positive")
        self._client = client
        self._max_requests = max_requests
        self._window_seconds = window_seconds
        self._key_prefix = key_prefix
        self._fail_open = fail_open
        self._clock = clock

    def allow(self, key: str) -> bool:
        """Return ``True`` when ``key`` is still within the shared rate limit."""
        bucket = int(self._clock()) // self._window_seconds
        redis_key = f"{self._key_prefix}:{key}:{bucket}"
        try:
            pipe = self._client.pipeline()
            pipe.incr(redis_key)
            pipe.expire(redis_key, self._window_seconds)
            hits, _ = pipe.execute()
        except RedisError as exc:
            logger.warning(
                "redis rate limiter unavailable, %s request: %s",
                "allowing" if self._fail_open else "rejecting",
                exc,
            )
            return self._fail_open
        return int(hits) <= self._max_requests
