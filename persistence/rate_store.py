"""
FormSentry Redis Rate Store

Sliding-window request counter shared by every worker process, using one
Redis sorted set per origin (member and score are the request time).

Key Schema:
    RATE:{origin}   → ZSET of request timestamps, expires after 2 windows

Same contract as formsentry.state_manager.RateLimiter.admit: records the
request and returns the count inside [now - window, now].
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Optional

import redis
from redis.exceptions import RedisError

from .connection import get_redis_client


logger = logging.getLogger(__name__)


class RedisRateLimiter:
    """
    Redis sorted-set sliding window.

    Prune, add and count run in one MULTI/EXEC pipeline so concurrent
    workers never observe a half-updated window.
    """

    KEY_PREFIX: str = "RATE"

    def __init__(
        self,
        window: float = 60.0,
        client: Optional[redis.Redis] = None,
    ) -> None:
        self.window = window
        self.client = client or get_redis_client()

    def _rate_key(self, origin: str) -> str:
        return f"{self.KEY_PREFIX}:{origin}"

    def admit(self, origin: str, now: Optional[float] = None) -> int:
        """Record a request; returns the window count, or 0 if Redis fails (fail open)."""
        if now is None:
            now = time.time()
        key = self._rate_key(origin)
        # Unique member so two requests in the same instant both count
        member = f"{now}:{uuid.uuid4().hex[:8]}"

        try:
            pipe = self.client.pipeline(True)
            pipe.zremrangebyscore(key, "-inf", f"({now - self.window}")
            pipe.zadd(key, {member: now})
            pipe.zcard(key)
            pipe.expire(key, int(self.window * 2) + 1)
            _, _, count, _ = pipe.execute()
            return int(count)
        except RedisError as e:
            logger.warning(f"Rate limit check failed for {origin}: {e}")
            return 0

    def count(self, origin: str, now: Optional[float] = None) -> int:
        if now is None:
            now = time.time()
        try:
            return int(self.client.zcount(self._rate_key(origin), now - self.window, now))
        except RedisError as e:
            logger.warning(f"Rate count failed for {origin}: {e}")
            return 0
