# buyer_leads/services/rate_limit.py
from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Protocol, Tuple

from fastapi import Depends
from redis.exceptions import RedisError

from buyer_leads.core.config import settings
from buyer_leads.core.exceptions import RateLimitError, ServiceUnavailableError
from buyer_leads.core.logging import get_structlog_logger
from buyer_leads.services.auth import Identity, get_current_identity
from buyer_leads.services.redis import get_redis_client

logger = get_structlog_logger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    retry_after: Optional[int] = None


class RateLimiter(Protocol):
    async def check_and_consume(self, key: str, limit: int, window: int) -> RateLimitDecision:
        """Count one hit for ``key`` in a fixed ``window`` (seconds)."""
        ...


class InMemoryRateLimiter:
    """Per-process fixed window counter. Development and tests only."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._windows: Dict[str, Tuple[int, float]] = {}

    async def check_and_consume(self, key: str, limit: int, window: int) -> RateLimitDecision:
        now = self._clock()
        expired = [k for k, (_, started) in self._windows.items() if now - started >= window]
        for k in expired:
            del self._windows[k]

        count, started = self._windows.get(key, (0, now))

        if count >= limit:
            retry_after = max(1, math.ceil(window - (now - started)))
            return RateLimitDecision(allowed=False, retry_after=retry_after)

        self._windows[key] = (count + 1, started)
        return RateLimitDecision(allowed=True)


class RedisRateLimiter:
    """Fixed window counter shared by every process using the same Redis."""

    def __init__(self, redis=None, prefix: str = "ratelimit"):
        self.redis = redis
        self.prefix = prefix

    async def check_and_consume(self, key: str, limit: int, window: int) -> RateLimitDecision:
        now = time.time()
        bucket = int(now // window)
        redis_key = f"{self.prefix}:{key}:{bucket}"

        try:
            if self.redis is None:
                self.redis = await get_redis_client()

            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.incr(redis_key)
                pipe.expire(redis_key, window)
                results = await pipe.execute()
            current_count = results[0]
        except (RedisError, ServiceUnavailableError) as e:
            # Fail open when Redis is unreachable
            logger.error("rate_limit.error", error=str(e), key=key[:50])
            return RateLimitDecision(allowed=True)

        if current_count > limit:
            reset_at = (bucket + 1) * window
            return RateLimitDecision(allowed=False, retry_after=max(1, math.ceil(reset_at - now)))
        return RateLimitDecision(allowed=True)


_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    global _limiter

    if _limiter is None:
        if settings.rate_limit_backend == "redis":
            _limiter = RedisRateLimiter()
        else:
            _limiter = InMemoryRateLimiter()
    return _limiter


async def enforce_rate_limit(
    identity: Identity = Depends(get_current_identity),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> Identity:
    """Route dependency: authenticate, then spend one request from the caller's budget."""
    decision = await limiter.check_and_consume(
        f"identity:{identity.id}",
        settings.rate_limit_requests,
        settings.rate_limit_period,
    )
    if not decision.allowed:
        logger.warning(
            "rate_limit.exceeded",
            user_id=str(identity.id),
            retry_after=decision.retry_after,
        )
        raise RateLimitError(
            message="Too many requests",
            retry_after=decision.retry_after,
            details={
                "limit": settings.rate_limit_requests,
                "period": settings.rate_limit_period,
                "retry_after": decision.retry_after,
            },
        )
    return identity
