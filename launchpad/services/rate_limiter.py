import logging
import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

from limits import RateLimitItem, RateLimitItemPerSecond
from limits.storage import storage_from_string
from limits.strategies import MovingWindowRateLimiter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TierLimit:
    requests: int
    window: int  # seconds

    def as_item(self) -> RateLimitItem:
        return RateLimitItemPerSecond(self.requests, self.window)


TIER_LIMITS: dict[str, TierLimit] = {
    "public": TierLimit(requests=60, window=60),
    "basic": TierLimit(requests=100, window=3600),
    "premium": TierLimit(requests=1000, window=3600),
    "enterprise": TierLimit(requests=10000, window=3600),
}


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset: int  # unix seconds


class RateLimitStore(ABC):
    """Backend that records requests and answers quota checks."""

    @abstractmethod
    async def check(self, key: str, tier: str) -> RateLimitResult:
        """Record a request for key under tier if capacity remains. Never raises on exceed."""


class MovingWindowRateLimitStore(RateLimitStore):
    """
    Moving-window quotas on a `limits` storage backend.

    `memory://` keeps state in this process only; a shared backend such as
    `redis://host:6379` makes quotas hold across workers and restarts.
    """

    def __init__(self, storage_uri: str = "memory://", limits: dict[str, TierLimit] | None = None) -> None:
        self._limits = limits or TIER_LIMITS
        self._items = {tier: limit.as_item() for tier, limit in self._limits.items()}
        self._storage = storage_from_string(storage_uri)
        self._strategy = MovingWindowRateLimiter(self._storage)

    async def check(self, key: str, tier: str) -> RateLimitResult:
        now = time.time()
        item = self._items.get(tier)
        if item is None:
            logger.warning("[ratelimit] unknown tier | tier=%s | key=%s", tier, key)
            return RateLimitResult(allowed=False, limit=0, remaining=0, reset=math.ceil(now))

        limit = self._limits[tier]
        allowed = self._strategy.hit(item, tier, key)
        stats = self._strategy.get_window_stats(item, tier, key)

        if allowed:
            return RateLimitResult(
                allowed=True,
                limit=limit.requests,
                remaining=max(0, stats.remaining),
                reset=math.ceil(now + limit.window),
            )

        logger.info("[ratelimit] denied | key=%s | tier=%s", key, tier)
        return RateLimitResult(
            allowed=False,
            limit=limit.requests,
            remaining=0,
            reset=math.ceil(stats.reset_time),
        )


class RateLimiter:
    def __init__(self, store: RateLimitStore) -> None:
        self._store = store

    async def check(self, key: str, tier: str) -> RateLimitResult:
        return await self._store.check(key, tier)

    @staticmethod
    def headers(result: RateLimitResult) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(result.limit),
            "X-RateLimit-Remaining": str(result.remaining),
            "X-RateLimit-Reset": str(result.reset),
        }
