"""In-memory sliding-window rate limiter for per-customer endpoints."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from threading import Lock

logger = logging.getLogger(__name__)


@dataclass
class RateLimitConfig:
    """Configuration for rate limiting."""

    coupon_requests: int = 10  # Coupon validations per customer per window
    order_requests: int = 5  # Order placements per customer per window
    window_seconds: int = 60  # Time window in seconds
    cleanup_interval_seconds: int = 300  # Cleanup expired entries every 5 minutes

    @classmethod
    def from_settings(cls) -> "RateLimitConfig":
        """Create config from application settings."""
        from src.core.config import get_settings
        settings = get_settings()
        return cls(
            coupon_requests=settings.rate_limit_coupon_requests,
            order_requests=settings.rate_limit_order_requests,
            window_seconds=settings.rate_limit_window_seconds,
        )

    def limit_for(self, scope: str) -> int:
        """Max requests per window for a limiter scope."""
        return {"coupon": self.coupon_requests, "order": self.order_requests}[scope]


@dataclass
class RequestRecord:
    """Request timestamps for one key."""

    timestamps: list[float] = field(default_factory=list)

    def prune_old(self, window_seconds: int) -> None:
        cutoff = time.time() - window_seconds
        self.timestamps = [ts for ts in self.timestamps if ts > cutoff]

    def seconds_until_available(self, window_seconds: int, max_requests: int) -> int:
        """Seconds until the oldest request inside the window expires."""
        if len(self.timestamps) < max_requests:
            return 0
        oldest_in_window = sorted(self.timestamps)[-max_requests]
        return max(0, int(oldest_in_window + window_seconds - time.time()) + 1)


class InMemoryRateLimitStorage:
    """Thread-safe in-memory rate limit storage with automatic cleanup.

    Keys are ``<scope>:<customer id>``, so each customer has an independent
    budget per scope. State is per process.
    """

    def __init__(self, config: RateLimitConfig | None = None) -> None:
        self.config = config or RateLimitConfig()
        self._storage: dict[str, RequestRecord] = defaultdict(RequestRecord)
        self._lock = Lock()
        self._cleanup_task: asyncio.Task | None = None

    async def start_cleanup_task(self) -> None:
        """Start background cleanup task."""
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())
            logger.info("Rate limiter cleanup task started")

    async def stop_cleanup_task(self) -> None:
        """Stop background cleanup task."""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
            logger.info("Rate limiter cleanup task stopped")

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.cleanup_interval_seconds)
            count = await self.cleanup()
            if count > 0:
                logger.debug("Rate limiter cleaned up %d expired entries", count)

    async def check_and_increment(self, scope: str, customer_id: str) -> tuple[bool, int, int]:
        """Check the customer's budget for a scope and record the request if allowed.

        Args:
            scope: Limiter scope ("coupon" or "order").
            customer_id: Authenticated customer id.

        Returns:
            Tuple of (allowed, remaining_requests, retry_after_seconds).
        """
        max_req = self.config.limit_for(scope)
        window = self.config.window_seconds
        key = f"{scope}:{customer_id}"

        with self._lock:
            record = self._storage[key]
            record.prune_old(window)
            current_count = len(record.timestamps)

            if current_count >= max_req:
                return (False, 0, record.seconds_until_available(window, max_req))

            record.timestamps.append(time.time())
            return (True, max_req - current_count - 1, 0)

    async def cleanup(self) -> int:
        """Remove keys with no recent requests."""
        window = self.config.window_seconds
        removed = 0

        with self._lock:
            for key in list(self._storage):
                record = self._storage[key]
                record.prune_old(window)
                if not record.timestamps:
                    del self._storage[key]
                    removed += 1

        return removed


# Global singleton instance
_rate_limiter: InMemoryRateLimitStorage | None = None


def get_rate_limiter() -> InMemoryRateLimitStorage:
    """Get or create the global rate limiter instance."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = InMemoryRateLimitStorage(RateLimitConfig.from_settings())
    return _rate_limiter


async def init_rate_limiter() -> InMemoryRateLimitStorage:
    """Initialize rate limiter with cleanup task. Call at app startup."""
    limiter = get_rate_limiter()
    await limiter.start_cleanup_task()
    return limiter


async def shutdown_rate_limiter() -> None:
    """Shutdown rate limiter cleanup task. Call at app shutdown."""
    global _rate_limiter
    if _rate_limiter:
        await _rate_limiter.stop_cleanup_task()
        _rate_limiter = None
