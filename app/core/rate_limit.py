"""
Rate limiting for API endpoints
"""
from fastapi import Request
from typing import Callable, Dict, Optional, Tuple
import asyncio
import math
import time
import logging

from app.core.config import settings
from app.core.exceptions import RateLimitError
from app.core.redis import get_redis

logger = logging.getLogger(__name__)


class InMemoryWindowStore:
    """
    Fixed-window counters keyed by client identifier, for when Redis is absent.

    Read-increment-write happens under one lock. The map holds at most
    max_clients entries: expired windows are evicted first, then the oldest.
    """

    def __init__(self, max_clients: int = 10000, clock: Callable[[], float] = time.monotonic):
        self.max_clients = max_clients
        self._clock = clock
        self._windows: Dict[str, Tuple[int, float]] = {}  # key -> (count, reset_at)
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._windows)

    def _evict(self, now: float) -> None:
        expired = [key for key, (_, reset_at) in self._windows.items() if now >= reset_at]
        for key in expired:
            del self._windows[key]

        while len(self._windows) >= self.max_clients:
            oldest = min(self._windows, key=lambda k: self._windows[k][1])
            del self._windows[oldest]

    async def hit(self, key: str, window: int) -> Tuple[int, int]:
        """Count one request. Returns (count in window, seconds until reset)."""
        async with self._lock:
            now = self._clock()
            record = self._windows.get(key)

            if record is None or now >= record[1]:
                if record is None and len(self._windows) >= self.max_clients:
                    self._evict(now)
                record = (0, now + window)

            count, reset_at = record[0] + 1, record[1]
            self._windows[key] = (count, reset_at)
            return count, max(1, math.ceil(reset_at - now))


class RateLimiter:
    """Rate limiter using Redis when available, in-memory counters otherwise"""

    def __init__(
        self,
        requests: int,
        window: int,
        identifier_callback=None,
        max_clients: int = 10000,
        store: Optional[InMemoryWindowStore] = None,
        redis_getter: Callable = get_redis,
    ):
        """
        Initialize rate limiter

        Args:
            requests: Number of requests allowed
            window: Time window in seconds
            identifier_callback: Function to get identifier from request (default: IP address)
            max_clients: Upper bound on tracked identifiers for the in-memory store
        """
        self.requests = requests
        self.window = window
        self.identifier_callback = identifier_callback or self._get_client_ip
        self.store = store or InMemoryWindowStore(max_clients=max_clients)
        self._get_redis = redis_getter

    @staticmethod
    def _get_client_ip(request: Request) -> str:
        """Get client IP address from request"""
        # Check for forwarded IP (when behind proxy/load balancer)
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip

        if request.client:
            return request.client.host

        return "unknown"

    def _redis_hit(self, redis, key: str) -> Optional[Tuple[int, int]]:
        try:
            # SET NX starts the window once; INCR never extends it
            pipe = redis.pipeline()
            pipe.set(key, 0, ex=self.window, nx=True)
            pipe.incr(key)
            pipe.ttl(key)
            _, count, ttl = pipe.execute()
            return int(count), max(1, int(ttl))
        except Exception as e:
            logger.error(f"Rate limiting error: {e}")
            return None

    async def hit(self, request: Request) -> Tuple[int, int]:
        """Count this request; returns (count in window, seconds until reset)"""
        identifier = self.identifier_callback(request)
        key = f"rate_limit:{request.url.path}:{identifier}"

        redis = self._get_redis()
        if redis:
            result = self._redis_hit(redis, key)
            if result is not None:
                return result

        return await self.store.hit(key, self.window)

    async def __call__(self, request: Request) -> None:
        """FastAPI dependency: raises RateLimitError when over the limit"""
        count, retry_after = await self.hit(request)
        if count > self.requests:
            raise RateLimitError(retry_after=retry_after)


def rate_limit(requests: int = 10, window: int = 60, identifier_callback=None) -> RateLimiter:
    """
    Build a rate limiter dependency

    Example:
        @router.post("/skin/analyze", dependencies=[Depends(rate_limit(requests=10, window=60))])
        async def analyze(...):
            ...
    """
    return RateLimiter(requests, window, identifier_callback, max_clients=settings.RATE_LIMIT_MAX_CLIENTS)


# Limiter for the analysis endpoint
analysis_rate_limit = rate_limit(
    requests=settings.RATE_LIMIT_REQUESTS,
    window=settings.RATE_LIMIT_WINDOW_SECONDS,
)
