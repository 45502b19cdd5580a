"""Rate limiting utilities."""

from dataclasses import dataclass
from datetime import datetime, timedelta

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from backend.app.db.repositories import CounterHit, CounterStore, RetryAfter, window_start_for
from backend.app.errors import TransientStoreError


def make_rate_limit_key(client_id: str, bucket: str) -> str:
    """Create rate limit key from client identity and bucket.

    Args:
        client_id: Client identity (IP address)
        bucket: Bucket name (e.g., "api", "auth")

    Returns:
        Rate limit key
    """
    return f"{client_id}:{bucket}"


class RedisCounterStore:
    """Redis-based counter store using the INCR + EXPIRE pattern.

    Counters live on window-stamped keys, so a new window starts from a
    fresh key and the old one simply expires.
    """

    def __init__(self, redis_client: redis.Redis, prefix: str = "ratelimit") -> None:
        self._redis = redis_client
        self._prefix = prefix

    async def incr(self, key: str, window_seconds: int, now: datetime) -> CounterHit:
        window_start = window_start_for(now, window_seconds)
        redis_key = f"{self._prefix}:{key}:{int(window_start.timestamp())}"

        try:
            # INCR and EXPIRE NX commit together, so no counter outlives its window
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.incr(redis_key)
                pipe.expire(redis_key, window_seconds, nx=True)
                count, _ = await pipe.execute()
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise TransientStoreError(str(e)) from e

        return CounterHit(
            count=int(count),
            window_start=window_start,
            reset_at=window_start + timedelta(seconds=window_seconds),
        )

    async def ping(self) -> None:
        await self._redis.ping()

    async def close(self) -> None:
        await self._redis.aclose()


@dataclass(frozen=True)
class RateLimitStatus:
    """Outcome of one counted request."""

    limit: int
    remaining: int
    reset_after: int
    retry_after: RetryAfter | None

    @property
    def allowed(self) -> bool:
        return self.retry_after is None


class FixedWindowRateLimiter:
    """Fixed-window limiter over a shared counter store.

    The counter is incremented before the decision, so rejected requests
    count against the window too.
    """

    def __init__(self, store: CounterStore, max_requests: int, window_seconds: int = 900) -> None:
        """Initialize rate limiter.

        Args:
            store: Counter store shared by all workers of this instance
            max_requests: Maximum requests per window
            window_seconds: Window size in seconds (default 15 minutes)
        """
        self._store = store
        self._max_requests = max_requests
        self._window_seconds = window_seconds

    @property
    def max_requests(self) -> int:
        return self._max_requests

    async def check(self, key: str, now: datetime) -> RateLimitStatus:
        """Count a request and report the window state.

        Args:
            key: Rate limit key
            now: Current timestamp

        Returns:
            Status with remaining quota; ``retry_after`` set when over quota
        """
        hit = await self._store.incr(key, self._window_seconds, now)
        reset_after = max(1, int((hit.reset_at - now).total_seconds()))

        retry_after = None
        if hit.count > self._max_requests:
            retry_after = RetryAfter(seconds=reset_after)

        return RateLimitStatus(
            limit=self._max_requests,
            remaining=max(0, self._max_requests - hit.count),
            reset_after=reset_after,
            retry_after=retry_after,
        )

    async def hit(self, key: str, now: datetime) -> RetryAfter | None:
        """Count a request.

        Returns:
            RetryAfter if over quota, None if allowed
        """
        status = await self.check(key, now)
        return status.retry_after
