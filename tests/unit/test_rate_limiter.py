"""Unit tests for rate limiting."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from backend.app.config import Settings
from backend.app.db.inmemory import InMemoryCounterStore
from backend.app.middleware.ratelimit import RateLimitMiddleware, create_default_bucket_map
from backend.app.ratelimit import (
    FixedWindowRateLimiter,
    RedisCounterStore,
    make_rate_limit_key,
    window_start_for,
)

WINDOW_START = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def test_make_rate_limit_key() -> None:
    assert make_rate_limit_key("10.0.0.1", "api") == "10.0.0.1:api"


def test_window_is_epoch_aligned() -> None:
    now = WINDOW_START + timedelta(minutes=7, seconds=3)

    assert window_start_for(now, 900) == WINDOW_START


@pytest.mark.asyncio
async def test_rate_limiter_allows_under_quota() -> None:
    """Test rate limiter allows requests under quota."""
    limiter = FixedWindowRateLimiter(InMemoryCounterStore(), max_requests=5, window_seconds=60)

    for i in range(5):
        retry_after = await limiter.hit("client:api", WINDOW_START + timedelta(seconds=i))
        assert retry_after is None


@pytest.mark.asyncio
async def test_rate_limiter_blocks_over_quota() -> None:
    """Test rate limiter blocks requests over quota."""
    limiter = FixedWindowRateLimiter(InMemoryCounterStore(), max_requests=3, window_seconds=60)
    now = WINDOW_START + timedelta(seconds=20)

    for _ in range(3):
        assert await limiter.hit("client:api", now) is None

    retry_after = await limiter.hit("client:api", now)
    assert retry_after is not None
    # Seconds left until the window containing ``now`` ends
    assert retry_after.seconds == 40


@pytest.mark.asyncio
async def test_rate_limiter_resets_after_window() -> None:
    """Test rate limiter resets quota after window expires."""
    limiter = FixedWindowRateLimiter(InMemoryCounterStore(), max_requests=2, window_seconds=60)

    await limiter.hit("client:api", WINDOW_START)
    await limiter.hit("client:api", WINDOW_START)
    assert await limiter.hit("client:api", WINDOW_START) is not None

    assert await limiter.hit("client:api", WINDOW_START + timedelta(seconds=61)) is None


@pytest.mark.asyncio
async def test_rate_limiter_keys_are_independent() -> None:
    limiter = FixedWindowRateLimiter(InMemoryCounterStore(), max_requests=1, window_seconds=60)

    assert await limiter.hit("a:api", WINDOW_START) is None
    assert await limiter.hit("b:api", WINDOW_START) is None
    assert await limiter.hit("a:api", WINDOW_START) is not None


@pytest.mark.asyncio
async def test_concurrent_hits_admit_exactly_the_quota() -> None:
    """100 concurrent requests are admitted and the 101st is rejected."""
    limiter = FixedWindowRateLimiter(InMemoryCounterStore(), max_requests=100, window_seconds=900)
    now = WINDOW_START + timedelta(seconds=1)

    results = await asyncio.gather(*(limiter.hit("client:api", now) for _ in range(100)))
    assert all(r is None for r in results)

    assert await limiter.hit("client:api", now) is not None


@pytest.mark.asyncio
async def test_check_reports_remaining_quota() -> None:
    limiter = FixedWindowRateLimiter(InMemoryCounterStore(), max_requests=3, window_seconds=60)

    first = await limiter.check("client:api", WINDOW_START)
    assert first.allowed
    assert first.limit == 3
    assert first.remaining == 2
    assert first.reset_after == 60

    await limiter.check("client:api", WINDOW_START)
    await limiter.check("client:api", WINDOW_START)
    over = await limiter.check("client:api", WINDOW_START)
    assert not over.allowed
    assert over.remaining == 0


@pytest.mark.asyncio
async def test_redis_counter_store_uses_window_stamped_key() -> None:
    """INCR and EXPIRE NX are queued on one transactional pipeline."""
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[4, True])
    pipe.__aenter__ = AsyncMock(return_value=pipe)
    pipe.__aexit__ = AsyncMock(return_value=None)
    client = MagicMock()
    client.pipeline.return_value = pipe

    store = RedisCounterStore(client)
    hit = await store.incr("10.0.0.1:api", 900, WINDOW_START + timedelta(seconds=30))

    key = f"ratelimit:10.0.0.1:api:{int(WINDOW_START.timestamp())}"
    client.pipeline.assert_called_once_with(transaction=True)
    pipe.incr.assert_called_once_with(key)
    pipe.expire.assert_called_once_with(key, 900, nx=True)
    assert hit.count == 4
    assert hit.window_start == WINDOW_START
    assert hit.reset_at == WINDOW_START + timedelta(seconds=900)


@pytest.mark.asyncio
async def test_counter_stores_agree_on_window_boundaries() -> None:
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[1, True])
    pipe.__aenter__ = AsyncMock(return_value=pipe)
    pipe.__aexit__ = AsyncMock(return_value=None)
    client = MagicMock()
    client.pipeline.return_value = pipe

    for offset in (0, 1, 899, 900, 1799):
        now = WINDOW_START + timedelta(seconds=offset)
        redis_hit = await RedisCounterStore(client).incr("k", 900, now)
        memory_hit = await InMemoryCounterStore().incr("k", 900, now)

        assert redis_hit.window_start == memory_hit.window_start == window_start_for(now, 900)
        assert redis_hit.reset_at == memory_hit.reset_at


def test_bucket_mapping() -> None:
    middleware = RateLimitMiddleware(MagicMock(), settings=Settings(database_url=None))

    assert middleware.get_bucket("/api/v1/users/generate-api-key") == "auth"
    assert middleware.get_bucket("/api/v1/chats") == "api"
    assert middleware.get_bucket("/health") is None
    assert middleware.get_bucket("/healthz") is None
    assert middleware.get_bucket("/metrics") is None


def test_default_bucket_map() -> None:
    assert create_default_bucket_map() == {"/users/generate-api-key": "auth"}
