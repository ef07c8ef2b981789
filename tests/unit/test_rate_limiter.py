"""
File: tests/unit/test_rate_limiter.py
Description: 固定窗口限流单元测试

Author: jinmozhe
Created: 2026-10-19
"""

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from starlette.requests import Request

from app.core.rate_limit import KEY_PREFIX, RateLimiter, resolve_client_id


def _request(headers: dict[str, str] | None = None, client=("10.0.0.1", 5000)) -> Request:
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


@pytest.mark.asyncio
async def test_counts_within_window(redis) -> None:
    limiter = RateLimiter(redis, "login", window_seconds=900, max_requests=3)

    results = [await limiter.hit("1.2.3.4") for _ in range(4)]

    assert [r.allowed for r in results] == [True, True, True, False]
    assert [r.remaining for r in results] == [2, 1, 0, 0]
    assert all(0 < r.reset_after <= 900 for r in results)


@pytest.mark.asyncio
async def test_window_ttl_set_once(redis) -> None:
    limiter = RateLimiter(redis, "otp", window_seconds=60, max_requests=5)

    await limiter.hit("client")
    key = f"{KEY_PREFIX}otp:client"
    first_ttl = await redis.ttl(key)
    await limiter.hit("client")

    assert 0 < first_ttl <= 60
    assert await redis.ttl(key) <= first_ttl
    assert await redis.get(key) == "2"


@pytest.mark.asyncio
async def test_clients_and_prefixes_are_isolated(redis) -> None:
    login = RateLimiter(redis, "login", window_seconds=60, max_requests=1)
    otp = RateLimiter(redis, "otp", window_seconds=60, max_requests=1)

    assert (await login.hit("a")).allowed
    assert not (await login.hit("a")).allowed
    assert (await login.hit("b")).allowed
    assert (await otp.hit("a")).allowed


@pytest.mark.asyncio
async def test_fail_open_when_store_unavailable() -> None:
    class BrokenPipeline:
        async def __aenter__(self):
            raise RedisConnectionError("connection refused")

        async def __aexit__(self, *exc):
            return False

    class BrokenRedis:
        def pipeline(self, transaction: bool = True) -> BrokenPipeline:
            return BrokenPipeline()

    limiter = RateLimiter(BrokenRedis(), "login", window_seconds=60, max_requests=1)  # type: ignore[arg-type]

    assert await limiter.hit("a") is None


def test_client_id_prefers_forwarded_for() -> None:
    request = _request({"X-Forwarded-For": "203.0.113.7, 10.0.0.2"})
    assert resolve_client_id(request) == "203.0.113.7"


def test_client_id_falls_back_to_peer() -> None:
    assert resolve_client_id(_request()) == "10.0.0.1"


def test_client_id_random_when_unknown() -> None:
    first = resolve_client_id(_request(client=None))
    second = resolve_client_id(_request(client=None))
    assert first != second
