"""
File: app/core/rate_limit.py
Description: 基于 Redis 的固定窗口限流

本模块负责：
1. RateLimiter: 以 {prefix}{client_id} 为键的固定窗口计数器
   - 单个 MULTI 事务完成 "SET NX EX + INCR + PTTL"，并发请求不会丢失计数
   - Redis 故障时放行 (fail-open) 并记录日志
2. RateLimit: FastAPI 路由依赖，写入 X-RateLimit-* 响应头，超限抛出 429
3. 客户端标识: X-Forwarded-For 首个地址 > socket 对端地址 > 随机 ID

用法:
    @router.post("/login", dependencies=[Depends(RateLimit("login", 900, 10))])

Author: jinmozhe
Created: 2026-10-19
"""

import math
from dataclasses import dataclass

from fastapi import Request, Response
from redis.asyncio import Redis
from redis.exceptions import RedisError
from uuid6 import uuid7

from app.core.error_code import SystemErrorCode
from app.core.exceptions import AppException
from app.core.logging import logger
from app.core.middleware import get_client_ip
from app.core.redis import RedisDep

KEY_PREFIX = "ratelimit:"


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_after: int  # 距窗口结束的秒数


class RateLimiter:
    """固定窗口计数器"""

    def __init__(self, redis: Redis, prefix: str, window_seconds: int, max_requests: int):
        self.redis = redis
        self.prefix = f"{KEY_PREFIX}{prefix}:"
        self.window_seconds = window_seconds
        self.max_requests = max_requests

    async def hit(self, client_id: str) -> RateLimitResult | None:
        """
        记录一次请求。
        返回 None 表示限流存储不可用，调用方应放行。
        """
        key = f"{self.prefix}{client_id}"

        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                # 首次命中时建键并设置窗口 TTL；已存在则保持原 TTL
                pipe.set(key, 0, ex=self.window_seconds, nx=True)
                pipe.incr(key)
                pipe.pttl(key)
                _, count, pttl = await pipe.execute()
        except (RedisError, OSError) as e:
            logger.bind(prefix=self.prefix, error=str(e)).error(
                "Rate limiter store unavailable, allowing request"
            )
            return None

        count = int(count)
        reset_after = (
            math.ceil(int(pttl) / 1000) if int(pttl) > 0 else self.window_seconds
        )

        return RateLimitResult(
            allowed=count <= self.max_requests,
            limit=self.max_requests,
            remaining=max(0, self.max_requests - count),
            reset_after=reset_after,
        )


def resolve_client_id(request: Request) -> str:
    """获取限流用的客户端标识"""
    return get_client_ip(request) or uuid7().hex


class RateLimit:
    """
    限流路由依赖。

    超限时抛出 AppException(429)，携带响应头与 {error, retryAfter} 数据。
    """

    def __init__(self, prefix: str, window_seconds: int, max_requests: int):
        self.prefix = prefix
        self.window_seconds = window_seconds
        self.max_requests = max_requests

    async def __call__(
        self,
        request: Request,
        response: Response,
        redis: RedisDep,
    ) -> None:
        limiter = RateLimiter(redis, self.prefix, self.window_seconds, self.max_requests)
        client_id = resolve_client_id(request)

        result = await limiter.hit(client_id)
        if result is None:
            return

        headers = {
            "X-RateLimit-Limit": str(result.limit),
            "X-RateLimit-Remaining": str(result.remaining),
        }

        if not result.allowed:
            headers["X-RateLimit-Reset"] = str(result.reset_after)
            headers["Retry-After"] = str(result.reset_after)
            logger.bind(prefix=self.prefix, client_id=client_id).warning(
                "Rate limit exceeded"
            )
            raise AppException(
                SystemErrorCode.TOO_MANY_REQUESTS,
                data={"error": "Too Many Requests", "retryAfter": result.reset_after},
                headers=headers,
            )

        response.headers.update(headers)
