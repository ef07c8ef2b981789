"""
File: app/core/redis.py
Description: Redis 客户端 (redis.asyncio)

Redis 承载两类短期状态：固定窗口限流计数器与 SSO Refresh Token。
客户端由 lifespan 创建并挂到 app.state.redis，路由通过 RedisDep 取用，
测试直接把 fakeredis 实例写入 app.state。

decode_responses=True：读出的值均为 str。

Author: jinmozhe
Created: 2025-12-05
Updated: 2026-10-19 (lifespan-owned client, RedisDep)
"""

from typing import Annotated

from fastapi import Depends, Request
from redis.asyncio import Redis, from_url

from app.core.config import settings


def create_redis_client(url: str | None = None) -> Redis:
    # 内部自带连接池，进程内共享一个实例
    return from_url(
        url or settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
        socket_connect_timeout=settings.REDIS_SOCKET_CONNECT_TIMEOUT,
    )


async def get_redis(request: Request) -> Redis:
    return request.app.state.redis


RedisDep = Annotated[Redis, Depends(get_redis)]


async def close_redis(client: Redis) -> None:
    await client.aclose()
