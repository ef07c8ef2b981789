"""
File: app/db/session.py
Description: 数据库会话管理 (Async SQLAlchemy)

本模块负责：
1. 构造 AsyncEngine (生产 postgresql+asyncpg，测试 sqlite+aiosqlite)
2. 配置连接池参数 (pool_pre_ping, pool_size 等)，从 Settings 读取
3. 构造 AsyncSession 工厂
4. 集成 orjson 用于高性能 JSON 字段序列化

引擎与会话工厂由 main.py 的 lifespan 显式创建并挂到 app.state，
不再在模块导入时创建全局实例。

Author: jinmozhe
Created: 2025-11-24
Updated: 2026-10-19 (lifespan-owned engine factory)
"""

from typing import Any

import orjson
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import settings


def _orjson_serializer(obj: Any) -> str:
    """
    使用 orjson 替代标准库 json.dumps。
    orjson 返回 bytes，SQLAlchemy 需要 str，因此需 decode。
    """
    return orjson.dumps(obj).decode("utf-8")


def _orjson_deserializer(obj: str | bytes) -> Any:
    return orjson.loads(obj)


def build_engine(url: str | None = None) -> AsyncEngine:
    """
    创建异步引擎。
    echo=True 会在控制台打印 SQL，仅在 DEBUG 模式开启。
    """
    database_url = url or str(settings.SQLALCHEMY_DATABASE_URI)

    engine_kwargs: dict[str, Any] = {
        "echo": settings.is_debug,
        "json_serializer": _orjson_serializer,
        "json_deserializer": _orjson_deserializer,
    }

    # SQLite (测试/本地) 不支持连接池调优参数
    if not database_url.startswith("sqlite"):
        engine_kwargs.update(
            {
                "pool_pre_ping": settings.DB_POOL_PRE_PING,
                "pool_size": settings.DB_POOL_SIZE,
                "max_overflow": settings.DB_MAX_OVERFLOW,
                "pool_timeout": settings.DB_POOL_TIMEOUT,
                "pool_recycle": settings.DB_POOL_RECYCLE,
            }
        )

    return create_async_engine(database_url, **engine_kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    创建异步会话工厂。
    expire_on_commit=False 是 AsyncSession 的强制要求，
    避免在 commit 后访问属性时触发隐式 IO。
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


async def close_engine(engine: AsyncEngine) -> None:
    """关闭数据库引擎，释放连接池资源。"""
    await engine.dispose()
