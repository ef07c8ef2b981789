"""
File: app/main.py
Description: FastAPI 应用入口与工厂函数

本模块负责：
1. 创建 FastAPI 应用实例 (默认响应类 ORJSONResponse)
2. lifespan 显式创建并释放进程级资源，挂到 app.state：
   数据库引擎 / 会话工厂 / Redis / 出站 HTTP 客户端
3. 组装中间件、异常处理器与 /api/v1 路由
4. /health: 探测数据库与 Redis 连通性

Author: jinmozhe
Created: 2025-12-05
Updated: 2026-10-19 (lifespan-owned resources, dependency health check)
"""

import asyncio
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

# ------------------------------------------------------------------------------
# [Fix for Windows] 解决 Windows 下 asyncpg 连接重置/关闭的 Bug
# 必须在任何 asyncio 循环启动前执行 (放在顶部)
# ------------------------------------------------------------------------------
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


import httpx
from fastapi import FastAPI, Request, Response, status
from fastapi.responses import ORJSONResponse
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.api_router import api_router
from app.core.config import settings
from app.core.exceptions import register_exception_handlers
from app.core.logging import logger, setup_logging
from app.core.middleware import register_middlewares
from app.core.redis import close_redis, create_redis_client
from app.core.response import ResponseModel
from app.db.session import build_engine, build_session_factory, close_engine


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()

    engine = build_engine()
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.redis = create_redis_client()
    app.state.http_client = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)

    logger.bind(environment=settings.ENVIRONMENT).info(
        f"{settings.PROJECT_NAME} started"
    )

    yield

    # 与创建顺序相反
    await app.state.http_client.aclose()
    await close_redis(app.state.redis)
    await close_engine(engine)

    logger.info(f"{settings.PROJECT_NAME} stopped")


async def _check_dependencies(request: Request) -> dict[str, str]:
    """逐项探测存储连通性，失败记为 unavailable"""
    checks = {"database": "ok", "redis": "ok"}

    try:
        async with request.app.state.session_factory() as session:
            await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.bind(error=e.__class__.__name__).warning("Health check: database down")
        checks["database"] = "unavailable"

    try:
        await asyncio.wait_for(
            request.app.state.redis.ping(), timeout=settings.REDIS_SOCKET_CONNECT_TIMEOUT
        )
    except (RedisError, TimeoutError, OSError) as e:
        logger.bind(error=e.__class__.__name__).warning("Health check: redis down")
        checks["redis"] = "unavailable"

    return checks


def create_app() -> FastAPI:
    """应用工厂函数"""
    app = FastAPI(
        title=settings.PROJECT_NAME,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    register_middlewares(app)
    register_exception_handlers(app)
    app.include_router(api_router, prefix=settings.API_V1_STR)

    @app.get(
        "/health",
        tags=["health"],
        summary="健康检查",
        description="探测数据库与 Redis；任一不可用时返回 503 与 degraded。",
        response_model=ResponseModel[dict[str, str]],
    )
    async def health_check(request: Request, response: Response):
        checks = await _check_dependencies(request)
        healthy = all(v == "ok" for v in checks.values())
        if not healthy:
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

        return ResponseModel.success(
            data={"status": "ok" if healthy else "degraded", **checks},
            request_id=getattr(request.state, "request_id", None),
        )

    return app


# 暴露给 Uvicorn 运行的应用实例
app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
