"""
File: app/core/middleware.py
Description: 请求链路中间件与客户端地址解析

本模块负责：
1. RequestContextMiddleware：
   - 沿用上游网关传入的 X-Request-ID (格式合法时)，否则生成 UUID v7
   - 将 request_id / client_ip 绑定到 Loguru 上下文
   - 认证类响应追加 Cache-Control: no-store (响应中含访问令牌)
   - 记录访问日志，只记录 path 不记录 query
2. get_client_ip：限流、会话记录与访问日志共用
3. register_middlewares：CORS (携带 Cookie) 与上下文中间件

Author: jinmozhe
Created: 2025-11-24
Updated: 2026-10-19 (upstream request id, no-store on auth responses)
"""

import re
import time
from collections.abc import Awaitable, Callable

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from uuid6 import uuid7

from app.core.config import settings
from app.core.logging import logger

REQUEST_ID_HEADER = "X-Request-ID"

# 网关传入的 request id 只接受短的 token 字符，防止日志注入
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9\-_.]{8,64}$")

QUIET_PATHS: frozenset[str] = frozenset({"/health", "/favicon.ico"})

NO_STORE_PREFIXES: tuple[str, ...] = (
    f"{settings.API_V1_STR}/auth",
)

RATE_LIMIT_HEADERS = [
    "X-RateLimit-Limit",
    "X-RateLimit-Remaining",
    "X-RateLimit-Reset",
    "Retry-After",
]


def get_client_ip(request: Request) -> str | None:
    """
    解析客户端地址。
    优先取 X-Forwarded-For 的第一个地址，其次取 socket 对端地址。
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    if request.client and request.client.host:
        return request.client.host

    return None


def resolve_request_id(request: Request) -> str:
    upstream = request.headers.get(REQUEST_ID_HEADER)
    if upstream and _REQUEST_ID_PATTERN.match(upstream):
        return upstream
    return str(uuid7())


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = resolve_request_id(request)
        request.state.request_id = request_id
        client_ip = get_client_ip(request) or "unknown"
        path = request.url.path

        with logger.contextualize(request_id=request_id, client_ip=client_ip):
            started = time.perf_counter()
            try:
                response = await call_next(request)
            except Exception as exc:
                # 异常处理器未兜底时才会走到这里
                logger.bind(
                    method=request.method,
                    path=path,
                    duration_ms=round((time.perf_counter() - started) * 1000, 2),
                ).opt(exception=exc).error("Request failed with unhandled exception")
                raise

            response.headers[REQUEST_ID_HEADER] = request_id
            if path.startswith(NO_STORE_PREFIXES):
                response.headers["Cache-Control"] = "no-store"
                response.headers["Pragma"] = "no-cache"

            if path not in QUIET_PATHS:
                logger.bind(
                    method=request.method,
                    path=path,
                    status_code=response.status_code,
                    duration_ms=round((time.perf_counter() - started) * 1000, 2),
                    user_agent=request.headers.get("user-agent", ""),
                ).info("Request finished")

            return response


def register_middlewares(app: FastAPI) -> None:
    """后注册的中间件先处理请求，上下文中间件必须最后注册"""
    if settings.BACKEND_CORS_ORIGINS:
        # 携带 Cookie 时来源必须显式列出
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[
                str(origin).rstrip("/") for origin in settings.BACKEND_CORS_ORIGINS
            ],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=[REQUEST_ID_HEADER, *RATE_LIMIT_HEADERS],
        )

    app.add_middleware(RequestContextMiddleware)
