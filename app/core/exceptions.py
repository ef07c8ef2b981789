"""
File: app/core/exceptions.py
Description: 业务异常类与全局异常处理器

本模块负责：
1. AppException: 接受 BaseErrorCode 枚举，可附带 data 与响应头 (限流 X-RateLimit-*)
2. 全局处理器将异常映射为统一失败信封：
   - AppException -> 枚举定义的状态码与业务码
   - RequestValidationError -> 400 system.invalid_params (不回传原始输入)
   - Starlette HTTPException -> system.not_found / system.method_not_allowed
   - SQLAlchemyError -> 500 system.db_error；RedisError -> 500 system.dependency_error
   - 其余 Exception -> 500 system.internal_error
3. render_app_exception: 供需要在失败响应上追加 Cookie 的路由复用 (Refresh 过期清 Cookie)

Author: jinmozhe
Created: 2025-11-24
Updated: 2026-10-19 (response headers, storage failures, auth shortcuts)
"""

from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.status import HTTP_404_NOT_FOUND, HTTP_405_METHOD_NOT_ALLOWED

from app.core.error_code import BaseErrorCode, SystemErrorCode
from app.core.logging import logger
from app.core.response import ResponseModel

# ------------------------------------------------------------------------------
# 1. 异常类
# ------------------------------------------------------------------------------


class AppException(Exception):
    """
    应用基础异常类。

    用法示例:
        raise AppException(AuthError.INVALID_CODE)
        raise AppException(AuthError.RATE_LIMITED, data={"retryAfter": 42})
    """

    def __init__(
        self,
        error: BaseErrorCode,
        message: str = "",
        data: Any = None,
        headers: dict[str, str] | None = None,
    ):
        self.error = error
        self.http_status = error.http_status
        self.code = error.code
        self.message = message or error.msg
        self.data = data
        self.headers = headers
        super().__init__(self.message)


class UnauthorizedException(AppException):
    """401 快捷异常 (令牌缺失 / 会话已撤销)"""

    def __init__(self, message: str = "", data: Any = None):
        super().__init__(SystemErrorCode.UNAUTHORIZED, message=message, data=data)


class PermissionException(AppException):
    """403 快捷异常 (非超级管理员访问管理端)"""

    def __init__(self, message: str = "", data: Any = None):
        super().__init__(SystemErrorCode.FORBIDDEN, message=message, data=data)


# ------------------------------------------------------------------------------
# 2. 渲染
# ------------------------------------------------------------------------------


def _get_request_id(request: Request) -> str:
    return str(getattr(request.state, "request_id", "unknown"))


def _render(
    request: Request,
    error: BaseErrorCode,
    message: str = "",
    data: Any = None,
    headers: dict[str, str] | None = None,
) -> ORJSONResponse:
    body = ResponseModel.from_error(
        error, message=message, data=data, request_id=_get_request_id(request)
    )
    return ORJSONResponse(
        status_code=error.http_status,
        content=body.model_dump(mode="json"),
        headers=headers,
    )


def render_app_exception(request: Request, exc: AppException) -> ORJSONResponse:
    """将 AppException 渲染为统一失败信封响应 (路由可在返回前追加 Cookie)"""
    return _render(request, exc.error, exc.message, exc.data, exc.headers)


# ------------------------------------------------------------------------------
# 3. 全局异常处理器
# ------------------------------------------------------------------------------


async def app_exception_handler(request: Request, exc: AppException) -> ORJSONResponse:
    log = logger.bind(
        request_id=_get_request_id(request),
        error_code=exc.code,
        http_status=exc.http_status,
        path=request.url.path,
    )
    if exc.http_status >= 500:
        log.error(f"Business exception: {exc.message}")
    else:
        # 认证失败属于正常业务分支，只记 warning，不带堆栈
        log.warning(f"Business exception: {exc.message}")

    return render_app_exception(request, exc)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> ORJSONResponse:
    """
    Pydantic 校验失败 -> 400 system.invalid_params
    只回传字段路径与提示，不回传原始输入 (可能包含密码 / 验证码)。
    """
    errors = exc.errors()
    first_error = errors[0] if errors else {}

    loc = first_error.get("loc", [])
    field_name = str(loc[-1]) if loc else "unknown"
    readable_message = f"{field_name}: {first_error.get('msg', 'Invalid parameter')}"

    logger.bind(
        request_id=_get_request_id(request),
        path=request.url.path,
        detail=readable_message,
    ).warning("Request validation failed")

    safe_errors = [
        {"loc": list(err.get("loc", [])), "msg": err.get("msg", "")} for err in errors
    ]
    return _render(
        request,
        SystemErrorCode.INVALID_PARAMS,
        message=readable_message,
        data={"errors": safe_errors},
    )


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> ORJSONResponse:
    """框架层 HTTP 异常 (路由未匹配 / 方法不允许)"""
    logger.bind(
        request_id=_get_request_id(request),
        status_code=exc.status_code,
        path=request.url.path,
    ).warning(f"Framework HTTP exception: {exc.detail}")

    if exc.status_code == HTTP_404_NOT_FOUND:
        return _render(request, SystemErrorCode.NOT_FOUND)
    if exc.status_code == HTTP_405_METHOD_NOT_ALLOWED:
        return _render(
            request, SystemErrorCode.METHOD_NOT_ALLOWED, headers=getattr(exc, "headers", None)
        )

    body = ResponseModel.fail(
        code="system.http_error",
        message=str(exc.detail),
        request_id=_get_request_id(request),
    )
    return ORJSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(mode="json"),
        headers=getattr(exc, "headers", None),
    )


async def storage_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    """数据库 / Redis 故障：记录堆栈，对外只返回通用错误码"""
    error = (
        SystemErrorCode.DB_ERROR
        if isinstance(exc, SQLAlchemyError)
        else SystemErrorCode.DEPENDENCY_ERROR
    )
    logger.opt(exception=exc).bind(
        request_id=_get_request_id(request), path=request.url.path
    ).error(f"Storage failure: {exc.__class__.__name__}")
    return _render(request, error)


async def general_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    """最后的防线：未捕获异常 -> 500，内部细节只写日志"""
    logger.opt(exception=exc).bind(request_id=_get_request_id(request)).error(
        "Unhandled system exception occurred"
    )
    return _render(request, SystemErrorCode.INTERNAL_ERROR)


# ------------------------------------------------------------------------------
# 4. 注册
# ------------------------------------------------------------------------------


def register_exception_handlers(app: FastAPI) -> None:
    """统一注册所有异常处理器 (main.create_app 中调用)"""
    app.add_exception_handler(AppException, app_exception_handler)  # type: ignore
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore
    app.add_exception_handler(SQLAlchemyError, storage_exception_handler)
    app.add_exception_handler(RedisError, storage_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
