"""
File: app/core/response.py
Description: 统一响应信封（Unified Response Envelope）

所有 HTTP 接口 (含失败响应) 使用同一结构：
    {code, message, data, request_id, timestamp}

成功时 code 固定为 "success"；失败时为带命名空间的业务码 (如 auth.invalid_code)。
令牌与验证码不会出现在 data 中，Refresh Token 仅通过 HttpOnly Cookie 下发。

Author: jinmozhe
Created: 2025-11-24
Updated: 2026-10-19 (PageResult, error-code constructor)
"""

from datetime import UTC, datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from app.core.error_code import BaseErrorCode

T = TypeVar("T")

SUCCESS_CODE = "success"


class ResponseBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str = Field(default=SUCCESS_CODE, description="业务状态码")
    message: str = Field(default="Success", description="响应消息")
    request_id: str | None = Field(default=None, description="请求追踪ID")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="响应生成时间 (UTC)",
    )


class ResponseModel(ResponseBase, Generic[T]):
    """统一响应信封"""

    data: T | None = Field(default=None, description="业务数据")

    @classmethod
    def success(
        cls,
        data: T | None = None,
        message: str = "Success",
        request_id: str | None = None,
    ) -> "ResponseModel[T]":
        # Pydantic 模型先转为 JSON 安全的字典 (UUID / datetime)
        if isinstance(data, BaseModel):
            data = data.model_dump(mode="json")  # type: ignore[assignment]

        return cls(code=SUCCESS_CODE, message=message, data=data, request_id=request_id)

    @classmethod
    def fail(
        cls,
        code: str,
        message: str,
        data: Any = None,
        request_id: str | None = None,
    ) -> "ResponseModel[Any]":
        return cls(code=code, message=message, data=data, request_id=request_id)

    @classmethod
    def from_error(
        cls,
        error: BaseErrorCode,
        message: str = "",
        data: Any = None,
        request_id: str | None = None,
    ) -> "ResponseModel[Any]":
        """按错误码枚举构造失败响应 (未给出 message 时使用默认文案)"""
        return cls.fail(
            code=error.code,
            message=message or error.msg,
            data=data,
            request_id=request_id,
        )


class PageResult(BaseModel, Generic[T]):
    """分页结果 (管理端列表)"""

    items: list[T] = Field(default_factory=list, description="当前页数据")
    total: int = Field(default=0, description="总条数")
    page: int = Field(default=1, description="当前页码 (从 1 开始)")
    size: int = Field(default=20, description="每页条数")
