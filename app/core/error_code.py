"""
File: app/core/error_code.py
Description: 全局错误码基类与系统级错误定义

定义结构 Tuple(http_status, code, message):
1. http_status: HTTP 响应状态码 (4xx/5xx)
2. code: 字符串业务码 (格式: domain.reason)
3. message: 默认的人类可读错误消息

领域错误码 (auth.* / sessions.* / users.*) 在各领域 constants.py 中定义，
本模块只包含跨领域的系统错误：参数校验、令牌、限流、存储与外部依赖故障。

Author: jinmozhe
Created: 2026-01-15
Updated: 2026-10-19 (token / rate limit / storage codes)
"""

from enum import Enum

from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_405_METHOD_NOT_ALLOWED,
    HTTP_429_TOO_MANY_REQUESTS,
    HTTP_500_INTERNAL_SERVER_ERROR,
)


class BaseErrorCode(Enum):
    """
    错误码枚举基类
    Value: (http_status, code, msg)
    """

    @property
    def http_status(self) -> int:
        return self.value[0]

    @property
    def code(self) -> str:
        return self.value[1]

    @property
    def msg(self) -> str:
        return self.value[2]


class SystemErrorCode(BaseErrorCode):
    """系统通用错误 (system.*)"""

    # 400: 请求体 / 查询参数校验失败
    INVALID_PARAMS = (HTTP_400_BAD_REQUEST, "system.invalid_params", "参数校验失败")

    # 401: 令牌缺失 / 过期 / 非法 / 类型不符
    UNAUTHORIZED = (HTTP_401_UNAUTHORIZED, "system.unauthorized", "身份认证失败")
    TOKEN_EXPIRED = (HTTP_401_UNAUTHORIZED, "system.token_expired", "令牌已过期")
    TOKEN_MALFORMED = (HTTP_401_UNAUTHORIZED, "system.token_malformed", "令牌无效")
    TOKEN_TYPE_MISMATCH = (
        HTTP_401_UNAUTHORIZED,
        "system.token_type_mismatch",
        "令牌类型不匹配",
    )

    FORBIDDEN = (HTTP_403_FORBIDDEN, "system.forbidden", "权限不足")

    # 404 / 405: 路由未匹配
    NOT_FOUND = (HTTP_404_NOT_FOUND, "system.not_found", "资源不存在")
    METHOD_NOT_ALLOWED = (
        HTTP_405_METHOD_NOT_ALLOWED,
        "system.method_not_allowed",
        "请求方法不被允许",
    )

    # 429: 按 IP 固定窗口限流
    TOO_MANY_REQUESTS = (
        HTTP_429_TOO_MANY_REQUESTS,
        "system.too_many_requests",
        "请求过于频繁，请稍后再试",
    )

    # 500: 服务端故障，细节只写日志
    INTERNAL_ERROR = (
        HTTP_500_INTERNAL_SERVER_ERROR,
        "system.internal_error",
        "系统内部错误",
    )
    DB_ERROR = (HTTP_500_INTERNAL_SERVER_ERROR, "system.db_error", "数据库操作异常")
    DEPENDENCY_ERROR = (
        HTTP_500_INTERNAL_SERVER_ERROR,
        "system.dependency_error",
        "外部服务调用失败",
    )
