"""
File: app/domains/auth/constants.py
Description: 认证领域常量定义 (错误码 + 成功提示 + Cookie/Redis 键)
Namespace: auth.*

遵循 v2.1 架构规范:
1. Error 定义: 继承 BaseErrorCode，包含 (HTTP状态, 业务码, 默认文案)
2. Msg 定义: 纯字符串常量，用于 Router 返回成功响应

Author: jinmozhe
Created: 2026-01-15
Updated: 2026-10-19 (OTP / magic link / SSO error taxonomy)
"""

from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_429_TOO_MANY_REQUESTS,
    HTTP_500_INTERNAL_SERVER_ERROR,
)

from app.core.error_code import BaseErrorCode

# ==============================================================================
# 0. Cookie 与 Redis 键
# ==============================================================================

ACCESS_TOKEN_COOKIE = "access_token"
REFRESH_TOKEN_COOKIE = "refresh_token"
SSO_STATE_COOKIE = "sso_state"

# SSO 链路的 Refresh Token 镜像: refresh_token:{user_id}
SSO_REFRESH_KEY_PREFIX = "refresh_token:"

# ==============================================================================
# 1. 错误码定义 (Error Codes)
# 用于 Service 层抛出异常: raise AppException(AuthError.USER_NOT_FOUND)
# ==============================================================================


class AuthError(BaseErrorCode):
    """
    认证领域错误定义
    Tuple Structure: (HTTP_Status, Code_String, Default_Message)
    """

    # HTTP 400: 可由客户端纠正的输入错误
    ALREADY_VERIFIED = (HTTP_400_BAD_REQUEST, "auth.already_verified", "账号已验证")
    INVALID_CODE = (HTTP_400_BAD_REQUEST, "auth.invalid_code", "验证码错误")
    CODE_EXPIRED = (HTTP_400_BAD_REQUEST, "auth.code_expired", "验证码已过期")
    INVALID_OR_EXPIRED_LINK = (
        HTTP_400_BAD_REQUEST,
        "auth.invalid_or_expired_link",
        "登录链接无效或已过期",
    )
    STATE_MISMATCH = (HTTP_400_BAD_REQUEST, "auth.state_mismatch", "登录状态校验失败")

    # HTTP 401: 凭证错误
    INVALID_CREDENTIALS = (
        HTTP_401_UNAUTHORIZED,
        "auth.invalid_credentials",
        "账号或密码错误",
    )
    NOT_VERIFIED = (HTTP_401_UNAUTHORIZED, "auth.not_verified", "账号尚未验证")
    INVALID_REFRESH_TOKEN = (
        HTTP_401_UNAUTHORIZED,
        "auth.invalid_refresh_token",
        "刷新令牌无效",
    )
    SESSION_REVOKED = (HTTP_401_UNAUTHORIZED, "auth.session_revoked", "会话已失效")
    RESET_TOKEN_USED = (
        HTTP_401_UNAUTHORIZED,
        "auth.reset_token_used",
        "重置令牌已失效，请重新找回密码",
    )

    # HTTP 404: 资源不存在
    USER_NOT_FOUND = (HTTP_404_NOT_FOUND, "auth.user_not_found", "用户不存在")
    PROVIDER_UNAVAILABLE = (
        HTTP_404_NOT_FOUND,
        "auth.provider_unavailable",
        "不支持的登录方式",
    )

    # HTTP 409: 资源冲突 (唯一性校验失败)
    EMAIL_TAKEN = (HTTP_409_CONFLICT, "auth.email_taken", "该邮箱已被注册")
    USERNAME_TAKEN = (HTTP_409_CONFLICT, "auth.username_taken", "该用户名已被占用")

    # HTTP 429: 手机验证码发送窗口超限
    RATE_LIMITED = (
        HTTP_429_TOO_MANY_REQUESTS,
        "auth.rate_limited",
        "验证码请求过于频繁，请稍后再试",
    )

    # HTTP 500: 关键协作方失败
    NOTIFICATION_DELIVERY_FAILED = (
        HTTP_500_INTERNAL_SERVER_ERROR,
        "auth.notification_failed",
        "验证码发送失败，请稍后重试",
    )


# ==============================================================================
# 2. 成功提示语 (Success Messages)
# ==============================================================================


class AuthMsg:
    """认证领域成功提示文案"""

    REGISTER_SUCCESS = "注册成功，验证码已发送"
    VERIFY_SUCCESS = "验证成功"
    OTP_SENT = "验证码已发送"
    LOGIN_SUCCESS = "登录成功"
    TWO_FACTOR_REQUIRED = "已发送二次验证码"
    LOGOUT_SUCCESS = "已安全退出"
    REFRESH_SUCCESS = "令牌刷新成功"
    RESET_CODE_VERIFIED = "验证码校验通过"
    PWD_RESET_SUCCESS = "密码重置成功"
    MAGIC_LINK_SENT = "登录链接已发送"
    ACCOUNT_DELETED = "账号已注销"
