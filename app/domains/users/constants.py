"""
File: app/domains/users/constants.py
Description: 用户领域常量定义 (错误码 + 成功提示)
Namespace: users.*

Author: jinmozhe
Created: 2025-11-26
Updated: 2026-10-19 (profile / password / 2FA codes)
"""

from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
)

from app.core.error_code import BaseErrorCode


class UserErrorCode(BaseErrorCode):
    """用户领域错误码"""

    # 格式: (HTTP状态, 业务码, 默认文案)

    USER_NOT_FOUND = (HTTP_404_NOT_FOUND, "users.not_found", "用户不存在")

    MOBILE_EXIST = (HTTP_409_CONFLICT, "users.mobile_exist", "该手机号已被其他用户绑定")

    INCORRECT_PASSWORD = (
        HTTP_401_UNAUTHORIZED,
        "users.incorrect_password",
        "当前密码不正确",
    )
    PASSWORD_NOT_SET = (
        HTTP_400_BAD_REQUEST,
        "users.password_not_set",
        "该账号未设置密码",
    )

    TWO_FACTOR_ALREADY_ENABLED = (
        HTTP_409_CONFLICT,
        "users.2fa_already_enabled",
        "二次验证已开启",
    )
    TWO_FACTOR_ALREADY_DISABLED = (
        HTTP_409_CONFLICT,
        "users.2fa_already_disabled",
        "二次验证已关闭",
    )


class UserMsg:
    """用户领域成功提示文案"""

    PROFILE_UPDATED = "个人资料已更新"
    PASSWORD_UPDATED = "密码已更新"
    TWO_FACTOR_ENABLED = "二次验证已开启"
    TWO_FACTOR_DISABLED = "二次验证已关闭"
