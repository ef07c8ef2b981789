"""
File: app/domains/auth/schemas.py
Description: 认证领域 Pydantic 模型 (Schema)

本模块定义了认证相关的输入/输出数据结构：
1. 注册 / 邮箱验证 / 手机验证码 / 登录 / 二次验证
2. 找回密码 (验证码 -> 重置令牌 -> 新密码)
3. Magic Link 请求与兑换
4. 账号注销
5. 响应: AuthSession (用户 + Access Token)，Refresh Token 仅通过 HttpOnly Cookie 下发

Author: jinmozhe
Created: 2025-12-05
Updated: 2026-10-19 (full credential flows)
"""

from pydantic import BaseModel, EmailStr, Field, field_validator

from app.domains.users.schemas import (
    PASSWORD_MAX_LENGTH,
    PASSWORD_MIN_LENGTH,
    UserRead,
    normalize_mobile,
)

OTP_PATTERN = r"^[0-9]{6}$"


# ------------------------------------------------------------------------------
# Requests
# ------------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(
        ..., min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH
    )
    username: str = Field(
        ..., min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_.-]+$"
    )
    name: str | None = Field(default=None, max_length=100)


class EmailRequest(BaseModel):
    """仅需邮箱的请求 (重发验证码 / 找回密码 / Magic Link)"""

    email: EmailStr


class EmailOtpRequest(BaseModel):
    """邮箱 + 6 位验证码"""

    email: EmailStr
    otp: str = Field(..., pattern=OTP_PATTERN, description="6 位数字验证码")


class MobileRequest(BaseModel):
    mobile: str = Field(..., description="手机号 (自动规范化为 E.164)")

    @field_validator("mobile")
    @classmethod
    def validate_mobile(cls, v: str) -> str:
        return normalize_mobile(v)


class MobileOtpRequest(MobileRequest):
    otp: str = Field(..., pattern=OTP_PATTERN, description="6 位数字验证码")


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=PASSWORD_MAX_LENGTH)


class ResetPasswordRequest(BaseModel):
    reset_token: str = Field(..., description="找回密码验证通过后签发的重置令牌")
    new_password: str = Field(
        ..., min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH
    )


class MagicLinkVerifyRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=128)


class DeleteAccountRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=PASSWORD_MAX_LENGTH)
    reason: str = Field(..., min_length=1, max_length=1000, description="注销原因")


# ------------------------------------------------------------------------------
# Responses
# ------------------------------------------------------------------------------


class AuthSession(BaseModel):
    """登录成功响应 (Refresh Token 仅在 Cookie 中)"""

    user: UserRead
    access_token: str = Field(..., description="访问令牌 (JWT, 短效)")
    token_type: str = Field(default="bearer")
    expires_in: int = Field(..., description="Access Token 有效期 (秒)")


class TokenRefreshed(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    refresh_rotated: bool = Field(..., description="Refresh Token 是否已轮换")


class OtpDispatched(BaseModel):
    """验证码已下发"""

    channel: str = Field(..., description="email / sms")
    destination: str = Field(..., description="脱敏后的接收地址")
    expires_in: int = Field(..., description="验证码有效期 (秒)")


class TwoFactorChallenge(OtpDispatched):
    two_factor_required: bool = True


class ResetTokenIssued(BaseModel):
    reset_token: str
    expires_in: int
