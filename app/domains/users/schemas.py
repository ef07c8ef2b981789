"""
File: app/domains/users/schemas.py
Description: 用户领域 Pydantic 模型 (Schema)

本模块定义了用户相关的输入/输出数据结构：
1. UserCreate: 内部创建参数 (注册 / 手机号 / SSO 共用，已哈希)
2. UserUpdate: 个人资料更新参数 (PATCH 语义)
3. PasswordUpdate: 修改密码参数
4. UserRead / UserAdminRead: 用户信息响应 (屏蔽密码哈希与一次性凭据)

规范：
- 严格遵循 Pydantic V2 写法 (ConfigDict)
- 手机号统一规范化为 E.164 格式
- 响应模型开启 from_attributes=True 以支持 ORM 转换

Author: jinmozhe
Created: 2025-11-25
Updated: 2026-10-19 (auth profile fields)
"""

import re
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

# ------------------------------------------------------------------------------
# Constants (常量定义)
# ------------------------------------------------------------------------------

# E.164：+ 开头，首位非 0，总计最多 15 位数字
E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")
E164_ERROR_MESSAGE = "手机号必须符合 E.164 格式 (例如 +1234567890)"

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128

_MOBILE_SEPARATORS = re.compile(r"[\s\-().]")


def normalize_mobile(value: str) -> str:
    """
    规范化手机号为 E.164。
    去除空格/连字符/括号，缺失 + 前缀时补齐。

    Raises:
        ValueError: 规范化后仍不符合 E.164
    """
    mobile = _MOBILE_SEPARATORS.sub("", value)
    if not mobile.startswith("+"):
        mobile = f"+{mobile}"
    if not E164_PATTERN.match(mobile):
        raise ValueError(E164_ERROR_MESSAGE)
    return mobile


# ------------------------------------------------------------------------------
# Input Schemas (输入模型)
# ------------------------------------------------------------------------------


class UserCreate(BaseModel):
    """
    用户创建模型 (内部使用)。
    密码已在 Service 层完成哈希。
    """

    email: EmailStr | None = None
    mobile: str | None = None
    username: str | None = None
    hashed_password: str | None = None
    name: str | None = None
    picture: str | None = None
    is_verified: bool = False
    sso_provider: str | None = None
    sso_id: str | None = None


class UserUpdate(BaseModel):
    """
    个人资料更新模型。
    所有字段均为可选，仅更新传入的字段 (PATCH 语义)。
    """

    name: str | None = Field(default=None, max_length=100)
    picture: str | None = Field(default=None, max_length=512, description="头像URL")
    mobile: str | None = Field(
        default=None, description="手机号 (E.164 格式，如 +1234567890)"
    )

    @field_validator("mobile")
    @classmethod
    def validate_mobile(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return normalize_mobile(v)


class PasswordUpdate(BaseModel):
    """修改密码参数"""

    current_password: str = Field(..., min_length=1, max_length=PASSWORD_MAX_LENGTH)
    new_password: str = Field(
        ..., min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH
    )


# ------------------------------------------------------------------------------
# Output Schemas (输出/响应模型)
# ------------------------------------------------------------------------------


class UserRead(BaseModel):
    """
    用户读取模型 (响应)。
    不包含密码哈希、验证码与 Magic Link。
    """

    id: UUID = Field(..., description="用户 ID (UUID v7)")
    email: str | None = None
    mobile: str | None = None
    username: str | None = None
    name: str | None = None
    picture: str | None = None
    is_verified: bool
    is_2fa_enabled: bool
    sso_provider: str | None = None
    last_login: datetime | None = None
    created_at: datetime = Field(..., description="创建时间 (UTC)")
    updated_at: datetime = Field(..., description="更新时间 (UTC)")

    model_config = ConfigDict(from_attributes=True)


class UserAdminRead(UserRead):
    """管理端用户列表投影"""

    is_magic_link_used: bool
    is_superuser: bool
