"""
File: app/utils/masking.py
Description: PII 数据脱敏工具 (Data Masking)

本模块提供敏感信息脱敏功能，用于日志记录时的隐私保护。
邮箱、手机号在写日志前必须脱敏；验证码、Magic Link、令牌与哈希一律不落日志。

特性：
1. 针对性脱敏: 手机号 (E.164)、邮箱。
2. 标识脱敏: mask_identifier 自动识别邮箱或手机号。
3. 递归脱敏: 深度遍历字典/列表，自动过滤敏感 Key (如 password, otp, token)。

Author: jinmozhe
Created: 2025-11-26
Updated: 2026-10-19 (OTP / magic link keys, identifier masking)
"""

from typing import Any

# ==============================================================================
# 1. 敏感字段黑名单 (大小写不敏感)
# ==============================================================================
SENSITIVE_KEYS = {
    "password",
    "current_password",
    "new_password",
    "hashed_password",
    "secret",
    "client_secret",
    "token",
    "access_token",
    "refresh_token",
    "reset_token",
    "otp",
    "code",
    "magic_link",
    "state",
    "api_key",
}

MASK = "******"

# ==============================================================================
# 2. 基础脱敏函数
# ==============================================================================


def mask_phone(phone: str | None) -> str:
    """
    手机号脱敏。
    规则: 保留国家码前缀 (最多 4 位) 与后 2 位。
    示例: +8613800138000 -> +861*******00
    """
    if not phone or len(phone) < 7:
        return MASK
    head = phone[:4]
    tail = phone[-2:]
    return f"{head}{'*' * (len(phone) - 6)}{tail}"


def mask_email(email: str | None) -> str:
    """
    邮箱脱敏。
    示例: alice@example.com -> a***@example.com
    """
    if not email or "@" not in email:
        return MASK

    user_part, domain_part = email.split("@", 1)
    masked_user = "****" if len(user_part) <= 1 else f"{user_part[0]}***"
    return f"{masked_user}@{domain_part}"


def mask_identifier(identifier: str | None) -> str:
    """按格式自动选择邮箱或手机号脱敏"""
    if identifier and "@" in identifier:
        return mask_email(identifier)
    return mask_phone(identifier)


# ==============================================================================
# 3. 递归脱敏工具
# ==============================================================================


def mask_sensitive_data(data: Any) -> Any:
    """
    递归遍历数据结构（字典、列表），自动对敏感字段进行脱敏。
    返回副本，不修改原数据。
    """
    if isinstance(data, dict):
        new_data = {}
        for k, v in data.items():
            key = k.lower() if isinstance(k, str) else k
            if key in SENSITIVE_KEYS:
                new_data[k] = MASK if v is not None else None
            elif key == "email":
                new_data[k] = mask_email(v)
            elif key == "mobile":
                new_data[k] = mask_phone(v)
            else:
                new_data[k] = mask_sensitive_data(v)
        return new_data

    if isinstance(data, list):
        return [mask_sensitive_data(item) for item in data]

    return data
