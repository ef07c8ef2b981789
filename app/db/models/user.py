"""
File: app/db/models/user.py
Description: 用户核心账号模型

本模型定义了用户核心数据结构 (凭证 + 一次性凭据 + SSO 绑定)。
继承自 UUIDModel，自动拥有：
1. UUID v7 主键
2. created_at / updated_at (UTC)

约束说明:
- email / mobile / username 均可为空 (SSO 或手机号用户可能缺失其一)，非空时唯一
- (sso_provider, sso_id) 联合唯一
- otp 与 otp_expires_at 总是同时写入、同时清空
- magic_link 唯一，使用后 is_magic_link_used 不可回退

Author: jinmozhe
Created: 2025-11-25
Updated: 2026-10-19 (OTP / magic link / SSO columns, hard delete)
"""

from datetime import datetime

from sqlalchemy import Boolean, Integer, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from app.db.models.base import UTCDateTime, UUIDModel


class User(UUIDModel):
    """
    用户模型 (账号域)
    """

    @declared_attr.directive
    def __tablename__(cls) -> str:
        return "users"

    __table_args__ = (
        UniqueConstraint("sso_provider", "sso_id", name="uq_users_sso_identity"),
    )

    # --------------------------------------------------------------------------
    # 核心凭证
    # --------------------------------------------------------------------------

    email: Mapped[str | None] = mapped_column(
        String(255), unique=True, nullable=True, comment="用户邮箱"
    )

    # E.164 格式
    mobile: Mapped[str | None] = mapped_column(
        String(20), unique=True, nullable=True, comment="手机号 (E.164)"
    )

    username: Mapped[str | None] = mapped_column(
        String(50), unique=True, nullable=True, comment="用户名"
    )

    # SSO / 手机号用户没有密码
    hashed_password: Mapped[str | None] = mapped_column(
        String(255), nullable=True, comment="密码哈希值 (Argon2id)"
    )

    # --------------------------------------------------------------------------
    # 基础资料
    # --------------------------------------------------------------------------

    name: Mapped[str | None] = mapped_column(
        String(100), nullable=True, comment="显示名称"
    )

    picture: Mapped[str | None] = mapped_column(
        String(512), nullable=True, comment="头像URL"
    )

    # --------------------------------------------------------------------------
    # 状态与权限
    # --------------------------------------------------------------------------

    is_verified: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        server_default=text("false"),
        nullable=False,
        comment="是否已验证 (邮箱/手机号/SSO)",
    )

    is_2fa_enabled: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        server_default=text("false"),
        nullable=False,
        comment="是否开启二次验证",
    )

    is_superuser: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        server_default=text("false"),
        nullable=False,
        comment="是否超级管理员",
    )

    last_login: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True, comment="最近登录时间 (UTC)"
    )

    # --------------------------------------------------------------------------
    # SSO 绑定
    # --------------------------------------------------------------------------

    sso_provider: Mapped[str | None] = mapped_column(
        String(30), nullable=True, comment="SSO 提供方 (google/github)"
    )

    sso_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True, comment="提供方用户标识 (subject)"
    )

    # --------------------------------------------------------------------------
    # 一次性凭据 (OTP / Magic Link)
    # --------------------------------------------------------------------------

    otp: Mapped[str | None] = mapped_column(
        String(6), nullable=True, comment="当前有效验证码"
    )

    otp_expires_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True, comment="验证码过期时间 (UTC)"
    )

    # 手机验证码发送窗口计数
    otp_attempts: Mapped[int] = mapped_column(
        Integer,
        default=0,
        server_default=text("0"),
        nullable=False,
        comment="当前窗口内已发送验证码次数",
    )

    last_otp_request_time: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True, comment="最近一次发送验证码时间 (UTC)"
    )

    magic_link: Mapped[str | None] = mapped_column(
        String(64), unique=True, nullable=True, comment="Magic Link 令牌 (hex)"
    )

    magic_link_expires_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True, comment="Magic Link 过期时间 (UTC)"
    )

    is_magic_link_used: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        server_default=text("false"),
        nullable=False,
        comment="Magic Link 是否已使用",
    )

    @property
    def identifier(self) -> str | None:
        """令牌中携带的主标识：优先邮箱，其次手机号"""
        return self.email or self.mobile
