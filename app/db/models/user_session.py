"""
File: app/db/models/user_session.py
Description: 用户登录会话模型

每次成功签发令牌 (密码登录 / 验证码 / Magic Link / SSO) 都会记录一条会话，
令牌中的 sid 指向该记录，撤销会话即令对应令牌失效。

注意：
采用 "No-Relationship" 模式，不显式定义 ORM relationship，
与 User 的关联仅通过 user_id 外键物理约束；用户物理删除时级联删除会话。
is_active 只允许 True -> False 单向变化。

Author: jinmozhe
Created: 2026-10-19
"""

import uuid

from sqlalchemy import Boolean, ForeignKey, Index, String, Uuid, text
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from app.db.models.base import UUIDModel


class UserSession(UUIDModel):
    """
    登录会话表 (N:1 User)
    """

    @declared_attr.directive
    def __tablename__(cls) -> str:
        return "user_sessions"

    __table_args__ = (
        # 按用户列出活跃会话
        Index("ix_user_sessions_user_active", "user_id", "is_active"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="关联用户ID",
    )

    device: Mapped[str] = mapped_column(
        String(100), nullable=False, default="Unknown", comment="设备"
    )
    os: Mapped[str] = mapped_column(
        String(100), nullable=False, default="Unknown", comment="操作系统"
    )
    browser: Mapped[str] = mapped_column(
        String(100), nullable=False, default="Unknown", comment="浏览器"
    )
    location: Mapped[str] = mapped_column(
        String(255), nullable=False, default="Unknown Location", comment="地理位置"
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        server_default=text("true"),
        nullable=False,
        comment="是否有效",
    )
