"""
File: app/db/models/account_deletion.py
Description: 账号注销审计记录

只追加、不修改。user_id 不设外键，记录在用户删除后仍然保留。

Author: jinmozhe
Created: 2026-10-19
"""

import uuid
from datetime import datetime

from sqlalchemy import String, Text, Uuid
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from app.db.models.base import UTCDateTime, UUIDBase, utc_now


class AccountDeletion(UUIDBase):
    """账号注销记录"""

    @declared_attr.directive
    def __tablename__(cls) -> str:
        return "account_deletions"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), nullable=False, index=True, comment="被删除的用户ID"
    )
    email: Mapped[str | None] = mapped_column(
        String(255), nullable=True, comment="删除时的邮箱"
    )
    reason: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="注销原因"
    )
    deleted_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), default=utc_now, nullable=False, comment="删除时间 (UTC)"
    )
