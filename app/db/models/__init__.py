"""
File: app/db/models/__init__.py
Description: ORM 模型注册表

导入即注册到 Base.metadata；Alembic autogenerate 与测试建表 (create_all) 依赖这里。
新增模型文件后必须在此导入。

| 模型            | 表                | 说明                                 |
|-----------------|-------------------|--------------------------------------|
| User            | users             | 账号、凭据、一次性码、SSO 绑定       |
| UserSession     | user_sessions     | 登录会话 (设备 / IP / 位置 / 活跃)   |
| AccountDeletion | account_deletions | 注销审计 (只追加)                    |

Author: jinmozhe
Created: 2025-11-25
Updated: 2026-10-19 (auth & session models)
"""

from app.db.models.account_deletion import AccountDeletion
from app.db.models.base import Base, TimestampMixin, UTCDateTime, UUIDBase, UUIDModel
from app.db.models.user import User
from app.db.models.user_session import UserSession

__all__ = [
    "AccountDeletion",
    "Base",
    "TimestampMixin",
    "UTCDateTime",
    "UUIDBase",
    "UUIDModel",
    "User",
    "UserSession",
]
