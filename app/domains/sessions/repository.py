"""
File: app/domains/sessions/repository.py
Description: 会话领域仓储层 (Repository)

扩展功能：
1. list_active: 按用户列出活跃会话 (最新在前)
2. get_owned: 按 (会话ID, 用户ID) 查询，防止越权
3. delete_for_user: 账号注销时物理删除全部会话

Author: jinmozhe
Created: 2026-10-19
"""

import uuid

from pydantic import BaseModel
from sqlalchemy import delete

from app.db.models.user_session import UserSession
from app.db.repositories.base import BaseRepository


class SessionRepository(BaseRepository[UserSession, BaseModel, BaseModel]):
    async def list_active(self, user_id: uuid.UUID) -> list[UserSession]:
        return await self.find_many(
            UserSession.user_id == user_id,
            UserSession.is_active.is_(True),
            order_by=(UserSession.created_at.desc(), UserSession.id.desc()),
        )

    async def get_owned(
        self, session_id: uuid.UUID, user_id: uuid.UUID
    ) -> UserSession | None:
        return await self.find_one(
            UserSession.id == session_id, UserSession.user_id == user_id
        )

    async def delete_for_user(self, user_id: uuid.UUID) -> None:
        await self.session.execute(
            delete(UserSession).where(UserSession.user_id == user_id)
        )
