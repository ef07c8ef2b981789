"""
File: app/domains/users/repository.py
Description: 用户领域仓储层 (Repository)

本模块负责用户数据的数据库访问，继承自通用 BaseRepository。
扩展功能：
1. get_by_email / get_by_mobile / get_by_username: 唯一字段点查
2. get_by_sso: 按 (provider, subject) 查找 SSO 绑定用户
3. get_by_redeemable_magic_link: 单条 SQL 过滤 "令牌匹配 + 未过期 + 未使用"
   mark_magic_link_used: 条件更新，保证链接只能兑换一次
4. list_newest: 管理端分页 (按创建时间倒序)

Author: jinmozhe
Created: 2025-11-25
Updated: 2026-10-19 (auth lookups, hard delete)
"""

from datetime import datetime

from sqlalchemy import update

from app.db.models.user import User
from app.db.repositories.base import BaseRepository
from app.domains.users.schemas import UserCreate, UserUpdate


class UserRepository(BaseRepository[User, UserCreate, UserUpdate]):
    """
    用户仓储类。
    唯一字段查询基于 BaseRepository.find_one。
    """

    async def get_by_email(self, email: str) -> User | None:
        return await self.find_one(User.email == email)

    async def get_by_mobile(self, mobile: str) -> User | None:
        return await self.find_one(User.mobile == mobile)

    async def get_by_username(self, username: str) -> User | None:
        return await self.find_one(User.username == username)

    async def get_by_sso(self, provider: str, subject: str) -> User | None:
        return await self.find_one(User.sso_provider == provider, User.sso_id == subject)

    async def get_by_redeemable_magic_link(
        self, token: str, now: datetime
    ) -> User | None:
        """
        查询可兑换的 Magic Link 用户。
        令牌不存在 / 已过期 / 已使用 三种情况统一返回 None。
        """
        return await self.find_one(
            User.magic_link == token,
            User.magic_link_expires_at >= now,
            User.is_magic_link_used.is_(False),
        )

    async def mark_magic_link_used(self, user: User) -> bool:
        """
        条件更新：仅当链接尚未使用时标记为已用 (同时视为已验证)。
        并发兑换时只有一个请求返回 True。
        """
        stmt = (
            update(User)
            .where(User.id == user.id, User.is_magic_link_used.is_(False))
            .values(is_magic_link_used=True, is_verified=True)
        )
        result = await self.session.execute(stmt)
        if result.rowcount != 1:  # type: ignore[attr-defined]
            return False
        await self.session.refresh(user)
        return True

    async def list_newest(self, *, skip: int = 0, limit: int = 20) -> list[User]:
        return await self.find_many(
            order_by=(User.created_at.desc(), User.id.desc()), skip=skip, limit=limit
        )
