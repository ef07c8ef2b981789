"""
File: app/domains/users/service.py
Description: 用户领域服务 (业务逻辑层)

本模块封装登录用户自助管理的业务逻辑：
1. 个人资料更新：name / picture / mobile (手机号唯一性校验)
2. 修改密码：校验当前密码后写入新哈希
3. 二次验证开关：开启 / 关闭 (重复操作返回冲突)
4. 管理端用户列表：分页投影

注意：
- 所有数据库写操作的事务提交 (Commit) 由本层负责。
- 密码哈希使用异步版本函数，避免阻塞事件循环。

Author: jinmozhe
Created: 2025-11-25
Updated: 2026-10-19 (profile / password / 2FA / admin listing)
"""

from app.core.exceptions import AppException
from app.core.logging import logger
from app.core.response import PageResult
from app.core.security import get_password_hash_async, verify_password_async
from app.db.models.user import User
from app.domains.users.constants import UserErrorCode
from app.domains.users.repository import UserRepository
from app.domains.users.schemas import PasswordUpdate, UserAdminRead, UserUpdate


class UserService:
    """
    用户领域服务。

    职责：
    - 执行业务规则校验 (如：手机号是否已被占用)
    - 调用 Repository 进行数据持久化
    """

    def __init__(self, repo: UserRepository):
        self.repo = repo

    async def update_profile(self, user: User, obj_in: UserUpdate) -> User:
        """更新个人资料 (PATCH)。"""
        update_data = obj_in.model_dump(exclude_unset=True)

        new_mobile = update_data.get("mobile")
        if new_mobile and new_mobile != user.mobile:
            existing = await self.repo.get_by_mobile(new_mobile)
            if existing and existing.id != user.id:
                raise AppException(UserErrorCode.MOBILE_EXIST)

        updated_user = await self.repo.update(user, update_data)
        await self.repo.commit()

        logger.bind(user_id=str(user.id), fields=sorted(update_data)).info(
            "User profile updated"
        )
        return updated_user

    async def update_password(self, user: User, obj_in: PasswordUpdate) -> None:
        """校验当前密码并设置新密码。"""
        if not user.hashed_password:
            raise AppException(UserErrorCode.PASSWORD_NOT_SET)

        if not await verify_password_async(obj_in.current_password, user.hashed_password):
            raise AppException(UserErrorCode.INCORRECT_PASSWORD)

        hashed_password = await get_password_hash_async(obj_in.new_password)
        await self.repo.update(user, {"hashed_password": hashed_password})
        await self.repo.commit()

        logger.bind(user_id=str(user.id)).info("User password updated")

    async def set_two_factor(self, user: User, enabled: bool) -> User:
        """开启或关闭二次验证。"""
        if user.is_2fa_enabled == enabled:
            raise AppException(
                UserErrorCode.TWO_FACTOR_ALREADY_ENABLED
                if enabled
                else UserErrorCode.TWO_FACTOR_ALREADY_DISABLED
            )

        updated_user = await self.repo.update(user, {"is_2fa_enabled": enabled})
        await self.repo.commit()

        logger.bind(user_id=str(user.id), enabled=enabled).info("User 2FA toggled")
        return updated_user

    async def list_users(self, page: int, size: int) -> PageResult[UserAdminRead]:
        """管理端分页列表 (最新注册在前)。"""
        users = await self.repo.list_newest(skip=(page - 1) * size, limit=size)
        total = await self.repo.count()

        return PageResult[UserAdminRead](
            items=[UserAdminRead.model_validate(u) for u in users],
            total=total,
            page=page,
            size=size,
        )
