"""
File: app/domains/sessions/service.py
Description: 会话注册表 (Session Registry)

本模块负责：
1. 记录登录会话：设备 / 系统 / 浏览器 (User-Agent) + 地理位置 (IP)
2. 列出用户的活跃会话 (最新在前)
3. 撤销会话：is_active 只会 True -> False；重复撤销为幂等空操作
4. 当前会话尽力撤销 (登出使用，永不抛出业务异常)

注意：
- record_* 只 flush 不 commit，由调用方在令牌签发完成后统一提交
- 地理定位失败不会影响会话记录 (使用 "Unknown Location")

Author: jinmozhe
Created: 2026-10-19
"""

import uuid

from app.core.exceptions import AppException
from app.core.logging import logger
from app.db.models.user_session import UserSession
from app.domains.sessions.client_info import ClientContext, parse_user_agent
from app.domains.sessions.constants import SessionError
from app.domains.sessions.geolocation import Geolocator
from app.domains.sessions.repository import SessionRepository


class SessionRegistry:
    def __init__(self, repo: SessionRepository, geolocator: Geolocator):
        self.repo = repo
        self.geolocator = geolocator

    async def record_session(
        self,
        user_id: uuid.UUID,
        device: str,
        os: str,
        browser: str,
        location: str,
    ) -> UserSession:
        """写入一条活跃会话 (flush，不提交)。"""
        user_session = await self.repo.create(
            {
                "user_id": user_id,
                "device": device,
                "os": os,
                "browser": browser,
                "location": location,
                "is_active": True,
            }
        )
        logger.bind(user_id=str(user_id), session_id=str(user_session.id)).info(
            "Session recorded"
        )
        return user_session

    async def record_from_client(
        self, user_id: uuid.UUID, client: ClientContext
    ) -> UserSession:
        """从客户端上下文推导设备信息与位置后记录会话。"""
        info = parse_user_agent(client.user_agent)
        location = await self.geolocator.locate(client.ip)
        return await self.record_session(
            user_id,
            device=info.device,
            os=info.os,
            browser=info.browser,
            location=location,
        )

    async def list_active_sessions(self, user_id: uuid.UUID) -> list[UserSession]:
        return await self.repo.list_active(user_id)

    async def revoke_session(self, user_id: uuid.UUID, session_id: uuid.UUID) -> None:
        """
        撤销指定会话。

        Raises:
            AppException(SESSION_NOT_FOUND): 会话不存在或不属于该用户
        """
        user_session = await self.repo.get_owned(session_id, user_id)
        if user_session is None:
            raise AppException(SessionError.SESSION_NOT_FOUND)

        if not user_session.is_active:
            return

        await self.repo.update(user_session, {"is_active": False})
        await self.repo.commit()

        logger.bind(user_id=str(user_id), session_id=str(session_id)).info(
            "Session revoked"
        )

    async def revoke_current_session(
        self, user_id: uuid.UUID, session_id: uuid.UUID
    ) -> None:
        """尽力撤销当前会话，找不到时静默返回。"""
        user_session = await self.repo.get_owned(session_id, user_id)
        if user_session is None or not user_session.is_active:
            return

        await self.repo.update(user_session, {"is_active": False})
        await self.repo.commit()

    async def is_session_active(
        self, user_id: uuid.UUID, session_id: uuid.UUID
    ) -> bool:
        user_session = await self.repo.get_owned(session_id, user_id)
        return user_session is not None and user_session.is_active
