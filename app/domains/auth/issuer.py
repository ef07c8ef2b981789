"""
File: app/domains/auth/issuer.py
Description: 会话签发器 (密码 / 验证码 / Magic Link / SSO 共用)

本模块负责：
1. 先记录登录会话，再签发携带 sid 的 Access / Refresh 令牌
2. 更新 last_login 并提交事务
3. 基于已校验的 Refresh 声明续签 (沿用原 sid / provider)

Author: jinmozhe
Created: 2026-10-19
"""

import uuid
from dataclasses import dataclass
from typing import Any

from app.core.security import TokenService
from app.db.models.base import utc_now
from app.db.models.user import User
from app.domains.sessions.client_info import ClientContext
from app.domains.sessions.service import SessionRegistry
from app.domains.users.repository import UserRepository


@dataclass(frozen=True, slots=True)
class IssuedTokens:
    user: User
    session_id: uuid.UUID
    access_token: str
    refresh_token: str | None


def build_claims(
    user: User, session_id: uuid.UUID | str, provider: str | None = None
) -> tuple[dict[str, Any], dict[str, Any]]:
    """构造 (access 声明, refresh 声明)"""
    identity: dict[str, Any] = {"userId": str(user.id)}
    if user.email:
        identity["email"] = user.email
    else:
        identity["mobile"] = user.mobile

    common = {**identity, "sid": str(session_id), "provider": provider}
    access_claims = {**common, "username": user.username, "name": user.name}
    return access_claims, common


class SessionIssuer:
    def __init__(
        self,
        tokens: TokenService,
        registry: SessionRegistry,
        user_repo: UserRepository,
    ):
        self.tokens = tokens
        self.registry = registry
        self.user_repo = user_repo

    async def issue(
        self, user: User, client: ClientContext, provider: str | None = None
    ) -> IssuedTokens:
        """记录会话并签发令牌对。"""
        user_session = await self.registry.record_from_client(user.id, client)

        access_claims, refresh_claims = build_claims(user, user_session.id, provider)
        access_token = self.tokens.issue_access_token(access_claims)
        refresh_token = self.tokens.issue_refresh_token(refresh_claims)

        await self.user_repo.update(user, {"last_login": utc_now()})
        await self.user_repo.commit()

        return IssuedTokens(
            user=user,
            session_id=user_session.id,
            access_token=access_token,
            refresh_token=refresh_token,
        )

    def reissue(
        self, user: User, refresh_claims: dict[str, Any], rotate: bool
    ) -> IssuedTokens:
        """按已校验的 Refresh 声明续签，沿用原会话。"""
        session_id = uuid.UUID(str(refresh_claims["sid"]))
        access_claims, new_refresh_claims = build_claims(
            user, session_id, refresh_claims.get("provider")
        )

        return IssuedTokens(
            user=user,
            session_id=session_id,
            access_token=self.tokens.issue_access_token(access_claims),
            refresh_token=(
                self.tokens.issue_refresh_token(new_refresh_claims) if rotate else None
            ),
        )
