"""
File: app/domains/auth/oauth.py
Description: 第三方登录交换协调器 (SSO)

本模块负责：
1. begin: 生成一次性 state 并返回提供方授权地址
2. complete: state 校验 -> 授权码换令牌 -> 拉取资料 -> 解析本地用户 -> 签发会话
   每一步推进 OAuthAttempt 状态，任一步失败进入 FAILED 并抛出 OAuthFlowError
3. 本地用户解析: 先按 (provider, subject)，再按已验证邮箱；已验证状态只升不降
4. SSO Refresh Token 镜像: Redis refresh_token:{user_id}，续签时必须完全一致并强制轮换

Author: jinmozhe
Created: 2026-10-19
"""

import secrets
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from enum import StrEnum
from typing import Any

import httpx
from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings
from app.core.exceptions import AppException
from app.core.logging import logger
from app.core.security import TokenService, TokenType
from app.db.models.user import User
from app.domains.auth.constants import SSO_REFRESH_KEY_PREFIX, AuthError
from app.domains.auth.issuer import IssuedTokens, SessionIssuer
from app.domains.auth.providers import OAuthFlowError, OAuthProfile, OAuthProvider
from app.domains.sessions.client_info import ClientContext
from app.domains.sessions.service import SessionRegistry
from app.domains.users.repository import UserRepository
from app.utils.masking import mask_email


class OAuthState(StrEnum):
    INITIATED = "initiated"
    CODE_RECEIVED = "code_received"
    TOKEN_EXCHANGED = "token_exchanged"
    PROFILE_FETCHED = "profile_fetched"
    LOCAL_USER_RESOLVED = "local_user_resolved"
    SESSION_ISSUED = "session_issued"
    FAILED = "failed"


@dataclass(slots=True)
class OAuthAttempt:
    """单次回调处理的状态轨迹"""

    provider: str
    state: OAuthState = OAuthState.INITIATED
    history: list[OAuthState] = field(default_factory=lambda: [OAuthState.INITIATED])
    failure_reason: str | None = None

    def advance(self, new_state: OAuthState) -> None:
        self.state = new_state
        self.history.append(new_state)

    def fail(self, reason: str) -> None:
        self.failure_reason = reason
        self.advance(OAuthState.FAILED)


@dataclass(frozen=True, slots=True)
class OAuthStart:
    state: str
    authorization_url: str


class RefreshTokenStore:
    """SSO Refresh Token 镜像 (每个用户仅保留最新一枚)"""

    def __init__(self, redis: Redis, ttl: timedelta | None = None):
        self.redis = redis
        self.ttl = ttl or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)

    @staticmethod
    def key(user_id: uuid.UUID | str) -> str:
        return f"{SSO_REFRESH_KEY_PREFIX}{user_id}"

    async def save(self, user_id: uuid.UUID | str, token: str) -> None:
        await self.redis.set(self.key(user_id), token, ex=self.ttl)

    async def get(self, user_id: uuid.UUID | str) -> str | None:
        return await self.redis.get(self.key(user_id))

    async def matches(self, user_id: uuid.UUID | str, token: str) -> bool:
        stored = await self.get(user_id)
        return stored is not None and secrets.compare_digest(stored, token)

    async def delete(self, user_id: uuid.UUID | str) -> None:
        await self.redis.delete(self.key(user_id))


class OAuthExchangeCoordinator:
    def __init__(
        self,
        providers: dict[str, OAuthProvider],
        http_client: httpx.AsyncClient,
        user_repo: UserRepository,
        registry: SessionRegistry,
        issuer: SessionIssuer,
        tokens: TokenService,
        store: RefreshTokenStore,
    ):
        self.providers = providers
        self.http_client = http_client
        self.user_repo = user_repo
        self.registry = registry
        self.issuer = issuer
        self.tokens = tokens
        self.store = store

    def begin(self, provider_name: str) -> OAuthStart:
        """
        开始授权流程。

        Raises:
            AppException(PROVIDER_UNAVAILABLE): 提供方未知或未配置
        """
        provider = self.providers.get(provider_name)
        if provider is None:
            raise AppException(AuthError.PROVIDER_UNAVAILABLE)

        state = secrets.token_urlsafe(32)
        return OAuthStart(state=state, authorization_url=provider.authorization_url(state))

    async def complete(
        self,
        provider_name: str,
        code: str | None,
        returned_state: str | None,
        cookie_state: str | None,
        client: ClientContext,
    ) -> tuple[OAuthAttempt, IssuedTokens]:
        """
        处理提供方回调。

        state 缺失或不一致时在任何外部调用之前失败，不会创建或修改用户。
        数据库 / Redis 故障同样转换为 OAuthFlowError (回滚后由路由跳转错误页)。

        Raises:
            OAuthFlowError: 任一步骤失败 (原因仅写日志)
        """
        attempt = OAuthAttempt(provider=provider_name)
        try:
            issued = await self._run_steps(
                attempt, provider_name, code, returned_state, cookie_state, client
            )
        except (SQLAlchemyError, RedisError) as e:
            await self.user_repo.rollback()
            error = OAuthFlowError(f"storage failure: {e.__class__.__name__}")
            self._record_failure(attempt, error)
            raise error from e
        except OAuthFlowError as e:
            self._record_failure(attempt, e)
            raise

        logger.bind(
            provider=provider_name,
            user_id=str(issued.user.id),
            session_id=str(issued.session_id),
        ).info("SSO login completed")
        return attempt, issued

    async def _run_steps(
        self,
        attempt: OAuthAttempt,
        provider_name: str,
        code: str | None,
        returned_state: str | None,
        cookie_state: str | None,
        client: ClientContext,
    ) -> IssuedTokens:
        provider = self.providers.get(provider_name)
        if provider is None:
            raise OAuthFlowError(f"unknown provider {provider_name!r}")

        if (
            not returned_state
            or not cookie_state
            or not secrets.compare_digest(returned_state, cookie_state)
        ):
            raise OAuthFlowError("state mismatch")

        if not code:
            raise OAuthFlowError("missing authorization code")
        attempt.advance(OAuthState.CODE_RECEIVED)

        provider_token = await provider.exchange_code(self.http_client, code)
        attempt.advance(OAuthState.TOKEN_EXCHANGED)

        profile = await provider.fetch_profile(self.http_client, provider_token)
        attempt.advance(OAuthState.PROFILE_FETCHED)

        user = await self.resolve_user(provider_name, profile)
        attempt.advance(OAuthState.LOCAL_USER_RESOLVED)

        issued = await self.issuer.issue(user, client, provider=provider_name)
        await self.store.save(user.id, issued.refresh_token or "")
        attempt.advance(OAuthState.SESSION_ISSUED)
        return issued

    @staticmethod
    def _record_failure(attempt: OAuthAttempt, error: OAuthFlowError) -> None:
        failed_at = attempt.state
        attempt.fail(error.reason)
        logger.bind(
            provider=attempt.provider, failed_at=failed_at.value, reason=error.reason
        ).warning("SSO flow failed")

    async def resolve_user(self, provider_name: str, profile: OAuthProfile) -> User:
        """
        查找或创建本地用户。

        匹配顺序: (provider, subject) -> 提供方已验证的邮箱 -> 新建。
        已有用户只刷新姓名 / 头像，is_verified 不会从 True 变回 False。
        提供方未验证的邮箱若已属于本地账号则失败，不新建重复邮箱的用户。
        """
        user = await self.user_repo.get_by_sso(provider_name, profile.subject)

        if user is None and profile.email and profile.email_verified:
            user = await self.user_repo.get_by_email(profile.email)
        elif user is None and profile.email:
            # 未经提供方验证的邮箱不能接管或复用已有账号
            if await self.user_repo.get_by_email(profile.email) is not None:
                raise OAuthFlowError("unverified provider email belongs to a local account")

        if user is None:
            user = await self.user_repo.create(
                {
                    "email": profile.email,
                    "name": profile.name,
                    "picture": profile.picture,
                    "is_verified": profile.email_verified,
                    "sso_provider": provider_name,
                    "sso_id": profile.subject,
                }
            )
            await self.user_repo.commit()
            logger.bind(
                user_id=str(user.id),
                provider=provider_name,
                email=mask_email(profile.email) if profile.email else None,
            ).info("User created from SSO profile")
            return user

        changes: dict[str, Any] = {
            "name": profile.name or user.name,
            "picture": profile.picture or user.picture,
        }
        if user.sso_id is None:
            changes["sso_provider"] = provider_name
            changes["sso_id"] = profile.subject
        if profile.email_verified and not user.is_verified:
            changes["is_verified"] = True

        await self.user_repo.update(user, changes)
        await self.user_repo.commit()
        return user

    async def refresh(self, refresh_token: str) -> IssuedTokens:
        """
        SSO 续签：令牌须与 Redis 镜像完全一致，成功后强制轮换。

        Raises:
            AppException(INVALID_REFRESH_TOKEN)
        """
        try:
            claims = self.tokens.verify(refresh_token, TokenType.REFRESH)
        except AppException as e:
            raise AppException(AuthError.INVALID_REFRESH_TOKEN) from e

        user_id = uuid.UUID(str(claims["userId"]))
        key = self.store.key(user_id)

        async with self.store.redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(key)
                stored = await pipe.get(key)
                if stored is None or not secrets.compare_digest(stored, refresh_token):
                    raise AppException(AuthError.INVALID_REFRESH_TOKEN)

                user = await self.user_repo.get(user_id)
                sid = claims.get("sid")
                if (
                    user is None
                    or sid is None
                    or not await self.registry.is_session_active(
                        user_id, uuid.UUID(str(sid))
                    )
                ):
                    raise AppException(AuthError.INVALID_REFRESH_TOKEN)

                issued = self.issuer.reissue(user, claims, rotate=True)

                pipe.multi()
                pipe.set(key, issued.refresh_token, ex=self.store.ttl)
                await pipe.execute()
            except WatchError as e:
                # 并发续签：另一个请求已轮换
                raise AppException(AuthError.INVALID_REFRESH_TOKEN) from e

        logger.bind(user_id=str(user_id), session_id=str(sid)).info(
            "SSO refresh token rotated"
        )
        return issued

    async def revoke(self, user_id: uuid.UUID | str) -> None:
        await self.store.delete(user_id)
