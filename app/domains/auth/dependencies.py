"""
File: app/domains/auth/dependencies.py
Description: 认证领域依赖注入 (DI)

依赖链：
HttpClient → NotificationDispatcher ─┐
UserRepository ──────────────────────┴→ OneTimeCredentialEngine ─┐
SessionRegistry + TokenService → SessionIssuer ──────────────────┼→ AuthService
Redis → RefreshTokenStore ───────────────────────────────────────┘
providers + HttpClient + SessionIssuer + RefreshTokenStore → OAuthExchangeCoordinator

测试中通过 app.dependency_overrides 替换:
- get_notification_dispatcher (记录型发送器)
- get_oauth_providers (指向 MockTransport 的提供方)

Author: jinmozhe
Created: 2026-10-19
"""

from typing import Annotated

from fastapi import Depends
from app.api.deps import DBSession, HttpClient, TokenServiceDep
from app.core.redis import RedisDep
from app.db.models.account_deletion import AccountDeletion
from app.domains.auth.issuer import SessionIssuer
from app.domains.auth.notifications import NotificationDispatcher, build_dispatcher
from app.domains.auth.oauth import OAuthExchangeCoordinator, RefreshTokenStore
from app.domains.auth.otp import OneTimeCredentialEngine
from app.domains.auth.providers import OAuthProvider, build_providers
from app.domains.auth.repository import AccountDeletionRepository
from app.domains.auth.service import AuthService
from app.domains.sessions.dependencies import SessionRegistryDep, SessionRepoDep
from app.domains.users.dependencies import UserRepoDep


async def get_notification_dispatcher(client: HttpClient) -> NotificationDispatcher:
    return build_dispatcher(client)


NotificationDispatcherDep = Annotated[
    NotificationDispatcher, Depends(get_notification_dispatcher)
]


def get_oauth_providers() -> dict[str, OAuthProvider]:
    return build_providers()


OAuthProvidersDep = Annotated[dict[str, OAuthProvider], Depends(get_oauth_providers)]


async def get_refresh_store(redis: RedisDep) -> RefreshTokenStore:
    return RefreshTokenStore(redis)


RefreshStoreDep = Annotated[RefreshTokenStore, Depends(get_refresh_store)]


async def get_credential_engine(
    user_repo: UserRepoDep, dispatcher: NotificationDispatcherDep
) -> OneTimeCredentialEngine:
    return OneTimeCredentialEngine(user_repo=user_repo, dispatcher=dispatcher)


CredentialEngineDep = Annotated[
    OneTimeCredentialEngine, Depends(get_credential_engine)
]


async def get_session_issuer(
    tokens: TokenServiceDep, registry: SessionRegistryDep, user_repo: UserRepoDep
) -> SessionIssuer:
    return SessionIssuer(tokens=tokens, registry=registry, user_repo=user_repo)


SessionIssuerDep = Annotated[SessionIssuer, Depends(get_session_issuer)]


async def get_auth_service(
    session: DBSession,
    user_repo: UserRepoDep,
    engine: CredentialEngineDep,
    issuer: SessionIssuerDep,
    registry: SessionRegistryDep,
    session_repo: SessionRepoDep,
    tokens: TokenServiceDep,
    refresh_store: RefreshStoreDep,
) -> AuthService:
    """
    构造 AuthService 实例。
    同一请求内所有仓储共享一个数据库会话。
    """
    return AuthService(
        user_repo=user_repo,
        engine=engine,
        issuer=issuer,
        registry=registry,
        session_repo=session_repo,
        deletion_repo=AccountDeletionRepository(model=AccountDeletion, session=session),
        tokens=tokens,
        refresh_store=refresh_store,
    )


AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]


async def get_oauth_coordinator(
    providers: OAuthProvidersDep,
    client: HttpClient,
    user_repo: UserRepoDep,
    registry: SessionRegistryDep,
    issuer: SessionIssuerDep,
    tokens: TokenServiceDep,
    refresh_store: RefreshStoreDep,
) -> OAuthExchangeCoordinator:
    return OAuthExchangeCoordinator(
        providers=providers,
        http_client=client,
        user_repo=user_repo,
        registry=registry,
        issuer=issuer,
        tokens=tokens,
        store=refresh_store,
    )


OAuthCoordinatorDep = Annotated[
    OAuthExchangeCoordinator, Depends(get_oauth_coordinator)
]
