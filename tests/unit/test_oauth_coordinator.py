"""
File: tests/unit/test_oauth_coordinator.py
Description: SSO 交换协调器单元测试 (httpx.MockTransport 模拟提供方)

覆盖：
1. 状态推进与失败状态
2. state 不一致时不发起任何外部请求、不创建用户
3. 本地用户解析 (subject 优先，已验证邮箱其次，验证状态不降级，未验证邮箱不占用本地账号)
4. 存储故障统一转换为 OAuthFlowError
5. Redis 镜像续签：完全一致才可续签，每次轮换

Author: jinmozhe
Created: 2026-10-19
"""

from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AppException
from app.core.security import TokenService, TokenType
from app.db.models.user import User
from app.db.models.user_session import UserSession
from app.domains.auth.constants import AuthError
from app.domains.auth.issuer import SessionIssuer
from app.domains.auth.oauth import (
    OAuthExchangeCoordinator,
    OAuthState,
    RefreshTokenStore,
)
from app.domains.auth.providers import (
    GitHubProvider,
    GoogleProvider,
    OAuthFlowError,
    OAuthProvider,
)
from app.domains.sessions.client_info import ClientContext
from app.domains.sessions.geolocation import Geolocator
from app.domains.sessions.repository import SessionRepository
from app.domains.sessions.service import SessionRegistry
from app.domains.users.repository import UserRepository

CLIENT = ClientContext(user_agent="pytest", ip=None)


class FakeGoogle:
    """模拟 Google token / userinfo 端点"""

    def __init__(self, profile: dict | None = None, token_status: int = 200):
        self.profile = profile or {
            "sub": "google-123",
            "email": "sso@example.com",
            "email_verified": True,
            "name": "SSO User",
            "picture": "https://img.example.com/a.png",
        }
        self.token_status = token_status
        self.calls: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(str(request.url))
        if request.url.host == "oauth2.googleapis.com":
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_grant"})
            return httpx.Response(200, json={"access_token": "provider-token"})
        if request.url.host == "openidconnect.googleapis.com":
            assert request.headers["Authorization"] == "Bearer provider-token"
            return httpx.Response(200, json=self.profile)
        return httpx.Response(404)


class UnavailableStore(RefreshTokenStore):
    """写入镜像时 Redis 不可用"""

    async def save(self, user_id, token: str) -> None:
        raise RedisConnectionError("connection refused")


def _coordinator(
    db_session: AsyncSession,
    redis,
    handler,
    tokens: TokenService,
    store: RefreshTokenStore | None = None,
) -> OAuthExchangeCoordinator:
    user_repo = UserRepository(model=User, session=db_session)
    registry = SessionRegistry(
        repo=SessionRepository(model=UserSession, session=db_session),
        geolocator=Geolocator(),
    )
    return OAuthExchangeCoordinator(
        providers={
            "google": GoogleProvider("cid", "csecret", "http://test/callback"),
            "github": GitHubProvider("gid", "gsecret", "http://test/callback"),
        },
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        user_repo=user_repo,
        registry=registry,
        issuer=SessionIssuer(tokens=tokens, registry=registry, user_repo=user_repo),
        tokens=tokens,
        store=store or RefreshTokenStore(redis),
    )


@pytest.fixture
def tokens() -> TokenService:
    return TokenService(access_secret="a-secret", refresh_secret="r-secret")


# ------------------------------------------------------------------------------
# begin
# ------------------------------------------------------------------------------


def test_begin_builds_consent_url(db_session, redis, tokens) -> None:
    coordinator = _coordinator(db_session, redis, FakeGoogle(), tokens)

    start = coordinator.begin("google")
    query = parse_qs(urlparse(start.authorization_url).query)

    assert len(start.state) >= 32
    assert query["state"] == [start.state]
    assert query["client_id"] == ["cid"]
    assert query["response_type"] == ["code"]
    assert coordinator.begin("google").state != start.state


def test_begin_unknown_provider(db_session, redis, tokens) -> None:
    coordinator = _coordinator(db_session, redis, FakeGoogle(), tokens)

    with pytest.raises(AppException) as exc_info:
        coordinator.begin("myspace")
    assert exc_info.value.code == AuthError.PROVIDER_UNAVAILABLE.code


def test_provider_interface_is_abstract() -> None:
    with pytest.raises(TypeError):
        OAuthProvider("cid", "csecret", "http://test/callback")


# ------------------------------------------------------------------------------
# complete
# ------------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_complete_success(db_session, redis, tokens) -> None:
    coordinator = _coordinator(db_session, redis, FakeGoogle(), tokens)

    attempt, issued = await coordinator.complete(
        "google", code="abc", returned_state="s", cookie_state="s", client=CLIENT
    )

    assert attempt.state is OAuthState.SESSION_ISSUED
    assert attempt.history == [
        OAuthState.INITIATED,
        OAuthState.CODE_RECEIVED,
        OAuthState.TOKEN_EXCHANGED,
        OAuthState.PROFILE_FETCHED,
        OAuthState.LOCAL_USER_RESOLVED,
        OAuthState.SESSION_ISSUED,
    ]
    assert issued.user.sso_provider == "google"
    assert issued.user.sso_id == "google-123"
    assert issued.user.is_verified is True
    assert await redis.get(f"refresh_token:{issued.user.id}") == issued.refresh_token

    claims = tokens.verify(issued.refresh_token, TokenType.REFRESH)
    assert claims["provider"] == "google"
    assert claims["sid"] == str(issued.session_id)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("returned", "cookie"), [("a", "b"), (None, "b"), ("a", None), (None, None)]
)
async def test_state_mismatch_fails_before_any_call(
    db_session, redis, tokens, returned, cookie
) -> None:
    google = FakeGoogle()
    coordinator = _coordinator(db_session, redis, google, tokens)

    with pytest.raises(OAuthFlowError):
        await coordinator.complete(
            "google", code="abc", returned_state=returned, cookie_state=cookie, client=CLIENT
        )

    assert google.calls == []
    assert await UserRepository(model=User, session=db_session).count() == 0


@pytest.mark.asyncio
async def test_token_exchange_failure(db_session, redis, tokens) -> None:
    coordinator = _coordinator(db_session, redis, FakeGoogle(token_status=400), tokens)

    with pytest.raises(OAuthFlowError) as exc_info:
        await coordinator.complete(
            "google", code="bad", returned_state="s", cookie_state="s", client=CLIENT
        )
    assert "400" in exc_info.value.reason


@pytest.mark.asyncio
async def test_storage_failure_becomes_flow_error(db_session, redis, tokens) -> None:
    coordinator = _coordinator(
        db_session, redis, FakeGoogle(), tokens, store=UnavailableStore(redis)
    )

    with pytest.raises(OAuthFlowError) as exc_info:
        await coordinator.complete(
            "google", code="abc", returned_state="s", cookie_state="s", client=CLIENT
        )

    assert exc_info.value.reason.startswith("storage failure")
    assert isinstance(exc_info.value.__cause__, RedisConnectionError)
    assert await redis.keys("refresh_token:*") == []


@pytest.mark.asyncio
async def test_existing_user_linked_by_verified_email(db_session, redis, tokens) -> None:
    db_session.add(User(email="sso@example.com", name="Old Name", is_verified=False))
    await db_session.commit()
    coordinator = _coordinator(db_session, redis, FakeGoogle(), tokens)

    _, issued = await coordinator.complete(
        "google", code="abc", returned_state="s", cookie_state="s", client=CLIENT
    )

    assert await UserRepository(model=User, session=db_session).count() == 1
    assert issued.user.name == "SSO User"
    assert issued.user.is_verified is True
    assert issued.user.sso_id == "google-123"


@pytest.mark.asyncio
async def test_unverified_provider_email_never_downgrades(
    db_session, redis, tokens
) -> None:
    db_session.add(
        User(
            email="sso@example.com",
            is_verified=True,
            sso_provider="google",
            sso_id="google-123",
        )
    )
    await db_session.commit()
    profile = {"sub": "google-123", "email": "sso@example.com", "email_verified": False}
    coordinator = _coordinator(db_session, redis, FakeGoogle(profile=profile), tokens)

    _, issued = await coordinator.complete(
        "google", code="abc", returned_state="s", cookie_state="s", client=CLIENT
    )

    assert issued.user.is_verified is True


@pytest.mark.asyncio
async def test_unverified_email_of_local_account_fails(db_session, redis, tokens) -> None:
    db_session.add(User(email="sso@example.com", name="Local", is_verified=True))
    await db_session.commit()
    profile = {"sub": "google-999", "email": "sso@example.com", "email_verified": False}
    coordinator = _coordinator(db_session, redis, FakeGoogle(profile=profile), tokens)

    with pytest.raises(OAuthFlowError) as exc_info:
        await coordinator.complete(
            "google", code="abc", returned_state="s", cookie_state="s", client=CLIENT
        )

    assert "unverified" in exc_info.value.reason
    repo = UserRepository(model=User, session=db_session)
    assert await repo.count() == 1
    local = await repo.get_by_email("sso@example.com")
    assert local.sso_provider is None
    assert local.name == "Local"


@pytest.mark.asyncio
async def test_github_primary_email(db_session, redis, tokens) -> None:
    def github(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/login/oauth/access_token":
            return httpx.Response(200, json={"access_token": "gh-token"})
        if path == "/user":
            return httpx.Response(
                200, json={"id": 42, "login": "octo", "name": None, "avatar_url": "x"}
            )
        if path == "/user/emails":
            return httpx.Response(
                200,
                json=[
                    {"email": "other@example.com", "primary": False, "verified": True},
                    {"email": "octo@example.com", "primary": True, "verified": True},
                ],
            )
        return httpx.Response(404)

    coordinator = _coordinator(db_session, redis, github, tokens)
    _, issued = await coordinator.complete(
        "github", code="abc", returned_state="s", cookie_state="s", client=CLIENT
    )

    assert issued.user.email == "octo@example.com"
    assert issued.user.name == "octo"
    assert issued.user.sso_id == "42"


# ------------------------------------------------------------------------------
# refresh / revoke
# ------------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_refresh_rotates_and_invalidates_previous(db_session, redis, tokens) -> None:
    coordinator = _coordinator(db_session, redis, FakeGoogle(), tokens)
    _, issued = await coordinator.complete(
        "google", code="abc", returned_state="s", cookie_state="s", client=CLIENT
    )

    rotated = await coordinator.refresh(issued.refresh_token)

    assert rotated.refresh_token != issued.refresh_token
    assert rotated.session_id == issued.session_id
    assert await redis.get(f"refresh_token:{issued.user.id}") == rotated.refresh_token

    with pytest.raises(AppException) as exc_info:
        await coordinator.refresh(issued.refresh_token)
    assert exc_info.value.code == AuthError.INVALID_REFRESH_TOKEN.code


@pytest.mark.asyncio
async def test_refresh_rejects_access_token(db_session, redis, tokens) -> None:
    coordinator = _coordinator(db_session, redis, FakeGoogle(), tokens)
    _, issued = await coordinator.complete(
        "google", code="abc", returned_state="s", cookie_state="s", client=CLIENT
    )

    with pytest.raises(AppException) as exc_info:
        await coordinator.refresh(issued.access_token)
    assert exc_info.value.code == AuthError.INVALID_REFRESH_TOKEN.code


@pytest.mark.asyncio
async def test_revoke_deletes_mirror(db_session, redis, tokens) -> None:
    coordinator = _coordinator(db_session, redis, FakeGoogle(), tokens)
    _, issued = await coordinator.complete(
        "google", code="abc", returned_state="s", cookie_state="s", client=CLIENT
    )

    await coordinator.revoke(issued.user.id)

    assert await redis.get(f"refresh_token:{issued.user.id}") is None
    with pytest.raises(AppException):
        await coordinator.refresh(issued.refresh_token)
