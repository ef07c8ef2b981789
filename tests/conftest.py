"""
File: tests/conftest.py
Description: Pytest 全局 Fixtures 配置 (Async + 独立测试库)

说明：
1. 环境变量必须在导入 app 之前设置 (Settings 在导入时加载并校验双密钥)
2. 每个测试使用独立的 SQLite 文件库 (aiosqlite) 与 FakeRedis，互不干扰
3. 出站协作方 (通知 / 地理定位 / OAuth 提供方) 通过 dependency_overrides 替换
4. ASGITransport 不触发 lifespan，资源直接写入 app.state

Author: jinmozhe
Created: 2025-11-26
Updated: 2026-10-19 (sqlite + fakeredis, recording collaborators)
"""

import asyncio
import os
import sys
from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from pathlib import Path

# ------------------------------------------------------------------------------
# Windows 平台特定修复 (必须在任何 async 操作之前)
# ------------------------------------------------------------------------------
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# ------------------------------------------------------------------------------
# 1. 环境配置覆写 (先于 app 导入)
# ------------------------------------------------------------------------------
os.environ.setdefault("SQLALCHEMY_DATABASE_URI", "sqlite+aiosqlite:///./test.db")
os.environ.setdefault("ACCESS_TOKEN_SECRET", "test-access-secret-0123456789abcdef")
os.environ.setdefault("REFRESH_TOKEN_SECRET", "test-refresh-secret-0123456789abcdef")
os.environ.setdefault("NOTIFICATION_BACKEND", "log")
os.environ.setdefault("ENVIRONMENT", "local")

import httpx
import pytest
import pytest_asyncio
from fakeredis import FakeAsyncRedis
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.security import get_password_hash
from app.db.models import Base, User
from app.db.session import build_engine, build_session_factory
from app.domains.auth.dependencies import (
    get_notification_dispatcher,
    get_oauth_providers,
)
from app.domains.auth.notifications import NotificationDispatcher
from app.domains.auth.providers import OAuthProvider
from app.domains.sessions.dependencies import get_geolocator
from app.domains.sessions.geolocation import Geolocator
from app.main import app

# ------------------------------------------------------------------------------
# 2. 测试协作方
# ------------------------------------------------------------------------------

TEST_LOCATION = "Testville, Test Region, Testland"


@dataclass
class SentMessage:
    kind: str
    to: str
    payload: str


@dataclass
class RecordingDispatcher(NotificationDispatcher):
    """记录所有发送内容；fail=True 时模拟发送失败"""

    sent: list[SentMessage] = field(default_factory=list)
    fail: bool = False

    async def _record(self, kind: str, to: str, payload: str) -> bool:
        if self.fail:
            return False
        self.sent.append(SentMessage(kind=kind, to=to, payload=payload))
        return True

    async def send_otp_email(self, to: str, otp: str) -> bool:
        return await self._record("otp_email", to, otp)

    async def send_otp_sms(self, to: str, otp: str) -> bool:
        return await self._record("otp_sms", to, otp)

    async def send_magic_link(self, to: str, link: str) -> bool:
        return await self._record("magic_link", to, link)

    def last_for(self, to: str) -> SentMessage:
        return next(m for m in reversed(self.sent) if m.to == to)


class StaticGeolocator(Geolocator):
    async def locate(self, ip: str | None) -> str:
        return TEST_LOCATION


# ------------------------------------------------------------------------------
# 3. 基础设施 Fixtures
# ------------------------------------------------------------------------------


@pytest_asyncio.fixture
async def db_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """
    创建测试专用的数据库引擎 (Function 级别，每个测试一个库文件)。
    """
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(db_engine)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """
    获取测试用的数据库会话 (Function 级别)。
    """
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def redis() -> AsyncGenerator[FakeAsyncRedis, None]:
    client = FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def oauth_providers() -> dict[str, OAuthProvider]:
    """默认没有可用的提供方；SSO 测试中直接往字典里注册。"""
    return {}


def _unreachable(request: httpx.Request) -> httpx.Response:
    return httpx.Response(503, json={"error": "outbound calls disabled in tests"})


@pytest_asyncio.fixture
async def http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(_unreachable)) as c:
        yield c


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    redis: FakeAsyncRedis,
    dispatcher: RecordingDispatcher,
    oauth_providers: dict[str, OAuthProvider],
    http_client: httpx.AsyncClient,
) -> AsyncGenerator[AsyncClient, None]:
    """
    获取异步 HTTP 客户端。
    """
    app.state.session_factory = session_factory
    app.state.redis = redis
    app.state.http_client = http_client

    app.dependency_overrides[get_notification_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_geolocator] = lambda: StaticGeolocator()
    app.dependency_overrides[get_oauth_providers] = lambda: oauth_providers

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"  # type: ignore
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# ------------------------------------------------------------------------------
# 4. 数据构造
# ------------------------------------------------------------------------------

DEFAULT_PASSWORD = "Secret123!"


@pytest.fixture
def make_user(session_factory: async_sessionmaker[AsyncSession]):
    """
    直接写库创建用户。
    传入 password 时自动哈希；默认已验证。
    """

    async def _make(**fields) -> User:
        password = fields.pop("password", DEFAULT_PASSWORD)
        if password is not None:
            fields["hashed_password"] = get_password_hash(password)
        fields.setdefault("is_verified", True)

        async with session_factory() as session:
            user = User(**fields)
            session.add(user)
            await session.commit()
            await session.refresh(user)
        return user

    return _make


@pytest.fixture
def load_user(session_factory: async_sessionmaker[AsyncSession]):
    """用独立会话读取最新的用户状态"""

    async def _load(**filters) -> User | None:
        async with session_factory() as session:
            stmt = select(User).filter_by(**filters)
            return (await session.execute(stmt)).scalar_one_or_none()

    return _load


@pytest.fixture
def login(client: AsyncClient):
    """密码登录并返回响应 (Cookie 自动写入 client)"""

    async def _login(email: str, password: str = DEFAULT_PASSWORD) -> httpx.Response:
        return await client.post(
            f"{settings.API_V1_STR}/auth/login",
            json={"email": email, "password": password},
            headers={"User-Agent": CHROME_UA},
        )

    return _login


CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
