"""
File: tests/unit/test_session_registry.py
Description: 会话注册表单元测试

Author: jinmozhe
Created: 2026-10-19
"""

import uuid

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AppException
from app.db.models.user import User
from app.db.models.user_session import UserSession
from app.domains.sessions.client_info import ClientContext
from app.domains.sessions.geolocation import UNKNOWN_LOCATION, IpstackGeolocator
from app.domains.sessions.repository import SessionRepository
from app.domains.sessions.service import SessionRegistry

IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)


class FixedGeolocator:
    def __init__(self, location: str = "Paris, Ile-de-France, France"):
        self.location = location
        self.calls: list[str | None] = []

    async def locate(self, ip: str | None) -> str:
        self.calls.append(ip)
        return self.location


@pytest_asyncio.fixture
async def user(db_session: AsyncSession) -> User:
    user = User(email="sessions@example.com", is_verified=True)
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture
def geolocator() -> FixedGeolocator:
    return FixedGeolocator()


@pytest.fixture
def registry(db_session: AsyncSession, geolocator: FixedGeolocator) -> SessionRegistry:
    return SessionRegistry(
        repo=SessionRepository(model=UserSession, session=db_session),
        geolocator=geolocator,  # type: ignore[arg-type]
    )


@pytest.mark.asyncio
async def test_record_from_client(
    registry: SessionRegistry, user: User, geolocator: FixedGeolocator
) -> None:
    recorded = await registry.record_from_client(
        user.id, ClientContext(user_agent=IPHONE_UA, ip="81.2.69.160")
    )

    assert recorded.is_active is True
    assert recorded.device == "iPhone"
    assert recorded.os == "iOS"
    assert recorded.browser == "Mobile Safari"
    assert recorded.location == "Paris, Ile-de-France, France"
    assert geolocator.calls == ["81.2.69.160"]


@pytest.mark.asyncio
async def test_list_active_newest_first(registry: SessionRegistry, user: User) -> None:
    first = await registry.record_session(user.id, "d", "o", "b", "l")
    second = await registry.record_session(user.id, "d", "o", "b", "l")
    await registry.repo.commit()

    sessions = await registry.list_active_sessions(user.id)

    assert [s.id for s in sessions] == [second.id, first.id]


@pytest.mark.asyncio
async def test_revoke_is_idempotent(registry: SessionRegistry, user: User) -> None:
    recorded = await registry.record_session(user.id, "d", "o", "b", "l")
    await registry.repo.commit()

    await registry.revoke_session(user.id, recorded.id)
    assert recorded.is_active is False
    assert recorded.id not in [s.id for s in await registry.list_active_sessions(user.id)]

    # 重复撤销不报错
    await registry.revoke_session(user.id, recorded.id)
    assert await registry.is_session_active(user.id, recorded.id) is False


@pytest.mark.asyncio
async def test_revoke_foreign_session_not_found(
    registry: SessionRegistry, user: User, db_session: AsyncSession
) -> None:
    other = User(email="other@example.com")
    db_session.add(other)
    await db_session.commit()
    foreign = await registry.record_session(other.id, "d", "o", "b", "l")
    await registry.repo.commit()

    for session_id in (foreign.id, uuid.uuid4()):
        with pytest.raises(AppException) as exc_info:
            await registry.revoke_session(user.id, session_id)
        assert exc_info.value.http_status == 404

    assert await registry.is_session_active(other.id, foreign.id) is True


@pytest.mark.asyncio
async def test_revoke_current_session_is_silent(
    registry: SessionRegistry, user: User
) -> None:
    await registry.revoke_current_session(user.id, uuid.uuid4())


# ------------------------------------------------------------------------------
# Geolocation
# ------------------------------------------------------------------------------


def _geolocator(handler) -> IpstackGeolocator:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return IpstackGeolocator(
        client=client, api_key="key", base_url="http://geo.test", timeout=1.0
    )


@pytest.mark.asyncio
async def test_geolocation_success() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["access_key"] == "key"
        return httpx.Response(
            200,
            json={"city": "Paris", "region_name": "Ile-de-France", "country_name": "France"},
        )

    assert await _geolocator(handler).locate("81.2.69.160") == (
        "Paris, Ile-de-France, France"
    )


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500),
        httpx.Response(200, json={"success": False, "error": {"code": 101}}),
        httpx.Response(200, json={"city": None, "region_name": None, "country_name": None}),
    ],
)
async def test_geolocation_failures_fall_back(response: httpx.Response) -> None:
    assert await _geolocator(lambda request: response).locate("81.2.69.160") == (
        UNKNOWN_LOCATION
    )


@pytest.mark.asyncio
async def test_geolocation_timeout_falls_back() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    assert await _geolocator(handler).locate("81.2.69.160") == UNKNOWN_LOCATION


@pytest.mark.asyncio
@pytest.mark.parametrize("ip", [None, "127.0.0.1", "192.168.1.10", "not-an-ip"])
async def test_geolocation_skips_private_addresses(ip: str | None) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("should not be called")

    assert await _geolocator(handler).locate(ip) == UNKNOWN_LOCATION
