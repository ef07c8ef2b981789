"""
File: tests/integration/test_session_router.py
Description: 登录会话接口集成测试

Author: jinmozhe
Created: 2026-10-19
"""

import uuid

import pytest
from httpx import AsyncClient

from app.core.config import settings

SESSIONS = f"{settings.API_V1_STR}/sessions"


@pytest.mark.asyncio
async def test_sessions_require_login(client: AsyncClient) -> None:
    response = await client.get(SESSIONS)
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_list_and_revoke_other_session(
    client: AsyncClient, make_user, login
) -> None:
    await make_user(email="multi@example.com")

    first = (await login("multi@example.com")).json()["data"]["access_token"]
    await login("multi@example.com")

    items = (await client.get(SESSIONS)).json()["data"]
    assert len(items) == 2
    assert [item["is_current"] for item in items] == [True, False]

    older_id = items[1]["id"]
    revoked = await client.delete(f"{SESSIONS}/{older_id}")
    assert revoked.status_code == 200

    # 重复撤销不报错
    again = await client.delete(f"{SESSIONS}/{older_id}")
    assert again.status_code == 200

    remaining = (await client.get(SESSIONS)).json()["data"]
    assert [item["id"] for item in remaining] == [items[0]["id"]]

    # 被撤销会话的 Access Token 立即失效
    client.cookies.clear()
    stale = await client.get(
        f"{settings.API_V1_STR}/users/me", headers={"Authorization": f"Bearer {first}"}
    )
    assert stale.status_code == 401


@pytest.mark.asyncio
async def test_revoke_unknown_or_foreign_session(
    client: AsyncClient, make_user, login
) -> None:
    await make_user(email="owner@example.com")
    await make_user(email="intruder@example.com")

    await login("owner@example.com")
    owner_session = (await client.get(SESSIONS)).json()["data"][0]["id"]

    client.cookies.clear()
    await login("intruder@example.com")

    foreign = await client.delete(f"{SESSIONS}/{owner_session}")
    unknown = await client.delete(f"{SESSIONS}/{uuid.uuid4()}")

    assert foreign.status_code == 404
    assert unknown.status_code == 404
