"""
File: tests/unit/test_user_service.py
Description: 用户领域服务单元测试

本模块测试 UserService 的核心业务逻辑：
1. 个人资料更新 (手机号唯一性校验)
2. 修改密码 (当前密码校验、新哈希写入)
3. 二次验证开关 (重复操作返回冲突)
4. 管理端分页列表

Author: jinmozhe
Created: 2025-11-26
Updated: 2026-10-19 (profile / password / 2FA / admin listing)
"""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AppException
from app.core.security import get_password_hash, verify_password
from app.db.models.user import User
from app.domains.users.constants import UserErrorCode
from app.domains.users.repository import UserRepository
from app.domains.users.schemas import PasswordUpdate, UserUpdate
from app.domains.users.service import UserService

# ------------------------------------------------------------------------------
# Fixtures
# ------------------------------------------------------------------------------


@pytest.fixture
def user_service(db_session: AsyncSession) -> UserService:
    """
    创建一个绑定了测试 Session 的 UserService 实例。

    说明：
    - db_session 来自 tests/conftest.py，指向临时 SQLite 数据库
    - 这里显式传入 User 模型，满足 BaseRepository 的泛型约束
    """
    repo = UserRepository(model=User, session=db_session)
    return UserService(repo=repo)


async def _create(user_service: UserService, **fields) -> User:
    user = await user_service.repo.create(fields)
    await user_service.repo.commit()
    return user


# ------------------------------------------------------------------------------
# Test Cases
# ------------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_update_profile_partial(user_service: UserService) -> None:
    """测试：只更新传入字段，手机号规范化为 E.164"""
    user = await _create(user_service, email="profile@example.com", name="Before")

    updated = await user_service.update_profile(
        user, UserUpdate(mobile="+1 (555) 010-2030")
    )

    assert updated.mobile == "+15550102030"
    assert updated.name == "Before"


@pytest.mark.asyncio
async def test_update_profile_mobile_taken(user_service: UserService) -> None:
    """测试：手机号已被其他用户绑定"""
    await _create(user_service, mobile="+15550000001")
    user = await _create(user_service, email="me@example.com")

    with pytest.raises(AppException) as excinfo:
        await user_service.update_profile(user, UserUpdate(mobile="+15550000001"))

    assert excinfo.value.code == UserErrorCode.MOBILE_EXIST.code
    assert excinfo.value.http_status == 409


@pytest.mark.asyncio
async def test_update_profile_same_mobile_allowed(user_service: UserService) -> None:
    user = await _create(user_service, mobile="+15550000002", name="A")

    updated = await user_service.update_profile(
        user, UserUpdate(mobile="+15550000002", name="B")
    )

    assert updated.name == "B"


@pytest.mark.asyncio
async def test_update_password(user_service: UserService) -> None:
    """测试：修改密码 (不存储明文)"""
    user = await _create(
        user_service,
        email="pw@example.com",
        hashed_password=get_password_hash("OldSecret1!"),
    )

    await user_service.update_password(
        user, PasswordUpdate(current_password="OldSecret1!", new_password="NewSecret2!")
    )

    assert user.hashed_password != "NewSecret2!"
    assert verify_password("NewSecret2!", user.hashed_password)


@pytest.mark.asyncio
async def test_update_password_wrong_current(user_service: UserService) -> None:
    user = await _create(
        user_service,
        email="pw2@example.com",
        hashed_password=get_password_hash("OldSecret1!"),
    )

    with pytest.raises(AppException) as excinfo:
        await user_service.update_password(
            user, PasswordUpdate(current_password="nope", new_password="NewSecret2!")
        )

    assert excinfo.value.code == UserErrorCode.INCORRECT_PASSWORD.code
    assert verify_password("OldSecret1!", user.hashed_password)


@pytest.mark.asyncio
async def test_update_password_not_set(user_service: UserService) -> None:
    """测试：SSO / 手机号账号没有密码"""
    user = await _create(user_service, mobile="+15550000003")

    with pytest.raises(AppException) as excinfo:
        await user_service.update_password(
            user, PasswordUpdate(current_password="x", new_password="NewSecret2!")
        )

    assert excinfo.value.code == UserErrorCode.PASSWORD_NOT_SET.code


@pytest.mark.asyncio
async def test_two_factor_toggle(user_service: UserService) -> None:
    user = await _create(user_service, email="2fa@example.com")

    assert (await user_service.set_two_factor(user, True)).is_2fa_enabled is True

    with pytest.raises(AppException) as excinfo:
        await user_service.set_two_factor(user, True)
    assert excinfo.value.code == UserErrorCode.TWO_FACTOR_ALREADY_ENABLED.code

    assert (await user_service.set_two_factor(user, False)).is_2fa_enabled is False

    with pytest.raises(AppException) as excinfo:
        await user_service.set_two_factor(user, False)
    assert excinfo.value.code == UserErrorCode.TWO_FACTOR_ALREADY_DISABLED.code


@pytest.mark.asyncio
async def test_list_users_paginated(user_service: UserService) -> None:
    for i in range(3):
        await _create(user_service, email=f"list{i}@example.com")

    first = await user_service.list_users(page=1, size=2)
    second = await user_service.list_users(page=2, size=2)

    assert first.total == 3
    assert len(first.items) == 2
    assert len(second.items) == 1
    emails = {u.email for u in first.items} | {u.email for u in second.items}
    assert emails == {"list0@example.com", "list1@example.com", "list2@example.com"}
