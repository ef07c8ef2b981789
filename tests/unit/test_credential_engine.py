"""
File: tests/unit/test_credential_engine.py
Description: 一次性凭据引擎单元测试 (OTP / 手机发送窗口 / Magic Link)

Author: jinmozhe
Created: 2026-10-19
"""

from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AppException
from app.db.models.base import utc_now
from app.db.models.user import User
from app.domains.auth.constants import AuthError
from app.domains.auth.notifications import NotificationDispatcher
from app.domains.auth.otp import (
    OneTimeCredentialEngine,
    OtpChannel,
    OtpPurpose,
    generate_magic_token,
    generate_otp,
)
from app.domains.users.repository import UserRepository

# ------------------------------------------------------------------------------
# Fixtures
# ------------------------------------------------------------------------------


@pytest.fixture
def repo(db_session: AsyncSession) -> UserRepository:
    return UserRepository(model=User, session=db_session)


@pytest.fixture
def engine(repo: UserRepository, dispatcher) -> OneTimeCredentialEngine:
    return OneTimeCredentialEngine(
        user_repo=repo,
        dispatcher=dispatcher,
        otp_ttl=timedelta(hours=1),
        magic_link_ttl=timedelta(hours=1),
        mobile_window=timedelta(hours=1),
        mobile_max_attempts=3,
    )


async def _create(repo: UserRepository, **fields) -> User:
    user = await repo.create(fields)
    await repo.commit()
    return user


# ------------------------------------------------------------------------------
# Generators
# ------------------------------------------------------------------------------


def test_generate_otp_range() -> None:
    for _ in range(500):
        code = generate_otp()
        assert len(code) == 6
        assert 100000 <= int(code) <= 999999


def test_generate_magic_token() -> None:
    token = generate_magic_token()
    assert len(token) == 64
    int(token, 16)
    assert token != generate_magic_token()


def test_dispatcher_interface_is_abstract() -> None:
    with pytest.raises(TypeError):
        NotificationDispatcher()

    class EmailOnly(NotificationDispatcher):
        async def send_otp_email(self, to: str, otp: str) -> bool:
            return True

    # 未实现全部通道的子类不能实例化
    with pytest.raises(TypeError):
        EmailOnly()


# ------------------------------------------------------------------------------
# OTP
# ------------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_issue_otp_persists_and_dispatches(
    engine: OneTimeCredentialEngine, repo: UserRepository, dispatcher
) -> None:
    user = await _create(repo, email="otp@example.com")

    issued = await engine.issue_otp(user, OtpChannel.EMAIL)

    assert issued.destination != "otp@example.com"
    assert issued.expires_in == 3600
    assert user.otp is not None
    assert user.otp_expires_at is not None
    assert dispatcher.last_for("otp@example.com").payload == user.otp


@pytest.mark.asyncio
async def test_verification_sets_verified_exactly_once(
    engine: OneTimeCredentialEngine, repo: UserRepository
) -> None:
    user = await _create(repo, email="once@example.com")
    await engine.issue_otp(user, OtpChannel.EMAIL)
    code = user.otp

    verified = await engine.verify_otp(user, code, OtpPurpose.VERIFICATION)
    assert verified.is_verified is True
    assert verified.otp is None
    assert verified.otp_expires_at is None

    with pytest.raises(AppException) as exc_info:
        await engine.verify_otp(user, code, OtpPurpose.VERIFICATION)
    assert exc_info.value.code == AuthError.ALREADY_VERIFIED.code


@pytest.mark.asyncio
async def test_wrong_code_changes_nothing(
    engine: OneTimeCredentialEngine, repo: UserRepository
) -> None:
    user = await _create(repo, email="wrong@example.com")
    await engine.issue_otp(user, OtpChannel.EMAIL)
    stored_code, stored_expiry = user.otp, user.otp_expires_at
    wrong = "100000" if stored_code != "100000" else "100001"

    with pytest.raises(AppException) as exc_info:
        await engine.verify_otp(user, wrong, OtpPurpose.VERIFICATION)

    assert exc_info.value.code == AuthError.INVALID_CODE.code
    refreshed = await repo.get(user.id)
    assert refreshed.is_verified is False
    assert refreshed.otp == stored_code
    assert refreshed.otp_expires_at == stored_expiry


@pytest.mark.asyncio
async def test_expired_code(engine: OneTimeCredentialEngine, repo: UserRepository) -> None:
    user = await _create(
        repo,
        email="expired@example.com",
        otp="123456",
        otp_expires_at=utc_now() - timedelta(seconds=1),
    )

    with pytest.raises(AppException) as exc_info:
        await engine.verify_otp(user, "123456", OtpPurpose.VERIFICATION)

    assert exc_info.value.code == AuthError.CODE_EXPIRED.code
    assert (await repo.get(user.id)).otp == "123456"


@pytest.mark.asyncio
async def test_missing_user(engine: OneTimeCredentialEngine) -> None:
    with pytest.raises(AppException) as exc_info:
        await engine.verify_otp(None, "123456", OtpPurpose.LOGIN)
    assert exc_info.value.http_status == 404


@pytest.mark.asyncio
async def test_reset_purpose_does_not_touch_verification(
    engine: OneTimeCredentialEngine, repo: UserRepository
) -> None:
    user = await _create(
        repo,
        email="reset@example.com",
        otp="654321",
        otp_expires_at=utc_now() + timedelta(minutes=5),
    )

    await engine.verify_otp(user, "654321", OtpPurpose.RESET)

    assert user.otp is None
    assert user.is_verified is False


@pytest.mark.asyncio
async def test_delivery_failure_removes_new_user_only(
    engine: OneTimeCredentialEngine, repo: UserRepository, dispatcher
) -> None:
    dispatcher.fail = True
    fresh = await _create(repo, email="fresh@example.com")
    existing = await _create(repo, email="existing@example.com")

    with pytest.raises(AppException) as exc_info:
        await engine.issue_otp(fresh, OtpChannel.EMAIL, created=True)
    assert exc_info.value.http_status == 500

    with pytest.raises(AppException):
        await engine.issue_otp(existing, OtpChannel.EMAIL)

    assert await repo.get_by_email("fresh@example.com") is None
    assert await repo.get_by_email("existing@example.com") is not None


# ------------------------------------------------------------------------------
# Mobile window
# ------------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_mobile_window_blocks_fourth_request(
    engine: OneTimeCredentialEngine, repo: UserRepository, dispatcher
) -> None:
    user = await _create(repo, mobile="+15551234567")

    for _ in range(3):
        await engine.issue_mobile_otp(user)
    assert user.otp_attempts == 3

    with pytest.raises(AppException) as exc_info:
        await engine.issue_mobile_otp(user)

    assert exc_info.value.code == AuthError.RATE_LIMITED.code
    assert exc_info.value.http_status == 429
    assert exc_info.value.data["retryAfter"] > 0
    assert len([m for m in dispatcher.sent if m.kind == "otp_sms"]) == 3


@pytest.mark.asyncio
async def test_mobile_window_resets_after_elapsed(
    engine: OneTimeCredentialEngine, repo: UserRepository
) -> None:
    user = await _create(
        repo,
        mobile="+15557654321",
        otp_attempts=3,
        last_otp_request_time=utc_now() - timedelta(hours=1, seconds=1),
    )

    await engine.issue_mobile_otp(user)

    assert user.otp_attempts == 1


def test_next_mobile_attempts_retry_after_in_minutes(
    engine: OneTimeCredentialEngine,
) -> None:
    now = utc_now()
    user = User(otp_attempts=3, last_otp_request_time=now - timedelta(minutes=50))

    with pytest.raises(AppException) as exc_info:
        engine.next_mobile_attempts(user, now)

    assert exc_info.value.data == {"retryAfter": 10}


# ------------------------------------------------------------------------------
# Magic link
# ------------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_magic_link_single_use(
    engine: OneTimeCredentialEngine, repo: UserRepository, dispatcher
) -> None:
    user = await _create(repo, email="magic@example.com")

    await engine.issue_magic_link(user)
    link = dispatcher.last_for("magic@example.com").payload
    assert "/verify-magic?token=" in link
    token = link.rsplit("token=", 1)[1]

    redeemed = await engine.redeem_magic_link(token)
    assert redeemed.id == user.id
    assert redeemed.is_verified is True
    assert redeemed.is_magic_link_used is True

    for _ in range(2):
        with pytest.raises(AppException) as exc_info:
            await engine.redeem_magic_link(token)
        assert exc_info.value.code == AuthError.INVALID_OR_EXPIRED_LINK.code


@pytest.mark.asyncio
async def test_magic_link_expired(
    engine: OneTimeCredentialEngine, repo: UserRepository
) -> None:
    token = generate_magic_token()
    await _create(
        repo,
        email="late@example.com",
        magic_link=token,
        magic_link_expires_at=utc_now() - timedelta(minutes=1),
    )

    with pytest.raises(AppException) as exc_info:
        await engine.redeem_magic_link(token)
    assert exc_info.value.code == AuthError.INVALID_OR_EXPIRED_LINK.code


@pytest.mark.asyncio
async def test_unknown_magic_link(engine: OneTimeCredentialEngine) -> None:
    with pytest.raises(AppException):
        await engine.redeem_magic_link(generate_magic_token())
