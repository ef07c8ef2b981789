"""
File: app/domains/auth/otp.py
Description: 一次性凭据引擎 (OTP / Magic Link)

本模块负责：
1. 生成: 6 位数字验证码 (100000-999999)、32 字节随机 Magic Link 令牌
2. 下发: 写入验证码与过期时间后通过邮件 / 短信发送
   - 发送失败时，若用户是本次请求新建的则删除该用户 (补偿回滚)
3. 校验: 按用途 (验证 / 登录 / 重置) 校验验证码；失败不修改任何状态
4. 手机验证码发送窗口: 窗口内最多 N 次，超限返回剩余分钟数
5. Magic Link: 单次兑换，兑换后不可再次使用

Author: jinmozhe
Created: 2026-10-19
"""

import math
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum
from urllib.parse import urlencode

from app.core.config import settings
from app.core.exceptions import AppException
from app.core.logging import logger
from app.db.models.base import utc_now
from app.db.models.user import User
from app.domains.auth.constants import AuthError
from app.domains.auth.notifications import NotificationDispatcher
from app.domains.users.repository import UserRepository
from app.utils.masking import mask_email, mask_identifier, mask_phone

OTP_MIN = 100000
OTP_MAX = 999999


class OtpPurpose(StrEnum):
    VERIFICATION = "verification"
    LOGIN = "login"
    RESET = "reset"


class OtpChannel(StrEnum):
    EMAIL = "email"
    SMS = "sms"


@dataclass(frozen=True, slots=True)
class Issued:
    """下发结果 (不含凭据明文)"""

    channel: OtpChannel
    destination: str
    expires_at: datetime
    expires_in: int


def generate_otp() -> str:
    """均匀分布的 6 位数字验证码"""
    return str(OTP_MIN + secrets.randbelow(OTP_MAX - OTP_MIN + 1))


def generate_magic_token() -> str:
    """32 字节随机数的十六进制表示 (64 字符)"""
    return secrets.token_hex(32)


class OneTimeCredentialEngine:
    def __init__(
        self,
        user_repo: UserRepository,
        dispatcher: NotificationDispatcher,
        otp_ttl: timedelta | None = None,
        magic_link_ttl: timedelta | None = None,
        mobile_window: timedelta | None = None,
        mobile_max_attempts: int | None = None,
    ):
        self.user_repo = user_repo
        self.dispatcher = dispatcher
        self.otp_ttl = otp_ttl or timedelta(minutes=settings.OTP_EXPIRE_MINUTES)
        self.magic_link_ttl = magic_link_ttl or timedelta(
            minutes=settings.MAGIC_LINK_EXPIRE_MINUTES
        )
        self.mobile_window = mobile_window or timedelta(
            minutes=settings.MOBILE_OTP_WINDOW_MINUTES
        )
        self.mobile_max_attempts = (
            mobile_max_attempts or settings.MOBILE_OTP_MAX_ATTEMPTS
        )

    # --------------------------------------------------------------------------
    # 下发
    # --------------------------------------------------------------------------

    async def _rollback_created(self, user: User, created: bool) -> None:
        """补偿：删除本次请求新建的用户"""
        if not created:
            return
        await self.user_repo.delete(user.id)
        await self.user_repo.commit()
        logger.bind(user_id=str(user.id)).warning(
            "Rolled back newly created user after delivery failure"
        )

    async def issue_otp(
        self, user: User, channel: OtpChannel, *, created: bool = False
    ) -> Issued:
        """
        写入验证码并下发。

        Raises:
            AppException(NOTIFICATION_DELIVERY_FAILED): 发送失败 (已按需回滚)
        """
        destination = user.email if channel is OtpChannel.EMAIL else user.mobile
        if not destination:
            raise AppException(AuthError.USER_NOT_FOUND)

        otp = generate_otp()
        expires_at = utc_now() + self.otp_ttl

        await self.user_repo.update(user, {"otp": otp, "otp_expires_at": expires_at})
        await self.user_repo.commit()

        if channel is OtpChannel.EMAIL:
            delivered = await self.dispatcher.send_otp_email(destination, otp)
        else:
            delivered = await self.dispatcher.send_otp_sms(destination, otp)

        if not delivered:
            await self._rollback_created(user, created)
            raise AppException(AuthError.NOTIFICATION_DELIVERY_FAILED)

        logger.bind(
            user_id=str(user.id), channel=channel.value, to=mask_identifier(destination)
        ).info("OTP issued")

        return Issued(
            channel=channel,
            destination=(
                mask_email(destination)
                if channel is OtpChannel.EMAIL
                else mask_phone(destination)
            ),
            expires_at=expires_at,
            expires_in=int(self.otp_ttl.total_seconds()),
        )

    def next_mobile_attempts(self, user: User, now: datetime) -> int:
        """
        计算本次发送后的窗口计数。

        Raises:
            AppException(RATE_LIMITED): 窗口内已达上限，data.retryAfter 为剩余分钟数
        """
        last = user.last_otp_request_time
        if last is None:
            return 1

        elapsed = now - last
        if elapsed >= self.mobile_window:
            return 1

        if user.otp_attempts >= self.mobile_max_attempts:
            remaining = (self.mobile_window - elapsed).total_seconds()
            retry_after = max(1, math.ceil(remaining / 60))
            raise AppException(
                AuthError.RATE_LIMITED,
                data={"retryAfter": retry_after},
            )

        return user.otp_attempts + 1

    async def issue_mobile_otp(self, user: User, *, created: bool = False) -> Issued:
        """手机验证码：先检查发送窗口，再写计数并下发。"""
        now = utc_now()
        try:
            attempts = self.next_mobile_attempts(user, now)
        except AppException:
            await self._rollback_created(user, created)
            raise

        await self.user_repo.update(
            user, {"otp_attempts": attempts, "last_otp_request_time": now}
        )
        return await self.issue_otp(user, OtpChannel.SMS, created=created)

    # --------------------------------------------------------------------------
    # 校验
    # --------------------------------------------------------------------------

    async def verify_otp(self, user: User | None, code: str, purpose: OtpPurpose) -> User:
        """
        校验验证码。

        检查顺序: 用户存在 -> (验证用途) 尚未验证 -> 验证码匹配 -> 未过期。
        任一检查失败不修改任何字段；成功后清空验证码，
        验证 / 登录用途同时将账号标记为已验证。
        """
        if user is None:
            raise AppException(AuthError.USER_NOT_FOUND)

        if purpose is OtpPurpose.VERIFICATION and user.is_verified:
            raise AppException(AuthError.ALREADY_VERIFIED)

        if not user.otp or not secrets.compare_digest(user.otp, code):
            raise AppException(AuthError.INVALID_CODE)

        if user.otp_expires_at is None or utc_now() > user.otp_expires_at:
            raise AppException(AuthError.CODE_EXPIRED)

        changes: dict[str, object] = {"otp": None, "otp_expires_at": None}
        if purpose in (OtpPurpose.VERIFICATION, OtpPurpose.LOGIN):
            changes["is_verified"] = True

        await self.user_repo.update(user, changes)
        await self.user_repo.commit()

        logger.bind(user_id=str(user.id), purpose=purpose.value).info("OTP verified")
        return user

    # --------------------------------------------------------------------------
    # Magic Link
    # --------------------------------------------------------------------------

    def build_magic_link(self, token: str) -> str:
        base = settings.FRONTEND_URL.rstrip("/")
        return f"{base}{settings.MAGIC_LINK_PATH}?{urlencode({'token': token})}"

    async def issue_magic_link(self, user: User, *, created: bool = False) -> Issued:
        """
        生成并下发 Magic Link (邮件)。

        Raises:
            AppException(NOTIFICATION_DELIVERY_FAILED): 发送失败 (已按需回滚)
        """
        if not user.email:
            raise AppException(AuthError.USER_NOT_FOUND)

        token = generate_magic_token()
        expires_at = utc_now() + self.magic_link_ttl

        await self.user_repo.update(
            user,
            {
                "magic_link": token,
                "magic_link_expires_at": expires_at,
                "is_magic_link_used": False,
            },
        )
        await self.user_repo.commit()

        delivered = await self.dispatcher.send_magic_link(
            user.email, self.build_magic_link(token)
        )
        if not delivered:
            await self._rollback_created(user, created)
            raise AppException(AuthError.NOTIFICATION_DELIVERY_FAILED)

        logger.bind(user_id=str(user.id), to=mask_email(user.email)).info(
            "Magic link issued"
        )

        return Issued(
            channel=OtpChannel.EMAIL,
            destination=mask_email(user.email),
            expires_at=expires_at,
            expires_in=int(self.magic_link_ttl.total_seconds()),
        )

    async def redeem_magic_link(self, token: str) -> User:
        """
        兑换 Magic Link：令牌匹配 + 未过期 + 未使用。
        兑换后立即标记为已使用 (不可回退) 并视为已验证。

        Raises:
            AppException(INVALID_OR_EXPIRED_LINK)
        """
        user = await self.user_repo.get_by_redeemable_magic_link(token, utc_now())
        if user is None:
            raise AppException(AuthError.INVALID_OR_EXPIRED_LINK)

        if not await self.user_repo.mark_magic_link_used(user):
            raise AppException(AuthError.INVALID_OR_EXPIRED_LINK)

        await self.user_repo.commit()

        logger.bind(user_id=str(user.id)).info("Magic link redeemed")
        return user
