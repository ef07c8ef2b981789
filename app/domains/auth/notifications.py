"""
File: app/domains/auth/notifications.py
Description: 通知分发 (邮件 / 短信)

本模块负责：
1. NotificationDispatcher: 分发接口，三种消息 (邮件验证码 / 短信验证码 / Magic Link)
   - 返回 bool 表示是否送达，调用方据此决定是否回滚
2. LogNotificationDispatcher: 仅写日志 (本地开发，不输出验证码明文)
3. HttpNotificationDispatcher: Resend (邮件) + Twilio (短信) REST 接口
4. build_dispatcher: 按 NOTIFICATION_BACKEND 选择实现

Author: jinmozhe
Created: 2026-10-19
"""

from abc import ABC, abstractmethod

import httpx

from app.core.config import settings
from app.core.logging import logger
from app.utils.masking import mask_email, mask_phone


class NotificationDispatcher(ABC):
    """通知分发接口"""

    @abstractmethod
    async def send_otp_email(self, to: str, otp: str) -> bool: ...

    @abstractmethod
    async def send_otp_sms(self, to: str, otp: str) -> bool: ...

    @abstractmethod
    async def send_magic_link(self, to: str, link: str) -> bool: ...


class LogNotificationDispatcher(NotificationDispatcher):
    """本地开发使用：只记录投递事件"""

    async def send_otp_email(self, to: str, otp: str) -> bool:
        logger.bind(to=mask_email(to)).info("OTP email dispatched (log backend)")
        return True

    async def send_otp_sms(self, to: str, otp: str) -> bool:
        logger.bind(to=mask_phone(to)).info("OTP SMS dispatched (log backend)")
        return True

    async def send_magic_link(self, to: str, link: str) -> bool:
        logger.bind(to=mask_email(to)).info("Magic link dispatched (log backend)")
        return True


class HttpNotificationDispatcher(NotificationDispatcher):
    """Resend + Twilio 实现"""

    TWILIO_MESSAGES_URL = (
        "https://api.twilio.com/2010-04-01/Accounts/{account_sid}/Messages.json"
    )

    def __init__(self, client: httpx.AsyncClient, timeout: float | None = None):
        self.client = client
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS

    async def _send_email(self, to: str, subject: str, html: str) -> bool:
        if not settings.RESEND_API_KEY:
            logger.error("Email delivery is not configured (RESEND_API_KEY missing)")
            return False

        try:
            response = await self.client.post(
                settings.RESEND_API_URL,
                json={
                    "from": settings.EMAIL_FROM,
                    "to": [to],
                    "subject": subject,
                    "html": html,
                },
                headers={"Authorization": f"Bearer {settings.RESEND_API_KEY}"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.bind(to=mask_email(to), error=type(e).__name__).error(
                "Email delivery failed"
            )
            return False

        logger.bind(to=mask_email(to)).info("Email delivered")
        return True

    async def send_otp_email(self, to: str, otp: str) -> bool:
        return await self._send_email(
            to,
            subject="Email Verification OTP",
            html=f"<p>Your verification OTP is: <strong>{otp}</strong></p>",
        )

    async def send_magic_link(self, to: str, link: str) -> bool:
        return await self._send_email(
            to,
            subject="Your Magic Login Link",
            html=f'<p>Click <a href="{link}">here</a> to sign in. '
            "This link expires in 1 hour.</p>",
        )

    async def send_otp_sms(self, to: str, otp: str) -> bool:
        account_sid = settings.TWILIO_ACCOUNT_SID
        auth_token = settings.TWILIO_AUTH_TOKEN
        if not (account_sid and auth_token and settings.TWILIO_PHONE_NUMBER):
            logger.error("SMS delivery is not configured (TWILIO_* missing)")
            return False

        try:
            response = await self.client.post(
                self.TWILIO_MESSAGES_URL.format(account_sid=account_sid),
                data={
                    "To": to,
                    "From": settings.TWILIO_PHONE_NUMBER,
                    "Body": f"Your OTP is: {otp}",
                },
                auth=(account_sid, auth_token),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.bind(to=mask_phone(to), error=type(e).__name__).error(
                "SMS delivery failed"
            )
            return False

        logger.bind(to=mask_phone(to)).info("SMS delivered")
        return True


def build_dispatcher(client: httpx.AsyncClient) -> NotificationDispatcher:
    if settings.NOTIFICATION_BACKEND == "http":
        return HttpNotificationDispatcher(client)
    return LogNotificationDispatcher()
