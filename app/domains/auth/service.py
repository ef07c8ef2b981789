"""
File: app/domains/auth/service.py
Description: 认证领域服务 (Service)

本模块封装认证核心业务逻辑 (对外可见操作的编排层)：
1. 注册 / 邮箱验证 / 手机验证码登录
2. 密码登录 (可选二次验证) / 找回密码 / 重置密码
3. 刷新令牌 (密码链路，轮换策略由配置决定)
4. 登出 (尽力而为，永不失败)
5. Magic Link 请求与兑换
6. 账号注销 (审计记录 -> 删除会话 -> 删除用户)

依赖: UserRepository / OneTimeCredentialEngine / SessionIssuer /
      SessionRegistry / TokenService / RefreshTokenStore

Author: jinmozhe
Created: 2025-12-05
Updated: 2026-10-19 (OTP, magic link, session-bound tokens)
"""

import uuid
from typing import Any

from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings
from app.core.exceptions import AppException
from app.core.logging import logger
from app.core.security import (
    TokenService,
    TokenType,
    get_password_hash_async,
    password_fingerprint,
    verify_password_async,
)
from app.domains.auth.constants import AuthError
from app.domains.auth.issuer import IssuedTokens, SessionIssuer
from app.domains.auth.oauth import RefreshTokenStore
from app.domains.auth.otp import Issued, OneTimeCredentialEngine, OtpChannel, OtpPurpose
from app.domains.auth.repository import AccountDeletionRepository
from app.domains.auth.schemas import (
    DeleteAccountRequest,
    LoginRequest,
    RegisterRequest,
)
from app.domains.sessions.client_info import ClientContext
from app.domains.sessions.repository import SessionRepository
from app.domains.sessions.service import SessionRegistry
from app.domains.users.constants import UserErrorCode
from app.domains.users.repository import UserRepository
from app.domains.users.schemas import UserCreate
from app.utils.masking import mask_email, mask_phone


class AuthService:
    """
    认证服务类。
    """

    def __init__(
        self,
        user_repo: UserRepository,
        engine: OneTimeCredentialEngine,
        issuer: SessionIssuer,
        registry: SessionRegistry,
        session_repo: SessionRepository,
        deletion_repo: AccountDeletionRepository,
        tokens: TokenService,
        refresh_store: RefreshTokenStore,
    ):
        self.user_repo = user_repo
        self.engine = engine
        self.issuer = issuer
        self.registry = registry
        self.session_repo = session_repo
        self.deletion_repo = deletion_repo
        self.tokens = tokens
        self.refresh_store = refresh_store

    # --------------------------------------------------------------------------
    # 注册与验证
    # --------------------------------------------------------------------------

    async def register(self, data: RegisterRequest) -> Issued:
        """
        注册流程。

        流程:
        1. 邮箱已存在 -> EMAIL_TAKEN
        2. 用户名被已验证账号占用 -> USERNAME_TAKEN；被未验证账号占用则释放
        3. 创建未验证用户并发送验证码 (发送失败时删除新用户)
        """
        if await self.user_repo.get_by_email(data.email):
            raise AppException(AuthError.EMAIL_TAKEN)

        holder = await self.user_repo.get_by_username(data.username)
        if holder is not None:
            if holder.is_verified:
                raise AppException(AuthError.USERNAME_TAKEN)
            await self.user_repo.update(holder, {"username": None})
            logger.bind(user_id=str(holder.id)).info(
                "Username released from unverified account"
            )

        hashed_password = await get_password_hash_async(data.password)
        user = await self.user_repo.create(
            UserCreate(
                email=data.email,
                username=data.username,
                name=data.name,
                hashed_password=hashed_password,
                is_verified=False,
            )
        )
        await self.user_repo.commit()

        logger.bind(user_id=str(user.id), email=mask_email(data.email)).info(
            "User registered"
        )
        return await self.engine.issue_otp(user, OtpChannel.EMAIL, created=True)

    async def resend_verification(self, email: str) -> Issued:
        user = await self.user_repo.get_by_email(email)
        if user is None:
            raise AppException(AuthError.USER_NOT_FOUND)
        if user.is_verified:
            raise AppException(AuthError.ALREADY_VERIFIED)
        return await self.engine.issue_otp(user, OtpChannel.EMAIL)

    async def verify_email(
        self, email: str, otp: str, client: ClientContext
    ) -> IssuedTokens:
        user = await self.user_repo.get_by_email(email)
        user = await self.engine.verify_otp(user, otp, OtpPurpose.VERIFICATION)
        return await self.issuer.issue(user, client)

    async def request_mobile_otp(self, mobile: str) -> Issued:
        """手机号首次请求验证码时创建未验证用户。"""
        user = await self.user_repo.get_by_mobile(mobile)
        created = False
        if user is None:
            user = await self.user_repo.create(UserCreate(mobile=mobile))
            await self.user_repo.commit()
            created = True
            logger.bind(user_id=str(user.id), mobile=mask_phone(mobile)).info(
                "User created for mobile OTP"
            )

        return await self.engine.issue_mobile_otp(user, created=created)

    async def verify_mobile(
        self, mobile: str, otp: str, client: ClientContext
    ) -> IssuedTokens:
        user = await self.user_repo.get_by_mobile(mobile)
        user = await self.engine.verify_otp(user, otp, OtpPurpose.LOGIN)
        return await self.issuer.issue(user, client)

    # --------------------------------------------------------------------------
    # 登录
    # --------------------------------------------------------------------------

    async def login(
        self, data: LoginRequest, client: ClientContext
    ) -> IssuedTokens | Issued:
        """
        密码登录。

        Returns:
            IssuedTokens: 登录成功
            Issued: 已开启二次验证，验证码已发送，需调用 login_two_factor
        """
        user = await self.user_repo.get_by_email(data.email)
        if user is None or not user.hashed_password:
            raise AppException(AuthError.USER_NOT_FOUND)

        if not await verify_password_async(data.password, user.hashed_password):
            raise AppException(AuthError.INVALID_CREDENTIALS)

        if not user.is_verified:
            raise AppException(AuthError.NOT_VERIFIED)

        if user.is_2fa_enabled:
            logger.bind(user_id=str(user.id)).info("Two-factor challenge issued")
            return await self.engine.issue_otp(user, OtpChannel.EMAIL)

        return await self.issuer.issue(user, client)

    async def login_two_factor(
        self, email: str, otp: str, client: ClientContext
    ) -> IssuedTokens:
        user = await self.user_repo.get_by_email(email)
        if user is not None and not user.is_2fa_enabled:
            # 未开启二次验证的账号不接受此入口
            raise AppException(AuthError.INVALID_CODE)
        user = await self.engine.verify_otp(user, otp, OtpPurpose.LOGIN)
        return await self.issuer.issue(user, client)

    # --------------------------------------------------------------------------
    # 找回密码
    # --------------------------------------------------------------------------

    async def forgot_password(self, email: str) -> Issued:
        user = await self.user_repo.get_by_email(email)
        if user is None:
            raise AppException(AuthError.USER_NOT_FOUND)
        return await self.engine.issue_otp(user, OtpChannel.EMAIL)

    async def verify_reset_code(self, email: str, otp: str) -> str:
        """校验找回密码验证码，返回短效重置令牌。"""
        user = await self.user_repo.get_by_email(email)
        user = await self.engine.verify_otp(user, otp, OtpPurpose.RESET)
        return self.tokens.issue_reset_token(
            str(user.id), password_fingerprint(user.hashed_password)
        )

    async def reset_password(self, reset_token: str, new_password: str) -> None:
        claims = self.tokens.verify(reset_token, TokenType.RESET)

        user = await self.user_repo.get(uuid.UUID(str(claims["userId"])))
        if user is None:
            raise AppException(AuthError.USER_NOT_FOUND)

        # 密码已变更 (含本令牌已用过一次) 时旧令牌作废
        if claims.get("pwf") != password_fingerprint(user.hashed_password):
            raise AppException(AuthError.RESET_TOKEN_USED)

        hashed_password = await get_password_hash_async(new_password)
        await self.user_repo.update(user, {"hashed_password": hashed_password})
        await self.user_repo.commit()

        logger.bind(user_id=str(user.id)).info("Password reset")

    # --------------------------------------------------------------------------
    # 令牌续签与登出
    # --------------------------------------------------------------------------

    async def refresh(self, refresh_token: str) -> IssuedTokens:
        """
        密码链路续签。

        过期 / 非法 / 类型不符的令牌异常原样抛出 (Router 据此清除 Cookie)。
        SSO 令牌须与 Redis 镜像一致，且在此链路不轮换。
        """
        claims = self.tokens.verify(refresh_token, TokenType.REFRESH)

        user = await self.user_repo.get(uuid.UUID(str(claims["userId"])))
        if user is None:
            raise AppException(AuthError.INVALID_REFRESH_TOKEN)

        # SSO 令牌须与 Redis 镜像一致 (已轮换或已撤销即失效)
        if claims.get("provider") and not await self.refresh_store.matches(
            user.id, refresh_token
        ):
            raise AppException(AuthError.INVALID_REFRESH_TOKEN)

        sid = claims.get("sid")
        if sid is None or not await self.registry.is_session_active(
            user.id, uuid.UUID(str(sid))
        ):
            raise AppException(AuthError.SESSION_REVOKED)

        rotate = settings.REFRESH_TOKEN_ROTATION and not claims.get("provider")
        return self.issuer.reissue(user, claims, rotate=rotate)

    def _logout_claims(
        self, access_token: str | None, refresh_token: str | None
    ) -> dict[str, Any] | None:
        if access_token:
            claims = self.tokens.decode_unverified_expiry(access_token, TokenType.ACCESS)
            if claims:
                return claims
        if refresh_token:
            return self.tokens.decode_unverified_expiry(refresh_token, TokenType.REFRESH)
        return None

    async def logout(self, access_token: str | None, refresh_token: str | None) -> None:
        """
        登出 (尽力而为)。

        令牌无法解析时直接返回；存储层失败只记录日志。
        """
        claims = self._logout_claims(access_token, refresh_token)
        if claims is None:
            return

        user_id = claims["userId"]
        log = logger.bind(user_id=str(user_id))
        try:
            sid = claims.get("sid")
            if sid:
                await self.registry.revoke_current_session(
                    uuid.UUID(str(user_id)), uuid.UUID(str(sid))
                )
            if claims.get("provider"):
                await self.refresh_store.delete(user_id)
        except (SQLAlchemyError, RedisError, ValueError) as e:
            log.warning(f"Logout cleanup incomplete: {e.__class__.__name__}")
            return

        log.info("User logged out")

    # --------------------------------------------------------------------------
    # Magic Link
    # --------------------------------------------------------------------------

    async def request_magic_link(self, email: str) -> Issued:
        """邮箱未注册时创建未验证用户。"""
        user = await self.user_repo.get_by_email(email)
        created = False
        if user is None:
            user = await self.user_repo.create(UserCreate(email=email))
            await self.user_repo.commit()
            created = True

        return await self.engine.issue_magic_link(user, created=created)

    async def redeem_magic_link(self, token: str, client: ClientContext) -> IssuedTokens:
        user = await self.engine.redeem_magic_link(token)
        return await self.issuer.issue(user, client)

    # --------------------------------------------------------------------------
    # 账号注销
    # --------------------------------------------------------------------------

    async def delete_account(self, data: DeleteAccountRequest) -> None:
        """
        注销账号。

        流程:
        1. 校验邮箱与密码
        2. 写入审计记录 (含注销原因)
        3. 删除全部会话与用户 (同一事务)
        4. 删除 SSO Refresh Token 镜像 (失败仅记录日志)
        """
        user = await self.user_repo.get_by_email(data.email)
        if user is None or not user.hashed_password:
            raise AppException(AuthError.USER_NOT_FOUND)

        if not await verify_password_async(data.password, user.hashed_password):
            raise AppException(UserErrorCode.INCORRECT_PASSWORD)

        user_id = user.id
        await self.deletion_repo.create(
            {"user_id": user_id, "email": user.email, "reason": data.reason}
        )
        await self.session_repo.delete_for_user(user_id)
        await self.user_repo.delete(user_id)
        await self.user_repo.commit()

        try:
            await self.refresh_store.delete(user_id)
        except RedisError as e:
            logger.bind(user_id=str(user_id)).warning(
                f"Failed to revoke SSO refresh token: {e.__class__.__name__}"
            )

        logger.bind(user_id=str(user_id)).info("Account deleted")
