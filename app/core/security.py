"""
File: app/core/security.py
Description: 安全工具模块 (Argon2id + JWT 双密钥令牌服务)

本模块负责：
1. 密码加密 (Hash): 使用 Argon2id 算法 (抗 GPU 破解)
2. 密码验证 (Verify): 校验明文与哈希
3. 令牌服务 (TokenService): 签发/校验 access、refresh、reset 三类 JWT
4. 令牌异常: 过期 / 格式非法 / 类型不符，均为 AppException 子类
5. 异步封装: 针对 CPU 密集型操作提供 async 支持

Author: jinmozhe
Created: 2025-12-05
Updated: 2026-10-19 (TokenService with access/refresh secrets)
"""

import hashlib
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt
from pwdlib import PasswordHash
from starlette.concurrency import run_in_threadpool
from uuid6 import uuid7

from app.core.config import settings
from app.core.error_code import SystemErrorCode
from app.core.exceptions import AppException

# 初始化密码哈希处理器
# pwdlib[argon2] 默认使用 argon2 算法
password_hash = PasswordHash.recommended()

# ------------------------------------------------------------------------------
# 1. 密码处理 (Password Hashing)
# ------------------------------------------------------------------------------


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    验证明文密码与哈希值是否匹配。

    Args:
        plain_password: 用户输入的明文密码
        hashed_password: 数据库存的哈希值 (Argon2 格式)

    Returns:
        bool: 匹配返回 True，否则 False
    """
    return password_hash.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """生成密码哈希值 (Argon2id)。"""
    return password_hash.hash(password)


async def verify_password_async(plain_password: str, hashed_password: str) -> bool:
    """异步验证密码（在线程池中执行，避免阻塞事件循环）。"""
    return await run_in_threadpool(verify_password, plain_password, hashed_password)


async def get_password_hash_async(password: str) -> str:
    """异步生成密码哈希（在线程池中执行，避免阻塞事件循环）。"""
    return await run_in_threadpool(get_password_hash, password)


def password_fingerprint(hashed_password: str | None) -> str:
    """密码哈希的短摘要，写入重置令牌 (未设置密码时为空串的摘要)"""
    return hashlib.sha256((hashed_password or "").encode()).hexdigest()[:16]


# ------------------------------------------------------------------------------
# 2. 令牌异常 (Token Errors)
# ------------------------------------------------------------------------------


class TokenExpiredError(AppException):
    """令牌已过期"""

    def __init__(self) -> None:
        super().__init__(SystemErrorCode.TOKEN_EXPIRED)


class TokenMalformedError(AppException):
    """签名无效或结构非法"""

    def __init__(self) -> None:
        super().__init__(SystemErrorCode.TOKEN_MALFORMED)


class TokenTypeMismatchError(AppException):
    """令牌 type 字段与期望类型不一致"""

    def __init__(self) -> None:
        super().__init__(SystemErrorCode.TOKEN_TYPE_MISMATCH)


# ------------------------------------------------------------------------------
# 3. JWT 令牌服务 (Token Service)
# ------------------------------------------------------------------------------


class TokenType(StrEnum):
    ACCESS = "access"
    REFRESH = "refresh"
    RESET = "reset"


class TokenService:
    """
    JWT 令牌服务。

    - access / reset 令牌使用 ACCESS_TOKEN_SECRET 签名
    - refresh 令牌使用 REFRESH_TOKEN_SECRET 签名
    - 每个令牌都携带 type / iat / exp / jti
    """

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        algorithm: str = "HS256",
        access_ttl: timedelta = timedelta(hours=1),
        refresh_ttl: timedelta = timedelta(days=7),
        reset_ttl: timedelta = timedelta(minutes=15),
    ):
        self.algorithm = algorithm
        self._secrets = {
            TokenType.ACCESS: access_secret,
            TokenType.REFRESH: refresh_secret,
            TokenType.RESET: access_secret,
        }
        self._ttls = {
            TokenType.ACCESS: access_ttl,
            TokenType.REFRESH: refresh_ttl,
            TokenType.RESET: reset_ttl,
        }

    @classmethod
    def from_settings(cls) -> "TokenService":
        """按全局配置构造令牌服务"""
        # Settings 校验器已保证双密钥存在
        return cls(
            access_secret=settings.ACCESS_TOKEN_SECRET,  # type: ignore[arg-type]
            refresh_secret=settings.REFRESH_TOKEN_SECRET,  # type: ignore[arg-type]
            algorithm=settings.ALGORITHM,
            access_ttl=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
            refresh_ttl=timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
            reset_ttl=timedelta(minutes=settings.RESET_TOKEN_EXPIRE_MINUTES),
        )

    # --------------------------------------------------------------------------
    # 签发
    # --------------------------------------------------------------------------

    def _issue(self, claims: dict[str, Any], token_type: TokenType) -> str:
        now = datetime.now(UTC)
        # 值为 None 的可选声明不写入令牌
        to_encode = {k: v for k, v in claims.items() if v is not None}
        to_encode.update(
            {
                "type": token_type.value,
                "iat": now,
                "exp": now + self._ttls[token_type],
                "jti": uuid7().hex,
            }
        )
        return jwt.encode(to_encode, self._secrets[token_type], algorithm=self.algorithm)

    def issue_access_token(self, claims: dict[str, Any]) -> str:
        """签发 Access Token (默认 1 小时)"""
        return self._issue(claims, TokenType.ACCESS)

    def issue_refresh_token(self, claims: dict[str, Any]) -> str:
        """签发 Refresh Token (默认 7 天)"""
        return self._issue(claims, TokenType.REFRESH)

    def issue_reset_token(self, user_id: str, fingerprint: str) -> str:
        """
        签发重置密码令牌，仅在找回密码验证码校验通过后使用。
        fingerprint 为签发时的密码指纹，密码一旦变更令牌即失效。
        """
        return self._issue({"userId": user_id, "pwf": fingerprint}, TokenType.RESET)

    # --------------------------------------------------------------------------
    # 校验
    # --------------------------------------------------------------------------

    def _decode(
        self, token: str, expected_type: TokenType, verify_exp: bool = True
    ) -> dict[str, Any]:
        # 1. 读取声明中的 type 以选择签名密钥 (尚未信任)
        try:
            unverified = jwt.get_unverified_claims(token)
        except JWTError as e:
            raise TokenMalformedError() from e

        try:
            claimed_type = TokenType(unverified.get("type"))
        except ValueError as e:
            raise TokenMalformedError() from e

        # 2. 用对应密钥校验签名与过期时间
        try:
            claims = jwt.decode(
                token,
                self._secrets[claimed_type],
                algorithms=[self.algorithm],
                options={"verify_exp": verify_exp},
            )
        except ExpiredSignatureError as e:
            raise TokenExpiredError() from e
        except JWTError as e:
            raise TokenMalformedError() from e

        # 3. 签名可信后再比较类型
        if claims.get("type") != expected_type.value:
            raise TokenTypeMismatchError()

        if not claims.get("userId"):
            raise TokenMalformedError()

        return claims

    def verify(self, token: str, expected_type: TokenType) -> dict[str, Any]:
        """
        校验令牌并返回声明。

        Raises:
            TokenExpiredError: 已过期
            TokenMalformedError: 签名/结构非法
            TokenTypeMismatchError: type 与 expected_type 不一致
        """
        return self._decode(token, expected_type)

    def decode_unverified_expiry(
        self, token: str, expected_type: TokenType
    ) -> dict[str, Any] | None:
        """
        校验签名但忽略过期时间，失败返回 None。
        仅用于尽力而为的登出流程。
        """
        try:
            return self._decode(token, expected_type, verify_exp=False)
        except AppException:
            return None


# 全局单例 (与 password_hash 一致，无可变状态)
token_service = TokenService.from_settings()
