"""
File: app/core/config.py
Description: 全局应用配置管理（使用 pydantic-settings）

所有配置值通过 .env 文件加载。
本模块负责：
1. 校验环境变量类型
2. 解析复杂类型（如 CORS 列表）
3. 组装数据库 DSN（确保使用 postgresql+asyncpg 协议）
4. 定义 Redis 连接、JWT 双密钥、Cookie、OTP 与限流参数
5. 定义外部协作方 (邮件/短信/地理定位/OAuth 提供方) 的接入参数
6. 运行时强制校验必填项，确保应用在配置缺失时快速失败

Author: jinmozhe
Created: 2025-11-24
Updated: 2026-10-19 (Auth & Session service settings)
"""

from typing import Literal

from pydantic import AnyHttpUrl, model_validator
from pydantic_core import MultiHostUrl
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """全局配置对象（唯一真实来源）"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
        case_sensitive=True,
    )

    # --------------------------------------------------------------------------
    # 1. General (通用)
    # --------------------------------------------------------------------------
    PROJECT_NAME: str = "Auth Session Service"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: Literal["local", "dev", "prod"] = "local"
    DEBUG: bool = False

    # CORS 配置（Pydantic 会自动解析 JSON 字符串列表）
    BACKEND_CORS_ORIGINS: list[AnyHttpUrl] = []

    # 后端对外地址 (OAuth 回调地址基于此拼接)
    APP_URL: str = "http://localhost:8000"
    # 前端地址 (SSO 成功/失败跳转、Magic Link 落地页)
    FRONTEND_URL: str = "http://localhost:3000"

    # --------------------------------------------------------------------------
    # 2. Database (PostgreSQL)
    # --------------------------------------------------------------------------
    POSTGRES_SERVER: str | None = None
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str | None = None
    POSTGRES_PASSWORD: str | None = None
    POSTGRES_DB: str | None = None

    # 连接池配置 (Pool Settings)
    DB_POOL_SIZE: int = 20  # 连接池基准大小
    DB_MAX_OVERFLOW: int = 10  # 允许超出基准的额外连接数
    DB_POOL_PRE_PING: bool = True  # 每次获取连接前是否自动 ping
    DB_POOL_TIMEOUT: int = 30  # 连接获取超时（秒）
    DB_POOL_RECYCLE: int = 1800  # 连接回收时间（秒），防止连接过期

    # 完整 DSN 覆盖（可选）
    SQLALCHEMY_DATABASE_URI: str | None = None

    # --------------------------------------------------------------------------
    # 3. Logging (Loguru)
    # --------------------------------------------------------------------------
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    LOG_JSON_FORMAT: bool = False  # 是否输出 JSON 格式
    LOG_FILE_ENABLED: bool = False  # 是否启用文件日志
    LOG_DIR: str = "logs"  # 日志文件目录
    LOG_ROTATION: str = "1 hour"  # 轮转策略
    LOG_RETENTION: str = "7 days"  # 保留时间
    LOG_COMPRESSION: str = "zip"  # 压缩格式
    LOG_DIAGNOSE: bool = True  # 是否启用诊断信息（生产环境建议 False）

    # --------------------------------------------------------------------------
    # 4. Redis Settings (限流计数 + SSO Refresh Token 存储)
    # --------------------------------------------------------------------------
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_SOCKET_TIMEOUT: float = 5.0
    REDIS_SOCKET_CONNECT_TIMEOUT: float = 2.0

    # --------------------------------------------------------------------------
    # 5. Security & Authentication (JWT)
    # --------------------------------------------------------------------------
    # 双密钥：Access 与 Refresh 分别签名，任一泄露不会伪造另一种令牌
    ACCESS_TOKEN_SECRET: str | None = None
    REFRESH_TOKEN_SECRET: str | None = None

    # JWT 签名算法 (推荐使用 HS256)
    ALGORITHM: str = "HS256"

    # Access Token 有效期 (分钟)
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Refresh Token 有效期 (天)
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    # 重置密码令牌有效期 (分钟)，仅在 OTP 校验通过后签发
    RESET_TOKEN_EXPIRE_MINUTES: int = 15

    # 密码登录链路的 Refresh Token 是否轮换 (SSO 链路始终轮换)
    REFRESH_TOKEN_ROTATION: bool = False

    # --------------------------------------------------------------------------
    # 6. Cookies
    # --------------------------------------------------------------------------
    # 未显式设置时，生产环境自动开启 Secure
    COOKIE_SECURE: bool | None = None
    SSO_STATE_COOKIE_MAX_AGE: int = 3600

    # --------------------------------------------------------------------------
    # 7. One-Time Credentials (OTP / Magic Link)
    # --------------------------------------------------------------------------
    OTP_EXPIRE_MINUTES: int = 60
    MAGIC_LINK_EXPIRE_MINUTES: int = 60
    MAGIC_LINK_PATH: str = "/verify-magic"

    # 手机验证码发送窗口：窗口内最多 N 次
    MOBILE_OTP_WINDOW_MINUTES: int = 60
    MOBILE_OTP_MAX_ATTEMPTS: int = 3

    # --------------------------------------------------------------------------
    # 8. Rate Limits (固定窗口，单位：秒 / 次)
    # --------------------------------------------------------------------------
    RATE_LIMIT_LOGIN_WINDOW: int = 15 * 60
    RATE_LIMIT_LOGIN_MAX: int = 10
    RATE_LIMIT_OTP_WINDOW: int = 15 * 60
    RATE_LIMIT_OTP_MAX: int = 5
    RATE_LIMIT_MAGIC_LINK_WINDOW: int = 15 * 60
    RATE_LIMIT_MAGIC_LINK_MAX: int = 5
    RATE_LIMIT_SSO_WINDOW: int = 15 * 60
    RATE_LIMIT_SSO_MAX: int = 10
    RATE_LIMIT_REFRESH_WINDOW: int = 60 * 60
    RATE_LIMIT_REFRESH_MAX: int = 30
    RATE_LIMIT_REGISTER_WINDOW: int = 60 * 60
    RATE_LIMIT_REGISTER_MAX: int = 10

    # --------------------------------------------------------------------------
    # 9. Outbound Collaborators (通知 / 地理定位)
    # --------------------------------------------------------------------------
    # 出站 HTTP 调用统一超时 (秒)
    HTTP_TIMEOUT_SECONDS: float = 10.0

    # log: 仅记录日志 (本地开发)；http: 调用 Resend / Twilio
    NOTIFICATION_BACKEND: Literal["log", "http"] = "log"
    RESEND_API_KEY: str | None = None
    RESEND_API_URL: str = "https://api.resend.com/emails"
    EMAIL_FROM: str = "no-reply@example.com"
    TWILIO_ACCOUNT_SID: str | None = None
    TWILIO_AUTH_TOKEN: str | None = None
    TWILIO_PHONE_NUMBER: str | None = None

    IPSTACK_API_KEY: str | None = None
    IPSTACK_API_URL: str = "http://api.ipstack.com"
    GEOLOCATION_TIMEOUT_SECONDS: float = 3.0

    # --------------------------------------------------------------------------
    # 10. OAuth Providers (SSO)
    # --------------------------------------------------------------------------
    GOOGLE_CLIENT_ID: str | None = None
    GOOGLE_CLIENT_SECRET: str | None = None
    GITHUB_CLIENT_ID: str | None = None
    GITHUB_CLIENT_SECRET: str | None = None

    # --------------------------------------------------------------------------
    # Properties (便捷属性)
    # --------------------------------------------------------------------------
    @property
    def is_production(self) -> bool:
        """是否为生产环境"""
        return self.ENVIRONMENT == "prod"

    @property
    def is_debug(self) -> bool:
        """是否启用调试模式（仅在非生产环境有效）"""
        return self.DEBUG and not self.is_production

    @property
    def cookie_secure(self) -> bool:
        """Cookie 是否带 Secure 标记"""
        if self.COOKIE_SECURE is not None:
            return self.COOKIE_SECURE
        return self.is_production

    @property
    def access_token_max_age(self) -> int:
        """Access Token Cookie 有效期 (秒)"""
        return self.ACCESS_TOKEN_EXPIRE_MINUTES * 60

    @property
    def refresh_token_max_age(self) -> int:
        """Refresh Token Cookie 有效期 (秒)"""
        return self.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60

    # --------------------------------------------------------------------------
    # Validators
    # --------------------------------------------------------------------------
    @model_validator(mode="after")
    def _validate_and_build_db_uri(self) -> "Settings":
        """验证必填项并构建数据库连接串。"""
        # 1. 校验 JWT 双密钥
        if not self.ACCESS_TOKEN_SECRET or not self.REFRESH_TOKEN_SECRET:
            raise ValueError(
                "ACCESS_TOKEN_SECRET 与 REFRESH_TOKEN_SECRET 必须在 .env 中设置"
            )

        if self.ACCESS_TOKEN_SECRET == self.REFRESH_TOKEN_SECRET:
            raise ValueError("ACCESS_TOKEN_SECRET 与 REFRESH_TOKEN_SECRET 不能相同")

        # 生产环境强制校验密钥强度
        if self.ENVIRONMENT == "prod" and (
            len(self.ACCESS_TOKEN_SECRET) < 32 or len(self.REFRESH_TOKEN_SECRET) < 32
        ):
            raise ValueError("生产环境 JWT 密钥长度必须 >= 32 字符")

        # 2. 如果 env 直接提供了 DSN，则优先使用
        if self.SQLALCHEMY_DATABASE_URI:
            return self

        # 3. 否则检查 POSTGRES_* 字段是否齐全
        missing_fields: list[str] = []
        required_pg_fields = [
            "POSTGRES_SERVER",
            "POSTGRES_USER",
            "POSTGRES_PASSWORD",
            "POSTGRES_DB",
        ]

        for field in required_pg_fields:
            if not getattr(self, field):
                missing_fields.append(field)

        if missing_fields:
            raise ValueError(
                f"缺少数据库环境变量，无法构建 DSN: {', '.join(missing_fields)}"
            )

        # 4. 自动组装 DSN
        self.SQLALCHEMY_DATABASE_URI = str(
            MultiHostUrl.build(
                scheme="postgresql+asyncpg",
                username=self.POSTGRES_USER,  # type: ignore[arg-type]
                password=self.POSTGRES_PASSWORD,  # type: ignore[arg-type]
                host=self.POSTGRES_SERVER,  # type: ignore[arg-type]
                port=self.POSTGRES_PORT,
                path=self.POSTGRES_DB,  # type: ignore[arg-type]
            )
        )

        return self


# 单例配置对象
# 配置加载失败时，Pydantic 会抛出 ValidationError，包含详细错误信息
settings = Settings()
