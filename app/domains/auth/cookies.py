"""
File: app/domains/auth/cookies.py
Description: 认证 Cookie 读写

所有 Cookie: HttpOnly / SameSite=Lax / Path=/，生产环境附加 Secure。
清除时写入空值与 Max-Age=-1。

Author: jinmozhe
Created: 2026-10-19
"""

from starlette.responses import Response

from app.core.config import settings
from app.domains.auth.constants import (
    ACCESS_TOKEN_COOKIE,
    REFRESH_TOKEN_COOKIE,
    SSO_STATE_COOKIE,
)


def _set(response: Response, key: str, value: str, max_age: int) -> None:
    response.set_cookie(
        key=key,
        value=value,
        max_age=max_age,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
    )


def set_auth_cookies(
    response: Response, access_token: str, refresh_token: str | None = None
) -> None:
    _set(response, ACCESS_TOKEN_COOKIE, access_token, settings.access_token_max_age)
    if refresh_token is not None:
        _set(
            response,
            REFRESH_TOKEN_COOKIE,
            refresh_token,
            settings.refresh_token_max_age,
        )


def clear_auth_cookies(response: Response) -> None:
    _set(response, ACCESS_TOKEN_COOKIE, "", -1)
    _set(response, REFRESH_TOKEN_COOKIE, "", -1)


def set_state_cookie(response: Response, state: str) -> None:
    _set(response, SSO_STATE_COOKIE, state, settings.SSO_STATE_COOKIE_MAX_AGE)


def clear_state_cookie(response: Response) -> None:
    _set(response, SSO_STATE_COOKIE, "", -1)
