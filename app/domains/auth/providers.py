"""
File: app/domains/auth/providers.py
Description: 第三方身份提供方 (Google / GitHub)

本模块负责：
1. OAuthProvider: 授权地址拼接、授权码换取令牌、拉取用户资料
2. GoogleProvider: OIDC userinfo (sub / email / email_verified / name / picture)
3. GitHubProvider: /user + /user/emails (取主邮箱及其验证状态)
4. build_providers: 只注册已配置 client_id / client_secret 的提供方

所有出站请求使用共享 httpx 客户端并显式设置超时；
任何失败统一抛出 OAuthFlowError，原因仅写日志，不返回给调用方。

Author: jinmozhe
Created: 2026-10-19
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import httpx

from app.core.config import settings


class OAuthFlowError(Exception):
    """OAuth 流程任一步骤失败"""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


@dataclass(frozen=True, slots=True)
class OAuthProfile:
    subject: str
    email: str | None
    email_verified: bool
    name: str | None
    picture: str | None


class OAuthProvider(ABC):
    name: str = ""
    authorize_url: str = ""
    token_url: str = ""
    scopes: tuple[str, ...] = ()

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        timeout: float = 10.0,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "state": state,
        }
        return f"{self.authorize_url}?{urlencode(params)}"

    async def _request_json(
        self, client: httpx.AsyncClient, method: str, url: str, **kwargs: Any
    ) -> Any:
        try:
            response = await client.request(method, url, timeout=self.timeout, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as e:
            raise OAuthFlowError(f"{self.name}: timeout calling {url}") from e
        except httpx.HTTPStatusError as e:
            raise OAuthFlowError(
                f"{self.name}: {url} returned {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise OAuthFlowError(f"{self.name}: request to {url} failed") from e

    async def exchange_code(self, client: httpx.AsyncClient, code: str) -> str:
        """授权码换取提供方 access token"""
        payload = await self._request_json(
            client,
            "POST",
            self.token_url,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": self.redirect_uri,
            },
            headers={"Accept": "application/json"},
        )
        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not access_token:
            raise OAuthFlowError(f"{self.name}: token response without access_token")
        return access_token

    @abstractmethod
    async def fetch_profile(
        self, client: httpx.AsyncClient, access_token: str
    ) -> OAuthProfile: ...


class GoogleProvider(OAuthProvider):
    name = "google"
    authorize_url = "https://accounts.google.com/o/oauth2/v2/auth"
    token_url = "https://oauth2.googleapis.com/token"
    userinfo_url = "https://openidconnect.googleapis.com/v1/userinfo"
    scopes = ("openid", "email", "profile")

    async def fetch_profile(
        self, client: httpx.AsyncClient, access_token: str
    ) -> OAuthProfile:
        data = await self._request_json(
            client,
            "GET",
            self.userinfo_url,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        if not isinstance(data, dict) or not data.get("sub"):
            raise OAuthFlowError("google: userinfo without subject")

        return OAuthProfile(
            subject=str(data["sub"]),
            email=data.get("email"),
            email_verified=bool(data.get("email_verified", False)),
            name=data.get("name"),
            picture=data.get("picture"),
        )


class GitHubProvider(OAuthProvider):
    name = "github"
    authorize_url = "https://github.com/login/oauth/authorize"
    token_url = "https://github.com/login/oauth/access_token"
    user_url = "https://api.github.com/user"
    emails_url = "https://api.github.com/user/emails"
    scopes = ("read:user", "user:email")

    async def fetch_profile(
        self, client: httpx.AsyncClient, access_token: str
    ) -> OAuthProfile:
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/vnd.github+json",
        }
        data = await self._request_json(client, "GET", self.user_url, headers=headers)
        if not isinstance(data, dict) or data.get("id") is None:
            raise OAuthFlowError("github: user payload without id")

        # 主邮箱及验证状态只能从 /user/emails 获得
        emails = await self._request_json(client, "GET", self.emails_url, headers=headers)
        primary = next(
            (e for e in emails or [] if isinstance(e, dict) and e.get("primary")),
            None,
        )

        email = primary.get("email") if primary else data.get("email")
        email_verified = bool(primary.get("verified")) if primary else False

        return OAuthProfile(
            subject=str(data["id"]),
            email=email,
            email_verified=email_verified,
            name=data.get("name") or data.get("login"),
            picture=data.get("avatar_url"),
        )


def _redirect_uri(provider: str) -> str:
    return f"{settings.APP_URL.rstrip('/')}{settings.API_V1_STR}/auth/sso/{provider}/callback"


def build_providers() -> dict[str, OAuthProvider]:
    """按配置构建可用提供方"""
    providers: dict[str, OAuthProvider] = {}

    if settings.GOOGLE_CLIENT_ID and settings.GOOGLE_CLIENT_SECRET:
        providers["google"] = GoogleProvider(
            client_id=settings.GOOGLE_CLIENT_ID,
            client_secret=settings.GOOGLE_CLIENT_SECRET,
            redirect_uri=_redirect_uri("google"),
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )

    if settings.GITHUB_CLIENT_ID and settings.GITHUB_CLIENT_SECRET:
        providers["github"] = GitHubProvider(
            client_id=settings.GITHUB_CLIENT_ID,
            client_secret=settings.GITHUB_CLIENT_SECRET,
            redirect_uri=_redirect_uri("github"),
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )

    return providers
