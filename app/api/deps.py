"""
File: app/api/deps.py
Description: 全局依赖注入定义 (DB Session + Redis + HTTP Client + Authentication)

本模块负责：
1. 基础设施依赖：数据库会话 / Redis / 出站 HTTP 客户端均从 app.state 读取
2. 令牌提取：优先 access_token Cookie，其次 Authorization: Bearer
3. JWT 鉴权与用户身份提取 (get_current_claims / CurrentUser)
   - 令牌关联的会话 (sid) 已撤销时拒绝访问
4. 权限控制 (get_current_superuser / SuperUser)

Author: jinmozhe
Created: 2025-12-05
Updated: 2026-10-19 (cookie tokens, session-bound access, app.state resources)
"""

import uuid
from collections.abc import AsyncGenerator
from typing import Annotated, Any

import httpx
from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import PermissionException, UnauthorizedException
from app.core.security import TokenService, TokenType, token_service
from app.db.models.user import User
from app.db.models.user_session import UserSession
from app.domains.auth.constants import ACCESS_TOKEN_COOKIE

# ------------------------------------------------------------------------------
# 1. Infrastructure Dependencies
# ------------------------------------------------------------------------------


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    获取异步数据库会话依赖。
    使用 async with 确保请求结束时自动关闭 session。
    """
    async with request.app.state.session_factory() as session:
        yield session


# 数据库会话依赖类型别名
DBSession = Annotated[AsyncSession, Depends(get_db)]


async def get_http_client(request: Request) -> httpx.AsyncClient:
    """共享的出站 HTTP 客户端 (通知 / 地理定位 / OAuth)"""
    return request.app.state.http_client


HttpClient = Annotated[httpx.AsyncClient, Depends(get_http_client)]


def get_token_service() -> TokenService:
    return token_service


TokenServiceDep = Annotated[TokenService, Depends(get_token_service)]


# ------------------------------------------------------------------------------
# 2. Authentication Dependencies (JWT 鉴权)
# ------------------------------------------------------------------------------


async def get_access_token(
    request: Request,
    authorization: Annotated[str | None, Header()] = None,
) -> str:
    """
    提取 Access Token。
    优先读取 access_token Cookie，其次 Authorization: Bearer <token>。
    """
    cookie_token = request.cookies.get(ACCESS_TOKEN_COOKIE)
    if cookie_token:
        return cookie_token

    if not authorization:
        raise UnauthorizedException(message="Missing access token")

    scheme, _, param = authorization.partition(" ")
    if scheme.lower() != "bearer" or not param:
        raise UnauthorizedException(message="Invalid Authentication Scheme")

    return param


async def get_current_claims(
    token: Annotated[str, Depends(get_access_token)],
    tokens: TokenServiceDep,
) -> dict[str, Any]:
    """
    校验 Access Token 并返回声明。
    过期 / 非法 / 类型不符分别抛出对应的令牌异常 (401)。
    """
    return tokens.verify(token, TokenType.ACCESS)


CurrentClaims = Annotated[dict[str, Any], Depends(get_current_claims)]


def _parse_uuid(value: Any) -> uuid.UUID | None:
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


async def get_current_user(claims: CurrentClaims, session: DBSession) -> User:
    """
    解析当前登录用户。

    流程:
    1. 从声明中提取 userId 与 sid
    2. 会话已撤销 (is_active=False) 或不属于该用户时拒绝
    3. 查库确认用户仍然存在
    """
    user_id = _parse_uuid(claims.get("userId"))
    if user_id is None:
        raise UnauthorizedException(message="Invalid Token: missing userId")

    sid = claims.get("sid")
    if sid is not None:
        session_id = _parse_uuid(sid)
        user_session = await session.get(UserSession, session_id) if session_id else None
        if (
            user_session is None
            or user_session.user_id != user_id
            or not user_session.is_active
        ):
            raise UnauthorizedException(message="Session has been revoked")

    user = await session.get(User, user_id)
    if not user:
        raise UnauthorizedException(message="User not found")

    return user


# ------------------------------------------------------------------------------
# 3. Permission Dependencies (权限控制)
# ------------------------------------------------------------------------------

# 已登录用户依赖
# 用法: async def endpoint(user: CurrentUser): ...
CurrentUser = Annotated[User, Depends(get_current_user)]


async def get_current_superuser(current_user: CurrentUser) -> User:
    """超级管理员权限校验。"""
    if not current_user.is_superuser:
        raise PermissionException(message="Not enough privileges")
    return current_user


SuperUser = Annotated[User, Depends(get_current_superuser)]
