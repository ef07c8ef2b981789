"""
File: app/domains/auth/router.py
Description: 认证领域 HTTP 路由层

本模块定义认证相关的 API 端点：
1. 注册与验证: /register, /verify-email, /verify-email/resend, /mobile/otp, /mobile/verify
2. 登录: /login (开启 2FA 时返回 202), /login/2fa
3. 找回密码: /forgot-password, /forgot-password/verify, /reset-password
4. 令牌: /refresh, /logout
5. Magic Link: /magic-link, /magic-link/verify
6. 账号注销: /delete-account
7. SSO: /sso/{provider}, /sso/{provider}/callback, /sso/refresh

规范：
- 使用统一响应信封 (ResponseModel.success)
- 令牌通过 HttpOnly Cookie 下发；响应体仅返回 Access Token 便于非浏览器客户端
- 敏感入口挂载 RateLimit 依赖 (按客户端 IP 固定窗口)

Author: jinmozhe
Created: 2025-12-05
Updated: 2026-10-19 (cookie sessions, OTP / magic link / SSO flows)
"""

from typing import Annotated

from fastapi import APIRouter, Cookie, Depends, Query, Request, Response, status
from fastapi.responses import RedirectResponse

from app.core.config import settings
from app.core.exceptions import AppException, render_app_exception
from app.core.logging import logger
from app.core.rate_limit import RateLimit
from app.core.response import ResponseModel
from app.core.security import TokenExpiredError
from app.domains.auth.constants import (
    ACCESS_TOKEN_COOKIE,
    REFRESH_TOKEN_COOKIE,
    SSO_STATE_COOKIE,
    AuthError,
    AuthMsg,
)
from app.domains.auth.cookies import (
    clear_auth_cookies,
    clear_state_cookie,
    set_auth_cookies,
    set_state_cookie,
)
from app.domains.auth.dependencies import AuthServiceDep, OAuthCoordinatorDep
from app.domains.auth.issuer import IssuedTokens
from app.domains.auth.otp import Issued
from app.domains.auth.providers import OAuthFlowError
from app.domains.auth.schemas import (
    AuthSession,
    DeleteAccountRequest,
    EmailOtpRequest,
    EmailRequest,
    LoginRequest,
    MagicLinkVerifyRequest,
    MobileOtpRequest,
    MobileRequest,
    OtpDispatched,
    RegisterRequest,
    ResetPasswordRequest,
    ResetTokenIssued,
    TokenRefreshed,
    TwoFactorChallenge,
)
from app.domains.sessions.client_info import client_context_from_request
from app.domains.users.schemas import UserRead

router = APIRouter()

# ------------------------------------------------------------------------------
# 限流依赖 (窗口 / 上限来自配置)
# ------------------------------------------------------------------------------

login_limit = RateLimit(
    "login", settings.RATE_LIMIT_LOGIN_WINDOW, settings.RATE_LIMIT_LOGIN_MAX
)
otp_limit = RateLimit("otp", settings.RATE_LIMIT_OTP_WINDOW, settings.RATE_LIMIT_OTP_MAX)
magic_link_limit = RateLimit(
    "magic-link", settings.RATE_LIMIT_MAGIC_LINK_WINDOW, settings.RATE_LIMIT_MAGIC_LINK_MAX
)
sso_limit = RateLimit("sso", settings.RATE_LIMIT_SSO_WINDOW, settings.RATE_LIMIT_SSO_MAX)
refresh_limit = RateLimit(
    "refresh", settings.RATE_LIMIT_REFRESH_WINDOW, settings.RATE_LIMIT_REFRESH_MAX
)
register_limit = RateLimit(
    "register", settings.RATE_LIMIT_REGISTER_WINDOW, settings.RATE_LIMIT_REGISTER_MAX
)


# ------------------------------------------------------------------------------
# 响应构造
# ------------------------------------------------------------------------------


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def _dispatched(issued: Issued) -> OtpDispatched:
    return OtpDispatched(
        channel=issued.channel.value,
        destination=issued.destination,
        expires_in=issued.expires_in,
    )


def _start_session(response: Response, issued: IssuedTokens) -> AuthSession:
    """写入令牌 Cookie 并构造登录响应"""
    set_auth_cookies(response, issued.access_token, issued.refresh_token)
    return AuthSession(
        user=UserRead.model_validate(issued.user),
        access_token=issued.access_token,
        expires_in=settings.access_token_max_age,
    )


def _refreshed(response: Response, issued: IssuedTokens) -> TokenRefreshed:
    set_auth_cookies(response, issued.access_token, issued.refresh_token)
    return TokenRefreshed(
        access_token=issued.access_token,
        expires_in=settings.access_token_max_age,
        refresh_rotated=issued.refresh_token is not None,
    )


# ------------------------------------------------------------------------------
# 注册与验证
# ------------------------------------------------------------------------------


@router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    response_model=ResponseModel[OtpDispatched],
    dependencies=[Depends(register_limit)],
    summary="邮箱注册",
    description="创建未验证账号并向邮箱发送 6 位验证码。",
)
async def register(
    request: Request, data: RegisterRequest, service: AuthServiceDep
) -> ResponseModel[OtpDispatched]:
    issued = await service.register(data)
    return ResponseModel.success(
        data=_dispatched(issued),
        message=AuthMsg.REGISTER_SUCCESS,
        request_id=_request_id(request),
    )


@router.post(
    "/verify-email/resend",
    response_model=ResponseModel[OtpDispatched],
    dependencies=[Depends(otp_limit)],
    summary="重发邮箱验证码",
)
async def resend_verification(
    request: Request, data: EmailRequest, service: AuthServiceDep
) -> ResponseModel[OtpDispatched]:
    issued = await service.resend_verification(data.email)
    return ResponseModel.success(
        data=_dispatched(issued), message=AuthMsg.OTP_SENT, request_id=_request_id(request)
    )


@router.post(
    "/verify-email",
    response_model=ResponseModel[AuthSession],
    summary="验证邮箱",
    description="校验注册验证码，成功后标记已验证并直接登录。",
)
async def verify_email(
    request: Request,
    response: Response,
    data: EmailOtpRequest,
    service: AuthServiceDep,
) -> ResponseModel[AuthSession]:
    issued = await service.verify_email(
        data.email, data.otp, client_context_from_request(request)
    )
    return ResponseModel.success(
        data=_start_session(response, issued),
        message=AuthMsg.VERIFY_SUCCESS,
        request_id=_request_id(request),
    )


@router.post(
    "/mobile/otp",
    response_model=ResponseModel[OtpDispatched],
    dependencies=[Depends(otp_limit)],
    summary="发送手机验证码",
    description="手机号首次使用时自动创建账号。每小时最多发送 3 次。",
)
async def request_mobile_otp(
    request: Request, data: MobileRequest, service: AuthServiceDep
) -> ResponseModel[OtpDispatched]:
    issued = await service.request_mobile_otp(data.mobile)
    return ResponseModel.success(
        data=_dispatched(issued), message=AuthMsg.OTP_SENT, request_id=_request_id(request)
    )


@router.post(
    "/mobile/verify",
    response_model=ResponseModel[AuthSession],
    summary="手机验证码登录",
)
async def verify_mobile(
    request: Request,
    response: Response,
    data: MobileOtpRequest,
    service: AuthServiceDep,
) -> ResponseModel[AuthSession]:
    issued = await service.verify_mobile(
        data.mobile, data.otp, client_context_from_request(request)
    )
    return ResponseModel.success(
        data=_start_session(response, issued),
        message=AuthMsg.LOGIN_SUCCESS,
        request_id=_request_id(request),
    )


# ------------------------------------------------------------------------------
# 登录
# ------------------------------------------------------------------------------


@router.post(
    "/login",
    response_model=ResponseModel[AuthSession | TwoFactorChallenge],
    dependencies=[Depends(login_limit)],
    summary="密码登录",
    description="成功后通过 Cookie 下发 Access / Refresh Token；已开启二次验证时返回 202 并发送验证码。",
    responses={202: {"description": "需要二次验证"}},
)
async def login(
    request: Request,
    response: Response,
    data: LoginRequest,
    service: AuthServiceDep,
) -> ResponseModel[AuthSession | TwoFactorChallenge]:
    result = await service.login(data, client_context_from_request(request))

    if isinstance(result, Issued):
        response.status_code = status.HTTP_202_ACCEPTED
        challenge = TwoFactorChallenge(**_dispatched(result).model_dump())
        return ResponseModel.success(
            data=challenge,
            message=AuthMsg.TWO_FACTOR_REQUIRED,
            request_id=_request_id(request),
        )

    return ResponseModel.success(
        data=_start_session(response, result),
        message=AuthMsg.LOGIN_SUCCESS,
        request_id=_request_id(request),
    )


@router.post(
    "/login/2fa",
    response_model=ResponseModel[AuthSession],
    dependencies=[Depends(login_limit)],
    summary="二次验证登录",
)
async def login_two_factor(
    request: Request,
    response: Response,
    data: EmailOtpRequest,
    service: AuthServiceDep,
) -> ResponseModel[AuthSession]:
    issued = await service.login_two_factor(
        data.email, data.otp, client_context_from_request(request)
    )
    return ResponseModel.success(
        data=_start_session(response, issued),
        message=AuthMsg.LOGIN_SUCCESS,
        request_id=_request_id(request),
    )


# ------------------------------------------------------------------------------
# 找回密码
# ------------------------------------------------------------------------------


@router.post(
    "/forgot-password",
    response_model=ResponseModel[OtpDispatched],
    dependencies=[Depends(otp_limit)],
    summary="找回密码 (发送验证码)",
)
async def forgot_password(
    request: Request, data: EmailRequest, service: AuthServiceDep
) -> ResponseModel[OtpDispatched]:
    issued = await service.forgot_password(data.email)
    return ResponseModel.success(
        data=_dispatched(issued), message=AuthMsg.OTP_SENT, request_id=_request_id(request)
    )


@router.post(
    "/forgot-password/verify",
    response_model=ResponseModel[ResetTokenIssued],
    summary="找回密码 (校验验证码)",
    description="验证码正确后返回 15 分钟有效的重置令牌。",
)
async def verify_reset_code(
    request: Request, data: EmailOtpRequest, service: AuthServiceDep
) -> ResponseModel[ResetTokenIssued]:
    reset_token = await service.verify_reset_code(data.email, data.otp)
    return ResponseModel.success(
        data=ResetTokenIssued(
            reset_token=reset_token,
            expires_in=settings.RESET_TOKEN_EXPIRE_MINUTES * 60,
        ),
        message=AuthMsg.RESET_CODE_VERIFIED,
        request_id=_request_id(request),
    )


@router.post(
    "/reset-password",
    response_model=ResponseModel[None],
    summary="重置密码",
)
async def reset_password(
    request: Request, data: ResetPasswordRequest, service: AuthServiceDep
) -> ResponseModel[None]:
    await service.reset_password(data.reset_token, data.new_password)
    return ResponseModel.success(
        data=None, message=AuthMsg.PWD_RESET_SUCCESS, request_id=_request_id(request)
    )


# ------------------------------------------------------------------------------
# 令牌续签与登出
# ------------------------------------------------------------------------------


@router.post(
    "/refresh",
    response_model=ResponseModel[TokenRefreshed],
    dependencies=[Depends(refresh_limit)],
    summary="刷新令牌",
    description="使用 refresh_token Cookie 换取新的 Access Token。令牌过期时清除两个令牌 Cookie。",
)
async def refresh_token(
    request: Request,
    response: Response,
    service: AuthServiceDep,
    refresh_cookie: Annotated[str | None, Cookie(alias=REFRESH_TOKEN_COOKIE)] = None,
) -> ResponseModel[TokenRefreshed] | Response:
    if not refresh_cookie:
        raise AppException(AuthError.INVALID_REFRESH_TOKEN)

    try:
        issued = await service.refresh(refresh_cookie)
    except TokenExpiredError as exc:
        expired = render_app_exception(request, exc)
        clear_auth_cookies(expired)
        return expired

    return ResponseModel.success(
        data=_refreshed(response, issued),
        message=AuthMsg.REFRESH_SUCCESS,
        request_id=_request_id(request),
    )


@router.post(
    "/logout",
    response_model=ResponseModel[None],
    summary="退出登录",
    description="清除令牌 Cookie 并尽力撤销当前会话，任何情况下都返回成功。",
)
async def logout(
    request: Request,
    response: Response,
    service: AuthServiceDep,
    access_cookie: Annotated[str | None, Cookie(alias=ACCESS_TOKEN_COOKIE)] = None,
    refresh_cookie: Annotated[str | None, Cookie(alias=REFRESH_TOKEN_COOKIE)] = None,
) -> ResponseModel[None]:
    await service.logout(access_cookie, refresh_cookie)
    clear_auth_cookies(response)
    return ResponseModel.success(
        data=None, message=AuthMsg.LOGOUT_SUCCESS, request_id=_request_id(request)
    )


# ------------------------------------------------------------------------------
# Magic Link
# ------------------------------------------------------------------------------


@router.post(
    "/magic-link",
    response_model=ResponseModel[OtpDispatched],
    dependencies=[Depends(magic_link_limit)],
    summary="发送登录链接",
)
async def request_magic_link(
    request: Request, data: EmailRequest, service: AuthServiceDep
) -> ResponseModel[OtpDispatched]:
    issued = await service.request_magic_link(data.email)
    return ResponseModel.success(
        data=_dispatched(issued),
        message=AuthMsg.MAGIC_LINK_SENT,
        request_id=_request_id(request),
    )


@router.post(
    "/magic-link/verify",
    response_model=ResponseModel[AuthSession],
    summary="兑换登录链接",
    description="链接只能使用一次，兑换后账号视为已验证。",
)
async def redeem_magic_link(
    request: Request,
    response: Response,
    data: MagicLinkVerifyRequest,
    service: AuthServiceDep,
) -> ResponseModel[AuthSession]:
    issued = await service.redeem_magic_link(
        data.token, client_context_from_request(request)
    )
    return ResponseModel.success(
        data=_start_session(response, issued),
        message=AuthMsg.LOGIN_SUCCESS,
        request_id=_request_id(request),
    )


# ------------------------------------------------------------------------------
# 账号注销
# ------------------------------------------------------------------------------


@router.post(
    "/delete-account",
    response_model=ResponseModel[None],
    summary="注销账号",
    description="校验邮箱与密码后删除账号及全部会话，注销原因写入审计记录。",
)
async def delete_account(
    request: Request,
    response: Response,
    data: DeleteAccountRequest,
    service: AuthServiceDep,
) -> ResponseModel[None]:
    await service.delete_account(data)
    clear_auth_cookies(response)
    return ResponseModel.success(
        data=None, message=AuthMsg.ACCOUNT_DELETED, request_id=_request_id(request)
    )


# ------------------------------------------------------------------------------
# SSO
# ------------------------------------------------------------------------------


def _frontend(path: str) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}{path}"


@router.post(
    "/sso/refresh",
    response_model=ResponseModel[TokenRefreshed],
    dependencies=[Depends(refresh_limit)],
    summary="SSO 刷新令牌",
    description="SSO 会话续签，每次成功都会轮换 Refresh Token。",
)
async def sso_refresh(
    request: Request,
    response: Response,
    coordinator: OAuthCoordinatorDep,
    refresh_cookie: Annotated[str | None, Cookie(alias=REFRESH_TOKEN_COOKIE)] = None,
) -> ResponseModel[TokenRefreshed]:
    if not refresh_cookie:
        raise AppException(AuthError.INVALID_REFRESH_TOKEN)

    issued = await coordinator.refresh(refresh_cookie)
    return ResponseModel.success(
        data=_refreshed(response, issued),
        message=AuthMsg.REFRESH_SUCCESS,
        request_id=_request_id(request),
    )


@router.get(
    "/sso/{provider}",
    dependencies=[Depends(sso_limit)],
    summary="发起第三方登录",
    description="302 跳转到提供方授权页，并写入一次性 sso_state Cookie。",
    response_class=RedirectResponse,
    status_code=status.HTTP_302_FOUND,
)
async def sso_start(provider: str, coordinator: OAuthCoordinatorDep) -> RedirectResponse:
    start = coordinator.begin(provider)
    redirect = RedirectResponse(start.authorization_url, status_code=status.HTTP_302_FOUND)
    set_state_cookie(redirect, start.state)
    return redirect


@router.get(
    "/sso/{provider}/callback",
    summary="第三方登录回调",
    description="成功跳转到前端 /dashboard，失败跳转到 /auth/error；失败原因只写服务端日志。",
    response_class=RedirectResponse,
    status_code=status.HTTP_302_FOUND,
)
async def sso_callback(
    request: Request,
    provider: str,
    coordinator: OAuthCoordinatorDep,
    code: Annotated[str | None, Query()] = None,
    state: Annotated[str | None, Query()] = None,
    state_cookie: Annotated[str | None, Cookie(alias=SSO_STATE_COOKIE)] = None,
) -> RedirectResponse:
    try:
        _, issued = await coordinator.complete(
            provider,
            code=code,
            returned_state=state,
            cookie_state=state_cookie,
            client=client_context_from_request(request),
        )
    except OAuthFlowError:
        redirect = RedirectResponse(
            _frontend("/auth/error"), status_code=status.HTTP_302_FOUND
        )
        clear_state_cookie(redirect)
        return redirect

    redirect = RedirectResponse(_frontend("/dashboard"), status_code=status.HTTP_302_FOUND)
    set_auth_cookies(redirect, issued.access_token, issued.refresh_token)
    clear_state_cookie(redirect)

    logger.bind(user_id=str(issued.user.id), provider=provider).info(
        "SSO redirect to dashboard"
    )
    return redirect
