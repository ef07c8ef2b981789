"""
File: app/domains/users/router.py
Description: 用户领域 HTTP 路由层

本模块定义了用户自助管理与管理端 API 端点：
1. GET/PATCH /me: 个人资料 (CurrentUser)
2. POST /me/password: 修改密码
3. POST /me/2fa/enable, /me/2fa/disable: 二次验证开关
4. GET /: 管理端用户列表 (SuperUser)

注册、登录等公开入口位于 auth 领域。

Author: jinmozhe
Created: 2025-12-05
Updated: 2026-10-19 (profile / password / 2FA / admin listing)
"""

from fastapi import APIRouter, Request

from app.api.deps import CurrentUser, SuperUser
from app.core.response import PageResult, ResponseModel
from app.domains.users.constants import UserMsg
from app.domains.users.dependencies import PageParamsDep, UserServiceDep
from app.domains.users.schemas import (
    PasswordUpdate,
    UserAdminRead,
    UserRead,
    UserUpdate,
)

router = APIRouter()


# ------------------------------------------------------------------------------
# Protected Endpoints (受保护接口 - 需登录)
# ------------------------------------------------------------------------------


@router.get(
    "/me",
    response_model=ResponseModel[UserRead],
    summary="获取我的个人资料",
    description="获取当前登录用户的详细信息。需携带有效 Access Token (Cookie 或 Bearer)。",
)
async def read_user_me(
    request: Request,
    current_user: CurrentUser,
) -> ResponseModel[UserRead]:
    req_id = getattr(request.state, "request_id", None)
    return ResponseModel.success(
        data=UserRead.model_validate(current_user),
        request_id=req_id,
    )


@router.patch(
    "/me",
    response_model=ResponseModel[UserRead],
    summary="更新我的个人资料",
    description="更新显示名称、头像与手机号。手机号已被其他账号绑定时返回 409。",
)
async def update_user_me(
    request: Request,
    user_in: UserUpdate,
    current_user: CurrentUser,
    service: UserServiceDep,
) -> ResponseModel[UserRead]:
    updated_user = await service.update_profile(current_user, user_in)
    req_id = getattr(request.state, "request_id", None)

    return ResponseModel.success(
        data=UserRead.model_validate(updated_user),
        request_id=req_id,
        message=UserMsg.PROFILE_UPDATED,
    )


@router.post(
    "/me/password",
    response_model=ResponseModel[None],
    summary="修改密码",
    description="校验当前密码后设置新密码。",
)
async def update_password_me(
    request: Request,
    password_in: PasswordUpdate,
    current_user: CurrentUser,
    service: UserServiceDep,
) -> ResponseModel[None]:
    await service.update_password(current_user, password_in)
    req_id = getattr(request.state, "request_id", None)

    return ResponseModel.success(
        data=None, request_id=req_id, message=UserMsg.PASSWORD_UPDATED
    )


@router.post(
    "/me/2fa/enable",
    response_model=ResponseModel[UserRead],
    summary="开启二次验证",
)
async def enable_two_factor(
    request: Request,
    current_user: CurrentUser,
    service: UserServiceDep,
) -> ResponseModel[UserRead]:
    user = await service.set_two_factor(current_user, enabled=True)
    req_id = getattr(request.state, "request_id", None)

    return ResponseModel.success(
        data=UserRead.model_validate(user),
        request_id=req_id,
        message=UserMsg.TWO_FACTOR_ENABLED,
    )


@router.post(
    "/me/2fa/disable",
    response_model=ResponseModel[UserRead],
    summary="关闭二次验证",
)
async def disable_two_factor(
    request: Request,
    current_user: CurrentUser,
    service: UserServiceDep,
) -> ResponseModel[UserRead]:
    user = await service.set_two_factor(current_user, enabled=False)
    req_id = getattr(request.state, "request_id", None)

    return ResponseModel.success(
        data=UserRead.model_validate(user),
        request_id=req_id,
        message=UserMsg.TWO_FACTOR_DISABLED,
    )


# ------------------------------------------------------------------------------
# Admin Endpoints (管理端接口)
# ------------------------------------------------------------------------------


@router.get(
    "",
    response_model=ResponseModel[PageResult[UserAdminRead]],
    summary="用户列表 (管理端)",
    description="分页列出全部用户的投影字段。仅超级管理员可访问。",
)
async def list_users(
    request: Request,
    _admin: SuperUser,
    service: UserServiceDep,
    paging: PageParamsDep,
) -> ResponseModel[PageResult[UserAdminRead]]:
    result = await service.list_users(page=paging.page, size=paging.size)
    req_id = getattr(request.state, "request_id", None)

    return ResponseModel.success(data=result, request_id=req_id)
