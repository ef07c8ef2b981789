"""
File: app/domains/sessions/router.py
Description: 会话领域 HTTP 路由层

1. GET /: 列出当前用户的活跃会话，标记当前请求所属会话
2. DELETE /{session_id}: 撤销指定会话 (幂等)

Author: jinmozhe
Created: 2026-10-19
"""

from uuid import UUID

from fastapi import APIRouter, Request

from app.api.deps import CurrentClaims, CurrentUser
from app.core.response import ResponseModel
from app.domains.sessions.constants import SessionMsg
from app.domains.sessions.dependencies import SessionRegistryDep
from app.domains.sessions.schemas import SessionRead

router = APIRouter()


@router.get(
    "",
    response_model=ResponseModel[list[SessionRead]],
    summary="我的登录会话",
    description="列出当前用户的全部活跃会话 (最新在前)。",
)
async def list_sessions(
    request: Request,
    current_user: CurrentUser,
    claims: CurrentClaims,
    registry: SessionRegistryDep,
) -> ResponseModel[list[SessionRead]]:
    sessions = await registry.list_active_sessions(current_user.id)
    current_sid = claims.get("sid")

    data = [
        SessionRead.model_validate(s).model_copy(
            update={"is_current": str(s.id) == current_sid}
        )
        for s in sessions
    ]
    req_id = getattr(request.state, "request_id", None)

    return ResponseModel.success(
        data=[item.model_dump(mode="json") for item in data], request_id=req_id
    )


@router.delete(
    "/{session_id}",
    response_model=ResponseModel[None],
    summary="撤销会话",
    description="将指定会话标记为失效，其令牌随即无法再访问受保护接口。重复撤销不会报错。",
)
async def revoke_session(
    request: Request,
    session_id: UUID,
    current_user: CurrentUser,
    registry: SessionRegistryDep,
) -> ResponseModel[None]:
    await registry.revoke_session(current_user.id, session_id)
    req_id = getattr(request.state, "request_id", None)

    return ResponseModel.success(
        data=None, request_id=req_id, message=SessionMsg.SESSION_REVOKED
    )
