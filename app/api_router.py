"""
File: app/api_router.py
Description: /api/v1 路由聚合

| 前缀      | 领域     | 说明                                         |
|-----------|----------|----------------------------------------------|
| /auth     | auth     | 注册、登录、OTP、Magic Link、刷新、SSO、注销 |
| /users    | users    | 个人资料、密码、二次验证、管理端列表         |
| /sessions | sessions | 当前用户的活跃会话列表与撤销                 |

Author: jinmozhe
Created: 2025-12-05
Updated: 2026-10-19 (auth / users / sessions)
"""

from fastapi import APIRouter

from app.domains.auth.router import router as auth_router
from app.domains.sessions.router import router as sessions_router
from app.domains.users.router import router as users_router

DOMAIN_ROUTERS: tuple[tuple[APIRouter, str], ...] = (
    (auth_router, "auth"),
    (users_router, "users"),
    (sessions_router, "sessions"),
)

api_router = APIRouter()

for domain_router, name in DOMAIN_ROUTERS:
    api_router.include_router(domain_router, prefix=f"/{name}", tags=[name])
