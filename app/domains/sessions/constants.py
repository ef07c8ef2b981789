"""
File: app/domains/sessions/constants.py
Description: 会话领域常量定义 (错误码 + 成功提示)
Namespace: sessions.*

Author: jinmozhe
Created: 2026-10-19
"""

from starlette.status import HTTP_404_NOT_FOUND

from app.core.error_code import BaseErrorCode


class SessionError(BaseErrorCode):
    """会话领域错误定义"""

    # 会话不存在或不属于当前用户 (两种情况不区分，防止枚举)
    SESSION_NOT_FOUND = (HTTP_404_NOT_FOUND, "sessions.not_found", "会话不存在")


class SessionMsg:
    SESSION_REVOKED = "会话已注销"
