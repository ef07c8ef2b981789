"""
File: app/domains/sessions/schemas.py
Description: 会话领域 Pydantic 模型 (Schema)

Author: jinmozhe
Created: 2026-10-19
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class SessionRead(BaseModel):
    """登录会话响应"""

    id: UUID
    device: str
    os: str
    browser: str
    location: str
    is_active: bool
    created_at: datetime = Field(..., description="登录时间 (UTC)")
    is_current: bool = Field(default=False, description="是否为当前请求所属会话")

    model_config = ConfigDict(from_attributes=True)
