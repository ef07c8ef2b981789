"""
File: app/domains/auth/repository.py
Description: 账号注销审计仓储

Author: jinmozhe
Created: 2026-10-19
"""

from pydantic import BaseModel

from app.db.models.account_deletion import AccountDeletion
from app.db.repositories.base import BaseRepository


class AccountDeletionRepository(BaseRepository[AccountDeletion, BaseModel, BaseModel]):
    """只追加写入，不提供业务更新入口。"""
