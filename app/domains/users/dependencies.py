"""
File: app/domains/users/dependencies.py
Description: 用户领域依赖注入 (DI)

依赖链：
DBSession → UserRepository → UserService → UserServiceDep

另提供管理端列表的分页参数 PageParamsDep (page 从 1 开始，size 上限 100)。

Author: jinmozhe
Created: 2025-11-26
Updated: 2026-10-19 (admin pagination params)
"""

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Query

from app.api.deps import DBSession
from app.db.models.user import User
from app.domains.users.repository import UserRepository
from app.domains.users.service import UserService

MAX_PAGE_SIZE = 100


async def get_user_repository(session: DBSession) -> UserRepository:
    return UserRepository(model=User, session=session)


UserRepoDep = Annotated[UserRepository, Depends(get_user_repository)]


async def get_user_service(repo: UserRepoDep) -> UserService:
    return UserService(repo=repo)


# Router 中只需写: service: UserServiceDep
UserServiceDep = Annotated[UserService, Depends(get_user_service)]


@dataclass(frozen=True)
class PageParams:
    page: int
    size: int


def get_page_params(
    page: Annotated[int, Query(ge=1, description="页码 (从 1 开始)")] = 1,
    size: Annotated[
        int, Query(ge=1, le=MAX_PAGE_SIZE, description="每页条数")
    ] = 20,
) -> PageParams:
    return PageParams(page=page, size=size)


PageParamsDep = Annotated[PageParams, Depends(get_page_params)]
