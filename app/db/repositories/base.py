"""
File: app/db/repositories/base.py
Description: 通用异步 Repository 基类

本模块定义了 BaseRepository，领域仓储 (users / sessions / account_deletions) 继承它：
- find_one / find_many: 以 SQLAlchemy 条件表达式查询，子类只需声明条件
- create / update: 接受 Pydantic 模型或字典；update 过滤主键与时间戳字段
- 事务边界: 仓储只 flush，commit 由 Service 层在业务步骤完成后调用

Author: jinmozhe
Created: 2025-11-25
Updated: 2026-10-19 (criteria helpers, dict payloads)
"""

from collections.abc import Sequence
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel
from sqlalchemy import ColumnElement, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)
CreateSchemaType = TypeVar("CreateSchemaType", bound=BaseModel)
UpdateSchemaType = TypeVar("UpdateSchemaType", bound=BaseModel)


def _as_dict(obj_in: BaseModel | dict[str, Any]) -> dict[str, Any]:
    if isinstance(obj_in, dict):
        return obj_in
    return obj_in.model_dump(exclude_unset=True)


class BaseRepository(Generic[ModelType, CreateSchemaType, UpdateSchemaType]):
    # 通用 update 不允许改写的字段
    PROTECTED_FIELDS: ClassVar[frozenset[str]] = frozenset(
        {"id", "created_at", "updated_at"}
    )

    def __init__(self, model: type[ModelType], session: AsyncSession):
        self.model = model
        self.session = session

    # --------------------------------------------------------------------------
    # Read
    # --------------------------------------------------------------------------

    async def get(self, id: Any) -> ModelType | None:
        return await self.session.get(self.model, id)

    async def find_one(self, *criteria: ColumnElement[bool]) -> ModelType | None:
        """按条件查询单条；唯一约束字段上使用，多条命中会抛 MultipleResultsFound"""
        result = await self.session.execute(select(self.model).where(*criteria))
        return result.scalar_one_or_none()

    async def find_many(
        self,
        *criteria: ColumnElement[bool],
        order_by: Sequence[Any] = (),
        skip: int = 0,
        limit: int | None = None,
    ) -> list[ModelType]:
        stmt = select(self.model).where(*criteria).order_by(*order_by).offset(skip)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count(self, *criteria: ColumnElement[bool]) -> int:
        stmt = select(func.count()).select_from(self.model).where(*criteria)
        result = await self.session.execute(stmt)
        return result.scalar_one()

    # --------------------------------------------------------------------------
    # Write (flush only)
    # --------------------------------------------------------------------------

    async def create(self, obj_in: CreateSchemaType | dict[str, Any]) -> ModelType:
        """写入并 flush 以获得主键与服务端默认值"""
        db_obj = self.model(**_as_dict(obj_in))

        self.session.add(db_obj)
        await self.session.flush()
        await self.session.refresh(db_obj)
        return db_obj

    async def update(
        self, db_obj: ModelType, obj_in: UpdateSchemaType | dict[str, Any]
    ) -> ModelType:
        for field, value in _as_dict(obj_in).items():
            if field in self.PROTECTED_FIELDS or not hasattr(db_obj, field):
                continue
            setattr(db_obj, field, value)

        self.session.add(db_obj)
        await self.session.flush()
        await self.session.refresh(db_obj)
        return db_obj

    async def delete(self, id: Any) -> ModelType | None:
        """物理删除，不存在时返回 None"""
        db_obj = await self.get(id)
        if db_obj is not None:
            await self.session.delete(db_obj)
            await self.session.flush()
        return db_obj

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()
