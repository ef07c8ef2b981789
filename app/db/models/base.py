"""
File: app/db/models/base.py
Description: ORM 模型基类与组件化定义

本模块采用"组件化组合" (Mixin) 模式：
1. UTCDateTime: [类型] 时区感知的 UTC 时间列 (PostgreSQL TIMESTAMPTZ / SQLite 文本均返回 aware datetime)
2. UUIDBase: [基础] 提供 UUID v7 主键 + 自动表名(智能 snake_case)
3. TimestampMixin: [组件] 提供 created_at, updated_at (UTC)
4. UUIDModel: [标准] 聚合了 UUIDBase + TimestampMixin

认证相关数据 (用户/会话) 采用物理删除，不再提供软删除组件。

Author: jinmozhe
Created: 2025-11-25
Updated: 2026-10-19 (UTCDateTime, generic Uuid type, drop soft delete)
"""

import re
import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, MetaData, Uuid, func
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column
from sqlalchemy.types import TypeDecorator
from uuid6 import uuid7

# 约束命名约定
POSTGRES_INDEXES_NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


def resolve_table_name(name: str) -> str:
    """
    将驼峰命名 (CamelCase) 转换为蛇形命名 (snake_case)。

    示例:
    - UserSession -> user_session
    - APIKey -> api_key
    """
    s1 = re.sub("(.)([A-Z][a-z]+)", r"\1_\2", name)
    return re.sub("([a-z0-9])([A-Z])", r"\1_\2", s1).lower()


def utc_now() -> datetime:
    """当前 UTC 时间 (aware)"""
    return datetime.now(UTC)


class UTCDateTime(TypeDecorator[datetime]):
    """
    UTC 时间列类型。
    写入时统一换算为 UTC；读出时补齐 tzinfo，
    保证过期判断在任何后端都是 aware datetime 之间的比较。
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(
        self, value: datetime | None, dialect: Dialect
    ) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(
        self, value: datetime | None, dialect: Dialect
    ) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class Base(DeclarativeBase):
    """SQLAlchemy 声明式元类"""

    metadata = MetaData(naming_convention=POSTGRES_INDEXES_NAMING_CONVENTION)


# ==============================================================================
# 1. 功能组件 (Mixins)
# ==============================================================================


class TimestampMixin:
    """
    [组件] 时间戳混入类

    提供 created_at 和 updated_at 字段，强制使用 UTC 时间存储。
    """

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
        comment="创建时间 (UTC)",
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utc_now,
        server_default=func.now(),
        onupdate=utc_now,
        nullable=False,
        comment="更新时间 (UTC)",
    )


# ==============================================================================
# 2. 基础模型 (Base Models)
# ==============================================================================


class UUIDBase(Base):
    """
    [纯净版] 仅包含 ID。
    适用场景：只追加不修改的审计表。
    """

    __abstract__ = True

    @declared_attr.directive
    def __tablename__(cls) -> str:
        """自动将类名转为蛇形命名 (snake_case)"""
        return resolve_table_name(cls.__name__)

    # 通用 Uuid 类型：PostgreSQL 映射为原生 UUID，其他后端为 CHAR(32)
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid7, comment="主键 (UUID v7)"
    )


# ==============================================================================
# 3. 标准聚合模型 (Standard Model)
# ==============================================================================


class UUIDModel(UUIDBase, TimestampMixin):
    """
    [标准版] 全站通用的业务模型基类。

    组合了：
    1. UUIDBase (ID + SnakeCase表名)
    2. TimestampMixin (UTC 创建/更新时间)
    """

    __abstract__ = True
