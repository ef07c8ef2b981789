"""
File: alembic/env.py
Description: Alembic 迁移环境 (同步驱动)

- 运行时使用 asyncpg / aiosqlite；迁移改用 psycopg / pysqlite 同步驱动
- autogenerate 时 UTCDateTime 渲染为 sa.DateTime(timezone=True)，迁移脚本不依赖 app 包
- SQLite 不支持大部分 ALTER，开启 batch 模式

Author: jinmozhe
Created: 2025-11-26
Updated: 2026-10-19 (sync URL derivation, UTCDateTime rendering, sqlite batch)
"""

import sys
from logging.config import fileConfig
from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, pool

from alembic import context  # type: ignore

sys.path.insert(0, str(Path(__file__).parent.parent.resolve()))

from app.core.config import settings  # noqa: E402
from app.db.models import Base, UTCDateTime  # noqa: E402

SYNC_DRIVERS = {
    "postgresql+asyncpg": "postgresql+psycopg",
    "sqlite+aiosqlite": "sqlite",
}

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def sync_database_url() -> str:
    url = str(settings.SQLALCHEMY_DATABASE_URI)
    for async_driver, sync_driver in SYNC_DRIVERS.items():
        if url.startswith(async_driver):
            return sync_driver + url[len(async_driver) :]
    return url


def render_item(type_: str, obj: Any, autogen_context: Any) -> str | bool:
    if type_ == "type" and isinstance(obj, UTCDateTime):
        return "sa.DateTime(timezone=True)"
    return False


# configparser 会把 % 当作插值符号
config.set_main_option("sqlalchemy.url", sync_database_url().replace("%", "%%"))


def _context_options(url: str) -> dict[str, Any]:
    return {
        "target_metadata": Base.metadata,
        "compare_type": True,
        "compare_server_default": True,
        "render_item": render_item,
        "render_as_batch": url.startswith("sqlite"),
    }


def run_migrations_offline() -> None:
    """只生成 SQL 脚本，不连接数据库"""
    url = config.get_main_option("sqlalchemy.url") or ""
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_context_options(url),
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    url = config.get_main_option("sqlalchemy.url") or ""
    connectable = create_engine(url, poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(connection=connection, **_context_options(url))

        with context.begin_transaction():
            context.run_migrations()

    connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
