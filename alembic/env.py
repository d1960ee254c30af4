# alembic/env.py
from __future__ import annotations

import os
from logging.config import fileConfig
from typing import Any

from alembic import context
from sqlalchemy import create_engine
from sqlalchemy.engine import Connection, make_url
from sqlalchemy.pool import NullPool

from stockflow.core.config import normalize_async_dsn
from stockflow.db.base import Base, init_models

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def include_object(obj: Any, name: str | None, type_: str, reflected: bool, compare_to: Any) -> bool:
    """DB 里有而模型里没有的对象不参与 diff，避免自动生成 drop。"""
    if reflected and compare_to is None:
        return False
    return True


def get_url() -> str:
    """
    优先级：
      1. STOCKFLOW_DATABASE_URL
      2. DATABASE_URL
      3. alembic.ini 里的 sqlalchemy.url

    迁移走同步驱动：psycopg3 同步模式 / 内置 sqlite3。
    """
    raw = (
        os.getenv("STOCKFLOW_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or config.get_main_option("sqlalchemy.url")
    )
    if not raw:
        raise RuntimeError("Alembic 无法确定数据库 URL：请设置 STOCKFLOW_DATABASE_URL / DATABASE_URL")

    url = make_url(normalize_async_dsn(raw))
    if url.get_backend_name() == "sqlite":
        url = url.set(drivername="sqlite")
    return url.render_as_string(hide_password=False)


def run_migrations_offline() -> None:
    init_models()
    context.configure(
        url=get_url(),
        target_metadata=Base.metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        include_object=include_object,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    init_models()
    url = get_url()
    engine = create_engine(url, poolclass=NullPool, future=True)

    with engine.connect() as connection:  # type: Connection
        context.configure(
            connection=connection,
            target_metadata=Base.metadata,
            compare_type=True,
            include_object=include_object,
            render_as_batch=url.startswith("sqlite"),
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
