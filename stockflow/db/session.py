# stockflow/db/session.py
# 统一的异步引擎 / 会话工厂 + FastAPI 依赖（get_session）
from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from stockflow.core.config import get_settings, normalize_async_dsn


def _install_sqlite_tx_hooks(engine: AsyncEngine) -> None:
    """
    SQLite：关掉驱动自带的隐式 BEGIN，由我们显式发 BEGIN IMMEDIATE。
    - SAVEPOINT 语义才正确；
    - 每个事务开局即拿写锁，读-校验-写 在库级串行（PG 下由 FOR UPDATE 行锁承担）。
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):  # noqa: ANN001
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):  # noqa: ANN001
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine_for(url: str, *, echo: bool = False, **kwargs: Any) -> AsyncEngine:
    """按后端注入各自的 connect_args / 事务钩子。"""
    url = normalize_async_dsn(url)
    backend = make_url(url).get_backend_name()

    opts: dict[str, Any] = {"echo": echo, "future": True}
    if backend.startswith("postgresql"):
        opts["pool_pre_ping"] = True
    elif backend.startswith("sqlite"):
        opts["connect_args"] = {"timeout": 30}
    opts.update(kwargs)

    engine = create_async_engine(url, **opts)
    if backend.startswith("sqlite"):
        _install_sqlite_tx_hooks(engine)
    return engine


def make_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


_engine: AsyncEngine | None = None
_session_maker: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_engine_for(settings.DATABASE_URL, echo=settings.SQL_ECHO)
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    global _session_maker
    if _session_maker is None:
        _session_maker = make_session_maker(get_engine())
    return _session_maker


# ---- FastAPI 依赖 ----
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with get_session_maker()() as session:
        yield session


# ---- 关闭引擎（测试/生命周期） ----
async def close_engine() -> None:
    global _engine, _session_maker
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_maker = None
