# tests/conftest.py
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from stockflow.core.config import get_settings
from stockflow.db.base import Base, init_models
from stockflow.db.session import create_engine_for, get_session, make_session_maker
from stockflow.main import app
from stockflow.models.location import Location
from stockflow.models.product import Product
from stockflow.models.warehouse import Warehouse

# ==========================
# 数据库 DSN
#   - 显式配置 STOCKFLOW_TEST_DATABASE_URL 时走该库（每用例 drop_all / create_all）
#   - 否则每用例一个临时 SQLite 文件（aiosqlite）
# ==========================
TEST_DATABASE_URL = os.getenv("STOCKFLOW_TEST_DATABASE_URL")


@dataclass(frozen=True)
class Seed:
    """每用例的最小基线：一个商品、两个仓库、三个库位。"""

    product_id: int
    warehouse_id: int
    location_id: int
    other_location_id: int
    other_warehouse_id: int
    other_warehouse_location_id: int


# =========================================
# 每用例独立 Engine（NullPool，避免跨 loop）
# =========================================
@pytest_asyncio.fixture(scope="function")
async def async_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    url = TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'stockflow-test.db'}"
    engine = create_engine_for(url, poolclass=NullPool)

    init_models()
    async with engine.begin() as conn:
        if TEST_DATABASE_URL:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture(scope="function")
def async_session_maker(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return make_session_maker(async_engine)


@pytest_asyncio.fixture(scope="function")
async def seed(async_session_maker) -> Seed:
    async with async_session_maker() as sess:
        async with sess.begin():
            product = Product(name="Widget", sku="WIDG-001", category="Electronics", min_stock_level=5)
            wh1 = Warehouse(name="WH-1", location="North")
            wh2 = Warehouse(name="WH-2", location="South")
            sess.add_all([product, wh1, wh2])
            await sess.flush()

            loc_a = Location(warehouse_id=wh1.id, floor="1", zone="A")
            loc_b = Location(warehouse_id=wh1.id, floor="1", zone="B")
            loc_c = Location(warehouse_id=wh2.id, floor="2", zone="C")
            sess.add_all([loc_a, loc_b, loc_c])
            await sess.flush()

            return Seed(
                product_id=product.id,
                warehouse_id=wh1.id,
                location_id=loc_a.id,
                other_location_id=loc_b.id,
                other_warehouse_id=wh2.id,
                other_warehouse_location_id=loc_c.id,
            )


@pytest_asyncio.fixture(scope="function")
async def session(async_session_maker, seed) -> AsyncGenerator[AsyncSession, None]:
    """
    标准 Session：服务自己控事务，这里只兜底回滚未提交的残留。
    """
    async with async_session_maker() as sess:
        try:
            yield sess
        finally:
            if sess.in_transaction():
                await sess.rollback()


@pytest.fixture
def settings_env(monkeypatch):
    """
    改环境变量后重建 get_settings 缓存：
        settings_env(STOCK_OUT_APPROVE_PARTIAL="false")
    """

    def _apply(**values: str) -> None:
        for k, v in values.items():
            monkeypatch.setenv(k, v)
        get_settings.cache_clear()

    yield _apply
    monkeypatch.undo()
    get_settings.cache_clear()


# =========================================
# FastAPI / httpx AsyncClient
# =========================================
@pytest_asyncio.fixture(scope="function")
async def client(async_session_maker, seed) -> AsyncGenerator[httpx.AsyncClient, None]:
    async def _override_session() -> AsyncGenerator[AsyncSession, None]:
        async with async_session_maker() as sess:
            yield sess

    app.dependency_overrides[get_session] = _override_session
    transport = httpx.ASGITransport(app=app)
    try:
        async with httpx.AsyncClient(
            transport=transport,
            base_url="http://testserver",
            timeout=httpx.Timeout(10.0, connect=5.0, read=10.0, write=5.0, pool=5.0),
        ) as c:
            yield c
    finally:
        app.dependency_overrides.pop(get_session, None)
