# stockflow/core/tx.py
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession


@asynccontextmanager
async def atomic(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    原子单元：
    - session 已在事务中：用 SAVEPOINT 包裹，失败只回滚本单元，提交权留给外层；
    - session 无事务：begin/commit，异常自动 rollback。
    """
    if session.in_transaction():
        async with session.begin_nested():
            yield session
    else:
        async with session.begin():
            yield session


@asynccontextmanager
async def tx_commit(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    强制落盘：块内成功则立即 commit（连同外层已挂起的事务），失败 rollback。
    批次处理逐箱可见依赖它。
    """
    try:
        yield session
        await session.commit()
    except BaseException:
        await session.rollback()
        raise
