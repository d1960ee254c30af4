# stockflow/api/routers/health.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from stockflow import __version__
from stockflow.db.session import get_session

router = APIRouter(tags=["health"])
log = logging.getLogger("stockflow.api")


@router.get("/health")
async def health(session: AsyncSession = Depends(get_session)):
    try:
        await session.execute(text("SELECT 1"))
        return {"ok": True, "db": "up", "version": __version__}
    except SQLAlchemyError as e:
        log.warning("health check: db down: %s", e)
        return {"ok": False, "db": "down", "version": __version__}
