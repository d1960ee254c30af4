# stockflow/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from stockflow import __version__
from stockflow.api.errors import install_error_handlers
from stockflow.api.router import api_router
from stockflow.core.config import get_settings
from stockflow.core.logging import setup_logging
from stockflow.db.base import init_models
from stockflow.db.session import close_engine

logger = logging.getLogger("stockflow")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    settings = get_settings()
    logger.info("stockflow %s starting (env=%s)", __version__, settings.ENV)
    yield
    await close_engine()


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL, sql_echo=settings.SQL_ECHO)
    init_models()

    app = FastAPI(
        title="StockFlow",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    install_error_handlers(app)
    app.include_router(api_router)

    @app.get("/")
    async def root():
        return {"name": "StockFlow", "version": __version__}

    return app


app = create_app()
