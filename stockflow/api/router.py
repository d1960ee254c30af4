# stockflow/api/router.py
from __future__ import annotations

from fastapi import APIRouter

from stockflow.api.routers import health, inventory, metrics, reservations, stock_in, stock_out, transfers

api_router = APIRouter()

# 业务：入库 / 出库 / 预留 / 移库
api_router.include_router(stock_in.router)
api_router.include_router(stock_out.router)
api_router.include_router(reservations.router)
api_router.include_router(transfers.router)

# 查询 / 对账
api_router.include_router(inventory.router)

# 观测
api_router.include_router(metrics.router)
api_router.include_router(health.router)
