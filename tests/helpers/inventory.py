# tests/helpers/inventory.py
from __future__ import annotations

from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from stockflow.models.enums import InventoryStatus
from stockflow.models.inventory_item import InventoryItem
from stockflow.models.inventory_movement import InventoryMovement
from stockflow.services.batch_processor import BatchProcessor
from stockflow.services.reconcile_service import signed_quantity

__all__ = [
    "stock_boxes",
    "qty_by_code",
    "sum_available",
    "sum_ledger",
    "min_balance",
]


# ------------------------------------------------------------------------------
# 造数：按批次入库若干箱，返回条码列表
# ------------------------------------------------------------------------------


async def stock_boxes(
    session: AsyncSession,
    *,
    product_id: int,
    warehouse_id: int,
    location_id: int,
    boxes: int,
    qty: int,
    actor: str = "seeder",
) -> List[str]:
    result = await BatchProcessor().process_batch(
        session,
        product_id=product_id,
        warehouse_id=warehouse_id,
        location_id=location_id,
        box_count=boxes,
        quantity_per_box=qty,
        actor=actor,
    )
    assert result.ok, result.errors
    return [b.barcode for b in result.boxes]


# ------------------------------------------------------------------------------
# 读数
# ------------------------------------------------------------------------------


async def qty_by_code(session: AsyncSession, product_id: int) -> Dict[str, int]:
    rows = await session.execute(
        select(InventoryItem.barcode, InventoryItem.quantity)
        .where(InventoryItem.product_id == product_id)
        .execution_options(populate_existing=True)
    )
    return {code: int(q) for code, q in rows.all()}


async def sum_available(session: AsyncSession, product_id: int) -> int:
    row = await session.execute(
        select(func.coalesce(func.sum(InventoryItem.quantity), 0)).where(
            InventoryItem.product_id == product_id,
            InventoryItem.status == InventoryStatus.AVAILABLE.value,
        )
    )
    return int(row.scalar_one())


async def sum_ledger(session: AsyncSession, product_id: int, *, barcode: Optional[str] = None) -> int:
    """独立于服务实现重算：Σ approved 台账有符号数量。"""
    stmt = select(func.coalesce(func.sum(signed_quantity()), 0)).where(
        InventoryMovement.product_id == product_id,
        InventoryMovement.status == "approved",
    )
    if barcode is not None:
        stmt = stmt.where(InventoryMovement.barcode == barcode)
    return int((await session.execute(stmt)).scalar_one())


async def min_balance(session: AsyncSession) -> int:
    row = await session.execute(select(func.coalesce(func.min(InventoryItem.quantity), 0)))
    return int(row.scalar_one())
