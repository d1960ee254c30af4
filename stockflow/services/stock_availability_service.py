# stockflow/services/stock_availability_service.py
from __future__ import annotations

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from stockflow.models.enums import InventoryStatus, StockOutStatus
from stockflow.models.inventory_item import InventoryItem
from stockflow.models.product import Product
from stockflow.models.stock_out import StockOutRequest
from stockflow.services.inventory_errors import NotFound


class StockAvailabilityService:
    """
    可用量口径（每次现查，不缓存）：

    - on_hand:     商品下所有 status=available 条码的 quantity 合计
    - outstanding: 已审批未履约（approved / processing、且不挂预留）的出库审批量合计
    - approvable:  on_hand - outstanding（下限 0），出库审批只能在此范围内放量

    挂了预留的出库单，库存已在预留时扣过，不再占 outstanding。
    """

    @staticmethod
    async def lock_product(session: AsyncSession, product_id: int) -> Product:
        """商品行 FOR UPDATE：同商品的 审批 / 预留 在此串行。"""
        row = (
            await session.execute(
                select(Product).where(Product.id == int(product_id)).with_for_update()
            )
        ).scalars().first()
        if row is None:
            raise NotFound(f"product not found: {product_id}")
        return row

    @staticmethod
    async def aggregate_available(
        session: AsyncSession,
        product_id: int,
        *,
        warehouse_id: Optional[int] = None,
    ) -> int:
        stmt = select(func.coalesce(func.sum(InventoryItem.quantity), 0)).where(
            InventoryItem.product_id == int(product_id),
            InventoryItem.status == InventoryStatus.AVAILABLE.value,
        )
        if warehouse_id is not None:
            stmt = stmt.where(InventoryItem.warehouse_id == int(warehouse_id))
        return int((await session.execute(stmt)).scalar_one())

    @staticmethod
    async def outstanding_approved(
        session: AsyncSession,
        product_id: int,
        *,
        exclude_id: Optional[int] = None,
    ) -> int:
        stmt = select(func.coalesce(func.sum(StockOutRequest.approved_quantity), 0)).where(
            StockOutRequest.product_id == int(product_id),
            StockOutRequest.status.in_([StockOutStatus.APPROVED.value, StockOutStatus.PROCESSING.value]),
            StockOutRequest.reservation_id.is_(None),
        )
        if exclude_id is not None:
            stmt = stmt.where(StockOutRequest.id != int(exclude_id))
        return int((await session.execute(stmt)).scalar_one())

    @classmethod
    async def approvable(cls, session: AsyncSession, product_id: int, *, exclude_id: Optional[int] = None) -> int:
        on_hand = await cls.aggregate_available(session, product_id)
        outstanding = await cls.outstanding_approved(session, product_id, exclude_id=exclude_id)
        return max(on_hand - outstanding, 0)
