# stockflow/services/stock_in_service.py
from __future__ import annotations

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stockflow.core.tx import atomic
from stockflow.models.enums import StockInStatus
from stockflow.models.product import Product
from stockflow.models.stock_in import StockInDetail, StockInRequest
from stockflow.services.audit_writer import AuditEventWriter
from stockflow.services.inventory_errors import NotFound, ValidationError
from stockflow.services.request_state import STOCK_IN, assert_transition
from stockflow.utils.time import utcnow


class StockInService:
    """入库申请：提交 / 驳回 / 查询。处理本身见 BatchProcessor。"""

    @staticmethod
    async def create_request(
        session: AsyncSession,
        *,
        product_id: int,
        boxes: int,
        submitted_by: str,
        source: str = "manual",
        notes: Optional[str] = None,
    ) -> StockInRequest:
        if int(boxes) <= 0:
            raise ValidationError(f"boxes must be positive, got {boxes}")
        if not submitted_by:
            raise ValidationError("submitted_by is required")

        async with atomic(session):
            if await session.get(Product, int(product_id)) is None:
                raise NotFound(f"product not found: {product_id}")
            req = StockInRequest(
                product_id=int(product_id),
                boxes=int(boxes),
                source=source or "manual",
                notes=notes,
                status=StockInStatus.PENDING.value,
                submitted_by=submitted_by,
            )
            session.add(req)
            await session.flush()
            await AuditEventWriter.write(
                session,
                category="STOCK_IN",
                action="CREATED",
                ref=f"stock_in:{req.id}",
                actor=submitted_by,
                meta={"product_id": int(product_id), "boxes": int(boxes), "source": req.source},
            )
        return req

    @staticmethod
    async def get(session: AsyncSession, stock_in_id: int) -> StockInRequest:
        req = await session.get(StockInRequest, int(stock_in_id))
        if req is None:
            raise NotFound(f"stock-in request not found: {stock_in_id}")
        return req

    @staticmethod
    async def reject(
        session: AsyncSession,
        stock_in_id: int,
        *,
        actor: str,
        reason: Optional[str] = None,
    ) -> StockInRequest:
        async with atomic(session):
            req = (
                await session.execute(
                    select(StockInRequest)
                    .where(StockInRequest.id == int(stock_in_id))
                    .with_for_update()
                    .execution_options(populate_existing=True)
                )
            ).scalars().first()
            if req is None:
                raise NotFound(f"stock-in request not found: {stock_in_id}")

            assert_transition(STOCK_IN, req.status, StockInStatus.REJECTED)
            req.status = StockInStatus.REJECTED.value
            req.processed_by = actor
            req.rejection_reason = reason
            req.processing_completed_at = utcnow()
            await session.flush()

            await AuditEventWriter.write(
                session,
                category="STOCK_IN",
                action="REJECTED",
                ref=f"stock_in:{req.id}",
                actor=actor,
                meta={"reason": reason},
            )
        return req

    @staticmethod
    async def list_details(session: AsyncSession, stock_in_id: int) -> List[StockInDetail]:
        rows = await session.execute(
            select(StockInDetail)
            .where(StockInDetail.stock_in_id == int(stock_in_id))
            .order_by(StockInDetail.processing_order, StockInDetail.id)
        )
        return list(rows.scalars().all())
