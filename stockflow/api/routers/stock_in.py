# stockflow/api/routers/stock_in.py
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from stockflow.db.session import get_session
from stockflow.schemas.stock_in import (
    BatchOut,
    BatchProcessIn,
    BatchResultOut,
    BoxErrorOut,
    BoxOut,
    StockInCreateIn,
    StockInDetailOut,
    StockInOut,
    StockInProcessIn,
    StockInProcessOut,
    StockInRejectIn,
)
from stockflow.services.batch_processor import BatchLine, BatchProcessor, BatchResult
from stockflow.services.inventory_errors import InventoryError
from stockflow.services.stock_in_service import StockInService

router = APIRouter(prefix="/stock-in", tags=["stock-in"])


def _batch_out(r: BatchResult) -> BatchResultOut:
    return BatchResultOut(
        batch=BatchOut.model_validate(r.batch),
        boxes=[BoxOut.model_validate(b) for b in r.boxes],
        errors=[BoxErrorOut.model_validate(e) for e in r.errors],
    )


@router.post("", response_model=StockInOut, status_code=201)
async def create_stock_in(
    payload: StockInCreateIn,
    session: AsyncSession = Depends(get_session),
) -> StockInOut:
    """现场提交入库申请（pending），不动库存。"""
    try:
        req = await StockInService.create_request(
            session,
            product_id=payload.product_id,
            boxes=payload.boxes,
            submitted_by=payload.submitted_by,
            source=payload.source,
            notes=payload.notes,
        )
        await session.commit()
        return StockInOut.model_validate(req)
    except InventoryError:
        await session.rollback()
        raise


@router.post("/batches", response_model=StockInProcessOut)
async def process_single_batch(
    payload: BatchProcessIn,
    session: AsyncSession = Depends(get_session),
) -> StockInProcessOut:
    """
    单批次入库处理：
    - 带 stock_in_id：复用该 pending 申请；
    - 不带：自动建申请并立即处理；
    - 部分箱失败时仍返回 200，status=partial，errors 列出失败的箱。
    """
    try:
        result = await BatchProcessor().process_batch(
            session,
            product_id=payload.product_id,
            warehouse_id=payload.warehouse_id,
            location_id=payload.location_id,
            box_count=payload.box_count,
            quantity_per_box=payload.quantity_per_box,
            color=payload.color,
            size=payload.size,
            actor=payload.actor,
            stock_in_id=payload.stock_in_id,
        )
    except InventoryError:
        await session.rollback()
        raise
    return StockInProcessOut(request=StockInOut.model_validate(result.request), batches=[_batch_out(result)])


@router.get("/{stock_in_id}", response_model=StockInOut)
async def get_stock_in(stock_in_id: int, session: AsyncSession = Depends(get_session)) -> StockInOut:
    return StockInOut.model_validate(await StockInService.get(session, stock_in_id))


@router.get("/{stock_in_id}/details", response_model=List[StockInDetailOut])
async def list_stock_in_details(
    stock_in_id: int, session: AsyncSession = Depends(get_session)
) -> List[StockInDetailOut]:
    await StockInService.get(session, stock_in_id)
    rows = await StockInService.list_details(session, stock_in_id)
    return [StockInDetailOut.model_validate(r) for r in rows]


@router.post("/{stock_in_id}/process", response_model=StockInProcessOut)
async def process_stock_in(
    stock_in_id: int,
    payload: StockInProcessIn,
    session: AsyncSession = Depends(get_session),
) -> StockInProcessOut:
    """按多条入库行处理一张 pending 申请（每行一个批次）。"""
    lines = [
        BatchLine(
            warehouse_id=x.warehouse_id,
            location_id=x.location_id,
            box_count=x.box_count,
            quantity_per_box=x.quantity_per_box,
            color=x.color,
            size=x.size,
        )
        for x in payload.lines
    ]
    try:
        result = await BatchProcessor().process_stock_in(session, stock_in_id, lines=lines, actor=payload.actor)
    except InventoryError:
        await session.rollback()
        raise
    return StockInProcessOut(request=StockInOut.model_validate(result.request), batches=[_batch_out(r) for r in result.batches])


@router.post("/{stock_in_id}/reject", response_model=StockInOut)
async def reject_stock_in(
    stock_in_id: int,
    payload: StockInRejectIn,
    session: AsyncSession = Depends(get_session),
) -> StockInOut:
    try:
        req = await StockInService.reject(session, stock_in_id, actor=payload.actor, reason=payload.reason)
        await session.commit()
        return StockInOut.model_validate(req)
    except InventoryError:
        await session.rollback()
        raise
