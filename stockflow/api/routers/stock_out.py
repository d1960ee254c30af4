# stockflow/api/routers/stock_out.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from stockflow.db.session import get_session
from stockflow.schemas.stock_out import (
    StockOutActorIn,
    StockOutApproveIn,
    StockOutCreateIn,
    StockOutDetailOut,
    StockOutFulfillIn,
    StockOutLineOut,
    StockOutOut,
    StockOutRejectIn,
)
from stockflow.services.inventory_errors import InventoryError
from stockflow.services.stock_out_service import Pick, StockOutService

router = APIRouter(prefix="/stock-out", tags=["stock-out"])


async def _detail(session: AsyncSession, svc: StockOutService, stock_out_id: int) -> StockOutDetailOut:
    req = await svc.get(session, stock_out_id)
    out = StockOutDetailOut.model_validate(req)
    out.lines = [StockOutLineOut.model_validate(x) for x in await svc.lines(session, stock_out_id)]
    return out


@router.post("", response_model=StockOutOut, status_code=201)
async def create_stock_out(
    payload: StockOutCreateIn,
    session: AsyncSession = Depends(get_session),
) -> StockOutOut:
    try:
        req = await StockOutService().create_request(
            session,
            product_id=payload.product_id,
            quantity=payload.quantity,
            requested_by=payload.requested_by,
            destination=payload.destination,
            notes=payload.notes,
            priority=payload.priority.value,
            reservation_id=payload.reservation_id,
        )
        await session.commit()
        return StockOutOut.model_validate(req)
    except InventoryError:
        await session.rollback()
        raise


@router.get("/{stock_out_id}", response_model=StockOutDetailOut)
async def get_stock_out(stock_out_id: int, session: AsyncSession = Depends(get_session)) -> StockOutDetailOut:
    return await _detail(session, StockOutService(), stock_out_id)


@router.post("/{stock_out_id}/approve", response_model=StockOutOut)
async def approve_stock_out(
    stock_out_id: int,
    payload: StockOutApproveIn,
    session: AsyncSession = Depends(get_session),
) -> StockOutOut:
    """
    审批出库：
    - 现查可审批量（可用合计 - 已审批未履约）；
    - 不足时按配置封顶部分审批，可审批量为 0 → 409 INSUFFICIENT_INVENTORY。
    """
    try:
        req = await StockOutService().approve(
            session, stock_out_id, actor=payload.actor, approved_quantity=payload.approved_quantity
        )
        await session.commit()
        return StockOutOut.model_validate(req)
    except InventoryError:
        await session.rollback()
        raise


@router.post("/{stock_out_id}/reject", response_model=StockOutOut)
async def reject_stock_out(
    stock_out_id: int,
    payload: StockOutRejectIn,
    session: AsyncSession = Depends(get_session),
) -> StockOutOut:
    try:
        req = await StockOutService().reject(session, stock_out_id, actor=payload.actor, reason=payload.reason)
        await session.commit()
        return StockOutOut.model_validate(req)
    except InventoryError:
        await session.rollback()
        raise


@router.post("/{stock_out_id}/start", response_model=StockOutOut)
async def start_stock_out(
    stock_out_id: int,
    payload: StockOutActorIn,
    session: AsyncSession = Depends(get_session),
) -> StockOutOut:
    try:
        req = await StockOutService().start_processing(session, stock_out_id, actor=payload.actor)
        await session.commit()
        return StockOutOut.model_validate(req)
    except InventoryError:
        await session.rollback()
        raise


@router.post("/{stock_out_id}/fulfill", response_model=StockOutDetailOut)
async def fulfill_stock_out(
    stock_out_id: int,
    payload: StockOutFulfillIn,
    session: AsyncSession = Depends(get_session),
) -> StockOutDetailOut:
    """
    履约扣库存：逐条码复核余额，任何一条不足整单回滚（409）。
    挂预留的出库单 picks 可留空，按预留来源扣减。
    """
    svc = StockOutService()
    try:
        await svc.fulfill(
            session,
            stock_out_id,
            actor=payload.actor,
            picks=[Pick(barcode=p.barcode, quantity=p.quantity) for p in payload.picks],
        )
        await session.commit()
    except InventoryError:
        await session.rollback()
        raise
    return await _detail(session, svc, stock_out_id)
