# stockflow/api/routers/reservations.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from stockflow.db.session import get_session
from stockflow.models.reservation import ReserveStock
from stockflow.schemas.reservation import (
    AllocationOut,
    ReservationActionIn,
    ReservationCreateIn,
    ReservationOut,
)
from stockflow.services.inventory_errors import InventoryError, NotFound
from stockflow.services.reservation_service import ReservationService

router = APIRouter(prefix="/reservations", tags=["reservations"])


async def _out(session: AsyncSession, svc: ReservationService, res: ReserveStock) -> ReservationOut:
    out = ReservationOut.model_validate(res)
    out.allocations = [AllocationOut.model_validate(a) for a in await svc.allocations(session, res.id)]
    return out


@router.post("", response_model=ReservationOut, status_code=201)
async def create_reservation(
    payload: ReservationCreateIn,
    session: AsyncSession = Depends(get_session),
) -> ReservationOut:
    """建预留：立即扣减可用余额（reserve 台账），不足 → 409。"""
    svc = ReservationService()
    try:
        res = await svc.create(
            session,
            product_id=payload.product_id,
            customer_name=payload.customer_name,
            quantity=payload.quantity,
            actor=payload.actor,
            start_date=payload.start_date,
            end_date=payload.end_date,
        )
        await session.commit()
    except InventoryError:
        await session.rollback()
        raise
    return await _out(session, svc, res)


@router.get("/{reservation_id}", response_model=ReservationOut)
async def get_reservation(reservation_id: int, session: AsyncSession = Depends(get_session)) -> ReservationOut:
    res = await session.get(ReserveStock, reservation_id)
    if res is None:
        raise NotFound(f"reservation not found: {reservation_id}")
    return await _out(session, ReservationService(), res)


@router.post("/{reservation_id}/cancel", response_model=ReservationOut)
async def cancel_reservation(
    reservation_id: int,
    payload: ReservationActionIn,
    session: AsyncSession = Depends(get_session),
) -> ReservationOut:
    svc = ReservationService()
    try:
        res = await svc.cancel(session, reservation_id, actor=payload.actor, reason=payload.reason)
        await session.commit()
    except InventoryError:
        await session.rollback()
        raise
    return await _out(session, svc, res)


@router.post("/{reservation_id}/complete", response_model=ReservationOut)
async def complete_reservation(
    reservation_id: int,
    payload: ReservationActionIn,
    session: AsyncSession = Depends(get_session),
) -> ReservationOut:
    svc = ReservationService()
    try:
        res = await svc.complete(session, reservation_id, actor=payload.actor)
        await session.commit()
    except InventoryError:
        await session.rollback()
        raise
    return await _out(session, svc, res)
