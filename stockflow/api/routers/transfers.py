# stockflow/api/routers/transfers.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from stockflow.db.session import get_session
from stockflow.models.transfer import TransferRequest
from stockflow.schemas.transfer import TransferActionIn, TransferCreateIn, TransferOut
from stockflow.services.inventory_errors import InventoryError, NotFound
from stockflow.services.transfer_service import TransferService

router = APIRouter(prefix="/transfers", tags=["transfers"])


@router.post("", response_model=TransferOut, status_code=201)
async def create_transfer(
    payload: TransferCreateIn,
    session: AsyncSession = Depends(get_session),
) -> TransferOut:
    try:
        tr = await TransferService().create(
            session,
            barcode=payload.barcode,
            destination_warehouse_id=payload.destination_warehouse_id,
            destination_location_id=payload.destination_location_id,
            requested_by=payload.requested_by,
            quantity=payload.quantity,
            reason=payload.reason,
            notes=payload.notes,
        )
        await session.commit()
        return TransferOut.model_validate(tr)
    except InventoryError:
        await session.rollback()
        raise


@router.get("/{transfer_id}", response_model=TransferOut)
async def get_transfer(transfer_id: int, session: AsyncSession = Depends(get_session)) -> TransferOut:
    tr = await session.get(TransferRequest, transfer_id)
    if tr is None:
        raise NotFound(f"transfer not found: {transfer_id}")
    return TransferOut.model_validate(tr)


@router.post("/{transfer_id}/approve", response_model=TransferOut)
async def approve_transfer(
    transfer_id: int,
    payload: TransferActionIn,
    session: AsyncSession = Depends(get_session),
) -> TransferOut:
    """审批移库：来源 out + 目的 in 成对台账，箱随之改库位。"""
    try:
        tr = await TransferService().approve(session, transfer_id, actor=payload.actor)
        await session.commit()
        return TransferOut.model_validate(tr)
    except InventoryError:
        await session.rollback()
        raise


@router.post("/{transfer_id}/reject", response_model=TransferOut)
async def reject_transfer(
    transfer_id: int,
    payload: TransferActionIn,
    session: AsyncSession = Depends(get_session),
) -> TransferOut:
    try:
        tr = await TransferService().reject(session, transfer_id, actor=payload.actor, reason=payload.reason)
        await session.commit()
        return TransferOut.model_validate(tr)
    except InventoryError:
        await session.rollback()
        raise
