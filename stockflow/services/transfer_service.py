# stockflow/services/transfer_service.py
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from stockflow.core.tx import atomic
from stockflow.models.batch_item import BatchItem
from stockflow.models.enums import MovementType, ReferenceTable, TransferStatus
from stockflow.models.inventory_item import InventoryItem
from stockflow.models.location import Location
from stockflow.models.transfer import TransferRequest
from stockflow.services.audit_writer import AuditEventWriter
from stockflow.services.barcode_generator import normalize_barcode
from stockflow.services.inventory_errors import InsufficientInventory, NotFound, ValidationError
from stockflow.services.inventory_ledger_service import InventoryLedgerService, MovementChange
from stockflow.services.request_state import TRANSFER, assert_transition
from stockflow.utils.time import utcnow

log = logging.getLogger("stockflow.transfer")


class TransferService:
    """
    整箱移库：pending → approved | rejected

    审批通过在同一原子单元内：
      1) 来源库位 out（余额归零）
      2) inventory_items / batch_items 改到目的库位
      3) 目的库位 in（余额补回）
    两条台账 reference 都是 transfer:<id>，对账时成对出现、净额为 0。
    """

    def __init__(self, ledger: Optional[InventoryLedgerService] = None) -> None:
        self.ledger = ledger or InventoryLedgerService()

    async def _lock(self, session: AsyncSession, transfer_id: int) -> TransferRequest:
        row = (
            await session.execute(
                select(TransferRequest)
                .where(TransferRequest.id == int(transfer_id))
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        ).scalars().first()
        if row is None:
            raise NotFound(f"transfer not found: {transfer_id}")
        return row

    @staticmethod
    async def _item(session: AsyncSession, barcode: str, *, lock: bool = False) -> InventoryItem:
        stmt = select(InventoryItem).where(InventoryItem.barcode == barcode)
        if lock:
            stmt = stmt.with_for_update()
        item = (await session.execute(stmt.execution_options(populate_existing=True))).scalars().first()
        if item is None:
            raise NotFound(f"barcode not found in inventory: {barcode}")
        return item

    async def create(
        self,
        session: AsyncSession,
        *,
        barcode: str,
        destination_warehouse_id: int,
        destination_location_id: int,
        requested_by: str,
        quantity: Optional[int] = None,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> TransferRequest:
        code = normalize_barcode(barcode)
        if not code:
            raise ValidationError("barcode is required")
        if not requested_by:
            raise ValidationError("requested_by is required")

        async with atomic(session):
            item = await self._item(session, code)

            loc = await session.get(Location, int(destination_location_id))
            if loc is None:
                raise NotFound(f"location not found: {destination_location_id}")
            if int(loc.warehouse_id) != int(destination_warehouse_id):
                raise ValidationError(
                    f"location {destination_location_id} does not belong to warehouse {destination_warehouse_id}"
                )
            if (int(item.warehouse_id), int(item.location_id)) == (
                int(destination_warehouse_id),
                int(destination_location_id),
            ):
                raise ValidationError("destination equals current location")

            qty = int(item.quantity if quantity is None else quantity)
            if qty <= 0:
                raise ValidationError(f"nothing to transfer: barcode {code} quantity is {item.quantity}")
            if qty != int(item.quantity):
                raise ValidationError(
                    f"transfers move whole boxes: barcode {code} holds {item.quantity}, got {qty}"
                )

            tr = TransferRequest(
                barcode=code,
                product_id=int(item.product_id),
                source_warehouse_id=int(item.warehouse_id),
                source_location_id=int(item.location_id),
                destination_warehouse_id=int(destination_warehouse_id),
                destination_location_id=int(destination_location_id),
                quantity=qty,
                reason=reason,
                notes=notes,
                status=TransferStatus.PENDING.value,
                requested_by=requested_by,
            )
            session.add(tr)
            await session.flush()
            await AuditEventWriter.write(
                session,
                category="TRANSFER",
                action="CREATED",
                ref=f"transfer:{tr.id}",
                barcode=code,
                actor=requested_by,
                meta={
                    "from": [tr.source_warehouse_id, tr.source_location_id],
                    "to": [tr.destination_warehouse_id, tr.destination_location_id],
                    "quantity": qty,
                },
            )
        return tr

    async def approve(self, session: AsyncSession, transfer_id: int, *, actor: str) -> TransferRequest:
        async with atomic(session):
            tr = await self._lock(session, transfer_id)
            assert_transition(TRANSFER, tr.status, TransferStatus.APPROVED)

            item = await self._item(session, tr.barcode, lock=True)
            if (int(item.warehouse_id), int(item.location_id)) != (
                int(tr.source_warehouse_id),
                int(tr.source_location_id),
            ):
                raise ValidationError(f"barcode {tr.barcode} is no longer at the source location")
            if int(item.quantity) < int(tr.quantity):
                raise InsufficientInventory(
                    requested=int(tr.quantity), available=int(item.quantity), barcode=tr.barcode
                )
            if int(item.quantity) != int(tr.quantity):
                raise ValidationError(
                    f"barcode {tr.barcode} quantity changed to {item.quantity} since the request"
                )

            box_status = (
                await session.execute(select(BatchItem.status).where(BatchItem.barcode == tr.barcode))
            ).scalar_one_or_none()

            common = dict(
                product_id=int(tr.product_id),
                barcode=tr.barcode,
                quantity=int(tr.quantity),
                actor=actor,
                reference_table=ReferenceTable.TRANSFER,
                reference_id=tr.id,
                notes=tr.reason,
            )
            await self.ledger.record_stock_out(
                session,
                MovementChange(
                    warehouse_id=int(tr.source_warehouse_id),
                    location_id=int(tr.source_location_id),
                    movement_type=MovementType.OUT,
                    **common,
                ),
            )

            dest = {
                "warehouse_id": int(tr.destination_warehouse_id),
                "location_id": int(tr.destination_location_id),
            }
            await session.execute(
                update(InventoryItem)
                .where(InventoryItem.barcode == tr.barcode)
                .values(**dest)
                .execution_options(synchronize_session=False)
            )
            await session.execute(
                update(BatchItem)
                .where(BatchItem.barcode == tr.barcode)
                .values(**dest)
                .execution_options(synchronize_session=False)
            )

            await self.ledger.record_stock_in(
                session,
                MovementChange(movement_type=MovementType.IN, **dest, **common),
            )
            # 入账会按数量回写箱状态；移库不改变箱的占用状态
            if box_status is not None:
                await session.execute(
                    update(BatchItem)
                    .where(BatchItem.barcode == tr.barcode)
                    .values(status=box_status)
                    .execution_options(synchronize_session=False)
                )

            tr.status = TransferStatus.APPROVED.value
            tr.approved_by = actor
            tr.decided_at = utcnow()
            await session.flush()

            await AuditEventWriter.write(
                session,
                category="TRANSFER",
                action="APPROVED",
                ref=f"transfer:{tr.id}",
                barcode=tr.barcode,
                actor=actor,
                meta={"quantity": int(tr.quantity)},
            )

        log.info(
            "transfer %s approved: %s %s/%s -> %s/%s",
            tr.id,
            tr.barcode,
            tr.source_warehouse_id,
            tr.source_location_id,
            tr.destination_warehouse_id,
            tr.destination_location_id,
        )
        return tr

    async def reject(
        self,
        session: AsyncSession,
        transfer_id: int,
        *,
        actor: str,
        reason: Optional[str] = None,
    ) -> TransferRequest:
        async with atomic(session):
            tr = await self._lock(session, transfer_id)
            assert_transition(TRANSFER, tr.status, TransferStatus.REJECTED)
            tr.status = TransferStatus.REJECTED.value
            tr.rejected_by = actor
            tr.rejection_reason = reason
            tr.decided_at = utcnow()
            await session.flush()
            await AuditEventWriter.write(
                session,
                category="TRANSFER",
                action="REJECTED",
                ref=f"transfer:{tr.id}",
                barcode=tr.barcode,
                actor=actor,
                meta={"reason": reason},
            )
        return tr
