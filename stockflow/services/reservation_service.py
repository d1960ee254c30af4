# stockflow/services/reservation_service.py
from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stockflow.core.tx import atomic
from stockflow.models.enums import InventoryStatus, MovementType, ReferenceTable, ReservationStatus, StockOutStatus
from stockflow.models.inventory_item import InventoryItem
from stockflow.models.reservation import ReservationAllocation, ReserveStock
from stockflow.models.stock_out import StockOutRequest
from stockflow.services.audit_writer import AuditEventWriter
from stockflow.services.inventory_errors import InsufficientInventory, NotFound, ReservationInUse, ValidationError
from stockflow.services.inventory_ledger_service import InventoryLedgerService, MovementChange
from stockflow.services.request_state import RESERVATION, assert_transition
from stockflow.services.stock_availability_service import StockAvailabilityService

log = logging.getLogger("stockflow.reservation")

_OPEN_STOCK_OUT = (
    StockOutStatus.PENDING.value,
    StockOutStatus.APPROVED.value,
    StockOutStatus.PROCESSING.value,
)


class ReservationService:
    """
    客户预留（硬占用）：

    - create:   锁商品行 → 校验可审批量 → 按 FIFO 从 available 条码逐个 reserve（扣余额 + 台账）
    - cancel:   pending → cancelled，按 allocations 逐条 release 补回
    - complete: pending → completed，占用的货视为已交付，不再补回
    - 挂着未结出库单时 cancel / complete 一律 ReservationInUse；同一预留只允许一张未结出库单

    出库单挂预留时，由 StockOutService.fulfill 调 consume_for_stock_out。
    """

    def __init__(self, ledger: Optional[InventoryLedgerService] = None) -> None:
        self.ledger = ledger or InventoryLedgerService()

    async def _lock(self, session: AsyncSession, reservation_id: int) -> ReserveStock:
        row = (
            await session.execute(
                select(ReserveStock)
                .where(ReserveStock.id == int(reservation_id))
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        ).scalars().first()
        if row is None:
            raise NotFound(f"reservation not found: {reservation_id}")
        return row

    async def allocations(self, session: AsyncSession, reservation_id: int) -> List[ReservationAllocation]:
        rows = await session.execute(
            select(ReservationAllocation)
            .where(ReservationAllocation.reservation_id == int(reservation_id))
            .order_by(ReservationAllocation.id)
        )
        return list(rows.scalars().all())

    async def open_stock_outs(
        self,
        session: AsyncSession,
        reservation_id: int,
        *,
        exclude_id: Optional[int] = None,
    ) -> List[StockOutRequest]:
        """挂在该预留上、尚未结束（pending / approved / processing）的出库单。"""
        stmt = select(StockOutRequest).where(
            StockOutRequest.reservation_id == int(reservation_id),
            StockOutRequest.status.in_(_OPEN_STOCK_OUT),
        )
        if exclude_id is not None:
            stmt = stmt.where(StockOutRequest.id != int(exclude_id))
        return list((await session.execute(stmt.order_by(StockOutRequest.id))).scalars().all())

    async def _assert_released_by_stock_outs(self, session: AsyncSession, res: ReserveStock) -> None:
        open_ids = [r.id for r in await self.open_stock_outs(session, res.id)]
        if open_ids:
            raise ReservationInUse(res.id, open_ids)

    async def create(
        self,
        session: AsyncSession,
        *,
        product_id: int,
        customer_name: str,
        quantity: int,
        actor: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> ReserveStock:
        if int(quantity) <= 0:
            raise ValidationError(f"quantity must be positive, got {quantity}")
        if not (customer_name or "").strip():
            raise ValidationError("customer_name is required")
        if not actor:
            raise ValidationError("actor is required")
        if start_date and end_date and end_date < start_date:
            raise ValidationError("end_date must not be before start_date")

        qty = int(quantity)
        async with atomic(session):
            await StockAvailabilityService.lock_product(session, product_id)
            approvable = await StockAvailabilityService.approvable(session, product_id)
            if approvable < qty:
                raise InsufficientInventory(requested=qty, available=approvable, product_id=int(product_id))

            res = ReserveStock(
                product_id=int(product_id),
                customer_name=customer_name.strip(),
                quantity=qty,
                start_date=start_date,
                end_date=end_date,
                status=ReservationStatus.PENDING.value,
                created_by=actor,
            )
            session.add(res)
            await session.flush()

            items = (
                await session.execute(
                    select(InventoryItem)
                    .where(
                        InventoryItem.product_id == int(product_id),
                        InventoryItem.status == InventoryStatus.AVAILABLE.value,
                        InventoryItem.quantity > 0,
                    )
                    .order_by(InventoryItem.created_at, InventoryItem.id)
                    .execution_options(populate_existing=True)
                )
            ).scalars().all()

            remaining = qty
            for item in items:
                if remaining <= 0:
                    break
                take = min(remaining, int(item.quantity))
                await self.ledger.record_stock_out(
                    session,
                    MovementChange(
                        product_id=int(item.product_id),
                        warehouse_id=int(item.warehouse_id),
                        location_id=int(item.location_id),
                        barcode=item.barcode,
                        quantity=take,
                        actor=actor,
                        reference_table=ReferenceTable.RESERVATION,
                        reference_id=res.id,
                        movement_type=MovementType.RESERVE,
                        notes=f"reserved for {res.customer_name}",
                    ),
                )
                session.add(
                    ReservationAllocation(
                        reservation_id=res.id,
                        barcode=item.barcode,
                        warehouse_id=int(item.warehouse_id),
                        location_id=int(item.location_id),
                        quantity=take,
                    )
                )
                remaining -= take

            if remaining > 0:
                raise InsufficientInventory(requested=qty, available=qty - remaining, product_id=int(product_id))
            await session.flush()

            await AuditEventWriter.write(
                session,
                category="RESERVATION",
                action="CREATED",
                ref=f"reservation:{res.id}",
                actor=actor,
                meta={"product_id": int(product_id), "quantity": qty, "customer": res.customer_name},
            )
        log.info("reservation %s created: product=%s qty=%d", res.id, product_id, qty)
        return res

    async def _release(
        self, session: AsyncSession, alloc: ReservationAllocation, *, actor: str, notes: str
    ) -> InventoryItem:
        # 箱可能已被移库：按条码当前所在库位补回
        item = (
            await session.execute(
                select(InventoryItem)
                .where(InventoryItem.barcode == alloc.barcode)
                .execution_options(populate_existing=True)
            )
        ).scalars().first()
        if item is None:
            raise NotFound(f"barcode not found in inventory: {alloc.barcode}")
        await self.ledger.record_stock_in(
            session,
            MovementChange(
                product_id=int(item.product_id),
                warehouse_id=int(item.warehouse_id),
                location_id=int(item.location_id),
                barcode=alloc.barcode,
                quantity=int(alloc.quantity),
                actor=actor,
                reference_table=ReferenceTable.RESERVATION,
                reference_id=alloc.reservation_id,
                movement_type=MovementType.RELEASE,
                notes=notes,
            ),
        )
        return item

    async def cancel(
        self,
        session: AsyncSession,
        reservation_id: int,
        *,
        actor: str,
        reason: Optional[str] = None,
    ) -> ReserveStock:
        async with atomic(session):
            res = await self._lock(session, reservation_id)
            assert_transition(RESERVATION, res.status, ReservationStatus.CANCELLED)
            await self._assert_released_by_stock_outs(session, res)

            for alloc in await self.allocations(session, res.id):
                await self._release(session, alloc, actor=actor, notes=reason or "reservation cancelled")
                await AuditEventWriter.write(
                    session,
                    category="RESERVATION",
                    action="RELEASED",
                    ref=f"reservation:{res.id}",
                    barcode=alloc.barcode,
                    actor=actor,
                    meta={"quantity": int(alloc.quantity), "reason": reason},
                )

            res.status = ReservationStatus.CANCELLED.value
            await session.flush()
            await session.refresh(res)
        return res

    async def complete(self, session: AsyncSession, reservation_id: int, *, actor: str) -> ReserveStock:
        async with atomic(session):
            res = await self._lock(session, reservation_id)
            assert_transition(RESERVATION, res.status, ReservationStatus.COMPLETED)
            await self._assert_released_by_stock_outs(session, res)
            res.status = ReservationStatus.COMPLETED.value
            await session.flush()
            await AuditEventWriter.write(
                session,
                category="RESERVATION",
                action="COMPLETED",
                ref=f"reservation:{res.id}",
                actor=actor,
            )
            await session.refresh(res)
        return res

    async def consume_for_stock_out(
        self,
        session: AsyncSession,
        reservation_id: int,
        *,
        quantity: int,
        stock_out_id: int,
        actor: str,
    ) -> List[Tuple[InventoryItem, int]]:
        """
        出库履约消耗预留（调用方已在原子单元内）：
        每条 allocation 先 release 补回，再按出库量 out 扣减；多余的预留随之释放。
        返回 [(条码余额行, 出库数量)]。
        """
        res = await self._lock(session, reservation_id)
        assert_transition(RESERVATION, res.status, ReservationStatus.COMPLETED)

        remaining = int(quantity)
        picked: List[Tuple[InventoryItem, int]] = []
        for alloc in await self.allocations(session, res.id):
            item = await self._release(session, alloc, actor=actor, notes=f"stock_out:{stock_out_id}")
            take = min(remaining, int(alloc.quantity))
            if take <= 0:
                continue
            await self.ledger.record_stock_out(
                session,
                MovementChange(
                    product_id=int(item.product_id),
                    warehouse_id=int(item.warehouse_id),
                    location_id=int(item.location_id),
                    barcode=alloc.barcode,
                    quantity=take,
                    actor=actor,
                    reference_table=ReferenceTable.STOCK_OUT,
                    reference_id=stock_out_id,
                    movement_type=MovementType.OUT,
                    notes=f"reservation:{res.id}",
                ),
            )
            picked.append((item, take))
            remaining -= take

        if remaining > 0:
            raise InsufficientInventory(
                requested=int(quantity), available=int(quantity) - remaining, product_id=int(res.product_id)
            )

        res.status = ReservationStatus.COMPLETED.value
        await session.flush()
        return picked
