# stockflow/services/stock_out_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stockflow.core.config import get_settings
from stockflow.core.tx import atomic
from stockflow.models.enums import (
    MovementType,
    ReferenceTable,
    ReservationStatus,
    StockOutPriority,
    StockOutStatus,
)
from stockflow.models.inventory_item import InventoryItem
from stockflow.models.product import Product
from stockflow.models.stock_out import StockOutLine, StockOutRequest
from stockflow.obs.metrics import insufficient_inventory_total, stock_out_approvals_total
from stockflow.services.audit_writer import AuditEventWriter
from stockflow.services.barcode_generator import normalize_barcode
from stockflow.services.inventory_errors import InsufficientInventory, NotFound, ReservationInUse, ValidationError
from stockflow.services.inventory_ledger_service import InventoryLedgerService, MovementChange
from stockflow.services.request_state import STOCK_OUT, assert_transition
from stockflow.services.reservation_service import ReservationService
from stockflow.services.stock_availability_service import StockAvailabilityService
from stockflow.utils.time import utcnow

log = logging.getLogger("stockflow.stock_out")


@dataclass(frozen=True)
class Pick:
    """履约拣货：从某条码扣多少。"""

    barcode: str
    quantity: int


class StockOutService:
    """
    出库两阶段：

    - approve: 只锁定意图（approved_quantity），不动库存
        * 商品行 FOR UPDATE 后现查可审批量 = 可用合计 - 已审批未履约
        * 不足时按 STOCK_OUT_APPROVE_PARTIAL 封顶部分审批，可审批量为 0 则 InsufficientInventory
    - fulfill: 真正扣库存，逐条码 record_stock_out 复核；任何一条失败整单回滚
    """

    def __init__(
        self,
        *,
        ledger: Optional[InventoryLedgerService] = None,
        reservations: Optional[ReservationService] = None,
    ) -> None:
        self.ledger = ledger or InventoryLedgerService()
        self.reservations = reservations or ReservationService(self.ledger)

    async def _lock(self, session: AsyncSession, stock_out_id: int) -> StockOutRequest:
        row = (
            await session.execute(
                select(StockOutRequest)
                .where(StockOutRequest.id == int(stock_out_id))
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        ).scalars().first()
        if row is None:
            raise NotFound(f"stock-out request not found: {stock_out_id}")
        return row

    async def get(self, session: AsyncSession, stock_out_id: int) -> StockOutRequest:
        req = await session.get(StockOutRequest, int(stock_out_id))
        if req is None:
            raise NotFound(f"stock-out request not found: {stock_out_id}")
        return req

    async def lines(self, session: AsyncSession, stock_out_id: int) -> List[StockOutLine]:
        rows = await session.execute(
            select(StockOutLine).where(StockOutLine.stock_out_id == int(stock_out_id)).order_by(StockOutLine.id)
        )
        return list(rows.scalars().all())

    # ------------------------------------------------------------------

    async def create_request(
        self,
        session: AsyncSession,
        *,
        product_id: int,
        quantity: int,
        requested_by: str,
        destination: Optional[str] = None,
        notes: Optional[str] = None,
        priority: str = StockOutPriority.NORMAL.value,
        reservation_id: Optional[int] = None,
    ) -> StockOutRequest:
        if int(quantity) <= 0:
            raise ValidationError(f"quantity must be positive, got {quantity}")
        if not requested_by:
            raise ValidationError("requested_by is required")
        try:
            prio = StockOutPriority(priority)
        except ValueError as e:
            raise ValidationError(f"unknown priority: {priority}") from e

        async with atomic(session):
            if await session.get(Product, int(product_id)) is None:
                raise NotFound(f"product not found: {product_id}")

            if reservation_id is not None:
                res = await self.reservations._lock(session, int(reservation_id))
                if res.status != ReservationStatus.PENDING.value:
                    raise ValidationError(f"reservation {reservation_id} is {res.status}, not pending")
                if int(res.product_id) != int(product_id):
                    raise ValidationError(f"reservation {reservation_id} is for product {res.product_id}")
                if int(quantity) > int(res.quantity):
                    raise ValidationError(
                        f"quantity {quantity} exceeds reserved quantity {res.quantity}"
                    )
                # 一张预留同一时刻只挂一张未结出库单
                open_ids = [r.id for r in await self.reservations.open_stock_outs(session, res.id)]
                if open_ids:
                    raise ReservationInUse(res.id, open_ids)

            req = StockOutRequest(
                product_id=int(product_id),
                quantity=int(quantity),
                destination=destination,
                notes=notes,
                priority=prio.value,
                status=StockOutStatus.PENDING.value,
                requested_by=requested_by,
                reservation_id=int(reservation_id) if reservation_id is not None else None,
            )
            session.add(req)
            await session.flush()
            await AuditEventWriter.write(
                session,
                category="STOCK_OUT",
                action="CREATED",
                ref=f"stock_out:{req.id}",
                actor=requested_by,
                meta={"product_id": int(product_id), "quantity": int(quantity), "priority": prio.value},
            )
        return req

    async def approve(
        self,
        session: AsyncSession,
        stock_out_id: int,
        *,
        actor: str,
        approved_quantity: Optional[int] = None,
    ) -> StockOutRequest:
        if not actor:
            raise ValidationError("actor is required")

        async with atomic(session):
            req = await self._lock(session, stock_out_id)
            assert_transition(STOCK_OUT, req.status, StockOutStatus.APPROVED)

            wanted = int(req.quantity if approved_quantity is None else approved_quantity)
            if wanted <= 0 or wanted > int(req.quantity):
                raise ValidationError(
                    f"approved_quantity must be in 1..{req.quantity}, got {approved_quantity}"
                )

            if req.reservation_id is not None:
                res = await self.reservations._lock(session, int(req.reservation_id))
                limit = 0
                if res.status == ReservationStatus.PENDING.value:
                    taken = sum(
                        int(r.approved_quantity or 0)
                        for r in await self.reservations.open_stock_outs(session, res.id, exclude_id=req.id)
                    )
                    limit = max(int(res.quantity) - taken, 0)
            else:
                await StockAvailabilityService.lock_product(session, req.product_id)
                limit = await StockAvailabilityService.approvable(session, req.product_id, exclude_id=req.id)

            if limit >= wanted:
                granted, outcome = wanted, "full"
            elif limit > 0 and get_settings().STOCK_OUT_APPROVE_PARTIAL:
                granted, outcome = limit, "capped"
                log.info(
                    "stock_out %s approval capped: wanted=%d approvable=%d", req.id, wanted, limit
                )
            else:
                stock_out_approvals_total.labels(outcome="insufficient").inc()
                insufficient_inventory_total.labels(op="approve").inc()
                raise InsufficientInventory(requested=wanted, available=limit, product_id=req.product_id)

            req.status = StockOutStatus.APPROVED.value
            req.approved_quantity = granted
            req.approved_by = actor
            req.approved_at = utcnow()
            await session.flush()

            await AuditEventWriter.write(
                session,
                category="STOCK_OUT",
                action="APPROVED",
                ref=f"stock_out:{req.id}",
                actor=actor,
                meta={"requested": int(req.quantity), "wanted": wanted, "approved": granted},
            )

        stock_out_approvals_total.labels(outcome=outcome).inc()
        return req

    async def reject(
        self,
        session: AsyncSession,
        stock_out_id: int,
        *,
        actor: str,
        reason: Optional[str] = None,
    ) -> StockOutRequest:
        async with atomic(session):
            req = await self._lock(session, stock_out_id)
            assert_transition(STOCK_OUT, req.status, StockOutStatus.REJECTED)
            req.status = StockOutStatus.REJECTED.value
            req.rejected_by = actor
            req.rejection_reason = reason
            await session.flush()
            await AuditEventWriter.write(
                session,
                category="STOCK_OUT",
                action="REJECTED",
                ref=f"stock_out:{req.id}",
                actor=actor,
                meta={"reason": reason},
            )
        stock_out_approvals_total.labels(outcome="rejected").inc()
        return req

    async def start_processing(self, session: AsyncSession, stock_out_id: int, *, actor: str) -> StockOutRequest:
        async with atomic(session):
            req = await self._lock(session, stock_out_id)
            assert_transition(STOCK_OUT, req.status, StockOutStatus.PROCESSING)
            req.status = StockOutStatus.PROCESSING.value
            await session.flush()
            await AuditEventWriter.write(
                session,
                category="STOCK_OUT",
                action="PROCESSING",
                ref=f"stock_out:{req.id}",
                actor=actor,
            )
        return req

    # ------------------------------------------------------------------

    @staticmethod
    def _normalize_picks(picks: Sequence[Pick], expected_total: int) -> List[Pick]:
        if not picks:
            raise ValidationError("at least one pick is required")
        seen: set[str] = set()
        out: List[Pick] = []
        for p in picks:
            code = normalize_barcode(p.barcode)
            if not code:
                raise ValidationError("pick barcode is required")
            if int(p.quantity) <= 0:
                raise ValidationError(f"pick quantity must be positive: {code}")
            if code in seen:
                raise ValidationError(f"duplicate pick barcode: {code}")
            seen.add(code)
            out.append(Pick(barcode=code, quantity=int(p.quantity)))

        total = sum(p.quantity for p in out)
        if total != int(expected_total):
            raise ValidationError(f"picked quantity {total} does not match approved quantity {expected_total}")
        return out

    async def fulfill(
        self,
        session: AsyncSession,
        stock_out_id: int,
        *,
        actor: str,
        picks: Sequence[Pick] = (),
    ) -> StockOutRequest:
        if not actor:
            raise ValidationError("actor is required")

        async with atomic(session):
            req = await self._lock(session, stock_out_id)
            assert_transition(STOCK_OUT, req.status, StockOutStatus.COMPLETED)
            approved = int(req.approved_quantity or 0)

            done: List[tuple[InventoryItem, int]] = []
            if req.reservation_id is not None:
                done = await self.reservations.consume_for_stock_out(
                    session,
                    req.reservation_id,
                    quantity=approved,
                    stock_out_id=req.id,
                    actor=actor,
                )
            else:
                for pick in self._normalize_picks(picks, approved):
                    item = (
                        await session.execute(
                            select(InventoryItem)
                            .where(InventoryItem.barcode == pick.barcode)
                            .execution_options(populate_existing=True)
                        )
                    ).scalars().first()
                    if item is None:
                        raise NotFound(f"barcode not found in inventory: {pick.barcode}")
                    if int(item.product_id) != int(req.product_id):
                        raise ValidationError(
                            f"barcode {pick.barcode} belongs to product {item.product_id}, not {req.product_id}"
                        )
                    await self.ledger.record_stock_out(
                        session,
                        MovementChange(
                            product_id=int(item.product_id),
                            warehouse_id=int(item.warehouse_id),
                            location_id=int(item.location_id),
                            barcode=pick.barcode,
                            quantity=pick.quantity,
                            actor=actor,
                            reference_table=ReferenceTable.STOCK_OUT,
                            reference_id=req.id,
                            movement_type=MovementType.OUT,
                            notes=req.destination,
                        ),
                    )
                    done.append((item, pick.quantity))

            now = utcnow()
            for item, qty in done:
                session.add(
                    StockOutLine(
                        stock_out_id=req.id,
                        barcode=item.barcode,
                        warehouse_id=int(item.warehouse_id),
                        location_id=int(item.location_id),
                        quantity=qty,
                        processed_by=actor,
                        processed_at=now,
                    )
                )
                await AuditEventWriter.write(
                    session,
                    category="STOCK_OUT",
                    action="PICKED",
                    ref=f"stock_out:{req.id}",
                    barcode=item.barcode,
                    actor=actor,
                    meta={"quantity": qty},
                )

            req.status = StockOutStatus.COMPLETED.value
            req.completed_by = actor
            req.completed_at = now
            await session.flush()

        log.info("stock_out %s fulfilled: %d barcode(s), qty=%d", req.id, len(done), approved)
        return req
