# stockflow/services/inventory_ledger_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from stockflow.core.tx import atomic
from stockflow.models.batch_item import BatchItem
from stockflow.models.enums import BoxStatus, InventoryStatus, MovementType, ReferenceTable
from stockflow.models.inventory_item import InventoryItem
from stockflow.obs.metrics import insufficient_inventory_total
from stockflow.services.inventory_errors import (
    DuplicateBarcode,
    InsufficientInventory,
    InventoryError,
    NotFound,
    PersistenceError,
    ValidationError,
)
from stockflow.services.ledger_writer import write_movement

log = logging.getLogger("stockflow.ledger")

_INBOUND_TYPES = {MovementType.IN, MovementType.RELEASE}
_OUTBOUND_TYPES = {MovementType.OUT, MovementType.RESERVE}


@dataclass(frozen=True)
class MovementChange:
    """
    一次余额变更的完整描述（入口处校验，之后不再猜字段）：

    - product / warehouse / location / barcode 定位唯一一箱
    - quantity 恒为正，方向由 movement_type 决定
    - reference_table / reference_id 指向引起变更的单据
    """

    product_id: int
    warehouse_id: int
    location_id: int
    barcode: str
    quantity: int
    actor: str
    reference_table: ReferenceTable
    reference_id: int | str
    movement_type: MovementType = MovementType.IN
    batch_id: Optional[int] = None
    color: Optional[str] = None
    size: Optional[str] = None
    notes: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None

    def validate(self, allowed: set[MovementType]) -> None:
        if not self.barcode or not str(self.barcode).strip():
            raise ValidationError("barcode is required")
        if int(self.quantity) <= 0:
            raise ValidationError(f"quantity must be positive, got {self.quantity}")
        if not self.actor:
            raise ValidationError("actor is required")
        if self.movement_type not in allowed:
            raise ValidationError(f"movement_type {self.movement_type} not allowed here")


@dataclass(frozen=True)
class StockChange:
    movement_id: int
    barcode: str
    product_id: int
    warehouse_id: int
    location_id: int
    delta: int
    quantity_after: int
    status_after: str
    created: bool = False


class InventoryLedgerService:
    """
    余额 + 台账 的唯一写入口（只有两个动作）：

    - record_stock_in:  写台账 → 同码余额 +q（不存在则新建 available 行）
    - record_stock_out: 锁行校验 → 条件扣减（quantity >= q）→ 写台账；归零置 out_of_stock

    两步处于同一个原子单元（外层已有事务则走 SAVEPOINT），
    任何一步失败整体回滚，台账与余额不会出现一边写了一边没写。
    """

    async def record_stock_in(self, session: AsyncSession, change: MovementChange) -> StockChange:
        change.validate(_INBOUND_TYPES)
        try:
            async with atomic(session):
                return await self._apply_in(session, change)
        except IntegrityError as e:
            msg = str(e.orig).lower()
            if "unique" in msg or "duplicate" in msg:
                raise DuplicateBarcode(change.barcode) from e
            raise PersistenceError(f"stock-in write failed for {change.barcode}: {e.orig}") from e
        except InventoryError:
            raise
        except SQLAlchemyError as e:
            log.exception("record_stock_in failed: %s", change.barcode)
            raise PersistenceError(f"stock-in write failed for {change.barcode}: {e}") from e

    async def record_stock_out(self, session: AsyncSession, change: MovementChange) -> StockChange:
        change.validate(_OUTBOUND_TYPES)
        try:
            async with atomic(session):
                return await self._apply_out(session, change)
        except InsufficientInventory:
            insufficient_inventory_total.labels(op=change.movement_type.value).inc()
            raise
        except InventoryError:
            raise
        except SQLAlchemyError as e:
            log.exception("record_stock_out failed: %s", change.barcode)
            raise PersistenceError(f"stock-out write failed for {change.barcode}: {e}") from e

    # ------------------------------------------------------------------
    # internals（调用方已处于原子单元内）
    # ------------------------------------------------------------------

    async def _lock_item(self, session: AsyncSession, barcode: str) -> Optional[InventoryItem]:
        stmt = (
            select(InventoryItem)
            .where(InventoryItem.barcode == barcode)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return (await session.execute(stmt)).scalars().first()

    @staticmethod
    def _assert_same_slot(item: InventoryItem, change: MovementChange) -> None:
        if int(item.product_id) != int(change.product_id):
            raise ValidationError(
                f"barcode {change.barcode} belongs to product {item.product_id}, not {change.product_id}"
            )
        if (int(item.warehouse_id), int(item.location_id)) != (
            int(change.warehouse_id),
            int(change.location_id),
        ):
            raise ValidationError(
                f"barcode {change.barcode} is stored at {item.warehouse_id}/{item.location_id}, "
                f"not {change.warehouse_id}/{change.location_id}"
            )

    async def _apply_in(self, session: AsyncSession, change: MovementChange) -> StockChange:
        qty = int(change.quantity)
        movement_id = await write_movement(
            session,
            product_id=change.product_id,
            warehouse_id=change.warehouse_id,
            location_id=change.location_id,
            movement_type=change.movement_type,
            quantity=qty,
            reference_table=change.reference_table,
            reference_id=change.reference_id,
            performed_by=change.actor,
            barcode=change.barcode,
            batch_id=change.batch_id,
            notes=change.notes,
            extra=change.extra,
        )

        item = await self._lock_item(session, change.barcode)
        created = False
        if item is None:
            item = InventoryItem(
                product_id=int(change.product_id),
                warehouse_id=int(change.warehouse_id),
                location_id=int(change.location_id),
                barcode=change.barcode,
                quantity=qty,
                color=change.color,
                size=change.size,
                status=InventoryStatus.AVAILABLE.value,
                batch_id=change.batch_id,
            )
            session.add(item)
            await session.flush()
            created = True
        else:
            self._assert_same_slot(item, change)
            await session.execute(
                update(InventoryItem)
                .where(InventoryItem.id == item.id)
                .values(
                    quantity=InventoryItem.quantity + qty,
                    status=InventoryStatus.AVAILABLE.value,
                )
                .execution_options(synchronize_session=False)
            )
            await session.refresh(item)

        # 余额回满到箱原始数量 → 箱重新可用
        await session.execute(
            update(BatchItem)
            .where(BatchItem.barcode == change.barcode, BatchItem.quantity == item.quantity)
            .values(status=BoxStatus.AVAILABLE.value)
            .execution_options(synchronize_session=False)
        )

        return StockChange(
            movement_id=movement_id,
            barcode=change.barcode,
            product_id=int(item.product_id),
            warehouse_id=int(item.warehouse_id),
            location_id=int(item.location_id),
            delta=qty,
            quantity_after=int(item.quantity),
            status_after=item.status,
            created=created,
        )

    async def _apply_out(self, session: AsyncSession, change: MovementChange) -> StockChange:
        qty = int(change.quantity)

        item = await self._lock_item(session, change.barcode)
        if item is None:
            raise NotFound(f"barcode not found in inventory: {change.barcode}")
        self._assert_same_slot(item, change)
        if item.status == InventoryStatus.RESERVED.value or int(item.quantity) < qty:
            available = 0 if item.status == InventoryStatus.RESERVED.value else int(item.quantity)
            raise InsufficientInventory(
                requested=qty, available=available, product_id=item.product_id, barcode=change.barcode
            )

        # 条件扣减：行锁之外再加 quantity >= q 守卫，命中 0 行即视为并发下不足
        res = await session.execute(
            update(InventoryItem)
            .where(InventoryItem.id == item.id, InventoryItem.quantity >= qty)
            .values(
                quantity=InventoryItem.quantity - qty,
                status=case(
                    (InventoryItem.quantity - qty == 0, InventoryStatus.OUT_OF_STOCK.value),
                    else_=InventoryItem.status,
                ),
            )
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            await session.refresh(item)
            raise InsufficientInventory(
                requested=qty, available=int(item.quantity), product_id=item.product_id, barcode=change.barcode
            )
        await session.refresh(item)

        movement_id = await write_movement(
            session,
            product_id=change.product_id,
            warehouse_id=change.warehouse_id,
            location_id=change.location_id,
            movement_type=change.movement_type,
            quantity=qty,
            reference_table=change.reference_table,
            reference_id=change.reference_id,
            performed_by=change.actor,
            barcode=change.barcode,
            batch_id=item.batch_id,
            notes=change.notes,
            extra=change.extra,
        )

        box_status = BoxStatus.RESERVED if change.movement_type == MovementType.RESERVE else BoxStatus.CONSUMED
        await session.execute(
            update(BatchItem)
            .where(BatchItem.barcode == change.barcode)
            .values(status=box_status.value)
            .execution_options(synchronize_session=False)
        )

        return StockChange(
            movement_id=movement_id,
            barcode=change.barcode,
            product_id=int(item.product_id),
            warehouse_id=int(item.warehouse_id),
            location_id=int(item.location_id),
            delta=-qty,
            quantity_after=int(item.quantity),
            status_after=item.status,
        )
