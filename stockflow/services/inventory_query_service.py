# stockflow/services/inventory_query_service.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from stockflow.models.batch import Batch
from stockflow.models.batch_item import BatchItem
from stockflow.models.enums import InventoryStatus, ReservationStatus
from stockflow.models.inventory_item import InventoryItem
from stockflow.models.inventory_movement import InventoryMovement
from stockflow.models.product import Product
from stockflow.models.reservation import ReserveStock
from stockflow.services.barcode_generator import normalize_barcode, validate_check_digit
from stockflow.services.inventory_errors import NotFound
from stockflow.services.stock_availability_service import StockAvailabilityService


@dataclass
class BarcodeView:
    barcode: str
    check_digit_ok: bool
    item: Optional[InventoryItem] = None
    box: Optional[BatchItem] = None
    batch: Optional[Batch] = None
    product: Optional[Product] = None
    movements: List[InventoryMovement] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.item is not None or self.box is not None


@dataclass(frozen=True)
class LocationStock:
    warehouse_id: int
    location_id: int
    quantity: int
    boxes: int


@dataclass
class ProductStock:
    product: Product
    available: int
    reserved: int
    outstanding_approved: int
    approvable: int
    locations: List[LocationStock] = field(default_factory=list)

    @property
    def below_min_stock(self) -> bool:
        return self.available < int(self.product.min_stock_level or 0)


class InventoryQueryService:
    """只读投影：台账流水 / 当前余额 / 条码扫描 / 商品库存汇总。不含业务逻辑。"""

    @staticmethod
    async def list_movements(
        session: AsyncSession,
        *,
        product_id: Optional[int] = None,
        warehouse_id: Optional[int] = None,
        location_id: Optional[int] = None,
        barcode: Optional[str] = None,
        movement_type: Optional[str] = None,
        status: Optional[str] = None,
        reference_table: Optional[str] = None,
        reference_id: Optional[str] = None,
        time_from: Optional[datetime] = None,
        time_to: Optional[datetime] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> Tuple[int, List[InventoryMovement]]:
        """
        台账明细（翻流水）：
        - 过滤条件全部可选，留空即总账视图；
        - 按 created_at 降序 + id 降序；返回 (总条数, 当前页)。
        """
        conds = []
        if product_id is not None:
            conds.append(InventoryMovement.product_id == int(product_id))
        if warehouse_id is not None:
            conds.append(InventoryMovement.warehouse_id == int(warehouse_id))
        if location_id is not None:
            conds.append(InventoryMovement.location_id == int(location_id))
        if barcode:
            conds.append(InventoryMovement.barcode == normalize_barcode(barcode))
        if movement_type:
            conds.append(InventoryMovement.movement_type == str(movement_type))
        if status:
            conds.append(InventoryMovement.status == str(status))
        if reference_table:
            conds.append(InventoryMovement.reference_table == str(reference_table))
        if reference_id is not None:
            conds.append(InventoryMovement.reference_id == str(reference_id))
        if time_from is not None:
            conds.append(InventoryMovement.created_at >= time_from)
        if time_to is not None:
            conds.append(InventoryMovement.created_at <= time_to)

        total = (
            await session.execute(select(func.count(InventoryMovement.id)).where(*conds))
        ).scalar_one()
        rows = (
            await session.execute(
                select(InventoryMovement)
                .where(*conds)
                .order_by(InventoryMovement.created_at.desc(), InventoryMovement.id.desc())
                .limit(int(limit))
                .offset(int(offset))
            )
        ).scalars().all()
        return int(total), list(rows)

    @staticmethod
    async def list_balances(
        session: AsyncSession,
        *,
        product_id: Optional[int] = None,
        warehouse_id: Optional[int] = None,
        location_id: Optional[int] = None,
        status: Optional[str] = None,
        include_empty: bool = False,
        limit: int = 100,
        offset: int = 0,
    ) -> Tuple[int, List[InventoryItem]]:
        conds = []
        if product_id is not None:
            conds.append(InventoryItem.product_id == int(product_id))
        if warehouse_id is not None:
            conds.append(InventoryItem.warehouse_id == int(warehouse_id))
        if location_id is not None:
            conds.append(InventoryItem.location_id == int(location_id))
        if status:
            conds.append(InventoryItem.status == str(status))
        if not include_empty:
            conds.append(InventoryItem.quantity > 0)

        total = (await session.execute(select(func.count(InventoryItem.id)).where(*conds))).scalar_one()
        rows = (
            await session.execute(
                select(InventoryItem)
                .where(*conds)
                .order_by(InventoryItem.product_id, InventoryItem.warehouse_id, InventoryItem.location_id, InventoryItem.id)
                .limit(int(limit))
                .offset(int(offset))
            )
        ).scalars().all()
        return int(total), list(rows)

    @staticmethod
    async def aggregate_available(
        session: AsyncSession, product_id: int, *, warehouse_id: Optional[int] = None
    ) -> int:
        return await StockAvailabilityService.aggregate_available(session, product_id, warehouse_id=warehouse_id)

    @staticmethod
    async def lookup_barcode(session: AsyncSession, barcode: str, *, movements_limit: int = 20) -> BarcodeView:
        """扫码查询：条码 → 余额行 / 箱 / 批次 / 商品 / 最近台账。找不到不抛错，found=False。"""
        code = normalize_barcode(barcode)
        view = BarcodeView(barcode=code, check_digit_ok=validate_check_digit(code))
        if not code:
            return view

        view.item = (
            await session.execute(select(InventoryItem).where(InventoryItem.barcode == code))
        ).scalars().first()
        view.box = (await session.execute(select(BatchItem).where(BatchItem.barcode == code))).scalars().first()
        if view.box is not None:
            view.batch = await session.get(Batch, view.box.batch_id)

        product_id = None
        if view.item is not None:
            product_id = view.item.product_id
        elif view.batch is not None:
            product_id = view.batch.product_id
        if product_id is not None:
            view.product = await session.get(Product, product_id)

        view.movements = list(
            (
                await session.execute(
                    select(InventoryMovement)
                    .where(InventoryMovement.barcode == code)
                    .order_by(InventoryMovement.created_at.desc(), InventoryMovement.id.desc())
                    .limit(int(movements_limit))
                )
            ).scalars().all()
        )
        return view

    @staticmethod
    async def product_stock(session: AsyncSession, product_id: int) -> ProductStock:
        product = await session.get(Product, int(product_id))
        if product is None:
            raise NotFound(f"product not found: {product_id}")

        rows = (
            await session.execute(
                select(
                    InventoryItem.warehouse_id,
                    InventoryItem.location_id,
                    func.coalesce(func.sum(InventoryItem.quantity), 0),
                    func.count(InventoryItem.id),
                )
                .where(
                    InventoryItem.product_id == int(product_id),
                    InventoryItem.status == InventoryStatus.AVAILABLE.value,
                )
                .group_by(InventoryItem.warehouse_id, InventoryItem.location_id)
                .order_by(InventoryItem.warehouse_id, InventoryItem.location_id)
            )
        ).all()
        locations = [
            LocationStock(warehouse_id=int(w), location_id=int(loc), quantity=int(q), boxes=int(n))
            for w, loc, q, n in rows
        ]

        reserved = (
            await session.execute(
                select(func.coalesce(func.sum(ReserveStock.quantity), 0)).where(
                    ReserveStock.product_id == int(product_id),
                    ReserveStock.status == ReservationStatus.PENDING.value,
                )
            )
        ).scalar_one()

        available = sum(x.quantity for x in locations)
        outstanding = await StockAvailabilityService.outstanding_approved(session, product_id)
        return ProductStock(
            product=product,
            available=available,
            reserved=int(reserved),
            outstanding_approved=outstanding,
            approvable=max(available - outstanding, 0),
            locations=locations,
        )
