# stockflow/api/routers/inventory.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from stockflow.db.session import get_session
from stockflow.models.enums import MovementType
from stockflow.models.inventory_movement import InventoryMovement
from stockflow.schemas.inventory import (
    BalanceList,
    BalanceRow,
    BarcodeDiffOut,
    BarcodeLookupOut,
    LocationStockOut,
    MovementList,
    MovementQuery,
    MovementRow,
    ProductStockOut,
    ReconcileOut,
)
from stockflow.services.barcode_generator import format_barcode_for_display
from stockflow.services.inventory_query_service import InventoryQueryService
from stockflow.services.reconcile_service import ReconcileService

router = APIRouter(prefix="/inventory", tags=["inventory"])


def _movement_row(m: InventoryMovement) -> MovementRow:
    row = MovementRow.model_validate(m)
    row.signed_quantity = MovementType(m.movement_type).sign * int(m.quantity)
    return row


@router.post("/movements/query", response_model=MovementList)
async def query_movements(
    payload: MovementQuery,
    session: AsyncSession = Depends(get_session),
) -> MovementList:
    """
    查询库存台账明细（翻流水）：
    - 过滤条件见 MovementQuery，全部留空即总账视图；
    - 按 created_at 降序 + id 降序。
    """
    total, rows = await InventoryQueryService.list_movements(
        session,
        product_id=payload.product_id,
        warehouse_id=payload.warehouse_id,
        location_id=payload.location_id,
        barcode=payload.barcode,
        movement_type=payload.movement_type.value if payload.movement_type else None,
        status=payload.status.value if payload.status else None,
        reference_table=payload.reference_table.value if payload.reference_table else None,
        reference_id=payload.reference_id,
        time_from=payload.time_from,
        time_to=payload.time_to,
        limit=payload.limit,
        offset=payload.offset,
    )
    return MovementList(total=total, items=[_movement_row(m) for m in rows])


@router.get("/balances", response_model=BalanceList)
async def list_balances(
    session: AsyncSession = Depends(get_session),
    product_id: Optional[int] = Query(None),
    warehouse_id: Optional[int] = Query(None),
    location_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None, description="available / reserved / out_of_stock"),
    include_empty: bool = Query(False, description="是否包含数量为 0 的条码"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> BalanceList:
    total, rows = await InventoryQueryService.list_balances(
        session,
        product_id=product_id,
        warehouse_id=warehouse_id,
        location_id=location_id,
        status=status,
        include_empty=include_empty,
        limit=limit,
        offset=offset,
    )
    return BalanceList(total=total, items=[BalanceRow.model_validate(r) for r in rows])


@router.get("/barcodes/{barcode}", response_model=BarcodeLookupOut)
async def lookup_barcode(barcode: str, session: AsyncSession = Depends(get_session)) -> BarcodeLookupOut:
    """扫码查询：允许带 - / 空格的展示格式。"""
    view = await InventoryQueryService.lookup_barcode(session, barcode)
    return BarcodeLookupOut(
        barcode=view.barcode,
        display=format_barcode_for_display(view.barcode),
        check_digit_ok=view.check_digit_ok,
        found=view.found,
        product_id=view.product.id if view.product else None,
        product_name=view.product.name if view.product else None,
        sku=view.product.sku if view.product else None,
        batch_id=view.batch.id if view.batch else None,
        batch_number=view.batch.batch_number if view.batch else None,
        box_status=view.box.status if view.box else None,
        balance=BalanceRow.model_validate(view.item) if view.item else None,
        movements=[_movement_row(m) for m in view.movements],
    )


@router.get("/products/{product_id}/stock", response_model=ProductStockOut)
async def product_stock(product_id: int, session: AsyncSession = Depends(get_session)) -> ProductStockOut:
    s = await InventoryQueryService.product_stock(session, product_id)
    return ProductStockOut(
        product_id=s.product.id,
        sku=s.product.sku,
        name=s.product.name,
        unit=s.product.unit,
        available=s.available,
        reserved=s.reserved,
        outstanding_approved=s.outstanding_approved,
        approvable=s.approvable,
        min_stock_level=int(s.product.min_stock_level or 0),
        below_min_stock=s.below_min_stock,
        locations=[LocationStockOut.model_validate(x) for x in s.locations],
    )


@router.get("/products/{product_id}/available")
async def aggregate_available(
    product_id: int,
    session: AsyncSession = Depends(get_session),
    warehouse_id: Optional[int] = Query(None),
):
    qty = await InventoryQueryService.aggregate_available(session, product_id, warehouse_id=warehouse_id)
    return {"product_id": product_id, "warehouse_id": warehouse_id, "available": qty}


@router.get("/products/{product_id}/reconcile", response_model=ReconcileOut)
async def reconcile_product(product_id: int, session: AsyncSession = Depends(get_session)) -> ReconcileOut:
    """台账 / 余额对账（只读，不修正）。"""
    r = await ReconcileService.reconcile_product(session, product_id)
    return ReconcileOut(
        product_id=r.product_id,
        ok=r.ok,
        ledger_total=r.ledger_total,
        balance_total=r.balance_total,
        diffs=[
            BarcodeDiffOut(barcode=d.barcode, ledger_qty=d.ledger_qty, balance_qty=d.balance_qty, delta=d.delta)
            for d in r.diffs
        ],
    )
