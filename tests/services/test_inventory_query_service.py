# tests/services/test_inventory_query_service.py
from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from stockflow.services.barcode_generator import format_barcode_for_display
from stockflow.services.inventory_errors import NotFound
from stockflow.services.inventory_query_service import InventoryQueryService
from stockflow.services.stock_out_service import Pick, StockOutService
from tests.helpers.inventory import stock_boxes

pytestmark = pytest.mark.asyncio


async def _seeded(session, seed):
    codes = await stock_boxes(
        session,
        product_id=seed.product_id,
        warehouse_id=seed.warehouse_id,
        location_id=seed.location_id,
        boxes=2,
        qty=5,
    )
    codes += await stock_boxes(
        session,
        product_id=seed.product_id,
        warehouse_id=seed.warehouse_id,
        location_id=seed.other_location_id,
        boxes=1,
        qty=4,
    )
    so = StockOutService()
    req = await so.create_request(session, product_id=seed.product_id, quantity=5, requested_by="bob")
    await so.approve(session, req.id, actor="mgr")
    await so.fulfill(session, req.id, actor="picker", picks=[Pick(codes[0], 5)])
    return codes, req


async def test_list_movements_filters_and_pages(session: AsyncSession, seed):
    codes, req = await _seeded(session, seed)
    q = InventoryQueryService

    total, rows = await q.list_movements(session, product_id=seed.product_id)
    assert total == 4
    assert len(rows) == 4
    # 新的在前
    assert rows[0].movement_type == "out"

    total, rows = await q.list_movements(session, barcode=format_barcode_for_display(codes[0]).lower())
    assert total == 2
    assert {r.movement_type for r in rows} == {"in", "out"}

    total, _ = await q.list_movements(session, movement_type="in", location_id=seed.other_location_id)
    assert total == 1

    total, rows = await q.list_movements(session, reference_table="stock_out", reference_id=str(req.id))
    assert total == 1
    assert rows[0].performed_by == "picker"

    total, rows = await q.list_movements(session, limit=2, offset=2)
    assert total == 4
    assert len(rows) == 2


async def test_list_balances_hides_empty_by_default(session: AsyncSession, seed):
    codes, _ = await _seeded(session, seed)

    total, rows = await InventoryQueryService.list_balances(session, product_id=seed.product_id)
    assert total == 2
    assert codes[0] not in {r.barcode for r in rows}

    total, rows = await InventoryQueryService.list_balances(session, product_id=seed.product_id, include_empty=True)
    assert total == 3

    total, _ = await InventoryQueryService.list_balances(session, status="out_of_stock", include_empty=True)
    assert total == 1

    total, _ = await InventoryQueryService.list_balances(session, location_id=seed.other_location_id)
    assert total == 1


async def test_lookup_barcode(session: AsyncSession, seed):
    codes, _ = await _seeded(session, seed)

    view = await InventoryQueryService.lookup_barcode(session, format_barcode_for_display(codes[1]))
    assert view.found
    assert view.barcode == codes[1]
    assert view.check_digit_ok
    assert view.item.quantity == 5
    assert view.box.status == "available"
    assert view.batch.id == view.box.batch_id
    assert view.product.sku == "WIDG-001"
    assert [m.movement_type for m in view.movements] == ["in"]

    missing = await InventoryQueryService.lookup_barcode(session, "NOPE-0000")
    assert not missing.found
    assert missing.product is None
    assert missing.movements == []


async def test_product_stock_summary(session: AsyncSession, seed):
    empty = await InventoryQueryService.product_stock(session, seed.product_id)
    assert empty.available == 0
    assert empty.below_min_stock

    await _seeded(session, seed)
    stock = await InventoryQueryService.product_stock(session, seed.product_id)
    assert stock.available == 9
    assert stock.outstanding_approved == 0
    assert stock.approvable == 9
    assert not stock.below_min_stock
    assert [(x.location_id, x.quantity, x.boxes) for x in stock.locations] == [
        (seed.location_id, 5, 1),
        (seed.other_location_id, 4, 1),
    ]

    with pytest.raises(NotFound):
        await InventoryQueryService.product_stock(session, 9999)
