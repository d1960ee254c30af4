# tests/services/test_inventory_reconcile.py
from __future__ import annotations

import logging

import pytest
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from stockflow.models.inventory_item import InventoryItem
from stockflow.services.reconcile_service import ReconcileService
from stockflow.services.reservation_service import ReservationService
from stockflow.services.stock_out_service import Pick, StockOutService
from stockflow.services.transfer_service import TransferService
from tests.helpers.inventory import stock_boxes, sum_available, sum_ledger

pytestmark = pytest.mark.asyncio


async def _assert_balanced(session: AsyncSession, product_id: int, expected: int) -> None:
    assert await sum_available(session, product_id) == expected
    assert await sum_ledger(session, product_id) == expected
    report = await ReconcileService.reconcile_product(session, product_id)
    assert report.ok, report.diffs
    assert report.ledger_total == report.balance_total == expected


async def test_replayed_operations_keep_ledger_and_balance_equal(session: AsyncSession, seed):
    """入库 → 预留 → 出库 → 取消预留 → 移库：每一步 Σ可用 = Σ台账。"""
    pid = seed.product_id
    codes = await stock_boxes(
        session, product_id=pid, warehouse_id=seed.warehouse_id, location_id=seed.location_id, boxes=3, qty=10
    )
    await _assert_balanced(session, pid, 30)

    res = await ReservationService().create(session, product_id=pid, customer_name="ACME", quantity=12, actor="s")
    await _assert_balanced(session, pid, 18)

    so = StockOutService()
    req = await so.create_request(session, product_id=pid, quantity=8, requested_by="bob")
    await so.approve(session, req.id, actor="mgr")
    await _assert_balanced(session, pid, 18)
    await so.fulfill(session, req.id, actor="picker", picks=[Pick(codes[2], 8)])
    await _assert_balanced(session, pid, 10)

    await ReservationService().cancel(session, res.id, actor="s")
    await _assert_balanced(session, pid, 22)

    tr = TransferService()
    t = await tr.create(
        session,
        barcode=codes[0],
        destination_warehouse_id=seed.other_warehouse_id,
        destination_location_id=seed.other_warehouse_location_id,
        requested_by="ops",
    )
    await tr.approve(session, t.id, actor="lead")
    await _assert_balanced(session, pid, 22)


async def test_drift_is_reported_not_repaired(session: AsyncSession, seed, caplog):
    codes = await stock_boxes(
        session,
        product_id=seed.product_id,
        warehouse_id=seed.warehouse_id,
        location_id=seed.location_id,
        boxes=2,
        qty=5,
    )
    # 绕过台账直接改余额
    await session.execute(update(InventoryItem).where(InventoryItem.barcode == codes[1]).values(quantity=9))
    await session.commit()

    caplog.set_level(logging.WARNING, logger="stockflow.reconcile")
    report = await ReconcileService.reconcile_product(session, seed.product_id)

    assert not report.ok
    assert report.ledger_total == 10
    assert report.balance_total == 14
    assert len(report.diffs) == 1
    diff = report.diffs[0]
    assert diff.barcode == codes[1]
    assert (diff.ledger_qty, diff.balance_qty, diff.delta) == (5, 9, 4)
    assert any("reconcile product=" in r.getMessage() for r in caplog.records)

    # 只读：再对一次结果不变
    again = await ReconcileService.reconcile_product(session, seed.product_id)
    assert again.diffs == report.diffs
