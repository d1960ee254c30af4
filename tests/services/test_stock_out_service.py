# tests/services/test_stock_out_service.py
from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stockflow.models.enums import MovementType, ReferenceTable
from stockflow.models.stock_out import StockOutRequest
from stockflow.services.inventory_errors import (
    InsufficientInventory,
    InvalidTransition,
    NotFound,
    ValidationError,
)
from stockflow.services.inventory_ledger_service import InventoryLedgerService, MovementChange
from stockflow.services.stock_availability_service import StockAvailabilityService
from stockflow.services.stock_out_service import Pick, StockOutService
from tests.helpers.inventory import min_balance, qty_by_code, stock_boxes, sum_available, sum_ledger
from tests.utils.concurrency import run_concurrently

pytestmark = pytest.mark.asyncio


async def _stock(session, seed, boxes: int, qty: int):
    return await stock_boxes(
        session,
        product_id=seed.product_id,
        warehouse_id=seed.warehouse_id,
        location_id=seed.location_id,
        boxes=boxes,
        qty=qty,
    )


async def _request(session, seed, qty: int, **kw) -> StockOutRequest:
    return await StockOutService().create_request(
        session, product_id=seed.product_id, quantity=qty, requested_by="bob", **kw
    )


async def test_approve_caps_at_available(session: AsyncSession, seed):
    """可用 30，申请 50：部分审批 30，状态 approved（不是 rejected）。"""
    await _stock(session, seed, 3, 10)
    req = await _request(session, seed, 50, destination="Shop 12", priority="high")
    assert req.status == "pending"
    assert req.priority == "high"

    approved = await StockOutService().approve(session, req.id, actor="mgr")
    assert approved.status == "approved"
    assert approved.approved_quantity == 30
    assert approved.approved_by == "mgr"
    assert approved.approved_at is not None

    # 审批不动库存
    assert await sum_available(session, seed.product_id) == 30
    assert await StockAvailabilityService.approvable(session, seed.product_id) == 0


async def test_strict_policy_rejects_short_approval(session: AsyncSession, seed, settings_env):
    settings_env(STOCK_OUT_APPROVE_PARTIAL="false")
    await _stock(session, seed, 3, 10)
    req = await _request(session, seed, 50)

    with pytest.raises(InsufficientInventory) as ei:
        await StockOutService().approve(session, req.id, actor="mgr")
    assert ei.value.requested == 50
    assert ei.value.available == 30

    again = await StockOutService().get(session, req.id)
    await session.refresh(again)
    assert again.status == "pending"
    assert again.approved_quantity is None


async def test_nothing_available_raises(session: AsyncSession, seed):
    req = await _request(session, seed, 5)
    with pytest.raises(InsufficientInventory):
        await StockOutService().approve(session, req.id, actor="mgr")


async def test_outstanding_approvals_reduce_approvable(session: AsyncSession, seed):
    await _stock(session, seed, 3, 10)
    svc = StockOutService()
    a = await svc.approve(session, (await _request(session, seed, 20)).id, actor="mgr")
    b = await svc.approve(session, (await _request(session, seed, 20)).id, actor="mgr")

    assert a.approved_quantity == 20
    assert b.approved_quantity == 10
    assert await StockAvailabilityService.outstanding_approved(session, seed.product_id) == 30

    with pytest.raises(InsufficientInventory):
        await svc.approve(session, (await _request(session, seed, 1)).id, actor="mgr")


async def test_explicit_approved_quantity_bounds(session: AsyncSession, seed):
    await _stock(session, seed, 1, 10)
    req = await _request(session, seed, 8)
    svc = StockOutService()

    with pytest.raises(ValidationError):
        await svc.approve(session, req.id, actor="mgr", approved_quantity=9)
    approved = await svc.approve(session, req.id, actor="mgr", approved_quantity=6)
    assert approved.approved_quantity == 6


async def test_concurrent_approvals_never_exceed_available(async_session_maker, seed):
    """
    可用 25，两张 20 的出库单并发审批：
    一张全额 20，另一张封顶 5；两单履约后余额 0，从不为负。
    """
    async with async_session_maker() as s:
        codes = await _stock(s, seed, 2, 10)
        codes += await _stock(s, seed, 1, 5)
        ids = [(await _request(s, seed, 20)).id for _ in range(2)]

    async def approve(i: int):
        async with async_session_maker() as s:
            req = await StockOutService().approve(s, ids[i], actor=f"mgr-{i}")
            return req.id, req.approved_quantity

    results = await run_concurrently(2, approve)
    assert not [r for r in results if isinstance(r, Exception)]
    granted = dict(results)
    assert sorted(granted.values()) == [5, 20]

    full_id = next(k for k, v in granted.items() if v == 20)
    capped_id = next(k for k, v in granted.items() if v == 5)

    async with async_session_maker() as s:
        svc = StockOutService()
        await svc.fulfill(s, full_id, actor="picker", picks=[Pick(codes[0], 10), Pick(codes[1], 10)])
        await svc.fulfill(s, capped_id, actor="picker", picks=[Pick(codes[2], 5)])

        assert await sum_available(s, seed.product_id) == 0
        assert await min_balance(s) >= 0
        assert await sum_ledger(s, seed.product_id) == 0


async def test_fulfill_writes_lines_and_completes(session: AsyncSession, seed):
    codes = await _stock(session, seed, 2, 10)
    svc = StockOutService()
    req = await _request(session, seed, 15)
    await svc.approve(session, req.id, actor="mgr")
    started = await svc.start_processing(session, req.id, actor="picker")
    assert started.status == "processing"

    done = await svc.fulfill(session, req.id, actor="picker", picks=[Pick(codes[0], 10), Pick(codes[1], 5)])
    assert done.status == "completed"
    assert done.completed_by == "picker"

    lines = await svc.lines(session, req.id)
    assert [(x.barcode, x.quantity) for x in lines] == [(codes[0], 10), (codes[1], 5)]

    balances = await qty_by_code(session, seed.product_id)
    assert balances == {codes[0]: 0, codes[1]: 5}
    assert await sum_ledger(session, seed.product_id) == 5

    with pytest.raises(InvalidTransition):
        await svc.fulfill(session, req.id, actor="picker", picks=[Pick(codes[1], 5)])


async def test_fulfill_revalidates_balance(session: AsyncSession, seed):
    """审批后余额被其它动账扣走：履约时 InsufficientInventory，整单不落。"""
    codes = await _stock(session, seed, 2, 10)
    svc = StockOutService()
    req = await _request(session, seed, 20)
    await svc.approve(session, req.id, actor="mgr")

    await InventoryLedgerService().record_stock_out(
        session,
        MovementChange(
            product_id=seed.product_id,
            warehouse_id=seed.warehouse_id,
            location_id=seed.location_id,
            barcode=codes[1],
            quantity=4,
            actor="qa",
            reference_table=ReferenceTable.STOCK_OUT,
            reference_id="damage-1",
            movement_type=MovementType.OUT,
            notes="damaged",
        ),
    )

    with pytest.raises(InsufficientInventory):
        await svc.fulfill(session, req.id, actor="picker", picks=[Pick(codes[0], 10), Pick(codes[1], 10)])

    # 第一条码的扣减随整单回滚
    balances = await qty_by_code(session, seed.product_id)
    assert balances == {codes[0]: 10, codes[1]: 6}
    assert await svc.lines(session, req.id) == []
    still = await svc.get(session, req.id)
    await session.refresh(still)
    assert still.status == "approved"


async def test_fulfill_pick_validation(session: AsyncSession, seed):
    codes = await _stock(session, seed, 1, 10)
    svc = StockOutService()
    req = await _request(session, seed, 5)
    await svc.approve(session, req.id, actor="mgr")

    with pytest.raises(ValidationError):
        await svc.fulfill(session, req.id, actor="picker", picks=[Pick(codes[0], 4)])
    with pytest.raises(NotFound):
        await svc.fulfill(session, req.id, actor="picker", picks=[Pick("NOSUCHBOX", 5)])


async def test_reject_and_illegal_transitions(session: AsyncSession, seed):
    await _stock(session, seed, 1, 10)
    svc = StockOutService()
    req = await _request(session, seed, 5)

    with pytest.raises(InvalidTransition):
        await svc.fulfill(session, req.id, actor="picker", picks=[Pick("X", 5)])
    with pytest.raises(InvalidTransition):
        await svc.start_processing(session, req.id, actor="picker")

    rejected = await svc.reject(session, req.id, actor="mgr", reason="customer cancelled")
    assert rejected.status == "rejected"
    assert rejected.rejection_reason == "customer cancelled"

    with pytest.raises(InvalidTransition):
        await svc.approve(session, req.id, actor="mgr")


async def test_create_request_validation(session: AsyncSession, seed):
    svc = StockOutService()
    with pytest.raises(ValidationError):
        await svc.create_request(session, product_id=seed.product_id, quantity=0, requested_by="bob")
    with pytest.raises(ValidationError):
        await svc.create_request(session, product_id=seed.product_id, quantity=1, requested_by="bob", priority="asap")
    with pytest.raises(NotFound):
        await svc.create_request(session, product_id=9999, quantity=1, requested_by="bob")
    with pytest.raises(NotFound):
        await svc.create_request(session, product_id=seed.product_id, quantity=1, requested_by="bob", reservation_id=77)

    rows = (await session.execute(select(StockOutRequest))).scalars().all()
    assert rows == []
