# tests/services/test_reservation_service.py
from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from stockflow.models.batch_item import BatchItem
from stockflow.models.inventory_movement import InventoryMovement
from stockflow.models.reservation import ReserveStock
from stockflow.services.inventory_errors import (
    InsufficientInventory,
    InvalidTransition,
    ReservationInUse,
    ValidationError,
)
from stockflow.services.inventory_query_service import InventoryQueryService
from stockflow.services.reservation_service import ReservationService
from stockflow.services.stock_out_service import Pick, StockOutService
from tests.helpers.inventory import qty_by_code, stock_boxes, sum_available, sum_ledger

pytestmark = pytest.mark.asyncio


async def _stock(session, seed, boxes: int = 2, qty: int = 10):
    return await stock_boxes(
        session,
        product_id=seed.product_id,
        warehouse_id=seed.warehouse_id,
        location_id=seed.location_id,
        boxes=boxes,
        qty=qty,
    )


async def _box_status(session: AsyncSession, barcode: str) -> str:
    return (
        await session.execute(
            select(BatchItem.status)
            .where(BatchItem.barcode == barcode)
            .execution_options(populate_existing=True)
        )
    ).scalar_one()


async def _reserve(session, seed, qty: int):
    return await ReservationService().create(
        session,
        product_id=seed.product_id,
        customer_name="  ACME Corp ",
        quantity=qty,
        actor="sales",
        start_date=date(2026, 3, 1),
        end_date=date(2026, 3, 31),
    )


async def test_create_allocates_fifo_and_holds_stock(session: AsyncSession, seed):
    codes = await _stock(session, seed)
    svc = ReservationService()

    res = await _reserve(session, seed, 15)
    assert res.status == "pending"
    assert res.customer_name == "ACME Corp"

    allocs = await svc.allocations(session, res.id)
    assert [(a.barcode, a.quantity) for a in allocs] == [(codes[0], 10), (codes[1], 5)]

    assert await qty_by_code(session, seed.product_id) == {codes[0]: 0, codes[1]: 5}
    assert await sum_available(session, seed.product_id) == 5
    assert await sum_ledger(session, seed.product_id) == 5
    assert await _box_status(session, codes[0]) == "reserved"

    moves = (
        await session.execute(
            select(InventoryMovement.movement_type, InventoryMovement.quantity)
            .where(InventoryMovement.reference_table == "reservation")
            .order_by(InventoryMovement.id)
        )
    ).all()
    assert [tuple(m) for m in moves] == [("reserve", 10), ("reserve", 5)]

    stock = await InventoryQueryService.product_stock(session, seed.product_id)
    assert stock.reserved == 15
    assert stock.available == 5


async def test_cancel_releases_every_allocation(session: AsyncSession, seed):
    codes = await _stock(session, seed)
    svc = ReservationService()
    res = await _reserve(session, seed, 15)

    cancelled = await svc.cancel(session, res.id, actor="sales", reason="order dropped")
    assert cancelled.status == "cancelled"

    assert await qty_by_code(session, seed.product_id) == {codes[0]: 10, codes[1]: 10}
    assert await sum_available(session, seed.product_id) == 20
    assert await sum_ledger(session, seed.product_id) == 20
    assert await _box_status(session, codes[0]) == "available"
    assert await _box_status(session, codes[1]) == "available"

    with pytest.raises(InvalidTransition):
        await svc.complete(session, res.id, actor="sales")
    with pytest.raises(InvalidTransition):
        await svc.cancel(session, res.id, actor="sales")


async def test_complete_keeps_stock_consumed(session: AsyncSession, seed):
    await _stock(session, seed)
    svc = ReservationService()
    res = await _reserve(session, seed, 12)

    done = await svc.complete(session, res.id, actor="sales")
    assert done.status == "completed"
    assert await sum_available(session, seed.product_id) == 8
    assert await sum_ledger(session, seed.product_id) == 8


async def test_reserve_more_than_approvable_fails_cleanly(session: AsyncSession, seed):
    await _stock(session, seed)

    with pytest.raises(InsufficientInventory):
        await _reserve(session, seed, 21)

    # 已审批未履约的出库占用可审批量
    so = StockOutService()
    req = await so.create_request(session, product_id=seed.product_id, quantity=15, requested_by="bob")
    await so.approve(session, req.id, actor="mgr")
    with pytest.raises(InsufficientInventory):
        await _reserve(session, seed, 6)

    assert await sum_available(session, seed.product_id) == 20
    assert await sum_ledger(session, seed.product_id) == 20
    assert (await session.execute(select(InventoryMovement).where(InventoryMovement.movement_type == "reserve"))).all() == []


async def test_create_validation(session: AsyncSession, seed):
    svc = ReservationService()
    with pytest.raises(ValidationError):
        await svc.create(session, product_id=seed.product_id, customer_name="ACME", quantity=0, actor="sales")
    with pytest.raises(ValidationError):
        await svc.create(session, product_id=seed.product_id, customer_name="  ", quantity=1, actor="sales")
    with pytest.raises(ValidationError):
        await svc.create(
            session,
            product_id=seed.product_id,
            customer_name="ACME",
            quantity=1,
            actor="sales",
            start_date=date(2026, 3, 2),
            end_date=date(2026, 3, 1),
        )


async def test_stock_out_against_reservation_consumes_allocations(session: AsyncSession, seed):
    codes = await _stock(session, seed)
    res = await _reserve(session, seed, 15)

    so = StockOutService()
    with pytest.raises(ValidationError):
        await so.create_request(
            session, product_id=seed.product_id, quantity=16, requested_by="bob", reservation_id=res.id
        )

    req = await so.create_request(
        session, product_id=seed.product_id, quantity=12, requested_by="bob", reservation_id=res.id
    )
    approved = await so.approve(session, req.id, actor="mgr")
    assert approved.approved_quantity == 12

    done = await so.fulfill(session, req.id, actor="picker")
    assert done.status == "completed"

    lines = await so.lines(session, req.id)
    assert [(x.barcode, x.quantity) for x in lines] == [(codes[0], 10), (codes[1], 2)]

    res_now = await session.get(ReserveStock, res.id, populate_existing=True)
    assert res_now.status == "completed"

    # 多占的 3 随履约释放回可用
    assert await qty_by_code(session, seed.product_id) == {codes[0]: 0, codes[1]: 8}
    assert await sum_available(session, seed.product_id) == 8
    assert await sum_ledger(session, seed.product_id) == 8


async def _linked(so: StockOutService, session, seed, res_id: int, qty: int):
    return await so.create_request(
        session, product_id=seed.product_id, quantity=qty, requested_by="bob", reservation_id=res_id
    )


async def test_reservation_carries_one_open_stock_out_at_a_time(session: AsyncSession, seed):
    await _stock(session, seed)
    res = await _reserve(session, seed, 10)
    so = StockOutService()

    first = await _linked(so, session, seed, res.id, 10)
    with pytest.raises(ReservationInUse) as ei:
        await _linked(so, session, seed, res.id, 10)
    assert ei.value.stock_out_ids == [first.id]

    approved = await so.approve(session, first.id, actor="mgr")
    with pytest.raises(ReservationInUse):
        await _linked(so, session, seed, res.id, 5)

    stock = await InventoryQueryService.product_stock(session, seed.product_id)
    assert approved.approved_quantity <= stock.reserved == 10

    # 被驳回的单不再占着预留
    other = await _reserve(session, seed, 5)
    dropped = await _linked(so, session, seed, other.id, 5)
    await so.reject(session, dropped.id, actor="mgr")
    again = await _linked(so, session, seed, other.id, 5)
    assert again.status == "pending"


async def test_open_stock_out_blocks_cancel_and_complete(session: AsyncSession, seed):
    codes = await _stock(session, seed)
    res = await _reserve(session, seed, 10)
    so = StockOutService()
    svc = ReservationService()

    linked = await so.approve(session, (await _linked(so, session, seed, res.id, 10)).id, actor="mgr")
    assert linked.approved_quantity == 10

    with pytest.raises(ReservationInUse):
        await svc.cancel(session, res.id, actor="sales")
    with pytest.raises(ReservationInUse):
        await svc.complete(session, res.id, actor="sales")

    res_now = await session.get(ReserveStock, res.id, populate_existing=True)
    assert res_now.status == "pending"
    assert await sum_available(session, seed.product_id) == 10

    # 预留的货没被放出来：非预留出库最多批到剩余的 10
    plain = await so.create_request(session, product_id=seed.product_id, quantity=20, requested_by="carol")
    plain = await so.approve(session, plain.id, actor="mgr")
    assert plain.approved_quantity == 10
    assert linked.approved_quantity + plain.approved_quantity <= 20

    done = await so.fulfill(session, linked.id, actor="picker")
    assert done.status == "completed"
    res_now = await session.get(ReserveStock, res.id, populate_existing=True)
    assert res_now.status == "completed"

    await so.fulfill(session, plain.id, actor="picker", picks=[Pick(codes[1], 10)])
    assert await sum_available(session, seed.product_id) == 0
    assert await sum_ledger(session, seed.product_id) == 0


async def test_cancel_allowed_once_linked_stock_out_is_rejected(session: AsyncSession, seed):
    await _stock(session, seed)
    res = await _reserve(session, seed, 4)
    so = StockOutService()
    svc = ReservationService()

    pending = await _linked(so, session, seed, res.id, 4)
    with pytest.raises(ReservationInUse):
        await svc.cancel(session, res.id, actor="sales")

    await so.reject(session, pending.id, actor="mgr", reason="customer changed order")
    cancelled = await svc.cancel(session, res.id, actor="sales")
    assert cancelled.status == "cancelled"
    assert await sum_available(session, seed.product_id) == 20
