# tests/api/test_stockflow_api.py
from __future__ import annotations

import pytest
from httpx import AsyncClient

pytestmark = pytest.mark.asyncio


async def _stock_in(client: AsyncClient, seed, *, boxes: int = 3, qty: int = 10, location_id=None) -> list[str]:
    r = await client.post(
        "/stock-in/batches",
        json={
            "product_id": seed.product_id,
            "warehouse_id": seed.warehouse_id,
            "location_id": location_id or seed.location_id,
            "box_count": boxes,
            "quantity_per_box": qty,
            "color": "red",
            "actor": "alice",
        },
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["request"]["status"] == "completed"
    return [b["barcode"] for b in body["batches"][0]["boxes"]]


async def test_health_and_root(client: AsyncClient):
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json()["ok"] is True
    assert r.json()["db"] == "up"

    r = await client.get("/")
    assert r.status_code == 200
    assert r.json()["name"] == "StockFlow"


async def test_stock_in_then_stock_out_end_to_end(client: AsyncClient, seed):
    codes = await _stock_in(client, seed)
    assert len(codes) == 3

    r = await client.get(f"/inventory/products/{seed.product_id}/available")
    assert r.json()["available"] == 30

    r = await client.post(
        "/stock-out",
        json={"product_id": seed.product_id, "quantity": 50, "requested_by": "bob", "priority": "high"},
    )
    assert r.status_code == 201, r.text
    so_id = r.json()["id"]
    assert r.json()["status"] == "pending"

    r = await client.post(f"/stock-out/{so_id}/approve", json={"actor": "mgr"})
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "approved"
    assert r.json()["approved_quantity"] == 30

    r = await client.post(f"/stock-out/{so_id}/approve", json={"actor": "mgr"})
    assert r.status_code == 409
    assert r.json()["error_code"] == "INVALID_TRANSITION"

    r = await client.post(
        f"/stock-out/{so_id}/fulfill",
        json={"actor": "picker", "picks": [{"barcode": c, "quantity": 10} for c in codes]},
    )
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "completed"
    assert len(r.json()["lines"]) == 3

    r = await client.get(f"/inventory/products/{seed.product_id}/reconcile")
    assert r.json()["ok"] is True
    assert r.json()["ledger_total"] == 0

    r = await client.post("/inventory/movements/query", json={"product_id": seed.product_id})
    assert r.status_code == 200, r.text
    assert r.json()["total"] == 6
    assert sum(m["signed_quantity"] for m in r.json()["items"]) == 0


async def test_barcode_lookup_accepts_display_format(client: AsyncClient, seed):
    codes = await _stock_in(client, seed, boxes=1)
    shown = "-".join(codes[0][i : i + 4] for i in range(0, len(codes[0]), 4))

    r = await client.get(f"/inventory/barcodes/{shown}")
    assert r.status_code == 200
    body = r.json()
    assert body["found"] is True
    assert body["barcode"] == codes[0]
    assert body["sku"] == "WIDG-001"
    assert body["balance"]["quantity"] == 10

    r = await client.get("/inventory/barcodes/NOPE0000")
    assert r.json()["found"] is False


async def test_error_shapes(client: AsyncClient, seed):
    r = await client.post("/stock-out", json={"product_id": seed.product_id, "quantity": 5, "requested_by": "bob"})
    so_id = r.json()["id"]

    r = await client.post(f"/stock-out/{so_id}/approve", json={"actor": "mgr"})
    assert r.status_code == 409
    body = r.json()
    assert body["error_code"] == "INSUFFICIENT_INVENTORY"
    assert body["http_status"] == 409
    assert body["details"][0]["short_qty"] == 5

    r = await client.post("/stock-out", json={"product_id": seed.product_id, "quantity": 0, "requested_by": "bob"})
    assert r.status_code == 422
    assert r.json()["error_code"] == "VALIDATION_ERROR"

    r = await client.get("/stock-out/9999")
    assert r.status_code == 404
    assert r.json()["error_code"] == "NOT_FOUND"


async def test_stock_in_request_lifecycle(client: AsyncClient, seed):
    r = await client.post("/stock-in", json={"product_id": seed.product_id, "boxes": 3, "submitted_by": "dock"})
    assert r.status_code == 201, r.text
    sid = r.json()["id"]
    assert r.json()["status"] == "pending"

    r = await client.post(
        f"/stock-in/{sid}/process",
        json={
            "actor": "alice",
            "lines": [
                {"warehouse_id": seed.warehouse_id, "location_id": seed.location_id, "box_count": 2, "quantity_per_box": 5},
                {
                    "warehouse_id": seed.warehouse_id,
                    "location_id": seed.other_location_id,
                    "box_count": 1,
                    "quantity_per_box": 7,
                },
            ],
        },
    )
    assert r.status_code == 200, r.text
    assert r.json()["request"]["status"] == "completed"
    assert len(r.json()["batches"]) == 2

    r = await client.get(f"/stock-in/{sid}/details")
    assert len(r.json()) == 3
    assert {d["status"] for d in r.json()} == {"completed"}

    r = await client.post(f"/stock-in/{sid}/reject", json={"actor": "lead"})
    assert r.status_code == 409


async def test_reservation_and_transfer_endpoints(client: AsyncClient, seed):
    codes = await _stock_in(client, seed, boxes=2)

    r = await client.post(
        "/reservations",
        json={"product_id": seed.product_id, "customer_name": "ACME", "quantity": 4, "actor": "sales"},
    )
    assert r.status_code == 201, r.text
    res_id = r.json()["id"]
    assert [(a["barcode"], a["quantity"]) for a in r.json()["allocations"]] == [(codes[0], 4)]

    r = await client.post(f"/reservations/{res_id}/cancel", json={"actor": "sales"})
    assert r.status_code == 200
    assert r.json()["status"] == "cancelled"

    r = await client.post(
        "/transfers",
        json={
            "barcode": codes[1],
            "destination_warehouse_id": seed.other_warehouse_id,
            "destination_location_id": seed.other_warehouse_location_id,
            "requested_by": "ops",
        },
    )
    assert r.status_code == 201, r.text
    tid = r.json()["id"]

    r = await client.post(f"/transfers/{tid}/approve", json={"actor": "lead"})
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "approved"

    r = await client.get(
        f"/inventory/products/{seed.product_id}/available", params={"warehouse_id": seed.other_warehouse_id}
    )
    assert r.json()["available"] == 10


async def test_metrics_exposed(client: AsyncClient, seed):
    await _stock_in(client, seed, boxes=1)
    r = await client.get("/metrics")
    assert r.status_code == 200
    assert "stockflow_boxes_created_total" in r.text
