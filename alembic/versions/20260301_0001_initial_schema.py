"""initial schema: master data, stock-in / batches / boxes, balances, ledger, stock-out, reservations, transfers, audit

Revision ID: 20260301_0001
Revises:
Create Date: 2026-03-01 09:00:00
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

revision = "20260301_0001"
down_revision = None
branch_labels = None
depends_on = None

JSONType = sa.JSON().with_variant(JSONB(), "postgresql")


def _ts(name: str, *, nullable: bool = False, server_now: bool = True) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=nullable,
        server_default=sa.func.now() if server_now else None,
    )


def upgrade() -> None:
    # -------- 主数据 --------
    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("sku", sa.String(64), nullable=False, unique=True),
        sa.Column("category", sa.String(64), nullable=True),
        sa.Column("unit", sa.String(8), nullable=False, server_default=sa.text("'PCS'")),
        sa.Column("min_stock_level", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_table(
        "warehouses",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("location", sa.String(255), nullable=True),
    )
    op.create_table(
        "locations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("warehouse_id", sa.Integer(), sa.ForeignKey("warehouses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("floor", sa.String(32), nullable=False),
        sa.Column("zone", sa.String(32), nullable=False),
    )
    op.create_index("ix_locations_warehouse_id", "locations", ["warehouse_id"])

    # -------- 入库 / 批次 / 箱 --------
    op.create_table(
        "stock_in_requests",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("boxes", sa.Integer(), nullable=False),
        sa.Column("source", sa.String(64), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("submitted_by", sa.String(64), nullable=False),
        sa.Column("processed_by", sa.String(64), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        _ts("processing_started_at", nullable=True, server_now=False),
        _ts("processing_completed_at", nullable=True, server_now=False),
        _ts("created_at"),
        sa.CheckConstraint("boxes > 0", name="ck_stock_in_requests_boxes_pos"),
    )
    op.create_index("ix_stock_in_requests_status", "stock_in_requests", ["status"])

    op.create_table(
        "batches",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "stock_in_id", sa.Integer(), sa.ForeignKey("stock_in_requests.id", ondelete="RESTRICT"), nullable=False
        ),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), sa.ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("batch_number", sa.String(32), nullable=True, unique=True),
        sa.Column("total_boxes", sa.Integer(), nullable=False),
        sa.Column("total_quantity", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("created_by", sa.String(64), nullable=False),
        _ts("created_at"),
        _ts("completed_at", nullable=True, server_now=False),
        sa.CheckConstraint("total_boxes >= 0", name="ck_batches_total_boxes_nonneg"),
        sa.CheckConstraint("total_quantity >= 0", name="ck_batches_total_qty_nonneg"),
    )
    op.create_index("ix_batches_product_id", "batches", ["product_id"])
    op.create_index("ix_batches_stock_in_id", "batches", ["stock_in_id"])

    op.create_table(
        "batch_items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("batch_id", sa.Integer(), sa.ForeignKey("batches.id", ondelete="CASCADE"), nullable=False),
        sa.Column("barcode", sa.String(64), nullable=False, unique=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("color", sa.String(32), nullable=True),
        sa.Column("size", sa.String(32), nullable=True),
        sa.Column("warehouse_id", sa.Integer(), sa.ForeignKey("warehouses.id"), nullable=False),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id"), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        _ts("created_at"),
        sa.CheckConstraint("quantity > 0", name="ck_batch_items_qty_pos"),
    )
    op.create_index("ix_batch_items_batch_id", "batch_items", ["batch_id"])

    op.create_table(
        "stock_in_details",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "stock_in_id", sa.Integer(), sa.ForeignKey("stock_in_requests.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("batch_id", sa.Integer(), sa.ForeignKey("batches.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("barcode", sa.String(64), nullable=True, unique=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("color", sa.String(32), nullable=True),
        sa.Column("size", sa.String(32), nullable=True),
        sa.Column("processing_order", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("error_code", sa.String(32), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        _ts("created_at"),
    )
    op.create_index("ix_stock_in_details_stock_in", "stock_in_details", ["stock_in_id", "processing_order"])

    # -------- 余额 / 台账 --------
    op.create_table(
        "inventory_items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), sa.ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("barcode", sa.String(64), nullable=False, unique=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("color", sa.String(32), nullable=True),
        sa.Column("size", sa.String(32), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("batch_id", sa.Integer(), sa.ForeignKey("batches.id", ondelete="SET NULL"), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.CheckConstraint("quantity >= 0", name="ck_inventory_items_qty_nonneg"),
    )
    op.create_index("ix_inventory_items_product_status", "inventory_items", ["product_id", "status"])
    op.create_index("ix_inventory_items_wh_loc", "inventory_items", ["warehouse_id", "location_id"])

    op.create_table(
        "inventory_movements",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("barcode", sa.String(64), nullable=True),
        sa.Column("movement_type", sa.String(16), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("reference_table", sa.String(32), nullable=False),
        sa.Column("reference_id", sa.String(64), nullable=False),
        sa.Column("performed_by", sa.String(64), nullable=False),
        _ts("created_at"),
        sa.Column("details", JSONType, nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_inventory_movements_qty_pos"),
    )
    op.create_index("ix_inventory_movements_product_id", "inventory_movements", ["product_id"])
    op.create_index("ix_inventory_movements_barcode", "inventory_movements", ["barcode"])
    op.create_index("ix_movements_dims", "inventory_movements", ["product_id", "warehouse_id", "location_id"])
    op.create_index("ix_movements_ref", "inventory_movements", ["reference_table", "reference_id"])
    op.create_index("ix_movements_created_at", "inventory_movements", ["created_at"])

    # -------- 出库 / 预留 / 移库 --------
    op.create_table(
        "reserve_stocks",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("customer_name", sa.String(128), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("created_by", sa.String(64), nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
        sa.CheckConstraint("quantity > 0", name="ck_reserve_stocks_qty_pos"),
    )
    op.create_index("ix_reserve_stocks_product_status", "reserve_stocks", ["product_id", "status"])

    op.create_table(
        "reservation_allocations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "reservation_id", sa.Integer(), sa.ForeignKey("reserve_stocks.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("barcode", sa.String(64), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        _ts("created_at"),
        sa.CheckConstraint("quantity > 0", name="ck_reservation_allocations_qty_pos"),
    )
    op.create_index("ix_resalloc_reservation", "reservation_allocations", ["reservation_id"])

    op.create_table(
        "stock_out_requests",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("approved_quantity", sa.Integer(), nullable=True),
        sa.Column("destination", sa.String(255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("priority", sa.String(16), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("requested_by", sa.String(64), nullable=False),
        sa.Column("approved_by", sa.String(64), nullable=True),
        sa.Column("rejected_by", sa.String(64), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("completed_by", sa.String(64), nullable=True),
        sa.Column(
            "reservation_id", sa.Integer(), sa.ForeignKey("reserve_stocks.id", ondelete="SET NULL"), nullable=True
        ),
        _ts("created_at"),
        _ts("approved_at", nullable=True, server_now=False),
        _ts("completed_at", nullable=True, server_now=False),
        sa.CheckConstraint("quantity > 0", name="ck_stock_out_requests_qty_pos"),
        sa.CheckConstraint(
            "approved_quantity IS NULL OR (approved_quantity > 0 AND approved_quantity <= quantity)",
            name="ck_stock_out_requests_approved_qty",
        ),
    )
    op.create_index("ix_stock_out_requests_product_status", "stock_out_requests", ["product_id", "status"])

    op.create_table(
        "stock_out_lines",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "stock_out_id", sa.Integer(), sa.ForeignKey("stock_out_requests.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("barcode", sa.String(64), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("processed_by", sa.String(64), nullable=False),
        _ts("processed_at"),
        sa.CheckConstraint("quantity > 0", name="ck_stock_out_lines_qty_pos"),
    )
    op.create_index("ix_stock_out_lines_stock_out", "stock_out_lines", ["stock_out_id"])

    op.create_table(
        "transfer_requests",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("barcode", sa.String(64), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("source_warehouse_id", sa.Integer(), sa.ForeignKey("warehouses.id"), nullable=False),
        sa.Column("source_location_id", sa.Integer(), sa.ForeignKey("locations.id"), nullable=False),
        sa.Column("destination_warehouse_id", sa.Integer(), sa.ForeignKey("warehouses.id"), nullable=False),
        sa.Column("destination_location_id", sa.Integer(), sa.ForeignKey("locations.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(128), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("requested_by", sa.String(64), nullable=False),
        sa.Column("approved_by", sa.String(64), nullable=True),
        sa.Column("rejected_by", sa.String(64), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        _ts("created_at"),
        _ts("decided_at", nullable=True, server_now=False),
        sa.CheckConstraint("quantity > 0", name="ck_transfer_requests_qty_pos"),
    )
    op.create_index("ix_transfer_requests_status", "transfer_requests", ["status"])
    op.create_index("ix_transfer_requests_barcode", "transfer_requests", ["barcode"])

    # -------- 审计 --------
    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("category", sa.String(64), nullable=False),
        sa.Column("ref", sa.String(128), nullable=False),
        sa.Column("barcode", sa.String(64), nullable=True),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("actor", sa.String(64), nullable=True),
        _ts("created_at"),
        sa.Column("meta", JSONType, nullable=False),
    )
    op.create_index("ix_audit_events_category", "audit_events", ["category"])
    op.create_index("ix_audit_events_ref", "audit_events", ["ref"])
    op.create_index("ix_audit_events_barcode", "audit_events", ["barcode"])


def downgrade() -> None:
    for table in (
        "audit_events",
        "transfer_requests",
        "stock_out_lines",
        "stock_out_requests",
        "reservation_allocations",
        "reserve_stocks",
        "inventory_movements",
        "inventory_items",
        "stock_in_details",
        "batch_items",
        "batches",
        "stock_in_requests",
        "locations",
        "warehouses",
        "products",
    ):
        op.drop_table(table)
