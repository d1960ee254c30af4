# stockflow/models/transfer.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from stockflow.db.base import Base
from stockflow.utils.time import utcnow


class TransferRequest(Base):
    """
    库位间移库申请（以箱为单位）：

        pending → approved | rejected

    审批通过时在同一事务内：
      - 来源库位写 out 台账、目的库位写 in 台账（reference 均为本单）
      - inventory_items / batch_items 的 warehouse_id / location_id 改到目的库位
    """

    __tablename__ = "transfer_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    barcode: Mapped[str] = mapped_column(String(64), nullable=False)
    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False
    )

    source_warehouse_id: Mapped[int] = mapped_column(Integer, ForeignKey("warehouses.id"), nullable=False)
    source_location_id: Mapped[int] = mapped_column(Integer, ForeignKey("locations.id"), nullable=False)
    destination_warehouse_id: Mapped[int] = mapped_column(Integer, ForeignKey("warehouses.id"), nullable=False)
    destination_location_id: Mapped[int] = mapped_column(Integer, ForeignKey("locations.id"), nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")

    requested_by: Mapped[str] = mapped_column(String(64), nullable=False)
    approved_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    rejected_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    decided_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_transfer_requests_qty_pos"),
        Index("ix_transfer_requests_status", "status"),
        Index("ix_transfer_requests_barcode", "barcode"),
    )

    def __repr__(self) -> str:
        return (
            f"<TransferRequest id={self.id} code={self.barcode} "
            f"{self.source_warehouse_id}/{self.source_location_id} -> "
            f"{self.destination_warehouse_id}/{self.destination_location_id} status={self.status}>"
        )
