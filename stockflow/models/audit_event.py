from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from stockflow.db.base import Base
from stockflow.models.inventory_movement import JSONType
from stockflow.utils.time import utcnow


class AuditEvent(Base):
    """
    审计事件表 audit_events：

      - category: 流程大类（STOCK_IN / STOCK_OUT / RESERVATION / TRANSFER）
      - ref:      业务引用（stock_in:12 / batch:7 ...）
      - barcode / action / actor: 条码级审计三要素
      - meta:     附加载荷
    """

    __tablename__ = "audit_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    category: Mapped[str] = mapped_column(String(64), nullable=False)
    ref: Mapped[str] = mapped_column(String(128), nullable=False)
    barcode: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    actor: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    meta: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    __table_args__ = (
        Index("ix_audit_events_category", "category"),
        Index("ix_audit_events_ref", "ref"),
        Index("ix_audit_events_barcode", "barcode"),
    )
