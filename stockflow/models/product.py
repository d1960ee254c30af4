# stockflow/models/product.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, String, func, text
from sqlalchemy.orm import Mapped, mapped_column

from stockflow.db.base import Base
from stockflow.utils.time import utcnow


class Product(Base):
    """
    商品主档（目录管理在外部维护，本内核只引用）：

        id               INTEGER PRIMARY KEY
        name             VARCHAR(128) NOT NULL
        sku              VARCHAR(64) UNIQUE NOT NULL
        category         VARCHAR(64) NULL      （条码前缀来源）
        unit             VARCHAR(8) NOT NULL DEFAULT 'PCS'
        min_stock_level  INTEGER NOT NULL DEFAULT 0

    出库审批 / 预留按商品行加锁（FOR UPDATE），串行化同商品的可用量判断。
    """

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    name: Mapped[str] = mapped_column(String(128), nullable=False)
    sku: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    category: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    unit: Mapped[str] = mapped_column(String(8), nullable=False, server_default=text("'PCS'"), default="PCS")
    min_stock_level: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0"), default=0
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
    )

    @property
    def uom(self) -> str:
        return self.unit

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"
