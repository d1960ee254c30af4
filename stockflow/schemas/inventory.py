from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional

from pydantic import Field, field_validator

from stockflow.models.enums import MovementStatus, MovementType, ReferenceTable
from stockflow.schemas.common import _Base, _In, _none_if_blank


# ========= 台账查询 =========
class MovementQuery(_In):
    """
    台账查询过滤条件（全部可选，留空即总账视图）：
    - product / warehouse / location / barcode 维度；
    - movement_type / status / reference 精确匹配；
    - 时间窗口基于 created_at。
    """

    product_id: Optional[int] = None
    warehouse_id: Optional[int] = None
    location_id: Optional[int] = None
    barcode: Optional[str] = Field(default=None, max_length=64)

    movement_type: Optional[MovementType] = None
    status: Optional[MovementStatus] = None
    reference_table: Optional[ReferenceTable] = None
    reference_id: Optional[str] = Field(default=None, max_length=64)

    time_from: Optional[datetime] = None
    time_to: Optional[datetime] = None

    limit: Annotated[int, Field(ge=1, le=1000)] = 100
    offset: Annotated[int, Field(ge=0)] = 0

    blank_to_none = field_validator("barcode", "reference_id", mode="before")(_none_if_blank)


class MovementRow(_Base):
    id: int
    product_id: int
    warehouse_id: int
    location_id: int
    barcode: Optional[str] = None
    movement_type: str
    quantity: int
    signed_quantity: int = 0
    status: str
    reference_table: str
    reference_id: str
    performed_by: str
    created_at: datetime
    details: Dict[str, Any] = Field(default_factory=dict)


class MovementList(_Base):
    total: int
    items: List[MovementRow] = Field(default_factory=list)


# ========= 余额 =========
class BalanceRow(_Base):
    id: int
    product_id: int
    warehouse_id: int
    location_id: int
    barcode: str
    quantity: int
    color: Optional[str] = None
    size: Optional[str] = None
    status: str
    batch_id: Optional[int] = None
    updated_at: Optional[datetime] = None


class BalanceList(_Base):
    total: int
    items: List[BalanceRow] = Field(default_factory=list)


# ========= 扫码 / 商品汇总 =========
class BarcodeLookupOut(_Base):
    barcode: str
    display: str
    check_digit_ok: bool
    found: bool
    product_id: Optional[int] = None
    product_name: Optional[str] = None
    sku: Optional[str] = None
    batch_id: Optional[int] = None
    batch_number: Optional[str] = None
    box_status: Optional[str] = None
    balance: Optional[BalanceRow] = None
    movements: List[MovementRow] = Field(default_factory=list)


class LocationStockOut(_Base):
    warehouse_id: int
    location_id: int
    quantity: int
    boxes: int


class ProductStockOut(_Base):
    product_id: int
    sku: str
    name: str
    unit: str
    available: int
    reserved: int
    outstanding_approved: int
    approvable: int
    min_stock_level: int
    below_min_stock: bool
    locations: List[LocationStockOut] = Field(default_factory=list)


class BarcodeDiffOut(_Base):
    barcode: Optional[str] = None
    ledger_qty: int
    balance_qty: int
    delta: int


class ReconcileOut(_Base):
    product_id: int
    ok: bool
    ledger_total: int
    balance_total: int
    diffs: List[BarcodeDiffOut] = Field(default_factory=list)
