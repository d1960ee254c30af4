from __future__ import annotations

from datetime import datetime
from typing import Annotated, List, Optional

from pydantic import Field, field_validator

from stockflow.schemas.common import _Base, _In, _none_if_blank


# ========= 入参 =========
class StockInCreateIn(_In):
    product_id: int
    boxes: Annotated[int, Field(gt=0)]
    submitted_by: Annotated[str, Field(min_length=1, max_length=64)]
    source: Annotated[str, Field(min_length=1, max_length=64)] = "manual"
    notes: Optional[str] = None

    blank_notes = field_validator("notes", mode="before")(_none_if_blank)


class BatchLineIn(_In):
    """一条入库行：落到同一库位的一组同规格箱。"""

    warehouse_id: int
    location_id: int
    box_count: Annotated[int, Field(gt=0, le=9999)]
    quantity_per_box: Annotated[int, Field(gt=0)]
    color: Optional[str] = Field(default=None, max_length=32)
    size: Optional[str] = Field(default=None, max_length=32)

    blank_to_none = field_validator("color", "size", mode="before")(_none_if_blank)


class BatchProcessIn(BatchLineIn):
    """单批次处理：不带 stock_in_id 时自动建申请。"""

    product_id: int
    actor: Annotated[str, Field(min_length=1, max_length=64)]
    stock_in_id: Optional[int] = None


class StockInProcessIn(_In):
    actor: Annotated[str, Field(min_length=1, max_length=64)]
    lines: Annotated[List[BatchLineIn], Field(min_length=1)]


class StockInRejectIn(_In):
    actor: Annotated[str, Field(min_length=1, max_length=64)]
    reason: Optional[str] = None


# ========= 出参 =========
class StockInOut(_Base):
    id: int
    product_id: int
    boxes: int
    source: str
    notes: Optional[str] = None
    status: str
    submitted_by: str
    processed_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    processing_started_at: Optional[datetime] = None
    processing_completed_at: Optional[datetime] = None
    created_at: datetime


class StockInDetailOut(_Base):
    id: int
    batch_id: int
    barcode: Optional[str] = None
    quantity: int
    warehouse_id: int
    location_id: int
    processing_order: int
    status: str
    error_code: Optional[str] = None
    error_message: Optional[str] = None


class BatchOut(_Base):
    id: int
    stock_in_id: int
    product_id: int
    warehouse_id: int
    location_id: int
    batch_number: Optional[str] = None
    total_boxes: int
    total_quantity: int
    status: str
    created_by: str
    completed_at: Optional[datetime] = None


class BoxOut(_Base):
    id: int
    batch_id: int
    barcode: str
    quantity: int
    color: Optional[str] = None
    size: Optional[str] = None
    warehouse_id: int
    location_id: int
    status: str


class BoxErrorOut(_Base):
    line_no: int
    box_sequence: int
    code: str
    message: str


class BatchResultOut(_Base):
    batch: BatchOut
    boxes: List[BoxOut] = Field(default_factory=list)
    errors: List[BoxErrorOut] = Field(default_factory=list)


class StockInProcessOut(_Base):
    request: StockInOut
    batches: List[BatchResultOut] = Field(default_factory=list)
