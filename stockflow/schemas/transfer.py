from __future__ import annotations

from datetime import datetime
from typing import Annotated, Optional

from pydantic import Field

from stockflow.schemas.common import _Base, _In


class TransferCreateIn(_In):
    barcode: Annotated[str, Field(min_length=1, max_length=64)]
    destination_warehouse_id: int
    destination_location_id: int
    requested_by: Annotated[str, Field(min_length=1, max_length=64)]
    quantity: Optional[Annotated[int, Field(gt=0)]] = None
    reason: Optional[str] = Field(default=None, max_length=128)
    notes: Optional[str] = None


class TransferActionIn(_In):
    actor: Annotated[str, Field(min_length=1, max_length=64)]
    reason: Optional[str] = None


class TransferOut(_Base):
    id: int
    barcode: str
    product_id: int
    source_warehouse_id: int
    source_location_id: int
    destination_warehouse_id: int
    destination_location_id: int
    quantity: int
    reason: Optional[str] = None
    notes: Optional[str] = None
    status: str
    requested_by: str
    approved_by: Optional[str] = None
    rejected_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    created_at: datetime
    decided_at: Optional[datetime] = None
