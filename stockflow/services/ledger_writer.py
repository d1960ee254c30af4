from __future__ import annotations

from typing import Any, Dict, Optional, Union

from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession

from stockflow.models.enums import MovementStatus, MovementType, ReferenceTable
from stockflow.models.inventory_movement import InventoryMovement
from stockflow.services.inventory_errors import ValidationError
from stockflow.utils.time import utcnow


async def write_movement(
    session: AsyncSession,
    *,
    product_id: int,
    warehouse_id: int,
    location_id: int,
    movement_type: Union[str, MovementType],
    quantity: int,
    reference_table: Union[str, ReferenceTable],
    reference_id: Union[int, str],
    performed_by: str,
    barcode: Optional[str] = None,
    batch_id: Optional[int] = None,
    notes: Optional[str] = None,
    status: Union[str, MovementStatus] = MovementStatus.APPROVED,
    extra: Optional[Dict[str, Any]] = None,
) -> int:
    """
    追加一条台账（只增不改）：

    - quantity 必须为正，方向由 movement_type 表达
    - details 固定带 barcode / batch_id / notes，其余并入 extra
    - 不控事务：与余额变更处于调用方的同一原子单元

    返回新台账 id。
    """
    try:
        mt = MovementType(movement_type)
        ref_table = ReferenceTable(reference_table)
        st = MovementStatus(status)
    except ValueError as e:
        raise ValidationError(str(e)) from e

    if int(quantity) <= 0:
        raise ValidationError(f"movement quantity must be positive, got {quantity}")

    details: Dict[str, Any] = dict(extra or {})
    details.setdefault("barcode", barcode)
    details.setdefault("batch_id", batch_id)
    if notes:
        details.setdefault("notes", notes)

    stmt = (
        insert(InventoryMovement)
        .values(
            product_id=int(product_id),
            warehouse_id=int(warehouse_id),
            location_id=int(location_id),
            barcode=barcode,
            movement_type=mt.value,
            quantity=int(quantity),
            status=st.value,
            reference_table=ref_table.value,
            reference_id=str(reference_id),
            performed_by=performed_by,
            created_at=utcnow(),
            details=details,
        )
        .returning(InventoryMovement.id)
    )
    res = await session.execute(stmt)
    return int(res.scalar_one())
