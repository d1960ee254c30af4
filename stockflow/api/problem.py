# stockflow/api/problem.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, TypedDict

from stockflow.services.inventory_errors import InventoryError


class ProblemDetail(TypedDict, total=False):
    """
    details[] 的行级定位项，按 type 区分：
    - validation: path / reason
    - shortage:   product_id / barcode / required_qty / available_qty / short_qty
    - state:      kind / from / to
    - barcode:    barcode / attempts
    """

    type: str
    path: str
    reason: str

    product_id: Optional[int]
    barcode: Optional[str]
    required_qty: int
    available_qty: int
    short_qty: int

    kind: str
    attempts: int


def make_problem(
    *,
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Sequence[ProblemDetail]] = None,
) -> Dict[str, Any]:
    """统一错误体：{error_code, message, http_status[, details]}。"""
    body: Dict[str, Any] = {
        "error_code": str(error_code),
        "message": str(message),
        "http_status": int(status_code),
    }
    if details:
        body["details"] = list(details)
    return body


def problem_from_error(exc: InventoryError) -> Dict[str, Any]:
    rows: List[ProblemDetail] = [ProblemDetail(**d) for d in exc.details]  # type: ignore[typeddict-item]
    return make_problem(status_code=exc.status, error_code=exc.code, message=exc.message, details=rows)
