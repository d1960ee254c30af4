"""
统一导出 ORM 模型。
"""

from importlib import import_module


def _export(module_name: str, class_name: str) -> None:
    module = import_module(module_name)
    globals()[class_name] = getattr(module, class_name)


MODEL_SPECS = [
    # -------- 主数据 --------
    ("stockflow.models.product", "Product"),
    ("stockflow.models.warehouse", "Warehouse"),
    ("stockflow.models.location", "Location"),
    # -------- 入库 / 批次 / 箱 --------
    ("stockflow.models.stock_in", "StockInRequest"),
    ("stockflow.models.stock_in", "StockInDetail"),
    ("stockflow.models.batch", "Batch"),
    ("stockflow.models.batch_item", "BatchItem"),
    # -------- 余额 / 台账 --------
    ("stockflow.models.inventory_item", "InventoryItem"),
    ("stockflow.models.inventory_movement", "InventoryMovement"),
    # -------- 出库 / 预留 / 移库 --------
    ("stockflow.models.reservation", "ReserveStock"),
    ("stockflow.models.reservation", "ReservationAllocation"),
    ("stockflow.models.stock_out", "StockOutRequest"),
    ("stockflow.models.stock_out", "StockOutLine"),
    ("stockflow.models.transfer", "TransferRequest"),
    # -------- 审计 --------
    ("stockflow.models.audit_event", "AuditEvent"),
]

for _mod, _cls in MODEL_SPECS:
    _export(_mod, _cls)

__all__ = [cls for _, cls in MODEL_SPECS]
