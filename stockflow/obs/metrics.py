# stockflow/obs/metrics.py
from prometheus_client import Counter

# 入库：每成功落库一箱 +1
boxes_created_total = Counter("stockflow_boxes_created_total", "Boxes persisted by batch processing")
box_errors_total = Counter("stockflow_box_errors_total", "Boxes failed during batch processing", ["code"])

# 条码：每次探测命中已有条码 +1（重试前）
barcode_collisions_total = Counter(
    "stockflow_barcode_collisions_total", "Barcode candidates rejected by the uniqueness probe"
)

# 出库审批结果：full / capped / rejected / insufficient
stock_out_approvals_total = Counter(
    "stockflow_stock_out_approvals_total", "Stock-out approval outcomes", ["outcome"]
)

insufficient_inventory_total = Counter(
    "stockflow_insufficient_inventory_total", "InsufficientInventory raised", ["op"]
)
