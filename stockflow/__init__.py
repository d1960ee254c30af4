"""库存动账与批次入库内核。"""

__version__ = "0.3.0"
