# stockflow/db/base.py
from __future__ import annotations

import importlib
import logging
from typing import List

from sqlalchemy.orm import DeclarativeBase, configure_mappers

log = logging.getLogger("stockflow.models")


class Base(DeclarativeBase):
    """全局唯一 ORM Base（alembic 与 create_all 共用这一份 metadata）"""


_READY = False


def init_models(*, force: bool = False) -> List[str]:
    """
    注册全部模型并固化映射，返回已注册的表名：
    - 导入 stockflow.models 即按 MODEL_SPECS 逐个导入模型模块；
    - configure_mappers() 提前暴露关系配置错误，而不是等到首次查询。
    """
    global _READY
    if not _READY or force:
        importlib.import_module("stockflow.models")
        configure_mappers()
        _READY = True
        log.info("ORM models ready: %d tables", len(Base.metadata.tables))
    return sorted(Base.metadata.tables)
