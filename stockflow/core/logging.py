# stockflow/core/logging.py
from __future__ import annotations

import logging
import sys
from typing import Dict

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# 第三方 logger 的默认级别；SQL 回显单独由 sql_echo 控制
_QUIET: Dict[str, int] = {
    "uvicorn.access": logging.INFO,
    "aiosqlite": logging.WARNING,
    "alembic.runtime.migration": logging.INFO,
}


def setup_logging(level: str = "INFO", *, sql_echo: bool = False) -> None:
    """
    进程级日志初始化（app 启动时调用一次）：
    - 根 logger 只挂一个 stdout handler，重复调用不会叠加输出
    - stockflow.* 跟随 level；sqlalchemy.engine 仅在 sql_echo / DEBUG 时输出 SQL
    """
    lvl = logging.getLevelName(str(level).upper())
    if not isinstance(lvl, int):
        lvl = logging.INFO

    root = logging.getLogger()
    root.setLevel(lvl)
    for h in list(root.handlers):
        if getattr(h, "_stockflow", False):
            root.removeHandler(h)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._stockflow = True  # type: ignore[attr-defined]
    root.addHandler(handler)

    logging.getLogger("stockflow").setLevel(lvl)
    for name, quiet in _QUIET.items():
        logging.getLogger(name).setLevel(quiet)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if sql_echo or lvl <= logging.DEBUG else logging.WARNING
    )
