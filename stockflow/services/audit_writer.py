# stockflow/services/audit_writer.py
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession

from stockflow.core.config import get_settings
from stockflow.core.tx import atomic
from stockflow.models.audit_event import AuditEvent
from stockflow.utils.time import utcnow

logger = logging.getLogger("stockflow.audit")


class AuditEventWriter:
    """
    统一审计写入器：

    - 唯一职责：往 audit_events 表写一行（条码 / 动作 / 操作人 / 时间 / 载荷）。
    - 每次写入包在独立 SAVEPOINT 里：失败只回滚审计本身，主流程照常提交。
    - 写入失败只打日志兜底，绝不向上抛。
    """

    @staticmethod
    async def write(
        session: AsyncSession,
        *,
        category: str,
        action: str,
        ref: str,
        barcode: Optional[str] = None,
        actor: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        写入一条 audit_events 记录，返回是否落库成功。

          - category: 流程大类，例如 "STOCK_IN" / "STOCK_OUT" / "TRANSFER"
          - action:   具体动作，例如 "BOX_CREATED" / "APPROVED"
          - ref:      业务引用，例如 "stock_in:12"
        """
        if not get_settings().AUDIT_ENABLED:
            return False

        payload: Dict[str, Any] = dict(meta or {})
        payload.setdefault("category", category)
        payload.setdefault("action", action)

        try:
            async with atomic(session):
                await session.execute(
                    insert(AuditEvent).values(
                        category=category,
                        ref=ref,
                        barcode=barcode,
                        action=action,
                        actor=actor,
                        created_at=utcnow(),
                        meta=payload,
                    )
                )
            return True
        except Exception as e:
            logger.warning("audit_events insert failed: %s", e)
            logger.info(
                "[audit-fallback] %s | %s | %s | %s",
                category,
                action,
                ref,
                json.dumps(payload, ensure_ascii=False, default=str),
            )
            return False
