# stockflow/services/barcode_generator.py
from __future__ import annotations

import logging
import re
import secrets
from typing import Callable, Optional

from sqlalchemy import exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from stockflow.core.config import get_settings
from stockflow.models.batch_item import BatchItem
from stockflow.models.inventory_item import InventoryItem
from stockflow.models.stock_in import StockInDetail
from stockflow.obs.metrics import barcode_collisions_total
from stockflow.services.inventory_errors import BarcodeExhausted, ValidationError

log = logging.getLogger("stockflow.barcode")

ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
CHECK_MODULUS = 103

_re_non_alnum = re.compile(r"[^A-Z0-9]")
_re_format_chars = re.compile(r"[-\s]")


def _prefix(raw: Optional[str], width: int, fallback: str) -> str:
    s = _re_non_alnum.sub("", (raw or "").upper())[:width]
    if not s:
        s = fallback
    return s.ljust(width, "X")


def check_char(body: str) -> str:
    """
    校验位：按字符码做位置加权和（权重 = 1-based 位置），模 103，
    再落到 0-9A-Z 字母表，保证整码只含扫码枪友好的字母数字。
    """
    total = sum(pos * ord(ch) for pos, ch in enumerate(body, start=1))
    return ALPHABET[(total % CHECK_MODULUS) % len(ALPHABET)]


def compose_barcode(
    *,
    category: Optional[str],
    sku: Optional[str],
    token: str,
    box_sequence: Optional[int],
) -> str:
    """
    结构：<品类3><SKU4><随机段><箱序4><校验1>，例如 ELEWIDG7K2QZ9000012
    """
    seq = int(box_sequence or 0)
    if seq < 0 or seq > 9999:
        raise ValidationError(f"box_sequence out of range: {box_sequence}")
    body = f"{_prefix(category, 3, 'GEN')}{_prefix(sku, 4, 'X')}{token.upper()}{seq:04d}"
    return body + check_char(body)


def validate_check_digit(barcode: str) -> bool:
    code = normalize_barcode(barcode)
    if len(code) < 2:
        return False
    return check_char(code[:-1]) == code[-1]


def normalize_barcode(raw: Optional[str]) -> str:
    """去掉展示用的分隔符（- / 空白），统一大写。"""
    return _re_format_chars.sub("", raw or "").upper()


def format_barcode_for_display(barcode: str, group: int = 4) -> str:
    code = normalize_barcode(barcode)
    return "-".join(code[i : i + group] for i in range(0, len(code), group))


def random_token(length: int) -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


class BarcodeGenerator:
    """
    箱码生成器（带碰撞探测的有界重试）

    - 每次候选码都探测 inventory_items / batch_items / stock_in_details 三处
    - 命中则换随机段重试，最多 max_attempts 次，耗尽抛 BarcodeExhausted
    - 探测必须与落库处于同一事务（批次处理按箱 SAVEPOINT），
      并发下的最后一道闸门是三张表上的唯一约束
    """

    def __init__(
        self,
        *,
        max_attempts: Optional[int] = None,
        token_length: Optional[int] = None,
        token_fn: Optional[Callable[[int], str]] = None,
    ) -> None:
        settings = get_settings()
        self.max_attempts = int(settings.BARCODE_MAX_ATTEMPTS if max_attempts is None else max_attempts)
        self.token_length = int(settings.BARCODE_TOKEN_LENGTH if token_length is None else token_length)
        if self.max_attempts < 1:
            raise ValidationError(f"max_attempts must be >= 1, got {max_attempts}")
        if self.token_length < 1:
            raise ValidationError(f"token_length must be >= 1, got {token_length}")
        self._token_fn = token_fn or random_token

    async def exists(self, session: AsyncSession, barcode: str) -> bool:
        stmt = select(
            or_(
                exists().where(InventoryItem.barcode == barcode),
                exists().where(BatchItem.barcode == barcode),
                exists().where(StockInDetail.barcode == barcode),
            )
        )
        return bool(await session.scalar(stmt))

    async def generate(
        self,
        session: AsyncSession,
        *,
        category: Optional[str] = None,
        sku: Optional[str] = None,
        box_sequence: Optional[int] = None,
    ) -> str:
        last: Optional[str] = None
        for attempt in range(1, self.max_attempts + 1):
            candidate = compose_barcode(
                category=category,
                sku=sku,
                token=self._token_fn(self.token_length),
                box_sequence=box_sequence,
            )
            if not await self.exists(session, candidate):
                return candidate

            barcode_collisions_total.inc()
            log.info("barcode collision: %s (attempt %d/%d)", candidate, attempt, self.max_attempts)
            last = candidate

        raise BarcodeExhausted(self.max_attempts, last)
