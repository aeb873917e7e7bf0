"""
Checkout Service — 在庫トラッカー（監査シンク）

在庫引き当て後の変動を商品ごとに記録する。
ベストエフォート: ここでの失敗は呼び出し側（コーディネーター）が
ログに残して握り、注文処理は止めない。
"""

import logging
from datetime import datetime, timezone
from typing import Callable

from pydantic import BaseModel, ConfigDict

from .models import LineItem, Order
from .roles import Publisher

logger = logging.getLogger(__name__)


class AuditEntry(BaseModel):
    """在庫変動の監査レコード"""

    model_config = ConfigDict(frozen=True)

    order_id: str
    item: LineItem
    remaining: int | None
    recorded_at: datetime


class InventoryTracker:
    def __init__(
        self,
        remaining: Callable[[LineItem], int | None] | None = None,
        publisher: Publisher | None = None,
    ) -> None:
        self._remaining = remaining
        self._publisher = publisher
        self._entries: list[AuditEntry] = []

    async def update(self, order: Order) -> None:
        now = datetime.now(timezone.utc)
        entries = [
            AuditEntry(
                order_id=order.order_id,
                item=item,
                remaining=self._remaining(item) if self._remaining else None,
                recorded_at=now,
            )
            for item in order.items
        ]
        self._entries.extend(entries)
        logger.info("Updating inventory for items: %s", ", ".join(order.items))

        if self._publisher is not None:
            for entry in entries:
                await self._publisher.publish("InventoryUpdated", entry.model_dump())

    def entries(self) -> list[AuditEntry]:
        return list(self._entries)
