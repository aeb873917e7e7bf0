"""
Checkout Service — 注文プロセッサー

注文の状態を記録する（外部の System of Record の代わり）。

状態遷移:
    processing → completed  (決済成功、請求書を紐付け)

complete の前に process が呼ばれていることはコーディネーターが保証する。
"""

import logging
from datetime import datetime, timezone

from pydantic import BaseModel

from .models import InvoiceRecord, Order

logger = logging.getLogger(__name__)


class OrderRecord(BaseModel):
    order: Order
    status: str
    invoice: InvoiceRecord | None = None
    updated_at: datetime


class OrderProcessor:
    def __init__(self) -> None:
        self._records: dict[str, OrderRecord] = {}

    def process(self, order: Order) -> None:
        logger.info("Processing order %s: %s", order.order_id, ", ".join(order.items))
        self._records[order.order_id] = OrderRecord(
            order=order,
            status="processing",
            updated_at=datetime.now(timezone.utc),
        )

    def complete(self, order: Order, invoice: InvoiceRecord) -> None:
        logger.info("Completing order %s", order.order_id)
        self._records[order.order_id] = OrderRecord(
            order=order,
            status="completed",
            invoice=invoice,
            updated_at=datetime.now(timezone.utc),
        )

    def record(self, order_id: str) -> OrderRecord | None:
        return self._records.get(order_id)

    def records(self) -> list[OrderRecord]:
        return list(self._records.values())
