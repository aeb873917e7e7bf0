"""
Checkout Service — 請求書ジェネレーター

Order から InvoiceRecord を作る純粋関数。
同じ内容の Order からは常に同じ InvoiceRecord ができる。
"""

from decimal import Decimal
from typing import Mapping

from .models import InvoiceRecord, LineItem, Order


class InvoiceGenerator:
    def __init__(
        self,
        unit_prices: Mapping[LineItem, Decimal] | None = None,
        default_unit_price: Decimal = Decimal("0"),
    ) -> None:
        self.unit_prices = {k: Decimal(v) for k, v in (unit_prices or {}).items()}
        self.default_unit_price = Decimal(default_unit_price)

    def generate(self, order: Order) -> InvoiceRecord:
        total = sum(
            (self.unit_prices.get(item, self.default_unit_price) for item in order.items),
            Decimal("0"),
        )
        return InvoiceRecord(
            order_id=order.order_id,
            items=order.items,
            total_amount=total,
        )
