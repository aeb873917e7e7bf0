"""
Checkout Service — ロールごとのケイパビリティ

コーディネーターが各コラボレーターに要求する最小限のインターフェース。
コラボレーター同士は互いを知らず、コーディネーターだけがこれらを束ねる。
テストではこのプロトコルを満たすスタブを差し込める。

I/O を伴う操作（通知・決済・監査・発行）は async、
純粋な判定と記録（在庫確認・請求書・注文状態）は同期のまま。
"""

from contextlib import AbstractAsyncContextManager
from typing import Any, Awaitable, Callable, Protocol

from .models import Event, InvoiceRecord, LineItem, Order, StockCheckResult

# コラボレーターに渡す通知用コールバック（送信元ロールは束縛済み）
Emitter = Callable[[Event, Any], Awaitable[None]]


class Publisher(Protocol):
    async def publish(self, event_type: str, data: dict) -> None: ...


class CartRole(Protocol):
    def add_item(self, item: LineItem) -> None: ...

    async def checkout(self) -> None: ...

    def snapshot(self) -> Order: ...

    def display_error(self, message: str) -> None: ...

    def restore(self) -> None: ...

    def remove_ordered(self, order: Order) -> None: ...


class StockRole(Protocol):
    def check(self, order: Order) -> StockCheckResult: ...

    def reduce(self, order: Order) -> None: ...

    def locked(self, order: Order) -> AbstractAsyncContextManager: ...


class InventoryRole(Protocol):
    async def update(self, order: Order) -> None: ...


class PaymentRole(Protocol):
    async def charge(self, order: Order) -> None: ...

    async def report_success(self, order: Order) -> None: ...

    async def report_failure(self, order_id: str, reason: str = ...) -> None: ...


class InvoiceRole(Protocol):
    def generate(self, order: Order) -> InvoiceRecord: ...


class OrderProcessorRole(Protocol):
    def process(self, order: Order) -> None: ...

    def complete(self, order: Order, invoice: InvoiceRecord) -> None: ...
