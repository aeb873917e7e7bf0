"""
Checkout Coordinator — チェックアウトのメディエーター

Saga パターン（オーケストレーション型）:
  すべてのコラボレーターはコーディネーターにだけイベントを通知し、
  互いを直接参照しない（スター型トポロジー）。
  コーディネーターは (送信元ロール, イベント) の組で次の一手を決める。

  フロー:
  ┌─────────────────────────────────────────────────────────┐
  │  1. Cart → checkout                                     │
  │  2. StockService.check                                  │
  │     ├─ ok   → reduce → InventoryTracker.update          │
  │     │         → OrderProcessor.process → 決済待ち        │
  │     └─ NG   → Cart.display_error (トランザクション終了)  │
  │  3. PaymentGateway → paymentSuccess                     │
  │        → InvoiceGenerator.generate → OrderProcessor.complete │
  │     PaymentGateway → paymentFailure                     │
  │        → Cart.restore (補償トランザクション)             │
  └─────────────────────────────────────────────────────────┘

補償の範囲はカートだけ。引き当て済みの在庫は戻さない。
コラボレーターが例外を送出した場合は FAILED で終了させてから再送出する。
"""

import logging
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, Field

from .cart import Cart
from .errors import CheckoutProtocolError, OutcomeRejected, UnknownOrder
from .inventory import InventoryTracker
from .invoice import InvoiceGenerator
from .models import (
    Event,
    InvoiceRecord,
    LineItem,
    Order,
    PaymentFailure,
    PaymentOutcome,
    PaymentSuccess,
    Role,
    TransactionStatus,
)
from .payment import PaymentGateway, PaymentPolicy
from .processor import OrderProcessor
from .roles import (
    CartRole,
    Emitter,
    InventoryRole,
    InvoiceRole,
    OrderProcessorRole,
    PaymentRole,
    Publisher,
    StockRole,
)
from .stock import StockService

logger = logging.getLogger(__name__)

# この呼び出し（タスク）の checkout で始まったトランザクション
_started: ContextVar["Transaction | None"] = ContextVar("checkout_started", default=None)


class Transaction(BaseModel):
    """進行中または終了したチェックアウト 1 件分の状態"""

    order: Order
    status: TransactionStatus = TransactionStatus.CHECKING
    reason: str | None = None
    invoice: InvoiceRecord | None = None
    saga_log: list[dict] = Field(default_factory=list)

    @property
    def order_id(self) -> str:
        return self.order.order_id

    def record(self, action: str, status: str, error: str | None = None) -> None:
        entry = {
            "step": len(self.saga_log) + 1,
            "action": action,
            "status": status,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if error is not None:
            entry["error"] = error
        self.saga_log.append(entry)


class CheckoutCoordinator:
    """6 つのロールを束ねるチェックアウトのオーケストレーター"""

    def __init__(
        self,
        cart: CartRole,
        stock: StockRole,
        inventory: InventoryRole,
        payment: PaymentRole,
        invoices: InvoiceRole,
        processor: OrderProcessorRole,
        publisher: Publisher | None = None,
        charge_on_checkout: bool = True,
        clear_cart_on_completion: bool = True,
    ):
        self.cart = cart
        self.stock = stock
        self.inventory = inventory
        self.payment = payment
        self.invoices = invoices
        self.processor = processor
        self.publisher = publisher
        self.charge_on_checkout = charge_on_checkout
        self.clear_cart_on_completion = clear_cart_on_completion

        self._transactions: dict[str, Transaction] = {}
        self._routes: dict[tuple[Role, Event], Callable[[Any], Awaitable[None]]] = {
            (Role.CART, Event.CHECKOUT): self._on_checkout,
            (Role.PAYMENT_GATEWAY, Event.PAYMENT_SUCCESS): self._on_payment_success,
            (Role.PAYMENT_GATEWAY, Event.PAYMENT_FAILURE): self._on_payment_failure,
        }

    # ── クライアント向け API ────────────────────────

    def add_item_to_cart(self, item: LineItem) -> None:
        self.cart.add_item(item)

    async def checkout(self) -> Transaction | None:
        """
        チェックアウトを開始し、この呼び出しで始まったトランザクションを返す。
        カートが空などでチェックアウトが始まらなかった場合は None。
        """
        token = _started.set(None)
        try:
            await self.cart.checkout()
            return _started.get()
        finally:
            _started.reset(token)

    async def pay(self, order_id: str) -> Transaction:
        """決済待ちの注文に対して決済を実行する。"""
        txn = self.transaction(order_id)
        if txn is None:
            raise UnknownOrder(order_id)
        if txn.status != TransactionStatus.AWAITING_PAYMENT:
            raise OutcomeRejected(order_id, txn.status.value)
        await self.payment.charge(txn.order)
        return txn

    def transaction(self, order_id: str) -> Transaction | None:
        return self._transactions.get(order_id)

    def transactions(self) -> list[Transaction]:
        return list(self._transactions.values())

    # ── メディエーター ─────────────────────────────

    async def notify(
        self, sender: Role | str, event: Event | str, payload: Any = None
    ) -> None:
        """
        コラボレーターからのイベントを受け取り、遷移表に従って処理する。

        遷移表にない組み合わせは何もしない（エラーにもしない）。
        """
        try:
            key = (Role(sender), Event(event))
        except ValueError:
            logger.debug("Ignoring unknown event %r from %r", event, sender)
            return
        handler = self._routes.get(key)
        if handler is None:
            logger.debug("No transition for %s/%s, ignoring", key[0].value, key[1].value)
            return
        await handler(payload)

    # ── Step 1-2: チェックアウト → 在庫確認 ───────────

    async def _on_checkout(self, payload: Any) -> None:
        order = payload if isinstance(payload, Order) else self.cart.snapshot()
        if order.order_id in self._transactions:
            raise CheckoutProtocolError(
                f"Order {order.order_id} has already been checked out"
            )
        txn = Transaction(order=order)
        self._transactions[order.order_id] = txn
        _started.set(txn)

        # check と reduce は同じロックの中で行う（同時チェックアウト対策）
        step = "CheckStock"
        try:
            async with self.stock.locked(order):
                result = self.stock.check(order)
                if result.ok:
                    txn.record(step, "COMPLETED")
                    step = "ReduceStock"
                    self.stock.reduce(order)
                    txn.record(step, "COMPLETED")
        except Exception as e:
            await self._fail(txn, step, e)
            raise

        if not result.ok:
            # 在庫不足 → 副作用なしで終了
            txn.record("CheckStock", "FAILED", result.reason)
            self.cart.display_error(result.reason)
            await self._finish(txn, TransactionStatus.REJECTED, result.reason)
            return

        try:
            await self.inventory.update(order)
            txn.record("UpdateInventory", "COMPLETED")
        except Exception as e:
            logger.exception("Inventory update failed for order %s", order.order_id)
            txn.record("UpdateInventory", "FAILED", str(e))

        try:
            self.processor.process(order)
        except Exception as e:
            await self._fail(txn, "ProcessOrder", e)
            raise
        txn.record("ProcessOrder", "COMPLETED")

        # ── 決済待ち（サスペンドポイント）──
        txn.status = TransactionStatus.AWAITING_PAYMENT
        txn.record("AwaitPayment", "EXECUTING")

        if self.charge_on_checkout:
            await self.payment.charge(order)

    # ── Step 3: 決済結果 ─────────────────────────

    async def _on_payment_success(self, payload: PaymentOutcome | None) -> None:
        if not isinstance(payload, PaymentSuccess):
            raise CheckoutProtocolError("paymentSuccess requires a PaymentSuccess payload")
        retained = self.transaction(payload.order.order_id)
        if retained is not None and retained.order != payload.order:
            raise CheckoutProtocolError(
                f"Payment succeeded for a different order than {retained.order_id}"
            )
        txn = self._settle(payload.order.order_id)
        txn.record("AwaitPayment", "COMPLETED")

        step = "GenerateInvoice"
        try:
            invoice = self.invoices.generate(txn.order)
            txn.record(step, "COMPLETED")
            step = "CompleteOrder"
            self.processor.complete(txn.order, invoice)
        except Exception as e:
            await self._fail(txn, step, e)
            raise
        txn.invoice = invoice
        txn.record(step, "COMPLETED")

        if self.clear_cart_on_completion:
            self.cart.remove_ordered(txn.order)
        await self._finish(txn, TransactionStatus.COMPLETED)

    async def _on_payment_failure(self, payload: PaymentOutcome | None) -> None:
        if isinstance(payload, PaymentFailure):
            order_id, reason = payload.order_id, payload.reason
        else:
            order_id, reason = self._only_awaiting_order(), "Payment failed"

        txn = self._settle(order_id)
        txn.record("AwaitPayment", "FAILED", reason)

        # ── 補償: カートを空に戻す ──
        try:
            self.cart.restore()
        except Exception as e:
            await self._fail(txn, "RestoreCart (COMPENSATING)", e)
            raise
        txn.record("RestoreCart (COMPENSATING)", "COMPLETED")
        await self._finish(txn, TransactionStatus.COMPENSATED, reason)

    def _settle(self, order_id: str) -> Transaction:
        """決済待ちのトランザクションを 1 度だけ SETTLING へ進める。"""
        txn = self._transactions.get(order_id)
        if txn is None:
            raise UnknownOrder(order_id)
        if txn.status != TransactionStatus.AWAITING_PAYMENT:
            raise OutcomeRejected(order_id, txn.status.value)
        txn.status = TransactionStatus.SETTLING
        return txn

    def _only_awaiting_order(self) -> str:
        awaiting = [
            t.order_id
            for t in self._transactions.values()
            if t.status == TransactionStatus.AWAITING_PAYMENT
        ]
        if len(awaiting) != 1:
            raise CheckoutProtocolError(
                f"paymentFailure without order_id is ambiguous ({len(awaiting)} awaiting)"
            )
        return awaiting[0]

    async def _fail(self, txn: Transaction, action: str, error: Exception) -> None:
        logger.error("Checkout %s failed at %s: %s", txn.order_id, action, error)
        txn.record(action, "FAILED", str(error))
        await self._finish(txn, TransactionStatus.FAILED, str(error))

    async def _finish(
        self,
        txn: Transaction,
        status: TransactionStatus,
        reason: str | None = None,
    ) -> None:
        txn.status = status
        txn.reason = reason
        logger.info("Checkout %s finished: %s", txn.order_id, status.value)

        if self.publisher is None:
            return
        event_type = {
            TransactionStatus.REJECTED: "CheckoutRejected",
            TransactionStatus.COMPLETED: "CheckoutCompleted",
            TransactionStatus.COMPENSATED: "CheckoutCompensated",
            TransactionStatus.FAILED: "CheckoutFailed",
        }[status]
        try:
            await self.publisher.publish(
                event_type,
                {
                    "order_id": txn.order_id,
                    "items": list(txn.order.items),
                    "reason": reason,
                    "saga_log": txn.saga_log,
                },
            )
        except Exception:
            logger.exception("Failed to publish %s for order %s", event_type, txn.order_id)


class EventRelay:
    """
    コラボレーターとコーディネーターをつなぐ中継。

    コラボレーターには送信元ロールを束縛した Emitter だけを渡し、
    コーディネーター本体への参照は渡さない。
    """

    def __init__(self) -> None:
        self._target: Callable[[Role, Event, Any], Awaitable[None]] | None = None

    def connect(self, target: Callable[[Role, Event, Any], Awaitable[None]]) -> None:
        self._target = target

    def emitter(self, role: Role) -> Emitter:
        async def emit(event: Event, payload: Any = None) -> None:
            if self._target is None:
                raise CheckoutProtocolError(f"{role.value} emitted {event} before assembly")
            await self._target(role, event, payload)

        return emit


def assemble(
    stock: StockRole | None = None,
    inventory: InventoryRole | None = None,
    invoices: InvoiceRole | None = None,
    processor: OrderProcessorRole | None = None,
    payment_policy: PaymentPolicy | None = None,
    publisher: Publisher | None = None,
    charge_on_checkout: bool = True,
    clear_cart_on_completion: bool = True,
) -> CheckoutCoordinator:
    """コーディネーターと 6 つのコラボレーターを一度だけ組み立てる。"""
    relay = EventRelay()
    coordinator = CheckoutCoordinator(
        cart=Cart(relay.emitter(Role.CART)),
        stock=stock or StockService(),
        inventory=inventory or InventoryTracker(),
        payment=PaymentGateway(relay.emitter(Role.PAYMENT_GATEWAY), payment_policy),
        invoices=invoices or InvoiceGenerator(),
        processor=processor or OrderProcessor(),
        publisher=publisher,
        charge_on_checkout=charge_on_checkout,
        clear_cart_on_completion=clear_cart_on_completion,
    )
    relay.connect(coordinator.notify)
    return coordinator
