"""
Checkout Service — FastAPI エントリーポイント

チェックアウトのコーディネーターを HTTP API として公開する。
クライアントはカートへの追加とチェックアウトだけを知っていればよい。
在庫・決済・請求書・注文処理の順序はコーディネーターが隠蔽する。

┌──────────┐     ┌─────────────┐     ┌──────────────────┐
│  Client  │────▶│ Coordinator │────▶│ Cart             │
│          │     │ (Mediator)  │────▶│ StockService     │
│          │     │             │────▶│ InventoryTracker │
│          │     │             │────▶│ PaymentGateway   │
│          │     │             │────▶│ InvoiceGenerator │
│          │     │             │────▶│ OrderProcessor   │
└──────────┘     └─────────────┘     └──────────────────┘
"""

import logging
from contextlib import asynccontextmanager

import httpx
import redis.asyncio as aioredis
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from .config import Settings, load_settings
from .coordinator import CheckoutCoordinator, Transaction, assemble
from .errors import OutcomeRejected, UnknownOrder
from .inventory import InventoryTracker
from .invoice import InvoiceGenerator
from .payment import HttpPaymentPolicy, PaymentPolicy, RandomPaymentPolicy
from .publisher import CHECKOUT_CHANNEL, INVENTORY_CHANNEL, RedisPublisher
from .stock import RandomStockPolicy, StockService, TableStockPolicy

logger = logging.getLogger(__name__)

coordinator: CheckoutCoordinator | None = None
stock: StockService | None = None
tracker: InventoryTracker | None = None


def build_coordinator(
    settings: Settings,
    redis_client: aioredis.Redis | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> CheckoutCoordinator:
    """設定からコラボレーターを組み立てる。"""
    global stock, tracker

    if settings.stock_policy == "random":
        stock_policy = RandomStockPolicy(settings.stock_availability)
    elif settings.stock_policy == "table":
        stock_policy = TableStockPolicy()
    else:
        raise ValueError(f"Unknown stock policy: {settings.stock_policy}")
    stock = StockService(settings.stock_levels, stock_policy)

    payment_policy: PaymentPolicy
    if settings.payment_service_url and http_client is not None:
        payment_policy = HttpPaymentPolicy(settings.payment_service_url, http_client)
    else:
        payment_policy = RandomPaymentPolicy(settings.payment_success_rate)

    inventory_publisher = checkout_publisher = None
    if redis_client is not None:
        inventory_publisher = RedisPublisher(redis_client, INVENTORY_CHANNEL)
        checkout_publisher = RedisPublisher(redis_client, CHECKOUT_CHANNEL)

    tracker = InventoryTracker(remaining=stock.level, publisher=inventory_publisher)

    return assemble(
        stock=stock,
        inventory=tracker,
        invoices=InvoiceGenerator(settings.unit_prices, settings.default_unit_price),
        payment_policy=payment_policy,
        publisher=checkout_publisher,
        charge_on_checkout=settings.charge_on_checkout,
        clear_cart_on_completion=settings.clear_cart_on_completion,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    global coordinator
    settings = load_settings()
    logging.basicConfig(level=settings.log_level.upper())

    redis_client = (
        aioredis.from_url(settings.redis_url, decode_responses=True)
        if settings.redis_url
        else None
    )
    http_client = httpx.AsyncClient(timeout=10.0) if settings.payment_service_url else None

    coordinator = build_coordinator(settings, redis_client, http_client)
    logger.info("Checkout coordinator assembled")
    yield
    if http_client is not None:
        await http_client.aclose()
    if redis_client is not None:
        await redis_client.aclose()


app = FastAPI(title="Checkout Service", lifespan=lifespan)


# ── Request Models ───────────────────────────────


class AddItemRequest(BaseModel):
    item: str


class PaymentOutcomeRequest(BaseModel):
    order_id: str
    success: bool
    reason: str = "Payment declined"


class RestockRequest(BaseModel):
    quantity: int


def _cart_view() -> dict:
    return {
        "items": list(coordinator.cart.items()),
        "last_error": coordinator.cart.last_error(),
    }


def _transaction_view(txn: Transaction) -> dict:
    return {"order_id": txn.order_id, **txn.model_dump(mode="json")}


def _get_transaction(order_id: str) -> Transaction:
    txn = coordinator.transaction(order_id)
    if txn is None:
        raise HTTPException(404, "Order not found")
    return txn


# ── Cart / Checkout ──────────────────────────────


@app.post("/cart/items")
async def add_item(req: AddItemRequest):
    """カートに商品を追加"""
    try:
        coordinator.add_item_to_cart(req.item)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _cart_view()


@app.get("/cart")
async def get_cart():
    return _cart_view()


@app.post("/checkout")
async def checkout():
    """
    チェックアウトを実行する。

    在庫不足は業務上の拒否なので 200 で rejected を返す。
    カートが空でチェックアウトが始まらなかった場合だけ 400。
    """
    txn = await coordinator.checkout()
    if txn is None:
        raise HTTPException(status_code=400, detail=coordinator.cart.last_error())
    return _transaction_view(txn)


# ── Payment ──────────────────────────────────────


@app.post("/orders/{order_id}/pay")
async def pay(order_id: str):
    """決済待ちの注文の決済を実行"""
    try:
        txn = await coordinator.pay(order_id)
    except UnknownOrder:
        raise HTTPException(404, "Order not found")
    except OutcomeRejected as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _transaction_view(txn)


@app.post("/payments/outcome")
async def payment_outcome(req: PaymentOutcomeRequest):
    """外部決済ゲートウェイからの結果通知（Webhook）"""
    txn = _get_transaction(req.order_id)
    try:
        if req.success:
            await coordinator.payment.report_success(txn.order)
        else:
            await coordinator.payment.report_failure(req.order_id, req.reason)
    except OutcomeRejected as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _transaction_view(txn)


# ── Query Endpoints ──────────────────────────────


@app.get("/orders")
async def list_orders():
    return [_transaction_view(t) for t in coordinator.transactions()]


@app.get("/orders/{order_id}")
async def get_order(order_id: str):
    view = _transaction_view(_get_transaction(order_id))
    record = coordinator.processor.record(order_id)
    view["processing"] = record.model_dump(mode="json") if record else None
    return view


@app.get("/stock")
async def get_stock():
    return stock.levels()


@app.post("/stock/{item}/restock")
async def restock(item: str, req: RestockRequest):
    """在庫を補充する"""
    try:
        stock.restock(item, req.quantity)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"item": item, "level": stock.level(item)}


@app.get("/inventory/audit")
async def get_inventory_audit():
    return [e.model_dump(mode="json") for e in tracker.entries()]


@app.get("/health")
async def health():
    return {"status": "ok", "service": "checkout-service"}
