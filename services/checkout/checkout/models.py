"""
Checkout Service — データモデル

コーディネーターと各コラボレーターの間でやり取りされる値。
どれも生成後は変更しない (frozen)。
Order は Cart のスナップショットで、以降の addItem の影響を受けない。
"""

from decimal import Decimal
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

LineItem = str

STOCK_AVAILABLE = "Stock is available"
STOCK_NOT_AVAILABLE = "Stock is not available"


class Role(str, Enum):
    """イベント送信元のロール。参照同一性ではなくこのタグでルーティングする。"""

    CART = "cart"
    STOCK_SERVICE = "stock_service"
    INVENTORY_TRACKER = "inventory_tracker"
    PAYMENT_GATEWAY = "payment_gateway"
    INVOICE_GENERATOR = "invoice_generator"
    ORDER_PROCESSOR = "order_processor"


class Event(str, Enum):
    CHECKOUT = "checkout"
    PAYMENT_SUCCESS = "paymentSuccess"
    PAYMENT_FAILURE = "paymentFailure"


class TransactionStatus(str, Enum):
    """
    トランザクションの状態遷移:
        CHECKING → REJECTED            (在庫不足)
        CHECKING → AWAITING_PAYMENT    (在庫引き当て・注文処理済み)
        AWAITING_PAYMENT → SETTLING    (決済結果を受理、以降の重複は拒否)
        SETTLING → COMPLETED           (請求書発行・注文完了)
        SETTLING → COMPENSATED         (決済失敗 = 補償)
        CHECKING / SETTLING → FAILED   (コラボレーターの例外)
    """

    CHECKING = "checking"
    AWAITING_PAYMENT = "awaiting_payment"
    SETTLING = "settling"
    COMPLETED = "completed"
    COMPENSATED = "compensated"
    REJECTED = "rejected"
    FAILED = "failed"


class Order(BaseModel):
    """チェックアウト時に確定した注文"""

    model_config = ConfigDict(frozen=True)

    order_id: str = Field(default_factory=lambda: uuid4().hex)
    items: tuple[LineItem, ...]


class StockCheckResult(BaseModel):
    """在庫確認の判定結果（副作用なし）"""

    model_config = ConfigDict(frozen=True)

    ok: bool
    reason: str

    @classmethod
    def available(cls, reason: str = STOCK_AVAILABLE) -> "StockCheckResult":
        return cls(ok=True, reason=reason)

    @classmethod
    def unavailable(cls, reason: str = STOCK_NOT_AVAILABLE) -> "StockCheckResult":
        return cls(ok=False, reason=reason)


class PaymentSuccess(BaseModel):
    """決済が成功した"""

    model_config = ConfigDict(frozen=True)

    order: Order


class PaymentFailure(BaseModel):
    """決済が失敗した。Order は持たず、相関キーの order_id だけを持つ。"""

    model_config = ConfigDict(frozen=True)

    order_id: str
    reason: str = "Payment declined"


PaymentOutcome = PaymentSuccess | PaymentFailure


class InvoiceRecord(BaseModel):
    """請求書レコード"""

    model_config = ConfigDict(frozen=True)

    order_id: str
    items: tuple[LineItem, ...]
    total_amount: Decimal
