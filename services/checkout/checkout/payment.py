"""
Checkout Service — 決済ゲートウェイ

charge は決済を試み、結果を必ず 1 つだけコーディネーターへ通知する。
ゲートウェイ内部のエラーも paymentFailure として通知し、
補償経路を失わないようにする（注文を黙って落とさない）。

承認判定は PaymentPolicy として差し替え可能:
  - FixedPaymentPolicy: 常に承認 / 常に拒否（テスト用）
  - RandomPaymentPolicy: 確率で承認するシミュレーション
  - HttpPaymentPolicy: 外部の決済サービスへ httpx で問い合わせる
"""

import logging
import random
from typing import Protocol

import httpx

from .models import Event, Order, PaymentFailure, PaymentOutcome, PaymentSuccess
from .roles import Emitter

logger = logging.getLogger(__name__)

DECLINED = "Payment declined"


class PaymentPolicy(Protocol):
    async def authorize(self, order: Order) -> bool: ...


class FixedPaymentPolicy:
    def __init__(self, approve: bool = True):
        self.approve = approve

    async def authorize(self, order: Order) -> bool:
        return self.approve


class RandomPaymentPolicy:
    def __init__(self, probability: float = 0.5, rng: random.Random | None = None):
        self.probability = probability
        self.rng = rng or random.Random()

    async def authorize(self, order: Order) -> bool:
        return self.rng.random() < self.probability


class HttpPaymentPolicy:
    """
    外部決済サービスに承認を問い合わせる。

    POST {base_url}/payments  {"order_id": ..., "items": [...]}
    → {"approved": true | false}
    """

    def __init__(self, base_url: str, client: httpx.AsyncClient):
        self.base_url = base_url.rstrip("/")
        self.client = client

    async def authorize(self, order: Order) -> bool:
        resp = await self.client.post(
            f"{self.base_url}/payments",
            json={"order_id": order.order_id, "items": list(order.items)},
        )
        resp.raise_for_status()
        return bool(resp.json().get("approved", False))


class PaymentGateway:
    def __init__(self, emit: Emitter, policy: PaymentPolicy | None = None) -> None:
        self._emit = emit
        self.policy = policy or FixedPaymentPolicy()

    async def charge(self, order: Order) -> None:
        logger.info("Processing payment for order %s", order.order_id)
        try:
            approved = await self.policy.authorize(order)
            reason = DECLINED
        except Exception as e:
            logger.exception("Payment gateway error for order %s", order.order_id)
            approved = False
            reason = f"Payment gateway error: {e}"

        if approved:
            await self.report_success(order)
        else:
            await self.report_failure(order.order_id, reason)

    # 外部ゲートウェイからの非同期通知（Webhook）もここを通る

    async def report_success(self, order: Order) -> None:
        logger.info("Payment processed successfully for order %s", order.order_id)
        await self._deliver(PaymentSuccess(order=order))

    async def report_failure(self, order_id: str, reason: str = DECLINED) -> None:
        logger.info("Payment failed for order %s: %s", order_id, reason)
        await self._deliver(PaymentFailure(order_id=order_id, reason=reason))

    async def _deliver(self, outcome: PaymentOutcome) -> None:
        if isinstance(outcome, PaymentSuccess):
            await self._emit(Event.PAYMENT_SUCCESS, outcome)
        else:
            await self._emit(Event.PAYMENT_FAILURE, outcome)
