"""
Checkout Service — カート

カートの中身 (CartState) はこのクラスだけが変更する。
チェックアウト時は中身をスナップショットして Order にし、
コーディネーターへ checkout イベントを通知するだけ。
"""

import logging

from .models import Event, LineItem, Order
from .roles import Emitter

logger = logging.getLogger(__name__)

EMPTY_CART = "Cart is empty"


class Cart:
    def __init__(self, emit: Emitter) -> None:
        self._emit = emit
        self._items: list[LineItem] = []
        self._last_error: str | None = None

    def add_item(self, item: LineItem) -> None:
        if not isinstance(item, str) or not item.strip():
            raise ValueError("Line item must be a non-empty string")
        self._items.append(item)
        logger.info("Added item to cart: %s", item)

    def items(self) -> tuple[LineItem, ...]:
        return tuple(self._items)

    def last_error(self) -> str | None:
        return self._last_error

    def snapshot(self) -> Order:
        return Order(items=tuple(self._items))

    async def checkout(self) -> None:
        """
        チェックアウトを開始する。

        カートの中身はクリアしない。クリアは restore か、
        注文完了後のコーディネーター側のポリシーで行う。
        """
        self._last_error = None
        if not self._items:
            self.display_error(EMPTY_CART)
            return
        order = self.snapshot()
        logger.info("Initiating checkout for order %s", order.order_id)
        await self._emit(Event.CHECKOUT, order)

    def display_error(self, message: str) -> None:
        self._last_error = message
        logger.warning("Cart error: %s", message)

    def restore(self) -> None:
        """カートを空に戻す（決済失敗時の補償アクション）"""
        logger.info("Restoring cart (%d items dropped)", len(self._items))
        self._items = []

    def remove_ordered(self, order: Order) -> None:
        """
        注文済みの商品を 1 件ずつ取り除く。
        スナップショット後に追加された商品は残る。
        """
        for item in order.items:
            if item in self._items:
                self._items.remove(item)
        logger.info("Removed ordered items of %s from cart", order.order_id)
