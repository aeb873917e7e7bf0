"""
Checkout Service — 在庫サービス

check は在庫レベルに対する判定だけを行い、副作用を持たない。
判定ロジックは StockPolicy として差し替え可能:
  - TableStockPolicy: 在庫テーブルとの突き合わせ（決定的）
  - RandomStockPolicy: 確率で在庫あり/なしを返すシミュレーション

reduce は check が ok を返した注文に対してだけ呼ばれる前提で、
ここでは再検証しない。在庫テーブルにない商品は管理対象外として減算しない
（RandomStockPolicy はテーブルを見ないため）。
"""

import asyncio
import logging
import random
from collections import Counter
from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncIterator, Mapping, Protocol

from .models import LineItem, Order, StockCheckResult

logger = logging.getLogger(__name__)


class StockPolicy(Protocol):
    def decide(self, order: Order, levels: Mapping[str, int]) -> StockCheckResult: ...


class TableStockPolicy:
    """注文内の各商品の個数が在庫レベル以下なら ok"""

    def decide(self, order: Order, levels: Mapping[str, int]) -> StockCheckResult:
        for item, wanted in Counter(order.items).items():
            if levels.get(item, 0) < wanted:
                return StockCheckResult.unavailable()
        return StockCheckResult.available()


class RandomStockPolicy:
    def __init__(self, probability: float = 0.8, rng: random.Random | None = None):
        self.probability = probability
        self.rng = rng or random.Random()

    def decide(self, order: Order, levels: Mapping[str, int]) -> StockCheckResult:
        if self.rng.random() < self.probability:
            return StockCheckResult.available()
        return StockCheckResult.unavailable()


class StockService:
    def __init__(
        self,
        levels: Mapping[str, int] | None = None,
        policy: StockPolicy | None = None,
    ) -> None:
        self._levels: Counter = Counter(dict(levels or {}))
        self.policy = policy or TableStockPolicy()
        self._item_locks: dict[str, asyncio.Lock] = {}

    @asynccontextmanager
    async def locked(self, order: Order) -> AsyncIterator[None]:
        """注文に含まれる商品のロックをソート順に取得する（デッドロック回避）"""
        async with AsyncExitStack() as stack:
            for item in sorted(set(order.items)):
                lock = self._item_locks.setdefault(item, asyncio.Lock())
                await stack.enter_async_context(lock)
            yield

    def check(self, order: Order) -> StockCheckResult:
        result = self.policy.decide(order, self.levels())
        logger.info(
            "Stock check for order %s: ok=%s (%s)",
            order.order_id,
            result.ok,
            result.reason,
        )
        return result

    def reduce(self, order: Order) -> None:
        tracked = [item for item in order.items if item in self._levels]
        self._levels.subtract(tracked)
        untracked = set(order.items) - set(tracked)
        if untracked:
            logger.debug("Untracked items not reduced: %s", ", ".join(sorted(untracked)))
        logger.info("Reducing stock for items: %s", ", ".join(tracked))

    def restock(self, item: LineItem, quantity: int) -> None:
        if quantity <= 0:
            raise ValueError("Restock quantity must be positive")
        self._levels[item] += quantity
        logger.info("Restocked %s by %d", item, quantity)

    def level(self, item: LineItem) -> int | None:
        """在庫テーブルにない商品は None"""
        return self._levels.get(item)

    def levels(self) -> dict[str, int]:
        return dict(self._levels)
