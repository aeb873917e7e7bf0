"""
Checkout Service — 例外

業務上の拒否（在庫不足・決済拒否）は例外にしない。イベント経路で扱う。
ここにあるのはプログラミング上の前提条件違反で、握りつぶさずに送出する。
"""


class CheckoutError(Exception):
    """Checkout Service の基底例外"""


class CheckoutProtocolError(CheckoutError):
    """ワークフローの前提条件が破られた（complete 前に process がない等）"""


class UnknownOrder(CheckoutProtocolError):
    """進行中トランザクションに存在しない order_id"""

    def __init__(self, order_id: str):
        super().__init__(f"Unknown order: {order_id}")
        self.order_id = order_id


class OutcomeRejected(CheckoutProtocolError):
    """決済待ちでない注文への決済結果（重複配信など）"""

    def __init__(self, order_id: str, status: str):
        super().__init__(
            f"Order {order_id} is not awaiting payment (status={status})"
        )
        self.order_id = order_id
        self.status = status
