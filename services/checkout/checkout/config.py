"""
Checkout Service — 設定

環境変数から読み込む。
STOCK_LEVELS / UNIT_PRICES は JSON オブジェクトで渡す。
"""

import json
import os
from decimal import Decimal

from pydantic import BaseModel, Field


class Settings(BaseModel):
    stock_levels: dict[str, int] = Field(default_factory=dict)
    unit_prices: dict[str, Decimal] = Field(default_factory=dict)
    default_unit_price: Decimal = Decimal("0")
    stock_policy: str = "table"
    stock_availability: float = 0.8
    payment_service_url: str | None = None
    payment_success_rate: float = 0.5
    redis_url: str | None = None
    charge_on_checkout: bool = True
    clear_cart_on_completion: bool = True
    log_level: str = "INFO"


def _flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_settings() -> Settings:
    return Settings(
        stock_levels=json.loads(os.environ.get("STOCK_LEVELS", "{}")),
        unit_prices=json.loads(os.environ.get("UNIT_PRICES", "{}")),
        default_unit_price=os.environ.get("DEFAULT_UNIT_PRICE", "0"),
        stock_policy=os.environ.get("STOCK_POLICY", "table"),
        stock_availability=os.environ.get("STOCK_AVAILABILITY", "0.8"),
        payment_service_url=os.environ.get("PAYMENT_SERVICE_URL") or None,
        payment_success_rate=os.environ.get("PAYMENT_SUCCESS_RATE", "0.5"),
        redis_url=os.environ.get("REDIS_URL") or None,
        charge_on_checkout=_flag("CHARGE_ON_CHECKOUT", True),
        clear_cart_on_completion=_flag("CLEAR_CART_ON_COMPLETION", True),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
    )
