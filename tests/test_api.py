"""HTTP surface, driven through FastAPI's TestClient with environment-based settings."""

import json

import pytest
from fastapi.testclient import TestClient

from checkout import main
from checkout.config import load_settings
from checkout.publisher import RedisPublisher


@pytest.fixture
def client_for(monkeypatch):
    def _client(**env):
        monkeypatch.setenv("STOCK_LEVELS", json.dumps({"X": 2, "Y": 1}))
        monkeypatch.setenv("UNIT_PRICES", json.dumps({"X": 10, "Y": "2.5"}))
        for key in ("PAYMENT_SERVICE_URL", "REDIS_URL"):
            monkeypatch.delenv(key, raising=False)
        for key, value in env.items():
            monkeypatch.setenv(key, value)
        return TestClient(main.app)

    return _client


def test_checkout_with_successful_payment(client_for):
    with client_for(PAYMENT_SUCCESS_RATE="1.0") as client:
        client.post("/cart/items", json={"item": "X"})
        client.post("/cart/items", json={"item": "Y"})

        resp = client.post("/checkout")

        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "completed"
        assert body["invoice"]["items"] == ["X", "Y"]
        assert body["invoice"]["total_amount"] == "12.5"
        assert client.get("/cart").json() == {"items": [], "last_error": None}
        assert client.get("/stock").json() == {"X": 1, "Y": 0}
        assert [e["item"] for e in client.get("/inventory/audit").json()] == ["X", "Y"]

        order = client.get(f"/orders/{body['order_id']}").json()
        assert order["processing"]["status"] == "completed"


def test_checkout_rejected_for_missing_stock(client_for):
    with client_for() as client:
        client.post("/cart/items", json={"item": "Z"})

        body = client.post("/checkout").json()

        assert body["status"] == "rejected"
        assert client.get("/cart").json() == {
            "items": ["Z"],
            "last_error": "Stock is not available",
        }
        assert client.get("/stock").json() == {"X": 2, "Y": 1}


def test_checkout_with_failed_payment_empties_cart(client_for):
    with client_for(PAYMENT_SUCCESS_RATE="0") as client:
        client.post("/cart/items", json={"item": "X"})

        body = client.post("/checkout").json()

        assert body["status"] == "compensated"
        assert client.get("/cart").json()["items"] == []
        assert client.get("/stock").json()["X"] == 1


def test_empty_cart_and_invalid_item(client_for):
    with client_for() as client:
        assert client.post("/cart/items", json={"item": " "}).status_code == 422

        resp = client.post("/checkout")
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Cart is empty"


def test_deferred_payment_and_webhook_outcome(client_for):
    with client_for(CHARGE_ON_CHECKOUT="false") as client:
        client.post("/cart/items", json={"item": "X"})
        body = client.post("/checkout").json()
        assert body["status"] == "awaiting_payment"
        order_id = body["order_id"]

        resp = client.post(
            "/payments/outcome",
            json={"order_id": order_id, "success": False, "reason": "Card declined"},
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "compensated"
        assert resp.json()["reason"] == "Card declined"

        duplicate = client.post(
            "/payments/outcome", json={"order_id": order_id, "success": True}
        )
        assert duplicate.status_code == 409
        assert client.post(f"/orders/{order_id}/pay").status_code == 409


def test_pay_endpoint_and_unknown_orders(client_for):
    with client_for(CHARGE_ON_CHECKOUT="false", PAYMENT_SUCCESS_RATE="1") as client:
        client.post("/cart/items", json={"item": "Y"})
        order_id = client.post("/checkout").json()["order_id"]

        resp = client.post(f"/orders/{order_id}/pay")
        assert resp.json()["status"] == "completed"
        assert [o["order_id"] for o in client.get("/orders").json()] == [order_id]

        assert client.post("/orders/nope/pay").status_code == 404
        assert client.get("/orders/nope").status_code == 404
        assert (
            client.post(
                "/payments/outcome", json={"order_id": "nope", "success": True}
            ).status_code
            == 404
        )


def test_deferred_payment_keeps_items_added_after_checkout(client_for):
    with client_for(CHARGE_ON_CHECKOUT="false", PAYMENT_SUCCESS_RATE="1") as client:
        client.post("/cart/items", json={"item": "X"})
        order_id = client.post("/checkout").json()["order_id"]
        client.post("/cart/items", json={"item": "Y"})

        assert client.post(f"/orders/{order_id}/pay").json()["status"] == "completed"
        assert client.get("/cart").json()["items"] == ["Y"]


def test_restock_endpoint(client_for):
    with client_for() as client:
        client.post("/cart/items", json={"item": "Z"})
        assert client.post("/checkout").json()["status"] == "rejected"

        resp = client.post("/stock/Z/restock", json={"quantity": 3})
        assert resp.status_code == 200
        assert resp.json() == {"item": "Z", "level": 3}
        assert client.post("/stock/Z/restock", json={"quantity": 0}).status_code == 422

        with_stock = client.post("/checkout").json()
        assert with_stock["status"] in ("completed", "compensated")
        assert client.get("/stock").json()["Z"] == 2


def test_health(client_for):
    with client_for() as client:
        assert client.get("/health").json() == {
            "status": "ok",
            "service": "checkout-service",
        }


def test_load_settings_from_environment(monkeypatch):
    monkeypatch.setenv("STOCK_LEVELS", '{"A": 3}')
    monkeypatch.setenv("DEFAULT_UNIT_PRICE", "1.25")
    monkeypatch.setenv("STOCK_POLICY", "random")
    monkeypatch.setenv("CLEAR_CART_ON_COMPLETION", "no")
    monkeypatch.setenv("PAYMENT_SERVICE_URL", "")
    monkeypatch.delenv("CHARGE_ON_CHECKOUT", raising=False)

    settings = load_settings()

    assert settings.stock_levels == {"A": 3}
    assert str(settings.default_unit_price) == "1.25"
    assert settings.stock_policy == "random"
    assert settings.clear_cart_on_completion is False
    assert settings.charge_on_checkout is True
    assert settings.payment_service_url is None


class FakeRedis:
    def __init__(self):
        self.messages = []

    async def publish(self, channel, message):
        self.messages.append((channel, json.loads(message)))


@pytest.mark.asyncio
async def test_redis_publisher_sends_json_envelope():
    redis_client = FakeRedis()

    await RedisPublisher(redis_client, "checkout_events").publish(
        "CheckoutCompleted", {"order_id": "o-1"}
    )

    assert redis_client.messages == [
        (
            "checkout_events",
            {"event_type": "CheckoutCompleted", "data": {"order_id": "o-1"}},
        )
    ]


@pytest.mark.asyncio
async def test_build_coordinator_wires_publishers(monkeypatch):
    redis_client = FakeRedis()
    monkeypatch.setenv("STOCK_LEVELS", '{"X": 1}')
    monkeypatch.setenv("PAYMENT_SUCCESS_RATE", "1")

    coordinator = main.build_coordinator(load_settings(), redis_client)
    coordinator.add_item_to_cart("X")
    await coordinator.checkout()

    assert [(channel, m["event_type"]) for channel, m in redis_client.messages] == [
        ("inventory_events", "InventoryUpdated"),
        ("checkout_events", "CheckoutCompleted"),
    ]
