"""Integration tests for the HTTP surface."""
import pytest
from fastapi.testclient import TestClient

from main import create_app

USER = {"Authorization": "Bearer user-token-123"}
OTHER_USER = {"Authorization": "Bearer test-token-789"}
ADMIN = {"Authorization": "Bearer admin-token-456"}


@pytest.fixture()
def client(session_factory, fake_redis):
    app = create_app(session_factory=session_factory, redis_client=fake_redis, observability=False)
    with TestClient(app) as client:
        yield client


@pytest.fixture()
def product(client):
    response = client.post(
        "/products",
        json={"name": "Mug", "slug": "mug", "price_minor": 3000, "currency": "USD", "stock_qty": 5},
        headers=ADMIN,
    )
    assert response.status_code == 201
    return response.json()


def open_wallet(client, headers=USER, currency="USD", initial_balance=10000):
    response = client.post(
        "/wallets", json={"currency": currency, "initial_balance": initial_balance}, headers=headers
    )
    assert response.status_code == 201
    return response.json()


class TestAuth:
    def test_health_is_public(self, client):
        assert client.get("/health").json() == {"status": "healthy"}

    def test_missing_token(self, client):
        assert client.get("/wallets").status_code == 401

    def test_unknown_token(self, client):
        assert client.get("/wallets", headers={"Authorization": "Bearer nope"}).status_code == 401

    def test_missing_permission(self, client):
        response = client.post(
            "/products",
            json={"name": "X", "slug": "x", "price_minor": 1, "currency": "USD"},
            headers=USER,
        )
        assert response.status_code == 403


class TestWalletsEndpoints:
    def test_wallet_lifecycle(self, client):
        wallet = open_wallet(client, initial_balance=0)
        assert wallet["owner_id"] == "user-123"

        response = client.post(f"/wallets/{wallet['id']}/increase", json={"amount_minor": 700}, headers=USER)
        assert response.status_code == 200
        assert response.json()["balance_minor"] == 700

        response = client.get("/wallets/currency/usd/balance", headers=USER)
        assert response.json() == {"currency": "USD", "balance_minor": 700}

        response = client.delete(f"/wallets/{wallet['id']}", headers=USER)
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "CONFLICT"

    def test_duplicate_wallet(self, client):
        open_wallet(client)

        response = client.post("/wallets", json={"currency": "USD"}, headers=USER)

        assert response.status_code == 409

    def test_invalid_currency(self, client):
        response = client.post("/wallets", json={"currency": "DOLLARS"}, headers=USER)

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_FORMAT"

    def test_non_positive_amount(self, client):
        wallet = open_wallet(client)

        response = client.post(f"/wallets/{wallet['id']}/increase", json={"amount_minor": 0}, headers=USER)

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_ARGUMENT"

    def test_cannot_touch_other_users_wallet(self, client):
        wallet = open_wallet(client, headers=OTHER_USER)

        response = client.post(f"/wallets/{wallet['id']}/increase", json={"amount_minor": 10}, headers=USER)

        assert response.status_code == 403

    def test_transfer(self, client):
        open_wallet(client, initial_balance=1000)
        target = open_wallet(client, headers=OTHER_USER, initial_balance=0)

        response = client.post(
            "/wallets/transfer",
            json={"to_wallet_id": target["id"], "currency": "USD", "amount_minor": 400},
            headers=USER,
        )

        assert response.status_code == 200
        assert client.get("/wallets/currency/USD", headers=USER).json()["balance_minor"] == 600
        assert client.get("/wallets/currency/USD", headers=OTHER_USER).json()["balance_minor"] == 400

    def test_overdrawing_transfer(self, client):
        open_wallet(client, initial_balance=100)
        target = open_wallet(client, headers=OTHER_USER, initial_balance=0)

        response = client.post(
            "/wallets/transfer",
            json={"to_wallet_id": target["id"], "currency": "USD", "amount_minor": 400},
            headers=USER,
        )

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INSUFFICIENT_BALANCE"

    def test_missing_wallet_by_currency(self, client):
        assert client.get("/wallets/currency/EUR", headers=USER).status_code == 404
        assert client.get("/wallets/currency/EUR/balance", headers=USER).json()["balance_minor"] == 0


class TestShoppingFlow:
    def test_cart_to_order(self, client, product):
        wallet = open_wallet(client)

        response = client.post("/cart/items", json={"product_id": product["id"], "qty": 2}, headers=USER)
        assert response.status_code == 200
        assert response.json()["total_minor"] == 6000

        response = client.post("/orders", json={"wallet_id": wallet["id"]}, headers=USER)
        assert response.status_code == 201
        order = response.json()
        assert order["status"] == "CONFIRMED"
        assert order["total_minor"] == 6000
        assert order["items"][0]["unit_price_minor"] == 3000

        assert client.get("/wallets/currency/USD/balance", headers=USER).json()["balance_minor"] == 4000
        assert client.get(f"/products/{product['id']}", headers=USER).json()["stock_qty"] == 3
        assert client.get("/cart", headers=USER).json()["items"] == []

        orders = client.get("/orders", headers=USER).json()["orders"]
        assert [o["id"] for o in orders] == [order["id"]]
        assert client.get(f"/orders/{order['id']}", headers=OTHER_USER).status_code == 403

        response = client.post("/orders", json={"wallet_id": wallet["id"]}, headers=USER)
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_STATE"

    def test_product_cache_is_invalidated_by_orders(self, client, product, fake_redis):
        wallet = open_wallet(client)
        assert client.get(f"/products/{product['id']}", headers=USER).json()["stock_qty"] == 5
        assert f"products:v1:detail:{product['id']}" in fake_redis.values

        client.post("/cart/items", json={"product_id": product["id"], "qty": 1}, headers=USER)
        client.post("/orders", json={"wallet_id": wallet["id"]}, headers=USER)

        assert client.get(f"/products/{product['id']}", headers=USER).json()["stock_qty"] == 4

    def test_insufficient_stock(self, client, product):
        wallet = open_wallet(client, initial_balance=100000)
        client.post("/cart/items", json={"product_id": product["id"], "qty": 6}, headers=USER)

        response = client.post("/orders", json={"wallet_id": wallet["id"]}, headers=USER)

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["code"] == "INSUFFICIENT_STOCK"
        assert detail["details"] == {"product_id": product["id"], "required": 6, "available": 5}

    def test_cart_line_changes(self, client, product):
        client.post("/cart/items", json={"product_id": product["id"], "qty": 1}, headers=USER)

        response = client.patch(f"/cart/items/{product['id']}", json={"qty": 3}, headers=USER)
        assert response.json()["items"][0]["qty"] == 3

        response = client.delete(f"/cart/items/{product['id']}", headers=USER)
        assert response.json()["items"] == []

        assert client.delete("/cart", headers=USER).status_code == 200


class TestAdminEndpoints:
    def test_update_order_status(self, client, product):
        wallet = open_wallet(client)
        client.post("/cart/items", json={"product_id": product["id"], "qty": 1}, headers=USER)
        order = client.post("/orders", json={"wallet_id": wallet["id"]}, headers=USER).json()

        assert client.patch(
            f"/admin/orders/{order['id']}/status", json={"status": "SHIPPED"}, headers=USER
        ).status_code == 403

        response = client.patch(f"/admin/orders/{order['id']}/status", json={"status": "SHIPPED"}, headers=ADMIN)
        assert response.status_code == 200
        assert response.json()["status"] == "SHIPPED"
        assert client.get("/orders", headers=USER).json()["orders"][0]["status"] == "SHIPPED"

        response = client.patch(f"/admin/orders/{order['id']}/status", json={"status": "LOST"}, headers=ADMIN)
        assert response.status_code == 400

    def test_admin_deletes_empty_wallet(self, client):
        wallet = open_wallet(client, initial_balance=0)

        assert client.delete(f"/admin/wallets/{wallet['id']}", headers=ADMIN).status_code == 204
        assert client.get("/wallets", headers=USER).json() == []


class TestRateLimiter:
    def test_wallet_creation_is_limited(self, client):
        statuses = [
            client.post("/wallets", json={"currency": currency}, headers=USER).status_code
            for currency in ["USD", "EUR", "GBP", "JPY", "CHF", "SEK"]
        ]

        assert statuses[:5] == [201] * 5
        assert statuses[5] == 429
