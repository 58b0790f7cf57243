#!/usr/bin/env python3
"""
Traffic generator for the shop service
Simulates users topping up wallets, filling carts, placing orders and
sending each other money, including the occasional failing request
(overdrawn wallet, short stock) so error paths show up in the telemetry
"""

import requests
import random
import time
import threading
from datetime import datetime

API_URL = "http://localhost:8000"
AUTH_TOKENS = ["user-token-123", "test-token-789", "admin-token-456"]
CURRENCIES = ["USD", "EUR"]

# Weight for actions
ACTION_WEIGHTS = {
    "browse": 0.35,
    "add_to_cart": 0.25,
    "place_order": 0.12,
    "top_up": 0.1,
    "transfer": 0.08,
    "view_cart": 0.05,
    "view_orders": 0.05,
}


def get_headers(token):
    return {"Authorization": f"Bearer {token}"}


def log(message):
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    print(f"[{timestamp}] {message}")


class User:
    def __init__(self, token):
        self.token = token
        self.name = token.split("-")[0]
        self.products = []
        self.wallets = {}

    def request(self, method, path, **kwargs):
        try:
            return requests.request(
                method, f"{API_URL}{path}", headers=get_headers(self.token), timeout=10, **kwargs
            )
        except requests.RequestException as e:
            log(f"{self.name}: {method} {path} failed - {e}")
            return None

    def ensure_wallets(self):
        response = self.request("GET", "/wallets")
        if response is not None and response.status_code == 200:
            self.wallets = {w["currency"]: w for w in response.json()}

        for currency in CURRENCIES:
            if currency in self.wallets:
                continue
            response = self.request(
                "POST", "/wallets", json={"currency": currency, "initial_balance": 500000}
            )
            if response is not None and response.status_code == 201:
                self.wallets[currency] = response.json()
                log(f"{self.name}: Opened {currency} wallet")

    def fetch_products(self):
        response = self.request("GET", "/products", params={"in_stock_only": True})
        if response is not None and response.status_code == 200:
            self.products = response.json()
            return True
        return False

    def browse(self):
        if not self.products and not self.fetch_products():
            return False
        product = random.choice(self.products)
        response = self.request("GET", f"/products/{product['id']}")
        if response is not None and response.status_code == 200:
            log(f"{self.name}: Browsing {product['name']}")
            return True
        return False

    def add_to_cart(self):
        if not self.products and not self.fetch_products():
            return False
        cart = self.request("GET", "/cart")
        currency = cart.json().get("currency") if cart is not None and cart.status_code == 200 else None
        candidates = [p for p in self.products if currency is None or p["currency"] == currency]
        if not candidates:
            return False

        product = random.choice(candidates)
        response = self.request(
            "POST", "/cart/items", json={"product_id": product["id"], "qty": random.randint(1, 3)}
        )
        if response is not None and response.status_code == 200:
            log(f"{self.name}: Added {product['name']} to cart")
            return True
        if response is not None:
            log(f"{self.name}: Failed to add to cart - {response.status_code}")
        return False

    def view_cart(self):
        response = self.request("GET", "/cart")
        if response is not None and response.status_code == 200:
            log(f"{self.name}: Viewing cart with {len(response.json().get('items', []))} items")
            return True
        return False

    def place_order(self):
        cart = self.request("GET", "/cart")
        if cart is None or cart.status_code != 200 or not cart.json()["items"]:
            return False
        wallet = self.wallets.get(cart.json()["currency"])
        if wallet is None:
            return False

        response = self.request("POST", "/orders", json={"wallet_id": wallet["id"]})
        if response is not None and response.status_code == 201:
            order = response.json()
            log(f"{self.name}: Order {order['id']} placed - {order['total_minor']} {order['currency']}")
            return True
        if response is not None:
            log(f"{self.name}: Order failed - {response.status_code} {response.json().get('detail')}")
        return False

    def top_up(self):
        currency = random.choice(CURRENCIES)
        wallet = self.wallets.get(currency)
        if wallet is None:
            return False
        amount = random.randint(1000, 200000)
        response = self.request("POST", f"/wallets/{wallet['id']}/increase", json={"amount_minor": amount})
        if response is not None and response.status_code == 200:
            log(f"{self.name}: Topped up {amount} {currency}")
            return True
        return False

    def transfer(self, peers):
        others = [p for p in peers if p is not self]
        currency = random.choice(CURRENCIES)
        if not others or currency not in self.wallets:
            return False
        target = random.choice(others).wallets.get(currency)
        if target is None:
            return False

        # Sometimes overdraw on purpose
        amount = random.randint(100, 5000) if random.random() > 0.05 else 10 ** 9
        response = self.request(
            "POST",
            "/wallets/transfer",
            json={"to_wallet_id": target["id"], "currency": currency, "amount_minor": amount}
        )
        if response is not None and response.status_code == 200:
            log(f"{self.name}: Sent {amount} {currency}")
            return True
        if response is not None:
            log(f"{self.name}: Transfer failed - {response.status_code}")
        return False

    def view_orders(self):
        response = self.request("GET", "/orders")
        if response is not None and response.status_code == 200:
            log(f"{self.name}: Viewing {len(response.json().get('orders', []))} orders")
            return True
        return False

    def random_action(self, peers):
        action = random.choices(
            list(ACTION_WEIGHTS.keys()),
            weights=list(ACTION_WEIGHTS.values())
        )[0]

        if action == "browse":
            return self.browse()
        elif action == "add_to_cart":
            return self.add_to_cart()
        elif action == "place_order":
            return self.place_order()
        elif action == "top_up":
            return self.top_up()
        elif action == "transfer":
            return self.transfer(peers)
        elif action == "view_cart":
            return self.view_cart()
        elif action == "view_orders":
            return self.view_orders()


def user_session(user, peers, stop_event):
    """Run random actions for one user until stopped."""
    user.ensure_wallets()
    user.fetch_products()
    while not stop_event.is_set():
        user.random_action(peers)
        time.sleep(random.uniform(0.3, 1.2))


def generate_traffic(duration=None):
    """Generate traffic with one thread per configured token"""
    users = [User(token) for token in AUTH_TOKENS]
    stop_event = threading.Event()
    threads = [
        threading.Thread(target=user_session, args=(user, users, stop_event))
        for user in users
    ]
    log(f"Starting traffic generation with {len(users)} users")
    for thread in threads:
        thread.start()

    try:
        if duration:
            time.sleep(duration)
        else:
            while True:
                time.sleep(5)
    except KeyboardInterrupt:
        log("\nStopping traffic generation...")
    finally:
        stop_event.set()
        for thread in threads:
            thread.join(timeout=10)
        log("Traffic generation stopped")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Generate traffic for the shop service")
    parser.add_argument(
        "--duration",
        type=int,
        default=None,
        help="Run for this many seconds (default: until interrupted)"
    )
    parser.add_argument(
        "--url",
        type=str,
        default="http://localhost:8000",
        help="API URL (default: http://localhost:8000)"
    )

    args = parser.parse_args()
    API_URL = args.url

    log("=" * 60)
    log("Shop Traffic Generator")
    log("=" * 60)
    log(f"API URL: {API_URL}")
    log("=" * 60)

    generate_traffic(args.duration)
