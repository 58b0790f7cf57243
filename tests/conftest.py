import fnmatch
import os

# Exporters and the profiler must stay off before the app modules are imported
os.environ["OTEL_ENABLED"] = "false"
os.environ["PROFILING_ENABLED"] = "false"

import pytest  # noqa: E402

from database import create_db_engine, create_session_factory, init_db  # noqa: E402
from models import Product  # noqa: E402
from services.cart_service import CartService  # noqa: E402
from services.ledger_service import LedgerService  # noqa: E402
from services.order_service import OrderService  # noqa: E402
from services.product_service import ProductService  # noqa: E402
from services.user_wallet_service import UserWalletService  # noqa: E402


class FakePipeline:
    def __init__(self, redis):
        self.redis = redis
        self.calls = []

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self
        return queue

    def execute(self):
        results = [getattr(self.redis, name)(*args, **kwargs) for name, args, kwargs in self.calls]
        self.calls = []
        return results


class FakeRedis:
    """In-memory stand-in for the handful of Redis commands the app uses."""

    def __init__(self):
        self.values = {}
        self.zsets = {}

    def get(self, key):
        return self.values.get(key)

    def setex(self, key, ttl, value):
        self.values[key] = value
        return True

    def scan_iter(self, match="*"):
        keys = list(self.values) + list(self.zsets)
        return iter([k for k in keys if fnmatch.fnmatchcase(k, match)])

    def delete(self, *keys):
        removed = 0
        for key in keys:
            removed += int(self.values.pop(key, None) is not None)
            removed += int(self.zsets.pop(key, None) is not None)
        return removed

    def pipeline(self):
        return FakePipeline(self)

    def zadd(self, key, mapping):
        self.zsets.setdefault(key, {}).update(mapping)
        return len(mapping)

    def zremrangebyscore(self, key, low, high):
        zset = self.zsets.get(key, {})
        stale = [m for m, score in zset.items() if low <= score <= high]
        for member in stale:
            del zset[member]
        return len(stale)

    def zcard(self, key):
        return len(self.zsets.get(key, {}))

    def zcount(self, key, low, high):
        return sum(1 for score in self.zsets.get(key, {}).values() if low <= score <= high)

    def expire(self, key, seconds):
        return True


@pytest.fixture()
def engine(tmp_path):
    # A file database gives every session its own connection
    engine = create_db_engine(f"sqlite:///{tmp_path / 'shop.db'}")
    init_db(engine, seed=False)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture()
def fake_redis():
    return FakeRedis()


@pytest.fixture()
def ledger(session_factory):
    return LedgerService(session_factory)


@pytest.fixture()
def user_wallets(ledger):
    return UserWalletService(ledger)


@pytest.fixture()
def product_service(session_factory):
    return ProductService(session_factory)


@pytest.fixture()
def cart_service(session_factory):
    return CartService(session_factory)


@pytest.fixture()
def order_service(session_factory, ledger):
    return OrderService(session_factory, ledger)


@pytest.fixture()
def make_product(product_service):
    counter = {"n": 0}

    def make(price_minor=1000, currency="USD", stock_qty=10, name=None) -> Product:
        counter["n"] += 1
        name = name or f"Product {counter['n']}"
        return product_service.create_product(
            name=name,
            slug=f"product-{counter['n']}",
            price_minor=price_minor,
            currency=currency,
            stock_qty=stock_qty,
            category="Test"
        )

    return make
