"""
Shared pytest fixtures.

Tests run against a throwaway SQLite file (created fresh for every test),
an in-memory Redis stand-in and a recording order-event publisher.
"""

import os
import re
import tempfile
from decimal import Decimal

# Must be set before storefront.common.config is imported.
_TMP_DIR = tempfile.mkdtemp(prefix="storefront-tests-")
os.environ["DB_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TMP_DIR, 'test.db')}"
os.environ["SEED_ON_STARTUP"] = "false"
os.environ["ORDER_EVENTS_ENABLED"] = "true"

import pytest
import pytest_asyncio
import sqlalchemy as sa
from redis.exceptions import ConnectionError as RedisConnectionError

from storefront.common.auth import Principal
from storefront.common.database import engine, get_product_stock, transaction
from storefront.common.db import Base
from storefront.inventory.model import Product


# ============================================================================
# REDIS DOUBLE
# ============================================================================


def redis_glob_match(pattern, key):
    """Redis MATCH semantics: ``*``, ``?``, ``[...]`` and backslash escapes."""
    regex = []
    i = 0
    while i < len(pattern):
        c = pattern[i]
        if c == "\\" and i + 1 < len(pattern):
            i += 1
            regex.append(re.escape(pattern[i]))
        elif c == "*":
            regex.append(".*")
        elif c == "?":
            regex.append(".")
        elif c == "[" and "]" in pattern[i + 1 :]:
            end = pattern.index("]", i + 1)
            regex.append("[" + re.escape(pattern[i + 1 : end]) + "]")
            i = end
        else:
            regex.append(re.escape(c))
        i += 1
    return re.fullmatch("".join(regex), key, flags=re.DOTALL) is not None


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the cache helpers."""

    def __init__(self):
        self.store = {}
        self.published = []
        self.fail = False

    def _check(self):
        if self.fail:
            raise RedisConnectionError("redis unavailable")

    async def ping(self):
        self._check()
        return True

    async def get(self, key):
        self._check()
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self._check()
        self.store[key] = value if isinstance(value, str) else str(value)
        return True

    async def delete(self, *keys):
        self._check()
        return sum(1 for key in keys if self.store.pop(key, None) is not None)

    async def scan_iter(self, match=None):
        self._check()
        for key in list(self.store):
            if match is None or redis_glob_match(match, key):
                yield key

    async def publish(self, channel, message):
        self._check()
        self.published.append((channel, message))
        return 1


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch):
    fake = FakeRedis()

    async def _get_redis():
        return fake

    monkeypatch.setattr("storefront.common.cache.get_redis", _get_redis)
    monkeypatch.setattr("storefront.app.get_redis", _get_redis)
    return fake


@pytest.fixture(autouse=True)
def order_events(monkeypatch):
    """Capture order lifecycle events instead of sending them to Kafka."""
    events = []

    def _emit(event_type, order):
        events.append((event_type, order))

    monkeypatch.setattr("storefront.orders.service.emit_order_event", _emit)
    monkeypatch.setattr("storefront.orders.events._suspended_until", 0.0)
    return events


# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest_asyncio.fixture
async def db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def make_product(db):
    async def _make(name="Widget", price="10.00", stock=3):
        async with transaction() as session:
            product = Product(name=name, price=Decimal(price), stock=stock)
            session.add(product)
            await session.flush()
            product_id = product.id
        return product_id

    return _make


@pytest.fixture
def stock_of():
    async def _stock(product_id):
        return await get_product_stock(product_id)

    return _stock


@pytest.fixture
def delete_product():
    async def _delete(product_id):
        async with transaction() as session:
            await session.execute(sa.delete(Product).where(Product.id == product_id))

    return _delete


# ============================================================================
# PRINCIPALS
# ============================================================================


@pytest.fixture
def customer():
    return Principal(user_id="user-1")


@pytest.fixture
def other_customer():
    return Principal(user_id="user-2")


@pytest.fixture
def admin():
    return Principal(user_id="admin-1", role="admin")
