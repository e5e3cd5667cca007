"""Cache-aside helpers and invalidation hooks on top of Redis.

Redis is only ever a performance layer here: every helper logs and absorbs
Redis failures so that a cache outage degrades to database reads instead of
failing the request that triggered it.
"""
import asyncio
import json
import logging
import re
from typing import Any, Dict, Iterable, Optional

from redis.exceptions import RedisError

from .config import settings
from .redis_client import get_redis

_logger = logging.getLogger(__name__)

CACHE_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


def product_key(product_id: int) -> str:
    return f"product:{product_id}:data"


def stock_key(product_id: int) -> str:
    return f"product:{product_id}:stock"


PRODUCTS_LIST_KEY = "products:all"


def orders_key(owner: Optional[str], page: int, limit: int, status: Optional[str]) -> str:
    return f"orders:{owner or 'all'}:{page}:{limit}:{status or 'all'}"


_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def glob_escape(value: str) -> str:
    """Escape Redis MATCH metacharacters so `value` only matches itself."""
    return _GLOB_SPECIAL.sub(r"\\\1", value)


def orders_pattern(owner: Optional[str] = None) -> str:
    return f"orders:{glob_escape(owner) if owner else 'all'}:*"


def cart_key(user_id: str) -> str:
    return f"cart:{user_id}"


async def cache_get_json(key: str) -> Optional[Any]:
    try:
        r = await get_redis()
        raw = await r.get(key)
    except CACHE_ERRORS as e:
        _logger.warning("Cache read failed | key=%s err=%s", key, e)
        return None
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        _logger.warning("Dropping undecodable cache entry | key=%s", key)
        return None


async def cache_set_json(key: str, value: Any, ttl: int) -> None:
    try:
        r = await get_redis()
        await r.set(key, json.dumps(value), ex=ttl)
    except CACHE_ERRORS as e:
        _logger.warning("Cache write failed | key=%s err=%s", key, e)


async def invalidate(keys: Iterable[str] = (), patterns: Iterable[str] = ()) -> int:
    """Delete exact keys and every key matching the glob patterns.

    Returns the number of keys removed. Never raises for Redis failures.
    """
    keys = list(keys)
    patterns = list(patterns)
    deleted = 0
    try:
        r = await get_redis()
        for pattern in patterns:
            async for key in r.scan_iter(match=pattern):
                keys.append(key)
        if keys:
            deleted = await r.delete(*keys)
    except CACHE_ERRORS as e:
        _logger.warning("Cache invalidation failed | keys=%s patterns=%s err=%s", keys, patterns, e)
        return 0
    _logger.debug("Cache invalidated | deleted=%s patterns=%s", deleted, patterns)
    return deleted


async def publish_stock_updates(stocks: Dict[int, int]) -> None:
    """Broadcast new stock levels for realtime consumers."""
    if not stocks:
        return
    try:
        r = await get_redis()
        for product_id, stock in stocks.items():
            await r.publish(settings.REDIS_STOCK_CHANNEL, json.dumps({"product_id": product_id, "stock": stock}))
    except CACHE_ERRORS as e:
        _logger.warning("Stock update publish failed | products=%s err=%s", sorted(stocks), e)
        return
    _logger.info(
        "Published stock updates via Redis | products=%s channel=%s", sorted(stocks), settings.REDIS_STOCK_CHANNEL
    )
