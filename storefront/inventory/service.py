import logging
from typing import Any, Dict, List, Optional

from ..common.auth import Principal, require_admin
from ..common.cache import (
    PRODUCTS_LIST_KEY,
    cache_get_json,
    cache_set_json,
    invalidate,
    product_key,
    publish_stock_updates,
    stock_key,
)
from ..common.config import settings
from ..common.database import fetch_product, fetch_products, get_product_stock, update_product_stock
from ..common.validation import as_int
from ..orders.errors import ProductNotFound, ValidationError

_logger = logging.getLogger(__name__)


async def get_stock(product_id: int) -> Optional[int]:
    cached = await cache_get_json(stock_key(product_id))
    if isinstance(cached, int):
        _logger.debug("Cache hit: stock | product_id=%s stock=%s", product_id, cached)
        return cached
    stock = await get_product_stock(product_id)
    _logger.info("DB get stock | product_id=%s stock=%s (cache miss)", product_id, stock)
    if stock is not None:
        await cache_set_json(stock_key(product_id), stock, settings.PRODUCT_CACHE_TTL)
    return stock


async def get_products() -> List[Dict[str, Any]]:
    cached = await cache_get_json(PRODUCTS_LIST_KEY)
    if cached is not None:
        _logger.debug("Cache hit: products")
        return cached
    products = await fetch_products()
    await cache_set_json(PRODUCTS_LIST_KEY, products, settings.PRODUCT_CACHE_TTL)
    return products


async def get_product(product_id: int) -> Optional[Dict[str, Any]]:
    cached = await cache_get_json(product_key(product_id))
    if cached is not None:
        _logger.debug("Cache hit: product | product_id=%s", product_id)
        return cached
    prod = await fetch_product(product_id)
    _logger.info("DB get product | product_id=%s", product_id)
    if prod is not None:
        await cache_set_json(product_key(product_id), prod, settings.PRODUCT_CACHE_TTL)
        await cache_set_json(stock_key(product_id), prod["stock"], settings.PRODUCT_CACHE_TTL)
    return prod


async def set_stock(product_id: int, new_stock: Any, principal: Principal) -> int:
    """Administrative restock: overwrite a product's stock level."""
    require_admin(principal)
    errors = []
    stock = as_int(new_stock, "stock", errors, minimum=0)
    if errors:
        raise ValidationError("Invalid stock value", errors=errors)

    if not await update_product_stock(product_id, stock):
        raise ProductNotFound(product_id)
    _logger.info("DB set stock | product_id=%s new_stock=%s by=%s", product_id, stock, principal.user_id)

    await invalidate(keys=[product_key(product_id), stock_key(product_id), PRODUCTS_LIST_KEY])
    await publish_stock_updates({product_id: stock})
    return stock
