"""Server-side shopping cart and checkout.

Cart lines keep the price seen when the product was added; checkout
re-prices every line from the product table as part of placing the order.
"""
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from ..common.cache import cache_get_json, cache_set_json, cart_key, invalidate
from ..common.config import settings
from ..common.database import AsyncSessionLocal, load_product, storable_id, transaction
from ..common.validation import as_int
from ..inventory.model import Product, format_amount
from ..orders.errors import InsufficientStock, NotFound, ProductNotFound, ValidationError
from ..orders.service import announce_order_placed, create_order_in, validate_order_request
from .model import CartItem

_logger = logging.getLogger(__name__)


async def _load_items(session: AsyncSession, user_id: str) -> List[CartItem]:
    res = await session.execute(sa.select(CartItem).where(CartItem.user_id == user_id).order_by(CartItem.id))
    return list(res.scalars().all())


async def _load_item(session: AsyncSession, user_id: str, product_id: int) -> Optional[CartItem]:
    if not storable_id(product_id):
        return None
    res = await session.execute(
        sa.select(CartItem).where(CartItem.user_id == user_id, CartItem.product_id == product_id)
    )
    return res.scalar_one_or_none()


def _cart_view(user_id: str, items: List[CartItem]) -> Dict[str, Any]:
    total = sum((Decimal(item.price) * item.quantity for item in items), Decimal("0.00"))
    return {
        "user_id": user_id,
        "items": [item.as_dict() for item in items],
        "total": format_amount(total),
    }


def _quantity(value: Any) -> int:
    errors: List[Dict[str, str]] = []
    quantity = as_int(value, "quantity", errors, minimum=1)
    if errors:
        raise ValidationError("Quantity must be at least 1", errors=errors)
    return quantity


async def _checked_product(session: AsyncSession, product_id: int, quantity: int) -> Product:
    product = await load_product(session, product_id)
    if product is None:
        raise ProductNotFound(product_id)
    if product.stock < quantity:
        raise InsufficientStock(product_id, quantity, product.stock, product.name)
    return product


async def get_cart(user_id: str) -> Dict[str, Any]:
    key = cart_key(user_id)
    cached = await cache_get_json(key)
    if cached is not None:
        return cached
    async with AsyncSessionLocal() as session:
        cart = _cart_view(user_id, await _load_items(session, user_id))
    await cache_set_json(key, cart, settings.CART_CACHE_TTL)
    return cart


async def add_item(user_id: str, product_id: int, quantity: Any = 1) -> Dict[str, Any]:
    quantity = _quantity(quantity)
    async with transaction() as session:
        item = await _load_item(session, user_id, product_id)
        wanted = quantity + (item.quantity if item else 0)
        product = await _checked_product(session, product_id, wanted)
        if item is None:
            session.add(CartItem(user_id=user_id, product_id=product_id, quantity=wanted, price=product.price))
        else:
            item.quantity = wanted
            item.price = product.price
        await session.flush()
        cart = _cart_view(user_id, await _load_items(session, user_id))

    await invalidate(keys=[cart_key(user_id)])
    return cart


async def update_item(user_id: str, product_id: int, quantity: Any) -> Dict[str, Any]:
    quantity = _quantity(quantity)
    async with transaction() as session:
        await _checked_product(session, product_id, quantity)
        item = await _load_item(session, user_id, product_id)
        if item is None:
            raise NotFound("Cart item", product_id)
        item.quantity = quantity
        await session.flush()
        cart = _cart_view(user_id, await _load_items(session, user_id))

    await invalidate(keys=[cart_key(user_id)])
    return cart


async def remove_item(user_id: str, product_id: int) -> Dict[str, Any]:
    async with transaction() as session:
        res = await session.execute(
            sa.delete(CartItem).where(CartItem.user_id == user_id, CartItem.product_id == product_id)
        )
        if not res.rowcount:
            raise NotFound("Cart item", product_id)
        cart = _cart_view(user_id, await _load_items(session, user_id))

    await invalidate(keys=[cart_key(user_id)])
    return cart


async def clear_cart(user_id: str) -> int:
    async with transaction() as session:
        res = await session.execute(sa.delete(CartItem).where(CartItem.user_id == user_id))
        removed = res.rowcount or 0
    await invalidate(keys=[cart_key(user_id)])
    return removed


async def checkout(user_id: str, shipping_address: Any) -> Dict[str, Any]:
    """Turn the cart into an order and empty it, in one transaction."""
    async with transaction() as session:
        items = await _load_items(session, user_id)
        if not items:
            raise ValidationError("Cart is empty", errors=[{"field": "items", "message": "Cart is empty"}])
        lines, address = validate_order_request(
            [{"product_id": item.product_id, "quantity": item.quantity} for item in items],
            shipping_address,
        )
        order = await create_order_in(session, user_id, lines, address)
        await session.execute(sa.delete(CartItem).where(CartItem.user_id == user_id))
        result = order.as_dict()

    _logger.info("Cart checked out | user_id=%s order_id=%s", user_id, result["id"])
    await invalidate(keys=[cart_key(user_id)])
    await announce_order_placed(result)
    return result
