"""Order fulfillment: placement, cancellation, status changes and reads.

Placement and cancellation each run as a single transaction over the order
ledger and product stock. Stock moves only through conditional updates, so
two concurrent placements can never overdraw a product. Cache invalidation,
stock broadcasts and Kafka events run after commit and never affect the
outcome.
"""
import logging
import math
from decimal import Decimal
from functools import wraps
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..common.auth import Principal, require_admin
from ..common.cache import (
    PRODUCTS_LIST_KEY,
    cache_get_json,
    cache_set_json,
    invalidate,
    orders_key,
    orders_pattern,
    product_key,
    publish_stock_updates,
    stock_key,
)
from ..common.config import settings
from ..common.database import (
    current_stock,
    fetch_order,
    get_product_stocks,
    load_order,
    load_product,
    query_orders,
    release_stock,
    reserve_stock,
    set_order_status,
    transaction,
)
from ..common.metrics import ORDER_FAILURES, ORDERS_CANCELLED, ORDERS_PLACED
from ..common.validation import MAX_INT64, as_int
from .errors import InsufficientStock, NotFound, OrderError, ProductNotFound, ValidationError
from .events import ORDER_CANCELLED, ORDER_PLACED, ORDER_STATUS_CHANGED, emit_order_event
from .model import Order, OrderItem
from .status import NON_CANCELLABLE, OrderStatus, check_cancellable, leaves_terminal_state, parse_status

_logger = logging.getLogger(__name__)

OrderLine = Tuple[int, int]


def _track(operation: str):
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except OrderError as e:
                ORDER_FAILURES.labels(operation=operation, error=e.code).inc()
                raise

        return wrapper

    return decorator


def validate_order_request(items: Any, shipping_address: Any) -> Tuple[List[OrderLine], str]:
    errors: List[Dict[str, str]] = []
    lines: List[OrderLine] = []

    if not isinstance(items, (list, tuple)) or not items:
        errors.append({"field": "items", "message": "Order must contain at least one item"})
    else:
        for idx, item in enumerate(items):
            if not isinstance(item, Mapping):
                errors.append({"field": f"items[{idx}]", "message": "must be an object"})
                continue
            product_id = as_int(item.get("product_id"), f"items[{idx}].product_id", errors)
            quantity = as_int(item.get("quantity"), f"items[{idx}].quantity", errors, minimum=1)
            if product_id is not None and quantity is not None:
                lines.append((product_id, quantity))

    address = shipping_address.strip() if isinstance(shipping_address, str) else ""
    if not address:
        errors.append({"field": "shipping_address", "message": "Shipping address is required"})

    if errors:
        raise ValidationError("Invalid order request", errors=errors)
    return lines, address


async def create_order_in(
    session: AsyncSession,
    user_id: str,
    lines: Sequence[OrderLine],
    shipping_address: str,
) -> Order:
    """Validate lines against stock, write the order and debit stock.

    Runs inside the caller's transaction; any exception raised here must
    abort that transaction.
    """
    total = Decimal("0.00")
    items: List[OrderItem] = []
    for product_id, quantity in lines:
        product = await load_product(session, product_id)
        if product is None:
            raise ProductNotFound(product_id)
        if product.stock < quantity:
            raise InsufficientStock(product_id, quantity, product.stock, product.name)
        price = Decimal(product.price)
        total += price * quantity
        items.append(OrderItem(product_id=product_id, quantity=quantity, price=price))

    order = Order(
        user_id=user_id,
        total_amount=total,
        shipping_address=shipping_address,
        status=OrderStatus.PENDING.value,
        items=items,
    )
    session.add(order)
    await session.flush()

    for item in items:
        if not await reserve_stock(session, item.product_id, item.quantity):
            available = await current_stock(session, item.product_id)
            _logger.warning(
                "Stock reservation lost race | product_id=%s requested=%s available=%s",
                item.product_id,
                item.quantity,
                available,
            )
            raise InsufficientStock(item.product_id, item.quantity, available)
    return order


async def _refresh_product_caches(product_ids: Iterable[int]) -> None:
    ids = sorted(set(product_ids))
    keys = [PRODUCTS_LIST_KEY]
    for product_id in ids:
        keys.extend([product_key(product_id), stock_key(product_id)])
    await invalidate(keys=keys)
    try:
        stocks = await get_product_stocks(ids)
    except SQLAlchemyError as e:
        _logger.warning("Skipping stock broadcast, read failed | products=%s err=%s", ids, e)
        return
    await publish_stock_updates(stocks)


async def announce_order_placed(order: Dict[str, Any]) -> None:
    """After-commit side effects of a placement."""
    ORDERS_PLACED.inc()
    _logger.info(
        "Order placed | order_id=%s user_id=%s items=%s total=%s",
        order["id"],
        order["user_id"],
        len(order["items"]),
        order["total_amount"],
    )
    await _refresh_product_caches(item["product_id"] for item in order["items"])
    await invalidate(patterns=[orders_pattern(order["user_id"]), orders_pattern()])
    emit_order_event(ORDER_PLACED, order)


@_track("place")
async def place_order(user_id: str, items: Any, shipping_address: Any) -> Dict[str, Any]:
    lines, address = validate_order_request(items, shipping_address)
    async with transaction() as session:
        order = await create_order_in(session, user_id, lines, address)
        result = order.as_dict()

    await announce_order_placed(result)
    return result


@_track("cancel")
async def cancel_order(order_id: int, principal: Principal) -> Dict[str, Any]:
    async with transaction() as session:
        order = await load_order(session, order_id, principal.owner_filter())
        if order is None:
            raise NotFound("Order", order_id)
        check_cancellable(order.id, order.status)

        updated = await set_order_status(
            session,
            order.id,
            OrderStatus.CANCELLED.value,
            unless_in=[status.value for status in NON_CANCELLABLE],
        )
        if not updated:
            # Another request moved the order first; report its state.
            await session.refresh(order, attribute_names=["status"])
            check_cancellable(order.id, order.status)
            raise NotFound("Order", order_id)

        for item in order.items:
            if not await release_stock(session, item.product_id, item.quantity):
                _logger.warning(
                    "Skipping restock of deleted product | order_id=%s product_id=%s qty=%s",
                    order.id,
                    item.product_id,
                    item.quantity,
                )

        await session.refresh(order, attribute_names=["status", "updated_at"])
        result = order.as_dict()

    ORDERS_CANCELLED.inc()
    _logger.info("Order cancelled | order_id=%s by=%s", order_id, principal.user_id)
    await _refresh_product_caches(item["product_id"] for item in result["items"])
    await invalidate(patterns=[orders_pattern(result["user_id"]), orders_pattern()])
    emit_order_event(ORDER_CANCELLED, result)
    return result


@_track("update_status")
async def update_order_status(order_id: int, new_status: Any, principal: Principal) -> Dict[str, Any]:
    require_admin(principal)
    status = parse_status(new_status)

    async with transaction() as session:
        order = await load_order(session, order_id)
        if order is None:
            raise NotFound("Order", order_id)
        previous = order.status
        if leaves_terminal_state(previous, status):
            # Stock is not re-debited when an order leaves "cancelled".
            _logger.warning(
                "Order leaving terminal status without stock adjustment | order_id=%s from=%s to=%s",
                order.id,
                previous,
                status.value,
            )
        await set_order_status(session, order.id, status.value)
        await session.refresh(order, attribute_names=["status", "updated_at"])
        result = order.as_dict()

    _logger.info("Order status updated | order_id=%s from=%s to=%s", order_id, previous, status.value)
    await invalidate(patterns=[orders_pattern(result["user_id"]), orders_pattern()])
    emit_order_event(ORDER_STATUS_CHANGED, result)
    return result


async def get_order(order_id: int, principal: Principal) -> Dict[str, Any]:
    order = await fetch_order(order_id, principal.owner_filter())
    if order is None:
        raise NotFound("Order", order_id)
    return order


async def list_orders(
    principal: Principal,
    page: Any = 1,
    limit: Any = None,
    status: Optional[Any] = None,
) -> Dict[str, Any]:
    errors: List[Dict[str, str]] = []
    page = as_int(page, "page", errors, minimum=1, maximum=MAX_INT64 // settings.MAX_PAGE_SIZE)
    limit = as_int(settings.DEFAULT_PAGE_SIZE if limit is None else limit, "limit", errors, minimum=1)
    if limit is not None and limit > settings.MAX_PAGE_SIZE:
        errors.append({"field": "limit", "message": f"must be at most {settings.MAX_PAGE_SIZE}"})
    if errors:
        raise ValidationError("Invalid pagination parameters", errors=errors)
    status_value = parse_status(status).value if status else None

    owner = principal.owner_filter()
    key = orders_key(owner, page, limit, status_value)
    cached = await cache_get_json(key)
    if cached is not None:
        _logger.debug("Cache hit: orders | key=%s", key)
        return cached

    orders, total = await query_orders(owner, status_value, (page - 1) * limit, limit)
    response = {
        "orders": orders,
        "pagination": {
            "current_page": page,
            "total_pages": math.ceil(total / limit),
            "total_items": total,
            "items_per_page": limit,
        },
    }
    await cache_set_json(key, response, settings.ORDERS_CACHE_TTL)
    return response
