"""Tests for the server-side cart and checkout."""

import pytest

from storefront.cart.service import add_item, checkout, clear_cart, get_cart, remove_item, update_item
from storefront.orders.errors import InsufficientStock, NotFound, ProductNotFound, ValidationError
from storefront.orders.service import list_orders


@pytest.mark.asyncio
async def test_adding_same_product_merges_quantities(make_product):
    pid = await make_product(price="4.25", stock=10)

    await add_item("user-1", pid, 2)
    cart = await add_item("user-1", pid, 3)

    assert cart["items"] == [{"product_id": pid, "quantity": 5, "price": "4.25"}]
    assert cart["total"] == "21.25"


@pytest.mark.asyncio
async def test_cart_cannot_hold_more_than_stock(make_product):
    pid = await make_product(stock=2)
    await add_item("user-1", pid, 2)

    with pytest.raises(InsufficientStock) as exc_info:
        await add_item("user-1", pid, 1)

    assert exc_info.value.requested == 3
    assert (await get_cart("user-1"))["items"][0]["quantity"] == 2


@pytest.mark.asyncio
async def test_unknown_product_cannot_be_added(db):
    with pytest.raises(ProductNotFound):
        await add_item("user-1", 999, 1)


@pytest.mark.asyncio
async def test_update_and_remove_items(make_product):
    pid = await make_product(stock=10)
    await add_item("user-1", pid, 1)

    cart = await update_item("user-1", pid, 4)
    assert cart["items"][0]["quantity"] == 4

    cart = await remove_item("user-1", pid)
    assert cart["items"] == []
    assert cart["total"] == "0.00"


@pytest.mark.asyncio
async def test_missing_cart_lines_are_not_found(make_product):
    pid = await make_product(stock=10)

    with pytest.raises(NotFound):
        await update_item("user-1", pid, 2)
    with pytest.raises(NotFound):
        await remove_item("user-1", pid)


@pytest.mark.asyncio
async def test_quantity_must_be_positive(make_product):
    pid = await make_product(stock=10)

    with pytest.raises(ValidationError):
        await add_item("user-1", pid, 0)


@pytest.mark.asyncio
async def test_carts_are_per_user_and_cached(make_product, fake_redis):
    pid = await make_product(stock=10)
    await add_item("user-1", pid, 1)

    assert (await get_cart("user-2"))["items"] == []
    await get_cart("user-1")
    assert "cart:user-1" in fake_redis.store

    await clear_cart("user-1")
    assert "cart:user-1" not in fake_redis.store
    assert (await get_cart("user-1"))["items"] == []


@pytest.mark.asyncio
async def test_checkout_places_order_and_empties_cart(make_product, stock_of, customer, order_events):
    widget = await make_product(name="Widget", price="10.00", stock=3)
    bolt = await make_product(name="Bolt", price="1.50", stock=10)
    await add_item(customer.user_id, widget, 2)
    await add_item(customer.user_id, bolt, 4)

    order = await checkout(customer.user_id, "123 Main St")

    assert order["total_amount"] == "26.00"
    assert order["status"] == "pending"
    assert await stock_of(widget) == 1
    assert await stock_of(bolt) == 6
    assert (await get_cart(customer.user_id))["items"] == []
    assert (await list_orders(customer))["pagination"]["total_items"] == 1
    assert order_events == [("order.placed", order)]


@pytest.mark.asyncio
async def test_failed_checkout_keeps_cart(make_product, stock_of, customer, admin):
    from storefront.inventory.service import set_stock

    pid = await make_product(stock=3)
    await add_item(customer.user_id, pid, 3)
    await set_stock(pid, 1, admin)

    with pytest.raises(InsufficientStock):
        await checkout(customer.user_id, "123 Main St")

    assert (await get_cart(customer.user_id))["items"][0]["quantity"] == 3
    assert await stock_of(pid) == 1


@pytest.mark.asyncio
async def test_checkout_of_empty_cart_is_rejected(db):
    with pytest.raises(ValidationError):
        await checkout("user-1", "123 Main St")


@pytest.mark.asyncio
async def test_checkout_requires_address(make_product):
    pid = await make_product(stock=3)
    await add_item("user-1", pid, 1)

    with pytest.raises(ValidationError):
        await checkout("user-1", "  ")
