from quart import Blueprint, g, jsonify, request

from ..common.auth import login_required
from ..common.validation import as_int
from ..orders.errors import ValidationError
from .service import add_item, checkout, clear_cart, get_cart, remove_item, update_item

bp = Blueprint("cart", __name__)


@bp.get("/cart")
@login_required
async def cart_get():
    cart = await get_cart(g.principal.user_id)
    return jsonify({"ok": True, "cart": cart})


@bp.post("/cart/items")
@login_required
async def cart_add_item():
    data = await request.get_json(force=True, silent=True) or {}
    errors = []
    product_id = as_int(data.get("product_id"), "product_id", errors)
    if errors:
        raise ValidationError("Invalid cart item", errors=errors)
    cart = await add_item(g.principal.user_id, product_id, data.get("quantity", 1))
    return jsonify({"ok": True, "cart": cart})


@bp.put("/cart/items/<int:product_id>")
@login_required
async def cart_update_item(product_id: int):
    data = await request.get_json(force=True, silent=True) or {}
    cart = await update_item(g.principal.user_id, product_id, data.get("quantity"))
    return jsonify({"ok": True, "cart": cart})


@bp.delete("/cart/items/<int:product_id>")
@login_required
async def cart_remove_item(product_id: int):
    cart = await remove_item(g.principal.user_id, product_id)
    return jsonify({"ok": True, "cart": cart})


@bp.delete("/cart")
@login_required
async def cart_clear():
    removed = await clear_cart(g.principal.user_id)
    return jsonify({"ok": True, "message": "Cart cleared successfully", "removed": removed})


@bp.post("/cart/checkout")
@login_required
async def cart_checkout():
    data = await request.get_json(force=True, silent=True) or {}
    order = await checkout(g.principal.user_id, data.get("shipping_address"))
    return jsonify({"ok": True, "order": order}), 201
