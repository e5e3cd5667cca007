from quart import Blueprint, g, jsonify, request

from ..common.auth import login_required
from ..orders.errors import ProductNotFound, ValidationError
from .service import get_product, get_products, get_stock, set_stock

bp = Blueprint("inventory", __name__)


def _product_id_arg() -> int:
    raw = request.args.get("product_id")
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationError(
            "product_id query parameter is required",
            errors=[{"field": "product_id", "message": "must be an integer"}],
        ) from None


@bp.get("/products")
async def products_list():
    items = await get_products()
    return jsonify({"ok": True, "products": items})


@bp.get("/products/<int:product_id>")
async def product_detail(product_id: int):
    prod = await get_product(product_id)
    if not prod:
        raise ProductNotFound(product_id)
    return jsonify({"ok": True, "product": prod})


@bp.get("/stock")
async def stock_get():
    product_id = _product_id_arg()
    stock = await get_stock(product_id)
    if stock is None:
        raise ProductNotFound(product_id)
    return jsonify({"ok": True, "product_id": product_id, "stock": stock})


@bp.put("/stock")
@login_required
async def stock_put():
    data = await request.get_json(force=True, silent=True) or {}
    product_id = data.get("product_id")
    if isinstance(product_id, bool) or not isinstance(product_id, int):
        raise ValidationError(
            "product_id is required",
            errors=[{"field": "product_id", "message": "must be an integer"}],
        )
    updated = await set_stock(product_id, data.get("stock"), g.principal)
    return jsonify({"ok": True, "product_id": product_id, "stock": updated})
