from quart import Blueprint, g, jsonify, request

from ..common.auth import login_required
from .service import cancel_order, get_order, list_orders, place_order, update_order_status

bp = Blueprint("orders", __name__)


@bp.post("/orders")
@login_required
async def orders_create():
    data = await request.get_json(force=True, silent=True) or {}
    order = await place_order(g.principal.user_id, data.get("items"), data.get("shipping_address"))
    return jsonify({"ok": True, "order": order}), 201


@bp.get("/orders")
@login_required
async def orders_list():
    result = await list_orders(
        g.principal,
        page=request.args.get("page", 1),
        limit=request.args.get("limit"),
        status=request.args.get("status") or None,
    )
    return jsonify({"ok": True, **result})


@bp.get("/orders/<int:order_id>")
@login_required
async def orders_detail(order_id: int):
    order = await get_order(order_id, g.principal)
    return jsonify({"ok": True, "order": order})


@bp.put("/orders/<int:order_id>/status")
@login_required
async def orders_update_status(order_id: int):
    data = await request.get_json(force=True, silent=True) or {}
    order = await update_order_status(order_id, data.get("status"), g.principal)
    return jsonify({"ok": True, "order": order})


@bp.put("/orders/<int:order_id>/cancel")
@login_required
async def orders_cancel(order_id: int):
    order = await cancel_order(order_id, g.principal)
    return jsonify({"ok": True, "message": "Order cancelled successfully", "order": order})
