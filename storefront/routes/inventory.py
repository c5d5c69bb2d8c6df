# storefront/routes/inventory.py
"""
Inventory administration routes.

Stock levels only change through POST /adjust, which appends one
stock_history row per adjusted product.
"""
from flask import Blueprint, Response, request

from ..decorators import api_errors
from ..services import inventory_service

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory-admin")


@inventory_bp.get("")
@api_errors
def list_stock_route():
    return inventory_service.list_stock(
        search=request.args.get("search"),
        status=request.args.get("status") or None,
        brand_id=request.args.get("brand_id", type=int),
        category_id=request.args.get("category_id", type=int),
        sort_by=request.args.get("sortBy", "stock_quantity"),
        sort_dir=request.args.get("sortDir", "asc"),
        limit=request.args.get("limit", default=50, type=int),
        offset=request.args.get("offset", default=0, type=int),
    ), 200


@inventory_bp.get("/stats")
@api_errors
def stock_stats_route():
    return {"success": True, "stats": inventory_service.stock_stats()}, 200


@inventory_bp.get("/alerts")
@api_errors
def stock_alerts_route():
    return inventory_service.stock_alerts(
        limit=request.args.get("limit", default=50, type=int),
        offset=request.args.get("offset", default=0, type=int),
    ), 200


@inventory_bp.get("/history")
@api_errors
def stock_history_route():
    return inventory_service.stock_history(
        product_id=request.args.get("product_id", type=int),
        sku=request.args.get("sku"),
        limit=request.args.get("limit", default=50, type=int),
        offset=request.args.get("offset", default=0, type=int),
    ), 200


@inventory_bp.post("/adjust")
@api_errors
def adjust_stock_route():
    return inventory_service.adjust_stock(request.get_json(silent=True) or {}), 200


@inventory_bp.put("/reorder-point")
@api_errors
def reorder_point_route():
    return inventory_service.set_reorder_point(request.get_json(silent=True) or {}), 200


@inventory_bp.get("/export")
@api_errors
def export_route():
    return Response(
        inventory_service.export_csv(),
        mimetype="text/csv",
        headers={"Content-Disposition": 'attachment; filename="inventory-export.csv"'},
    )
