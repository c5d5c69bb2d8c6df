# storefront/routes/orders.py
"""
Order administration routes.

Delivery status only moves forward through /progress and /book-delivery;
PUT edits fulfilment metadata and never totals or status.
"""
from flask import Blueprint, request

from ..decorators import api_errors
from ..services import order_service

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders-admin")


@orders_bp.get("")
@api_errors
def list_orders_route():
    result = order_service.list_orders(
        search=request.args.get("search"),
        status=request.args.get("status"),
        limit=request.args.get("limit", default=50, type=int),
        offset=request.args.get("offset", default=0, type=int),
    )
    return {"success": True, **result}, 200


@orders_bp.get("/metrics")
@api_errors
def order_metrics_route():
    return {"success": True, "metrics": order_service.order_metrics()}, 200


@orders_bp.get("/<int:order_id>")
@api_errors
def get_order_route(order_id: int):
    order = order_service.get_order(order_id)
    return {"success": True, **order_service.order_detail(order)}, 200


@orders_bp.put("/<int:order_id>")
@api_errors
def update_order_route(order_id: int):
    order = order_service.update_order_metadata(order_id, request.get_json(silent=True) or {})
    return {"success": True, **order_service.order_detail(order)}, 200


@orders_bp.post("/<int:order_id>/progress")
@api_errors
def progress_order_route(order_id: int):
    order = order_service.progress_order(order_id, request.get_json(silent=True) or {})
    return {"success": True, **order_service.order_detail(order)}, 200


@orders_bp.post("/<int:order_id>/book-delivery")
@api_errors
def book_delivery_route(order_id: int):
    order = order_service.book_delivery(order_id, request.get_json(silent=True) or {})
    return {"success": True, **order_service.order_detail(order)}, 200


@orders_bp.post("/<int:order_id>/duplicate")
@api_errors
def duplicate_order_route(order_id: int):
    order = order_service.duplicate_order(order_id)
    return {"success": True, "order": order.to_dict(), "order_number": order.order_number}, 201
