# storefront/routes/cart.py
"""
Session cart routes. The session id is generated client-side.
"""
from flask import Blueprint, request

from ..decorators import api_errors
from ..services import cart_service

cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


@cart_bp.get("/<session_id>")
@api_errors
def get_cart_route(session_id: str):
    return cart_service.get_cart(session_id), 200


@cart_bp.post("/<session_id>/items")
@api_errors
def add_item_route(session_id: str):
    return cart_service.add_item(session_id, request.get_json(silent=True) or {}), 201


@cart_bp.put("/<session_id>/items/<int:product_id>")
@api_errors
def update_item_route(session_id: str, product_id: int):
    return cart_service.set_item_quantity(session_id, product_id, request.get_json(silent=True) or {}), 200


@cart_bp.delete("/<session_id>/items/<int:product_id>")
@api_errors
def remove_item_route(session_id: str, product_id: int):
    return cart_service.remove_item(session_id, product_id), 200


@cart_bp.delete("/<session_id>")
@api_errors
def clear_cart_route(session_id: str):
    return cart_service.clear_cart(session_id), 200
