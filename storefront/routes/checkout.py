# storefront/routes/checkout.py
"""
Storefront checkout.

POST /api/checkout
  {customerData: {name, email, phone?, address?}, cart: [...],
   totals?: {subtotal, tax, shipping, total}, paymentMethod?, sessionId?}
"""
from flask import Blueprint, request

from ..decorators import api_errors
from ..services import checkout_service

checkout_bp = Blueprint("checkout", __name__, url_prefix="/api/checkout")


@checkout_bp.post("")
@api_errors
def checkout_route():
    payload = request.get_json(silent=True)
    if payload is None:
        payload = {}
    return checkout_service.place_order(payload), 200
