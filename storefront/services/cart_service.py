# Overview: Session cart operations for the storefront.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import CartItem, Product
from ..money import ZERO, money_float
from ..validation import NotFoundError, ValidationError, coerce_int
from .pricing_service import load_rulebook

MAX_SESSION_ID_LENGTH = 64


def _session_id(session_id: str) -> str:
    value = (session_id or "").strip()
    if not value or len(value) > MAX_SESSION_ID_LENGTH:
        raise ValidationError("A valid session id is required")
    return value


def _quantity(raw) -> int:
    quantity = coerce_int("quantity", raw)
    if quantity <= 0:
        raise ValidationError("quantity must be a positive integer")
    return quantity


def get_cart(session_id: str) -> dict:
    session_id = _session_id(session_id)
    items = (
        db.session.query(CartItem)
        .filter(CartItem.session_id == session_id)
        .order_by(CartItem.created_at.asc(), CartItem.id.asc())
        .all()
    )
    rulebook = load_rulebook()
    lines = []
    subtotal = ZERO
    for item in items:
        pricing = rulebook.resolve(item.product)
        lines.append(item.to_dict(pricing=pricing))
        subtotal += pricing.final_price * item.quantity
    return {
        "success": True,
        "sessionId": session_id,
        "items": lines,
        "itemCount": sum(item.quantity for item in items),
        "subtotal": money_float(subtotal),
    }


def add_item(session_id: str, payload: dict) -> dict:
    """Add a product; an existing line for the same product is incremented."""
    session_id = _session_id(session_id)
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    product_id = coerce_int("productId", payload.get("productId", payload.get("id")))
    quantity = _quantity(payload.get("quantity", 1))

    product = db.session.get(Product, product_id)
    if product is None or not product.is_active:
        raise NotFoundError("Product not found")

    item = (
        db.session.query(CartItem)
        .filter(CartItem.session_id == session_id, CartItem.product_id == product_id)
        .first()
    )
    if item is None:
        db.session.add(CartItem(session_id=session_id, product_id=product_id, quantity=quantity))
    else:
        item.quantity += quantity
    try:
        db.session.commit()
    except IntegrityError:
        # Concurrent add for the same line; fold into the row that won
        db.session.rollback()
        item = (
            db.session.query(CartItem)
            .filter(CartItem.session_id == session_id, CartItem.product_id == product_id)
            .one()
        )
        item.quantity += quantity
        db.session.commit()
    return get_cart(session_id)


def set_item_quantity(session_id: str, product_id: int, payload: dict) -> dict:
    """Set a line's quantity; zero (or less) removes the line."""
    session_id = _session_id(session_id)
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    quantity = coerce_int("quantity", payload.get("quantity"))

    item = (
        db.session.query(CartItem)
        .filter(CartItem.session_id == session_id, CartItem.product_id == product_id)
        .first()
    )
    if item is None:
        raise NotFoundError("Cart item not found")
    if quantity <= 0:
        db.session.delete(item)
    else:
        item.quantity = quantity
    db.session.commit()
    return get_cart(session_id)


def remove_item(session_id: str, product_id: int) -> dict:
    session_id = _session_id(session_id)
    deleted = (
        db.session.query(CartItem)
        .filter(CartItem.session_id == session_id, CartItem.product_id == product_id)
        .delete(synchronize_session=False)
    )
    db.session.commit()
    if not deleted:
        raise NotFoundError("Cart item not found")
    return get_cart(session_id)


def clear_cart(session_id: str) -> dict:
    session_id = _session_id(session_id)
    deleted = (
        db.session.query(CartItem)
        .filter(CartItem.session_id == session_id)
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return {"success": True, "sessionId": session_id, "removed": deleted}
