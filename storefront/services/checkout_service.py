# Overview: Storefront checkout; turns a cart and customer payload into a persisted order.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from flask import current_app

from ..extensions import db
from ..models import CartItem, Order, OrderLine, Product
from ..money import ZERO, money_float, round_money, to_decimal
from storefront.time_utils import to_utc_z
from ..validation import ValidationError, coerce_int
from .concurrency import run_with_retry
from .customer_service import upsert_checkout_customer
from .order_service import next_order_number


@dataclass(frozen=True)
class CheckoutLine:
    product_id: int | None
    name: str
    sku: str | None
    media: str | None
    colour_name: str | None
    unit_price: Decimal
    quantity: int

    @property
    def subtotal(self) -> Decimal:
        return round_money(self.unit_price * self.quantity)


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal

    def to_dict(self) -> dict:
        return {
            "subtotal": money_float(self.subtotal),
            "tax": money_float(self.tax),
            "shipping": money_float(self.shipping),
            "total": money_float(self.total),
        }


def _checkout_settings() -> tuple[Decimal, Decimal, Decimal]:
    config = current_app.config
    return (
        to_decimal(config.get("VAT_RATE", "0.20")),
        to_decimal(config.get("FREE_SHIPPING_THRESHOLD", "50")),
        to_decimal(config.get("FLAT_SHIPPING_RATE", "5")),
    )


def compute_totals(
    lines: list[CheckoutLine],
    supplied: dict | None = None,
    *,
    vat_rate: Decimal = Decimal("0.20"),
    free_shipping_threshold: Decimal = Decimal("50"),
    flat_shipping_rate: Decimal = Decimal("5"),
) -> OrderTotals:
    """
    subtotal = sum(price * qty); tax = vat_rate * subtotal;
    shipping = 0 when subtotal >= threshold, else the flat rate;
    total = subtotal + tax + shipping. All rounded half-up to the penny.

    Each value present (not None) in `supplied` replaces the computed one.
    """
    supplied = supplied or {}

    def _supplied(key: str) -> Decimal | None:
        raw = supplied.get(key)
        if raw is None:
            return None
        try:
            return round_money(raw)
        except (InvalidOperation, ValueError, TypeError):
            raise ValidationError(f"totals.{key} must be a number")

    subtotal = _supplied("subtotal")
    if subtotal is None:
        subtotal = round_money(sum((line.unit_price * line.quantity for line in lines), ZERO))

    tax = _supplied("tax")
    if tax is None:
        tax = round_money(subtotal * vat_rate)

    shipping = _supplied("shipping")
    if shipping is None:
        shipping = ZERO if subtotal >= free_shipping_threshold else round_money(flat_shipping_rate)

    total = _supplied("total")
    if total is None:
        total = round_money(subtotal + tax + shipping)

    return OrderTotals(subtotal=subtotal, tax=tax, shipping=shipping, total=total)


def _parse_lines(cart) -> list[CheckoutLine]:
    if not isinstance(cart, list) or not cart:
        raise ValidationError("Missing required checkout data: cart must contain at least one item")

    lines = []
    for index, item in enumerate(cart):
        if not isinstance(item, dict):
            raise ValidationError(f"cart[{index}] must be an object")

        name = str(item.get("name") or "").strip()
        if not name:
            raise ValidationError(f"cart[{index}].name is required")

        raw_price = item.get("price")
        if raw_price is None or isinstance(raw_price, bool):
            raise ValidationError(f"cart[{index}].price is required")
        try:
            price = to_decimal(raw_price)
        except (InvalidOperation, ValueError, TypeError):
            raise ValidationError(f"cart[{index}].price must be a number")
        if not price.is_finite() or price < 0:
            raise ValidationError(f"cart[{index}].price must be a non-negative number")

        quantity = coerce_int(f"cart[{index}].quantity", item.get("quantity"))
        if quantity <= 0:
            raise ValidationError(f"cart[{index}].quantity must be a positive integer")

        product_id = item.get("id")
        if product_id is not None:
            try:
                product_id = coerce_int(f"cart[{index}].id", product_id)
            except ValidationError:
                product_id = None

        lines.append(CheckoutLine(
            product_id=product_id,
            name=name,
            sku=item.get("sku") or None,
            media=item.get("media") or None,
            colour_name=item.get("colour_name") or None,
            unit_price=round_money(price),
            quantity=quantity,
        ))
    return lines


def _validate_customer(customer_data) -> dict:
    if not isinstance(customer_data, dict):
        raise ValidationError("Missing required checkout data: customerData")
    if not str(customer_data.get("name") or "").strip():
        raise ValidationError("customerData.name is required")
    email = str(customer_data.get("email") or "").strip()
    if not email or "@" not in email:
        raise ValidationError("customerData.email is required")
    address = customer_data.get("address")
    if address is not None and not isinstance(address, dict):
        raise ValidationError("customerData.address must be an object")
    return customer_data


def place_order(payload: dict) -> dict:
    """
    Place a storefront order.

    Customer upsert, number allocation, header, lines and cart clearing run as
    one unit of work: either all of them are committed or none is.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    customer_data = _validate_customer(payload.get("customerData"))
    cart = payload.get("cart")
    lines = _parse_lines(cart)
    supplied_totals = payload.get("totals")
    if supplied_totals is not None and not isinstance(supplied_totals, dict):
        raise ValidationError("totals must be an object")
    payment_method = str(payload.get("paymentMethod") or "card").strip()
    session_id = payload.get("sessionId")

    vat_rate, threshold, flat_rate = _checkout_settings()
    totals = compute_totals(
        lines,
        supplied_totals,
        vat_rate=vat_rate,
        free_shipping_threshold=threshold,
        flat_shipping_rate=flat_rate,
    )
    item_count = sum(line.quantity for line in lines)

    def _op() -> Order:
        customer = upsert_checkout_customer(customer_data)
        order_number = next_order_number()

        referenced = {line.product_id for line in lines if line.product_id is not None}
        known_ids = set()
        if referenced:
            known_ids = {
                row[0]
                for row in db.session.query(Product.id).filter(Product.id.in_(referenced)).all()
            }

        order = Order(
            order_number=order_number,
            customer_id=customer.id,
            customer_name=str(customer_data.get("name")).strip(),
            customer_email=str(customer_data.get("email")).strip(),
            customer_phone=customer_data.get("phone") or None,
            shipping_address=customer_data.get("address") or {},
            payment_method=payment_method,
            payment_status="paid",
            subtotal=totals.subtotal,
            tax_amount=totals.tax,
            shipping_amount=totals.shipping,
            total_amount=totals.total,
            item_count=item_count,
            delivery_status="new",
        )
        for line in lines:
            order.lines.append(OrderLine(
                product_id=line.product_id if line.product_id in known_ids else None,
                product_name=line.name,
                product_sku=line.sku,
                product_image=line.media,
                colour_name=line.colour_name,
                quantity=line.quantity,
                unit_price=line.unit_price,
                subtotal=line.subtotal,
            ))
        db.session.add(order)

        if session_id:
            (
                db.session.query(CartItem)
                .filter(CartItem.session_id == str(session_id))
                .delete(synchronize_session=False)
            )

        db.session.commit()
        return order

    order = run_with_retry(_op)
    current_app.logger.info(
        "Placed order %s for customer %s (%s items, total %s)",
        order.order_number, order.customer_id, order.item_count, totals.total,
    )

    return {
        "success": True,
        "order": {
            "id": order.id,
            "order_number": order.order_number,
            "customer_id": order.customer_id,
            "total_amount": money_float(order.total_amount),
            "item_count": order.item_count,
            "created_at": to_utc_z(order.created_at),
        },
        "items": cart,
        "totals": totals.to_dict(),
    }
