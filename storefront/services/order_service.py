# Overview: Service-layer operations for orders; numbering, fulfilment state machine and admin queries.

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Order, OrderLine, OrderSequence
from ..models.orders import DELIVERY_STATUSES
from ..money import ZERO, money_float, round_money
from storefront.time_utils import month_period, parse_iso_date, utcnow
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import lock_for_update, run_with_retry

"""
Order Pipeline Invariants (authoritative)

Numbering:
- Format is PREFIX-YYYYMM-NNNN (e.g. AST-202610-0001). The suffix is unique
  and strictly increasing within a calendar month and restarts each month.
- Allocation goes through the OrderSequence counter row with an atomic
  UPDATE ... SET next_number = next_number + 1 inside the caller's transaction.
- The first allocation of a month seeds the counter from the highest number
  already issued with that prefix, so older data keeps its series.
- A suffix above 9999 is an error; the format is never silently widened.

Fulfilment:
- delivery_status moves strictly forward one step at a time:
    new -> confirmed -> delivery_booked -> in_transit -> delivered
- Entering delivery_booked requires courier + tracking_number.
- Entering in_transit stamps shipped_at; entering delivered stamps delivered_at.
- Monetary totals are immutable after placement.
"""

SUFFIX_DIGITS = 4
MAX_SUFFIX = 10 ** SUFFIX_DIGITS - 1

# Fields the admin may edit after placement.
ORDER_METADATA_FIELDS = {"notes", "payment_status", "expected_delivery_date", "courier", "tracking_number"}
ORDER_METADATA_ALIASES = {
    "paymentStatus": "payment_status",
    "expectedDeliveryDate": "expected_delivery_date",
    "trackingNumber": "tracking_number",
}
PAYMENT_STATUSES = ("pending", "paid", "failed", "refunded")


class OrderError(ValidationError):
    """Raised when an order operation violates the fulfilment rules."""
    pass


class OrderNumberExhaustedError(ConflictError):
    """Raised when a month has used every available order number suffix."""
    pass


def format_order_number(prefix: str, period: str, number: int) -> str:
    return f"{prefix}-{period}-{number:0{SUFFIX_DIGITS}d}"


def _highest_issued_suffix(prefix: str, period: str) -> int:
    stem = f"{prefix}-{period}-"
    numbers = (
        db.session.query(Order.order_number)
        .filter(Order.order_number.like(f"{stem}%"))
        .all()
    )
    highest = 0
    for (number,) in numbers:
        suffix = number[len(stem):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return highest


def next_order_number(*, prefix: str | None = None, now: datetime | None = None) -> str:
    """
    Allocate the next order number for the month of `now`.

    Does not commit: the allocation becomes durable with the caller's
    transaction, so a rolled-back checkout does not consume a number.
    """
    prefix = prefix or current_app.config.get("ORDER_NUMBER_PREFIX", "AST")
    period = month_period(now)

    stmt = (
        update(OrderSequence)
        .where(OrderSequence.prefix == prefix, OrderSequence.period == period)
        .values(next_number=OrderSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(OrderSequence.next_number)
            .filter_by(prefix=prefix, period=period)
            .scalar()
        )
        allocated = current - 1
    else:
        allocated = _highest_issued_suffix(prefix, period) + 1
        try:
            with db.session.begin_nested():
                db.session.add(OrderSequence(prefix=prefix, period=period, next_number=allocated + 1))
        except IntegrityError:
            # Another checkout seeded the month first
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            current = (
                db.session.query(OrderSequence.next_number)
                .filter_by(prefix=prefix, period=period)
                .scalar()
            )
            allocated = current - 1

    if allocated > MAX_SUFFIX:
        raise OrderNumberExhaustedError(
            f"Order numbers for {prefix}-{period} are exhausted ({MAX_SUFFIX} issued)"
        )
    return format_order_number(prefix, period, allocated)


def get_next_status(status: str | None) -> str | None:
    current = status or "new"
    if current not in DELIVERY_STATUSES:
        return None
    index = DELIVERY_STATUSES.index(current)
    if index + 1 >= len(DELIVERY_STATUSES):
        return None
    return DELIVERY_STATUSES[index + 1]


def get_order(order_id: int, *, lock: bool = False) -> Order:
    query = db.session.query(Order).filter(Order.id == order_id)
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if order is None:
        raise NotFoundError("Order not found")
    return order


def order_detail(order: Order) -> dict:
    data = order.to_dict()
    data["lines"] = [line.to_dict() for line in order.lines]
    return {
        "order": data,
        "nextStatus": get_next_status(order.delivery_status),
    }


def _clean(value) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _append_note(order: Order, note: str | None) -> None:
    note = _clean(note)
    if not note:
        return
    order.notes = f"{order.notes}\n{note}" if order.notes else note


def _enter_status(order: Order, new_status: str, *, courier=None, tracking_number=None, expected_delivery_date=None):
    now = utcnow()
    if new_status == "delivery_booked":
        courier = _clean(courier)
        tracking_number = _clean(tracking_number)
        if not courier or not tracking_number:
            raise OrderError("Courier and tracking number are required to book delivery")
        order.courier = courier
        order.tracking_number = tracking_number
        if expected_delivery_date:
            try:
                order.expected_delivery_date = parse_iso_date(expected_delivery_date)
            except ValueError:
                raise OrderError("expected_delivery_date must be an ISO-8601 date")
    elif new_status == "in_transit" and order.shipped_at is None:
        order.shipped_at = now
    elif new_status == "delivered" and order.delivered_at is None:
        order.delivered_at = now

    previous = order.delivery_status
    order.delivery_status = new_status
    current_app.logger.info(
        "Order %s moved %s -> %s", order.order_number, previous, new_status
    )


def progress_order(order_id: int, payload: dict | None = None) -> Order:
    """Advance an order to the single next delivery status."""
    payload = payload or {}

    def _op() -> Order:
        order = get_order(order_id, lock=True)
        next_status = get_next_status(order.delivery_status)
        if next_status is None:
            raise OrderError("Order is already at final status")
        _enter_status(
            order,
            next_status,
            courier=payload.get("courier"),
            tracking_number=payload.get("tracking_number", payload.get("trackingNumber")),
            expected_delivery_date=payload.get("expected_delivery_date", payload.get("expectedDeliveryDate")),
        )
        db.session.commit()
        return order

    return run_with_retry(_op)


def book_delivery(order_id: int, payload: dict | None = None) -> Order:
    """Book courier delivery for a confirmed order."""
    payload = payload or {}

    def _op() -> Order:
        order = get_order(order_id, lock=True)
        if order.delivery_status != "confirmed":
            raise OrderError(
                f"Delivery can only be booked for confirmed orders (current status: {order.delivery_status})"
            )
        _enter_status(
            order,
            "delivery_booked",
            courier=payload.get("courier"),
            tracking_number=payload.get("tracking_number", payload.get("trackingNumber")),
            expected_delivery_date=payload.get("expected_delivery_date", payload.get("expectedDeliveryDate")),
        )
        _append_note(order, payload.get("notes"))
        db.session.commit()
        return order

    return run_with_retry(_op)


def update_order_metadata(order_id: int, payload: dict) -> Order:
    """
    Edit fulfilment metadata. Totals and delivery_status are not editable here;
    status only changes through progress_order / book_delivery.
    """
    if not isinstance(payload, dict) or not payload:
        raise ValidationError("No fields to update")

    normalized = {ORDER_METADATA_ALIASES.get(k, k): v for k, v in payload.items()}
    rejected = sorted(k for k in normalized if k not in ORDER_METADATA_FIELDS)
    if rejected:
        raise ValidationError(f"Field not allowed: {', '.join(rejected)}")

    if "payment_status" in normalized and normalized["payment_status"] not in PAYMENT_STATUSES:
        raise ValidationError(f"payment_status must be one of: {', '.join(PAYMENT_STATUSES)}")

    def _op() -> Order:
        order = get_order(order_id, lock=True)
        for key, value in normalized.items():
            if key == "expected_delivery_date":
                try:
                    value = parse_iso_date(value) if value else None
                except ValueError:
                    raise ValidationError("expected_delivery_date must be an ISO-8601 date")
            elif key != "payment_status":
                value = _clean(value)
            setattr(order, key, value)
        db.session.commit()
        return order

    return run_with_retry(_op)


def duplicate_order(order_id: int) -> Order:
    """Copy an order (snapshot, totals, lines) under a fresh number with status new."""
    def _op() -> Order:
        original = get_order(order_id)
        copy = Order(
            order_number=next_order_number(),
            customer_id=original.customer_id,
            customer_name=original.customer_name,
            customer_email=original.customer_email,
            customer_phone=original.customer_phone,
            shipping_address=original.shipping_address,
            billing_address=original.billing_address,
            payment_method=original.payment_method,
            payment_status="pending",
            subtotal=original.subtotal,
            tax_amount=original.tax_amount,
            shipping_amount=original.shipping_amount,
            total_amount=original.total_amount,
            item_count=original.item_count,
            delivery_status="new",
            notes=f"Duplicated from {original.order_number}",
        )
        for line in original.lines:
            copy.lines.append(OrderLine(
                product_id=line.product_id,
                product_name=line.product_name,
                product_sku=line.product_sku,
                product_image=line.product_image,
                colour_name=line.colour_name,
                quantity=line.quantity,
                unit_price=line.unit_price,
                subtotal=line.subtotal,
            ))
        db.session.add(copy)
        db.session.commit()
        current_app.logger.info("Duplicated order %s as %s", original.order_number, copy.order_number)
        return copy

    return run_with_retry(_op)


def list_orders(
    *,
    search: str | None = None,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> dict:
    limit = max(1, min(int(limit or 50), 200))
    offset = max(0, int(offset or 0))

    query = db.session.query(Order)
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Order.order_number.ilike(term),
                Order.customer_name.ilike(term),
                Order.customer_email.ilike(term),
            )
        )
    if status and status != "all":
        query = query.filter(Order.delivery_status == status)

    total = query.count()
    rows = query.order_by(Order.created_at.desc(), Order.id.desc()).offset(offset).limit(limit).all()

    counts = dict(
        db.session.query(Order.delivery_status, func.count(Order.id))
        .group_by(Order.delivery_status)
        .all()
    )
    status_counts = {s: int(counts.get(s, 0)) for s in DELIVERY_STATUSES}

    return {
        "orders": [o.to_dict() for o in rows],
        "total": total,
        "limit": limit,
        "offset": offset,
        "hasMore": offset + len(rows) < total,
        "statusCounts": status_counts,
    }


def order_metrics(now: datetime | None = None) -> dict:
    now = now or utcnow()
    start_of_month = datetime(now.year, now.month, 1)

    total_orders, total_revenue = (
        db.session.query(func.count(Order.id), func.coalesce(func.sum(Order.total_amount), 0)).one()
    )

    def _count(*criteria) -> int:
        return int(db.session.query(func.count(Order.id)).filter(*criteria).scalar() or 0)

    revenue = round_money(total_revenue or ZERO)
    return {
        "total_orders": int(total_orders or 0),
        "total_revenue": money_float(revenue),
        "avg_order_value": money_float(revenue / total_orders) if total_orders else 0.0,
        "new_orders": _count(Order.delivery_status == "new"),
        "pending_orders": _count(Order.delivery_status.in_(("new", "confirmed"))),
        "delivered_orders": _count(Order.delivery_status == "delivered"),
        "this_month_orders": _count(Order.created_at >= start_of_month),
    }
