# Overview: Service-layer operations for inventory; stock adjustments, reorder points and stock reporting.

# storefront/services/inventory_service.py

import csv
import io

from flask import current_app
from sqlalchemy import case, func, or_

from ..extensions import db
from ..models import Brand, Product, StockHistory
from ..models.inventory import CHANGE_TYPES
from ..money import money_float
from ..validation import NotFoundError, ValidationError, coerce_decimal, coerce_int
from .concurrency import lock_for_update, run_with_retry
from .pricing_service import load_rulebook

"""
Storefront Inventory Invariants (authoritative)

Stock model:
- Product.stock_quantity is the current level (NULL is read as 0).
- Every change made here appends exactly one StockHistory row, in the same
  transaction as the quantity write.
- change_amount == new_quantity - previous_quantity.

Adjustment types:
- set:      new = q
- add:      new = current + q
- subtract: new = max(0, current - q)   (stock never goes negative)

Batches:
- Each product in a batch is adjusted and committed on its own. A missing
  product or a failed item is reported in `errors` and does not undo the
  items already adjusted.

Stock status:
- 0 / NULL                   -> out_of_stock
- 0 < qty <= reorder_point   -> low_stock
- qty > reorder_point        -> in_stock
"""

STOCK_STATUSES = ("in_stock", "low_stock", "out_of_stock")

LIST_SORT_COLUMNS = {
    "stock_quantity": func.coalesce(Product.stock_quantity, 0),
    "sku": Product.sku,
    "name": Product.name,
    "reorder_point": Product.reorder_point,
    "created_at": Product.created_at,
}

EXPORT_HEADER = ["SKU", "Name", "Brand", "Category", "Stock", "Reorder Point", "Cost", "Price"]


class InventoryError(ValidationError):
    """Raised when a stock operation cannot be applied."""
    pass


def _default_reorder_point() -> int:
    return int(current_app.config.get("DEFAULT_REORDER_POINT", 10))


def _effective_reorder_point(product: Product) -> int:
    if product.reorder_point is None:
        return _default_reorder_point()
    return int(product.reorder_point)


def stock_status(quantity, reorder_point) -> str:
    qty = int(quantity or 0)
    if qty <= 0:
        return "out_of_stock"
    if reorder_point is None:
        reorder_point = _default_reorder_point()
    if qty <= int(reorder_point):
        return "low_stock"
    return "in_stock"


def apply_adjustment(current: int, adjustment_type: str, quantity: int) -> int:
    if adjustment_type == "set":
        return quantity
    if adjustment_type == "add":
        return current + quantity
    if adjustment_type == "subtract":
        return max(0, current - quantity)
    raise InventoryError(f"adjustmentType must be one of: {', '.join(CHANGE_TYPES)}")


def _status_filter(status: str):
    qty = func.coalesce(Product.stock_quantity, 0)
    reorder = func.coalesce(Product.reorder_point, _default_reorder_point())
    if status == "in_stock":
        return qty > reorder
    if status == "low_stock":
        return (qty > 0) & (qty <= reorder)
    if status == "out_of_stock":
        return qty <= 0
    raise ValidationError(f"status must be one of: {', '.join(STOCK_STATUSES)}")


def _parse_quantity(raw) -> int:
    if raw is None or isinstance(raw, (bool, str)):
        raise ValidationError("quantity must be a non-negative number")
    value = coerce_decimal("quantity", raw)
    if value < 0:
        raise ValidationError("quantity must be a non-negative number")
    if value != value.to_integral_value():
        raise ValidationError("quantity must be a whole number")
    return int(value)


def _adjust_one(product_id: int, adjustment_type: str, quantity: int, reason, created_by: str) -> dict:
    def _op() -> dict:
        product = lock_for_update(db.session.query(Product).filter(Product.id == product_id)).first()
        if product is None:
            raise NotFoundError("Product not found")

        previous = int(product.stock_quantity or 0)
        new = apply_adjustment(previous, adjustment_type, quantity)

        product.stock_quantity = new
        db.session.add(StockHistory(
            product_id=product.id,
            sku=product.sku,
            previous_quantity=previous,
            new_quantity=new,
            change_amount=new - previous,
            change_type=adjustment_type,
            reason=reason,
            created_by=created_by,
        ))
        db.session.commit()
        return {
            "productId": product.id,
            "sku": product.sku,
            "previousQuantity": previous,
            "newQuantity": new,
            "changeAmount": new - previous,
        }

    return run_with_retry(_op)


def adjust_stock(payload: dict) -> dict:
    """
    Bulk stock adjustment. Validation errors on the request as a whole raise;
    failures on individual products are collected per item.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    raw_ids = payload.get("productIds")
    if not isinstance(raw_ids, list) or not raw_ids:
        raise ValidationError("productIds array required")

    adjustment_type = payload.get("adjustmentType")
    if adjustment_type not in CHANGE_TYPES:
        raise ValidationError(f"adjustmentType must be one of: {', '.join(CHANGE_TYPES)}")

    quantity = _parse_quantity(payload.get("quantity"))
    reason = (str(payload.get("reason")).strip() or None) if payload.get("reason") is not None else None
    created_by = str(payload.get("createdBy") or "admin").strip() or "admin"

    batch_limit = int(current_app.config.get("STOCK_ADJUST_BATCH_LIMIT", 100))

    results: list[dict] = []
    errors: list[dict] = []
    for raw_id in raw_ids[:batch_limit]:
        try:
            product_id = coerce_int("productIds", raw_id)
            results.append(_adjust_one(product_id, adjustment_type, quantity, reason, created_by))
        except (ValidationError, NotFoundError) as exc:
            db.session.rollback()
            errors.append({"productId": raw_id, "error": str(exc)})
        except Exception as exc:
            db.session.rollback()
            current_app.logger.warning("Stock adjustment failed for product %s: %s", raw_id, exc)
            errors.append({"productId": raw_id, "error": str(exc)})

    current_app.logger.info(
        "Stock %s by %s: %s adjusted, %s failed",
        adjustment_type, created_by, len(results), len(errors),
    )

    response = {"success": True, "adjusted": len(results), "results": results}
    if errors:
        response["errors"] = errors
    return response


def set_reorder_point(payload: dict) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    raw_ids = payload.get("productIds")
    if not isinstance(raw_ids, list) or not raw_ids:
        raise ValidationError("productIds array required")
    product_ids = [coerce_int("productIds", v) for v in raw_ids]

    raw_point = payload.get("reorderPoint")
    if raw_point is None or isinstance(raw_point, (bool, str)):
        raise ValidationError("reorderPoint must be a non-negative number")
    point = coerce_decimal("reorderPoint", raw_point)
    if point < 0:
        raise ValidationError("reorderPoint must be a non-negative number")
    if point != point.to_integral_value():
        raise ValidationError("reorderPoint must be a whole number")

    def _op() -> list[Product]:
        products = (
            lock_for_update(db.session.query(Product).filter(Product.id.in_(product_ids)))
            .order_by(Product.id)
            .all()
        )
        for product in products:
            product.reorder_point = int(point)
        db.session.commit()
        return products

    products = run_with_retry(_op)
    return {
        "success": True,
        "updated": len(products),
        "products": [{"id": p.id, "sku": p.sku} for p in products],
    }


def _stock_row(product: Product, rulebook) -> dict:
    reorder = _effective_reorder_point(product)
    qty = int(product.stock_quantity or 0)
    return {
        "id": product.id,
        "sku": product.sku,
        "name": product.name,
        "image_url": product.image_url,
        "stock_quantity": qty,
        "reorder_point": reorder,
        "stock_status": stock_status(qty, reorder),
        "price": money_float(product.price),
        "final_price": money_float(rulebook.resolve(product).final_price),
        "brand_name": product.brand.name if product.brand else None,
        "category_name": product.category.name if product.category else None,
    }


def _page_args(limit, offset) -> tuple[int, int]:
    limit = max(1, min(int(limit or 50), 200))
    offset = max(0, int(offset or 0))
    return limit, offset


def list_stock(
    *,
    search: str | None = None,
    status: str | None = None,
    brand_id: int | None = None,
    category_id: int | None = None,
    sort_by: str = "stock_quantity",
    sort_dir: str = "asc",
    limit: int = 50,
    offset: int = 0,
) -> dict:
    limit, offset = _page_args(limit, offset)

    query = (
        db.session.query(Product)
        .outerjoin(Brand, Brand.id == Product.brand_id)
        .filter(Product.is_active.is_(True))
    )
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(or_(Product.name.ilike(term), Product.sku.ilike(term), Brand.name.ilike(term)))
    if status:
        query = query.filter(_status_filter(status))
    if brand_id is not None:
        query = query.filter(Product.brand_id == brand_id)
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)

    column = LIST_SORT_COLUMNS.get(sort_by, LIST_SORT_COLUMNS["stock_quantity"])
    ordering = column.desc() if str(sort_dir).lower() == "desc" else column.asc()

    rows = query.order_by(ordering, Product.sku.asc()).offset(offset).limit(limit + 1).all()
    has_more = len(rows) > limit
    rows = rows[:limit]

    rulebook = load_rulebook()
    return {
        "success": True,
        "products": [_stock_row(p, rulebook) for p in rows],
        "hasMore": has_more,
        "nextOffset": offset + limit if has_more else None,
    }


def stock_stats() -> dict:
    qty = func.coalesce(Product.stock_quantity, 0)
    reorder = func.coalesce(Product.reorder_point, _default_reorder_point())

    total, in_stock, low, out, units, avg = (
        db.session.query(
            func.count(Product.id),
            func.sum(case((qty > reorder, 1), else_=0)),
            func.sum(case(((qty > 0) & (qty <= reorder), 1), else_=0)),
            func.sum(case((qty <= 0, 1), else_=0)),
            func.sum(qty),
            func.avg(qty),
        )
        .filter(Product.is_active.is_(True))
        .one()
    )
    return {
        "totalSkus": int(total or 0),
        "inStock": int(in_stock or 0),
        "lowStock": int(low or 0),
        "outOfStock": int(out or 0),
        "totalUnits": int(units or 0),
        "avgStockPerSku": round(float(avg or 0), 2),
    }


def stock_alerts(*, limit: int = 50, offset: int = 0) -> dict:
    limit, offset = _page_args(limit, offset)
    qty = func.coalesce(Product.stock_quantity, 0)
    reorder = func.coalesce(Product.reorder_point, _default_reorder_point())

    rows = (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), qty <= reorder)
        .order_by(qty.asc(), Product.name.asc())
        .offset(offset)
        .limit(limit + 1)
        .all()
    )
    has_more = len(rows) > limit
    rows = rows[:limit]

    rulebook = load_rulebook()
    return {
        "success": True,
        "alerts": [_stock_row(p, rulebook) for p in rows],
        "hasMore": has_more,
        "nextOffset": offset + limit if has_more else None,
    }


def stock_history(
    *,
    product_id: int | None = None,
    sku: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> dict:
    limit, offset = _page_args(limit, offset)

    query = db.session.query(StockHistory)
    if product_id is not None:
        query = query.filter(StockHistory.product_id == product_id)
    if sku:
        query = query.filter(StockHistory.sku == sku.strip())

    rows = (
        query.order_by(StockHistory.created_at.desc(), StockHistory.id.desc())
        .offset(offset)
        .limit(limit + 1)
        .all()
    )
    has_more = len(rows) > limit
    rows = rows[:limit]
    return {
        "success": True,
        "history": [h.to_dict() for h in rows],
        "hasMore": has_more,
        "nextOffset": offset + limit if has_more else None,
    }


def export_csv() -> str:
    """Active products as CSV, one row per SKU."""
    products = (
        db.session.query(Product)
        .filter(Product.is_active.is_(True))
        .order_by(Product.sku.asc())
        .all()
    )
    rulebook = load_rulebook()

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(EXPORT_HEADER)
    for product in products:
        writer.writerow([
            product.sku,
            product.name,
            product.brand.name if product.brand else "",
            product.category.name if product.category else "",
            int(product.stock_quantity or 0),
            _effective_reorder_point(product),
            f"{money_float(product.price):.2f}",
            f"{money_float(rulebook.resolve(product).final_price):.2f}",
        ])
    return buffer.getvalue()
