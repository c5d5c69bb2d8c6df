# Overview: Service-layer operations for the product catalogue; storefront browsing and product administration.

from __future__ import annotations

import re
from collections import OrderedDict

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Brand, Category, Product
from ..money import ZERO, money_float, round_money, to_decimal
from ..validation import (
    MAX_PERCENTAGE,
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    coerce_decimal,
    coerce_int,
    enforce_rules_product,
    require_string_list,
    validate_payload,
)
from .pricing_service import load_rulebook, serialize_products

BULK_DELETE_LIMIT = 100

_PRODUCT_FIELDS = {
    "sku",
    "name",
    "slug",
    "description",
    "style_no",
    "brand_id",
    "category_id",
    "price",
    "margin_percentage",
    "is_special_offer",
    "offer_discount_percentage",
    "image_url",
    "colour_name",
    "size",
    "stock_quantity",
    "reorder_point",
    "is_active",
}

_PRODUCT_ALIASES = {
    "styleNo": "style_no",
    "brandId": "brand_id",
    "categoryId": "category_id",
    "marginPercentage": "margin_percentage",
    "isSpecialOffer": "is_special_offer",
    "offerDiscountPercentage": "offer_discount_percentage",
    "imageUrl": "image_url",
    "colourName": "colour_name",
    "stockQuantity": "stock_quantity",
    "reorderPoint": "reorder_point",
    "isActive": "is_active",
}

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields=_PRODUCT_FIELDS,
    required_on_create={"sku", "name"},
    aliases=_PRODUCT_ALIASES,
)

# Stock levels change only through inventory adjustments, which keep the history.
PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=_PRODUCT_FIELDS - {"sku", "stock_quantity"},
    aliases=_PRODUCT_ALIASES,
)

STYLE_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "category_id", "image_url"},
    aliases={"categoryId": "category_id", "imageUrl": "image_url"},
)

ADMIN_SORT_COLUMNS = {
    "id": Product.id,
    "sku": Product.sku,
    "name": Product.name,
    "price": Product.price,
    "stock_quantity": Product.stock_quantity,
    "created_at": Product.created_at,
}

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def slugify(value: str | None) -> str:
    return _SLUG_RE.sub("-", (value or "").lower()).strip("-")


def product_slug(name: str, sku: str) -> str:
    """name + sku, so colour/size variants of one style get distinct slugs."""
    base, sku_slug = slugify(name), slugify(sku)
    if base and sku_slug:
        return f"{base}-{sku_slug}"
    return base or sku_slug


def resolve_brand(name: str | None) -> Brand | None:
    """Case-insensitive lookup by name, created when missing."""
    name = (name or "").strip()
    if not name:
        return None
    brand = db.session.query(Brand).filter(func.lower(Brand.name) == name.lower()).first()
    if brand is None:
        brand = Brand(name=name, slug=slugify(name))
        db.session.add(brand)
        db.session.flush()
    return brand


def resolve_category(name: str | None) -> Category | None:
    name = (name or "").strip()
    if not name:
        return None
    category = db.session.query(Category).filter(func.lower(Category.name) == name.lower()).first()
    if category is None:
        category = Category(name=name, slug=slugify(name))
        db.session.add(category)
        db.session.flush()
    return category


def _check_references(patch: dict) -> None:
    if patch.get("brand_id") is not None and db.session.get(Brand, patch["brand_id"]) is None:
        raise ValidationError("brand_id does not exist")
    if patch.get("category_id") is not None and db.session.get(Category, patch["category_id"]) is None:
        raise ValidationError("category_id does not exist")


def get_product_by_sku(sku: str) -> Product:
    product = db.session.query(Product).filter(Product.sku == sku).first()
    if product is None:
        raise NotFoundError("Product not found")
    return product


def product_payload(product: Product) -> dict:
    return serialize_products([product])[0]


# =============================================================================
# Storefront
# =============================================================================

def list_catalog(
    *,
    category: str | None = None,
    search: str | None = None,
    special_offers: bool = False,
    limit: int = 48,
    offset: int = 0,
) -> dict:
    limit = max(1, min(int(limit or 48), 200))
    offset = max(0, int(offset or 0))

    query = (
        db.session.query(Product)
        .outerjoin(Category, Category.id == Product.category_id)
        .outerjoin(Brand, Brand.id == Product.brand_id)
        .filter(Product.is_active.is_(True))
    )
    if category:
        query = query.filter(Category.slug == category)
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(
            or_(Product.name.ilike(term), Product.sku.ilike(term), Brand.name.ilike(term), Category.name.ilike(term))
        )
    if special_offers:
        query = query.filter(Product.is_special_offer.is_(True))

    total = query.count()
    rows = query.order_by(Product.name.asc(), Product.id.asc()).offset(offset).limit(limit).all()
    return {
        "success": True,
        "products": serialize_products(rows),
        "total": total,
        "hasMore": offset + len(rows) < total,
    }


def catalog_product(slug: str) -> dict:
    product = (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), or_(Product.slug == slug, Product.sku == slug))
        .first()
    )
    if product is None:
        raise NotFoundError("Product not found")

    data = product_payload(product)
    if product.style_no:
        variants = (
            db.session.query(Product)
            .filter(
                Product.is_active.is_(True),
                Product.style_no == product.style_no,
                Product.id != product.id,
            )
            .order_by(Product.colour_name.asc(), Product.size.asc(), Product.id.asc())
            .all()
        )
        data["variants"] = serialize_products(variants)
    else:
        data["variants"] = []
    return data


# =============================================================================
# Products admin: listing and aggregates
# =============================================================================

def _admin_query(filters: dict):
    query = (
        db.session.query(Product)
        .outerjoin(Brand, Brand.id == Product.brand_id)
        .outerjoin(Category, Category.id == Product.category_id)
    )

    search = (filters.get("search") or "").strip()
    if search:
        term = f"%{search}%"
        query = query.filter(
            or_(
                Product.name.ilike(term),
                Product.sku.ilike(term),
                Product.description.ilike(term),
                Brand.name.ilike(term),
                Category.name.ilike(term),
                Product.style_no.ilike(term),
            )
        )

    for key, column in (("category_id", Product.category_id), ("brand_id", Product.brand_id)):
        raw = filters.get(key)
        if raw not in (None, ""):
            query = query.filter(column == coerce_int(key, raw))

    brand_name = (filters.get("brand") or "").strip()
    if brand_name:
        query = query.filter(Brand.name.ilike(f"%{brand_name}%"))

    style_no = (filters.get("style_no") or filters.get("styleCode") or "").strip()
    if style_no:
        query = query.filter(Product.style_no == style_no)

    product_type = (filters.get("productType") or "").strip()
    if product_type:
        query = query.filter(Category.name.ilike(f"%{product_type}%"))

    offer = filters.get("hasSpecialOffer")
    if offer not in (None, ""):
        query = query.filter(Product.is_special_offer.is_(str(offer).lower() == "true"))

    include_inactive = str(filters.get("includeInactive") or "").lower() == "true"
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))

    return query


def _page_size(filters: dict) -> int:
    return max(1, min(coerce_int("limit", filters.get("limit") or 50), 200))


def list_admin_products(filters: dict) -> dict:
    """
    Keyset pagination on product id: `cursor` is the last id of the previous
    page. Rows are ordered by the sort column with id as the tie-breaker.
    """
    limit = _page_size(filters)
    query = _admin_query(filters)

    cursor = filters.get("cursor")
    if cursor not in (None, ""):
        query = query.filter(Product.id > coerce_int("cursor", cursor))

    column = ADMIN_SORT_COLUMNS.get(filters.get("sortBy") or "id", Product.id)
    descending = str(filters.get("sortDir") or "").lower() == "desc"
    ordering = [column.desc() if descending else column.asc()]
    if column is not Product.id:
        ordering.append(Product.id.asc())

    rows = query.order_by(*ordering).limit(limit + 1).all()
    has_more = len(rows) > limit
    rows = rows[:limit]
    return {
        "success": True,
        "products": serialize_products(rows),
        "nextCursor": rows[-1].id if has_more and rows else None,
        "hasMore": has_more,
    }


def _aggregate(filters: dict, key_fn, build_row) -> dict:
    """Group filtered products in memory (final prices are resolved on read)."""
    limit = _page_size(filters)
    offset = coerce_int("cursor", filters.get("cursor") or 0)

    products = _admin_query(filters).order_by(Product.id.asc()).all()
    rulebook = load_rulebook()

    groups: "OrderedDict[tuple, list]" = OrderedDict()
    for product in products:
        groups.setdefault(key_fn(product), []).append((product, rulebook.resolve(product)))

    keys = sorted(groups, key=lambda k: tuple("" if v is None else str(v).lower() for v in k))
    page = keys[offset:offset + limit + 1]
    has_more = len(page) > limit
    page = page[:limit]
    return {
        "rows": [build_row(key, groups[key]) for key in page],
        "hasMore": has_more,
        "nextCursor": offset + limit if has_more else None,
    }


def _avg(values) -> float | None:
    values = [to_decimal(v) for v in values if v is not None]
    if not values:
        return None
    return money_float(round_money(sum(values, ZERO) / len(values)))


def _brand_label(product: Product) -> str:
    return product.brand.name if product.brand else "Unbranded"


def _category_label(product: Product) -> str:
    return product.category.name if product.category else "Uncategorized"


def brand_aggregates(filters: dict) -> dict:
    def build(key, items):
        return {
            "brand": key[0],
            "style_count": len({p.style_no for p, _ in items if p.style_no}),
            "variant_count": len(items),
            "avg_margin": _avg(price.margin_percentage for _, price in items),
            "avg_cost": _avg(p.price for p, _ in items),
            "avg_final_price": _avg(price.final_price for _, price in items),
            "special_offer_count": sum(1 for p, _ in items if p.is_special_offer),
        }

    result = _aggregate(filters, lambda p: (_brand_label(p),), build)
    return {"success": True, "brands": result["rows"], "hasMore": result["hasMore"], "nextCursor": result["nextCursor"]}


def product_type_aggregates(filters: dict) -> dict:
    def build(key, items):
        return {
            "product_type": key[0],
            "brand_count": len({p.brand_id for p, _ in items if p.brand_id}),
            "style_count": len({p.style_no for p, _ in items if p.style_no}),
            "variant_count": len(items),
            "avg_margin": _avg(price.margin_percentage for _, price in items),
            "avg_final_price": _avg(price.final_price for _, price in items),
            "special_offer_count": sum(1 for p, _ in items if p.is_special_offer),
        }

    result = _aggregate(filters, lambda p: (_category_label(p),), build)
    return {
        "success": True,
        "productTypes": result["rows"],
        "hasMore": result["hasMore"],
        "nextCursor": result["nextCursor"],
    }


def style_aggregates(filters: dict) -> dict:
    def build(key, items):
        finals = [price.final_price for _, price in items]
        costs = [to_decimal(p.price) for p, _ in items]
        images = [p.image_url for p, _ in items if p.image_url]
        return {
            "style_code": key[0],
            "style_name": min(p.name for p, _ in items),
            "brand": key[1],
            "product_type": key[2],
            "variant_count": len(items),
            "avg_margin": _avg(price.margin_percentage for _, price in items),
            "min_cost": money_float(min(costs)),
            "max_cost": money_float(max(costs)),
            "min_final_price": money_float(min(finals)),
            "max_final_price": money_float(max(finals)),
            "special_offer_count": sum(1 for p, _ in items if p.is_special_offer),
            "image_url": max(images) if images else None,
        }

    result = _aggregate(
        filters,
        lambda p: (p.style_no, _brand_label(p), _category_label(p)),
        build,
    )
    return {"success": True, "styles": result["rows"], "hasMore": result["hasMore"], "nextCursor": result["nextCursor"]}


def brands_list() -> list[dict]:
    return [{"id": b.id, "name": b.name} for b in db.session.query(Brand).order_by(Brand.name.asc()).all()]


def categories_list() -> list[dict]:
    return [
        {"id": c.id, "name": c.name, "slug": c.slug, "parent_id": c.parent_id}
        for c in db.session.query(Category).order_by(Category.display_order.asc(), Category.name.asc()).all()
    ]


def filter_values() -> dict:
    styles = (
        db.session.query(Product.style_no, func.min(Product.name))
        .filter(Product.style_no.isnot(None))
        .group_by(Product.style_no)
        .order_by(Product.style_no.asc())
        .limit(500)
        .all()
    )
    return {
        "success": True,
        "brands": brands_list(),
        "categories": [{"id": c["id"], "name": c["name"]} for c in categories_list()],
        "styles": [{"style_no": style_no, "style_name": name} for style_no, name in styles],
    }


# =============================================================================
# Products admin: writes
# =============================================================================

def _pop_names(payload: dict) -> tuple[dict, str | None, str | None]:
    data = dict(payload or {})
    brand_name = data.pop("brand_name", None) or data.pop("brandName", None)
    category_name = data.pop("category_name", None) or data.pop("categoryName", None)
    data.pop("brandName", None)
    data.pop("categoryName", None)
    return data, brand_name, category_name


def create_product(payload: dict) -> Product:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    data, brand_name, category_name = _pop_names(payload)

    patch = validate_payload(model=Product, payload=data, policy=PRODUCT_CREATE_POLICY, partial=False)
    enforce_rules_product(patch)
    _check_references(patch)

    if db.session.query(Product.id).filter(Product.sku == patch["sku"]).first() is not None:
        raise ConflictError(f"SKU {patch['sku']} already exists")

    if patch.get("brand_id") is None and brand_name:
        patch["brand_id"] = resolve_brand(brand_name).id
    if patch.get("category_id") is None and category_name:
        patch["category_id"] = resolve_category(category_name).id

    if not patch.get("slug"):
        patch["slug"] = product_slug(patch["name"], patch["sku"])
    if patch.get("reorder_point") is None:
        patch["reorder_point"] = int(current_app.config.get("DEFAULT_REORDER_POINT", 10))
    if patch.get("stock_quantity") is None:
        patch["stock_quantity"] = 0

    product = Product(**patch)
    db.session.add(product)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("A product with this SKU or slug already exists")

    current_app.logger.info("Created product %s (%s)", product.sku, product.name)
    return product


def update_product(sku: str, payload: dict) -> Product:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    product = get_product_by_sku(sku)
    data, brand_name, category_name = _pop_names(payload)

    patch = validate_payload(model=Product, payload=data, policy=PRODUCT_UPDATE_POLICY, partial=True)
    enforce_rules_product(patch)
    _check_references(patch)
    if "name" in patch and not patch["name"]:
        raise ValidationError("name cannot be blank")

    if brand_name and "brand_id" not in patch:
        patch["brand_id"] = resolve_brand(brand_name).id
    if category_name and "category_id" not in patch:
        patch["category_id"] = resolve_category(category_name).id
    if not patch and not brand_name and not category_name:
        raise ValidationError("No fields to update")

    for key, value in patch.items():
        setattr(product, key, value)
    if not product.is_special_offer:
        product.offer_discount_percentage = None

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("A product with this slug already exists")
    return product


def deactivate_product(sku: str) -> Product:
    product = get_product_by_sku(sku)
    product.is_active = False
    db.session.commit()
    current_app.logger.info("Deactivated product %s", product.sku)
    return product


def update_style(style_no: str, payload: dict) -> dict:
    """Apply descriptive edits to every variant of a style."""
    patch = validate_payload(model=Product, payload=payload, policy=STYLE_UPDATE_POLICY, partial=True)
    if not patch:
        raise ValidationError("No fields to update")
    if "name" in patch and not patch["name"]:
        raise ValidationError("name cannot be blank")
    _check_references(patch)

    products = db.session.query(Product).filter(Product.style_no == style_no).all()
    for product in products:
        for key, value in patch.items():
            setattr(product, key, value)
    db.session.commit()
    return {"success": True, "updated": len(products), "styleNo": style_no}


def _products_for_skus(skus: list[str]) -> list[Product]:
    return db.session.query(Product).filter(Product.sku.in_(skus)).order_by(Product.sku.asc()).all()


def bulk_set_margin(payload: dict) -> dict:
    """Set the fallback margin on the given SKUs. Matching margin rules still take precedence."""
    skus = require_string_list(payload, "skuCodes")
    raw = payload.get("marginPercentage")
    if raw is None or isinstance(raw, (bool, str)):
        raise ValidationError("marginPercentage required")
    margin = coerce_decimal("marginPercentage", raw)
    if margin < 0 or margin > MAX_PERCENTAGE:
        raise ValidationError(f"marginPercentage must be between 0 and {MAX_PERCENTAGE}")

    products = _products_for_skus(skus)
    for product in products:
        product.margin_percentage = margin
    db.session.commit()
    current_app.logger.info("Set fallback margin %s%% on %s products", margin, len(products))
    return {"success": True, "updated": len(products), "skus": [p.sku for p in products]}


def bulk_set_special_offer(payload: dict) -> dict:
    skus = require_string_list(payload, "skuCodes")
    raw = payload.get("discountPercentage")
    discount = ZERO if raw in (None, "") else coerce_decimal("discountPercentage", raw)
    if discount < 0 or discount > 100:
        raise ValidationError("discountPercentage must be between 0 and 100")

    products = _products_for_skus(skus)
    for product in products:
        product.is_special_offer = True
        product.offer_discount_percentage = discount
    db.session.commit()
    return {"success": True, "updated": len(products), "skus": [p.sku for p in products]}


def bulk_clear_special_offer(payload: dict) -> dict:
    skus = require_string_list(payload, "skuCodes")
    products = _products_for_skus(skus)
    for product in products:
        product.is_special_offer = False
        product.offer_discount_percentage = None
    db.session.commit()
    return {"success": True, "updated": len(products), "skus": [p.sku for p in products]}


def bulk_deactivate(payload: dict) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    raw = payload.get("ids")
    if not isinstance(raw, list) or not raw:
        raise ValidationError("Product IDs array required")

    ids = []
    for value in raw[:BULK_DELETE_LIMIT]:
        try:
            ids.append(coerce_int("ids", value))
        except ValidationError:
            continue
    if not ids:
        raise ValidationError("No valid IDs provided")

    products = db.session.query(Product).filter(Product.id.in_(ids)).order_by(Product.id.asc()).all()
    for product in products:
        product.is_active = False
    db.session.commit()
    current_app.logger.info("Deactivated %s products", len(products))
    return {"success": True, "deletedCount": len(products), "deletedIds": [p.id for p in products]}
