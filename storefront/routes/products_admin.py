# storefront/routes/products_admin.py
"""
Product administration routes.

Listing endpoints take the same filter query parameters:
search, category_id, brand_id, brand, style_no, productType, hasSpecialOffer,
includeInactive, limit, cursor.

Deletion is soft (is_active=False); order history keeps referencing the row.
"""
from flask import Blueprint, request

from ..decorators import api_errors
from ..services import catalog_service

products_admin_bp = Blueprint("products_admin", __name__, url_prefix="/api/products-admin")


def _filters() -> dict:
    return request.args.to_dict()


@products_admin_bp.get("")
@api_errors
def list_products_route():
    return catalog_service.list_admin_products(_filters()), 200


@products_admin_bp.get("/variants")
@api_errors
def list_variants_route():
    result = catalog_service.list_admin_products(_filters())
    return {
        "success": True,
        "variants": result["products"],
        "nextCursor": result["nextCursor"],
        "hasMore": result["hasMore"],
    }, 200


@products_admin_bp.get("/brands")
@api_errors
def brand_aggregates_route():
    return catalog_service.brand_aggregates(_filters()), 200


@products_admin_bp.get("/product-types")
@api_errors
def product_type_aggregates_route():
    return catalog_service.product_type_aggregates(_filters()), 200


@products_admin_bp.get("/styles")
@api_errors
def style_aggregates_route():
    return catalog_service.style_aggregates(_filters()), 200


@products_admin_bp.get("/brands-list")
@api_errors
def brands_list_route():
    return {"success": True, "brands": catalog_service.brands_list()}, 200


@products_admin_bp.get("/categories-list")
@api_errors
def categories_list_route():
    return {"success": True, "categories": catalog_service.categories_list()}, 200


@products_admin_bp.get("/filter-values")
@api_errors
def filter_values_route():
    return catalog_service.filter_values(), 200


@products_admin_bp.post("")
@api_errors
def create_product_route():
    payload = request.get_json(silent=True) or {}
    product = catalog_service.create_product(payload)
    return {"success": True, "product": catalog_service.product_payload(product)}, 201


@products_admin_bp.post("/bulk/margin")
@api_errors
def bulk_margin_route():
    return catalog_service.bulk_set_margin(request.get_json(silent=True) or {}), 200


@products_admin_bp.post("/bulk/special-offer")
@api_errors
def bulk_special_offer_route():
    return catalog_service.bulk_set_special_offer(request.get_json(silent=True) or {}), 200


@products_admin_bp.delete("/bulk/special-offer")
@api_errors
def bulk_clear_special_offer_route():
    return catalog_service.bulk_clear_special_offer(request.get_json(silent=True) or {}), 200


@products_admin_bp.delete("/bulk")
@api_errors
def bulk_deactivate_route():
    return catalog_service.bulk_deactivate(request.get_json(silent=True) or {}), 200


@products_admin_bp.put("/style/<style_no>")
@api_errors
def update_style_route(style_no: str):
    return catalog_service.update_style(style_no, request.get_json(silent=True) or {}), 200


@products_admin_bp.get("/<sku>")
@api_errors
def get_product_route(sku: str):
    product = catalog_service.get_product_by_sku(sku)
    return {"success": True, "product": catalog_service.product_payload(product)}, 200


@products_admin_bp.put("/<sku>")
@api_errors
def update_product_route(sku: str):
    payload = request.get_json(silent=True) or {}
    product = catalog_service.update_product(sku, payload)
    return {"success": True, "product": catalog_service.product_payload(product)}, 200


@products_admin_bp.delete("/<sku>")
@api_errors
def delete_product_route(sku: str):
    product = catalog_service.deactivate_product(sku)
    return {"success": True, "product": catalog_service.product_payload(product)}, 200
