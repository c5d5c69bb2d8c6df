# storefront/routes/catalog.py
"""
Public storefront catalogue.

Only active products are listed; prices are the resolved final prices.
"""
from flask import Blueprint, request

from ..decorators import api_errors
from ..services import catalog_service

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/products")


@catalog_bp.get("")
@api_errors
def list_products_route():
    return catalog_service.list_catalog(
        category=request.args.get("category"),
        search=request.args.get("search"),
        special_offers=request.args.get("specialOffers", "").lower() == "true",
        limit=request.args.get("limit", default=48, type=int),
        offset=request.args.get("offset", default=0, type=int),
    ), 200


@catalog_bp.get("/<slug>")
@api_errors
def get_product_route(slug: str):
    return {"success": True, "product": catalog_service.catalog_product(slug)}, 200
