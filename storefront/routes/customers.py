# storefront/routes/customers.py
"""
Customer directory routes.

DELETE is a soft delete (is_active=False). location_region is derived from
the postcode and cannot be written directly.
"""
from flask import Blueprint, request

from ..decorators import api_errors
from ..services import customer_service

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers-admin")


@customers_bp.get("")
@api_errors
def list_customers_route():
    result = customer_service.list_customers(
        search=request.args.get("search"),
        region=request.args.get("region") or None,
        sort=request.args.get("sort", "created_at"),
        direction=request.args.get("direction", "desc"),
        limit=request.args.get("limit", default=50, type=int),
        offset=request.args.get("offset", default=0, type=int),
    )
    return {"success": True, **result}, 200


@customers_bp.get("/regions")
@api_errors
def regions_route():
    return {"success": True, "regions": customer_service.region_summary()}, 200


@customers_bp.get("/map")
@api_errors
def map_route():
    points = customer_service.map_points(region=request.args.get("region") or None)
    return {"success": True, "customers": points}, 200


@customers_bp.get("/<int:customer_id>")
@api_errors
def get_customer_route(customer_id: int):
    return {"success": True, "customer": customer_service.customer_detail(customer_id)}, 200


@customers_bp.post("")
@api_errors
def create_customer_route():
    customer = customer_service.create_customer(request.get_json(silent=True) or {})
    return {"success": True, "customer": customer.to_dict()}, 201


@customers_bp.put("/<int:customer_id>")
@api_errors
def update_customer_route(customer_id: int):
    customer = customer_service.update_customer(customer_id, request.get_json(silent=True) or {})
    return {"success": True, "customer": customer.to_dict()}, 200


@customers_bp.delete("/<int:customer_id>")
@api_errors
def delete_customer_route(customer_id: int):
    customer_service.delete_customer(customer_id)
    return {"success": True, "deleted": customer_id}, 200


@customers_bp.post("/<int:customer_id>/contacts")
@api_errors
def add_contact_route(customer_id: int):
    contact = customer_service.add_contact(customer_id, request.get_json(silent=True) or {})
    return {"success": True, "contact": contact.to_dict()}, 201


@customers_bp.post("/<int:customer_id>/recalculate")
@api_errors
def recalculate_route(customer_id: int):
    customer = customer_service.recalculate_customer_stats(customer_id)
    return {"success": True, "customer": customer.to_dict()}, 200
