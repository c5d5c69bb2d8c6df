# storefront/routes/margin_rules.py
"""
Margin rule routes.

Rules are resolved when prices are read, so create/update/delete never touch
product rows. Create and update report `applied`:
- matched: products in the rule's scope
- governed: products whose effective margin now comes from this rule
"""
from flask import Blueprint, request

from ..decorators import api_errors
from ..services import margin_rule_service

margin_rules_bp = Blueprint("margin_rules", __name__, url_prefix="/api/margin-rules")


@margin_rules_bp.get("")
@api_errors
def list_rules_route():
    rules = margin_rule_service.list_rules()
    return {"success": True, "rules": [r.to_dict() for r in rules]}, 200


@margin_rules_bp.post("")
@api_errors
def create_rule_route():
    rule, applied = margin_rule_service.create_rule(request.get_json(silent=True) or {})
    return {"success": True, "rule": rule.to_dict(), "applied": applied}, 201


@margin_rules_bp.post("/preview")
@api_errors
def preview_rule_route():
    return margin_rule_service.preview_rule(request.get_json(silent=True) or {}), 200


@margin_rules_bp.put("/<int:rule_id>")
@api_errors
def update_rule_route(rule_id: int):
    rule, applied = margin_rule_service.update_rule(rule_id, request.get_json(silent=True) or {})
    return {"success": True, "rule": rule.to_dict(), "applied": applied}, 200


@margin_rules_bp.delete("/<int:rule_id>")
@api_errors
def delete_rule_route(rule_id: int):
    margin_rule_service.delete_rule(rule_id)
    return {"success": True, "deleted": rule_id}, 200
