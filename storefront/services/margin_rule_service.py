# Overview: Service-layer operations for margin rules; CRUD plus non-mutating impact previews.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import MarginRule, Product
from ..models.pricing import RULE_SCOPE_FIELDS
from ..money import ZERO, money_float, round_money
from ..validation import (
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_margin_rule,
    validate_payload,
)
from storefront.time_utils import utcnow
from .pricing_service import load_rulebook, scope_filter

PREVIEW_SAMPLE_SIZE = 10

MARGIN_RULE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "rule_type", "margin_percentage", "sku", "style_no", "category_id", "brand_id"},
    required_on_create={"name", "rule_type", "margin_percentage"},
    aliases={
        "ruleType": "rule_type",
        "marginPercentage": "margin_percentage",
        "styleNo": "style_no",
        "categoryId": "category_id",
        "brandId": "brand_id",
    },
)


class PricingError(ValidationError):
    """Raised when a margin rule cannot be evaluated."""
    pass


def _scope_value(rule) -> object:
    return getattr(rule, RULE_SCOPE_FIELDS[rule.rule_type])


def _products_in_scope(rule_type: str, value):
    return db.session.query(Product).filter(scope_filter(rule_type, value))


def get_rule(rule_id: int) -> MarginRule:
    rule = db.session.get(MarginRule, rule_id)
    if rule is None:
        raise NotFoundError("Margin rule not found")
    return rule


def list_rules() -> list[MarginRule]:
    return (
        db.session.query(MarginRule)
        .order_by(MarginRule.created_at.desc(), MarginRule.id.desc())
        .all()
    )


def applied_report(rule: MarginRule) -> dict:
    """
    matched:  products the rule's scope selects
    governed: products whose effective margin now comes from this rule
    """
    products = _products_in_scope(rule.rule_type, _scope_value(rule)).all()
    rulebook = load_rulebook()
    governed = 0
    for product in products:
        winner = rulebook.winning_rule(product)
        if winner is not None and winner.id == rule.id:
            governed += 1
    return {"matched": len(products), "governed": governed}


def _merged_scope(patch: dict, existing: MarginRule | None) -> dict:
    """Full rule state after applying `patch`, for scope validation."""
    merged = {}
    for key in MARGIN_RULE_POLICY.writable_fields:
        merged[key] = getattr(existing, key) if existing is not None else None
    merged.update(patch)

    # Changing rule_type drops the scope columns that no longer apply
    if existing is not None and "rule_type" in patch:
        keep = RULE_SCOPE_FIELDS.get(patch["rule_type"])
        for field in RULE_SCOPE_FIELDS.values():
            if field != keep and field not in patch:
                merged[field] = None
    return merged


def create_rule(payload: dict) -> tuple[MarginRule, dict]:
    patch = validate_payload(model=MarginRule, payload=payload, policy=MARGIN_RULE_POLICY, partial=False)
    merged = _merged_scope(patch, None)
    enforce_rules_margin_rule(merged)

    rule = MarginRule(**{k: v for k, v in merged.items() if v is not None})
    db.session.add(rule)
    db.session.commit()

    applied = applied_report(rule)
    current_app.logger.info(
        "Created margin rule %s (%s=%s, %s%%): %s matched, %s governed",
        rule.id, rule.rule_type, _scope_value(rule), rule.margin_percentage,
        applied["matched"], applied["governed"],
    )
    return rule, applied


def update_rule(rule_id: int, payload: dict) -> tuple[MarginRule, dict]:
    rule = get_rule(rule_id)
    patch = validate_payload(model=MarginRule, payload=payload, policy=MARGIN_RULE_POLICY, partial=True)
    merged = _merged_scope(patch, rule)
    enforce_rules_margin_rule(merged)

    for key, value in merged.items():
        setattr(rule, key, value)
    rule.updated_at = utcnow()
    db.session.commit()

    applied = applied_report(rule)
    current_app.logger.info(
        "Updated margin rule %s: %s matched, %s governed", rule.id, applied["matched"], applied["governed"]
    )
    return rule, applied


def delete_rule(rule_id: int) -> None:
    rule = get_rule(rule_id)
    db.session.delete(rule)
    db.session.commit()
    current_app.logger.info("Deleted margin rule %s", rule_id)


def preview_rule(payload: dict) -> dict:
    """
    Impact of a candidate rule without saving it.

    An optional `id` previews an edit: the stored rule is left out of the
    evaluation and the candidate stands in for it.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    exclude_id = payload.get("id")
    if exclude_id is not None:
        try:
            exclude_id = int(exclude_id)
        except (TypeError, ValueError):
            raise PricingError("id must be an integer")
    candidate_payload = {k: v for k, v in payload.items() if k != "id"}
    if not candidate_payload.get("name"):
        candidate_payload["name"] = "preview"

    patch = validate_payload(model=MarginRule, payload=candidate_payload, policy=MARGIN_RULE_POLICY, partial=False)
    merged = _merged_scope(patch, None)
    enforce_rules_margin_rule(merged)

    now = utcnow()
    candidate = MarginRule(**{k: v for k, v in merged.items() if v is not None})
    candidate.created_at = now
    candidate.updated_at = now

    current_book = load_rulebook()
    preview_book = load_rulebook(
        exclude_rule_id=exclude_id,
        extra_rules=[candidate],
    )

    products = (
        _products_in_scope(candidate.rule_type, _scope_value(candidate))
        .order_by(Product.id)
        .all()
    )

    affected = []
    for product in products:
        if preview_book.winning_rule(product) is not candidate:
            continue
        current = current_book.resolve(product)
        new = preview_book.resolve(product)
        affected.append((product, current, new))

    new_prices = [new.final_price for _, _, new in affected]
    summary = {
        "matched": len(products),
        "affected": len(affected),
        "avg_new_price": money_float(round_money(sum(new_prices, ZERO) / len(new_prices))) if new_prices else None,
        "min_new_price": money_float(min(new_prices)) if new_prices else None,
        "max_new_price": money_float(max(new_prices)) if new_prices else None,
    }
    sample = [
        {
            "id": product.id,
            "sku": product.sku,
            "name": product.name,
            "current_margin": float(current.margin_percentage),
            "new_margin": float(new.margin_percentage),
            "current_price": money_float(current.final_price),
            "new_price": money_float(new.final_price),
        }
        for product, current, new in affected[:PREVIEW_SAMPLE_SIZE]
    ]
    return {"success": True, "preview": summary, "sample": sample}
