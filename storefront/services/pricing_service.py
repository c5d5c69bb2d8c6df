# storefront/services/pricing_service.py
"""
Pricing engine: sale price from base cost + margin, with special-offer discount.

Storefront Pricing Invariants (authoritative)

Formula:
- calculated_price = round(price * (1 + margin / 100), 2)
- final_price = round(calculated_price * (1 - discount / 100), 2)
      when is_special_offer AND offer_discount_percentage IS NOT NULL
  otherwise final_price = calculated_price
- Rounding is half-up to the penny on Decimal values.

Effective margin:
- Taken from the highest-priority MarginRule whose scope matches the product:
    sku (0) > style (1) > category (2) > brand (3)
- Within one tier the most recently updated rule wins (then the highest id).
- No matching rule -> the product's own margin_percentage.

Resolution is evaluated on read. Rule create/update/delete never writes to
product rows, so the outcome does not depend on the order rules were saved in.
"""
from __future__ import annotations

import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable

from ..extensions import db
from ..models import MarginRule, Product
from ..models.pricing import RULE_PRIORITY, RULE_SCOPE_FIELDS, RULE_TYPE_SKU, RULE_TYPE_STYLE
from ..money import ZERO, money_float, percent_float, round_money, to_decimal

HUNDRED = Decimal("100")


def calculate_price(price, margin_percentage) -> Decimal:
    """Cost plus margin, rounded to the penny."""
    cost = to_decimal(price if price is not None else ZERO)
    margin = to_decimal(margin_percentage if margin_percentage is not None else ZERO)
    return round_money(cost * (1 + margin / HUNDRED))


def apply_offer(calculated_price, is_special_offer: bool, offer_discount_percentage) -> Decimal:
    """Special-offer discount on top of the margin price."""
    calculated = round_money(calculated_price)
    if not is_special_offer or offer_discount_percentage is None:
        return calculated
    discount = to_decimal(offer_discount_percentage)
    return round_money(calculated * (1 - discount / HUNDRED))


@dataclass(frozen=True)
class ResolvedPrice:
    margin_percentage: Decimal
    calculated_price: Decimal
    final_price: Decimal
    applied_rule_id: int | None = None
    applied_rule_type: str | None = None

    def to_dict(self) -> dict:
        return {
            "effective_margin_percentage": percent_float(self.margin_percentage),
            "calculated_price": money_float(self.calculated_price),
            "final_price": money_float(self.final_price),
            "applied_rule_id": self.applied_rule_id,
            "applied_rule_type": self.applied_rule_type,
        }


def _scope_key(rule_type: str, value):
    if value is None:
        return None
    if rule_type in (RULE_TYPE_SKU, RULE_TYPE_STYLE):
        return str(value).strip()
    return int(value)


def _product_scope_value(product, rule_type: str):
    field = RULE_SCOPE_FIELDS[rule_type]
    return _scope_key(rule_type, getattr(product, field, None))


def _rule_scope_value(rule):
    return _scope_key(rule.rule_type, getattr(rule, RULE_SCOPE_FIELDS[rule.rule_type]))


def _recency(rule) -> tuple:
    ts = rule.updated_at or rule.created_at or datetime.min
    if ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc).replace(tzinfo=None)
    return (ts, rule.id if rule.id is not None else sys.maxsize)


class RuleBook:
    """
    Margin rules indexed by tier and scope value.

    Holds one winner per (tier, scope value), so resolving a product is at
    most four dictionary lookups.
    """

    def __init__(self, rules: Iterable):
        self._tiers: dict[str, dict] = {rule_type: {} for rule_type in RULE_PRIORITY}
        for rule in rules:
            if rule.rule_type not in self._tiers:
                continue
            key = _rule_scope_value(rule)
            if key is None:
                continue
            tier = self._tiers[rule.rule_type]
            current = tier.get(key)
            if current is None or _recency(rule) > _recency(current):
                tier[key] = rule

    def winning_rule(self, product):
        for rule_type in sorted(RULE_PRIORITY, key=RULE_PRIORITY.get):
            key = _product_scope_value(product, rule_type)
            if key is None:
                continue
            rule = self._tiers[rule_type].get(key)
            if rule is not None:
                return rule
        return None

    def resolve(self, product) -> ResolvedPrice:
        rule = self.winning_rule(product)
        margin = to_decimal(rule.margin_percentage) if rule is not None else to_decimal(product.margin_percentage or ZERO)
        return resolve_price(
            price=product.price,
            margin_percentage=margin,
            is_special_offer=bool(product.is_special_offer),
            offer_discount_percentage=product.offer_discount_percentage,
            rule=rule,
        )


def resolve_price(
    *,
    price,
    margin_percentage,
    is_special_offer: bool = False,
    offer_discount_percentage=None,
    rule=None,
) -> ResolvedPrice:
    calculated = calculate_price(price, margin_percentage)
    final = apply_offer(calculated, is_special_offer, offer_discount_percentage)
    return ResolvedPrice(
        margin_percentage=to_decimal(margin_percentage if margin_percentage is not None else ZERO),
        calculated_price=calculated,
        final_price=final,
        applied_rule_id=rule.id if rule is not None else None,
        applied_rule_type=rule.rule_type if rule is not None else None,
    )


def load_rulebook(exclude_rule_id: int | None = None, extra_rules: Iterable = ()) -> RuleBook:
    query = db.session.query(MarginRule)
    if exclude_rule_id is not None:
        query = query.filter(MarginRule.id != exclude_rule_id)
    return RuleBook(list(query.all()) + list(extra_rules))


def serialize_products(products: Iterable[Product], rulebook: RuleBook | None = None) -> list[dict]:
    """to_dict() with resolved pricing, loading the rules once."""
    book = rulebook or load_rulebook()
    return [p.to_dict(pricing=book.resolve(p)) for p in products]


def scope_filter(rule_type: str, value):
    """SQL predicate selecting the products a scope matches."""
    if rule_type == "sku":
        return Product.sku == str(value).strip()
    if rule_type == "style":
        return Product.style_no == str(value).strip()
    if rule_type == "category":
        return Product.category_id == int(value)
    if rule_type == "brand":
        return Product.brand_id == int(value)
    raise ValueError(f"unknown rule_type {rule_type!r}")
