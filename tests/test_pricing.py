"""
Pricing engine tests.

Verifies:
- cost + margin rounding (half-up to the penny)
- special-offer discount only when flagged AND a discount is set
- rule precedence sku > style > category > brand, newest rule within a tier
- prices are resolved on read, independent of rule save order
"""

from datetime import datetime
from decimal import Decimal

from storefront.models import MarginRule, Product
from storefront.services.pricing_service import (
    RuleBook,
    apply_offer,
    calculate_price,
    load_rulebook,
    resolve_price,
)


def _product(**overrides):
    fields = {
        "sku": "GRP-001",
        "style_no": "ST-100",
        "category_id": 2,
        "brand_id": 3,
        "price": Decimal("100.00"),
        "margin_percentage": Decimal("10"),
        "is_special_offer": False,
    }
    fields.update(overrides)
    return Product(**fields)


def _rule(rule_id, rule_type, margin, updated_at=datetime(2026, 1, 1), **scope):
    return MarginRule(
        id=rule_id,
        name=f"rule {rule_id}",
        rule_type=rule_type,
        margin_percentage=Decimal(str(margin)),
        created_at=updated_at,
        updated_at=updated_at,
        **scope,
    )


# =============================================================================
# FORMULA
# =============================================================================


class TestPriceFormula:

    def test_margin_on_cost(self):
        assert calculate_price("100", "20") == Decimal("120.00")

    def test_offer_discount_on_margin_price(self):
        assert apply_offer(Decimal("120.00"), True, Decimal("25")) == Decimal("90.00")

    def test_half_up_rounding(self):
        # 0.05 * 1.30 = 0.065
        assert calculate_price("0.05", "30") == Decimal("0.07")

    def test_offer_flag_without_discount_keeps_price(self):
        assert apply_offer(Decimal("120.00"), True, None) == Decimal("120.00")

    def test_discount_without_offer_flag_is_ignored(self):
        assert apply_offer(Decimal("120.00"), False, Decimal("25")) == Decimal("120.00")

    def test_missing_margin_is_zero(self):
        assert calculate_price("16.99", None) == Decimal("16.99")

    def test_resolve_price_reports_both_prices(self):
        resolved = resolve_price(
            price="100",
            margin_percentage="20",
            is_special_offer=True,
            offer_discount_percentage="25",
        )
        data = resolved.to_dict()
        assert data["calculated_price"] == 120.0
        assert data["final_price"] == 90.0
        assert data["effective_margin_percentage"] == 20.0
        assert data["applied_rule_id"] is None


# =============================================================================
# RULE PRECEDENCE
# =============================================================================


class TestRuleBook:

    def test_no_rules_uses_product_margin(self):
        resolved = RuleBook([]).resolve(_product())
        assert resolved.margin_percentage == Decimal("10")
        assert resolved.final_price == Decimal("110.00")

    def test_sku_beats_every_other_tier(self):
        rules = [
            _rule(1, "brand", 50, brand_id=3),
            _rule(2, "category", 40, category_id=2),
            _rule(3, "style", 30, style_no="ST-100"),
            _rule(4, "sku", 20, sku="GRP-001"),
        ]
        resolved = RuleBook(rules).resolve(_product())
        assert resolved.applied_rule_id == 4
        assert resolved.applied_rule_type == "sku"
        assert resolved.final_price == Decimal("120.00")

    def test_style_beats_category_and_brand(self):
        rules = [
            _rule(1, "brand", 50, brand_id=3),
            _rule(2, "category", 40, category_id=2),
            _rule(3, "style", 30, style_no="ST-100"),
        ]
        assert RuleBook(rules).winning_rule(_product()).id == 3

    def test_category_beats_brand(self):
        rules = [
            _rule(1, "category", 40, category_id=2),
            _rule(2, "brand", 50, brand_id=3, updated_at=datetime(2026, 6, 1)),
        ]
        assert RuleBook(rules).winning_rule(_product()).id == 1

    def test_newest_rule_wins_within_tier(self):
        rules = [
            _rule(1, "category", 40, category_id=2, updated_at=datetime(2026, 3, 1)),
            _rule(2, "category", 15, category_id=2, updated_at=datetime(2026, 1, 1)),
        ]
        resolved = RuleBook(rules).resolve(_product())
        assert resolved.applied_rule_id == 1
        assert resolved.margin_percentage == Decimal("40")

    def test_highest_id_breaks_timestamp_tie(self):
        same = datetime(2026, 2, 2, 9, 30)
        rules = [
            _rule(7, "brand", 35, brand_id=3, updated_at=same),
            _rule(5, "brand", 25, brand_id=3, updated_at=same),
        ]
        assert RuleBook(rules).winning_rule(_product()).id == 7

    def test_rule_for_other_scope_is_ignored(self):
        rules = [_rule(1, "sku", 90, sku="OTHER-SKU"), _rule(2, "brand", 50, brand_id=99)]
        resolved = RuleBook(rules).resolve(_product())
        assert resolved.applied_rule_id is None
        assert resolved.final_price == Decimal("110.00")

    def test_offer_applies_on_top_of_rule_margin(self):
        product = _product(is_special_offer=True, offer_discount_percentage=Decimal("25"))
        resolved = RuleBook([_rule(1, "sku", 20, sku="GRP-001")]).resolve(product)
        assert resolved.calculated_price == Decimal("120.00")
        assert resolved.final_price == Decimal("90.00")


# =============================================================================
# RESOLVED ON READ
# =============================================================================


class TestResolvedOnRead:

    def test_rule_save_order_does_not_matter(self, db_session, category, brand, make_product, make_rule):
        product = make_product(sku="GRP-777", category_id=category.id, brand_id=brand.id)

        make_rule("sku", "20", sku="GRP-777", updated_at=datetime(2026, 1, 1))
        make_rule("brand", "60", brand_id=brand.id, updated_at=datetime(2026, 5, 1))

        resolved = load_rulebook().resolve(product)
        assert resolved.applied_rule_type == "sku"
        assert resolved.final_price == Decimal("120.00")

    def test_catalogue_shows_rule_price(self, client, category, make_product, make_rule):
        make_product(sku="GRP-100", slug="cord-grip", category_id=category.id, price="16.99")
        make_rule("category", "100", category_id=category.id)

        resp = client.get("/api/products/cord-grip")
        assert resp.status_code == 200
        product = resp.get_json()["product"]
        assert product["price"] == 16.99
        assert product["final_price"] == 33.98
        assert product["applied_rule_type"] == "category"

    def test_deleting_rule_restores_product_margin(self, client, category, make_product, make_rule):
        make_product(sku="GRP-200", slug="velvet-grip", category_id=category.id, price="10.00", margin_percentage="50")
        rule = make_rule("category", "100", category_id=category.id)
        rule_id = rule.id

        assert client.get("/api/products/velvet-grip").get_json()["product"]["final_price"] == 20.0

        resp = client.delete(f"/api/margin-rules/{rule_id}")
        assert resp.status_code == 200

        assert client.get("/api/products/velvet-grip").get_json()["product"]["final_price"] == 15.0
