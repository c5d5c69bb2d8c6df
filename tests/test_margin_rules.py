"""
Margin rule API tests.

Verifies:
- scope validation (exactly one scope value, matching rule_type)
- create/update report which products the rule matches and governs
- preview evaluates a candidate without persisting anything
"""

import pytest

from storefront.models import MarginRule


class TestCreateRule:

    def test_create_category_rule(self, client, category, make_product):
        make_product(category_id=category.id)
        make_product(category_id=category.id)

        resp = client.post("/api/margin-rules", json={
            "name": "Grips uplift",
            "ruleType": "category",
            "categoryId": category.id,
            "marginPercentage": 35,
        })
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["rule"]["rule_type"] == "category"
        assert body["rule"]["priority"] == 2
        assert body["rule"]["margin_percentage"] == 35.0
        assert body["applied"] == {"matched": 2, "governed": 2}

    def test_governed_excludes_products_with_higher_priority_rule(self, client, category, make_product, make_rule):
        make_product(sku="GRP-A", category_id=category.id)
        make_product(sku="GRP-B", category_id=category.id)
        make_rule("sku", "10", sku="GRP-A")

        resp = client.post("/api/margin-rules", json={
            "name": "Grips",
            "rule_type": "category",
            "category_id": category.id,
            "margin_percentage": 40,
        })
        assert resp.status_code == 201
        assert resp.get_json()["applied"] == {"matched": 2, "governed": 1}

    @pytest.mark.parametrize(
        "payload",
        [
            {"name": "no scope", "rule_type": "category", "margin_percentage": 10},
            {"name": "wrong scope", "rule_type": "sku", "brand_id": 1, "margin_percentage": 10},
            {"name": "two scopes", "rule_type": "sku", "sku": "X", "style_no": "Y", "margin_percentage": 10},
            {"name": "bad type", "rule_type": "colour", "sku": "X", "margin_percentage": 10},
            {"name": "negative", "rule_type": "sku", "sku": "X", "margin_percentage": -5},
            {"rule_type": "sku", "sku": "X", "margin_percentage": 10},
        ],
    )
    def test_invalid_rules_rejected(self, client, payload):
        resp = client.post("/api/margin-rules", json=payload)
        assert resp.status_code == 400
        assert resp.get_json()["success"] is False

    def test_unknown_field_rejected(self, client):
        resp = client.post("/api/margin-rules", json={
            "name": "x", "rule_type": "sku", "sku": "X", "margin_percentage": 10, "priority": 0,
        })
        assert resp.status_code == 400
        assert "priority" in resp.get_json()["error"]


class TestUpdateAndDeleteRule:

    def test_update_margin(self, client, make_product, make_rule):
        make_product(sku="GRP-A", price="50.00")
        rule = make_rule("sku", "10", sku="GRP-A")

        resp = client.put(f"/api/margin-rules/{rule.id}", json={"marginPercentage": 50})
        assert resp.status_code == 200
        assert resp.get_json()["rule"]["margin_percentage"] == 50.0

        product = client.get("/api/products-admin/GRP-A").get_json()["product"]
        assert product["final_price"] == 75.0

    def test_changing_rule_type_drops_old_scope(self, client, brand, make_rule):
        rule = make_rule("sku", "10", sku="GRP-A")

        resp = client.put(f"/api/margin-rules/{rule.id}", json={"rule_type": "brand", "brand_id": brand.id})
        assert resp.status_code == 200
        data = resp.get_json()["rule"]
        assert data["rule_type"] == "brand"
        assert data["brand_id"] == brand.id
        assert data["sku"] is None

    def test_update_unknown_rule(self, client):
        resp = client.put("/api/margin-rules/9999", json={"margin_percentage": 10})
        assert resp.status_code == 404

    def test_delete_unknown_rule(self, client):
        assert client.delete("/api/margin-rules/9999").status_code == 404

    def test_list_rules(self, client, make_rule):
        make_rule("sku", "10", sku="A")
        make_rule("style", "20", style_no="ST-1")

        resp = client.get("/api/margin-rules")
        assert resp.status_code == 200
        assert {r["rule_type"] for r in resp.get_json()["rules"]} == {"sku", "style"}


class TestPreviewRule:

    def test_preview_does_not_persist(self, client, db_session, category, make_product):
        make_product(sku="GRP-A", price="100.00", margin_percentage="20", category_id=category.id)

        resp = client.post("/api/margin-rules/preview", json={
            "rule_type": "category",
            "category_id": category.id,
            "margin_percentage": 50,
        })
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["preview"]["matched"] == 1
        assert body["preview"]["affected"] == 1
        assert body["preview"]["avg_new_price"] == 150.0
        assert body["sample"][0]["current_price"] == 120.0
        assert body["sample"][0]["new_price"] == 150.0

        assert db_session.query(MarginRule).count() == 0

    def test_preview_respects_higher_priority_rules(self, client, category, make_product, make_rule):
        make_product(sku="GRP-A", category_id=category.id)
        make_rule("sku", "30", sku="GRP-A")

        resp = client.post("/api/margin-rules/preview", json={
            "rule_type": "category",
            "category_id": category.id,
            "margin_percentage": 50,
        })
        preview = resp.get_json()["preview"]
        assert preview["matched"] == 1
        assert preview["affected"] == 0
        assert preview["avg_new_price"] is None

    def test_preview_of_edit_replaces_stored_rule(self, client, category, make_product, make_rule):
        make_product(sku="GRP-A", price="100.00", category_id=category.id)
        rule = make_rule("category", "40", category_id=category.id)

        resp = client.post("/api/margin-rules/preview", json={
            "id": rule.id,
            "rule_type": "category",
            "category_id": category.id,
            "margin_percentage": 10,
        })
        sample = resp.get_json()["sample"][0]
        assert sample["current_price"] == 140.0
        assert sample["new_price"] == 110.0

    def test_preview_rejects_invalid_scope(self, client):
        resp = client.post("/api/margin-rules/preview", json={"rule_type": "sku", "margin_percentage": 10})
        assert resp.status_code == 400
