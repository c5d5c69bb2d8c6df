"""
Checkout tests.

Verifies:
- totals: subtotal, 20% VAT, free shipping from 50, flat 5 below it
- caller-supplied totals win over computed ones
- a placed order carries its number, customer, snapshot lines and totals
- the whole checkout is one unit of work (nothing persists on failure)
"""

from decimal import Decimal

import pytest

from storefront.models import CartItem, Customer, Order, OrderSequence
from storefront.services.checkout_service import CheckoutLine, compute_totals
from storefront.time_utils import month_period


def _line(price, quantity):
    return CheckoutLine(
        product_id=None,
        name="Item",
        sku=None,
        media=None,
        colour_name=None,
        unit_price=Decimal(price),
        quantity=quantity,
    )


# =============================================================================
# TOTALS
# =============================================================================


class TestComputeTotals:

    def test_small_order_pays_shipping(self):
        totals = compute_totals([_line("16.99", 2)])
        assert totals.subtotal == Decimal("33.98")
        assert totals.tax == Decimal("6.80")
        assert totals.shipping == Decimal("5.00")
        assert totals.total == Decimal("45.78")

    def test_free_shipping_at_threshold(self):
        totals = compute_totals([_line("25.00", 2)])
        assert totals.subtotal == Decimal("50.00")
        assert totals.shipping == Decimal("0")
        assert totals.total == Decimal("60.00")

    def test_supplied_totals_are_used(self):
        totals = compute_totals(
            [_line("16.99", 2)],
            {"subtotal": 30, "tax": None, "shipping": 0, "total": 36},
        )
        assert totals.subtotal == Decimal("30.00")
        assert totals.tax == Decimal("6.00")
        assert totals.shipping == Decimal("0.00")
        assert totals.total == Decimal("36.00")

    def test_configured_rates(self):
        totals = compute_totals(
            [_line("10.00", 1)],
            vat_rate=Decimal("0"),
            free_shipping_threshold=Decimal("5"),
            flat_shipping_rate=Decimal("3.95"),
        )
        assert totals.tax == Decimal("0.00")
        assert totals.shipping == Decimal("0")
        assert totals.total == Decimal("10.00")


# =============================================================================
# PLACE ORDER
# =============================================================================


class TestPlaceOrder:

    def test_order_created_with_number_and_totals(self, client, db_session, place_order):
        body = place_order()

        assert body["success"] is True
        order = body["order"]
        assert order["order_number"] == f"AST-{month_period()}-0001"
        assert order["total_amount"] == 45.78
        assert order["item_count"] == 2
        assert body["totals"] == {"subtotal": 33.98, "tax": 6.8, "shipping": 5.0, "total": 45.78}

        stored = db_session.get(Order, order["id"])
        assert stored.payment_status == "paid"
        assert stored.delivery_status == "new"
        assert stored.customer_email == "jane@example.com"
        assert stored.shipping_address["postcode"] == "SW1A 1AA"
        assert len(stored.lines) == 1
        line = stored.lines[0]
        assert line.product_name == "Cord Grip"
        assert line.unit_price == Decimal("16.99")
        assert line.subtotal == Decimal("33.98")

    def test_numbers_increase_within_month(self, client, place_order):
        first = place_order()["order"]["order_number"]
        second = place_order(email="other@example.com")["order"]["order_number"]
        assert first.endswith("-0001")
        assert second.endswith("-0002")

    def test_customer_upserted_by_email(self, client, db_session, place_order):
        first = place_order(name="Jane Fairway")
        second = place_order(name="Jane Bunker", postcode="EH1 1AA")

        assert first["order"]["customer_id"] == second["order"]["customer_id"]
        customers = db_session.query(Customer).all()
        assert len(customers) == 1
        assert customers[0].last_name == "Bunker"
        assert customers[0].shipping_postcode == "EH1 1AA"

    def test_repeat_checkout_overwrites_details(self, client, db_session, checkout_payload):
        first = checkout_payload()
        first["customerData"]["phone"] = "0123"
        first["customerData"]["address"]["line2"] = "Flat 2"
        assert client.post("/api/checkout", json=first).status_code == 200

        second = checkout_payload(postcode="EH1 1AA")
        del second["customerData"]["phone"]
        del second["customerData"]["address"]["country"]
        assert client.post("/api/checkout", json=second).status_code == 200

        customer = db_session.query(Customer).one()
        assert customer.phone is None
        assert customer.shipping_address_2 is None
        assert customer.shipping_postcode == "EH1 1AA"
        assert customer.shipping_country == "United Kingdom"
        assert customer.billing_postcode is None
        assert customer.location_region == "Scotland"

    def test_new_customer_gets_region_from_postcode(self, client, db_session, place_order):
        body = place_order(email="scot@example.com", postcode="EH1 1AA")
        customer = db_session.get(Customer, body["order"]["customer_id"])
        assert customer.location_region == "Scotland"
        assert customer.first_name == "Jane"
        assert customer.last_name == "Fairway"

    def test_known_product_is_linked(self, client, db_session, make_product, place_order):
        product = make_product(sku="GRP-CORD", name="Cord Grip")
        product_id = product.id

        body = place_order(cart=[
            {"id": product_id, "name": "Cord Grip", "price": 16.99, "quantity": 1},
            {"id": 999999, "name": "Ghost Grip", "price": 5, "quantity": 1},
        ])
        order = db_session.get(Order, body["order"]["id"])
        assert [line.product_id for line in order.lines] == [product_id, None]

    def test_session_cart_is_cleared(self, client, db_session, make_product, add_to_cart, place_order):
        product = make_product()
        add_to_cart("sess-1", product, 2)
        add_to_cart("sess-2", product, 1)

        place_order(sessionId="sess-1")

        assert db_session.query(CartItem).filter_by(session_id="sess-1").count() == 0
        assert db_session.query(CartItem).filter_by(session_id="sess-2").count() == 1

    def test_response_echoes_cart(self, client, place_order):
        body = place_order()
        assert body["items"][0]["name"] == "Cord Grip"


class TestCheckoutValidation:

    @pytest.mark.parametrize(
        "mutate",
        [
            lambda p: p.pop("customerData"),
            lambda p: p["customerData"].update(email=""),
            lambda p: p["customerData"].update(name="  "),
            lambda p: p.update(cart=[]),
            lambda p: p.update(cart=[{"name": "Grip", "price": 10, "quantity": 0}]),
            lambda p: p.update(cart=[{"name": "Grip", "price": -1, "quantity": 1}]),
            lambda p: p.update(cart=[{"name": "Grip", "quantity": 1}]),
            lambda p: p.update(cart=[{"price": 10, "quantity": 1}]),
            lambda p: p.update(totals="45.78"),
        ],
    )
    def test_bad_payload_rejected(self, client, db_session, checkout_payload, mutate):
        payload = checkout_payload()
        mutate(payload)

        resp = client.post("/api/checkout", json=payload)
        assert resp.status_code == 400
        assert resp.get_json()["success"] is False
        assert db_session.query(Order).count() == 0
        assert db_session.query(Customer).count() == 0

    def test_exhausted_numbers_roll_back_everything(self, client, db_session, make_product, add_to_cart, checkout_payload):
        product = make_product()
        add_to_cart("sess-1", product, 1)
        db_session.add(OrderSequence(prefix="AST", period=month_period(), next_number=10000))
        db_session.commit()

        resp = client.post("/api/checkout", json=checkout_payload(sessionId="sess-1"))

        assert resp.status_code == 409
        db_session.expire_all()
        assert db_session.query(Order).count() == 0
        assert db_session.query(Customer).count() == 0
        assert db_session.query(CartItem).filter_by(session_id="sess-1").count() == 1
        assert db_session.query(OrderSequence).one().next_number == 10000
