"""
Order administration tests.

Verifies:
- delivery status moves one step at a time: new -> confirmed ->
  delivery_booked -> in_transit -> delivered
- booking delivery needs courier + tracking number
- totals and status are not editable through PUT
- duplicate, list and metrics endpoints
"""

import pytest

from storefront.services.order_service import get_next_status


@pytest.fixture
def order_id(place_order):
    return place_order()["order"]["id"]


def _progress(client, order_id, **payload):
    return client.post(f"/api/orders-admin/{order_id}/progress", json=payload)


class TestStateMachine:

    @pytest.mark.parametrize(
        "current,expected",
        [
            ("new", "confirmed"),
            ("confirmed", "delivery_booked"),
            ("delivery_booked", "in_transit"),
            ("in_transit", "delivered"),
            ("delivered", None),
            (None, "confirmed"),
            ("cancelled", None),
        ],
    )
    def test_next_status(self, current, expected):
        assert get_next_status(current) == expected

    def test_full_lifecycle(self, client, order_id):
        resp = _progress(client, order_id)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["order"]["delivery_status"] == "confirmed"
        assert body["nextStatus"] == "delivery_booked"

        resp = _progress(client, order_id, courier="Royal Mail", tracking_number="RM123456GB")
        assert resp.status_code == 200
        order = resp.get_json()["order"]
        assert order["delivery_status"] == "delivery_booked"
        assert order["courier"] == "Royal Mail"
        assert order["tracking_number"] == "RM123456GB"

        resp = _progress(client, order_id)
        order = resp.get_json()["order"]
        assert order["delivery_status"] == "in_transit"
        assert order["shipped_at"] is not None
        assert order["delivered_at"] is None

        resp = _progress(client, order_id)
        body = resp.get_json()
        assert body["order"]["delivery_status"] == "delivered"
        assert body["order"]["delivered_at"] is not None
        assert body["nextStatus"] is None

        resp = _progress(client, order_id)
        assert resp.status_code == 400
        assert "final status" in resp.get_json()["error"]

    def test_booking_requires_courier_and_tracking(self, client, order_id):
        _progress(client, order_id)

        resp = _progress(client, order_id, courier="DPD")
        assert resp.status_code == 400

        detail = client.get(f"/api/orders-admin/{order_id}").get_json()
        assert detail["order"]["delivery_status"] == "confirmed"

    def test_book_delivery_only_from_confirmed(self, client, order_id):
        payload = {"courier": "DPD", "trackingNumber": "15501234", "notes": "Leave with neighbour"}

        resp = client.post(f"/api/orders-admin/{order_id}/book-delivery", json=payload)
        assert resp.status_code == 400

        _progress(client, order_id)
        resp = client.post(f"/api/orders-admin/{order_id}/book-delivery", json={
            **payload, "expectedDeliveryDate": "2026-10-21",
        })
        assert resp.status_code == 200
        order = resp.get_json()["order"]
        assert order["delivery_status"] == "delivery_booked"
        assert order["expected_delivery_date"] == "2026-10-21"
        assert order["notes"] == "Leave with neighbour"

    def test_unknown_order(self, client):
        assert _progress(client, 424242).status_code == 404
        assert client.get("/api/orders-admin/424242").status_code == 404


class TestMetadataUpdate:

    def test_edit_notes_and_payment_status(self, client, order_id):
        resp = client.put(f"/api/orders-admin/{order_id}", json={
            "notes": "Gift wrap",
            "paymentStatus": "refunded",
        })
        assert resp.status_code == 200
        order = resp.get_json()["order"]
        assert order["notes"] == "Gift wrap"
        assert order["payment_status"] == "refunded"
        assert order["total_amount"] == 45.78

    @pytest.mark.parametrize(
        "payload",
        [
            {"total_amount": 1},
            {"delivery_status": "delivered"},
            {"payment_status": "maybe"},
            {"expected_delivery_date": "next week"},
            {},
        ],
    )
    def test_rejected_edits(self, client, order_id, payload):
        resp = client.put(f"/api/orders-admin/{order_id}", json=payload)
        assert resp.status_code == 400

        order = client.get(f"/api/orders-admin/{order_id}").get_json()["order"]
        assert order["total_amount"] == 45.78
        assert order["delivery_status"] == "new"


class TestDuplicate:

    def test_duplicate_gets_fresh_number(self, client, order_id):
        _progress(client, order_id)
        original = client.get(f"/api/orders-admin/{order_id}").get_json()["order"]

        resp = client.post(f"/api/orders-admin/{order_id}/duplicate")
        assert resp.status_code == 201
        body = resp.get_json()
        copy = body["order"]
        assert body["order_number"] == copy["order_number"]
        assert copy["order_number"] != original["order_number"]
        assert copy["order_number"].endswith("-0002")
        assert copy["delivery_status"] == "new"
        assert copy["payment_status"] == "pending"
        assert copy["total_amount"] == original["total_amount"]
        assert copy["notes"] == f"Duplicated from {original['order_number']}"

        detail = client.get(f"/api/orders-admin/{copy['id']}").get_json()["order"]
        assert [line["product_name"] for line in detail["lines"]] == ["Cord Grip"]


class TestListingAndMetrics:

    def test_list_with_status_counts(self, client, place_order):
        first = place_order()["order"]["id"]
        place_order(email="pro@example.com", name="Pro Shop")
        _progress(client, first)

        body = client.get("/api/orders-admin").get_json()
        assert body["total"] == 2
        assert body["statusCounts"]["new"] == 1
        assert body["statusCounts"]["confirmed"] == 1
        assert body["hasMore"] is False

        confirmed = client.get("/api/orders-admin?status=confirmed").get_json()
        assert [o["id"] for o in confirmed["orders"]] == [first]

        searched = client.get("/api/orders-admin?search=pro@example").get_json()
        assert searched["total"] == 1
        assert searched["orders"][0]["customer_name"] == "Pro Shop"

    def test_metrics(self, client, place_order):
        place_order()
        place_order(cart=[{"name": "Driver", "price": 299.99, "quantity": 1}])

        metrics = client.get("/api/orders-admin/metrics").get_json()["metrics"]
        assert metrics["total_orders"] == 2
        # 45.78 + (299.99 + 60.00 VAT, free shipping)
        assert metrics["total_revenue"] == 405.77
        assert metrics["new_orders"] == 2
        assert metrics["this_month_orders"] == 2
