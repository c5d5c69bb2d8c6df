"""
Health endpoint, error mapping, CORS and CLI command tests.
"""

from storefront.models import Category, Customer, Order, Product


class TestHealth:

    def test_healthy(self, client, make_product):
        make_product()
        resp = client.get("/api/health")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["success"] is True
        assert body["checks"]["database"]["details"]["products"] == 1


class TestErrorsAndHeaders:

    def test_unknown_resources_are_404_json(self, client):
        resp = client.get("/api/customers-admin/31337")
        assert resp.status_code == 404
        assert resp.get_json() == {"success": False, "error": "Customer not found"}

    def test_unexpected_error_is_500(self, app, client, monkeypatch):
        from storefront.services import order_service

        def boom(**kwargs):
            raise RuntimeError("database on fire")

        monkeypatch.setattr(order_service, "order_metrics", boom)

        resp = client.get("/api/orders-admin/metrics")
        assert resp.status_code == 500
        assert resp.get_json()["error"] == "database on fire"

        monkeypatch.setitem(app.config, "EXPOSE_ERROR_DETAILS", False)
        resp = client.get("/api/orders-admin/metrics")
        assert resp.get_json()["error"] == "Internal server error"

    def test_cors_header(self, client):
        resp = client.get("/api/health", headers={"Origin": "https://shop.example"})
        assert resp.headers["Access-Control-Allow-Origin"] == "*"


class TestCli:

    def test_seed_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["catalog", "seed"])
        assert result.exit_code == 0, result.output
        assert "4 categories, 24 products" in result.output

        result = runner.invoke(args=["catalog", "seed"])
        assert "0 categories, 0 products" in result.output

        assert db_session.query(Category).count() == 4
        assert db_session.query(Product).count() == 24
        grips = db_session.query(Category).filter_by(slug="grips").one()
        assert db_session.query(Product).filter_by(category_id=grips.id).count() == 6

    def test_init_db(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["system", "init-db"])
        assert result.exit_code == 0
        assert "PASS" in result.output

    def test_reset_requires_confirmation(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["system", "reset-db"])
        assert result.exit_code == 1

    def test_recalculate_customers(self, app, db_session, place_order):
        place_order()
        place_order(email="second@example.com")

        result = app.test_cli_runner().invoke(args=["customers", "recalculate"])
        assert result.exit_code == 0
        assert "Recalculated 2 customers" in result.output

        db_session.expire_all()
        assert {c.order_count for c in db_session.query(Customer).all()} == {1}
        assert db_session.query(Order).count() == 2
