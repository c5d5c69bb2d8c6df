"""
Pytest fixtures for storefront tests.

Provides the in-memory database, per-test table cleanup, the test client and
small model factories.
"""

import pytest

from storefront import create_app
from storefront.extensions import db
from storefront.models import Brand, CartItem, Category, Customer, MarginRule, Product


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': 'WARNING',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Fresh tables for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def client(app, db_session):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def category(db_session):
    category = Category(name="Grips", slug="grips", description="Golf grips")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def brand(db_session):
    brand = Brand(name="Golf Pride", slug="golf-pride")
    db_session.add(brand)
    db_session.commit()
    return brand


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(sku="GRP-1", price="100.00", margin_percentage="20", ...)."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        sku = overrides.pop("sku", f"SKU-{counter['n']:03d}")
        fields = {
            "name": f"Product {counter['n']}",
            "slug": f"product-{sku.lower()}",
            "price": "100.00",
            "margin_percentage": "0",
            "is_special_offer": False,
            "stock_quantity": 20,
            "reorder_point": 10,
            "is_active": True,
        }
        fields.update(overrides)
        product = Product(sku=sku, **fields)
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def make_rule(db_session):
    """Factory: make_rule("category", category_id=1, margin_percentage="30")."""

    def _make(rule_type, margin_percentage, updated_at=None, **scope):
        rule = MarginRule(
            name=f"{rule_type} rule",
            rule_type=rule_type,
            margin_percentage=margin_percentage,
            **scope,
        )
        if updated_at is not None:
            rule.created_at = updated_at
            rule.updated_at = updated_at
        db_session.add(rule)
        db_session.commit()
        return rule

    return _make


@pytest.fixture(scope='function')
def make_customer(db_session):
    def _make(**overrides):
        fields = {
            "customer_type": "individual",
            "first_name": "Jane",
            "last_name": "Fairway",
            "display_name": "Jane Fairway",
            "email": "jane@example.com",
        }
        fields.update(overrides)
        customer = Customer(**fields)
        db_session.add(customer)
        db_session.commit()
        return customer

    return _make


@pytest.fixture(scope='function')
def add_to_cart(db_session):
    def _add(session_id, product, quantity=1):
        item = CartItem(session_id=session_id, product_id=product.id, quantity=quantity)
        db_session.add(item)
        db_session.commit()
        return item

    return _add


@pytest.fixture(scope='function')
def checkout_payload():
    """Builder for POST /api/checkout bodies."""

    def _build(*, email="jane@example.com", name="Jane Fairway", cart=None, postcode="SW1A 1AA", **extra):
        payload = {
            "customerData": {
                "name": name,
                "email": email,
                "phone": "07700 900123",
                "address": {
                    "line1": "1 Fairway Close",
                    "city": "London",
                    "postcode": postcode,
                    "country": "United Kingdom",
                },
            },
            "cart": cart if cart is not None else [
                {"id": None, "name": "Cord Grip", "sku": "GRP-CORD", "price": 16.99, "quantity": 2},
            ],
            "paymentMethod": "card",
        }
        payload.update(extra)
        return payload

    return _build


@pytest.fixture(scope='function')
def place_order(client, checkout_payload):
    """Place an order through the API and return the response body."""

    def _place(**kwargs) -> dict:
        response = client.post('/api/checkout', json=checkout_payload(**kwargs))
        assert response.status_code == 200, response.get_json()
        return response.get_json()

    return _place
