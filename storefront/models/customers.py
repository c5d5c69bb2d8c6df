from __future__ import annotations

from ..extensions import db
from ..money import money_float
from storefront.time_utils import to_utc_z

CUSTOMER_TYPES = ("individual", "business")


class Customer(db.Model):
    """
    Customer master data for storefront shoppers and trade accounts.

    Email uniqueness is enforced by lookup-then-upsert at checkout, not by a
    constraint: business accounts imported from the back office may share a
    contact address.

    Denormalized aggregates (total_spent, order_count, ...) are only written
    by customer_service.recalculate_customer_stats().
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_email", "email"),
        db.Index("ix_customers_active_region", "is_active", "location_region"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_type = db.Column(db.String(20), nullable=False, default="individual")

    first_name = db.Column(db.String(100), nullable=True)
    last_name = db.Column(db.String(100), nullable=True)
    display_name = db.Column(db.String(255), nullable=False)
    trading_name = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)

    billing_address_1 = db.Column(db.String(255), nullable=True)
    billing_address_2 = db.Column(db.String(255), nullable=True)
    billing_city = db.Column(db.String(100), nullable=True)
    billing_county = db.Column(db.String(100), nullable=True)
    billing_postcode = db.Column(db.String(20), nullable=True)
    billing_country = db.Column(db.String(100), nullable=True, default="United Kingdom")

    shipping_address_1 = db.Column(db.String(255), nullable=True)
    shipping_address_2 = db.Column(db.String(255), nullable=True)
    shipping_city = db.Column(db.String(100), nullable=True)
    shipping_county = db.Column(db.String(100), nullable=True)
    shipping_postcode = db.Column(db.String(20), nullable=True)
    shipping_country = db.Column(db.String(100), nullable=True, default="United Kingdom")

    latitude = db.Column(db.Numeric(10, 7), nullable=True)
    longitude = db.Column(db.Numeric(10, 7), nullable=True)
    location_region = db.Column(db.String(50), nullable=True)

    total_spent = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    average_order_value = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    order_count = db.Column(db.Integer, nullable=False, default=0)
    outstanding_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    first_order_date = db.Column(db.DateTime(timezone=True), nullable=True)
    last_order_date = db.Column(db.DateTime(timezone=True), nullable=True)

    payment_terms = db.Column(db.Integer, nullable=False, default=30)
    currency_code = db.Column(db.String(3), nullable=False, default="GBP")
    segment = db.Column(db.String(50), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<Customer id={self.id} email={self.email!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_type": self.customer_type,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "display_name": self.display_name,
            "trading_name": self.trading_name,
            "email": self.email,
            "phone": self.phone,
            "billing_address_1": self.billing_address_1,
            "billing_address_2": self.billing_address_2,
            "billing_city": self.billing_city,
            "billing_county": self.billing_county,
            "billing_postcode": self.billing_postcode,
            "billing_country": self.billing_country,
            "shipping_address_1": self.shipping_address_1,
            "shipping_address_2": self.shipping_address_2,
            "shipping_city": self.shipping_city,
            "shipping_county": self.shipping_county,
            "shipping_postcode": self.shipping_postcode,
            "shipping_country": self.shipping_country,
            "latitude": float(self.latitude) if self.latitude is not None else None,
            "longitude": float(self.longitude) if self.longitude is not None else None,
            "location_region": self.location_region,
            "total_spent": money_float(self.total_spent),
            "average_order_value": money_float(self.average_order_value),
            "order_count": self.order_count,
            "outstanding_amount": money_float(self.outstanding_amount),
            "first_order_date": to_utc_z(self.first_order_date),
            "last_order_date": to_utc_z(self.last_order_date),
            "payment_terms": self.payment_terms,
            "currency_code": self.currency_code,
            "segment": self.segment,
            "notes": self.notes,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CustomerContact(db.Model):
    """Secondary contact for a (usually business) customer. At most one is_primary per customer."""
    __tablename__ = "customer_contacts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    role = db.Column(db.String(100), nullable=True)
    is_primary = db.Column(db.Boolean, nullable=False, default=False)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("contacts", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "role": self.role,
            "is_primary": self.is_primary,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
