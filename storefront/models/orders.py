from __future__ import annotations

from ..extensions import db
from ..money import money_float
from storefront.time_utils import to_utc_z, utcnow

# Fulfilment pipeline, strictly linear.
DELIVERY_STATUSES = ("new", "confirmed", "delivery_booked", "in_transit", "delivered")


class Order(db.Model):
    """
    Storefront order header.

    IMMUTABLE TOTALS: subtotal, tax_amount, shipping_amount, total_amount and
    item_count are written once at placement. Afterwards only delivery_status
    and fulfilment metadata (courier, tracking, dates, notes, payment_status)
    change.

    The customer_* and shipping_address columns are a snapshot taken at
    purchase time; later customer edits do not rewrite past orders.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_delivery_status", "delivery_status"),
        db.Index("ix_orders_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # AST-YYYYMM-NNNN
    order_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(50), nullable=True)
    shipping_address = db.Column(db.JSON, nullable=True)
    billing_address = db.Column(db.JSON, nullable=True)

    payment_method = db.Column(db.String(50), nullable=True)
    payment_status = db.Column(db.String(50), nullable=False, default="pending")

    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    shipping_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    item_count = db.Column(db.Integer, nullable=False, default=0)

    delivery_status = db.Column(db.String(32), nullable=False, default="new")
    courier = db.Column(db.String(100), nullable=True)
    tracking_number = db.Column(db.String(100), nullable=True)
    expected_delivery_date = db.Column(db.Date, nullable=True)
    shipped_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    lines = db.relationship(
        "OrderLine",
        backref="order",
        lazy=True,
        order_by="OrderLine.id",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number!r} status={self.delivery_status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "shipping_address": self.shipping_address,
            "billing_address": self.billing_address,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "subtotal": money_float(self.subtotal),
            "tax_amount": money_float(self.tax_amount),
            "shipping_amount": money_float(self.shipping_amount),
            "total_amount": money_float(self.total_amount),
            "item_count": self.item_count,
            "delivery_status": self.delivery_status,
            "courier": self.courier,
            "tracking_number": self.tracking_number,
            "expected_delivery_date": self.expected_delivery_date.isoformat() if self.expected_delivery_date else None,
            "shipped_at": to_utc_z(self.shipped_at),
            "delivered_at": to_utc_z(self.delivered_at),
            "notes": self.notes,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class OrderLine(db.Model):
    """
    Order line snapshot. Written once with its order, never mutated.

    product_id is nullable: the catalogue row may disappear later, the
    denormalized name/sku/image/colour keep the line readable.
    """
    __tablename__ = "order_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    product_sku = db.Column(db.String(64), nullable=True)
    product_image = db.Column(db.String(512), nullable=True)
    colour_name = db.Column(db.String(64), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    subtotal = db.Column(db.Numeric(12, 2), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_sku": self.product_sku,
            "product_image": self.product_image,
            "colour_name": self.colour_name,
            "quantity": self.quantity,
            "unit_price": money_float(self.unit_price),
            "subtotal": money_float(self.subtotal),
        }


class OrderSequence(db.Model):
    """
    Per-month order number counter.

    next_number is the suffix the NEXT allocation receives. Allocation is an
    atomic UPDATE ... SET next_number = next_number + 1, so two checkouts in
    the same month can never read the same value.
    """
    __tablename__ = "order_sequences"
    __table_args__ = (
        db.UniqueConstraint("prefix", "period", name="uq_order_sequences_prefix_period"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    prefix = db.Column(db.String(16), nullable=False)
    period = db.Column(db.String(6), nullable=False)  # YYYYMM
    next_number = db.Column(db.Integer, nullable=False, default=1)

    def to_dict(self) -> dict:
        return {
            "prefix": self.prefix,
            "period": self.period,
            "next_number": self.next_number,
        }
