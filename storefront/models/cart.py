from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z, utcnow


class CartItem(db.Model):
    """
    Session cart line. session_id is generated by the browser and is not tied
    to a customer account. Rows are removed when the session checks out.
    """
    __tablename__ = "cart_items"
    __table_args__ = (
        db.UniqueConstraint("session_id", "product_id", name="uq_cart_items_session_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.String(64), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    product = db.relationship("Product")

    def to_dict(self, pricing=None) -> dict:
        product = self.product
        data = {
            "cart_item_id": self.id,
            "session_id": self.session_id,
            "id": self.product_id,
            "quantity": self.quantity,
            "name": product.name if product else None,
            "sku": product.sku if product else None,
            "media": product.image_url if product else None,
            "colour_name": product.colour_name if product else None,
            "category": product.category.name if product and product.category else None,
            "created_at": to_utc_z(self.created_at),
        }
        if pricing is not None:
            data["price"] = pricing.to_dict()["final_price"]
        return data
