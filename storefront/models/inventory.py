from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z, utcnow

CHANGE_TYPES = ("set", "add", "subtract")


class StockHistory(db.Model):
    """
    Append-only audit of stock level changes.

    IMMUTABLE: Rows are never updated or deleted. sku is a snapshot so the
    trail stays readable if the product is later renamed or deactivated.

    INVARIANT: change_amount == new_quantity - previous_quantity
    """
    __tablename__ = "stock_history"
    __table_args__ = (
        db.Index("ix_stock_history_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    sku = db.Column(db.String(64), nullable=True, index=True)

    previous_quantity = db.Column(db.Integer, nullable=False)
    new_quantity = db.Column(db.Integer, nullable=False)
    change_amount = db.Column(db.Integer, nullable=False)
    change_type = db.Column(db.String(16), nullable=False)

    reason = db.Column(db.String(255), nullable=True)
    created_by = db.Column(db.String(120), nullable=False, default="admin")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    product = db.relationship("Product", backref=db.backref("stock_history", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "image_url": self.product.image_url if self.product else None,
            "sku": self.sku,
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
            "change_amount": self.change_amount,
            "change_type": self.change_type,
            "reason": self.reason,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
