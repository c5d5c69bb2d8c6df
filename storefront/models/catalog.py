from __future__ import annotations

from ..extensions import db
from ..money import money_float, percent_float
from storefront.time_utils import to_utc_z


class Brand(db.Model):
    __tablename__ = "brands"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    slug = db.Column(db.String(140), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Brand id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "slug": self.slug}


class Category(db.Model):
    """
    Product type (Grips, Bags, Clubs, Balls...).

    Categories may nest one level via parent_id; margin rules scoped to a
    category match only products directly assigned to it.
    """
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    slug = db.Column(db.String(140), nullable=False, unique=True, index=True)
    description = db.Column(db.Text, nullable=True)
    image_url = db.Column(db.String(512), nullable=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    display_order = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    parent = db.relationship("Category", remote_side=[id], backref=db.backref("children", lazy=True))

    def __repr__(self) -> str:
        return f"<Category id={self.id} slug={self.slug!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "image_url": self.image_url,
            "parent_id": self.parent_id,
            "display_order": self.display_order,
        }


class Product(db.Model):
    """
    Sellable variant (one colour/size of a style).

    PRICING:
    - price is the base cost; margin_percentage is the product's own fallback margin.
    - calculated_price / final_price are NOT stored. They are resolved on read by
      services.pricing_service from (price, effective margin, offer flag, discount),
      where the effective margin comes from the highest-priority matching MarginRule.

    STOCK:
    - stock_quantity is the current level; every change made through the
      inventory service appends a StockHistory row in the same transaction.
    - version_id guards read-modify-write stock updates on dialects that
      ignore SELECT ... FOR UPDATE (SQLite).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_style_no", "style_no"),
        db.Index("ix_products_active_category", "is_active", "category_id"),
        db.Index("ix_products_active_brand", "is_active", "brand_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(300), nullable=True, unique=True)
    description = db.Column(db.Text, nullable=True)

    # Groups colour/size variants
    style_no = db.Column(db.String(64), nullable=True)

    brand_id = db.Column(db.Integer, db.ForeignKey("brands.id"), nullable=True, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)

    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    margin_percentage = db.Column(db.Numeric(6, 2), nullable=False, default=0)
    is_special_offer = db.Column(db.Boolean, nullable=False, default=False)
    offer_discount_percentage = db.Column(db.Numeric(5, 2), nullable=True)

    image_url = db.Column(db.String(512), nullable=True)
    colour_name = db.Column(db.String(64), nullable=True)
    size = db.Column(db.String(32), nullable=True)

    stock_quantity = db.Column(db.Integer, nullable=True, default=0)
    reorder_point = db.Column(db.Integer, nullable=True, default=10)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    brand = db.relationship("Brand", backref=db.backref("products", lazy=True))
    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self, pricing=None) -> dict:
        """
        Serialize product. `pricing` is a pricing_service.ResolvedPrice; when
        omitted only the stored base fields are returned.
        """
        data = {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "style_no": self.style_no,
            "brand_id": self.brand_id,
            "brand": self.brand.name if self.brand else None,
            "category_id": self.category_id,
            "category": self.category.name if self.category else None,
            "price": money_float(self.price),
            "margin_percentage": percent_float(self.margin_percentage),
            "is_special_offer": self.is_special_offer,
            "offer_discount_percentage": percent_float(self.offer_discount_percentage),
            "image_url": self.image_url,
            "colour_name": self.colour_name,
            "size": self.size,
            "stock_quantity": self.stock_quantity,
            "reorder_point": self.reorder_point,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if pricing is not None:
            data.update(pricing.to_dict())
        return data
