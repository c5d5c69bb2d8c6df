from __future__ import annotations

from ..extensions import db
from ..money import percent_float
from storefront.time_utils import to_utc_z, utcnow

RULE_TYPE_SKU = "sku"
RULE_TYPE_STYLE = "style"
RULE_TYPE_CATEGORY = "category"
RULE_TYPE_BRAND = "brand"

# Lower value wins when several rules match the same product.
RULE_PRIORITY = {
    RULE_TYPE_SKU: 0,
    RULE_TYPE_STYLE: 1,
    RULE_TYPE_CATEGORY: 2,
    RULE_TYPE_BRAND: 3,
}

# rule_type -> the single scope column it must carry
RULE_SCOPE_FIELDS = {
    RULE_TYPE_SKU: "sku",
    RULE_TYPE_STYLE: "style_no",
    RULE_TYPE_CATEGORY: "category_id",
    RULE_TYPE_BRAND: "brand_id",
}


class MarginRule(db.Model):
    """
    Margin override scoped to exactly one of SKU / style / category / brand.

    Rules are never "applied" to product rows. The pricing service evaluates all
    matching rules on read and takes the highest-priority one (RULE_PRIORITY;
    newest updated_at breaks ties within a tier).

    Timestamps are set in Python so tie-breaks have sub-second resolution.
    """
    __tablename__ = "margin_rules"
    __table_args__ = (
        db.Index("ix_margin_rules_type", "rule_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    rule_type = db.Column(db.String(16), nullable=False)
    margin_percentage = db.Column(db.Numeric(6, 2), nullable=False)

    sku = db.Column(db.String(64), nullable=True)
    style_no = db.Column(db.String(64), nullable=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True)
    brand_id = db.Column(db.Integer, db.ForeignKey("brands.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<MarginRule id={self.id} type={self.rule_type} margin={self.margin_percentage}>"

    @property
    def priority(self) -> int:
        return RULE_PRIORITY.get(self.rule_type, len(RULE_PRIORITY))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "rule_type": self.rule_type,
            "priority": self.priority,
            "margin_percentage": percent_float(self.margin_percentage),
            "sku": self.sku,
            "style_no": self.style_no,
            "category_id": self.category_id,
            "brand_id": self.brand_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
