# Overview: Service-layer operations for customers; encapsulates business logic and database work.

from __future__ import annotations

import re

from flask import current_app
from sqlalchemy import func, or_

from ..extensions import db
from ..models import Customer, CustomerContact, Order
from ..money import ZERO, money_float, round_money
from ..validation import (
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_customer,
    validate_payload,
)

"""
Customer Directory Invariants (authoritative)

- Checkout resolves customers by exact email; a match is updated in place
  (last write wins: phone and shipping fields are replaced, omitted ones
  cleared), otherwise an individual customer is created. Billing fields are
  only written through the admin endpoints.
- location_region is derived from the billing postcode (shipping postcode as
  fallback) whenever either changes. It is never written directly by clients.
- Deletion is soft: is_active=False. Soft-deleted customers disappear from
  listings but keep their orders.
- Lifetime aggregates are recomputed from orders only by
  recalculate_customer_stats().
"""

REGIONS = (
    "Scotland",
    "North East",
    "North West",
    "Wales",
    "Midlands",
    "London",
    "South West",
    "South East",
    "Ireland",
)

DEFAULT_REGION = "South East"

# Two-letter postcode areas.
_AREA_REGIONS = {
    "Scotland": ("AB", "DD", "DG", "EH", "FK", "HS", "IV", "KA", "KW", "KY", "ML", "PA", "PH", "TD", "ZE"),
    "North East": ("DH", "DL", "NE", "SR", "TS"),
    "North West": ("BB", "BL", "CA", "CH", "CW", "FY", "LA", "OL", "PR", "SK", "WA", "WN"),
    "Wales": ("CF", "LD", "LL", "NP", "SA", "SY"),
    "Midlands": ("CV", "DE", "DN", "HR", "LE", "LN", "NG", "NN", "PE", "ST", "TF", "WR", "WS", "WV"),
    "London": ("BR", "CR", "DA", "EN", "HA", "IG", "KT", "NW", "RM", "SE", "SM", "SW", "TW", "UB", "WC", "WD", "EC"),
    "South West": ("BA", "BS", "DT", "EX", "GL", "PL", "SN", "SP", "TA", "TQ", "TR"),
    "South East": (
        "AL", "BN", "CB", "CM", "CO", "CT", "GU", "HP", "IP", "LU", "ME", "MK",
        "NR", "OX", "PO", "RG", "RH", "SG", "SL", "SO", "SS", "TN",
    ),
    "Ireland": ("BT",),
}

# Single-letter areas (Glasgow, Liverpool, Manchester, Birmingham, Sheffield, London districts).
_SINGLE_LETTER_REGIONS = {
    "G": "Scotland",
    "L": "North West",
    "M": "North West",
    "B": "Midlands",
    "S": "Midlands",
    "E": "London",
    "N": "London",
    "W": "London",
}

POSTCODE_REGIONS = {area: region for region, areas in _AREA_REGIONS.items() for area in areas}
POSTCODE_REGIONS.update(_SINGLE_LETTER_REGIONS)

_AREA_RE = re.compile(r"^[A-Z]{1,2}")

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={
        "customer_type",
        "first_name",
        "last_name",
        "display_name",
        "trading_name",
        "email",
        "phone",
        "billing_address_1",
        "billing_address_2",
        "billing_city",
        "billing_county",
        "billing_postcode",
        "billing_country",
        "shipping_address_1",
        "shipping_address_2",
        "shipping_city",
        "shipping_county",
        "shipping_postcode",
        "shipping_country",
        "latitude",
        "longitude",
        "payment_terms",
        "currency_code",
        "segment",
        "notes",
    },
    aliases={
        "customerType": "customer_type",
        "firstName": "first_name",
        "lastName": "last_name",
        "displayName": "display_name",
        "tradingName": "trading_name",
        "billingAddress1": "billing_address_1",
        "billingAddress2": "billing_address_2",
        "billingCity": "billing_city",
        "billingCounty": "billing_county",
        "billingPostcode": "billing_postcode",
        "billingCountry": "billing_country",
        "shippingAddress1": "shipping_address_1",
        "shippingAddress2": "shipping_address_2",
        "shippingCity": "shipping_city",
        "shippingCounty": "shipping_county",
        "shippingPostcode": "shipping_postcode",
        "shippingCountry": "shipping_country",
        "paymentTerms": "payment_terms",
        "currencyCode": "currency_code",
    },
)

CONTACT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone", "role", "is_primary", "notes"},
    required_on_create={"name"},
    aliases={"isPrimary": "is_primary"},
)

SORT_FIELDS = {
    "display_name": Customer.display_name,
    "total_spent": Customer.total_spent,
    "order_count": Customer.order_count,
    "last_order_date": Customer.last_order_date,
    "created_at": Customer.created_at,
    "location_region": Customer.location_region,
}


def map_postcode_to_region(postcode: str | None) -> str | None:
    """
    UK region for a postcode, from the letters of its area code.

    Two-letter areas are looked up first so that e.g. "EH" resolves to
    Scotland before the single-letter "E" (London) is considered.
    """
    if not postcode:
        return None
    normalized = postcode.strip().upper()
    if not normalized:
        return None
    match = _AREA_RE.match(normalized)
    if not match:
        return DEFAULT_REGION
    area = match.group(0)
    if area in POSTCODE_REGIONS:
        return POSTCODE_REGIONS[area]
    return POSTCODE_REGIONS.get(area[0], DEFAULT_REGION)


def _derive_region(customer: Customer) -> str | None:
    return map_postcode_to_region(customer.billing_postcode or customer.shipping_postcode)


def _derive_display_name(customer: Customer) -> str | None:
    if customer.customer_type == "business" and customer.trading_name:
        return customer.trading_name
    parts = [p for p in (customer.first_name, customer.last_name) if p]
    if parts:
        return " ".join(parts)
    return customer.trading_name or None


def _text(value) -> str | None:
    text = str(value).strip() if value is not None else ""
    return text or None


def split_name(full_name: str) -> tuple[str, str | None]:
    """Split "First Rest Of Name" on the first space."""
    cleaned = (full_name or "").strip()
    first, _, rest = cleaned.partition(" ")
    return first, (rest.strip() or None)


def get_customer(customer_id: int, *, include_inactive: bool = False) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None or (not include_inactive and not customer.is_active):
        raise NotFoundError("Customer not found")
    return customer


def customer_detail(customer_id: int) -> dict:
    customer = get_customer(customer_id)
    data = customer.to_dict()
    data["contacts"] = [
        c.to_dict()
        for c in sorted(customer.contacts, key=lambda c: (not c.is_primary, c.id))
    ]
    recent = (
        db.session.query(Order)
        .filter(Order.customer_id == customer.id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(10)
        .all()
    )
    data["recent_orders"] = [o.to_dict() for o in recent]
    return data


def list_customers(
    *,
    search: str | None = None,
    region: str | None = None,
    sort: str = "created_at",
    direction: str = "desc",
    limit: int = 50,
    offset: int = 0,
) -> dict:
    limit = max(1, min(int(limit or 50), 200))
    offset = max(0, int(offset or 0))

    query = db.session.query(Customer).filter(Customer.is_active.is_(True))
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Customer.display_name.ilike(term),
                Customer.email.ilike(term),
                Customer.trading_name.ilike(term),
                Customer.billing_postcode.ilike(term),
                Customer.phone.ilike(term),
            )
        )
    if region:
        query = query.filter(Customer.location_region == region)

    column = SORT_FIELDS.get(sort, Customer.created_at)
    ordering = column.asc() if str(direction).lower() == "asc" else column.desc()

    total = query.count()
    rows = query.order_by(ordering, Customer.id.desc()).offset(offset).limit(limit).all()
    return {
        "customers": [c.to_dict() for c in rows],
        "total": total,
        "limit": limit,
        "offset": offset,
        "hasMore": offset + len(rows) < total,
    }


def region_summary() -> list[dict]:
    """Active customer count and revenue per region, including empty regions."""
    rows = (
        db.session.query(
            Customer.location_region,
            func.count(Customer.id),
            func.coalesce(func.sum(Customer.total_spent), 0),
        )
        .filter(Customer.is_active.is_(True))
        .group_by(Customer.location_region)
        .all()
    )
    by_region = {region: (count, revenue) for region, count, revenue in rows}
    summary = []
    for region in REGIONS:
        count, revenue = by_region.get(region, (0, 0))
        summary.append({
            "region": region,
            "customer_count": int(count),
            "total_revenue": money_float(revenue),
        })
    unassigned = by_region.get(None)
    if unassigned:
        summary.append({
            "region": None,
            "customer_count": int(unassigned[0]),
            "total_revenue": money_float(unassigned[1]),
        })
    return summary


def map_points(region: str | None = None) -> list[dict]:
    query = db.session.query(Customer).filter(
        Customer.is_active.is_(True),
        Customer.latitude.isnot(None),
        Customer.longitude.isnot(None),
    )
    if region:
        query = query.filter(Customer.location_region == region)
    return [
        {
            "id": c.id,
            "display_name": c.display_name,
            "latitude": float(c.latitude),
            "longitude": float(c.longitude),
            "location_region": c.location_region,
            "total_spent": money_float(c.total_spent),
            "order_count": c.order_count,
        }
        for c in query.order_by(Customer.id).all()
    ]


def create_customer(payload: dict) -> Customer:
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
    enforce_rules_customer(patch)

    customer = Customer(**patch)
    if not customer.customer_type:
        customer.customer_type = "individual"
    if not customer.display_name:
        customer.display_name = _derive_display_name(customer)
    if not customer.display_name:
        raise ValidationError("A customer needs a display name, first/last name or trading name")

    customer.location_region = _derive_region(customer)
    db.session.add(customer)
    db.session.commit()
    current_app.logger.info("Created customer %s (%s)", customer.id, customer.display_name)
    return customer


def update_customer(customer_id: int, payload: dict) -> Customer:
    customer = get_customer(customer_id)
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
    enforce_rules_customer(patch)
    if "display_name" in patch and not patch["display_name"]:
        raise ValidationError("display_name cannot be blank")

    for key, value in patch.items():
        setattr(customer, key, value)

    if {"billing_postcode", "shipping_postcode"} & patch.keys():
        customer.location_region = _derive_region(customer)

    db.session.commit()
    return customer


def delete_customer(customer_id: int) -> Customer:
    customer = get_customer(customer_id)
    customer.is_active = False
    db.session.commit()
    current_app.logger.info("Soft-deleted customer %s", customer.id)
    return customer


def add_contact(customer_id: int, payload: dict) -> CustomerContact:
    customer = get_customer(customer_id)
    patch = validate_payload(model=CustomerContact, payload=payload, policy=CONTACT_POLICY, partial=False)

    contact = CustomerContact(customer_id=customer.id, **patch)
    if contact.is_primary:
        # Only one primary contact per customer
        (
            db.session.query(CustomerContact)
            .filter(CustomerContact.customer_id == customer.id, CustomerContact.is_primary.is_(True))
            .update({CustomerContact.is_primary: False}, synchronize_session="fetch")
        )
    db.session.add(contact)
    db.session.commit()
    return contact


def upsert_checkout_customer(customer_data: dict) -> Customer:
    """
    Resolve the shopper of a checkout by exact email.

    Does not commit: runs inside the checkout unit of work.
    """
    email = (customer_data.get("email") or "").strip()
    first_name, last_name = split_name(customer_data.get("name") or "")
    address = customer_data.get("address") or {}
    phone = _text(customer_data.get("phone"))
    postcode = _text(address.get("postcode"))

    customer = (
        db.session.query(Customer)
        .filter(Customer.email == email)
        .order_by(Customer.id)
        .first()
    )

    if customer is None:
        customer = Customer(
            customer_type="individual",
            first_name=first_name,
            last_name=last_name,
            display_name=(customer_data.get("name") or "").strip(),
            email=email,
        )
        db.session.add(customer)

    # Omitted fields are cleared; billing stays admin-owned
    customer.first_name = first_name
    customer.last_name = last_name
    customer.phone = phone
    customer.is_active = True
    customer.shipping_address_1 = _text(address.get("line1"))
    customer.shipping_address_2 = _text(address.get("line2"))
    customer.shipping_city = _text(address.get("city"))
    customer.shipping_postcode = postcode
    customer.shipping_country = _text(address.get("country")) or "United Kingdom"

    customer.location_region = _derive_region(customer)
    db.session.flush()
    return customer


def recalculate_customer_stats(customer_id: int, *, commit: bool = True) -> Customer:
    """Recompute lifetime aggregates from the customer's orders."""
    customer = get_customer(customer_id, include_inactive=True)

    count, total, first_at, last_at = (
        db.session.query(
            func.count(Order.id),
            func.coalesce(func.sum(Order.total_amount), 0),
            func.min(Order.created_at),
            func.max(Order.created_at),
        )
        .filter(Order.customer_id == customer.id)
        .one()
    )
    outstanding = (
        db.session.query(func.coalesce(func.sum(Order.total_amount), 0))
        .filter(Order.customer_id == customer.id, Order.payment_status != "paid")
        .scalar()
    )

    total = round_money(total or ZERO)
    customer.order_count = int(count or 0)
    customer.total_spent = total
    customer.average_order_value = round_money(total / count) if count else ZERO
    customer.outstanding_amount = round_money(outstanding or ZERO)
    customer.first_order_date = first_at
    customer.last_order_date = last_at

    if commit:
        db.session.commit()
    return customer


def recalculate_all_customers() -> int:
    ids = [row[0] for row in db.session.query(Customer.id).order_by(Customer.id).all()]
    for customer_id in ids:
        recalculate_customer_stats(customer_id, commit=False)
    db.session.commit()
    return len(ids)
