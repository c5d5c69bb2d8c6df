# Overview: Request payload validation shared by the admin services.

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import Boolean, Integer, Numeric, String, Text

from .money import to_decimal


# Base cost ceiling (GBP); keeps values inside Numeric(12, 2).
MAX_PRICE = Decimal("999999.99")
MAX_PERCENTAGE = Decimal("1000")

_TRUTHY = ("1", "true", "yes", "on")


class ValidationError(ValueError):
    """Bad input; reported as 400."""


class NotFoundError(LookupError):
    """Missing resource; reported as 404."""


class ConflictError(ValueError):
    """Request clashes with existing state (duplicate SKU, exhausted numbering); reported as 409."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    What a client may send for one model.

    writable_fields    column keys a request may set; anything else is rejected
    required_on_create keys that must be present and non-empty on create
    aliases            camelCase keys from the admin UI -> column keys
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)
    aliases: dict[str, str] = field(default_factory=dict)


def coerce_decimal(key: str, value: Any) -> Decimal:
    if isinstance(value, bool) or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{key} must be a number")
    try:
        number = to_decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{key} must be a number")
    if not number.is_finite():
        raise ValidationError(f"{key} must be a finite number")
    return number


def coerce_int(key: str, value: Any) -> int:
    """Whole numbers only: 3, 3.0 and "3" pass; 3.5, "3.0" and "3e2" do not."""
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{key} must be an integer, not a decimal")
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("+-").isdigit():
            return int(text)
    raise ValidationError(f"{key} must be an integer")


def _coerce_column(column, value: Any):
    coltype = column.type
    if isinstance(coltype, Boolean):
        if isinstance(value, str):
            return value.strip().lower() in _TRUTHY
        return bool(value)
    if isinstance(coltype, Integer):
        return coerce_int(column.key, value)
    if isinstance(coltype, Numeric):
        return coerce_decimal(column.key, value)
    if isinstance(coltype, (String, Text)):
        text = str(value).strip()
        if not text and not column.nullable:
            raise ValidationError(f"{column.key} cannot be blank")
        length = getattr(coltype, "length", None)
        if length and len(text) > length:
            raise ValidationError(f"{column.key} exceeds max length {length}")
        return text
    return value


def validate_payload(
    *,
    model,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Turn a JSON body into a patch of column values for `model`.

    Keys are mapped through policy.aliases, checked against
    policy.writable_fields and coerced by column type. Nullability and
    String lengths come from the column definitions.

    partial=False (create) also enforces policy.required_on_create;
    partial=True (update) only checks the keys that were sent.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    data = {policy.aliases.get(key, key): value for key, value in payload.items()}

    if not partial:
        missing = sorted(key for key in policy.required_on_create if data.get(key) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {column.key: column for column in model.__mapper__.columns}
    for key in data:
        if key not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {key}")
        if key not in columns:
            raise ValidationError(f"Unknown field: {key}")

    patch: dict = {}
    for key, value in data.items():
        column = columns[key]
        # Cleared optional inputs arrive as ""
        if value == "" and column.nullable and not isinstance(column.type, (String, Text)):
            value = None
        if value is None:
            if not column.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
            continue
        patch[key] = _coerce_column(column, value)
    return patch


def require_string_list(payload: dict, key: str) -> list[str]:
    raw = payload.get(key)
    if not isinstance(raw, list) or not raw:
        raise ValidationError(f"{key} array required")
    values = [str(v).strip() for v in raw if v is not None and str(v).strip()]
    if not values:
        raise ValidationError(f"{key} array required")
    return values


def _check_percentage(key: str, value: Decimal | None, *, upper: Decimal = MAX_PERCENTAGE) -> None:
    if value is None:
        return
    if value < 0:
        raise ValidationError(f"{key} must be >= 0")
    if value > upper:
        raise ValidationError(f"{key} cannot exceed {upper}")


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if patch.get("price") is not None:
        price = patch["price"]
        if price < 0:
            raise ValidationError("price must be >= 0")
        if price > MAX_PRICE:
            raise ValidationError(f"price cannot exceed {MAX_PRICE}")

    _check_percentage("margin_percentage", patch.get("margin_percentage"))
    _check_percentage("offer_discount_percentage", patch.get("offer_discount_percentage"), upper=Decimal("100"))

    for key in ("stock_quantity", "reorder_point"):
        if patch.get(key) is not None and patch[key] < 0:
            raise ValidationError(f"{key} must be >= 0")


def enforce_rules_margin_rule(patch: dict) -> None:
    """
    A rule must name exactly one scope, and that scope must match rule_type.

    A rule carrying none (or several) scope values would match nothing or
    would need AND semantics the resolver does not implement.
    """
    from .models.pricing import RULE_SCOPE_FIELDS

    rule_type = patch.get("rule_type")
    if rule_type not in RULE_SCOPE_FIELDS:
        raise ValidationError(f"rule_type must be one of: {', '.join(RULE_SCOPE_FIELDS)}")

    present = [f for f in RULE_SCOPE_FIELDS.values() if patch.get(f) not in (None, "")]
    expected = RULE_SCOPE_FIELDS[rule_type]
    if present != [expected]:
        raise ValidationError(f"{rule_type} rules require exactly one scope value: {expected}")

    margin = patch.get("margin_percentage")
    if margin is None:
        raise ValidationError("margin_percentage is required")
    _check_percentage("margin_percentage", margin)


def enforce_rules_customer(patch: dict) -> None:
    from .models.customers import CUSTOMER_TYPES

    if "customer_type" in patch and patch["customer_type"] not in CUSTOMER_TYPES:
        raise ValidationError(f"customer_type must be one of: {', '.join(CUSTOMER_TYPES)}")
    if patch.get("payment_terms") is not None and patch["payment_terms"] < 0:
        raise ValidationError("payment_terms must be >= 0")
    email = patch.get("email")
    if email and "@" not in email:
        raise ValidationError("email is invalid")
