from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Integer, String, Text, JSON
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError


# Maximum price: Rs 99,99,999.99 (999,999,999 paise)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_PAISE = 999_999_999

# Upper bound for a single stock movement or challan line
MAX_QUANTITY = 1_000_000

# Keys accepted by POST /api/challans, mapped onto issue_challan keyword arguments
CHALLAN_FIELDS = {
    "audit_ids",
    "line_overrides",
    "manual_items",
    "packaging_charges_overall",
    "discount_pct",
    "tax_type",
    "inventory_mode",
    "client_details",
    "notes",
    "issued_at",
}

# Draft content of a client batch (create and append)
BATCH_FIELDS = {
    "label",
    "audit_ids",
    "line_overrides",
    "manual_items",
    "client_details",
    "notes",
}

# Document-level options chosen when a batch is issued
BATCH_ISSUE_FIELDS = {
    "packaging_charges_overall",
    "discount_pct",
    "tax_type",
    "inventory_mode",
    "issued_at",
}


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    return {c.key: c for c in model.__mapper__.columns}


def _coerce_int(key: str, value: Any) -> int:
    # bool is an int subclass; True is not a quantity
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be an integer")

    text = value.strip()
    if "e" in text.lower():
        raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
    if "." in text:
        raise ValidationError(f"{key} must be an integer (no decimals)")
    try:
        return int(text)
    except ValueError:
        raise ValidationError(f"{key} must be an integer")


def _coerce_value(col, value: Any):
    if value is None:
        return None
    coltype = col.type

    if isinstance(coltype, Integer):
        return _coerce_int(col.key, value)

    # Colour lists are the only JSON columns clients may write
    if isinstance(coltype, JSON):
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ValidationError(f"{col.key} must be a list of strings")
        return [v.strip() for v in value if v.strip()]

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted((policy.required_on_create or set()) - set(payload))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)
    for key in payload:
        if key not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {key}")
        if key not in cols:
            raise ValidationError(f"Unknown field: {key}")

    patch: dict = {}
    for key, raw in payload.items():
        col = cols[key]
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
            continue

        val = _coerce_value(col, raw)
        if isinstance(val, str):
            if val == "" and not col.nullable:
                raise ValidationError(f"{key} cannot be blank")
            length = getattr(col.type, "length", None)
            if length and len(val) > length:
                raise ValidationError(f"{key} exceeds max length {length}")
        patch[key] = val

    return patch


def enforce_rules_box(patch: dict) -> None:
    for field in ("price_paise", "assembly_charge_paise"):
        value = patch.get(field)
        if value is None:
            continue
        if value < 0:
            raise ValidationError(f"{field} must be >= 0")
        if value > MAX_PRICE_PAISE:
            raise ValidationError(f"{field} cannot exceed {MAX_PRICE_PAISE} (Rs {MAX_PRICE_PAISE / 100:,.2f})")


def enforce_rules_stock_move(patch: dict) -> None:
    # ADD/SUBTRACT require a colour and 0 < qty <= MAX_QUANTITY; direction comes from the route
    if patch.get("quantity") is None or patch["quantity"] <= 0:
        raise ValidationError("quantity must be > 0")
    if patch["quantity"] > MAX_QUANTITY:
        raise ValidationError(f"quantity cannot exceed {MAX_QUANTITY}")
    if not patch.get("color"):
        raise ValidationError("color is required")


def validate_challan_payload(payload: dict, fields: set[str] = CHALLAN_FIELDS) -> dict:
    """Shape check for a challan or batch request; business rules live in the services."""
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    unknown = sorted(set(payload) - fields)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}")

    for key in ("audit_ids", "manual_items"):
        if key in payload and not isinstance(payload[key], list):
            raise ValidationError(f"{key} must be a list")
    if "line_overrides" in payload and not isinstance(payload["line_overrides"], (list, dict)):
        raise ValidationError("line_overrides must be a list or an object")
    if "client_details" in payload and payload["client_details"] is not None:
        if not isinstance(payload["client_details"], dict):
            raise ValidationError("client_details must be an object")

    return {k: v for k, v in payload.items() if v is not None}
