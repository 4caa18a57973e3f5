from __future__ import annotations
from datetime import datetime
from orderdesk.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .services.pricing_service import DISCOUNT_PERCENTAGE, DISCOUNT_TYPES, DiscountSpec


# Maximum price: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

# Largest quantity accepted on a single order line
MAX_LINE_QUANTITY = 100_000


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


@dataclass(frozen=True)
class OrderItemInput:
    product_id: int
    quantity: int
    variant: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class PaymentInput:
    amount_cents: int
    method: str
    reference: str | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(value: Any, field: str) -> int:
    """Strict integer parsing: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

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

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if "price_cents" in patch and patch["price_cents"] is not None:
        price = patch["price_cents"]
        if price < 0:
            raise ValidationError("price_cents must be >= 0")
        if price > MAX_PRICE_CENTS:
            raise ValidationError(f"price_cents cannot exceed {MAX_PRICE_CENTS} (${MAX_PRICE_CENTS / 100:,.2f})")

    if "low_stock_alert" in patch and patch["low_stock_alert"] is not None:
        if patch["low_stock_alert"] < 0:
            raise ValidationError("low_stock_alert must be >= 0")

    if "variants" in patch and patch["variants"] is not None:
        variants = patch["variants"]
        if not isinstance(variants, list) or not all(isinstance(v, str) and v.strip() for v in variants):
            raise ValidationError("variants must be a list of non-empty strings")
        cleaned = [v.strip() for v in variants]
        if len(set(cleaned)) != len(cleaned):
            raise ValidationError("variants must be unique")
        patch["variants"] = cleaned


def parse_order_items(raw_items: Any) -> list[OrderItemInput]:
    """
    Validate cart lines from a request body.

    Each entry: {"product_id": int, "quantity": int > 0, "variant"?: str, "notes"?: str}.
    An empty list is rejected.
    """
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("Order must contain at least one item")

    items = []
    for index, raw in enumerate(raw_items):
        if isinstance(raw, OrderItemInput):
            raw = {
                "product_id": raw.product_id,
                "quantity": raw.quantity,
                "variant": raw.variant,
                "notes": raw.notes,
            }
        if not isinstance(raw, dict):
            raise ValidationError("Each item must be an object", details={"index": index})
        if raw.get("product_id") is None:
            raise ValidationError("product_id is required", details={"index": index})
        if raw.get("quantity") is None:
            raise ValidationError("quantity is required", details={"index": index})

        product_id = coerce_int(raw["product_id"], "product_id")
        quantity = coerce_int(raw["quantity"], "quantity")
        if quantity <= 0:
            raise ValidationError(
                "quantity must be greater than zero",
                details={"index": index, "quantity": quantity},
            )
        if quantity > MAX_LINE_QUANTITY:
            raise ValidationError(
                f"quantity cannot exceed {MAX_LINE_QUANTITY}",
                details={"index": index, "quantity": quantity},
            )

        variant = raw.get("variant")
        if variant is not None:
            variant = str(variant).strip() or None
        notes = raw.get("notes")
        if notes is not None:
            notes = str(notes).strip()[:255] or None

        items.append(OrderItemInput(product_id=product_id, quantity=quantity, variant=variant, notes=notes))
    return items


def parse_discount(raw: Any) -> DiscountSpec | None:
    """
    Validate a discount from a request body.

    Accepts None, a DiscountSpec, or {"type": "percentage"|"fixed", "value": int >= 0}.
    Percentage values are basis points (1000 = 10%); fixed values are cents.
    """
    if raw is None:
        return None
    if isinstance(raw, DiscountSpec):
        raw = {"type": raw.type, "value": raw.value}
    if not isinstance(raw, dict):
        raise ValidationError("discount must be an object with type and value")

    discount_type = raw.get("type")
    if discount_type not in DISCOUNT_TYPES:
        raise ValidationError(
            f"Invalid discount type: {discount_type}",
            details={"allowed": list(DISCOUNT_TYPES)},
        )
    if raw.get("value") is None:
        raise ValidationError("discount value is required")

    value = coerce_int(raw["value"], "discount value")
    if value < 0:
        raise ValidationError("discount value must be >= 0", details={"value": value})
    if discount_type == DISCOUNT_PERCENTAGE and value > 1_000_000:
        raise ValidationError("discount percentage is out of range", details={"value": value})

    return DiscountSpec(type=discount_type, value=value)


def parse_payment(raw: Any) -> PaymentInput | None:
    """
    Validate an optional payment object: {"amount_cents": int, "method": str, "reference"?: str}.

    Amount and method checks are left to payment_service.validate_payment_input.
    """
    if raw is None:
        return None
    if isinstance(raw, PaymentInput):
        return raw
    if not isinstance(raw, dict):
        raise ValidationError("payment must be an object with amount_cents and method")
    if raw.get("amount_cents") is None:
        raise ValidationError("payment amount_cents is required")

    reference = raw.get("reference")
    return PaymentInput(
        amount_cents=coerce_int(raw["amount_cents"], "amount_cents"),
        method=raw.get("method"),
        reference=str(reference).strip() if reference else None,
    )
