from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from backoffice.time_utils import day_bounds, parse_iso_datetime, utcnow
from .models import PAYMENT_METHODS, TICKET_STATUSES


# Maximum price: 9,999,999.99
MAX_PRICE = Decimal("9999999.99")


class ValidationError(ValueError):
    """400-level input problem."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


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
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def parse_int(value: Any, field: str) -> int:
    """Strict integer: rejects bools, floats, decimals and scientific notation."""
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


def parse_money(value: Any, field: str) -> Decimal:
    """Non-negative amount with at most MAX_PRICE magnitude."""
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    if amount < 0:
        raise ValidationError(f"{field} must be >= 0")
    if amount > MAX_PRICE:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE}")
    return amount


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return parse_int(value, col.key)

    if isinstance(coltype, Numeric):
        return parse_money(value, col.key)

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

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        if not isinstance(value, (str, int)) or isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a string")
        return str(value).strip()

    # Default: leave as-is
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

    # Reject unknown / non-writable fields
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

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_ticket(patch: dict) -> None:
    if "status" in patch and patch["status"] not in TICKET_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(TICKET_STATUSES)}",
            details={"allowed": list(TICKET_STATUSES)},
        )


def validate_cart_items(items: Any) -> list[dict]:
    """
    Shape-check ticket items. Prices are re-derived afterwards by
    pricing_service.normalize_item, so only their ranges are checked here.
    """
    if not isinstance(items, list):
        raise ValidationError("cart_items must be a list")

    checked = []
    for idx, raw in enumerate(items):
        where = f"cart_items[{idx}]"
        if not isinstance(raw, dict):
            raise ValidationError(f"{where} must be an object")
        product_id = raw.get("productId")
        if product_id is None or str(product_id).strip() == "":
            raise ValidationError(f"{where}.productId is required")
        quantity = parse_int(raw.get("quantity"), f"{where}.quantity")
        if quantity < 1:
            raise ValidationError(f"{where}.quantity must be at least 1")

        original = raw.get("originalUnitPrice", raw.get("unitPrice"))
        parse_money(original, f"{where}.originalUnitPrice")
        if raw.get("costPrice") is not None:
            parse_money(raw["costPrice"], f"{where}.costPrice")

        discount = raw.get("discountPercentage")
        if discount is not None:
            discount = parse_money(discount, f"{where}.discountPercentage")
            if discount > 100:
                raise ValidationError(f"{where}.discountPercentage must be between 0 and 100")

        checked.append({**raw, "productId": str(product_id).strip(), "quantity": quantity})
    return checked


def validate_sale_items(items: Any) -> list[dict]:
    """
    Validate checkout lines (wire or ticket item shape) and normalize them to
    product_id / product_name / quantity / unit_price / cost_price / total_price.
    cost_price is None when the caller did not send one.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("Sale must have at least one item.")

    lines = []
    for idx, raw in enumerate(items):
        where = f"items[{idx}]"
        if not isinstance(raw, dict):
            raise ValidationError(f"{where} must be an object")

        product_id = raw.get("productId")
        if product_id is None or str(product_id).strip() == "":
            raise ValidationError(f"{where}.productId is required")
        product_name = raw.get("productName")
        if product_name is None or str(product_name).strip() == "":
            raise ValidationError(f"{where}.productName is required")

        quantity = parse_int(raw.get("quantity"), f"{where}.quantity")
        if quantity < 1:
            raise ValidationError(f"{where}.quantity must be at least 1")

        cost_price = raw.get("costPrice")
        lines.append({
            "product_id": str(product_id).strip(),
            "product_name": str(product_name).strip(),
            "quantity": quantity,
            "unit_price": parse_money(raw.get("unitPrice"), f"{where}.unitPrice"),
            "cost_price": parse_money(cost_price, f"{where}.costPrice") if cost_price is not None else None,
            "total_price": parse_money(raw.get("totalPrice"), f"{where}.totalPrice"),
        })
    return lines


def enforce_rules_sale(*, payment_method: Any, cashier_id: Any) -> None:
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(
            f"paymentMethod must be one of: {', '.join(PAYMENT_METHODS)}",
            details={"allowed": list(PAYMENT_METHODS)},
        )
    if cashier_id is None or str(cashier_id).strip() == "":
        raise ValidationError("cashierId is required")


def parse_day_range(
    *,
    period: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
) -> tuple[datetime | None, datetime | None]:
    """
    Resolve list filters to inclusive [start, end] datetimes.

    period="today" wins over explicit dates. Dates are whole days: the start
    date begins at 00:00:00, the end date runs through 23:59:59.999999.
    """
    if period:
        if period != "today":
            raise ValidationError("period must be 'today'")
        today = utcnow().date()
        return day_bounds(today)

    try:
        start_dt = parse_iso_datetime(start_date)
        end_dt = parse_iso_datetime(end_date)
    except ValueError:
        raise ValidationError("startDate and endDate must be ISO-8601 dates")

    start = day_bounds(start_dt.date())[0] if start_dt else None
    end = day_bounds(end_dt.date())[1] if end_dt else None
    if start and end and start > end:
        raise ValidationError("startDate must not be after endDate")
    return start, end
