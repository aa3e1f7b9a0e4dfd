"""
Ticket line pricing.

Pure functions, no database access. A ticket item is a plain dict in the
shape stored in SalesTicket.cart_items:

    productId, productName, quantity, originalUnitPrice,
    discountPercentage, unitPrice, totalPrice, costPrice

Invariants (hold after every function here returns):
- unitPrice  == round2(originalUnitPrice * (1 - discountPercentage / 100))
- totalPrice == round2(unitPrice * quantity)
- 0 <= discountPercentage <= 100

Prices are snapshots: originalUnitPrice and costPrice are copied from the
product when the item is first added and never refreshed from the catalog.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError("boolean is not a price")
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError):
        raise ValueError(f"not a number: {value!r}")


def round2(value: Any) -> Decimal:
    """Round half-up to cents."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def unit_price_for(original_unit_price: Any, discount_percentage: Any) -> Decimal:
    original = to_decimal(original_unit_price)
    discount = to_decimal(discount_percentage)
    return round2(original * (1 - discount / HUNDRED))


def line_total_for(unit_price: Any, quantity: int) -> Decimal:
    return round2(to_decimal(unit_price) * quantity)


def is_valid_discount(value: Any) -> bool:
    try:
        discount = to_decimal(value)
    except ValueError:
        return False
    if not discount.is_finite():
        return False
    return Decimal(0) <= discount <= HUNDRED


def _build(
    *,
    product_id: str,
    product_name: str,
    quantity: int,
    original_unit_price: Any,
    discount_percentage: Any,
    cost_price: Any,
) -> dict:
    original = round2(original_unit_price)
    unit_price = unit_price_for(original, discount_percentage)
    return {
        "productId": product_id,
        "productName": product_name,
        "quantity": quantity,
        "originalUnitPrice": float(original),
        "discountPercentage": float(to_decimal(discount_percentage)),
        "unitPrice": float(unit_price),
        "totalPrice": float(line_total_for(unit_price, quantity)),
        "costPrice": float(round2(cost_price)),
    }


def new_ticket_item(product) -> dict:
    """Snapshot a catalog product as a one-unit, undiscounted ticket item."""
    return _build(
        product_id=product.id,
        product_name=product.name,
        quantity=1,
        original_unit_price=product.price,
        discount_percentage=0,
        cost_price=product.cost,
    )


def with_quantity(item: dict, quantity: int) -> dict:
    if quantity < 1:
        raise ValueError("quantity must be >= 1")
    return _build(
        product_id=item["productId"],
        product_name=item["productName"],
        quantity=quantity,
        original_unit_price=item["originalUnitPrice"],
        discount_percentage=item.get("discountPercentage", 0),
        cost_price=item.get("costPrice", 0),
    )


def apply_discount(item: dict, discount_percentage: Any) -> dict:
    """
    Re-price an item for a new discount.

    Out-of-range or non-numeric input is ignored: the previous discount is
    kept (not reset to zero) and prices are re-derived from it.
    """
    if not is_valid_discount(discount_percentage):
        discount_percentage = item.get("discountPercentage", 0)
    return _build(
        product_id=item["productId"],
        product_name=item["productName"],
        quantity=item["quantity"],
        original_unit_price=item["originalUnitPrice"],
        discount_percentage=discount_percentage,
        cost_price=item.get("costPrice", 0),
    )


def normalize_item(raw: dict) -> dict:
    """
    Canonical ticket item from client/stored data.

    Client-supplied unitPrice/totalPrice are not trusted; they are re-derived.
    Older items without originalUnitPrice fall back to unitPrice.
    """
    original = raw.get("originalUnitPrice")
    if original is None:
        original = raw.get("unitPrice", 0)
    return _build(
        product_id=str(raw["productId"]),
        product_name=str(raw.get("productName") or "Unknown Product"),
        quantity=int(raw["quantity"]),
        original_unit_price=original,
        discount_percentage=raw.get("discountPercentage") or 0,
        cost_price=raw.get("costPrice") or 0,
    )


def cart_total(items: Iterable[dict]) -> Decimal:
    return round2(sum((to_decimal(i["totalPrice"]) for i in items), Decimal(0)))
