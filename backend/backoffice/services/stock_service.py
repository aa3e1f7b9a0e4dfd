# Overview: Product stock guard; locks, validates and decrements a product's stock row.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from ..extensions import db
from ..models import Product
from .concurrency import lock_for_update


class StockError(Exception):
    """Raised for stock guard failures."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ProductNotFoundError(StockError):
    def __init__(self, product_id: str):
        super().__init__(
            f"Product {product_id} not found",
            details={"product_id": product_id},
        )
        self.product_id = product_id


class InsufficientStockError(StockError):
    def __init__(self, product_id: str, product_name: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for product {product_name} (ID: {product_id}): "
            f"available {available}, requested {requested}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "available": available,
                "requested": requested,
            },
        )
        self.product_id = product_id
        self.product_name = product_name
        self.available = available
        self.requested = requested


@dataclass(frozen=True)
class StockChange:
    product_id: str
    product_name: str
    cost: Decimal
    stock_before: int
    stock_after: int


def reserve_and_decrement(product_id: str, quantity: int) -> StockChange:
    """
    Lock the product row and take `quantity` units out of stock.

    Must run inside the caller's open transaction: the row lock is held until
    that transaction commits or rolls back, so concurrent checkouts of the
    same product serialize here and the later one sees the decremented value.
    Never commits. Nothing is written when the check fails.
    """
    if quantity < 1:
        raise ValueError("quantity must be >= 1")

    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if product is None:
        raise ProductNotFoundError(product_id)

    stock_before = int(product.stock)
    if stock_before < quantity:
        raise InsufficientStockError(product.id, product.name, stock_before, quantity)

    product.stock = stock_before - quantity
    db.session.flush()

    return StockChange(
        product_id=product.id,
        product_name=product.name,
        cost=product.cost,
        stock_before=stock_before,
        stock_after=product.stock,
    )
