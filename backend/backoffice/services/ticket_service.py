"""
Ticket store: draft carts a cashier edits before checkout.

Tickets live server-side so any client can resume one by id. Closing a
ticket deletes it; there is no stored closed state. The ticket pool is never
left empty: closing the last ticket opens a fresh empty Active one.

Cart edits come in two forms:
- update_ticket(cart_items=...) replaces the whole list (last write wins,
  unless the caller passes expected_version).
- add_item / set_item (and its set_item_quantity / set_item_discount
  shorthands) / remove_item apply one command to the stored cart under
  optimistic concurrency, so concurrent editors cannot silently drop each
  other's changes.

Every stored item is re-priced by pricing_service before it is written.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import delete

from ..extensions import db
from ..models import Product, SalesTicket
from ..validation import ValidationError, enforce_rules_ticket, validate_cart_items
from backoffice.time_utils import utcnow
from . import pricing_service
from .concurrency import run_with_retry
from .document_service import new_document_id
from .stock_service import InsufficientStockError, ProductNotFoundError


DEFAULT_TICKET_NAME = "Ticket 1"

_UNSET = object()


class TicketError(Exception):
    """Raised for ticket operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class TicketNotFoundError(TicketError):
    def __init__(self, ticket_id: str):
        super().__init__("Sales ticket not found", details={"ticket_id": ticket_id})


class TicketItemNotFoundError(TicketError):
    def __init__(self, ticket_id: str, product_id: str):
        super().__init__(
            f"Product {product_id} is not in ticket {ticket_id}",
            details={"ticket_id": ticket_id, "product_id": product_id},
        )


class TicketConflictError(TicketError):
    def __init__(self, ticket_id: str, expected: int, actual: int):
        super().__init__(
            "Sales ticket was modified by another session",
            details={"ticket_id": ticket_id, "expected_version": expected, "current_version": actual},
        )


def _get_ticket(ticket_id: str) -> SalesTicket:
    ticket = db.session.get(SalesTicket, ticket_id)
    if ticket is None:
        raise TicketNotFoundError(ticket_id)
    return ticket


def _check_version(ticket: SalesTicket, expected_version: int | None) -> None:
    if expected_version is not None and ticket.version_id != expected_version:
        raise TicketConflictError(ticket.id, expected_version, ticket.version_id)


def _priced(items) -> list[dict]:
    return [pricing_service.normalize_item(i) for i in validate_cart_items(items)]


def _find_item(items: list[dict], product_id: str) -> int | None:
    for idx, item in enumerate(items):
        if item["productId"] == product_id:
            return idx
    return None


def get_ticket(ticket_id: str) -> SalesTicket:
    return _get_ticket(ticket_id)


def list_tickets() -> list[SalesTicket]:
    """All tickets, most recently updated first."""
    return (
        db.session.query(SalesTicket)
        .order_by(SalesTicket.last_updated_at.desc(), SalesTicket.created_at.desc())
        .all()
    )


def create_ticket(
    name: str,
    status: str = "Active",
    cart_items: list | None = None,
    customer_id: str | None = None,
    customer_name: str | None = None,
) -> SalesTicket:
    if not name or not str(name).strip():
        raise ValidationError("Ticket name cannot be empty.")
    enforce_rules_ticket({"status": status})

    now = utcnow()
    ticket = SalesTicket(
        id=new_document_id("T"),
        name=str(name).strip(),
        status=status,
        cart_items=_priced(cart_items or []),
        customer_id=customer_id,
        customer_name=customer_name,
        created_at=now,
        last_updated_at=now,
    )
    db.session.add(ticket)
    db.session.commit()
    return ticket


def update_ticket(
    ticket_id: str,
    *,
    name=_UNSET,
    status=_UNSET,
    cart_items=_UNSET,
    customer_id=_UNSET,
    customer_name=_UNSET,
    expected_version: int | None = None,
) -> SalesTicket:
    """
    Partial update. cart_items, when given, replaces the stored list.
    last_updated_at is refreshed on every update.
    """
    changes = {
        k: v for k, v in {
            "name": name,
            "status": status,
            "cart_items": cart_items,
            "customer_id": customer_id,
            "customer_name": customer_name,
        }.items()
        if v is not _UNSET
    }
    if not changes:
        raise ValidationError("No fields to update provided.")
    if "name" in changes and (changes["name"] is None or not str(changes["name"]).strip()):
        raise ValidationError("Ticket name cannot be empty.")
    if "status" in changes:
        enforce_rules_ticket(changes)
    if "cart_items" in changes:
        changes["cart_items"] = _priced(changes["cart_items"])

    def _op():
        ticket = _get_ticket(ticket_id)
        _check_version(ticket, expected_version)
        for key, value in changes.items():
            setattr(ticket, key, value)
        ticket.last_updated_at = utcnow()
        db.session.commit()
        return ticket

    return run_with_retry(_op)


def delete_ticket(ticket_id: str) -> None:
    def _op():
        ticket = _get_ticket(ticket_id)
        db.session.delete(ticket)
        db.session.commit()

    run_with_retry(_op)


def ensure_active_ticket() -> SalesTicket | None:
    """Open an empty Active ticket if the pool is empty. Returns it, or None."""
    if db.session.query(SalesTicket.id).first() is not None:
        return None
    ticket = create_ticket(DEFAULT_TICKET_NAME, "Active")
    current_app.logger.info("Ticket pool was empty; opened %s", ticket.id)
    return ticket


def close_ticket(ticket_id: str) -> SalesTicket | None:
    """Delete a ticket and keep the pool non-empty. Returns the replacement, if any."""
    delete_ticket(ticket_id)
    current_app.logger.info("Closed sales ticket %s", ticket_id)
    return ensure_active_ticket()


def discard_ticket_in_transaction(ticket_id: str) -> bool:
    """
    Delete a ticket as part of the caller's open transaction (no commit).

    Returns False when the ticket is already gone, which callers treat as
    success.
    """
    result = db.session.execute(delete(SalesTicket).where(SalesTicket.id == ticket_id))
    return bool(result.rowcount)


def _apply_cart_command(ticket_id: str, expected_version: int | None, command) -> SalesTicket:
    def _op():
        ticket = _get_ticket(ticket_id)
        _check_version(ticket, expected_version)
        items = [dict(i) for i in (ticket.cart_items or [])]
        ticket.cart_items = command(items)
        ticket.last_updated_at = utcnow()
        db.session.commit()
        return ticket

    return run_with_retry(_op)


def add_item(ticket_id: str, product_id: str, *, expected_version: int | None = None) -> SalesTicket:
    """
    Add one unit of a product. The first add snapshots the product's current
    name, price and cost; later adds only bump the quantity.
    """
    def _command(items):
        product = db.session.get(Product, product_id)
        if product is None:
            raise ProductNotFoundError(product_id)

        idx = _find_item(items, product.id)
        if idx is None:
            if product.stock < 1:
                raise InsufficientStockError(product.id, product.name, product.stock, 1)
            items.append(pricing_service.new_ticket_item(product))
            return items

        quantity = items[idx]["quantity"] + 1
        if quantity > product.stock:
            raise InsufficientStockError(product.id, product.name, product.stock, quantity)
        items[idx] = pricing_service.with_quantity(items[idx], quantity)
        return items

    return _apply_cart_command(ticket_id, expected_version, _command)


def set_item(
    ticket_id: str,
    product_id: str,
    *,
    quantity: int | None = None,
    discount_percentage=None,
    expected_version: int | None = None,
) -> SalesTicket:
    """
    Change a line's discount and/or quantity in one write.

    The discount is applied first, then the quantity (<= 0 removes the
    line). If either step is rejected, neither is stored.
    """
    if quantity is None and discount_percentage is None:
        raise ValidationError("quantity or discountPercentage required")
    if discount_percentage is not None and not pricing_service.is_valid_discount(discount_percentage):
        raise ValidationError(
            "discountPercentage must be between 0 and 100",
            details={"discountPercentage": discount_percentage},
        )

    def _command(items):
        idx = _find_item(items, product_id)
        if idx is None:
            raise TicketItemNotFoundError(ticket_id, product_id)
        if discount_percentage is not None:
            items[idx] = pricing_service.apply_discount(items[idx], discount_percentage)
        if quantity is None:
            return items
        if quantity <= 0:
            del items[idx]
            return items

        product = db.session.get(Product, product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        if quantity > product.stock:
            raise InsufficientStockError(product.id, product.name, product.stock, quantity)
        items[idx] = pricing_service.with_quantity(items[idx], quantity)
        return items

    return _apply_cart_command(ticket_id, expected_version, _command)


def set_item_quantity(
    ticket_id: str,
    product_id: str,
    quantity: int,
    *,
    expected_version: int | None = None,
) -> SalesTicket:
    """Set a line's quantity; zero or less removes the line."""
    return set_item(ticket_id, product_id, quantity=quantity, expected_version=expected_version)


def set_item_discount(
    ticket_id: str,
    product_id: str,
    discount_percentage,
    *,
    expected_version: int | None = None,
) -> SalesTicket:
    if not pricing_service.is_valid_discount(discount_percentage):
        raise ValidationError(
            "discountPercentage must be between 0 and 100",
            details={"discountPercentage": discount_percentage},
        )
    return set_item(
        ticket_id, product_id, discount_percentage=discount_percentage, expected_version=expected_version
    )


def remove_item(ticket_id: str, product_id: str, *, expected_version: int | None = None) -> SalesTicket:
    def _command(items):
        idx = _find_item(items, product_id)
        if idx is None:
            raise TicketItemNotFoundError(ticket_id, product_id)
        del items[idx]
        return items

    return _apply_cart_command(ticket_id, expected_version, _command)
