"""
Sale finalization: turns a cart into a permanent Sale in one transaction.

commit_sale() is the only place where a partial failure becomes a total
rollback. Per line, in the order supplied:

    lock + check + decrement product stock   (stock_service)
    insert the SaleItem snapshot
    append the Sale ledger row              (ledger_service)

and, when the cart came from a ticket, the ticket delete rides in the same
transaction. Any failure rolls all of it back and re-raises the original
error; nothing is swallowed.
"""

from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import Category, Product, Sale, SaleItem
from ..validation import enforce_rules_sale, parse_money, validate_sale_items, ValidationError
from backoffice.time_utils import utcnow
from . import ticket_service
from .concurrency import begin_write_transaction, run_with_retry
from .document_service import new_document_id
from .ledger_service import append_inventory_transaction
from .stock_service import StockError, reserve_and_decrement


class SaleError(Exception):
    """Raised for sale operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class SaleNotFoundError(SaleError):
    def __init__(self, sale_id: str):
        super().__init__("Sale not found", details={"sale_id": sale_id})


class ForeignKeyViolationError(SaleError):
    """A referenced row (product, customer) is missing at the storage layer."""


class StorageError(SaleError):
    """Any other database failure. The message is safe to show to clients."""


def _is_foreign_key_violation(exc: IntegrityError) -> bool:
    orig = exc.orig
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code == "23503":
        return True
    return "foreign key" in str(orig).lower()


def _post_sale_locked(sale: Sale, lines: list[dict], ticket_id: str | None) -> None:
    db.session.add(sale)
    db.session.flush()

    for line in lines:
        change = reserve_and_decrement(line["product_id"], line["quantity"])

        cost_price = line["cost_price"]
        if cost_price is None:
            cost_price = change.cost

        db.session.add(SaleItem(
            sale_id=sale.id,
            product_id=line["product_id"],
            product_name=line["product_name"],
            quantity=line["quantity"],
            unit_price=line["unit_price"],
            cost_price=cost_price,
            total_price=line["total_price"],
        ))

        append_inventory_transaction(
            product_id=change.product_id,
            product_name=change.product_name,
            transaction_type="Sale",
            quantity_change=-line["quantity"],
            stock_before=change.stock_before,
            stock_after=change.stock_after,
            related_document_id=sale.id,
            notes=f"Sale {sale.id}",
        )

    if ticket_id and not ticket_service.discard_ticket_in_transaction(ticket_id):
        current_app.logger.warning(
            "Sale %s: ticket %s was already gone; treating cleanup as done", sale.id, ticket_id
        )


def commit_sale(
    items,
    *,
    payment_method: str,
    cashier_id: str,
    total_amount=None,
    customer_id: str | None = None,
    customer_name: str | None = None,
    ticket_id: str | None = None,
) -> Sale:
    """
    Atomically record a sale, decrement stock and write the ledger.

    Raises ValidationError before touching the database; ProductNotFoundError
    or InsufficientStockError (with product/available/requested details),
    ForeignKeyViolationError or StorageError after a full rollback.
    Lock errors and deadlocks retry the whole transaction with a new sale id.
    """
    lines = validate_sale_items(items)
    enforce_rules_sale(payment_method=payment_method, cashier_id=cashier_id)
    if total_amount is None:
        total = sum((line["total_price"] for line in lines), Decimal(0))
    else:
        total = parse_money(total_amount, "totalAmount")

    lock_timeout_ms = current_app.config.get("STOCK_LOCK_TIMEOUT_MS")
    attempts = current_app.config.get("SALE_COMMIT_RETRY_ATTEMPTS", 3)

    def _op() -> str:
        begin_write_transaction(lock_timeout_ms)
        sale = Sale(
            id=new_document_id("S"),
            date=utcnow(),
            total_amount=total,
            customer_id=customer_id or None,
            customer_name=customer_name or None,
            payment_method=payment_method,
            cashier_id=str(cashier_id).strip(),
        )
        try:
            _post_sale_locked(sale, lines, ticket_id)
            db.session.commit()
        except (OperationalError, StaleDataError):
            # run_with_retry rolls back and retries the whole unit of work
            raise
        except StockError as exc:
            db.session.rollback()
            current_app.logger.warning("Sale rejected, rolled back: %s", exc)
            raise
        except IntegrityError as exc:
            db.session.rollback()
            if _is_foreign_key_violation(exc):
                current_app.logger.warning("Sale rejected by foreign key constraint: %s", exc.orig)
                raise ForeignKeyViolationError(
                    "Failed to create sale: one or more referenced products or customers do not exist.",
                ) from exc
            current_app.logger.exception("Sale commit failed; statement: %s", exc.statement)
            raise StorageError("Failed to create sale") from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception(
                "Sale commit failed; statement: %s", getattr(exc, "statement", None)
            )
            raise StorageError("Failed to create sale") from exc
        except Exception:
            db.session.rollback()
            raise
        return sale.id

    try:
        sale_id = run_with_retry(_op, attempts=attempts)
    except (OperationalError, StaleDataError) as exc:
        current_app.logger.exception(
            "Sale commit failed after %s attempts; statement: %s", attempts, getattr(exc, "statement", None)
        )
        raise StorageError("Failed to create sale") from exc

    current_app.logger.info(
        "Sale %s committed: %s line(s), total %s, cashier %s", sale_id, len(lines), total, cashier_id
    )

    if ticket_id:
        try:
            ticket_service.ensure_active_ticket()
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception("Sale %s committed but reopening the ticket pool failed", sale_id)

    return get_sale(sale_id)


def commit_sale_from_ticket(ticket_id: str, **kwargs) -> Sale:
    """Check out a stored ticket's cart. Customer fields default to the ticket's."""
    ticket = ticket_service.get_ticket(ticket_id)
    items = list(ticket.cart_items or [])
    if not items:
        raise ValidationError("Sale must have at least one item.", details={"ticket_id": ticket_id})

    if kwargs.get("customer_id") is None:
        kwargs["customer_id"] = ticket.customer_id
    if kwargs.get("customer_name") is None:
        kwargs["customer_name"] = ticket.customer_name
    return commit_sale(items, ticket_id=ticket_id, **kwargs)


def get_sale(sale_id: str) -> Sale:
    sale = (
        db.session.query(Sale)
        .options(selectinload(Sale.items))
        .filter_by(id=sale_id)
        .first()
    )
    if sale is None:
        raise SaleNotFoundError(sale_id)
    return sale


def list_sales(start=None, end=None) -> list[Sale]:
    """Sales newest first, items loaded eagerly. Bounds are inclusive."""
    q = db.session.query(Sale).options(selectinload(Sale.items))
    if start is not None:
        q = q.filter(Sale.date >= start)
    if end is not None:
        q = q.filter(Sale.date <= end)
    return q.order_by(Sale.date.desc(), Sale.id.desc()).all()


def _category_names(sales: list[Sale]) -> dict[int, str]:
    """SaleItem id -> current category name, via product -> category."""
    sale_ids = [s.id for s in sales]
    if not sale_ids:
        return {}
    rows = (
        db.session.query(SaleItem.id, Category.name)
        .join(Product, Product.id == SaleItem.product_id)
        .join(Category, Category.id == Product.category_id)
        .filter(SaleItem.sale_id.in_(sale_ids))
        .all()
    )
    return {item_id: name for item_id, name in rows}


def sales_to_dicts(sales: list[Sale]) -> list[dict]:
    categories = _category_names(sales)
    return [sale.to_dict(categories=categories) for sale in sales]


def sale_to_dict(sale: Sale) -> dict:
    return sales_to_dicts([sale])[0]
