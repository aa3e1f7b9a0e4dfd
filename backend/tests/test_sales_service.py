"""
Sale commit tests.

Covers the all-or-nothing commit, ledger completeness, ticket checkout,
snapshot fields and append-only records.
"""

from decimal import Decimal

import pytest
from backoffice.extensions import db
from backoffice.models import ImmutableRecordError, InventoryTransaction, Sale, SaleItem, SalesTicket
from backoffice.services import sales_service, ticket_service
from backoffice.services.ledger_service import append_inventory_transaction
from backoffice.services.sales_service import ForeignKeyViolationError, SaleNotFoundError
from backoffice.services.stock_service import InsufficientStockError, ProductNotFoundError
from backoffice.validation import ValidationError

from conftest import sale_line, stock_of


def _commit(items, **kwargs):
    kwargs.setdefault("payment_method", "Cash")
    kwargs.setdefault("cashier_id", "cashier-1")
    return sales_service.commit_sale(items, **kwargs)


def _counts():
    return (
        db.session.query(Sale).count(),
        db.session.query(SaleItem).count(),
        db.session.query(InventoryTransaction).count(),
    )


class TestCommit:
    def test_commit_decrements_stock_and_writes_ledger(self, db_session, product_a, product_b):
        sale = _commit([sale_line(product_a, 2), sale_line(product_b, 3)], total_amount="27.50")

        assert sale.id.startswith("S")
        assert sale.total_amount == Decimal("27.50")
        assert [i.product_id for i in sale.items] == ["P-A", "P-B"]
        assert stock_of("P-A") == 8
        assert stock_of("P-B") == 2

        rows = db_session.query(InventoryTransaction).filter_by(related_document_id=sale.id).all()
        by_product = {r.product_id: r for r in rows}
        assert set(by_product) == {"P-A", "P-B"}
        assert by_product["P-A"].transaction_type == "Sale"
        assert by_product["P-A"].quantity_change == -2
        assert by_product["P-A"].stock_before == 10
        assert by_product["P-A"].stock_after == 8
        assert by_product["P-B"].quantity_change == -3
        assert by_product["P-B"].notes == f"Sale {sale.id}"

    def test_total_defaults_to_sum_of_lines(self, db_session, product_a, product_b):
        sale = _commit([sale_line(product_a, 1), sale_line(product_b, 2)])
        assert sale.total_amount == Decimal("15.00")

    def test_cost_snapshot_taken_from_product_when_missing(self, db_session, product_a):
        sale = _commit([sale_line(product_a, 1)])
        assert sale.items[0].cost_price == Decimal("4.00")

    def test_cost_from_request_is_kept(self, db_session, product_a):
        sale = _commit([sale_line(product_a, 1, cost_price=3.5)])
        assert sale.items[0].cost_price == Decimal("3.50")

    def test_agreed_price_is_recorded_not_catalog_price(self, db_session, product_a):
        sale = _commit([sale_line(product_a, 2, unit_price="7.25")])

        item = sale.items[0]
        assert item.unit_price == Decimal("7.25")
        assert item.total_price == Decimal("14.50")


class TestAtomicity:
    def test_insufficient_stock_on_later_line_rolls_back_everything(self, db_session, product_a, product_b):
        before = _counts()

        with pytest.raises(InsufficientStockError) as exc_info:
            _commit([sale_line(product_a, 2), sale_line(product_b, 100)])

        details = exc_info.value.details
        assert details["product_id"] == "P-B"
        assert details["available"] == 5
        assert details["requested"] == 100
        assert "Sugar" in str(exc_info.value)

        assert stock_of("P-A") == 10
        assert stock_of("P-B") == 5
        assert _counts() == before

    def test_missing_product_rolls_back(self, db_session, product_a):
        with pytest.raises(ProductNotFoundError):
            _commit([sale_line(product_a, 1), {
                "productId": "P-ghost", "productName": "Ghost", "quantity": 1,
                "unitPrice": 1, "totalPrice": 1,
            }])

        assert stock_of("P-A") == 10
        assert _counts() == (0, 0, 0)

    def test_unknown_customer_is_a_foreign_key_violation(self, db_session, product_a):
        with pytest.raises(ForeignKeyViolationError):
            _commit([sale_line(product_a, 1)], customer_id="C-ghost")

        assert stock_of("P-A") == 10
        assert _counts() == (0, 0, 0)

    def test_known_customer(self, db_session, product_a, customer):
        sale = _commit([sale_line(product_a, 1)], customer_id=customer.id, customer_name=customer.name)
        assert sale.customer_id == "C-001"

    @pytest.mark.parametrize("items", [[], None, [{"productId": "P-A", "productName": "Coffee", "quantity": 0,
                                                   "unitPrice": 1, "totalPrice": 0}]])
    def test_invalid_items_rejected_before_any_write(self, db_session, product_a, items):
        with pytest.raises(ValidationError):
            _commit(items)
        assert _counts() == (0, 0, 0)

    def test_unknown_payment_method(self, db_session, product_a):
        with pytest.raises(ValidationError):
            _commit([sale_line(product_a, 1)], payment_method="Barter")

    def test_cashier_required(self, db_session, product_a):
        with pytest.raises(ValidationError):
            _commit([sale_line(product_a, 1)], cashier_id=" ")


class TestTicketCheckout:
    def test_ticket_is_deleted_with_the_sale(self, db_session, product_a):
        other = ticket_service.create_ticket("Other")
        ticket = ticket_service.create_ticket("Counter")
        ticket_service.add_item(ticket.id, product_a.id)
        ticket_service.set_item_quantity(ticket.id, product_a.id, 3)
        ticket_service.set_item_discount(ticket.id, product_a.id, 10)

        sale = sales_service.commit_sale_from_ticket(ticket.id, payment_method="Card", cashier_id="c-2")

        assert sale.total_amount == Decimal("27.00")
        assert sale.items[0].unit_price == Decimal("9.00")
        assert stock_of("P-A") == 7
        assert [t.id for t in ticket_service.list_tickets()] == [other.id]

    def test_last_ticket_checkout_reopens_pool(self, db_session, product_a):
        ticket = ticket_service.create_ticket("Only")
        ticket_service.add_item(ticket.id, product_a.id)

        sales_service.commit_sale_from_ticket(ticket.id, payment_method="Cash", cashier_id="c-1")

        tickets = ticket_service.list_tickets()
        assert len(tickets) == 1
        assert tickets[0].id != ticket.id
        assert tickets[0].name == ticket_service.DEFAULT_TICKET_NAME

    def test_customer_defaults_from_ticket(self, db_session, product_a, customer):
        ticket = ticket_service.create_ticket("Counter", customer_id=customer.id, customer_name=customer.name)
        ticket_service.add_item(ticket.id, product_a.id)

        sale = sales_service.commit_sale_from_ticket(ticket.id, payment_method="Cash", cashier_id="c-1")

        assert sale.customer_id == customer.id
        assert sale.customer_name == customer.name

    def test_failed_checkout_keeps_ticket(self, db_session, product_b):
        ticket = ticket_service.create_ticket("Counter")
        ticket_service.add_item(ticket.id, product_b.id)
        product_b.stock = 0
        db_session.commit()

        with pytest.raises(InsufficientStockError):
            sales_service.commit_sale_from_ticket(ticket.id, payment_method="Cash", cashier_id="c-1")

        assert ticket_service.get_ticket(ticket.id).cart_items[0]["productId"] == "P-B"

    def test_items_with_missing_ticket_still_commit(self, db_session, product_a):
        sale = _commit([sale_line(product_a, 1)], ticket_id="T-already-gone")

        assert stock_of("P-A") == 9
        assert db_session.query(SalesTicket).count() == 1
        assert sales_service.get_sale(sale.id).id == sale.id

    def test_empty_ticket_rejected(self, db_session):
        ticket = ticket_service.create_ticket("Counter")
        with pytest.raises(ValidationError):
            sales_service.commit_sale_from_ticket(ticket.id, payment_method="Cash", cashier_id="c-1")


class TestQueries:
    def test_get_missing_sale(self, db_session):
        with pytest.raises(SaleNotFoundError):
            sales_service.get_sale("S-nope")

    def test_list_newest_first(self, db_session, product_a):
        first = _commit([sale_line(product_a, 1)])
        second = _commit([sale_line(product_a, 1)])

        ids = [s.id for s in sales_service.list_sales()]
        assert ids == [second.id, first.id]

    def test_read_shape_uses_snapshots(self, db_session, product_a):
        sale = _commit([sale_line(product_a, 2)])
        product_a.name = "Renamed Coffee"
        product_a.price = 55
        db_session.commit()

        first = sales_service.sale_to_dict(sales_service.get_sale(sale.id))
        second = sales_service.sale_to_dict(sales_service.get_sale(sale.id))

        assert first == second
        item = first["items"][0]
        assert item["productName"] == "Coffee"
        assert item["unitPrice"] == 10.0
        assert item["totalPrice"] == 20.0
        assert item["category"] == "Beverages"
        assert first["paymentMethod"] == "Cash"
        assert first["cashierId"] == "cashier-1"


class TestAppendOnly:
    def test_ledger_rows_cannot_be_updated(self, db_session, product_a):
        _commit([sale_line(product_a, 1)])
        row = db_session.query(InventoryTransaction).first()

        row.notes = "edited"
        with pytest.raises(ImmutableRecordError):
            db_session.flush()
        db_session.rollback()

    def test_ledger_rows_cannot_be_deleted(self, db_session, product_a):
        _commit([sale_line(product_a, 1)])
        row = db_session.query(InventoryTransaction).first()

        db_session.delete(row)
        with pytest.raises(ImmutableRecordError):
            db_session.flush()
        db_session.rollback()

    def test_sale_items_cannot_be_updated(self, db_session, product_a):
        sale = _commit([sale_line(product_a, 1)])

        sale.items[0].quantity = 5
        with pytest.raises(ImmutableRecordError):
            db_session.flush()
        db_session.rollback()

    def test_ledger_arithmetic_is_checked(self, db_session):
        with pytest.raises(ValueError):
            append_inventory_transaction(
                product_id="P-1", product_name="X", transaction_type="Adjustment",
                quantity_change=-1, stock_before=5, stock_after=5,
            )
        with pytest.raises(ValueError):
            append_inventory_transaction(
                product_id="P-1", product_name="X", transaction_type="Theft",
                quantity_change=-1, stock_before=5, stock_after=4,
            )
