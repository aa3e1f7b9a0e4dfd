from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from backoffice.time_utils import to_utc_z, utcnow
from .inventory import refuse_mutation


PAYMENT_METHODS = ("Cash", "Card", "Transfer", "Combined")


def _money(value):
    return float(value) if value is not None else None


class Sale(db.Model):
    """
    Permanent sale record.

    Written exactly once by sales_service.commit_sale together with its items,
    the stock decrements and the inventory ledger rows. Never mutated.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_date", "date"),
    )

    id = db.Column(db.String(64), primary_key=True)
    date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    total_amount = db.Column(db.Numeric(12, 2), nullable=False)

    customer_id = db.Column(db.String(64), db.ForeignKey("customers.id"), nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)

    payment_method = db.Column(db.String(16), nullable=False)
    cashier_id = db.Column(db.String(64), nullable=False, index=True)

    def to_dict(self, categories: dict | None = None) -> dict:
        categories = categories or {}
        return {
            "id": self.id,
            "date": to_utc_z(self.date),
            "items": [item.to_dict(category=categories.get(item.id)) for item in self.items],
            "totalAmount": _money(self.total_amount),
            "customerId": self.customer_id,
            "customerName": self.customer_name,
            "paymentMethod": self.payment_method,
            "cashierId": self.cashier_id,
        }


class SaleItem(db.Model):
    """Sold line. Name, prices and cost are snapshots taken at sale time."""
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.String(64), db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.String(64), db.ForeignKey("products.id"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    cost_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_price = db.Column(db.Numeric(12, 2), nullable=False)

    sale = db.relationship("Sale", backref=db.backref("items", lazy=True, order_by="SaleItem.id"))

    def to_dict(self, category: str | None = None) -> dict:
        return {
            "productId": self.product_id,
            "productName": self.product_name,
            "quantity": self.quantity,
            "unitPrice": _money(self.unit_price),
            "costPrice": _money(self.cost_price),
            "totalPrice": _money(self.total_price),
            "category": category,
        }


for _model in (Sale, SaleItem):
    event.listen(_model, "before_update", refuse_mutation)
    event.listen(_model, "before_delete", refuse_mutation)
