from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from backoffice.time_utils import to_utc_z, utcnow


TRANSACTION_TYPES = ("Sale", "Purchase", "Return", "Adjustment")


class ImmutableRecordError(RuntimeError):
    """Raised when code tries to update or delete an append-only row."""


def refuse_mutation(mapper, connection, target):
    raise ImmutableRecordError(f"{type(target).__name__} rows are append-only")


class InventoryTransaction(db.Model):
    """
    Append-only inventory ledger.

    Every stock-affecting event writes exactly one row, in the same DB
    transaction as the stock change itself. Rows are never updated or deleted
    (enforced by the mapper hooks below), so this table answers
    "why did stock change".

    product_id is deliberately not a foreign key: ledger history outlives
    deleted products.
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        db.Index("ix_invtx_product_date", "product_id", "transaction_date"),
        db.Index("ix_invtx_type_date", "transaction_type", "transaction_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.String(64), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    transaction_type = db.Column(db.String(32), nullable=False)

    # Negative for sales
    quantity_change = db.Column(db.Integer, nullable=False)
    stock_before = db.Column(db.Integer, nullable=False)
    stock_after = db.Column(db.Integer, nullable=False)

    related_document_id = db.Column(db.String(64), nullable=True, index=True)
    notes = db.Column(db.String(255), nullable=True)

    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "transaction_type": self.transaction_type,
            "quantity_change": self.quantity_change,
            "stock_before": self.stock_before,
            "stock_after": self.stock_after,
            "related_document_id": self.related_document_id,
            "notes": self.notes,
            "transaction_date": to_utc_z(self.transaction_date),
        }


event.listen(InventoryTransaction, "before_update", refuse_mutation)
event.listen(InventoryTransaction, "before_delete", refuse_mutation)
