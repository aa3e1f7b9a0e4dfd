# Overview: Inventory ledger writer and reader; the ledger is append-only.

from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..extensions import db
from ..models import InventoryTransaction, TRANSACTION_TYPES
"""
Inventory Ledger Invariants (authoritative)

- Append-only: no update/delete API exists; the mapper refuses both.
- One row per stock-affecting event, carrying stock_before/stock_after.
- Rows are written inside the same DB transaction as the stock change they
  record (flush only, never commit), so both land or neither does.
- Date filters in the read API are inclusive.
"""


def append_inventory_transaction(
    *,
    product_id: str,
    product_name: str,
    transaction_type: str,
    quantity_change: int,
    stock_before: int,
    stock_after: int,
    related_document_id: str | None = None,
    notes: str | None = None,
    transaction_date: Optional[datetime] = None,
) -> InventoryTransaction:
    if transaction_type not in TRANSACTION_TYPES:
        raise ValueError(f"Unknown inventory transaction type: {transaction_type}")
    if stock_after != stock_before + quantity_change:
        raise ValueError("stock_after must equal stock_before + quantity_change")

    tx = InventoryTransaction(
        product_id=product_id,
        product_name=product_name,
        transaction_type=transaction_type,
        quantity_change=quantity_change,
        stock_before=stock_before,
        stock_after=stock_after,
        related_document_id=related_document_id,
        notes=notes,
    )
    if transaction_date is not None:
        tx.transaction_date = transaction_date

    db.session.add(tx)
    db.session.flush()  # assigns tx.id without committing
    return tx


def list_inventory_transactions(
    *,
    transaction_type: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    related_document_id: str | None = None,
    product_id: str | None = None,
) -> list[InventoryTransaction]:
    q = db.session.query(InventoryTransaction)

    if transaction_type:
        q = q.filter(InventoryTransaction.transaction_type == transaction_type)
    if related_document_id:
        q = q.filter(InventoryTransaction.related_document_id == related_document_id)
    if product_id:
        q = q.filter(InventoryTransaction.product_id == product_id)
    if start is not None:
        q = q.filter(InventoryTransaction.transaction_date >= start)
    if end is not None:
        q = q.filter(InventoryTransaction.transaction_date <= end)

    return q.order_by(
        InventoryTransaction.transaction_date.desc(),
        InventoryTransaction.id.desc(),
    ).all()
