from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z, utcnow


TICKET_STATUSES = ("Active", "On Hold", "Pending Payment")


class SalesTicket(db.Model):
    """
    Draft cart a cashier works on before payment.

    A ticket lives until it is closed or turned into a Sale; closing is a
    delete, there is no stored "Closed" status. Status transitions are
    free-form.

    cart_items is a JSON list of ticket items (see pricing_service) and is
    always written as a whole new list. version_id backs optimistic
    concurrency for cart commands.
    """
    __tablename__ = "sales_tickets"
    __table_args__ = (
        db.Index("ix_sales_tickets_last_updated", "last_updated_at"),
    )

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    status = db.Column(db.String(32), nullable=False, default="Active")

    cart_items = db.Column(db.JSON, nullable=False, default=list)

    customer_id = db.Column(db.String(64), nullable=True)
    customer_name = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    last_updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<SalesTicket id={self.id!r} name={self.name!r} status={self.status!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "cart_items": list(self.cart_items or []),
            "status": self.status,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "created_at": to_utc_z(self.created_at),
            "last_updated_at": to_utc_z(self.last_updated_at),
            "version": self.version_id,
        }
