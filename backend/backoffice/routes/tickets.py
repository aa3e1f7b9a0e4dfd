# Overview: Flask API routes for sales tickets (draft carts); parses input and returns JSON responses.

# backend/backoffice/routes/tickets.py
"""
Sales ticket routes.

Concurrency: PUT and the item commands accept an optional "version". When
given, the write only applies if the stored ticket is still at that
version (409 otherwise). Without it, PUT is last-write-wins.
"""
from flask import Blueprint, current_app, jsonify, request

from ..models import SalesTicket
from ..services import ticket_service
from ..services.stock_service import InsufficientStockError, ProductNotFoundError
from ..services.ticket_service import (
    TicketConflictError,
    TicketItemNotFoundError,
    TicketNotFoundError,
)
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_ticket,
    parse_int,
    validate_payload,
)

TICKET_POLICY = ModelValidationPolicy(
    writable_fields={"name", "status", "cart_items", "customer_id", "customer_name"},
    required_on_create={"name", "status"},
)

tickets_bp = Blueprint("tickets", __name__, url_prefix="/api/sales-tickets")


def _pop_version(payload: dict) -> int | None:
    raw = payload.pop("version", None)
    if raw is None:
        return None
    return parse_int(raw, "version")


def _error(e, status: int):
    return jsonify({"error": str(e), "details": getattr(e, "details", {})}), status


@tickets_bp.get("")
def list_tickets_route():
    """All tickets, most recently updated first."""
    try:
        tickets = ticket_service.list_tickets()
    except Exception:
        current_app.logger.exception("Failed to fetch sales tickets")
        return jsonify({"error": "Failed to fetch sales tickets"}), 500
    return jsonify([t.to_dict() for t in tickets]), 200


@tickets_bp.post("")
def create_ticket_route():
    payload = request.get_json(silent=True)
    try:
        patch = validate_payload(model=SalesTicket, payload=payload, policy=TICKET_POLICY, partial=False)
        enforce_rules_ticket(patch)
        ticket = ticket_service.create_ticket(
            patch["name"],
            patch["status"],
            cart_items=patch.get("cart_items"),
            customer_id=patch.get("customer_id"),
            customer_name=patch.get("customer_name"),
        )
    except ValidationError as e:
        return _error(e, 400)
    except Exception:
        current_app.logger.exception("Failed to create sales ticket")
        return jsonify({"error": "Failed to create sales ticket"}), 500
    return jsonify(ticket.to_dict()), 201


@tickets_bp.get("/<ticket_id>")
def get_ticket_route(ticket_id: str):
    try:
        ticket = ticket_service.get_ticket(ticket_id)
    except TicketNotFoundError as e:
        return _error(e, 404)
    return jsonify(ticket.to_dict()), 200


@tickets_bp.put("/<ticket_id>")
def update_ticket_route(ticket_id: str):
    """Partial update of name / status / cart_items / customer fields."""
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400
    payload = dict(payload)

    try:
        expected_version = _pop_version(payload)
        patch = validate_payload(model=SalesTicket, payload=payload, policy=TICKET_POLICY, partial=True)
        ticket = ticket_service.update_ticket(ticket_id, expected_version=expected_version, **patch)
    except ValidationError as e:
        return _error(e, 400)
    except TicketNotFoundError as e:
        return _error(e, 404)
    except TicketConflictError as e:
        return _error(e, 409)
    except Exception:
        current_app.logger.exception("Failed to update sales ticket %s", ticket_id)
        return jsonify({"error": "Failed to update sales ticket"}), 500
    return jsonify(ticket.to_dict()), 200


@tickets_bp.delete("/<ticket_id>")
def delete_ticket_route(ticket_id: str):
    """
    Close a ticket. If it was the last one, an empty Active ticket replaces
    it and is returned as replacement_ticket.
    """
    try:
        replacement = ticket_service.close_ticket(ticket_id)
    except TicketNotFoundError as e:
        return _error(e, 404)
    except Exception:
        current_app.logger.exception("Failed to delete sales ticket %s", ticket_id)
        return jsonify({"error": "Failed to delete sales ticket"}), 500

    return jsonify({
        "message": f"Sales ticket {ticket_id} deleted successfully",
        "replacement_ticket": replacement.to_dict() if replacement else None,
    }), 200


def _run_cart_command(ticket_id: str, fn):
    try:
        ticket = fn()
    except ValidationError as e:
        return _error(e, 400)
    except (TicketNotFoundError, TicketItemNotFoundError, ProductNotFoundError) as e:
        return _error(e, 404)
    except (TicketConflictError, InsufficientStockError) as e:
        return _error(e, 409)
    except Exception:
        current_app.logger.exception("Cart update failed for ticket %s", ticket_id)
        return jsonify({"error": "Failed to update sales ticket"}), 500
    return jsonify(ticket.to_dict()), 200


@tickets_bp.post("/<ticket_id>/items")
def add_item_route(ticket_id: str):
    """Add one unit of a product (snapshotting its price on first add)."""
    payload = dict(request.get_json(silent=True) or {})

    def _op():
        product_id = payload.get("productId")
        if not product_id:
            raise ValidationError("productId required")
        return ticket_service.add_item(
            ticket_id, str(product_id), expected_version=_pop_version(payload)
        )

    return _run_cart_command(ticket_id, _op)


@tickets_bp.patch("/<ticket_id>/items/<product_id>")
def update_item_route(ticket_id: str, product_id: str):
    """Body: quantity and/or discountPercentage. Quantity <= 0 removes the line."""
    payload = dict(request.get_json(silent=True) or {})

    def _op():
        expected_version = _pop_version(payload)
        if "quantity" not in payload and "discountPercentage" not in payload:
            raise ValidationError("quantity or discountPercentage required")

        if "discountPercentage" in payload and payload["discountPercentage"] is None:
            raise ValidationError("discountPercentage must be between 0 and 100")

        quantity = payload.get("quantity")
        return ticket_service.set_item(
            ticket_id,
            product_id,
            quantity=parse_int(quantity, "quantity") if quantity is not None else None,
            discount_percentage=payload.get("discountPercentage"),
            expected_version=expected_version,
        )

    return _run_cart_command(ticket_id, _op)


@tickets_bp.delete("/<ticket_id>/items/<product_id>")
def remove_item_route(ticket_id: str, product_id: str):
    payload = dict(request.get_json(silent=True) or {})
    return _run_cart_command(
        ticket_id,
        lambda: ticket_service.remove_item(ticket_id, product_id, expected_version=_pop_version(payload)),
    )
