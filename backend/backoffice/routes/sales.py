# Overview: Flask API routes for sale checkout and sale history; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..services import sales_service
from ..services.sales_service import (
    ForeignKeyViolationError,
    SaleNotFoundError,
    StorageError,
)
from ..services.stock_service import InsufficientStockError, ProductNotFoundError
from ..services.ticket_service import TicketNotFoundError
from ..validation import ValidationError, parse_day_range


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
def create_sale_route():
    """
    Check out a cart.

    Body: items[], totalAmount, paymentMethod, cashierId, customerId?,
    customerName?, ticketId?. Without items, the ticket's cart is used.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    kwargs = {
        "payment_method": data.get("paymentMethod"),
        "cashier_id": data.get("cashierId"),
        "total_amount": data.get("totalAmount"),
        "customer_id": data.get("customerId"),
        "customer_name": data.get("customerName"),
    }
    ticket_id = data.get("ticketId")

    try:
        if data.get("items") is None and ticket_id:
            sale = sales_service.commit_sale_from_ticket(ticket_id, **kwargs)
        else:
            sale = sales_service.commit_sale(data.get("items"), ticket_id=ticket_id, **kwargs)
        return jsonify(sales_service.sale_to_dict(sale)), 201

    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except ForeignKeyViolationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except (ProductNotFoundError, TicketNotFoundError) as e:
        return jsonify({"error": str(e), "details": e.details}), 404
    except InsufficientStockError as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except StorageError:
        # already logged with the failing statement
        return jsonify({"error": "Failed to create sale"}), 500
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
def list_sales_route():
    """
    List sales, newest first, each with its items.

    Query params: period=today, or startDate / endDate (inclusive days).
    """
    try:
        start, end = parse_day_range(
            period=request.args.get("period"),
            start_date=request.args.get("startDate"),
            end_date=request.args.get("endDate"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400

    try:
        sales = sales_service.list_sales(start=start, end=end)
        return jsonify(sales_service.sales_to_dicts(sales)), 200
    except Exception:
        current_app.logger.exception("Failed to fetch sales")
        return jsonify({"error": "Failed to fetch sales"}), 500


@sales_bp.get("/<sale_id>")
def get_sale_route(sale_id: str):
    try:
        sale = sales_service.get_sale(sale_id)
    except SaleNotFoundError as e:
        return jsonify({"error": str(e), "details": e.details}), 404
    return jsonify(sales_service.sale_to_dict(sale)), 200
