# backend/backoffice/routes/inventory.py
"""
Inventory ledger read route.

Time semantics:
- startDate / endDate are whole days, both inclusive.
"""
from flask import Blueprint, current_app, jsonify, request

from ..models import TRANSACTION_TYPES
from ..services.ledger_service import list_inventory_transactions
from ..validation import ValidationError, parse_day_range


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory-transactions")


@inventory_bp.get("")
def list_inventory_transactions_route():
    transaction_type = request.args.get("type")
    if transaction_type and transaction_type not in TRANSACTION_TYPES:
        return jsonify({"error": f"type must be one of: {', '.join(TRANSACTION_TYPES)}"}), 400

    try:
        start, end = parse_day_range(
            start_date=request.args.get("startDate"),
            end_date=request.args.get("endDate"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400

    try:
        rows = list_inventory_transactions(
            transaction_type=transaction_type,
            start=start,
            end=end,
            related_document_id=request.args.get("relatedDocumentId"),
            product_id=request.args.get("productId"),
        )
    except Exception:
        current_app.logger.exception("Failed to fetch inventory transactions")
        return jsonify({"error": "Failed to fetch inventory transactions"}), 500

    return jsonify([r.to_dict() for r in rows]), 200
