# Overview: Flask API routes for sales; parses input and returns JSON responses.

# backend/pdv/routes/sales.py
from flask import Blueprint, request, jsonify, current_app

from ..services import sales_service
from ..validation import PdvError, coerce_int, require_json_object


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
def create_sale_route():
    """
    Register and settle a sale.

    Request body:
    {
        "operator_id": 2,
        "cash_session_id": 7,
        "items": [{"product_id": 1, "quantity": 2}],
        "tender": [
            {"method": "cash", "amount_cents": 1000, "received_cents": 2000},
            {"method": "credit", "amount_cents": 598}
        ],
        "customer_id": 4,           (required with credit tender)
        "training_mode": false,
        "idempotency_key": "..."    (or Idempotency-Key header)
    }

    Weight products take quantities in thousandths (grams for per-kg prices).
    """
    try:
        data = require_json_object(request.get_json(silent=True))

        customer_id = data.get("customer_id")
        training_mode = data.get("training_mode", False)
        if not isinstance(training_mode, bool):
            return jsonify({"error": {"kind": "validation", "message": "training_mode must be a boolean", "field": "training_mode"}}), 400

        sale = sales_service.create_sale(
            operator_id=coerce_int(data.get("operator_id"), "operator_id"),
            cash_session_id=coerce_int(data.get("cash_session_id"), "cash_session_id"),
            items=data.get("items"),
            tender=data.get("tender"),
            customer_id=None if customer_id is None else coerce_int(customer_id, "customer_id"),
            training_mode=training_mode,
            idempotency_key=data.get("idempotency_key") or request.headers.get("Idempotency-Key"),
        )

        return jsonify({"sale": sales_service.get_sale_with_items(sale.id)}), 201

    except PdvError:
        raise
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": {"kind": "internal", "message": "Internal server error"}}), 500


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    return jsonify({"sale": sales_service.get_sale_with_items(sale_id)}), 200


@sales_bp.get("")
def list_sales_route():
    """
    Sales history, newest first.

    Query params:
    - page: int (optional) - 1-based page number (default 1)
    - per_page: int (optional) - sales per page (default 20, max 100)
    - include_training: "true" to list training sales too
    """
    page = request.args.get("page", type=int)
    per_page = request.args.get("per_page", type=int)
    include_training = request.args.get("include_training", "false").lower() == "true"

    result = sales_service.list_sales(page=page, per_page=per_page, include_training=include_training)
    result["sales"] = [sale.to_dict() for sale in result["sales"]]
    return jsonify(result), 200
