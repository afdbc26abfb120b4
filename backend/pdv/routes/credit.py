# Overview: Flask API routes for customer credit (running tabs).

from flask import Blueprint, request, jsonify, current_app

from ..services import credit_service
from ..validation import PdvError, clamp_limit, coerce_int, require_json_object


credit_bp = Blueprint("credit", __name__, url_prefix="/api/credit")


@credit_bp.post("/customers/<int:customer_id>/payments")
def apply_payment_route(customer_id: int):
    """
    Receive a payment against a customer's tab.

    Request body:
    {
        "amount_cents": 4000,
        "payment_method": "PIX",
        "user_id": 2
    }

    Amounts above the outstanding balance answer 400 "overpayment".
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        user_id = data.get("user_id")

        payment = credit_service.apply_payment(
            customer_id=customer_id,
            amount_cents=data.get("amount_cents"),
            payment_method=data.get("payment_method"),
            user_id=None if user_id is None else coerce_int(user_id, "user_id"),
        )

        return jsonify({
            "payment": payment.to_dict(),
            "balance_cents": credit_service.current_balance(customer_id),
        }), 201

    except PdvError:
        raise
    except Exception:
        current_app.logger.exception("Failed to apply credit payment")
        return jsonify({"error": {"kind": "internal", "message": "Internal server error"}}), 500


@credit_bp.get("/customers/<int:customer_id>/balance")
def balance_route(customer_id: int):
    customer = credit_service.get_customer(customer_id)
    balance = credit_service.current_balance(customer_id)
    return jsonify({
        "customer_id": customer.id,
        "balance_cents": balance,
        "credit_limit_cents": customer.credit_limit_cents,
        "available_cents": max(customer.credit_limit_cents - balance, 0),
        "is_blocked": customer.is_blocked,
    }), 200


@credit_bp.get("/customers/<int:customer_id>/payments")
def list_payments_route(customer_id: int):
    limit = clamp_limit(request.args.get("limit"), 50)
    payments = credit_service.list_payments(customer_id, limit=limit)
    return jsonify({"payments": [p.to_dict() for p in payments]}), 200


@credit_bp.get("/debts")
def debts_route():
    """Customers with an outstanding balance, by name."""
    return jsonify({"debts": credit_service.list_debt_summary()}), 200
