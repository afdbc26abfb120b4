# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

# backend/pdv/routes/inventory.py
from flask import Blueprint, request, jsonify, current_app

from ..services import inventory_service
from ..validation import PdvError, clamp_limit, coerce_int, require_json_object


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("/items/<int:item_id>/adjust")
def adjust_item_route(item_id: int):
    """
    Move stock of an inventory item in or out.

    Request body:
    {
        "user_id": 2,
        "type": "in",             (in | out; "entrada"/"saida" accepted)
        "quantity": 5,
        "reason": "Supplier delivery"
    }

    Out movements beyond the current quantity answer 409 "insufficient stock".
    """
    try:
        data = require_json_object(request.get_json(silent=True))

        movement = inventory_service.adjust(
            item_id=item_id,
            user_id=coerce_int(data.get("user_id"), "user_id"),
            movement_type=data.get("type"),
            quantity=data.get("quantity"),
            reason=data.get("reason"),
        )
        item = inventory_service.get_item(item_id)

        return jsonify({"movement": movement.to_dict(), "item": item.to_dict()}), 201

    except PdvError:
        raise
    except Exception:
        current_app.logger.exception("Failed to adjust inventory item")
        return jsonify({"error": {"kind": "internal", "message": "Internal server error"}}), 500


@inventory_bp.get("/movements")
def list_movements_route():
    item_id = request.args.get("item_id", type=int)
    user_id = request.args.get("user_id", type=int)
    movement_type = request.args.get("type")
    limit = clamp_limit(request.args.get("limit"), 100)

    movements = inventory_service.list_movements(
        item_id=item_id,
        movement_type=movement_type,
        user_id=user_id,
        limit=limit,
    )
    return jsonify({"movements": [m.to_dict() for m in movements]}), 200


@inventory_bp.get("/items/below-minimum")
def below_minimum_route():
    items = inventory_service.list_items_below_minimum()
    return jsonify({"items": [i.to_dict() for i in items]}), 200
