# Overview: Flask API routes for master data (groups, products, inventory items, customers, payment methods).

# backend/pdv/routes/catalog.py
"""
Catalog API Routes

Every write accepts an optional "actor_user_id" that is recorded in the
audit log; the remaining keys are the entity's writable fields.
Stock is never edited here except through the product stock endpoint,
which behaves like an inventory movement.
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import catalog_service
from ..validation import PdvError, coerce_int, require_json_object


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/catalog")


def _payload() -> tuple[dict, int | None]:
    data = dict(require_json_object(request.get_json(silent=True)))
    actor = data.pop("actor_user_id", None)
    return data, None if actor is None else coerce_int(actor, "actor_user_id")


def _internal_error(action: str):
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": {"kind": "internal", "message": "Internal server error"}}), 500


# =============================================================================
# GROUPS (kind = product | inventory)
# =============================================================================

@catalog_bp.get("/groups/<kind>")
def list_groups_route(kind: str):
    groups = catalog_service.list_groups(kind)
    return jsonify({"groups": [g.to_dict() for g in groups]}), 200


@catalog_bp.post("/groups/<kind>")
def create_group_route(kind: str):
    try:
        data, actor = _payload()
        group = catalog_service.save_group(kind, data.get("name"), actor_user_id=actor)
        return jsonify({"group": group.to_dict()}), 201
    except PdvError:
        raise
    except Exception:
        return _internal_error("create group")


@catalog_bp.put("/groups/<kind>/<int:group_id>")
def rename_group_route(kind: str, group_id: int):
    try:
        data, actor = _payload()
        group = catalog_service.save_group(kind, data.get("name"), group_id=group_id, actor_user_id=actor)
        return jsonify({"group": group.to_dict()}), 200
    except PdvError:
        raise
    except Exception:
        return _internal_error("rename group")


@catalog_bp.delete("/groups/<kind>/<int:group_id>")
def delete_group_route(kind: str, group_id: int):
    try:
        actor = request.args.get("actor_user_id", type=int)
        catalog_service.delete_group(kind, group_id, actor_user_id=actor)
        return jsonify({"deleted": group_id}), 200
    except PdvError:
        raise
    except Exception:
        return _internal_error("delete group")


# =============================================================================
# PRODUCTS
# =============================================================================

@catalog_bp.get("/products")
def list_products_route():
    active_only = request.args.get("active_only", "false").lower() == "true"
    group_id = request.args.get("group_id", type=int)
    products = catalog_service.list_products(active_only=active_only, group_id=group_id)
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@catalog_bp.get("/products/barcode/<barcode>")
def product_by_barcode_route(barcode: str):
    return jsonify({"product": catalog_service.find_product_by_barcode(barcode).to_dict()}), 200


@catalog_bp.post("/products")
def create_product_route():
    try:
        data, actor = _payload()
        product = catalog_service.create_product(data, actor_user_id=actor)
        return jsonify({"product": product.to_dict()}), 201
    except PdvError:
        raise
    except Exception:
        return _internal_error("create product")


@catalog_bp.put("/products/<int:product_id>")
def update_product_route(product_id: int):
    try:
        data, actor = _payload()
        product = catalog_service.update_product(product_id, data, actor_user_id=actor)
        return jsonify({"product": product.to_dict()}), 200
    except PdvError:
        raise
    except Exception:
        return _internal_error("update product")


@catalog_bp.delete("/products/<int:product_id>")
def delete_product_route(product_id: int):
    try:
        actor = request.args.get("actor_user_id", type=int)
        catalog_service.delete_product(product_id, actor_user_id=actor)
        return jsonify({"deleted": product_id}), 200
    except PdvError:
        raise
    except Exception:
        return _internal_error("delete product")


@catalog_bp.post("/products/<int:product_id>/stock")
def adjust_product_stock_route(product_id: int):
    """
    Request body: {"user_id": 2, "type": "in", "quantity": 24}
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        product = catalog_service.adjust_product_stock(
            product_id,
            coerce_int(data.get("user_id"), "user_id"),
            data.get("type"),
            data.get("quantity"),
        )
        return jsonify({"product": product.to_dict()}), 200
    except PdvError:
        raise
    except Exception:
        return _internal_error("adjust product stock")


# =============================================================================
# INVENTORY ITEMS
# =============================================================================

@catalog_bp.get("/inventory-items")
def list_inventory_items_route():
    items = catalog_service.list_inventory_items()
    return jsonify({"items": [i.to_dict() for i in items]}), 200


@catalog_bp.post("/inventory-items")
def create_inventory_item_route():
    try:
        data, actor = _payload()
        item = catalog_service.create_inventory_item(data, actor_user_id=actor)
        return jsonify({"item": item.to_dict()}), 201
    except PdvError:
        raise
    except Exception:
        return _internal_error("create inventory item")


@catalog_bp.put("/inventory-items/<int:item_id>")
def update_inventory_item_route(item_id: int):
    try:
        data, actor = _payload()
        item = catalog_service.update_inventory_item(item_id, data, actor_user_id=actor)
        return jsonify({"item": item.to_dict()}), 200
    except PdvError:
        raise
    except Exception:
        return _internal_error("update inventory item")


@catalog_bp.delete("/inventory-items/<int:item_id>")
def delete_inventory_item_route(item_id: int):
    try:
        actor = request.args.get("actor_user_id", type=int)
        catalog_service.delete_inventory_item(item_id, actor_user_id=actor)
        return jsonify({"deleted": item_id}), 200
    except PdvError:
        raise
    except Exception:
        return _internal_error("delete inventory item")


# =============================================================================
# CUSTOMERS
# =============================================================================

@catalog_bp.get("/customers")
def list_customers_route():
    customers = catalog_service.list_customers(request.args.get("q"))
    return jsonify({"customers": [c.to_dict() for c in customers]}), 200


@catalog_bp.post("/customers")
def create_customer_route():
    try:
        data, actor = _payload()
        customer = catalog_service.create_customer(data, actor_user_id=actor)
        return jsonify({"customer": customer.to_dict()}), 201
    except PdvError:
        raise
    except Exception:
        return _internal_error("create customer")


@catalog_bp.put("/customers/<int:customer_id>")
def update_customer_route(customer_id: int):
    try:
        data, actor = _payload()
        customer = catalog_service.update_customer(customer_id, data, actor_user_id=actor)
        return jsonify({"customer": customer.to_dict()}), 200
    except PdvError:
        raise
    except Exception:
        return _internal_error("update customer")


@catalog_bp.delete("/customers/<int:customer_id>")
def delete_customer_route(customer_id: int):
    try:
        actor = request.args.get("actor_user_id", type=int)
        catalog_service.delete_customer(customer_id, actor_user_id=actor)
        return jsonify({"deleted": customer_id}), 200
    except PdvError:
        raise
    except Exception:
        return _internal_error("delete customer")


# =============================================================================
# PAYMENT METHODS
# =============================================================================

@catalog_bp.get("/payment-methods")
def list_payment_methods_route():
    active_only = request.args.get("active_only", "false").lower() == "true"
    methods = catalog_service.list_payment_methods(active_only=active_only)
    return jsonify({"payment_methods": [m.to_dict() for m in methods]}), 200


@catalog_bp.post("/payment-methods")
def create_payment_method_route():
    try:
        data, actor = _payload()
        method = catalog_service.save_payment_method(
            data.get("name"),
            data.get("kind", "other"),
            is_active=data.get("is_active", True),
            actor_user_id=actor,
        )
        return jsonify({"payment_method": method.to_dict()}), 201
    except PdvError:
        raise
    except Exception:
        return _internal_error("create payment method")


@catalog_bp.put("/payment-methods/<int:method_id>")
def update_payment_method_route(method_id: int):
    try:
        data, actor = _payload()
        method = catalog_service.save_payment_method(
            data.get("name"),
            data.get("kind", "other"),
            is_active=data.get("is_active", True),
            method_id=method_id,
            actor_user_id=actor,
        )
        return jsonify({"payment_method": method.to_dict()}), 200
    except PdvError:
        raise
    except Exception:
        return _internal_error("update payment method")


@catalog_bp.delete("/payment-methods/<int:method_id>")
def delete_payment_method_route(method_id: int):
    try:
        actor = request.args.get("actor_user_id", type=int)
        catalog_service.delete_payment_method(method_id, actor_user_id=actor)
        return jsonify({"deleted": method_id}), 200
    except PdvError:
        raise
    except Exception:
        return _internal_error("delete payment method")
