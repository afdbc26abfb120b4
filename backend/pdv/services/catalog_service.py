# Overview: Master data maintenance (groups, products, inventory items, customers, payment methods).

from __future__ import annotations

from typing import Any

from sqlalchemy import or_

from ..extensions import db
from ..models import (
    CreditPayment,
    Customer,
    InventoryGroup,
    InventoryItem,
    InventoryMovement,
    PaymentMethod,
    Product,
    ProductGroup,
    Sale,
    SaleItem,
    User,
)
from ..models.inventory import SALE_TYPES, SALE_TYPE_UNIT, MOVEMENT_IN, MOVEMENT_OUT
from ..models.sales import VALID_TENDER_METHODS, TENDER_OTHER
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    coerce_int,
    optional_text,
    require_amount_cents,
    require_choice,
    require_positive_int,
    require_text,
)
from .concurrency import lock_for_update, run_with_retry
from .audit_service import record as audit
from .inventory_service import apply_movement_locked
from .sales_service import allows_negative_stock
"""
Catalog rules:

- Unique keys (product barcode, item code, customer cpf, group and payment
  method names) surface as ConflictError naming the field.
- Updates accept only the writable fields of each entity; anything else is
  a ValidationError.
- Product.stock and InventoryItem.current_quantity are never set through
  an update. Items take an opening quantity through the movement ledger;
  products are restocked with adjust_product_stock().
- Deletes are hard deletes and are refused (ConflictError) while a sale,
  movement or credit payment still points at the row.
"""


def _bool(value: Any, field: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be a boolean", field=field)
    return value


def _check_writable(data: dict, writable: set[str]) -> None:
    if not isinstance(data, dict):
        raise ValidationError("Update payload must be an object")
    unknown = set(data) - writable
    if unknown:
        raise ValidationError(f"Fields not writable: {', '.join(sorted(unknown))}")


def _optional_fk(model, value, field: str) -> int | None:
    if value is None:
        return None
    ref_id = coerce_int(value, field)
    if not db.session.get(model, ref_id):
        raise NotFoundError(f"{field} {ref_id} not found", field=field)
    return ref_id


def _get_or_404(model, obj_id: int, label: str, *, lock: bool = False):
    query = db.session.query(model).filter_by(id=obj_id)
    if lock:
        query = lock_for_update(query)
    obj = query.first()
    if not obj:
        raise NotFoundError(f"{label} {obj_id} not found")
    return obj


def _delete_unreferenced(model, obj_id: int, label: str, references, actor_user_id: int | None) -> None:
    """
    Hard delete a row that nothing in the ledgers points at.

    `references` is a list of foreign key columns; a single hit on any of
    them makes the delete a ConflictError and leaves the row in place.
    """
    table = model.__tablename__

    def _op():
        obj = _get_or_404(model, obj_id, label, lock=True)
        for column in references:
            if db.session.query(column).filter(column == obj_id).first() is not None:
                raise ConflictError(
                    f"{label} is still referenced and cannot be deleted",
                    details={"referenced_by": column.class_.__tablename__},
                )
        db.session.delete(obj)
        db.session.flush()
        audit(actor_user_id, f"{table}.delete", table, obj_id)
        db.session.commit()

    run_with_retry(_op)


# =============================================================================
# GROUPS
# =============================================================================

_GROUP_MODELS = {
    "product": (ProductGroup, "product_groups", "products"),
    "inventory": (InventoryGroup, "inventory_groups", "items"),
}


def _group_model(kind: str):
    try:
        return _GROUP_MODELS[kind]
    except KeyError:
        raise ValidationError("group kind must be one of: inventory, product") from None


def save_group(kind: str, name: str, *, group_id: int | None = None, actor_user_id: int | None = None):
    """Create or rename a product/inventory group."""
    model, table, _ = _group_model(kind)
    name = require_text(name, "name", max_length=128)

    def _op():
        if group_id is None:
            group = model(name=name)
            db.session.add(group)
            action = "create"
        else:
            group = _get_or_404(model, group_id, "Group")
            group.name = name
            action = "update"
        db.session.flush()
        audit(actor_user_id, f"{table}.{action}", table, group.id)
        db.session.commit()
        return group

    return run_with_retry(_op, unique_fields={
        f"uq_{table}_name": ("name", f"group name '{name}' already in use"),
        f"{table}.name": ("name", f"group name '{name}' already in use"),
    })


def delete_group(kind: str, group_id: int, *, actor_user_id: int | None = None) -> None:
    model, table, members = _group_model(kind)

    def _op():
        group = _get_or_404(model, group_id, "Group")
        if getattr(group, members):
            raise ConflictError("Group is still referenced and cannot be deleted")
        db.session.delete(group)
        db.session.flush()
        audit(actor_user_id, f"{table}.delete", table, group_id)
        db.session.commit()

    run_with_retry(_op)


# =============================================================================
# PRODUCTS
# =============================================================================

PRODUCT_WRITABLE = {"description", "barcode", "price_cents", "sale_type", "group_id", "allow_negative_stock", "is_active"}

_PRODUCT_UNIQUE = {
    "uq_products_barcode": ("barcode", "barcode already in use"),
    "products.barcode": ("barcode", "barcode already in use"),
}


def _product_values(data: dict) -> dict:
    values = {}
    if "description" in data:
        values["description"] = require_text(data["description"], "description")
    if "barcode" in data:
        values["barcode"] = optional_text(data["barcode"], "barcode", max_length=64)
    if "price_cents" in data:
        values["price_cents"] = require_amount_cents(data["price_cents"], "price_cents", allow_zero=True)
    if "sale_type" in data:
        values["sale_type"] = require_choice(data["sale_type"], "sale_type", SALE_TYPES)
    if "group_id" in data:
        values["group_id"] = _optional_fk(ProductGroup, data["group_id"], "group_id")
    if "allow_negative_stock" in data:
        value = data["allow_negative_stock"]
        values["allow_negative_stock"] = None if value is None else _bool(value, "allow_negative_stock")
    if "is_active" in data:
        values["is_active"] = _bool(data["is_active"], "is_active")
    return values


def _ensure_barcode_free(barcode: str | None, product_id: int | None = None) -> None:
    if not barcode:
        return
    query = db.session.query(Product).filter(Product.barcode == barcode)
    if product_id is not None:
        query = query.filter(Product.id != product_id)
    if query.first():
        raise ConflictError("barcode already in use", field="barcode")


def create_product(data: dict, *, actor_user_id: int | None = None) -> Product:
    """
    Create a product. `stock` (initial count) may be given on create only.
    """
    data = dict(data or {})
    stock = coerce_int(data.pop("stock", 0), "stock")
    if stock < 0:
        raise ValidationError("stock cannot be negative", field="stock")
    _check_writable(data, PRODUCT_WRITABLE)
    if "description" not in data or "price_cents" not in data:
        raise ValidationError("description and price_cents are required")

    def _op():
        values = _product_values(data)
        values.setdefault("sale_type", SALE_TYPE_UNIT)
        _ensure_barcode_free(values.get("barcode"))

        product = Product(stock=stock, **values)
        db.session.add(product)
        db.session.flush()
        audit(actor_user_id, "products.create", "products", product.id)
        db.session.commit()
        return product

    return run_with_retry(_op, unique_fields=_PRODUCT_UNIQUE)


def update_product(product_id: int, data: dict, *, actor_user_id: int | None = None) -> Product:
    _check_writable(data, PRODUCT_WRITABLE)

    def _op():
        product = _get_or_404(Product, product_id, "Product", lock=True)
        values = _product_values(data)
        if "barcode" in values:
            _ensure_barcode_free(values["barcode"], product.id)
        for key, value in values.items():
            setattr(product, key, value)
        db.session.flush()
        audit(actor_user_id, "products.update", "products", product.id)
        db.session.commit()
        return product

    return run_with_retry(_op, unique_fields=_PRODUCT_UNIQUE)


def adjust_product_stock(
    product_id: int,
    user_id: int,
    movement_type: str,
    quantity: int,
) -> Product:
    """
    Receive or write off product stock outside a sale.

    Same rules as the inventory ledger: quantity > 0, and an out movement
    may not take stock below zero unless the product allows it.
    """
    movement_type = require_choice(movement_type, "movement_type", {MOVEMENT_IN, MOVEMENT_OUT})
    qty = require_positive_int(quantity, "quantity")

    def _op():
        product = _get_or_404(Product, product_id, "Product", lock=True)
        if not db.session.get(User, user_id):
            raise NotFoundError(f"User {user_id} not found")

        new_stock = product.stock + qty if movement_type == MOVEMENT_IN else product.stock - qty
        if new_stock < 0 and not allows_negative_stock(product):
            raise ConflictError(
                "insufficient stock",
                field="quantity",
                details={"product_id": product.id, "stock": product.stock, "requested_quantity": qty},
            )
        product.stock = new_stock
        db.session.flush()
        audit(user_id, f"products.stock_{movement_type}", "products", product.id)
        db.session.commit()
        return product

    return run_with_retry(_op)


def find_product_by_barcode(barcode: str) -> Product:
    product = db.session.query(Product).filter_by(barcode=barcode).first()
    if not product:
        raise NotFoundError(f"No product with barcode {barcode}")
    return product


def delete_product(product_id: int, *, actor_user_id: int | None = None) -> None:
    """Products that were ever sold stay; deactivate them instead."""
    _delete_unreferenced(Product, product_id, "Product", [SaleItem.product_id], actor_user_id)


# =============================================================================
# INVENTORY ITEMS
# =============================================================================

ITEM_WRITABLE = {"name", "code", "group_id", "minimum_quantity", "unit_of_measure"}

_ITEM_UNIQUE = {
    "uq_inventory_items_code": ("code", "code already in use"),
    "inventory_items.code": ("code", "code already in use"),
}


def _item_values(data: dict) -> dict:
    values = {}
    if "name" in data:
        values["name"] = require_text(data["name"], "name")
    if "code" in data:
        values["code"] = require_text(data["code"], "code", max_length=64)
    if "group_id" in data:
        values["group_id"] = _optional_fk(InventoryGroup, data["group_id"], "group_id")
    if "minimum_quantity" in data:
        minimum = coerce_int(data["minimum_quantity"], "minimum_quantity")
        if minimum < 0:
            raise ValidationError("minimum_quantity cannot be negative", field="minimum_quantity")
        values["minimum_quantity"] = minimum
    if "unit_of_measure" in data:
        values["unit_of_measure"] = require_text(data["unit_of_measure"], "unit_of_measure", max_length=16)
    return values


def _ensure_code_free(code: str, item_id: int | None = None) -> None:
    query = db.session.query(InventoryItem).filter(InventoryItem.code == code)
    if item_id is not None:
        query = query.filter(InventoryItem.id != item_id)
    if query.first():
        raise ConflictError("code already in use", field="code")


def create_inventory_item(data: dict, *, actor_user_id: int | None = None) -> InventoryItem:
    """
    Create an inventory item. An opening quantity is booked as an `in`
    movement by actor_user_id so the ledger and the running total agree
    from the first row.
    """
    data = dict(data or {})
    opening = coerce_int(data.pop("opening_quantity", 0), "opening_quantity")
    if opening < 0:
        raise ValidationError("opening_quantity cannot be negative", field="opening_quantity")
    if opening and actor_user_id is None:
        raise ValidationError("actor_user_id is required to book an opening quantity", field="actor_user_id")
    _check_writable(data, ITEM_WRITABLE)
    if "name" not in data or "code" not in data:
        raise ValidationError("name and code are required")

    def _op():
        values = _item_values(data)
        _ensure_code_free(values["code"])

        item = InventoryItem(current_quantity=0, **values)
        db.session.add(item)
        db.session.flush()

        if opening:
            if not db.session.get(User, actor_user_id):
                raise NotFoundError(f"User {actor_user_id} not found")
            apply_movement_locked(item, actor_user_id, MOVEMENT_IN, opening, "Opening balance")

        audit(actor_user_id, "inventory_items.create", "inventory_items", item.id)
        db.session.commit()
        return item

    return run_with_retry(_op, unique_fields=_ITEM_UNIQUE)


def update_inventory_item(item_id: int, data: dict, *, actor_user_id: int | None = None) -> InventoryItem:
    _check_writable(data, ITEM_WRITABLE)

    def _op():
        item = _get_or_404(InventoryItem, item_id, "Inventory item", lock=True)
        values = _item_values(data)
        if "code" in values:
            _ensure_code_free(values["code"], item.id)
        for key, value in values.items():
            setattr(item, key, value)
        db.session.flush()
        audit(actor_user_id, "inventory_items.update", "inventory_items", item.id)
        db.session.commit()
        return item

    return run_with_retry(_op, unique_fields=_ITEM_UNIQUE)


def delete_inventory_item(item_id: int, *, actor_user_id: int | None = None) -> None:
    _delete_unreferenced(InventoryItem, item_id, "Inventory item", [InventoryMovement.item_id], actor_user_id)


# =============================================================================
# CUSTOMERS
# =============================================================================

CUSTOMER_WRITABLE = {"name", "phone", "cpf", "address", "credit_limit_cents", "is_blocked"}

_CUSTOMER_UNIQUE = {
    "uq_customers_cpf": ("cpf", "cpf already in use"),
    "customers.cpf": ("cpf", "cpf already in use"),
}


def _normalize_cpf(value) -> str | None:
    cpf = optional_text(value, "cpf", max_length=14)
    if cpf is None:
        return None
    digits = "".join(ch for ch in cpf if ch.isdigit())
    if len(digits) != 11:
        raise ValidationError("cpf must have 11 digits", field="cpf")
    return digits


def _customer_values(data: dict) -> dict:
    values = {}
    if "name" in data:
        values["name"] = require_text(data["name"], "name")
    if "phone" in data:
        values["phone"] = optional_text(data["phone"], "phone", max_length=32)
    if "cpf" in data:
        values["cpf"] = _normalize_cpf(data["cpf"])
    if "address" in data:
        values["address"] = optional_text(data["address"], "address")
    if "credit_limit_cents" in data:
        values["credit_limit_cents"] = require_amount_cents(data["credit_limit_cents"], "credit_limit_cents", allow_zero=True)
    if "is_blocked" in data:
        values["is_blocked"] = _bool(data["is_blocked"], "is_blocked")
    return values


def _ensure_cpf_free(cpf: str | None, customer_id: int | None = None) -> None:
    if not cpf:
        return
    query = db.session.query(Customer).filter(Customer.cpf == cpf)
    if customer_id is not None:
        query = query.filter(Customer.id != customer_id)
    if query.first():
        raise ConflictError("cpf already in use", field="cpf")


def create_customer(data: dict, *, actor_user_id: int | None = None) -> Customer:
    _check_writable(data, CUSTOMER_WRITABLE)
    if "name" not in data:
        raise ValidationError("name is required", field="name")

    def _op():
        values = _customer_values(data)
        _ensure_cpf_free(values.get("cpf"))
        customer = Customer(**values)
        db.session.add(customer)
        db.session.flush()
        audit(actor_user_id, "customers.create", "customers", customer.id)
        db.session.commit()
        return customer

    return run_with_retry(_op, unique_fields=_CUSTOMER_UNIQUE)


def update_customer(customer_id: int, data: dict, *, actor_user_id: int | None = None) -> Customer:
    """
    Update customer data. Lowering the limit below the current balance is
    allowed: it only stops further credit sales.
    """
    _check_writable(data, CUSTOMER_WRITABLE)

    def _op():
        customer = _get_or_404(Customer, customer_id, "Customer", lock=True)
        values = _customer_values(data)
        if "cpf" in values:
            _ensure_cpf_free(values["cpf"], customer.id)
        for key, value in values.items():
            setattr(customer, key, value)
        db.session.flush()
        audit(actor_user_id, "customers.update", "customers", customer.id)
        db.session.commit()
        return customer

    return run_with_retry(_op, unique_fields=_CUSTOMER_UNIQUE)


def delete_customer(customer_id: int, *, actor_user_id: int | None = None) -> None:
    _delete_unreferenced(
        Customer, customer_id, "Customer", [Sale.customer_id, CreditPayment.customer_id], actor_user_id,
    )


# =============================================================================
# PAYMENT METHODS
# =============================================================================

def save_payment_method(
    name: str,
    kind: str = TENDER_OTHER,
    *,
    is_active: bool = True,
    method_id: int | None = None,
    actor_user_id: int | None = None,
) -> PaymentMethod:
    name = require_text(name, "name", max_length=64)
    kind = require_choice(kind, "kind", VALID_TENDER_METHODS)
    is_active = _bool(is_active, "is_active")
    duplicate = ("name", f"payment method '{name}' already exists")

    def _op():
        if method_id is None:
            method = PaymentMethod(name=name, kind=kind, is_active=is_active)
            db.session.add(method)
            action = "create"
        else:
            method = _get_or_404(PaymentMethod, method_id, "Payment method")
            method.name = name
            method.kind = kind
            method.is_active = is_active
            action = "update"
        db.session.flush()
        audit(actor_user_id, f"payment_methods.{action}", "payment_methods", method.id)
        db.session.commit()
        return method

    return run_with_retry(_op, unique_fields={
        "uq_payment_methods_name": duplicate,
        "payment_methods.name": duplicate,
    })


def delete_payment_method(method_id: int, *, actor_user_id: int | None = None) -> None:
    def _op():
        method = _get_or_404(PaymentMethod, method_id, "Payment method")
        db.session.delete(method)
        db.session.flush()
        audit(actor_user_id, "payment_methods.delete", "payment_methods", method_id)
        db.session.commit()

    run_with_retry(_op)


def list_payment_methods(active_only: bool = False) -> list[PaymentMethod]:
    query = db.session.query(PaymentMethod)
    if active_only:
        query = query.filter(PaymentMethod.is_active.is_(True))
    return query.order_by(PaymentMethod.name).all()


# =============================================================================
# LISTINGS
# =============================================================================

def list_products(*, active_only: bool = False, group_id: int | None = None) -> list[Product]:
    query = db.session.query(Product)
    if active_only:
        query = query.filter(Product.is_active.is_(True))
    if group_id is not None:
        query = query.filter(Product.group_id == group_id)
    return query.order_by(Product.description).all()


def list_groups(kind: str) -> list:
    model, _, _ = _group_model(kind)
    return db.session.query(model).order_by(model.name).all()


def list_inventory_items() -> list[InventoryItem]:
    return db.session.query(InventoryItem).order_by(InventoryItem.name).all()


def list_customers(search: str | None = None) -> list[Customer]:
    query = db.session.query(Customer)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Customer.name.ilike(pattern), Customer.cpf.ilike(pattern)))
    return query.order_by(Customer.name).all()
