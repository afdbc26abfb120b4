# Overview: Service-layer operations for the inventory item ledger.

from __future__ import annotations

from sqlalchemy import case, func

from ..extensions import db
from ..models import InventoryItem, InventoryMovement, User
from ..models.inventory import MOVEMENT_IN, MOVEMENT_OUT, INVENTORY_MOVEMENT_TYPES
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    optional_text,
    require_positive_int,
)
from pdv.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .audit_service import record as audit
"""
Inventory Ledger Invariants (authoritative)

- InventoryMovement rows are append-only; quantity is always > 0 and the
  direction comes from type (in/out).
- InventoryItem.current_quantity is maintained incrementally and must equal
  SUM(+quantity for in, -quantity for out) over the item's movements at
  every committed point in time.
- The movement insert, the quantity update and the audit entry are one
  transaction; the item row is locked (and version-checked) while it runs.
- An out movement that would drive current_quantity below zero is rejected
  and nothing is written.
"""


# The stock screen posts Portuguese movement names
MOVEMENT_ALIASES = {
    "entrada": MOVEMENT_IN,
    "saida": MOVEMENT_OUT,
    "saída": MOVEMENT_OUT,
}


def _normalize_movement_type(value) -> str:
    if isinstance(value, str):
        value = MOVEMENT_ALIASES.get(value.strip().lower(), value.strip().lower())
    if value not in INVENTORY_MOVEMENT_TYPES:
        raise ValidationError("movement_type must be one of: in, out", field="movement_type")
    return value


def adjust(
    item_id: int,
    user_id: int,
    movement_type: str,
    quantity: int,
    reason: str | None = None,
) -> InventoryMovement:
    """
    Move stock of an inventory item in or out.

    Raises:
        ValidationError: quantity <= 0 or unknown movement type
        NotFoundError: item or user missing
        ConflictError: "insufficient stock" for an out movement beyond current quantity
    """
    movement_type = _normalize_movement_type(movement_type)
    qty = require_positive_int(quantity, "quantity")
    reason = optional_text(reason, "reason")

    def _op():
        item = lock_for_update(db.session.query(InventoryItem).filter_by(id=item_id)).first()
        if not item:
            raise NotFoundError(f"Inventory item {item_id} not found")

        if not db.session.get(User, user_id):
            raise NotFoundError(f"User {user_id} not found")

        movement = apply_movement_locked(item, user_id, movement_type, qty, reason)

        audit(user_id, f"inventory.{movement_type}", "inventory_movements", movement.id)

        db.session.commit()
        return movement

    return run_with_retry(_op)


def apply_movement_locked(
    item: InventoryItem,
    user_id: int,
    movement_type: str,
    quantity: int,
    reason: str | None = None,
) -> InventoryMovement:
    """Append a movement and update the running quantity of a locked item. Does not commit."""
    delta = quantity if movement_type == MOVEMENT_IN else -quantity
    new_quantity = item.current_quantity + delta

    if new_quantity < 0:
        raise ConflictError(
            "insufficient stock",
            field="quantity",
            details={
                "item_id": item.id,
                "current_quantity": item.current_quantity,
                "requested_quantity": quantity,
            },
        )

    movement = InventoryMovement(
        item_id=item.id,
        type=movement_type,
        quantity=quantity,
        reason=reason,
        performed_by_user_id=user_id,
        created_at=utcnow(),
    )
    db.session.add(movement)
    item.current_quantity = new_quantity
    db.session.flush()
    return movement


def list_movements(
    *,
    item_id: int | None = None,
    movement_type: str | None = None,
    user_id: int | None = None,
    limit: int = 100,
) -> list[InventoryMovement]:
    """Movements newest first, optionally filtered."""
    query = db.session.query(InventoryMovement)
    if item_id is not None:
        query = query.filter(InventoryMovement.item_id == item_id)
    if movement_type:
        query = query.filter(InventoryMovement.type == _normalize_movement_type(movement_type))
    if user_id is not None:
        query = query.filter(InventoryMovement.performed_by_user_id == user_id)
    return query.order_by(
        InventoryMovement.created_at.desc(),
        InventoryMovement.id.desc(),
    ).limit(limit).all()


def list_items_below_minimum() -> list[InventoryItem]:
    """Restock alerts: items whose quantity is under their minimum."""
    return db.session.query(InventoryItem).filter(
        InventoryItem.current_quantity < InventoryItem.minimum_quantity
    ).order_by(InventoryItem.name).all()


def replayed_quantity(item_id: int) -> int:
    """Signed sum of the movement log for an item."""
    signed = case(
        (InventoryMovement.type == MOVEMENT_IN, InventoryMovement.quantity),
        else_=-InventoryMovement.quantity,
    )
    total = db.session.query(func.coalesce(func.sum(signed), 0)).filter(
        InventoryMovement.item_id == item_id
    ).scalar()
    return int(total or 0)


def get_item(item_id: int) -> InventoryItem:
    item = db.session.get(InventoryItem, item_id)
    if not item:
        raise NotFoundError(f"Inventory item {item_id} not found")
    return item
