from __future__ import annotations

from ..extensions import db
from pdv.time_utils import to_utc_z


SALE_TYPE_UNIT = "unit"
SALE_TYPE_WEIGHT = "weight"
SALE_TYPES = {SALE_TYPE_UNIT, SALE_TYPE_WEIGHT}

MOVEMENT_IN = "in"
MOVEMENT_OUT = "out"
INVENTORY_MOVEMENT_TYPES = {MOVEMENT_IN, MOVEMENT_OUT}


class ProductGroup(db.Model):
    __tablename__ = "product_groups"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_product_groups_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "created_at": to_utc_z(self.created_at)}


class Product(db.Model):
    """
    Sellable product.

    STOCK: `stock` is a denormalized counter decremented directly by the
    sales engine. For sale_type=weight it is kept in the same scaled unit
    as SaleItem.quantity (thousandths, see WEIGHT_QUANTITY_SCALE).

    allow_negative_stock overrides the per-sale_type policy from config
    (None = follow config).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("barcode", name="uq_products_barcode"),
        db.Index("ix_products_group_description", "group_id", "description"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    description = db.Column(db.String(255), nullable=False)
    barcode = db.Column(db.String(64), nullable=True)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    sale_type = db.Column(db.String(16), nullable=False, default=SALE_TYPE_UNIT)

    stock = db.Column(db.Integer, nullable=False, default=0)
    allow_negative_stock = db.Column(db.Boolean, nullable=True)

    group_id = db.Column(db.Integer, db.ForeignKey("product_groups.id"), nullable=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    group = db.relationship("ProductGroup", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} description={self.description!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "barcode": self.barcode,
            "price_cents": self.price_cents,
            "sale_type": self.sale_type,
            "stock": self.stock,
            "allow_negative_stock": self.allow_negative_stock,
            "group_id": self.group_id,
            "group_name": self.group.name if self.group else None,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryGroup(db.Model):
    __tablename__ = "inventory_groups"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_inventory_groups_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "created_at": to_utc_z(self.created_at)}


class InventoryItem(db.Model):
    """
    Stock-controlled supply item (ingredients, packaging, ...).

    INVARIANT: current_quantity == SUM(+in, -out) over inventory_movements
    for the item. Both are only written together by
    inventory_service.adjust().
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_inventory_items_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    code = db.Column(db.String(64), nullable=False)
    group_id = db.Column(db.Integer, db.ForeignKey("inventory_groups.id"), nullable=True, index=True)

    current_quantity = db.Column(db.Integer, nullable=False, default=0)
    minimum_quantity = db.Column(db.Integer, nullable=False, default=0)
    unit_of_measure = db.Column(db.String(16), nullable=False, default="un")

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    group = db.relationship("InventoryGroup", backref=db.backref("items", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "group_id": self.group_id,
            "group_name": self.group.name if self.group else None,
            "current_quantity": self.current_quantity,
            "minimum_quantity": self.minimum_quantity,
            "unit_of_measure": self.unit_of_measure,
            "below_minimum": self.current_quantity < self.minimum_quantity,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class InventoryMovement(db.Model):
    """
    Append-only inventory ledger entry.

    IMMUTABLE: quantity is always positive; direction comes from type.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_inventory_movements_quantity_positive"),
        db.Index("ix_inventory_movements_item_created", "item_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False, index=True)

    type = db.Column(db.String(8), nullable=False, index=True)  # in, out
    quantity = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=True)

    performed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    item = db.relationship("InventoryItem", backref=db.backref("movements", lazy=True))
    performed_by = db.relationship("User")

    @property
    def signed_quantity(self) -> int:
        return self.quantity if self.type == MOVEMENT_IN else -self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "item_name": self.item.name if self.item else None,
            "type": self.type,
            "quantity": self.quantity,
            "reason": self.reason,
            "performed_by_user_id": self.performed_by_user_id,
            "performed_by_username": self.performed_by.username if self.performed_by else None,
            "created_at": to_utc_z(self.created_at),
        }
