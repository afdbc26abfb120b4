from __future__ import annotations

from ..extensions import db
from pdv.time_utils import to_utc_z


# =============================================================================
# TENDER METHODS (CONSTANTS)
# =============================================================================

TENDER_CASH = "cash"
TENDER_CARD = "card"
TENDER_PIX = "pix"
TENDER_CREDIT = "credit"  # customer running tab
TENDER_OTHER = "other"

VALID_TENDER_METHODS = {TENDER_CASH, TENDER_CARD, TENDER_PIX, TENDER_CREDIT, TENDER_OTHER}


# =============================================================================
# CREDIT STATUS (CONSTANTS)
# =============================================================================

CREDIT_NONE = "none"
CREDIT_OPEN = "open"
CREDIT_PARTIAL = "partial"
CREDIT_PAID = "paid"


class PaymentMethod(db.Model):
    """
    Named payment method offered at the till (e.g. "Dinheiro", "Cartão de Débito").

    `kind` maps the display name onto one of the tender methods the
    sales engine understands.
    """
    __tablename__ = "payment_methods"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_payment_methods_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    kind = db.Column(db.String(16), nullable=False, default=TENDER_OTHER)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Sale(db.Model):
    """
    Settled sale.

    Created atomically with its items and tenders; the only later update
    is the credit settlement bookkeeping (credit_paid_cents / credit_status).
    Training sales are recorded but never touch stock, cash or credit.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("idempotency_key", name="uq_sales_idempotency_key"),
        db.Index("ix_sales_training_date", "training_mode", "sale_date"),
        db.Index("ix_sales_customer_credit", "customer_id", "credit_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cash_session_id = db.Column(db.Integer, db.ForeignKey("cash_sessions.id"), nullable=False, index=True)
    operator_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    sale_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    # Amounts (all in cents)
    total_amount_cents = db.Column(db.Integer, nullable=False)  # = sum of item totals
    change_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    # Credit (running tab) portion
    credit_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    credit_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    credit_status = db.Column(db.String(16), nullable=False, default=CREDIT_NONE, index=True)

    training_mode = db.Column(db.Boolean, nullable=False, default=False)

    # Client supplied key; repeating a request with the same key returns the same sale
    idempotency_key = db.Column(db.String(64), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    cash_session = db.relationship("CashSession", backref=db.backref("sales", lazy=True))
    operator = db.relationship("User")
    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def credit_outstanding_cents(self) -> int:
        return self.credit_amount_cents - self.credit_paid_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cash_session_id": self.cash_session_id,
            "operator_user_id": self.operator_user_id,
            "operator_username": self.operator.username if self.operator else None,
            "customer_id": self.customer_id,
            "sale_date": to_utc_z(self.sale_date),
            "total_amount_cents": self.total_amount_cents,
            "change_amount_cents": self.change_amount_cents,
            "credit_amount_cents": self.credit_amount_cents,
            "credit_paid_cents": self.credit_paid_cents,
            "credit_status": self.credit_status,
            "training_mode": self.training_mode,
            "idempotency_key": self.idempotency_key,
            "version_id": self.version_id,
        }


class SaleItem(db.Model):
    """Line of a sale. unit_price_cents is a snapshot of the product price."""
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)  # scaled for weight products
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship("Sale", backref=db.backref("items", lazy=True, order_by="SaleItem.id"))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_description": self.product.description if self.product else None,
            "sale_type": self.product.sale_type if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
        }


class SaleTender(db.Model):
    """
    How a sale was paid. Tenders of one sale sum exactly to its total.

    received_cents/change_cents are only meaningful for cash: the customer
    hands over received_cents, the drawer keeps amount_cents.
    """
    __tablename__ = "sale_tenders"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_sale_tenders_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)

    method = db.Column(db.String(16), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    received_cents = db.Column(db.Integer, nullable=True)
    change_cents = db.Column(db.Integer, nullable=False, default=0)

    sale = db.relationship("Sale", backref=db.backref("tenders", lazy=True, order_by="SaleTender.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "method": self.method,
            "amount_cents": self.amount_cents,
            "received_cents": self.received_cents,
            "change_cents": self.change_cents,
        }
