from __future__ import annotations

from ..extensions import db
from pdv.time_utils import to_utc_z


class Customer(db.Model):
    """
    Customer allowed to buy on credit (running tab).

    The debt balance is NOT a column: it is derived from the credit
    portions of the customer's sales minus what has been paid on them
    (see credit_service.current_balance). last_credit_activity_at is
    touched by every credit write so that concurrent writers conflict on
    version_id.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("cpf", name="uq_customers_cpf"),
        db.Index("ix_customers_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    cpf = db.Column(db.String(14), nullable=True)
    address = db.Column(db.String(255), nullable=True)

    credit_limit_cents = db.Column(db.Integer, nullable=False, default=0)
    is_blocked = db.Column(db.Boolean, nullable=False, default=False)

    last_credit_activity_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "cpf": self.cpf,
            "address": self.address,
            "credit_limit_cents": self.credit_limit_cents,
            "is_blocked": self.is_blocked,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class CreditPayment(db.Model):
    """
    Payment received against a customer's tab.

    IMMUTABLE: the allocations record which sales it settled.
    """
    __tablename__ = "credit_payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_credit_payments_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(64), nullable=False)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    customer = db.relationship("Customer", backref=db.backref("credit_payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "allocations": [a.to_dict() for a in self.allocations],
        }


class CreditAllocation(db.Model):
    """Portion of a credit payment applied to one sale."""
    __tablename__ = "credit_allocations"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_credit_allocations_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    credit_payment_id = db.Column(db.Integer, db.ForeignKey("credit_payments.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)

    credit_payment = db.relationship(
        "CreditPayment",
        backref=db.backref("allocations", lazy=True, order_by="CreditAllocation.id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "credit_payment_id": self.credit_payment_id,
            "sale_id": self.sale_id,
            "amount_cents": self.amount_cents,
        }
