"""
Customer Credit (running tab) Service

WHY: Regular customers buy "na conta" and settle later. The tab must never
drift from the sales that created it.

DESIGN PRINCIPLES:
- The balance is derived, never stored:
    balance = SUM(credit_amount - credit_paid) over the customer's
    non-training sales
- Payments are allocated to outstanding sales (oldest first by default)
  and recorded as CreditAllocation rows
- A payment larger than the balance is rejected (no negative balances)
- All credit writes lock the customer row and touch
  last_credit_activity_at, so concurrent writers on the same customer
  serialize on its version_id
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Customer, CreditPayment, CreditAllocation, Sale
from ..models.sales import CREDIT_OPEN, CREDIT_PARTIAL, CREDIT_PAID
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    require_amount_cents,
    require_text,
)
from pdv.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .audit_service import record as audit


ALLOCATION_OLDEST_FIRST = "oldest_first"
ALLOCATION_NEWEST_FIRST = "newest_first"


def _outstanding_expr():
    return Sale.credit_amount_cents - Sale.credit_paid_cents


def get_customer(customer_id: int, *, lock: bool = False) -> Customer:
    query = db.session.query(Customer).filter_by(id=customer_id)
    if lock:
        query = lock_for_update(query)
    customer = query.first()
    if not customer:
        raise NotFoundError(f"Customer {customer_id} not found")
    return customer


# =============================================================================
# BALANCE
# =============================================================================

def balance_for(customer_id: int) -> int:
    total = db.session.query(
        func.coalesce(func.sum(_outstanding_expr()), 0)
    ).filter(
        Sale.customer_id == customer_id,
        Sale.training_mode.is_(False),
    ).scalar()
    return int(total or 0)


def current_balance(customer_id: int) -> int:
    """Outstanding debt of a customer in cents (always >= 0)."""
    get_customer(customer_id)
    return balance_for(customer_id)


def ensure_headroom_locked(customer: Customer, amount_cents: int) -> int:
    """
    Check that a locked customer may take `amount_cents` more on credit.

    Returns the balance before the new charge.
    """
    if customer.is_blocked:
        raise ConflictError("customer blocked", field="customer_id")

    balance = balance_for(customer.id)
    if balance + amount_cents > customer.credit_limit_cents:
        raise ConflictError(
            "credit limit exceeded",
            field="customer_id",
            details={
                "credit_limit_cents": customer.credit_limit_cents,
                "balance_cents": balance,
                "requested_cents": amount_cents,
                "available_cents": max(customer.credit_limit_cents - balance, 0),
            },
        )
    return balance


def touch_customer_locked(customer: Customer) -> None:
    customer.last_credit_activity_at = utcnow()


# =============================================================================
# PAYMENTS
# =============================================================================

def list_outstanding_sales(customer_id: int, *, lock: bool = False) -> list[Sale]:
    """Credit sales with something left to pay, in allocation order."""
    order = current_app.config.get("CREDIT_ALLOCATION_ORDER", ALLOCATION_OLDEST_FIRST)
    if order == ALLOCATION_NEWEST_FIRST:
        ordering = (Sale.sale_date.desc(), Sale.id.desc())
    else:
        ordering = (Sale.sale_date.asc(), Sale.id.asc())

    query = db.session.query(Sale).filter(
        Sale.customer_id == customer_id,
        Sale.training_mode.is_(False),
        Sale.credit_status.in_([CREDIT_OPEN, CREDIT_PARTIAL]),
    ).order_by(*ordering)
    if lock:
        query = lock_for_update(query)
    return query.all()


def apply_payment(
    customer_id: int,
    amount_cents: int,
    payment_method: str,
    user_id: int | None = None,
) -> CreditPayment:
    """
    Receive a payment against a customer's tab.

    The amount is spread over outstanding credit sales in allocation order,
    marking each one paid or partial, until it is exhausted.

    Raises:
        ValidationError: amount <= 0, or larger than the outstanding balance ("overpayment")
        NotFoundError: customer missing
    """
    amount = require_amount_cents(amount_cents, "amount_cents")
    method = require_text(payment_method, "payment_method", max_length=64)

    def _op():
        customer = get_customer(customer_id, lock=True)

        sales = list_outstanding_sales(customer.id, lock=True)
        outstanding = sum(sale.credit_outstanding_cents for sale in sales)

        if amount > outstanding:
            raise ValidationError(
                "overpayment: amount exceeds outstanding balance",
                field="amount_cents",
                details={"balance_cents": outstanding, "amount_cents": amount},
            )

        payment = CreditPayment(
            customer_id=customer.id,
            amount_cents=amount,
            payment_method=method,
            created_by_user_id=user_id,
            created_at=utcnow(),
        )
        db.session.add(payment)
        db.session.flush()

        remaining = amount
        for sale in sales:
            if remaining <= 0:
                break
            portion = min(remaining, sale.credit_outstanding_cents)
            if portion <= 0:
                continue

            sale.credit_paid_cents += portion
            sale.credit_status = CREDIT_PAID if sale.credit_outstanding_cents == 0 else CREDIT_PARTIAL

            db.session.add(CreditAllocation(
                credit_payment_id=payment.id,
                sale_id=sale.id,
                amount_cents=portion,
            ))
            remaining -= portion

        touch_customer_locked(customer)
        db.session.flush()

        audit(user_id, "credit.payment", "credit_payments", payment.id)

        db.session.commit()
        return payment

    return run_with_retry(_op)


# =============================================================================
# REPORTING
# =============================================================================

def list_debt_summary() -> list[dict]:
    """Customers with an outstanding balance, by name."""
    balance = func.sum(_outstanding_expr())
    rows = db.session.query(
        Customer.id,
        Customer.name,
        Customer.phone,
        Customer.credit_limit_cents,
        Customer.is_blocked,
        balance.label("balance"),
    ).join(
        Sale, Sale.customer_id == Customer.id
    ).filter(
        Sale.training_mode.is_(False),
    ).group_by(
        Customer.id, Customer.name, Customer.phone, Customer.credit_limit_cents, Customer.is_blocked
    ).having(
        balance > 0
    ).order_by(Customer.name).all()

    return [
        {
            "id": row.id,
            "name": row.name,
            "phone": row.phone,
            "credit_limit_cents": row.credit_limit_cents,
            "is_blocked": row.is_blocked,
            "balance": int(row.balance),
        }
        for row in rows
    ]


def list_payments(customer_id: int, limit: int = 50) -> list[CreditPayment]:
    get_customer(customer_id)
    return db.session.query(CreditPayment).filter_by(
        customer_id=customer_id
    ).order_by(CreditPayment.created_at.desc(), CreditPayment.id.desc()).limit(limit).all()
