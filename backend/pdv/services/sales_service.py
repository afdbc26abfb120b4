"""
Sales Service - atomic sale settlement

WHY: A sale touches product stock, the till, and possibly a customer's tab.
Either all of it happens or none of it does.

One create_sale call, one transaction:
- lock the cash session (must be open), the products and the customer
- price each line (unit price snapshot x scaled quantity, rounded)
- decrement product stock, honoring the negative stock policy
- check that the tender splits sum exactly to the total
- cash portion -> sale-cash-in movement on the session
- credit portion -> headroom check, then debt on the customer
- audit entry, commit
Any failure rolls back every write above.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import CashSession, Product, Sale, SaleItem, SaleTender, User
from ..models.cash import SESSION_OPEN, MOVEMENT_SALE_CASH_IN
from ..models.inventory import SALE_TYPE_WEIGHT
from ..models.sales import (
    TENDER_CASH,
    TENDER_CREDIT,
    VALID_TENDER_METHODS,
    CREDIT_NONE,
    CREDIT_OPEN,
)
from ..money import line_total, sum_cents
from ..validation import (
    ConflictError,
    NotFoundError,
    StateError,
    ValidationError,
    coerce_int,
    optional_text,
    require_amount_cents,
    require_choice,
    require_positive_int,
)
from pdv.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .audit_service import record as audit
from .cash_session_service import append_movement_locked
from . import credit_service


def _normalize_items(items) -> list[dict]:
    if not isinstance(items, (list, tuple)) or not items:
        raise ValidationError("A sale needs at least one item", field="items")

    normalized = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object", field="items")
        normalized.append({
            "product_id": coerce_int(raw.get("product_id"), f"items[{index}].product_id"),
            "quantity": require_positive_int(raw.get("quantity"), f"items[{index}].quantity"),
        })
    return normalized


def _normalize_tender(tender) -> list[dict]:
    """
    Zero-amount entries settle nothing and are dropped, so a sale whose
    total is zero settles with no tender at all. Whether the remaining
    entries cover the total is checked once the lines are priced.
    """
    if not isinstance(tender, (list, tuple)):
        raise ValidationError("tender must be a list", field="tender")

    normalized = []
    for index, raw in enumerate(tender):
        if not isinstance(raw, dict):
            raise ValidationError(f"tender[{index}] must be an object", field="tender")
        method = require_choice(raw.get("method"), f"tender[{index}].method", VALID_TENDER_METHODS)
        amount = require_amount_cents(raw.get("amount_cents"), f"tender[{index}].amount_cents", allow_zero=True)

        received = raw.get("received_cents")
        if amount == 0:
            if received is not None:
                raise ValidationError("received_cents needs a cash amount", field=f"tender[{index}].received_cents")
            continue

        change = 0
        if received is not None:
            if method != TENDER_CASH:
                raise ValidationError("received_cents only applies to cash", field=f"tender[{index}].received_cents")
            received = require_amount_cents(received, f"tender[{index}].received_cents")
            if received < amount:
                raise ValidationError("received_cents cannot be less than the cash amount", field=f"tender[{index}].received_cents")
            change = received - amount

        normalized.append({
            "method": method,
            "amount_cents": amount,
            "received_cents": received,
            "change_cents": change,
        })
    return normalized


def quantity_scale(product: Product) -> int:
    if product.sale_type == SALE_TYPE_WEIGHT:
        return current_app.config.get("WEIGHT_QUANTITY_SCALE", 1000)
    return 1


def allows_negative_stock(product: Product) -> bool:
    if product.allow_negative_stock is not None:
        return product.allow_negative_stock
    if product.sale_type == SALE_TYPE_WEIGHT:
        return current_app.config.get("ALLOW_NEGATIVE_STOCK_WEIGHT", False)
    return current_app.config.get("ALLOW_NEGATIVE_STOCK_UNIT", False)


def create_sale(
    operator_id: int,
    cash_session_id: int,
    items: list[dict],
    tender: list[dict],
    *,
    customer_id: int | None = None,
    training_mode: bool = False,
    idempotency_key: str | None = None,
) -> Sale:
    """
    Create and settle a sale in one transaction.

    Args:
        operator_id: User ringing up the sale
        cash_session_id: Open session the sale belongs to
        items: [{"product_id": 1, "quantity": 2}, ...] (weight quantities scaled)
        tender: [{"method": "cash", "amount_cents": 1000, "received_cents": 2000}, ...]
        customer_id: Required when any tender is "credit"
        training_mode: Recorded for practice; no stock, cash or credit effects
        idempotency_key: Repeating a call with the same key returns the first sale

    Raises:
        ValidationError: malformed items/tender, tender sum != total
        NotFoundError: session, operator, product or customer missing
        StateError: session not open, operator inactive, product inactive
        ConflictError: insufficient stock, customer blocked, credit limit exceeded
    """
    lines = _normalize_items(items)
    tenders = _normalize_tender(tender)
    idempotency_key = optional_text(idempotency_key, "idempotency_key", max_length=64)
    training_mode = bool(training_mode)

    credit_cents = sum(t["amount_cents"] for t in tenders if t["method"] == TENDER_CREDIT)
    cash_cents = sum(t["amount_cents"] for t in tenders if t["method"] == TENDER_CASH)
    change_cents = sum(t["change_cents"] for t in tenders)

    if credit_cents and customer_id is None:
        raise ValidationError("customer_id is required for credit tender", field="customer_id")

    def _op():
        if idempotency_key:
            existing = db.session.query(Sale).filter_by(idempotency_key=idempotency_key).first()
            if existing:
                if existing.operator_user_id != operator_id:
                    raise ConflictError("idempotency_key already used by another operator", field="idempotency_key")
                return existing

        session = lock_for_update(db.session.query(CashSession).filter_by(id=cash_session_id)).first()
        if not session:
            raise NotFoundError(f"Cash session {cash_session_id} not found")
        if session.status != SESSION_OPEN:
            raise StateError("Cash session is not open")
        # Every sale writes the session row, so a close committed after the
        # check above fails this flush on version_id whatever the tender.
        session.last_movement_at = utcnow()

        operator = db.session.get(User, operator_id)
        if not operator:
            raise NotFoundError(f"User {operator_id} not found")
        if not operator.active:
            raise StateError("Inactive users cannot register sales")

        customer = None
        if customer_id is not None:
            customer = credit_service.get_customer(customer_id, lock=bool(credit_cents))

        # Lock products in id order so concurrent sales never deadlock
        products: dict[int, Product] = {}
        for product_id in sorted({line["product_id"] for line in lines}):
            product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
            if not product:
                raise NotFoundError(f"Product {product_id} not found")
            if not product.is_active:
                raise StateError(f"Product {product_id} is inactive")
            products[product_id] = product

        rounding = current_app.config.get("MONEY_ROUNDING", "half_even")
        priced = []
        for line in lines:
            product = products[line["product_id"]]
            quantity = line["quantity"]
            total = line_total(product.price_cents, quantity, quantity_scale(product), rounding)

            if not training_mode:
                new_stock = product.stock - quantity
                if new_stock < 0 and not allows_negative_stock(product):
                    raise ConflictError(
                        f"insufficient stock for product {product.id}",
                        field="items",
                        details={
                            "product_id": product.id,
                            "stock": product.stock,
                            "requested_quantity": quantity,
                        },
                    )
                product.stock = new_stock

            priced.append((product, quantity, total))

        total_amount = sum_cents(total for _, _, total in priced)
        tender_total = sum_cents(t["amount_cents"] for t in tenders)
        if tender_total != total_amount:
            raise ValidationError(
                f"Tender total ({tender_total}) must equal sale total ({total_amount})",
                field="tender",
                details={"tender_total_cents": tender_total, "total_amount_cents": total_amount},
            )

        settles_credit = bool(credit_cents) and not training_mode
        if settles_credit:
            credit_service.ensure_headroom_locked(customer, credit_cents)

        sale = Sale(
            cash_session_id=session.id,
            operator_user_id=operator.id,
            customer_id=customer.id if customer else None,
            sale_date=utcnow(),
            total_amount_cents=total_amount,
            change_amount_cents=change_cents,
            credit_amount_cents=credit_cents if settles_credit else 0,
            credit_paid_cents=0,
            credit_status=CREDIT_OPEN if settles_credit else CREDIT_NONE,
            training_mode=training_mode,
            idempotency_key=idempotency_key,
        )
        db.session.add(sale)
        db.session.flush()

        for product, quantity, total in priced:
            db.session.add(SaleItem(
                sale_id=sale.id,
                product_id=product.id,
                quantity=quantity,
                unit_price_cents=product.price_cents,
                total_price_cents=total,
            ))

        for t in tenders:
            db.session.add(SaleTender(
                sale_id=sale.id,
                method=t["method"],
                amount_cents=t["amount_cents"],
                received_cents=t["received_cents"],
                change_cents=t["change_cents"],
            ))

        if cash_cents and not training_mode:
            append_movement_locked(
                session,
                MOVEMENT_SALE_CASH_IN,
                cash_cents,
                reason=f"Sale {sale.id}",
                user_id=operator.id,
                sale_id=sale.id,
            )

        if settles_credit:
            credit_service.touch_customer_locked(customer)

        db.session.flush()
        audit(operator.id, "sale.training" if training_mode else "sale.create", "sales", sale.id)

        db.session.commit()
        return sale

    return run_with_retry(
        _op,
        unique_fields={
            "uq_sales_idempotency_key": "idempotency_key",
            "sales.idempotency_key": "idempotency_key",
        },
    )


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise NotFoundError(f"Sale {sale_id} not found")
    return sale


def get_sale_with_items(sale_id: int) -> dict:
    """Sale with its items and tenders. Read-only."""
    sale = get_sale(sale_id)
    return {
        **sale.to_dict(),
        "items": [item.to_dict() for item in sale.items],
        "tenders": [t.to_dict() for t in sale.tenders],
    }


def list_recent_sales(limit: int = 10, include_training: bool = False) -> list[Sale]:
    """Latest sales, newest first. Training sales are hidden unless asked for."""
    query = db.session.query(Sale)
    if not include_training:
        query = query.filter(Sale.training_mode.is_(False))
    return query.order_by(Sale.sale_date.desc(), Sale.id.desc()).limit(limit).all()


def list_sales(page: int = 1, per_page: int | None = None, include_training: bool = False) -> dict:
    """
    Paginated sales history, newest first.

    Args:
        page: 1-based page number
        per_page: Sales per page (default 20, max 100)
        include_training: Also list training sales

    Returns:
        {"sales": [...], "total_count", "page", "per_page", "pages"}
    """
    page = max(1, page or 1)
    per_page = min(per_page or 20, 100)
    if per_page < 1:
        raise ValidationError("per_page must be greater than zero", field="per_page")

    query = db.session.query(Sale)
    if not include_training:
        query = query.filter(Sale.training_mode.is_(False))

    total = query.count()
    sales = (
        query.order_by(Sale.sale_date.desc(), Sale.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )

    return {
        "sales": sales,
        "total_count": total,
        "page": page,
        "per_page": per_page,
        "pages": (total + per_page - 1) // per_page if total > 0 else 1,
    }
