"""
Cash Session Service

WHY: Operator accountability for the till. Every real in the drawer is
either the opening float or an immutable movement, so the close can
compare the counted cash against a computed expectation.

DESIGN PRINCIPLES:
- One open session per operator at a time
- Sessions are immutable once closed (open -> closed is the only transition)
- Movements are append-only and only accepted while the session is open
- expected = initial + supply - withdrawal + sale-cash-in, in integer cents
"""

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import CashSession, CashMovement, Sale, User
from ..models.cash import (
    SESSION_OPEN,
    SESSION_CLOSED,
    MOVEMENT_SUPPLY,
    MOVEMENT_WITHDRAWAL,
    MOVEMENT_SALE_CASH_IN,
)
from ..validation import (
    ConflictError,
    NotFoundError,
    StateError,
    ValidationError,
    optional_text,
    require_amount_cents,
)
from pdv.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .audit_service import record as audit


MANUAL_MOVEMENT_TYPES = {MOVEMENT_SUPPLY, MOVEMENT_WITHDRAWAL}


# =============================================================================
# SESSION LIFECYCLE
# =============================================================================

def open_session(
    user_id: int,
    initial_amount_cents: int,
    observations: str | None = None,
) -> CashSession:
    """
    Open a new cash session for an operator.

    Raises:
        ValidationError: initial amount negative or not an integer
        NotFoundError: user does not exist
        StateError: user is deactivated
        ConflictError: user already has an open session
    """
    initial = require_amount_cents(initial_amount_cents, "initial_amount_cents", allow_zero=True)
    observations = optional_text(observations, "observations", max_length=2000)

    def _op():
        user = db.session.get(User, user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")
        if not user.active:
            raise StateError("Inactive users cannot open a cash session")

        existing = lock_for_update(
            db.session.query(CashSession).filter_by(opened_by_user_id=user_id, status=SESSION_OPEN)
        ).first()
        if existing:
            raise ConflictError(f"User already has an open cash session (session {existing.id})")

        session = CashSession(
            opened_by_user_id=user_id,
            status=SESSION_OPEN,
            initial_amount_cents=initial,
            open_time=utcnow(),
            observations=observations,
        )
        db.session.add(session)
        db.session.flush()

        audit(user_id, "cash_session.open", "cash_sessions", session.id)

        db.session.commit()
        return session

    return run_with_retry(
        _op,
        unique_fields={
            "uq_cash_sessions_one_open_per_user": ("user_id", "User already has an open cash session"),
            "cash_sessions.opened_by_user_id": ("user_id", "User already has an open cash session"),
        },
    )


def close_session(
    session_id: int,
    counted_final_cents: int,
    user_id: int | None = None,
    observations: str | None = None,
) -> CashSession:
    """
    Close a session and freeze final/expected/difference.

    The close is terminal: once status is closed no movement or sale is
    accepted on the session.
    """
    counted = require_amount_cents(counted_final_cents, "counted_final_cents", allow_zero=True)
    observations = optional_text(observations, "observations", max_length=2000)

    def _op():
        session = lock_for_update(db.session.query(CashSession).filter_by(id=session_id)).first()
        if not session:
            raise NotFoundError(f"Cash session {session_id} not found")
        if session.status != SESSION_OPEN:
            raise StateError("Cash session already closed")

        expected = compute_expected_amount(session)

        session.status = SESSION_CLOSED
        session.close_time = utcnow()
        session.closed_by_user_id = user_id
        session.final_amount_cents = counted
        session.expected_amount_cents = expected
        session.difference_cents = counted - expected
        if observations:
            session.observations = observations

        db.session.flush()
        audit(user_id, "cash_session.close", "cash_sessions", session.id)

        db.session.commit()
        return session

    return run_with_retry(_op)


# =============================================================================
# CASH MOVEMENTS
# =============================================================================

def record_movement(
    session_id: int,
    movement_type: str,
    amount_cents: int,
    reason: str | None = None,
    user_id: int | None = None,
) -> CashMovement:
    """
    Record a manual supply (cash in) or withdrawal (cash out).

    sale-cash-in movements are written by the sales engine together with
    the sale they belong to.
    """
    if movement_type == MOVEMENT_SALE_CASH_IN:
        raise ValidationError("sale-cash-in movements are created by sales", field="type")
    if movement_type not in MANUAL_MOVEMENT_TYPES:
        raise ValidationError("type must be one of: supply, withdrawal", field="type")
    amount = require_amount_cents(amount_cents, "amount_cents")
    reason = optional_text(reason, "reason")

    def _op():
        session = lock_for_update(db.session.query(CashSession).filter_by(id=session_id)).first()
        if not session:
            raise NotFoundError(f"Cash session {session_id} not found")
        if session.status != SESSION_OPEN:
            raise StateError("Cash session is closed")

        movement = append_movement_locked(
            session,
            movement_type,
            amount,
            reason=reason,
            user_id=user_id,
        )

        audit(user_id, f"cash_movement.{movement_type}", "cash_movements", movement.id)

        db.session.commit()
        return movement

    return run_with_retry(_op)


def append_movement_locked(
    session: CashSession,
    movement_type: str,
    amount_cents: int,
    *,
    reason: str | None = None,
    user_id: int | None = None,
    sale_id: int | None = None,
) -> CashMovement:
    """
    Append a movement to an already locked, open session. Does not commit.

    Bumps the session's last_movement_at so a concurrent close (or another
    writer) fails its version check instead of missing this movement.
    """
    if session.status != SESSION_OPEN:
        raise StateError("Cash session is closed")

    now = utcnow()
    movement = CashMovement(
        cash_session_id=session.id,
        type=movement_type,
        amount_cents=amount_cents,
        reason=reason,
        sale_id=sale_id,
        created_by_user_id=user_id,
        created_at=now,
    )
    db.session.add(movement)
    session.last_movement_at = now
    db.session.flush()
    return movement


# =============================================================================
# READS
# =============================================================================

def movement_totals(session_id: int) -> dict[str, int]:
    rows = db.session.query(
        CashMovement.type,
        func.coalesce(func.sum(CashMovement.amount_cents), 0),
    ).filter(
        CashMovement.cash_session_id == session_id,
    ).group_by(CashMovement.type).all()

    totals = {MOVEMENT_SUPPLY: 0, MOVEMENT_WITHDRAWAL: 0, MOVEMENT_SALE_CASH_IN: 0}
    for movement_type, total in rows:
        totals[movement_type] = int(total or 0)
    return totals


def compute_expected_amount(session: CashSession) -> int:
    """initial + supply - withdrawal + sale-cash-in over the session's movements."""
    totals = movement_totals(session.id)
    return (
        session.initial_amount_cents
        + totals[MOVEMENT_SUPPLY]
        - totals[MOVEMENT_WITHDRAWAL]
        + totals[MOVEMENT_SALE_CASH_IN]
    )


def get_session(session_id: int) -> CashSession:
    session = db.session.get(CashSession, session_id)
    if not session:
        raise NotFoundError(f"Cash session {session_id} not found")
    return session


def get_open_session_for_user(user_id: int) -> CashSession | None:
    return db.session.query(CashSession).filter_by(
        opened_by_user_id=user_id,
        status=SESSION_OPEN,
    ).first()


def list_sessions(
    *,
    status: str | None = None,
    user_id: int | None = None,
    limit: int = 50,
) -> list[CashSession]:
    """Newest first."""
    query = db.session.query(CashSession)
    if status:
        query = query.filter(CashSession.status == status)
    if user_id is not None:
        query = query.filter(CashSession.opened_by_user_id == user_id)
    return query.order_by(CashSession.open_time.desc(), CashSession.id.desc()).limit(limit).all()


def get_session_movements(session_id: int) -> list[CashMovement]:
    return db.session.query(CashMovement).filter_by(
        cash_session_id=session_id
    ).order_by(CashMovement.created_at, CashMovement.id).all()


def get_session_summary(session_id: int) -> dict:
    """
    Session details for reconciliation.

    Returns:
        - Session details
        - Movements and their totals per type
        - Non-training sales with items
        - Expected amount (frozen once closed, running while open)
    """
    session = get_session(session_id)

    movements = get_session_movements(session_id)
    sales = db.session.query(Sale).filter_by(
        cash_session_id=session_id,
        training_mode=False,
    ).order_by(Sale.sale_date, Sale.id).all()

    if session.status == SESSION_CLOSED:
        expected = session.expected_amount_cents
    else:
        expected = compute_expected_amount(session)

    return {
        "session": session.to_dict(),
        "movements": [m.to_dict() for m in movements],
        "movement_totals": movement_totals(session_id),
        "sales": [
            {**sale.to_dict(), "items": [item.to_dict() for item in sale.items]}
            for sale in sales
        ],
        "sales_count": len(sales),
        "sales_total_cents": sum(sale.total_amount_cents for sale in sales),
        "expected_amount_cents": expected,
        "is_closed": session.status == SESSION_CLOSED,
    }
