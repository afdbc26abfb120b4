from __future__ import annotations

from ..extensions import db
from pdv.time_utils import to_utc_z


SESSION_OPEN = "open"
SESSION_CLOSED = "closed"

MOVEMENT_SUPPLY = "supply"
MOVEMENT_WITHDRAWAL = "withdrawal"
MOVEMENT_SALE_CASH_IN = "sale-cash-in"
MOVEMENT_TYPES = {MOVEMENT_SUPPLY, MOVEMENT_WITHDRAWAL, MOVEMENT_SALE_CASH_IN}


class CashSession(db.Model):
    """
    Till session of one operator.

    LIFECYCLE:
    - open: accepts cash movements and sales
    - closed: terminal; final, expected and difference are frozen

    At most one open session per user. The service checks it first; the
    partial unique index catches the race between two concurrent opens.
    """
    __tablename__ = "cash_sessions"
    __table_args__ = (
        db.Index(
            "uq_cash_sessions_one_open_per_user",
            "opened_by_user_id",
            unique=True,
            sqlite_where=db.text("status = 'open'"),
            postgresql_where=db.text("status = 'open'"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    opened_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    closed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=SESSION_OPEN, index=True)

    open_time = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    close_time = db.Column(db.DateTime(timezone=True), nullable=True)

    # Cash tracking (all amounts in cents)
    initial_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    final_amount_cents = db.Column(db.Integer, nullable=True)  # counted at close
    expected_amount_cents = db.Column(db.Integer, nullable=True)  # computed at close
    difference_cents = db.Column(db.Integer, nullable=True)  # final - expected

    observations = db.Column(db.Text, nullable=True)

    # Touched by every movement so concurrent writers on the session collide on version_id
    last_movement_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    opened_by = db.relationship("User", foreign_keys=[opened_by_user_id], backref=db.backref("cash_sessions", lazy=True))
    closed_by = db.relationship("User", foreign_keys=[closed_by_user_id])
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_open(self) -> bool:
        return self.status == SESSION_OPEN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "opened_by_user_id": self.opened_by_user_id,
            "opened_by_username": self.opened_by.username if self.opened_by else None,
            "closed_by_user_id": self.closed_by_user_id,
            "status": self.status,
            "open_time": to_utc_z(self.open_time),
            "close_time": to_utc_z(self.close_time) if self.close_time else None,
            "initial_amount_cents": self.initial_amount_cents,
            "final_amount_cents": self.final_amount_cents,
            "expected_amount_cents": self.expected_amount_cents,
            "difference_cents": self.difference_cents,
            "observations": self.observations,
            "version_id": self.version_id,
        }


class CashMovement(db.Model):
    """
    Cash entering or leaving the drawer during a session.

    TYPES:
    - supply: cash added to the drawer (change fund top-up)
    - withdrawal: cash removed (sangria)
    - sale-cash-in: cash portion of a sale, written by the sales engine

    IMMUTABLE: never updated or deleted.
    """
    __tablename__ = "cash_movements"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_cash_movements_amount_positive"),
        db.Index("ix_cash_movements_session_created", "cash_session_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cash_session_id = db.Column(db.Integer, db.ForeignKey("cash_sessions.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    cash_session = db.relationship("CashSession", backref=db.backref("movements", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cash_session_id": self.cash_session_id,
            "type": self.type,
            "amount_cents": self.amount_cents,
            "reason": self.reason,
            "sale_id": self.sale_id,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
