from __future__ import annotations

from ..extensions import db
from pdv.time_utils import to_utc_z


ROLE_OPERATOR = "operator"
ROLE_MANAGER = "manager"
VALID_ROLES = {ROLE_OPERATOR, ROLE_MANAGER}


class User(db.Model):
    """
    Operator accounts for authentication and attribution.

    Users are deactivated, never deleted: sales, cash sessions and audit
    entries keep pointing at them.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("username", name="uq_users_username"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(64), nullable=False, index=True)

    # Bcrypt hashed password (never serialized)
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(16), nullable=False, default=ROLE_OPERATOR)  # operator, manager
    active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "role": self.role,
            "active": self.active,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }

    def to_profile(self) -> dict:
        """Shape returned by login/upsert: no hash, no timestamps."""
        return {
            "id": self.id,
            "username": self.username,
            "role": self.role,
            "active": self.active,
        }
