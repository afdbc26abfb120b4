from __future__ import annotations

from ..extensions import db
from pdv.time_utils import to_utc_z


class AuditLogEntry(db.Model):
    """
    Append-only log of mutating operations.

    IMMUTABLE: rows are never updated or deleted. user_id is NULL for
    actions performed by the system.
    """
    __tablename__ = "audit_log"
    __table_args__ = (
        db.Index("ix_audit_log_table_record", "table_name", "record_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    action = db.Column(db.String(64), nullable=False, index=True)  # e.g. login, cash_session.open, sale.create
    table_name = db.Column(db.String(64), nullable=False)
    record_id = db.Column(db.Integer, nullable=True)

    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    user = db.relationship("User", backref=db.backref("audit_entries", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "username": self.user.username if self.user else None,
            "action": self.action,
            "table_name": self.table_name,
            "record_id": self.record_id,
            "timestamp": to_utc_z(self.timestamp),
        }
