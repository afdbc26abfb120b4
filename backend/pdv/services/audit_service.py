# Overview: Append-only audit log written inside the caller's transaction.

from __future__ import annotations

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import AuditLogEntry
from ..validation import StorageError
from pdv.time_utils import utcnow
"""
Audit invariants:

- Append-only: no updates or deletes of existing entries.
- Entries are flushed, never committed, here: they commit or roll back
  together with the operation they describe.
- Every mutating service calls record() as its last transactional step.
"""


def record(
    user_id: int | None,
    action: str,
    table_name: str,
    record_id: int | None = None,
) -> AuditLogEntry:
    entry = AuditLogEntry(
        user_id=user_id,
        action=action,
        table_name=table_name,
        record_id=record_id,
        timestamp=utcnow(),
    )
    db.session.add(entry)
    try:
        db.session.flush()
    except (OperationalError, StaleDataError):
        # Contention on rows flushed alongside the entry; let run_with_retry handle it
        raise
    except SQLAlchemyError as exc:
        raise StorageError("Failed to write audit log") from exc
    return entry


def list_entries(
    *,
    limit: int = 100,
    action: str | None = None,
    user_id: int | None = None,
    table_name: str | None = None,
) -> list[AuditLogEntry]:
    """Newest first."""
    query = db.session.query(AuditLogEntry)
    if action:
        query = query.filter(AuditLogEntry.action == action)
    if user_id is not None:
        query = query.filter(AuditLogEntry.user_id == user_id)
    if table_name:
        query = query.filter(AuditLogEntry.table_name == table_name)
    return query.order_by(AuditLogEntry.timestamp.desc(), AuditLogEntry.id.desc()).limit(limit).all()
