# Overview: Transaction and contention helpers shared by every mutating service.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import PdvError, ConflictError, StorageError


_CONTENTION_MARKERS = (
    "locked",
    "deadlock",
    "could not obtain lock",
    "could not serialize",
    "lock timeout",
)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Hot rows also carry a version_id column, so SQLite still detects
    concurrent writers through StaleDataError.
    """
    return query.with_for_update()


def _is_contention(exc: Exception) -> bool:
    if isinstance(exc, StaleDataError):
        return True
    message = str(getattr(exc, "orig", exc)).lower()
    return any(marker in message for marker in _CONTENTION_MARKERS)


def unique_violation_field(
    exc: IntegrityError,
    fields: dict[str, str | tuple[str, str]] | None,
) -> tuple[str, str] | None:
    """
    Map a unique-key IntegrityError onto (field, message).

    `fields` maps constraint names or "table.column" strings (as reported
    by PostgreSQL and SQLite respectively) to a field name, or to a
    (field, message) pair when "<field> already in use" does not read well.
    """
    if not fields:
        return None
    message = str(getattr(exc, "orig", exc))
    for needle, target in fields.items():
        if needle in message:
            if isinstance(target, tuple):
                return target
            return target, f"{target} already in use"
    return None


def run_with_retry(
    func,
    *,
    attempts: int | None = None,
    backoff_base: float | None = None,
    unique_fields: dict[str, str | tuple[str, str]] | None = None,
):
    """
    Execute a transactional unit of work with retry on concurrency failures.

    - OperationalError (locks, deadlocks) and StaleDataError (optimistic
      version conflicts) roll back and retry with exponential backoff.
      Once attempts are exhausted contention surfaces as ConflictError.
    - IntegrityError on a known unique key becomes a ConflictError naming
      the field ("<field> already in use").
    - Any other failure rolls back everything the unit wrote and propagates
      (domain errors unchanged, storage errors as StorageError).
    """
    if attempts is None:
        attempts = current_app.config.get("LOCK_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("LOCK_RETRY_BACKOFF", 0.05)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if not _is_contention(exc):
                raise StorageError("Storage unavailable") from exc
            if attempt >= attempts - 1:
                raise ConflictError("Concurrent update, try again") from exc
            time.sleep(backoff_base * (2 ** attempt))
        except IntegrityError as exc:
            db.session.rollback()
            match = unique_violation_field(exc, unique_fields)
            if match:
                field, message = match
                raise ConflictError(message, field=field) from exc
            raise ConflictError("Integrity constraint violated") from exc
        except PdvError:
            db.session.rollback()
            raise
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StorageError("Storage unavailable") from exc
        except Exception:
            db.session.rollback()
            raise
