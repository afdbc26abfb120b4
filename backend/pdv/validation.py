from __future__ import annotations

from typing import Any


# Maximum amount: R$9.999.999,99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_AMOUNT_CENTS = 999_999_999


class PdvError(Exception):
    """
    Base class for domain errors.

    Every error carries a stable `kind` (used by the HTTP layer to pick a
    status code) and a human-readable message. `field` names the offending
    input or unique key when there is one.
    """
    kind = "error"

    def __init__(self, message: str, *, field: str | None = None, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.field = field
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"kind": self.kind, "message": self.message}
        if self.field:
            body["field"] = self.field
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(PdvError, ValueError):
    """400-level input problem. Never retried."""
    kind = "validation"


class ConflictError(PdvError, ValueError):
    """409-level business rule conflict (e.g., insufficient stock, duplicate username)."""
    kind = "conflict"


class NotFoundError(PdvError, LookupError):
    """Referenced entity does not exist."""
    kind = "not_found"


class StateError(PdvError):
    """Operation invalid for the current lifecycle state (e.g., closed cash session)."""
    kind = "state"


class StorageError(PdvError):
    """Underlying persistence failure. Callers may retry."""
    kind = "storage"


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion for amounts and quantities.

    Rejects bools, floats, scientific notation and decimal strings so that
    money never passes through floating point.
    """
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer", field=field)
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)", field=field)
        if "." in stripped or "," in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)", field=field)
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", field=field)
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal", field=field)
    raise ValidationError(f"{field} must be an integer", field=field)


def require_positive_int(value: Any, field: str) -> int:
    n = coerce_int(value, field)
    if n <= 0:
        raise ValidationError(f"{field} must be greater than zero", field=field)
    return n


def require_amount_cents(value: Any, field: str, *, allow_zero: bool = False) -> int:
    """Validate a minor-unit amount: integer, within bounds, positive (or >= 0)."""
    n = coerce_int(value, field)
    if allow_zero:
        if n < 0:
            raise ValidationError(f"{field} cannot be negative", field=field)
    elif n <= 0:
        raise ValidationError(f"{field} must be greater than zero", field=field)
    if n > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} exceeds maximum of {MAX_AMOUNT_CENTS} cents", field=field)
    return n


def require_choice(value: Any, field: str, choices) -> str:
    if not isinstance(value, str) or value not in choices:
        allowed = ", ".join(sorted(choices))
        raise ValidationError(f"{field} must be one of: {allowed}", field=field)
    return value


def require_text(value: Any, field: str, *, max_length: int = 255) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", field=field)
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters", field=field)
    return value


def optional_text(value: Any, field: str, *, max_length: int = 255) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", field=field)
    value = value.strip()
    if not value:
        return None
    if len(value) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters", field=field)
    return value


def require_json_object(data: Any) -> dict:
    """Request bodies are JSON objects; anything else is a 400."""
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def clamp_limit(value: Any, default: int, maximum: int = 500) -> int:
    """Listing limit from a query string: default when absent, 1..maximum otherwise."""
    if value is None or value == "":
        return default
    n = coerce_int(value, "limit")
    return max(1, min(n, maximum))
