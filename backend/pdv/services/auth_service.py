# Overview: Service-layer operations for auth; credential hashing, login and user upsert.

"""
Authentication Service

WHY: Every sale, movement and session is attributed to a user. Credentials
are stored only as salted bcrypt hashes and never leave this module.

SECURITY NOTES:
- Passwords hashed with bcrypt (BCRYPT_ROUNDS, default 10)
- Minimum PASSWORD_MIN_LENGTH characters (default 6)
- Users are deactivated, never deleted
- login() returns a profile without the hash, or None on any mismatch
"""

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User
from ..models.auth import VALID_ROLES
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    require_choice,
    require_text,
)
from pdv.time_utils import utcnow
from .concurrency import run_with_retry
from .audit_service import record as audit


# bcrypt only looks at the first 72 bytes
MAX_PASSWORD_BYTES = 72


def validate_password(password: str) -> None:
    """
    Raises ValidationError if the password does not meet the policy.
    """
    min_length = current_app.config.get("PASSWORD_MIN_LENGTH", 6)
    if not isinstance(password, str) or len(password) < min_length:
        raise ValidationError(f"Password must be at least {min_length} characters long", field="password")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes long", field="password")


def hash_password(password: str) -> str:
    """Validate and hash a password with a fresh salt."""
    validate_password(password)
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 10))
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() compares in constant time. Malformed hashes count as
    a mismatch.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def login(username: str, password: str) -> dict | None:
    """
    Check credentials.

    Returns {id, username, role, active} on success, None on unknown user,
    wrong password or deactivated account. Successful logins are recorded
    in the audit log.
    """
    if not isinstance(username, str) or not isinstance(password, str):
        return None

    def _op():
        user = db.session.query(User).filter_by(username=username.strip()).first()
        if not user or not user.active:
            return None
        if not verify_password(password, user.password_hash):
            return None

        user.last_login_at = utcnow()
        db.session.flush()
        audit(user.id, "login", "users", user.id)

        db.session.commit()
        return user.to_profile()

    return run_with_retry(_op)


def upsert_user(
    *,
    username: str,
    role: str,
    active: bool = True,
    password: str | None = None,
    user_id: int | None = None,
    actor_user_id: int | None = None,
) -> dict:
    """
    Create (user_id=None) or update a user.

    Password is required on create and optional on update; when present
    it must satisfy the policy and is stored only as a bcrypt hash.

    Raises:
        ValidationError: bad username/role/password
        NotFoundError: user_id given but missing
        ConflictError: username already used by another user (nothing is written)
    """
    username = require_text(username, "username", max_length=64)
    role = require_choice(role, "role", VALID_ROLES)
    if not isinstance(active, bool):
        raise ValidationError("active must be a boolean", field="active")

    password_hash = None
    if password:
        password_hash = hash_password(password)
    elif user_id is None:
        raise ValidationError("Password is required for new users", field="password")

    duplicate_message = f"username '{username}' already in use"

    def _op():
        if user_id is not None:
            user = db.session.get(User, user_id)
            if not user:
                raise NotFoundError(f"User {user_id} not found")
        else:
            user = None

        clash = db.session.query(User).filter(User.username == username)
        if user is not None:
            clash = clash.filter(User.id != user.id)
        if clash.first():
            raise ConflictError(duplicate_message, field="username")

        if user is None:
            user = User(username=username, role=role, active=active, password_hash=password_hash)
            db.session.add(user)
            action = "user.create"
        else:
            user.username = username
            user.role = role
            user.active = active
            if password_hash:
                user.password_hash = password_hash
            action = "user.update"

        db.session.flush()
        audit(actor_user_id, action, "users", user.id)

        db.session.commit()
        return user.to_profile()

    return run_with_retry(
        _op,
        unique_fields={
            "uq_users_username": ("username", duplicate_message),
            "users.username": ("username", duplicate_message),
        },
    )


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError(f"User {user_id} not found")
    return user


def list_users(include_inactive: bool = True) -> list[User]:
    query = db.session.query(User)
    if not include_inactive:
        query = query.filter(User.active.is_(True))
    return query.order_by(User.username).all()
