"""
Identity tests: bcrypt credentials, login and user upsert.
"""

import pytest

from pdv.extensions import db
from pdv.models import AuditLogEntry, User
from pdv.services import auth_service
from pdv.validation import ConflictError, NotFoundError, ValidationError


class TestUpsertUser:
    def test_create_returns_profile_without_hash(self, db_session):
        profile = auth_service.upsert_user(username="maria", role="operator", password="secret1")

        assert profile == {"id": profile["id"], "username": "maria", "role": "operator", "active": True}
        user = db.session.get(User, profile["id"])
        assert user.password_hash.startswith("$2")
        assert user.password_hash != "secret1"
        assert auth_service.verify_password("secret1", user.password_hash)

    def test_password_required_on_create(self, db_session):
        with pytest.raises(ValidationError) as exc:
            auth_service.upsert_user(username="maria", role="operator")
        assert exc.value.field == "password"

    def test_short_password(self, db_session):
        with pytest.raises(ValidationError) as exc:
            auth_service.upsert_user(username="maria", role="operator", password="12345")
        assert exc.value.message == "Password must be at least 6 characters long"
        assert db.session.query(User).count() == 0

    def test_invalid_role(self, db_session):
        with pytest.raises(ValidationError):
            auth_service.upsert_user(username="maria", role="admin", password="secret1")

    def test_duplicate_username_mutates_nothing(self, make_user):
        make_user(username="maria")
        other = make_user(username="jose")

        with pytest.raises(ConflictError) as exc:
            auth_service.upsert_user(username="maria", role="operator", password="secret1")
        assert exc.value.message == "username 'maria' already in use"
        assert exc.value.field == "username"

        with pytest.raises(ConflictError):
            auth_service.upsert_user(user_id=other.id, username="maria", role="manager")

        assert db.session.query(User).count() == 2
        reloaded = db.session.get(User, other.id)
        assert reloaded.username == "jose"
        assert reloaded.role == "operator"

    def test_update_keeps_hash_without_password(self, make_user):
        user = make_user(username="maria")
        old_hash = user.password_hash

        profile = auth_service.upsert_user(user_id=user.id, username="maria", role="manager", active=False)

        assert profile["role"] == "manager"
        assert profile["active"] is False
        assert db.session.get(User, user.id).password_hash == old_hash

    def test_update_changes_password(self, make_user):
        user = make_user(username="maria")

        auth_service.upsert_user(user_id=user.id, username="maria", role="operator", password="novasenha")

        assert auth_service.login("maria", "novasenha") is not None
        assert auth_service.login("maria", "secret1") is None

    def test_unknown_id(self, db_session):
        with pytest.raises(NotFoundError):
            auth_service.upsert_user(user_id=999999, username="x", role="operator")

    def test_audit_actor(self, make_user):
        manager = make_user(username="gerente", role="manager")

        profile = auth_service.upsert_user(
            username="maria", role="operator", password="secret1", actor_user_id=manager.id,
        )

        entry = db.session.query(AuditLogEntry).filter_by(action="user.create").one()
        assert entry.user_id == manager.id
        assert entry.record_id == profile["id"]


class TestLogin:
    def test_success_records_login(self, make_user):
        user = make_user(username="maria")

        profile = auth_service.login("maria", "secret1")

        assert profile == {"id": user.id, "username": "maria", "role": "operator", "active": True}
        assert db.session.get(User, user.id).last_login_at is not None
        entry = db.session.query(AuditLogEntry).filter_by(action="login").one()
        assert entry.user_id == user.id
        assert entry.table_name == "users"

    @pytest.mark.parametrize("username,password", [
        ("maria", "errada"),
        ("ninguem", "secret1"),
        ("maria", ""),
        (None, "secret1"),
    ])
    def test_failures_return_none(self, make_user, username, password):
        make_user(username="maria")
        assert auth_service.login(username, password) is None
        assert db.session.query(AuditLogEntry).count() == 0

    def test_inactive_user_cannot_login(self, make_user):
        make_user(username="maria", active=False)
        assert auth_service.login("maria", "secret1") is None
