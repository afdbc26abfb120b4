# Overview: Flask API routes for user maintenance.

from flask import Blueprint, request, jsonify, current_app

from ..services import auth_service
from ..validation import PdvError, coerce_int, require_json_object


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.post("")
def upsert_user_route():
    """
    Create or update a user.

    Request body:
    {
        "id": 3,                  (omit to create)
        "username": "maria",
        "role": "operator",       (operator | manager)
        "active": true,
        "password": "secret1",    (required on create)
        "actor_user_id": 1
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        user_id = data.get("id")
        actor_user_id = data.get("actor_user_id")

        profile = auth_service.upsert_user(
            user_id=None if user_id is None else coerce_int(user_id, "id"),
            username=data.get("username"),
            role=data.get("role"),
            active=data.get("active", True),
            password=data.get("password"),
            actor_user_id=None if actor_user_id is None else coerce_int(actor_user_id, "actor_user_id"),
        )

        status = 201 if user_id is None else 200
        return jsonify({"user": profile}), status

    except PdvError:
        raise
    except Exception:
        current_app.logger.exception("Failed to save user")
        return jsonify({"error": {"kind": "internal", "message": "Internal server error"}}), 500


@users_bp.get("")
def list_users_route():
    include_inactive = request.args.get("include_inactive", "true").lower() != "false"
    users = auth_service.list_users(include_inactive=include_inactive)
    return jsonify({"users": [u.to_dict() for u in users]}), 200
