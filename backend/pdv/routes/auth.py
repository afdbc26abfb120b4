# Overview: Flask API routes for login; parses input and returns JSON responses.

# backend/pdv/routes/auth.py
"""
Authentication API routes

SECURITY:
- Credentials are checked against bcrypt hashes in auth_service
- Unknown user, wrong password and inactive account all answer the same 401
- Successful logins are recorded in the audit log
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import auth_service
from ..validation import PdvError, require_json_object


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate a user.

    Request body:
    {
        "username": "maria",
        "password": "secret1"
    }

    Returns {"user": {id, username, role, active}} on success.
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        username = data.get("username")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"error": {"kind": "validation", "message": "username and password required"}}), 400

        profile = auth_service.login(username, password)
        if profile is None:
            return jsonify({"error": {"kind": "unauthorized", "message": "Invalid credentials"}}), 401

        return jsonify({"user": profile, "message": "Login successful"}), 200

    except PdvError:
        raise
    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": {"kind": "internal", "message": "Internal server error"}}), 500
