# Overview: Flask API routes for cash session operations; parses input and returns JSON responses.

# backend/pdv/routes/cash_sessions.py
"""
Cash Session API Routes

WHY: Every sale lands in an operator's open till. The session is opened
with a float, receives supplies/withdrawals and sale cash, and is closed
once against a counted amount.

DESIGN:
- Session lifecycle: open -> closed (terminal)
- One open session per operator
- Manual movements are supply and withdrawal only; sale cash is written
  by the sales endpoint
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import cash_session_service
from ..validation import PdvError, clamp_limit, coerce_int, require_json_object


cash_sessions_bp = Blueprint("cash_sessions", __name__, url_prefix="/api/cash-sessions")


def _optional_user_id(data: dict):
    value = data.get("user_id")
    return None if value is None else coerce_int(value, "user_id")


# =============================================================================
# SESSION LIFECYCLE
# =============================================================================

@cash_sessions_bp.post("")
def open_session_route():
    """
    Open a cash session.

    Request body:
    {
        "user_id": 2,
        "initial_amount_cents": 5000,
        "observations": "Morning shift"   (optional)
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))

        session = cash_session_service.open_session(
            user_id=coerce_int(data.get("user_id"), "user_id"),
            initial_amount_cents=data.get("initial_amount_cents"),
            observations=data.get("observations"),
        )

        return jsonify({"session": session.to_dict()}), 201

    except PdvError:
        raise
    except Exception:
        current_app.logger.exception("Failed to open cash session")
        return jsonify({"error": {"kind": "internal", "message": "Internal server error"}}), 500


@cash_sessions_bp.post("/<int:session_id>/movements")
def record_movement_route(session_id: int):
    """
    Record a supply or withdrawal.

    Request body:
    {
        "type": "withdrawal",     (supply | withdrawal)
        "amount_cents": 2000,
        "reason": "Bank deposit",
        "user_id": 2
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))

        movement = cash_session_service.record_movement(
            session_id=session_id,
            movement_type=data.get("type"),
            amount_cents=data.get("amount_cents"),
            reason=data.get("reason"),
            user_id=_optional_user_id(data),
        )

        return jsonify({"movement": movement.to_dict()}), 201

    except PdvError:
        raise
    except Exception:
        current_app.logger.exception("Failed to record cash movement")
        return jsonify({"error": {"kind": "internal", "message": "Internal server error"}}), 500


@cash_sessions_bp.post("/<int:session_id>/close")
def close_session_route(session_id: int):
    """
    Close a session against the counted amount.

    Request body:
    {
        "counted_final_cents": 10000,
        "user_id": 2,
        "observations": "Short R$1,00"   (optional)
    }

    Response includes expected_amount_cents and difference_cents.
    """
    try:
        data = require_json_object(request.get_json(silent=True))

        session = cash_session_service.close_session(
            session_id=session_id,
            counted_final_cents=data.get("counted_final_cents"),
            user_id=_optional_user_id(data),
            observations=data.get("observations"),
        )

        return jsonify({"session": session.to_dict()}), 200

    except PdvError:
        raise
    except Exception:
        current_app.logger.exception("Failed to close cash session")
        return jsonify({"error": {"kind": "internal", "message": "Internal server error"}}), 500


# =============================================================================
# READS
# =============================================================================

@cash_sessions_bp.get("")
def list_sessions_route():
    status = request.args.get("status")
    user_id = request.args.get("user_id", type=int)
    limit = clamp_limit(request.args.get("limit"), 50)

    sessions = cash_session_service.list_sessions(status=status, user_id=user_id, limit=limit)
    return jsonify({"sessions": [s.to_dict() for s in sessions]}), 200


@cash_sessions_bp.get("/open")
def open_session_for_user_route():
    user_id = coerce_int(request.args.get("user_id"), "user_id")
    session = cash_session_service.get_open_session_for_user(user_id)
    return jsonify({"session": session.to_dict() if session else None}), 200


@cash_sessions_bp.get("/<int:session_id>")
def session_summary_route(session_id: int):
    """Session with its movements, sales and expected amount."""
    return jsonify(cash_session_service.get_session_summary(session_id)), 200
