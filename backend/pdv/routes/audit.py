# Overview: Flask API routes for reading the audit log.

from flask import Blueprint, request, jsonify

from ..services import audit_service
from ..validation import clamp_limit


audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit-log")


@audit_bp.get("")
def list_audit_route():
    """
    Latest audit entries, newest first.

    Query: limit (default 100), action (e.g. "login"), user_id, table_name.
    """
    entries = audit_service.list_entries(
        limit=clamp_limit(request.args.get("limit"), 100),
        action=request.args.get("action") or None,
        user_id=request.args.get("user_id", type=int),
        table_name=request.args.get("table_name") or None,
    )
    return jsonify({"entries": [e.to_dict() for e in entries]}), 200
