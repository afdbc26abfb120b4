# Overview: Flask API routes for the dashboard; today's KPIs and latest sales.

from flask import Blueprint, request, jsonify

from ..services import reporting_service, sales_service
from ..validation import clamp_limit


dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("/kpis")
def kpis_route():
    """
    Today's figures for the store's local day.

    Returns {total_revenue, total_sales_count, average_ticket} in cents.
    Training sales are not counted.
    """
    return jsonify(reporting_service.get_dashboard_kpis()), 200


@dashboard_bp.get("/recent-sales")
def recent_sales_route():
    limit = clamp_limit(request.args.get("limit"), 10, maximum=100)
    sales = sales_service.list_recent_sales(limit=limit)
    return jsonify({"sales": [s.to_dict() for s in sales]}), 200
