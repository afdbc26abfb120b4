# Overview: Read-only KPI aggregation for the dashboard.

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Sale
from ..money import ratio
from pdv.time_utils import local_day_bounds


def get_dashboard_kpis(now: datetime | None = None) -> dict:
    """
    Today's revenue, number of sales and average ticket.

    "Today" is the local business day in STORE_TIMEZONE. Training sales
    are excluded. Reads without locking: a recent committed snapshot is
    good enough here.
    """
    tz_name = current_app.config.get("STORE_TIMEZONE", "UTC")
    start, end = local_day_bounds(tz_name, now)

    row = db.session.query(
        func.coalesce(func.sum(Sale.total_amount_cents), 0).label("revenue"),
        func.count(Sale.id).label("count"),
    ).filter(
        Sale.training_mode.is_(False),
        Sale.sale_date >= start,
        Sale.sale_date < end,
    ).one()

    revenue = int(row.revenue or 0)
    count = int(row.count or 0)

    return {
        "total_revenue": revenue,
        "total_sales_count": count,
        "average_ticket": ratio(revenue, count, current_app.config.get("MONEY_ROUNDING", "half_even")),
    }
