from datetime import datetime, timedelta

from pdv.extensions import db
from pdv.models import Sale
from pdv.services import reporting_service, sales_service
from pdv.time_utils import local_day_bounds, utcnow


def _sell(operator, session, product, quantity=1, **kwargs):
    return sales_service.create_sale(
        operator.id,
        session.id,
        [{"product_id": product.id, "quantity": quantity}],
        [{"method": "cash", "amount_cents": product.price_cents * quantity}],
        **kwargs,
    )


class TestLocalDayBounds:
    def test_sao_paulo_day_in_utc(self):
        # 02:00 UTC on the 19th is still the 18th in Sao Paulo (UTC-3)
        start, end = local_day_bounds("America/Sao_Paulo", datetime(2026, 10, 19, 2, 0))
        assert start == datetime(2026, 10, 18, 3, 0)
        assert end == datetime(2026, 10, 19, 3, 0)

    def test_utc(self):
        start, end = local_day_bounds("UTC", datetime(2026, 10, 19, 15, 30))
        assert start == datetime(2026, 10, 19)
        assert end == datetime(2026, 10, 20)


class TestDashboardKpis:
    def test_empty_day(self, db_session):
        assert reporting_service.get_dashboard_kpis() == {
            "total_revenue": 0,
            "total_sales_count": 0,
            "average_ticket": 0,
        }

    def test_today_excludes_training_and_other_days(self, operator, open_session, make_product):
        product = make_product(price_cents=1000, stock=100)
        _sell(operator, open_session, product, 1)
        _sell(operator, open_session, product, 2)
        _sell(operator, open_session, product, 5, training_mode=True)
        old = _sell(operator, open_session, product, 7)

        db.session.get(Sale, old.id).sale_date = utcnow() - timedelta(days=2)
        db.session.commit()

        kpis = reporting_service.get_dashboard_kpis()

        assert kpis["total_revenue"] == 3000
        assert kpis["total_sales_count"] == 2
        assert kpis["average_ticket"] == 1500
