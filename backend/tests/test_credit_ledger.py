"""
Customer credit ledger tests.

The balance is always derived from sales: sum(credit_amount - credit_paid)
over non-training sales. Payments are allocated oldest first and can never
exceed what is owed.
"""

import pytest

from pdv.extensions import db
from pdv.models import AuditLogEntry, CreditPayment, Sale
from pdv.services import credit_service, sales_service
from pdv.validation import NotFoundError, ValidationError


@pytest.fixture
def credit_sale(operator, open_session, make_product):
    product = make_product(price_cents=1000, stock=100)

    def _sell(customer, amount_cents):
        return sales_service.create_sale(
            operator.id,
            open_session.id,
            [{"product_id": product.id, "quantity": amount_cents // 1000}],
            [{"method": "credit", "amount_cents": amount_cents}],
            customer_id=customer.id,
        )
    return _sell


class TestPayments:
    def test_limit_scenario(self, operator, make_customer, credit_sale):
        customer = make_customer(credit_limit_cents=10000)
        credit_sale(customer, 6000)

        credit_service.apply_payment(customer.id, 4000, "PIX", user_id=operator.id)
        assert credit_service.current_balance(customer.id) == 2000

        with pytest.raises(ValidationError) as exc:
            credit_service.apply_payment(customer.id, 2001, "Dinheiro", user_id=operator.id)
        assert "overpayment" in exc.value.message
        assert credit_service.current_balance(customer.id) == 2000
        assert db.session.query(CreditPayment).count() == 1

    def test_oldest_first_allocation(self, make_customer, credit_sale):
        customer = make_customer(credit_limit_cents=50000)
        older = credit_sale(customer, 3000)
        newer = credit_sale(customer, 2000)

        payment = credit_service.apply_payment(customer.id, 4000, "Dinheiro")

        assert [(a.sale_id, a.amount_cents) for a in payment.allocations] == [(older.id, 3000), (newer.id, 1000)]
        assert db.session.get(Sale, older.id).credit_status == "paid"
        newer = db.session.get(Sale, newer.id)
        assert newer.credit_status == "partial"
        assert newer.credit_paid_cents == 1000

    def test_newest_first_allocation(self, app, make_customer, credit_sale):
        customer = make_customer(credit_limit_cents=50000)
        older = credit_sale(customer, 3000)
        newer = credit_sale(customer, 2000)

        app.config["CREDIT_ALLOCATION_ORDER"] = "newest_first"
        try:
            credit_service.apply_payment(customer.id, 2500, "Dinheiro")
        finally:
            app.config["CREDIT_ALLOCATION_ORDER"] = "oldest_first"

        assert db.session.get(Sale, newer.id).credit_status == "paid"
        assert db.session.get(Sale, older.id).credit_paid_cents == 500

    def test_full_settlement_and_audit(self, operator, make_customer, credit_sale):
        customer = make_customer()
        credit_sale(customer, 5000)

        payment = credit_service.apply_payment(customer.id, 5000, "Cartão", user_id=operator.id)

        assert credit_service.current_balance(customer.id) == 0
        entry = db.session.query(AuditLogEntry).filter_by(action="credit.payment").one()
        assert entry.record_id == payment.id
        assert db.session.get(type(customer), customer.id).last_credit_activity_at is not None

    @pytest.mark.parametrize("amount", [0, -100, 10.5, "abc"])
    def test_invalid_amount(self, make_customer, amount):
        customer = make_customer()
        with pytest.raises(ValidationError):
            credit_service.apply_payment(customer.id, amount, "PIX")

    def test_payment_without_debt_is_overpayment(self, make_customer):
        customer = make_customer()
        with pytest.raises(ValidationError):
            credit_service.apply_payment(customer.id, 100, "PIX")

    def test_unknown_customer(self, db_session):
        with pytest.raises(NotFoundError):
            credit_service.apply_payment(999999, 100, "PIX")
        with pytest.raises(NotFoundError):
            credit_service.current_balance(999999)


class TestDebtSummary:
    def test_lists_only_customers_with_balance(self, make_customer, credit_sale):
        owing = make_customer(name="Ana", phone="11 99999-0000")
        settled = make_customer(name="Bruno")
        make_customer(name="Carla")
        credit_sale(owing, 3000)
        credit_sale(settled, 1000)
        credit_service.apply_payment(settled.id, 1000, "PIX")

        summary = credit_service.list_debt_summary()

        assert summary == [{
            "id": owing.id,
            "name": "Ana",
            "phone": "11 99999-0000",
            "credit_limit_cents": 10000,
            "is_blocked": False,
            "balance": 3000,
        }]

    def test_payments_listing(self, make_customer, credit_sale):
        customer = make_customer()
        credit_sale(customer, 3000)
        first = credit_service.apply_payment(customer.id, 1000, "PIX")
        second = credit_service.apply_payment(customer.id, 500, "PIX")

        payments = credit_service.list_payments(customer.id)

        assert [p.id for p in payments] == [second.id, first.id]
