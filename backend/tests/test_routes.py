"""
HTTP layer tests.

Verifies:
- Domain errors map to status codes with a {"error": {kind, message, field}} body
- The main flows (login, cash session, sale, credit payment) work over JSON
"""

import pytest

from pdv.services import credit_service, sales_service


class TestAuthRoutes:
    def test_login_success(self, client, make_user):
        user = make_user(username="maria")

        response = client.post("/api/auth/login", json={"username": "maria", "password": "secret1"})

        assert response.status_code == 200
        assert response.get_json()["user"] == {"id": user.id, "username": "maria", "role": "operator", "active": True}

    def test_login_failure(self, client, make_user):
        make_user(username="maria")

        response = client.post("/api/auth/login", json={"username": "maria", "password": "wrong1"})

        assert response.status_code == 401
        assert "password_hash" not in response.get_data(as_text=True)

    def test_login_missing_fields(self, client, db_session):
        response = client.post("/api/auth/login", json={"username": "maria"})
        assert response.status_code == 400

    def test_non_object_body(self, client, db_session):
        response = client.post("/api/auth/login", json=["maria", "secret1"])
        assert response.status_code == 400
        assert response.get_json()["error"]["kind"] == "validation"


class TestUserRoutes:
    def test_create_then_duplicate(self, client, db_session):
        payload = {"username": "maria", "role": "operator", "password": "secret1"}

        created = client.post("/api/users", json=payload)
        duplicate = client.post("/api/users", json=payload)

        assert created.status_code == 201
        assert created.get_json()["user"]["username"] == "maria"
        assert duplicate.status_code == 409
        assert duplicate.get_json()["error"] == {
            "kind": "conflict",
            "message": "username 'maria' already in use",
            "field": "username",
        }

    def test_short_password(self, client, db_session):
        response = client.post("/api/users", json={"username": "maria", "role": "operator", "password": "123"})
        assert response.status_code == 400
        assert response.get_json()["error"]["field"] == "password"

    def test_list_users(self, client, make_user):
        make_user(username="maria")
        response = client.get("/api/users")
        assert response.status_code == 200
        assert [u["username"] for u in response.get_json()["users"]] == ["maria"]

    @pytest.mark.parametrize("field, value", [("id", "abc"), ("id", 1.5), ("actor_user_id", "x")])
    def test_non_integer_ids_rejected(self, client, db_session, field, value):
        payload = {"username": "maria", "role": "operator", "password": "secret1", field: value}

        response = client.post("/api/users", json=payload)

        assert response.status_code == 400
        assert response.get_json()["error"]["field"] == field


class TestCashSessionRoutes:
    def test_open_move_close(self, client, operator):
        opened = client.post("/api/cash-sessions", json={"user_id": operator.id, "initial_amount_cents": 5000})
        assert opened.status_code == 201
        session_id = opened.get_json()["session"]["id"]

        again = client.post("/api/cash-sessions", json={"user_id": operator.id, "initial_amount_cents": 0})
        assert again.status_code == 409

        moved = client.post(
            f"/api/cash-sessions/{session_id}/movements",
            json={"type": "supply", "amount_cents": 2000, "user_id": operator.id},
        )
        assert moved.status_code == 201

        closed = client.post(f"/api/cash-sessions/{session_id}/close", json={"counted_final_cents": 6900})
        assert closed.status_code == 200
        body = closed.get_json()["session"]
        assert body["expected_amount_cents"] == 7000
        assert body["difference_cents"] == -100

        late = client.post(
            f"/api/cash-sessions/{session_id}/movements",
            json={"type": "withdrawal", "amount_cents": 100},
        )
        assert late.status_code == 409
        assert late.get_json()["error"]["kind"] == "state"

        detail = client.get(f"/api/cash-sessions/{session_id}")
        assert detail.status_code == 200
        assert detail.get_json()["is_closed"] is True

    def test_missing_session(self, client, db_session):
        response = client.get("/api/cash-sessions/999999")
        assert response.status_code == 404
        assert response.get_json()["error"]["kind"] == "not_found"

    def test_decimal_amount_rejected(self, client, operator):
        response = client.post("/api/cash-sessions", json={"user_id": operator.id, "initial_amount_cents": 50.5})
        assert response.status_code == 400


class TestSaleRoutes:
    def test_create_and_fetch(self, client, operator, open_session, make_product):
        product = make_product(price_cents=1000, stock=5)

        response = client.post("/api/sales", json={
            "operator_id": operator.id,
            "cash_session_id": open_session.id,
            "items": [{"product_id": product.id, "quantity": 2}],
            "tender": [{"method": "cash", "amount_cents": 2000, "received_cents": 5000}],
        }, headers={"Idempotency-Key": "pos-1"})

        assert response.status_code == 201
        sale = response.get_json()["sale"]
        assert sale["total_amount_cents"] == 2000
        assert sale["change_amount_cents"] == 3000
        assert sale["idempotency_key"] == "pos-1"
        assert sale["items"][0]["product_description"] == product.description

        fetched = client.get(f"/api/sales/{sale['id']}")
        assert fetched.get_json()["sale"]["id"] == sale["id"]

        recent = client.get("/api/dashboard/recent-sales")
        assert [s["id"] for s in recent.get_json()["sales"]] == [sale["id"]]

        kpis = client.get("/api/dashboard/kpis").get_json()
        assert kpis == {"total_revenue": 2000, "total_sales_count": 1, "average_ticket": 2000}

    def test_tender_mismatch(self, client, operator, open_session, make_product):
        product = make_product(price_cents=1000)

        response = client.post("/api/sales", json={
            "operator_id": operator.id,
            "cash_session_id": open_session.id,
            "items": [{"product_id": product.id, "quantity": 1}],
            "tender": [{"method": "cash", "amount_cents": 900}],
        })

        assert response.status_code == 400
        assert response.get_json()["error"]["field"] == "tender"

    def test_training_flag_must_be_boolean(self, client, operator, open_session, make_product):
        product = make_product()
        response = client.post("/api/sales", json={
            "operator_id": operator.id,
            "cash_session_id": open_session.id,
            "items": [{"product_id": product.id, "quantity": 1}],
            "tender": [{"method": "cash", "amount_cents": 2500}],
            "training_mode": "yes",
        })
        assert response.status_code == 400

    def test_history_is_paginated(self, client, operator, open_session, make_product):
        product = make_product(price_cents=1000, stock=10)
        for _ in range(3):
            sales_service.create_sale(
                operator.id, open_session.id,
                [{"product_id": product.id, "quantity": 1}],
                [{"method": "card", "amount_cents": 1000}],
            )

        response = client.get("/api/sales?page=2&per_page=2")

        assert response.status_code == 200
        body = response.get_json()
        assert body["total_count"] == 3
        assert body["pages"] == 2
        assert len(body["sales"]) == 1


class TestCreditRoutes:
    @pytest.fixture
    def indebted(self, operator, open_session, make_product, make_customer):
        product = make_product(price_cents=6000)
        customer = make_customer(credit_limit_cents=10000)
        sales_service.create_sale(
            operator.id,
            open_session.id,
            [{"product_id": product.id, "quantity": 1}],
            [{"method": "credit", "amount_cents": 6000}],
            customer_id=customer.id,
        )
        return customer

    def test_payment_and_overpayment(self, client, operator, indebted):
        paid = client.post(
            f"/api/credit/customers/{indebted.id}/payments",
            json={"amount_cents": 4000, "payment_method": "PIX", "user_id": operator.id},
        )
        assert paid.status_code == 201
        assert paid.get_json()["balance_cents"] == 2000

        over = client.post(
            f"/api/credit/customers/{indebted.id}/payments",
            json={"amount_cents": 2001, "payment_method": "PIX"},
        )
        assert over.status_code == 400
        assert credit_service.current_balance(indebted.id) == 2000

        balance = client.get(f"/api/credit/customers/{indebted.id}/balance").get_json()
        assert balance["balance_cents"] == 2000
        assert balance["available_cents"] == 8000

    def test_debts(self, client, indebted):
        debts = client.get("/api/credit/debts").get_json()["debts"]
        assert [(d["id"], d["balance"]) for d in debts] == [(indebted.id, 6000)]


class TestInventoryAndAuditRoutes:
    def test_adjust_and_insufficient_stock(self, client, operator, make_item):
        item = make_item(minimum_quantity=5)

        added = client.post(f"/api/inventory/items/{item.id}/adjust", json={"user_id": operator.id, "type": "in", "quantity": 3})
        assert added.status_code == 201
        assert added.get_json()["item"]["current_quantity"] == 3

        removed = client.post(f"/api/inventory/items/{item.id}/adjust", json={"user_id": operator.id, "type": "out", "quantity": 4})
        assert removed.status_code == 409
        assert removed.get_json()["error"]["message"] == "insufficient stock"

        below = client.get("/api/inventory/items/below-minimum").get_json()["items"]
        assert [i["id"] for i in below] == [item.id]

        movements = client.get(f"/api/inventory/movements?item_id={item.id}").get_json()["movements"]
        assert len(movements) == 1

    def test_audit_log_filtered_by_action(self, client, make_user):
        make_user(username="maria")
        client.post("/api/auth/login", json={"username": "maria", "password": "secret1"})
        client.post("/api/users", json={"username": "jose", "role": "operator", "password": "secret1"})

        entries = client.get("/api/audit-log?action=login").get_json()["entries"]

        assert len(entries) == 1
        assert entries[0]["action"] == "login"
        assert entries[0]["username"] == "maria"


class TestCatalogDeleteRoutes:
    def test_delete_product(self, client, operator, open_session, make_product):
        unsold = make_product(description="Sal")
        sold = make_product(description="Açúcar", price_cents=1000)
        sales_service.create_sale(
            operator.id, open_session.id,
            [{"product_id": sold.id, "quantity": 1}],
            [{"method": "card", "amount_cents": 1000}],
        )

        deleted = client.delete(f"/api/catalog/products/{unsold.id}?actor_user_id={operator.id}")
        refused = client.delete(f"/api/catalog/products/{sold.id}")

        assert deleted.status_code == 200
        assert deleted.get_json() == {"deleted": unsold.id}
        assert refused.status_code == 409
        assert refused.get_json()["error"]["kind"] == "conflict"

    def test_delete_missing_customer(self, client, db_session):
        response = client.delete("/api/catalog/customers/999999")
        assert response.status_code == 404
