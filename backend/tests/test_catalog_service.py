"""
Master data maintenance tests.
"""

import pytest

from pdv.extensions import db
from pdv.models import AuditLogEntry, Customer, InventoryItem, InventoryMovement, PaymentMethod, Product
from pdv.services import catalog_service, inventory_service, sales_service
from pdv.validation import ConflictError, NotFoundError, ValidationError


class TestProducts:
    def test_create_and_update(self, operator):
        group = catalog_service.save_group("product", "Bebidas", actor_user_id=operator.id)
        product = catalog_service.create_product(
            {"description": "Guaraná 2L", "price_cents": 899, "barcode": "7891991000833", "group_id": group.id, "stock": 12},
            actor_user_id=operator.id,
        )

        assert product.sale_type == "unit"
        assert product.stock == 12

        updated = catalog_service.update_product(product.id, {"price_cents": 949, "is_active": False})
        assert updated.price_cents == 949
        assert updated.is_active is False

    def test_duplicate_barcode(self, db_session):
        catalog_service.create_product({"description": "A", "price_cents": 100, "barcode": "123"})

        with pytest.raises(ConflictError) as exc:
            catalog_service.create_product({"description": "B", "price_cents": 100, "barcode": "123"})
        assert exc.value.field == "barcode"

    def test_stock_is_not_writable_on_update(self, make_product):
        product = make_product()
        with pytest.raises(ValidationError):
            catalog_service.update_product(product.id, {"stock": 999})
        assert db.session.get(Product, product.id).stock == 10

    def test_required_fields(self, db_session):
        with pytest.raises(ValidationError):
            catalog_service.create_product({"description": "Sem preço"})
        with pytest.raises(ValidationError):
            catalog_service.create_product({"description": "X", "price_cents": 100, "sale_type": "box"})

    def test_unknown_group(self, db_session):
        with pytest.raises(NotFoundError):
            catalog_service.create_product({"description": "X", "price_cents": 100, "group_id": 999999})

    def test_stock_receive_and_write_off(self, operator, make_product):
        product = make_product(stock=2)

        catalog_service.adjust_product_stock(product.id, operator.id, "in", 10)
        assert db.session.get(Product, product.id).stock == 12

        with pytest.raises(ConflictError):
            catalog_service.adjust_product_stock(product.id, operator.id, "out", 13)
        assert db.session.get(Product, product.id).stock == 12

    def test_find_by_barcode(self, make_product):
        product = make_product(barcode="789000")
        assert catalog_service.find_product_by_barcode("789000").id == product.id
        with pytest.raises(NotFoundError):
            catalog_service.find_product_by_barcode("000")


class TestGroups:
    def test_referenced_group_cannot_be_deleted(self, db_session):
        group = catalog_service.save_group("product", "Laticínios")
        catalog_service.create_product({"description": "Leite", "price_cents": 549, "group_id": group.id})

        with pytest.raises(ConflictError):
            catalog_service.delete_group("product", group.id)

    def test_delete_unused_group(self, db_session):
        group = catalog_service.save_group("inventory", "Embalagens")
        catalog_service.delete_group("inventory", group.id)
        assert catalog_service.list_groups("inventory") == []

    def test_duplicate_group_name(self, db_session):
        catalog_service.save_group("product", "Bebidas")
        with pytest.raises(ConflictError) as exc:
            catalog_service.save_group("product", "Bebidas")
        assert exc.value.field == "name"

    def test_unknown_kind(self, db_session):
        with pytest.raises(ValidationError):
            catalog_service.save_group("vendor", "X")


class TestInventoryItems:
    def test_opening_quantity_goes_through_ledger(self, operator):
        item = catalog_service.create_inventory_item(
            {"name": "Sacola", "code": "SAC-01", "minimum_quantity": 50, "opening_quantity": 200},
            actor_user_id=operator.id,
        )

        assert item.current_quantity == 200
        assert inventory_service.replayed_quantity(item.id) == 200
        movement = db.session.query(InventoryMovement).filter_by(item_id=item.id).one()
        assert movement.type == "in"
        assert movement.performed_by_user_id == operator.id

    def test_opening_quantity_needs_actor(self, db_session):
        with pytest.raises(ValidationError):
            catalog_service.create_inventory_item({"name": "Sacola", "code": "SAC-01", "opening_quantity": 5})

    def test_duplicate_code(self, make_item):
        make_item(code="SAC-01")
        with pytest.raises(ConflictError) as exc:
            catalog_service.create_inventory_item({"name": "Outra", "code": "SAC-01"})
        assert exc.value.field == "code"

    def test_current_quantity_not_writable(self, make_item):
        item = make_item()
        with pytest.raises(ValidationError):
            catalog_service.update_inventory_item(item.id, {"current_quantity": 10})


class TestCustomers:
    def test_cpf_normalized_and_unique(self, db_session):
        customer = catalog_service.create_customer({"name": "Ana", "cpf": "123.456.789-09", "credit_limit_cents": 20000})
        assert customer.cpf == "12345678909"

        with pytest.raises(ConflictError) as exc:
            catalog_service.create_customer({"name": "Outra Ana", "cpf": "12345678909"})
        assert exc.value.field == "cpf"

    def test_invalid_cpf(self, db_session):
        with pytest.raises(ValidationError):
            catalog_service.create_customer({"name": "Ana", "cpf": "123"})

    def test_block_customer(self, make_customer):
        customer = make_customer()
        updated = catalog_service.update_customer(customer.id, {"is_blocked": True})
        assert updated.is_blocked is True


class TestPaymentMethods:
    def test_create_rename_delete(self, db_session):
        method = catalog_service.save_payment_method("Dinheiro", "cash")
        catalog_service.save_payment_method("Espécie", "cash", method_id=method.id)
        assert db.session.get(PaymentMethod, method.id).name == "Espécie"

        catalog_service.delete_payment_method(method.id)
        assert catalog_service.list_payment_methods() == []

    def test_duplicate_name(self, db_session):
        catalog_service.save_payment_method("PIX", "pix")
        with pytest.raises(ConflictError):
            catalog_service.save_payment_method("PIX", "pix")


class TestDeletes:
    def test_unsold_product_is_deleted(self, operator, make_product):
        product = make_product()

        catalog_service.delete_product(product.id, actor_user_id=operator.id)

        assert db.session.get(Product, product.id) is None
        assert db.session.query(AuditLogEntry).filter_by(action="products.delete", record_id=product.id).count() == 1

    def test_sold_product_is_kept(self, operator, open_session, make_product):
        product = make_product(price_cents=1000)
        sales_service.create_sale(
            operator.id, open_session.id,
            [{"product_id": product.id, "quantity": 1}],
            [{"method": "pix", "amount_cents": 1000}],
        )

        with pytest.raises(ConflictError) as exc:
            catalog_service.delete_product(product.id)

        assert exc.value.details == {"referenced_by": "sale_items"}
        assert db.session.get(Product, product.id) is not None

    def test_item_with_movements_is_kept(self, operator, make_item):
        used = make_item(code="SAC-01")
        unused = make_item(code="SAC-02")
        inventory_service.adjust(used.id, operator.id, "in", 5)

        with pytest.raises(ConflictError):
            catalog_service.delete_inventory_item(used.id)
        catalog_service.delete_inventory_item(unused.id)

        assert db.session.get(InventoryItem, used.id) is not None
        assert db.session.get(InventoryItem, unused.id) is None

    def test_customer_with_credit_sales_is_kept(self, operator, open_session, make_product, make_customer):
        debtor = make_customer(name="Carlos")
        newcomer = make_customer(name="Beatriz")
        product = make_product(price_cents=1000)
        sales_service.create_sale(
            operator.id, open_session.id,
            [{"product_id": product.id, "quantity": 1}],
            [{"method": "credit", "amount_cents": 1000}],
            customer_id=debtor.id,
        )

        with pytest.raises(ConflictError):
            catalog_service.delete_customer(debtor.id)
        catalog_service.delete_customer(newcomer.id)

        assert db.session.get(Customer, debtor.id) is not None
        assert db.session.get(Customer, newcomer.id) is None

    @pytest.mark.parametrize("delete", [
        catalog_service.delete_product,
        catalog_service.delete_inventory_item,
        catalog_service.delete_customer,
    ])
    def test_missing_row(self, db_session, delete):
        with pytest.raises(NotFoundError):
            delete(999999)
