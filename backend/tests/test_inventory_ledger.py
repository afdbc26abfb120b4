"""
Inventory movement ledger tests.

The running quantity of an item must always equal the signed replay of
its movement log, and failed movements must leave no trace.
"""

import pytest

from pdv.extensions import db
from pdv.models import AuditLogEntry, InventoryMovement
from pdv.services import inventory_service
from pdv.validation import ConflictError, NotFoundError, ValidationError


class TestAdjust:
    def test_in_then_out_beyond_stock_rejected(self, operator, make_item):
        item = make_item()

        inventory_service.adjust(item.id, operator.id, "in", 10, reason="Compra")
        with pytest.raises(ConflictError) as exc:
            inventory_service.adjust(item.id, operator.id, "out", 15)

        assert exc.value.message == "insufficient stock"
        assert inventory_service.get_item(item.id).current_quantity == 10
        assert db.session.query(InventoryMovement).filter_by(item_id=item.id).count() == 1

    def test_movement_and_audit_written_together(self, operator, make_item):
        item = make_item()

        movement = inventory_service.adjust(item.id, operator.id, "in", 4)

        entry = db.session.query(AuditLogEntry).filter_by(action="inventory.in").one()
        assert entry.record_id == movement.id
        assert entry.table_name == "inventory_movements"
        assert movement.performed_by_user_id == operator.id

    def test_portuguese_aliases(self, operator, make_item):
        item = make_item()

        inventory_service.adjust(item.id, operator.id, "entrada", 3)
        inventory_service.adjust(item.id, operator.id, "saida", 1)

        assert inventory_service.get_item(item.id).current_quantity == 2

    @pytest.mark.parametrize("quantity", [0, -5, 1.5, "2.0"])
    def test_invalid_quantity(self, operator, make_item, quantity):
        item = make_item()
        with pytest.raises(ValidationError):
            inventory_service.adjust(item.id, operator.id, "in", quantity)

    def test_invalid_type(self, operator, make_item):
        item = make_item()
        with pytest.raises(ValidationError):
            inventory_service.adjust(item.id, operator.id, "transfer", 1)

    def test_unknown_item_and_user(self, operator, make_item):
        item = make_item()
        with pytest.raises(NotFoundError):
            inventory_service.adjust(999999, operator.id, "in", 1)
        with pytest.raises(NotFoundError):
            inventory_service.adjust(item.id, 999999, "in", 1)


class TestLedgerInvariant:
    def test_replay_matches_current_quantity(self, operator, make_item):
        item = make_item()
        steps = [("in", 7), ("out", 2), ("in", 5), ("out", 9), ("out", 5), ("in", 1)]

        for movement_type, quantity in steps:
            try:
                inventory_service.adjust(item.id, operator.id, movement_type, quantity)
            except ConflictError:
                pass
            current = inventory_service.get_item(item.id).current_quantity
            assert current >= 0
            assert current == inventory_service.replayed_quantity(item.id)

        # out 5 with only 1 left was rejected
        assert inventory_service.get_item(item.id).current_quantity == 2


class TestListings:
    def test_movements_newest_first_and_filtered(self, operator, make_item):
        item = make_item()
        other = make_item(name="Etiqueta", code="ETQ-01")
        first = inventory_service.adjust(item.id, operator.id, "in", 5)
        second = inventory_service.adjust(item.id, operator.id, "out", 1)
        inventory_service.adjust(other.id, operator.id, "in", 2)

        movements = inventory_service.list_movements(item_id=item.id)
        assert [m.id for m in movements] == [second.id, first.id]

        outs = inventory_service.list_movements(movement_type="out")
        assert [m.id for m in outs] == [second.id]

    def test_items_below_minimum(self, operator, make_item):
        low = make_item(name="Bobina", code="BOB-01", minimum_quantity=5)
        ok = make_item(name="Etiqueta", code="ETQ-01", minimum_quantity=1)
        inventory_service.adjust(low.id, operator.id, "in", 2)
        inventory_service.adjust(ok.id, operator.id, "in", 3)

        below = inventory_service.list_items_below_minimum()

        assert [i.id for i in below] == [low.id]
        assert below[0].to_dict()["below_minimum"] is True
