"""
StockLedger tests.

Verifies:
- adjust() moves current_level by exactly qty and appends one movement
  and one MEDIUM audit entry
- current_level never goes below zero
- invoice decrement is all-or-nothing and idempotent
- delivery receipt is all-or-nothing
- catalog maintenance (create / deactivate)
"""

from uuid import uuid4

import pytest
from sqlalchemy import func, select

from stock_kernel.domain.dtos import InvoiceLine, ReceiptLine
from stock_kernel.domain.types import AuditSeverity, MovementDirection, MovementType
from stock_kernel.exceptions import (
    DuplicateSkuError,
    InsufficientStockError,
    InvoiceStockError,
    StockItemNotFoundError,
)
from stock_kernel.models.audit_log import AuditAction, AuditLogEntry
from stock_kernel.models.stock_item import Movement, StockItem
from stock_kernel.services.audit_ledger import resource_key


def _movement_count(session, stock_item_id=None) -> int:
    stmt = select(func.count()).select_from(Movement)
    if stock_item_id is not None:
        stmt = stmt.where(Movement.stock_item_id == stock_item_id)
    return session.execute(stmt).scalar_one()


def _audit_actions(session) -> list[str]:
    return list(
        session.execute(select(AuditLogEntry.action).order_by(AuditLogEntry.seq)).scalars()
    )


def _level(session, item_id) -> int:
    return session.get(StockItem, item_id).current_level


class TestAdjust:

    def test_in_movement_increases_level(self, session, ledger, create_item, test_actor_id):
        item = create_item("SKU-1", level=10)

        movement = ledger.adjust(item.id, MovementType.IN, 5, "Restock", test_actor_id)

        assert movement.direction == MovementDirection.INCREASE
        assert movement.resulting_level == 15
        assert _level(session, item.id) == 15

    def test_out_movement_decreases_level(self, session, ledger, create_item, test_actor_id):
        item = create_item("SKU-1", level=10)

        movement = ledger.adjust(item.id, MovementType.OUT, 4, "Sale", test_actor_id)

        assert movement.direction == MovementDirection.DECREASE
        assert movement.resulting_level == 6
        assert movement.signed_qty == -4

    def test_adjustment_requires_direction(self, ledger, create_item, test_actor_id):
        item = create_item("SKU-1", level=10)

        with pytest.raises(ValueError):
            ledger.adjust(item.id, MovementType.ADJUSTMENT, 1, "Fix", test_actor_id)

    def test_adjustment_with_direction(self, session, ledger, create_item, test_actor_id):
        item = create_item("SKU-1", level=10)

        ledger.adjust(
            item.id, MovementType.ADJUSTMENT, 3, "Fix", test_actor_id,
            direction=MovementDirection.DECREASE,
        )

        assert _level(session, item.id) == 7

    def test_in_with_decrease_direction_is_rejected(self, ledger, create_item, test_actor_id):
        item = create_item("SKU-1", level=10)

        with pytest.raises(ValueError):
            ledger.adjust(
                item.id, MovementType.IN, 1, "Bad", test_actor_id,
                direction=MovementDirection.DECREASE,
            )

    @pytest.mark.parametrize("qty", [0, -3, True, 1.5])
    def test_non_positive_or_non_integer_qty_is_rejected(
        self, session, ledger, create_item, test_actor_id, qty,
    ):
        item = create_item("SKU-1", level=10)

        with pytest.raises(ValueError):
            ledger.adjust(item.id, MovementType.IN, qty, "Bad", test_actor_id)
        assert _movement_count(session, item.id) == 1  # the initial stock only

    def test_decrease_below_zero_is_refused(self, session, ledger, create_item, test_actor_id):
        item = create_item("SKU-1", level=3)

        with pytest.raises(InsufficientStockError) as exc_info:
            ledger.adjust(item.id, MovementType.OUT, 4, "Sale", test_actor_id)

        assert exc_info.value.current_level == 3
        assert exc_info.value.requested_qty == 4
        assert _level(session, item.id) == 3

    def test_decrease_to_exactly_zero_is_allowed(self, session, ledger, create_item, test_actor_id):
        item = create_item("SKU-1", level=3)

        movement = ledger.adjust(item.id, MovementType.OUT, 3, "Sale", test_actor_id)

        assert movement.resulting_level == 0

    def test_one_movement_and_one_medium_audit_per_adjust(
        self, session, ledger, auditor, create_item, test_actor_id,
    ):
        item = create_item("SKU-1", level=10)
        movements_before = _movement_count(session, item.id)
        audit_before = len(_audit_actions(session))

        movement = ledger.adjust(item.id, MovementType.IN, 2, "Restock", test_actor_id)

        assert _movement_count(session, item.id) == movements_before + 1
        actions = _audit_actions(session)
        assert len(actions) == audit_before + 1
        assert actions[-1] == AuditAction.ADJUST_STOCK_ITEM

        trace = auditor.get_trace(resource_key("stock_item", item.id))
        assert trace.last_action == AuditAction.ADJUST_STOCK_ITEM
        last = trace.entries[-1]
        assert last.severity == AuditSeverity.MEDIUM
        assert last.details["movement_id"] == str(movement.id)
        assert last.details["previous_level"] == 10
        assert last.details["resulting_level"] == 12

    def test_unknown_item_raises(self, ledger, test_actor_id):
        with pytest.raises(StockItemNotFoundError):
            ledger.adjust(uuid4(), MovementType.IN, 1, "Restock", test_actor_id)

    def test_deactivated_item_raises(self, ledger, create_item, test_actor_id):
        item = create_item("SKU-1", level=5)
        ledger.deactivate_item(item.id, test_actor_id)

        with pytest.raises(StockItemNotFoundError):
            ledger.adjust(item.id, MovementType.IN, 1, "Restock", test_actor_id)

    def test_resulting_levels_form_a_running_balance(
        self, session, ledger, create_item, test_actor_id, deterministic_clock,
    ):
        item = create_item("SKU-1", level=10)
        for movement_type, qty in [(MovementType.OUT, 3), (MovementType.IN, 8), (MovementType.OUT, 1)]:
            deterministic_clock.advance(1)
            ledger.adjust(item.id, movement_type, qty, "Run", test_actor_id)

        movements = session.execute(
            select(Movement)
            .where(Movement.stock_item_id == item.id)
            .order_by(Movement.created_at)
        ).scalars().all()

        running = 0
        for movement in movements:
            running += movement.signed_qty
            assert movement.resulting_level == running
        assert _level(session, item.id) == running == 14


class TestDecrementForInvoice:

    def test_all_lines_applied(self, session, ledger, tenant, create_item, test_actor_id):
        a = create_item("A", level=10)
        b = create_item("B", level=5)

        movements = ledger.decrement_for_invoice(
            tenant.id, "INV-1",
            [InvoiceLine(a.id, 3), InvoiceLine(b.id, 5)],
            test_actor_id,
        )

        assert len(movements) == 2
        assert all(m.type == MovementType.OUT for m in movements)
        assert all(m.reference == "invoice:INV-1" for m in movements)
        assert _level(session, a.id) == 7
        assert _level(session, b.id) == 0

    def test_one_audit_entry_for_the_invoice(
        self, session, ledger, auditor, tenant, create_item, test_actor_id,
    ):
        a = create_item("A", level=10)
        b = create_item("B", level=5)
        audit_before = len(_audit_actions(session))

        ledger.decrement_for_invoice(
            tenant.id, "INV-1", [InvoiceLine(a.id, 1), InvoiceLine(b.id, 1)], test_actor_id,
        )

        actions = _audit_actions(session)
        assert actions[audit_before:] == [AuditAction.DECREMENT_INVOICE]
        trace = auditor.get_trace(resource_key("invoice", "INV-1"))
        assert len(trace.entries[0].details["lines"]) == 2

    def test_any_failing_line_rolls_back_every_line(
        self, session, ledger, tenant, create_item, test_actor_id,
    ):
        a = create_item("A", level=10)
        b = create_item("B", level=1)
        missing = uuid4()
        movements_before = _movement_count(session)

        with pytest.raises(InvoiceStockError) as exc_info:
            ledger.decrement_for_invoice(
                tenant.id, "INV-2",
                [InvoiceLine(a.id, 3), InvoiceLine(b.id, 2), InvoiceLine(missing, 1)],
                test_actor_id,
            )

        failures = exc_info.value.failures
        assert {f["code"] for f in failures} == {"INSUFFICIENT_STOCK", "STOCK_ITEM_NOT_FOUND"}
        assert {f["stock_item_id"] for f in failures} == {str(b.id), str(missing)}
        assert _level(session, a.id) == 10
        assert _level(session, b.id) == 1
        assert _movement_count(session) == movements_before

    def test_replay_is_idempotent(self, session, ledger, tenant, create_item, test_actor_id):
        a = create_item("A", level=10)
        first = ledger.decrement_for_invoice(
            tenant.id, "INV-3", [InvoiceLine(a.id, 4)], test_actor_id,
        )
        audit_count = len(_audit_actions(session))

        second = ledger.decrement_for_invoice(
            tenant.id, "INV-3", [InvoiceLine(a.id, 4)], test_actor_id,
        )

        assert {m.id for m in second} == {m.id for m in first}
        assert _level(session, a.id) == 6
        assert len(_audit_actions(session)) == audit_count

    def test_item_of_another_tenant_is_not_found(
        self, ledger, create_item, tenant_factory, test_actor_id,
    ):
        other = tenant_factory()
        a = create_item("A", level=10)

        with pytest.raises(InvoiceStockError) as exc_info:
            ledger.decrement_for_invoice(other.id, "INV-4", [InvoiceLine(a.id, 1)], test_actor_id)

        assert exc_info.value.failures[0]["code"] == "STOCK_ITEM_NOT_FOUND"

    def test_empty_invoice_is_a_no_op(self, session, ledger, tenant, test_actor_id):
        assert ledger.decrement_for_invoice(tenant.id, "INV-5", [], test_actor_id) == []

    def test_invoice_line_rejects_non_positive_qty(self):
        with pytest.raises(ValueError):
            InvoiceLine(uuid4(), 0)


class TestReceiveBulk:

    def test_delivery_increases_every_line(
        self, session, ledger, auditor, tenant, create_item, test_actor_id,
    ):
        a = create_item("A", level=0)
        b = create_item("B", level=2)

        movements = ledger.receive_bulk(
            tenant.id, "DN-100",
            [ReceiptLine(a.id, 12), ReceiptLine(b.id, 3)],
            test_actor_id,
        )

        assert {m.reference for m in movements} == {"delivery:DN-100"}
        assert _level(session, a.id) == 12
        assert _level(session, b.id) == 5
        trace = auditor.get_trace(resource_key("delivery", "DN-100"))
        assert trace.actions == (AuditAction.RECEIVE_DELIVERY,)
        assert trace.entries[0].details["total_qty"] == 15

    def test_unknown_line_rejects_whole_delivery(
        self, session, ledger, tenant, create_item, test_actor_id,
    ):
        a = create_item("A", level=1)

        with pytest.raises(StockItemNotFoundError):
            ledger.receive_bulk(
                tenant.id, "DN-101",
                [ReceiptLine(a.id, 5), ReceiptLine(uuid4(), 5)],
                test_actor_id,
            )

        assert _level(session, a.id) == 1

    def test_empty_delivery_is_rejected(self, ledger, tenant, test_actor_id):
        with pytest.raises(ValueError):
            ledger.receive_bulk(tenant.id, "DN-102", [], test_actor_id)


class TestCatalog:

    def test_create_item_records_initial_stock_movement(
        self, session, ledger, tenant, test_actor_id,
    ):
        info = ledger.create_item(tenant.id, " SKU-9 ", "Widget", test_actor_id, initial_level=7)

        assert info.sku == "SKU-9"
        assert info.current_level == 7
        movement = session.execute(
            select(Movement).where(Movement.stock_item_id == info.id)
        ).scalar_one()
        assert movement.type == MovementType.IN
        assert movement.resulting_level == 7

    def test_create_item_without_stock_has_no_movement(self, session, ledger, tenant, test_actor_id):
        info = ledger.create_item(tenant.id, "SKU-0", "Empty", test_actor_id)

        assert info.current_level == 0
        assert _movement_count(session, info.id) == 0

    def test_duplicate_sku_is_rejected(self, ledger, tenant, create_item, test_actor_id):
        create_item("SKU-1")

        with pytest.raises(DuplicateSkuError):
            ledger.create_item(tenant.id, "SKU-1", "Again", test_actor_id)

    def test_deactivate_keeps_history(self, session, ledger, create_item, test_actor_id):
        item = create_item("SKU-1", level=4)

        info = ledger.deactivate_item(item.id, test_actor_id)

        assert info.is_active is False
        assert _movement_count(session, item.id) == 1
        assert _audit_actions(session)[-1] == AuditAction.DEACTIVATE_STOCK_ITEM
