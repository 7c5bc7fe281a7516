"""
StockSelector tests: catalog lookups, movement history and totals.
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from stock_kernel.domain.types import MovementDirection, MovementType
from stock_kernel.selectors.stock_selector import StockSelector


@pytest.fixture
def selector(session):
    return StockSelector(session)


@pytest.fixture
def history(ledger, create_item, test_actor_id, deterministic_clock):
    """Item A: +20 initial, -5 sale, +3 count gain, -1 breakage; B: +4 initial."""
    a = create_item("A", level=20)
    b = create_item("B", level=4)
    deterministic_clock.advance(60)
    ledger.adjust(a.id, MovementType.OUT, 5, "Sale", test_actor_id, reference="invoice:1")
    deterministic_clock.advance(60)
    ledger.adjust(
        a.id, MovementType.ADJUSTMENT, 3, "Count gain", test_actor_id,
        direction=MovementDirection.INCREASE,
    )
    deterministic_clock.advance(60)
    ledger.adjust(
        a.id, MovementType.ADJUSTMENT, 1, "Breakage", test_actor_id,
        direction=MovementDirection.DECREASE,
    )
    return a, b


class TestCatalog:

    def test_get_item_and_by_sku(self, selector, tenant, create_item):
        item = create_item("SKU-9", level=2)

        assert selector.get_item(item.id).sku == "SKU-9"
        assert selector.get_item_by_sku(tenant.id, "SKU-9").id == item.id
        assert selector.get_item(uuid4()) is None
        assert selector.get_item_by_sku(tenant.id, "nope") is None

    def test_list_active_items(self, selector, ledger, tenant, create_item, test_actor_id):
        create_item("C")
        gone = create_item("A")
        create_item("B")
        ledger.deactivate_item(gone.id, test_actor_id)

        assert [i.sku for i in selector.list_active_items(tenant.id)] == ["B", "C"]

    def test_items_below_threshold(self, selector, tenant, create_item):
        create_item("LOW", level=2, min_threshold=5)
        create_item("EXACT", level=5, min_threshold=5)
        create_item("HIGH", level=9, min_threshold=5)

        low = selector.items_below_threshold(tenant.id)

        assert [i.sku for i in low] == ["LOW"]
        assert low[0].is_below_threshold

    def test_tenants_are_isolated(self, selector, tenant_factory, create_item):
        create_item("A", level=1)

        assert selector.list_active_items(tenant_factory().id) == []


class TestMovements:

    def test_history_is_newest_first(self, selector, tenant, history):
        a, _ = history

        movements = selector.get_movements(tenant.id, stock_item_id=a.id)

        assert [m.reason for m in movements] == ["Breakage", "Count gain", "Sale", "Initial stock"]
        assert [m.resulting_level for m in movements] == [17, 18, 15, 20]

    def test_filter_by_type(self, selector, tenant, history):
        adjustments = selector.get_movements(tenant.id, movement_type=MovementType.ADJUSTMENT)

        assert {m.signed_qty for m in adjustments} == {3, -1}

    def test_filter_by_reference(self, selector, tenant, history):
        (sale,) = selector.get_movements(tenant.id, reference="invoice:1")

        assert sale.type == MovementType.OUT

    def test_time_window(self, selector, tenant, history, deterministic_clock):
        now = deterministic_clock.now()

        window = selector.get_movements(
            tenant.id, start=now - timedelta(seconds=120), end=now,
        )

        assert [m.reason for m in window] == ["Count gain", "Sale"]

    def test_limit(self, selector, tenant, history):
        assert len(selector.get_movements(tenant.id, limit=2)) == 2

    def test_stats(self, selector, tenant, history):
        a, _ = history

        stats = selector.get_movement_stats(tenant.id, stock_item_id=a.id)

        assert stats.total_in == 20
        assert stats.total_out == 5
        assert stats.total_adjustment_increase == 3
        assert stats.total_adjustment_decrease == 1
        assert stats.movement_count == 4
        assert stats.net_change == 17

    def test_stats_for_tenant(self, selector, tenant, history):
        stats = selector.get_movement_stats(tenant.id)

        assert stats.total_in == 24
        assert stats.movement_count == 5

    def test_stats_for_empty_tenant(self, selector, tenant_factory):
        stats = selector.get_movement_stats(tenant_factory().id)

        assert stats.movement_count == 0
        assert stats.net_change == 0
