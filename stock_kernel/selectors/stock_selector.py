"""
Module: stock_kernel.selectors.stock_selector
Responsibility: Read-only catalog and movement queries: the stock list
    screen, movement history with filters, movement totals and reorder alerts.
Architecture position: Kernel > Selectors.

Failure modes:
    - Returns empty results when nothing matches; never raises for a
      missing tenant.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select

from stock_kernel.domain.dtos import MovementRecord, MovementStats, StockItemInfo
from stock_kernel.domain.types import MovementDirection, MovementType
from stock_kernel.models.stock_item import Movement, StockItem
from stock_kernel.selectors.base import BaseSelector


class StockSelector(BaseSelector[StockItem]):
    """Selector for catalog items and their movement history."""

    def get_item(self, item_id: UUID) -> StockItemInfo | None:
        item = self.session.get(StockItem, item_id)
        return StockItemInfo.from_model(item) if item is not None else None

    def get_item_by_sku(self, tenant_id: UUID, sku: str) -> StockItemInfo | None:
        item = self.session.execute(
            select(StockItem).where(StockItem.tenant_id == tenant_id, StockItem.sku == sku)
        ).scalar_one_or_none()
        return StockItemInfo.from_model(item) if item is not None else None

    def list_active_items(self, tenant_id: UUID) -> list[StockItemInfo]:
        """Active catalog items of a tenant, ordered by SKU."""
        items = self.session.execute(
            select(StockItem)
            .where(StockItem.tenant_id == tenant_id, StockItem.is_active.is_(True))
            .order_by(StockItem.sku)
        ).scalars().all()
        return [StockItemInfo.from_model(item) for item in items]

    def items_below_threshold(self, tenant_id: UUID) -> list[StockItemInfo]:
        """Active items whose level is under their reorder threshold."""
        items = self.session.execute(
            select(StockItem)
            .where(
                StockItem.tenant_id == tenant_id,
                StockItem.is_active.is_(True),
                StockItem.current_level < StockItem.min_threshold,
            )
            .order_by(StockItem.sku)
        ).scalars().all()
        return [StockItemInfo.from_model(item) for item in items]

    def _movement_query(
        self,
        tenant_id: UUID,
        stock_item_id: UUID | None = None,
        movement_type: MovementType | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        reference: str | None = None,
    ):
        query = select(Movement).where(Movement.tenant_id == tenant_id)

        if stock_item_id is not None:
            query = query.where(Movement.stock_item_id == stock_item_id)
        if movement_type is not None:
            query = query.where(Movement.type == MovementType(movement_type).value)
        if start is not None:
            query = query.where(Movement.created_at >= start)
        if end is not None:
            query = query.where(Movement.created_at < end)
        if reference is not None:
            query = query.where(Movement.reference == reference)

        return query

    def get_movements(
        self,
        tenant_id: UUID,
        stock_item_id: UUID | None = None,
        movement_type: MovementType | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        reference: str | None = None,
        limit: int | None = None,
    ) -> list[MovementRecord]:
        """
        Movement history, newest first.

        Args:
            start: Inclusive lower bound on ``created_at``.
            end: Exclusive upper bound on ``created_at``.
        """
        query = self._movement_query(
            tenant_id, stock_item_id, movement_type, start, end, reference
        ).order_by(Movement.created_at.desc(), Movement.id)

        if limit is not None:
            query = query.limit(limit)

        movements = self.session.execute(query).scalars().all()
        return [MovementRecord.from_model(m) for m in movements]

    def get_movement_stats(
        self,
        tenant_id: UUID,
        start: datetime | None = None,
        end: datetime | None = None,
        stock_item_id: UUID | None = None,
    ) -> MovementStats:
        """Quantity totals per movement type over a window."""
        subquery = self._movement_query(
            tenant_id, stock_item_id, start=start, end=end
        ).subquery()

        rows = self.session.execute(
            select(
                subquery.c.type,
                subquery.c.direction,
                func.coalesce(func.sum(subquery.c.qty), 0),
                func.count(),
            ).group_by(subquery.c.type, subquery.c.direction)
        ).all()

        totals = {
            "total_in": 0,
            "total_out": 0,
            "total_adjustment_increase": 0,
            "total_adjustment_decrease": 0,
        }
        movement_count = 0
        for movement_type, direction, qty_total, count in rows:
            movement_count += count
            if movement_type == MovementType.IN.value:
                totals["total_in"] += int(qty_total)
            elif movement_type == MovementType.OUT.value:
                totals["total_out"] += int(qty_total)
            elif direction == MovementDirection.INCREASE.value:
                totals["total_adjustment_increase"] += int(qty_total)
            else:
                totals["total_adjustment_decrease"] += int(qty_total)

        return MovementStats(movement_count=movement_count, **totals)
