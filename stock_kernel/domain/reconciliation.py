"""
Reconciliation -- pure verdict and report logic.

Responsibility:
    Classifies the delta between a counted and a system quantity, and
    aggregates per-item results into the campaign audit report.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  The
    ReconciliationEngine (services/) feeds it snapshot rows and applies
    the resulting adjustments through the StockLedger.

Invariants enforced:
    - delta == 0 is NORMAL.
    - |delta| <= tolerance * max(system_qty, 1) is CONSISTENT; the boundary
      is inclusive and the comparison is exact decimal arithmetic.
    - Anything else is INCONSISTENT.
    - Reports are built from snapshot values only (sku, name, system_qty),
      so items since removed from the catalog still reconcile.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from stock_kernel.domain.dtos import CampaignItemInfo
from stock_kernel.domain.types import MovementDirection, Verdict

DEFAULT_TOLERANCE = Decimal("0.05")


def classify_delta(
    system_qty: int,
    counted_qty: int,
    tolerance: Decimal = DEFAULT_TOLERANCE,
) -> Verdict:
    """
    Classify a counted quantity against the frozen system quantity.

        >>> classify_delta(100, 104)
        <Verdict.CONSISTENT: 'consistent'>
        >>> classify_delta(100, 80)
        <Verdict.INCONSISTENT: 'inconsistent'>
    """
    delta = counted_qty - system_qty
    if delta == 0:
        return Verdict.NORMAL
    if Decimal(abs(delta)) <= tolerance * max(system_qty, 1):
        return Verdict.CONSISTENT
    return Verdict.INCONSISTENT


@dataclass(frozen=True)
class ItemReconciliation:
    """Verdict for one snapshot row."""

    campaign_item_id: UUID
    stock_item_id: UUID
    sku: str
    name: str
    system_qty: int
    counted_qty: int
    delta: int
    verdict: Verdict

    @property
    def needs_adjustment(self) -> bool:
        return self.delta != 0

    @property
    def adjustment_direction(self) -> MovementDirection | None:
        if self.delta > 0:
            return MovementDirection.INCREASE
        if self.delta < 0:
            return MovementDirection.DECREASE
        return None

    @property
    def adjustment_qty(self) -> int:
        return abs(self.delta)


def reconcile_item(
    item: CampaignItemInfo,
    tolerance: Decimal = DEFAULT_TOLERANCE,
) -> ItemReconciliation:
    """
    Build the verdict for one counted snapshot row.

    Raises:
        ValueError: If the item has no counted quantity.
    """
    if item.counted_qty is None:
        raise ValueError(f"Campaign item {item.id} has no counted quantity")
    return ItemReconciliation(
        campaign_item_id=item.id,
        stock_item_id=item.stock_item_id,
        sku=item.sku,
        name=item.name,
        system_qty=item.system_qty,
        counted_qty=item.counted_qty,
        delta=item.counted_qty - item.system_qty,
        verdict=classify_delta(item.system_qty, item.counted_qty, tolerance),
    )


@dataclass(frozen=True)
class ReconciliationReport:
    """
    Campaign audit report.

    ``uncounted`` lists snapshot rows with no counted value; they carry no
    verdict and are excluded from the totals.
    """

    items: tuple[ItemReconciliation, ...]
    uncounted: tuple[CampaignItemInfo, ...] = ()
    tolerance: Decimal = DEFAULT_TOLERANCE

    @property
    def total_system_qty(self) -> int:
        return sum(item.system_qty for item in self.items)

    @property
    def total_counted_qty(self) -> int:
        return sum(item.counted_qty for item in self.items)

    @property
    def net_delta(self) -> int:
        return self.total_counted_qty - self.total_system_qty

    @property
    def anomalies(self) -> tuple[ItemReconciliation, ...]:
        return tuple(item for item in self.items if item.delta != 0)

    @property
    def anomaly_count(self) -> int:
        return len(self.anomalies)

    @property
    def verdict_counts(self) -> dict[Verdict, int]:
        counts = {verdict: 0 for verdict in Verdict}
        for item in self.items:
            counts[item.verdict] += 1
        return counts

    def for_stock_item(self, stock_item_id: UUID) -> ItemReconciliation | None:
        for item in self.items:
            if item.stock_item_id == stock_item_id:
                return item
        return None

    def summary(self) -> dict:
        """JSON-ready summary used in audit details and logs."""
        counts = self.verdict_counts
        return {
            "items": len(self.items),
            "uncounted": len(self.uncounted),
            "total_system_qty": self.total_system_qty,
            "total_counted_qty": self.total_counted_qty,
            "anomalies": self.anomaly_count,
            "normal": counts[Verdict.NORMAL],
            "consistent": counts[Verdict.CONSISTENT],
            "inconsistent": counts[Verdict.INCONSISTENT],
        }


def build_report(
    items: list[CampaignItemInfo],
    tolerance: Decimal = DEFAULT_TOLERANCE,
) -> ReconciliationReport:
    """Build the report for a set of snapshot rows, ordered by SKU."""
    ordered = sorted(items, key=lambda item: (item.sku, str(item.id)))
    return ReconciliationReport(
        items=tuple(reconcile_item(item, tolerance) for item in ordered if item.is_counted),
        uncounted=tuple(item for item in ordered if not item.is_counted),
        tolerance=tolerance,
    )


@dataclass(frozen=True)
class AppliedAdjustment:
    """One ledger adjustment issued during reconciliation."""

    stock_item_id: UUID
    sku: str
    direction: MovementDirection
    qty: int
    movement_id: UUID
    resulting_level: int


@dataclass(frozen=True)
class ReconciliationFailure:
    """One adjustment that could not be applied; its savepoint was rolled back."""

    stock_item_id: UUID
    sku: str
    delta: int
    error_code: str
    message: str


@dataclass(frozen=True)
class ReconciliationOutcome:
    """Everything a campaign closure produced."""

    campaign_id: UUID
    report: ReconciliationReport
    sync_stock: bool
    adjustments: tuple[AppliedAdjustment, ...] = ()
    failures: tuple[ReconciliationFailure, ...] = ()

    @property
    def has_failures(self) -> bool:
        return len(self.failures) > 0
