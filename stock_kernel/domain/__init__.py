"""Pure domain layer: enums, DTOs, verdict logic, clock.  No I/O."""

from stock_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from stock_kernel.domain.counts import parse_counted_qty
from stock_kernel.domain.reconciliation import (
    DEFAULT_TOLERANCE,
    ReconciliationReport,
    build_report,
    classify_delta,
)
from stock_kernel.domain.types import (
    AuditSeverity,
    CampaignStatus,
    MovementDirection,
    MovementType,
    Verdict,
)

__all__ = [
    "AuditSeverity",
    "CampaignStatus",
    "Clock",
    "DEFAULT_TOLERANCE",
    "DeterministicClock",
    "MovementDirection",
    "MovementType",
    "ReconciliationReport",
    "SystemClock",
    "Verdict",
    "build_report",
    "classify_delta",
    "parse_counted_qty",
]
