"""
ReconciliationEngine -- diff counted vs. system quantities and adjust.

Responsibility:
    Turns the frozen snapshot rows of a campaign into a verdict report and,
    when stock sync is requested, issues one ADJUSTMENT per non-zero delta
    through the StockLedger.

Architecture position:
    Kernel > Services -- imperative shell around the pure verdict logic in
    ``stock_kernel.domain.reconciliation``.  Called only by
    CampaignService.validate().

Invariants enforced:
    - Each adjustment runs in its own SAVEPOINT.  A failing item rolls back
      its own movement and audit entry only; the remaining items continue.
    - Adjustments are processed sequentially, in SKU order, in the caller's
      transaction.
    - One RECONCILE_CAMPAIGN summary entry per run: MEDIUM, or HIGH when any
      adjustment failed.
    - Deltas come from the frozen ``system_qty``, never the live level.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from stock_kernel.domain.dtos import CampaignInfo, CampaignItemInfo
from stock_kernel.domain.reconciliation import (
    DEFAULT_TOLERANCE,
    AppliedAdjustment,
    ReconciliationFailure,
    ReconciliationOutcome,
    build_report,
)
from stock_kernel.domain.types import AuditSeverity, MovementType
from stock_kernel.exceptions import ConcurrencyError, LedgerError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.audit_log import AuditAction
from stock_kernel.services.audit_ledger import AuditLedger, resource_key
from stock_kernel.services.stock_ledger import StockLedger

logger = get_logger("services.reconciliation")


def campaign_reference(campaign_id) -> str:
    return f"campaign:{campaign_id}"


class ReconciliationEngine:
    """
    Applies a campaign's verdicts to the stock ledger.

    Non-goals:
        - Does NOT change campaign status; CampaignService owns the
          transition to VALIDATED.
        - Does NOT commit.
    """

    def __init__(
        self,
        session: Session,
        ledger: StockLedger,
        auditor: AuditLedger,
        tolerance: Decimal = DEFAULT_TOLERANCE,
    ):
        self._session = session
        self._ledger = ledger
        self._auditor = auditor
        self._tolerance = tolerance

    @property
    def tolerance(self) -> Decimal:
        return self._tolerance

    def reconcile(
        self,
        campaign: CampaignInfo,
        items: list[CampaignItemInfo],
        sync_stock: bool,
        actor_id: UUID,
    ) -> ReconciliationOutcome:
        """
        Build the report and, if ``sync_stock``, adjust every item whose
        counted quantity differs from its snapshot.

        Preconditions:
            - Every item has a counted quantity (CampaignService checks).
        """
        report = build_report(items, self._tolerance)
        adjustments: list[AppliedAdjustment] = []
        failures: list[ReconciliationFailure] = []

        if sync_stock:
            for item in report.anomalies:
                savepoint = self._session.begin_nested()
                try:
                    movement = self._ledger.adjust(
                        item.stock_item_id,
                        MovementType.ADJUSTMENT,
                        item.adjustment_qty,
                        reason=f"Audit campaign {campaign.name}",
                        actor_id=actor_id,
                        direction=item.adjustment_direction,
                        reference=campaign_reference(campaign.id),
                    )
                    savepoint.commit()
                except (LedgerError, ConcurrencyError) as exc:
                    savepoint.rollback()
                    logger.warning(
                        "reconciliation_adjustment_failed",
                        extra={
                            "campaign_id": str(campaign.id),
                            "stock_item_id": str(item.stock_item_id),
                            "sku": item.sku,
                            "delta": item.delta,
                            "error_code": exc.code,
                        },
                    )
                    failures.append(
                        ReconciliationFailure(
                            stock_item_id=item.stock_item_id,
                            sku=item.sku,
                            delta=item.delta,
                            error_code=exc.code,
                            message=str(exc),
                        )
                    )
                    continue
                except Exception:
                    savepoint.rollback()
                    raise

                adjustments.append(
                    AppliedAdjustment(
                        stock_item_id=item.stock_item_id,
                        sku=item.sku,
                        direction=movement.direction,
                        qty=movement.qty,
                        movement_id=movement.id,
                        resulting_level=movement.resulting_level,
                    )
                )

        severity = AuditSeverity.HIGH if failures else AuditSeverity.MEDIUM
        self._auditor.append(
            tenant_id=campaign.tenant_id,
            action=AuditAction.RECONCILE_CAMPAIGN,
            resource=resource_key("campaign", campaign.id),
            severity=severity,
            actor_id=actor_id,
            details={
                "sync_stock": sync_stock,
                "tolerance": self._tolerance,
                "report": report.summary(),
                "adjustments_applied": len(adjustments),
                "failures": [
                    {
                        "stock_item_id": f.stock_item_id,
                        "sku": f.sku,
                        "delta": f.delta,
                        "error_code": f.error_code,
                        "message": f.message,
                    }
                    for f in failures
                ],
            },
        )

        logger.info(
            "campaign_reconciled",
            extra={
                "campaign_id": str(campaign.id),
                "sync_stock": sync_stock,
                "items": len(report.items),
                "anomalies": report.anomaly_count,
                "adjustments_applied": len(adjustments),
                "failures": len(failures),
            },
        )

        return ReconciliationOutcome(
            campaign_id=campaign.id,
            report=report,
            sync_stock=sync_stock,
            adjustments=tuple(adjustments),
            failures=tuple(failures),
        )
