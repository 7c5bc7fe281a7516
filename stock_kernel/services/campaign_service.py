"""
CampaignService -- the audit campaign state machine.

Responsibility:
    Opens campaigns (freezing a snapshot of every active catalog item),
    records counted quantities, drives the DRAFT/SUSPENDED/CANCELLED/VALIDATED
    lifecycle, and closes campaigns through the ReconciliationEngine.

Architecture position:
    Kernel > Services -- imperative shell.  The route layer and the count
    writers call it; it calls the ReconciliationEngine and the AuditLedger.

Lifecycle:
    DRAFT --suspend--> SUSPENDED --resume--> DRAFT
    DRAFT | SUSPENDED --cancel--> CANCELLED        (terminal, no stock effect)
    DRAFT --validate(sync_stock)--> VALIDATED      (terminal, may adjust stock)

Invariants enforced:
    - At most one DRAFT or SUSPENDED campaign per tenant: the tenant row is
      locked before the check, and the partial unique index
      ``uq_campaign_active_per_tenant`` catches anything that slips past.
    - Counted quantities are writable only while DRAFT.
    - validate() on a VALIDATED campaign is a no-op returning the stored
      outcome: no ledger mutation, no audit entry.
    - Exactly one audit entry per state change.

Failure modes:
    - CampaignNotFoundError, CampaignItemNotFoundError, CampaignConflictError,
      InvalidTransitionError, IncompleteCountError, CampaignNotEditableError.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import CampaignInfo, CampaignItemInfo
from stock_kernel.domain.reconciliation import (
    DEFAULT_TOLERANCE,
    AppliedAdjustment,
    ReconciliationFailure,
    ReconciliationOutcome,
    ReconciliationReport,
    build_report,
)
from stock_kernel.domain.types import (
    ACTIVE_CAMPAIGN_STATUSES,
    AuditSeverity,
    CampaignStatus,
    MovementDirection,
    MovementType,
)
from stock_kernel.exceptions import (
    CampaignConflictError,
    CampaignItemNotFoundError,
    CampaignNotEditableError,
    CampaignNotFoundError,
    IncompleteCountError,
    InvalidTransitionError,
    TenantNotFoundError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.audit_log import AuditAction, AuditLogEntry
from stock_kernel.models.campaign import Campaign, CampaignItem
from stock_kernel.models.stock_item import Movement, StockItem
from stock_kernel.models.tenant import Tenant
from stock_kernel.selectors.campaign_selector import CampaignSelector
from stock_kernel.services.audit_ledger import AuditLedger, resource_key
from stock_kernel.services.base import BaseService
from stock_kernel.services.reconciliation_engine import (
    ReconciliationEngine,
    campaign_reference,
)
from stock_kernel.services.stock_ledger import StockLedger

logger = get_logger("services.campaign")


class CampaignService(BaseService[Campaign]):
    """
    Service for the audit campaign lifecycle.

    Non-goals:
        - Does NOT commit; callers own the transaction.
        - Does NOT buffer counts; that is the client-side count batcher.
    """

    def __init__(
        self,
        session: Session,
        auditor: AuditLedger,
        clock: Clock | None = None,
        reconciliation_engine: ReconciliationEngine | None = None,
        tolerance: Decimal = DEFAULT_TOLERANCE,
    ):
        super().__init__(session)
        self._auditor = auditor
        self._clock = clock or SystemClock()
        self._selector = CampaignSelector(session)
        self._engine = reconciliation_engine or ReconciliationEngine(
            session,
            StockLedger(session, auditor, self._clock),
            auditor,
            tolerance,
        )

    # Row access

    def _get_for_update(self, campaign_id: UUID) -> Campaign:
        campaign = self.session.execute(
            select(Campaign)
            .where(Campaign.id == campaign_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if campaign is None:
            raise CampaignNotFoundError(str(campaign_id))
        return campaign

    def _audit(
        self,
        campaign: Campaign,
        action: str,
        severity: AuditSeverity,
        actor_id: UUID,
        details: dict | None = None,
    ) -> None:
        self._auditor.append(
            tenant_id=campaign.tenant_id,
            action=action,
            resource=resource_key("campaign", campaign.id),
            severity=severity,
            actor_id=actor_id,
            details=details,
        )

    # Creation

    def create(self, tenant_id: UUID, name: str, actor_id: UUID) -> CampaignInfo:
        """
        Open a campaign and freeze the tenant's active catalog into it.

        Raises:
            CampaignConflictError: If the tenant already has a DRAFT or
                SUSPENDED campaign.
            TenantNotFoundError: If the tenant does not exist.
        """
        name = (name or "").strip()
        if not name:
            raise ValueError("Campaign name is required")

        # Serializes concurrent creates for the same tenant.
        tenant = self.session.execute(
            select(Tenant).where(Tenant.id == tenant_id).with_for_update()
        ).scalar_one_or_none()
        if tenant is None:
            raise TenantNotFoundError(str(tenant_id))

        active = self.session.execute(
            select(Campaign.id).where(
                Campaign.tenant_id == tenant_id,
                Campaign.status.in_([s.value for s in ACTIVE_CAMPAIGN_STATUSES]),
            )
        ).scalar_one_or_none()
        if active is not None:
            logger.warning(
                "campaign_conflict",
                extra={"tenant_id": str(tenant_id), "active_campaign_id": str(active)},
            )
            raise CampaignConflictError(str(tenant_id), str(active))

        now = self._clock.now()
        campaign = Campaign(
            tenant_id=tenant_id,
            name=name,
            status=CampaignStatus.DRAFT.value,
            created_at=now,
            created_by_id=actor_id,
        )
        savepoint = self.session.begin_nested()
        try:
            self.session.add(campaign)
            self.session.flush()
        except IntegrityError as exc:
            savepoint.rollback()
            logger.warning(
                "campaign_conflict",
                extra={"tenant_id": str(tenant_id), "source": "unique_index"},
            )
            raise CampaignConflictError(str(tenant_id)) from exc
        savepoint.commit()

        stock_items = self.session.execute(
            select(StockItem)
            .where(StockItem.tenant_id == tenant_id, StockItem.is_active.is_(True))
            .order_by(StockItem.sku)
            .execution_options(populate_existing=True)
        ).scalars().all()

        for stock_item in stock_items:
            self.session.add(
                CampaignItem(
                    campaign_id=campaign.id,
                    stock_item_id=stock_item.id,
                    sku=stock_item.sku,
                    name=stock_item.name,
                    system_qty=stock_item.current_level,
                    counted_qty=None,
                )
            )
        self.session.flush()

        self._audit(
            campaign,
            AuditAction.CREATE_CAMPAIGN,
            AuditSeverity.LOW,
            actor_id,
            {"name": name, "item_count": len(stock_items)},
        )
        logger.info(
            "campaign_created",
            extra={
                "campaign_id": str(campaign.id),
                "tenant_id": str(tenant_id),
                "item_count": len(stock_items),
            },
        )
        return CampaignInfo.from_model(campaign)

    # Counting

    def record_count(
        self,
        campaign_id: UUID,
        item_id: UUID,
        counted_qty: int | None,
        actor_id: UUID,
    ) -> CampaignItemInfo:
        """
        Write the counted quantity of one snapshot row.

        ``item_id`` is the stock item id the row was snapshotted from.
        ``counted_qty`` is None (unset) or a non-negative integer.  Writing
        the value already stored changes nothing and is not audited.

        Raises:
            CampaignNotEditableError: If the campaign is not DRAFT.
            CampaignItemNotFoundError: If the item is not in the snapshot.
        """
        if counted_qty is not None and (
            isinstance(counted_qty, bool) or not isinstance(counted_qty, int) or counted_qty < 0
        ):
            raise ValueError(f"counted_qty must be None or a non-negative integer, got {counted_qty!r}")

        campaign = self._get_for_update(campaign_id)
        if campaign.status_enum != CampaignStatus.DRAFT:
            raise CampaignNotEditableError(str(campaign_id), campaign.status_enum.value)

        item = self.session.execute(
            select(CampaignItem).where(
                CampaignItem.campaign_id == campaign_id,
                CampaignItem.stock_item_id == item_id,
            )
        ).scalar_one_or_none()
        if item is None:
            raise CampaignItemNotFoundError(str(campaign_id), str(item_id))

        if item.counted_qty == counted_qty:
            return CampaignItemInfo.from_model(item)

        previous = item.counted_qty
        item.counted_qty = counted_qty
        item.counted_at = self._clock.now()
        item.counted_by_id = actor_id
        self.session.flush()

        self._audit(
            campaign,
            AuditAction.UPDATE_CAMPAIGN_ITEM,
            AuditSeverity.LOW,
            actor_id,
            {
                "stock_item_id": item.stock_item_id,
                "sku": item.sku,
                "previous_counted_qty": previous,
                "counted_qty": counted_qty,
            },
        )
        logger.debug(
            "campaign_count_recorded",
            extra={
                "campaign_id": str(campaign_id),
                "stock_item_id": str(item_id),
                "counted_qty": counted_qty,
            },
        )
        return CampaignItemInfo.from_model(item)

    # Transitions

    def _transition(
        self,
        campaign_id: UUID,
        transition: str,
        allowed_from: tuple[CampaignStatus, ...],
        to_status: CampaignStatus,
        action: str,
        severity: AuditSeverity,
        actor_id: UUID,
    ) -> CampaignInfo:
        campaign = self._get_for_update(campaign_id)
        current = campaign.status_enum
        if current not in allowed_from:
            raise InvalidTransitionError(str(campaign_id), current.value, transition)

        campaign.status = to_status.value
        if to_status.is_terminal:
            campaign.closed_at = self._clock.now()
            campaign.closed_by_id = actor_id
        self.session.flush()

        self._audit(
            campaign,
            action,
            severity,
            actor_id,
            {"from_status": current.value, "to_status": to_status.value},
        )
        logger.info(
            "campaign_status_changed",
            extra={
                "campaign_id": str(campaign_id),
                "from_status": current.value,
                "to_status": to_status.value,
            },
        )
        return CampaignInfo.from_model(campaign)

    def suspend(self, campaign_id: UUID, actor_id: UUID) -> CampaignInfo:
        """Pause counting; counted values are preserved."""
        return self._transition(
            campaign_id,
            "suspend",
            (CampaignStatus.DRAFT,),
            CampaignStatus.SUSPENDED,
            AuditAction.SUSPEND_CAMPAIGN,
            AuditSeverity.LOW,
            actor_id,
        )

    def resume(self, campaign_id: UUID, actor_id: UUID) -> CampaignInfo:
        return self._transition(
            campaign_id,
            "resume",
            (CampaignStatus.SUSPENDED,),
            CampaignStatus.DRAFT,
            AuditAction.RESUME_CAMPAIGN,
            AuditSeverity.LOW,
            actor_id,
        )

    def cancel(self, campaign_id: UUID, actor_id: UUID) -> CampaignInfo:
        """Abandon the campaign.  Terminal; the stock ledger is untouched."""
        return self._transition(
            campaign_id,
            "cancel",
            ACTIVE_CAMPAIGN_STATUSES,
            CampaignStatus.CANCELLED,
            AuditAction.CANCEL_CAMPAIGN,
            AuditSeverity.HIGH,
            actor_id,
        )

    def validate(
        self,
        campaign_id: UUID,
        sync_stock: bool,
        actor_id: UUID,
    ) -> ReconciliationOutcome:
        """
        Close the campaign.

        Postconditions (first call):
            - Status is VALIDATED and the campaign is read-only.
            - If ``sync_stock``, every item with a non-zero delta received an
              ADJUSTMENT (or a collected failure).
            - One RECONCILE_CAMPAIGN and one HIGH VALIDATE_CAMPAIGN entry.

        A repeat call returns the stored outcome and writes nothing.

        Raises:
            InvalidTransitionError: If the campaign is SUSPENDED or CANCELLED.
            IncompleteCountError: If any counted quantity is unset.
        """
        campaign = self._get_for_update(campaign_id)
        current = campaign.status_enum

        if current == CampaignStatus.VALIDATED:
            logger.info(
                "campaign_already_validated",
                extra={"campaign_id": str(campaign_id)},
            )
            return self._stored_outcome(campaign)

        if current != CampaignStatus.DRAFT:
            raise InvalidTransitionError(str(campaign_id), current.value, "validate")

        items = self._selector.get_items(campaign_id)
        missing = [str(item.stock_item_id) for item in items if not item.is_counted]
        if missing:
            logger.warning(
                "campaign_count_incomplete",
                extra={"campaign_id": str(campaign_id), "missing_count": len(missing)},
            )
            raise IncompleteCountError(str(campaign_id), missing)

        outcome = self._engine.reconcile(
            CampaignInfo.from_model(campaign),
            items,
            sync_stock,
            actor_id,
        )

        campaign.status = CampaignStatus.VALIDATED.value
        campaign.closed_at = self._clock.now()
        campaign.closed_by_id = actor_id
        campaign.sync_stock = sync_stock
        self.session.flush()

        self._audit(
            campaign,
            AuditAction.VALIDATE_CAMPAIGN,
            AuditSeverity.HIGH,
            actor_id,
            {
                "from_status": current.value,
                "to_status": CampaignStatus.VALIDATED.value,
                "sync_stock": sync_stock,
                "adjustments_applied": len(outcome.adjustments),
                "failures": len(outcome.failures),
                "report": outcome.report.summary(),
            },
        )
        logger.info(
            "campaign_validated",
            extra={
                "campaign_id": str(campaign_id),
                "sync_stock": sync_stock,
                "adjustments_applied": len(outcome.adjustments),
                "failures": len(outcome.failures),
            },
        )
        return outcome

    def _stored_outcome(self, campaign: Campaign) -> ReconciliationOutcome:
        """Rebuild a closed campaign's outcome from its snapshot, movements
        and reconciliation audit entry."""
        report = build_report(self._selector.get_items(campaign.id), self._engine.tolerance)
        skus = {item.stock_item_id: item.sku for item in report.items}

        movements = self.session.execute(
            select(Movement)
            .where(
                Movement.reference == campaign_reference(campaign.id),
                Movement.type == MovementType.ADJUSTMENT.value,
            )
            .order_by(Movement.created_at, Movement.id)
        ).scalars().all()
        adjustments = tuple(
            AppliedAdjustment(
                stock_item_id=m.stock_item_id,
                sku=skus.get(m.stock_item_id, ""),
                direction=MovementDirection(m.direction),
                qty=m.qty,
                movement_id=m.id,
                resulting_level=m.resulting_level,
            )
            for m in movements
        )

        reconcile_entry = self.session.execute(
            select(AuditLogEntry)
            .where(
                AuditLogEntry.resource == resource_key("campaign", campaign.id),
                AuditLogEntry.action == AuditAction.RECONCILE_CAMPAIGN,
            )
            .order_by(AuditLogEntry.seq.desc())
            .limit(1)
        ).scalar_one_or_none()
        recorded = (reconcile_entry.details or {}).get("failures", []) if reconcile_entry else []
        failures = tuple(
            ReconciliationFailure(
                stock_item_id=UUID(f["stock_item_id"]),
                sku=f["sku"],
                delta=f["delta"],
                error_code=f["error_code"],
                message=f["message"],
            )
            for f in recorded
        )

        return ReconciliationOutcome(
            campaign_id=campaign.id,
            report=report,
            sync_stock=bool(campaign.sync_stock),
            adjustments=adjustments,
            failures=failures,
        )

    # Queries

    def get_campaign(self, campaign_id: UUID) -> CampaignInfo:
        info = self._selector.get(campaign_id)
        if info is None:
            raise CampaignNotFoundError(str(campaign_id))
        return info

    def get_active_campaign(self, tenant_id: UUID) -> CampaignInfo | None:
        return self._selector.get_active(tenant_id)

    def list_campaigns(self, tenant_id: UUID) -> list[CampaignInfo]:
        return self._selector.list_for_tenant(tenant_id)

    def get_items(self, campaign_id: UUID) -> list[CampaignItemInfo]:
        self.get_campaign(campaign_id)
        return self._selector.get_items(campaign_id)

    def get_report(self, campaign_id: UUID) -> ReconciliationReport:
        """
        Verdict report built from the frozen snapshot rows only.

        Works for any status; uncounted rows are listed separately.
        """
        self.get_campaign(campaign_id)
        return build_report(self._selector.get_items(campaign_id), self._engine.tolerance)
