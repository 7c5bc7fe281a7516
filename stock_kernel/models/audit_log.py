"""
Module: stock_kernel.models.audit_log
Responsibility: ORM persistence for the signed, append-only audit log.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/types.py only.

Invariants enforced:
    - Audit entries are write-once; no UPDATE or DELETE (ORM listeners).
    - signature = SHA256(canonical_json(entry without signature) + secret),
      where the secret is looked up by ``key_version``.
    - prev_signature links each entry to its predecessor in ``seq`` order.
    - seq is monotonically increasing, allocated by SequenceService.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - SignatureMismatchError when compliance validation finds a bad entry.

Audit relevance:
    AuditLogEntry IS the history.  No other table claims to represent
    "who did what when".
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, BigInteger, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base, UUIDString
from stock_kernel.domain.types import AuditSeverity


class AuditAction:
    """Well-known audit actions (verb + resource type)."""

    CREATE_STOCK_ITEM = "CREATE_STOCK_ITEM"
    DEACTIVATE_STOCK_ITEM = "DEACTIVATE_STOCK_ITEM"
    ADJUST_STOCK_ITEM = "ADJUST_STOCK_ITEM"
    RECEIVE_DELIVERY = "RECEIVE_DELIVERY"
    DECREMENT_INVOICE = "DECREMENT_INVOICE"

    CREATE_CAMPAIGN = "CREATE_CAMPAIGN"
    UPDATE_CAMPAIGN_ITEM = "UPDATE_CAMPAIGN_ITEM"
    SUSPEND_CAMPAIGN = "SUSPEND_CAMPAIGN"
    RESUME_CAMPAIGN = "RESUME_CAMPAIGN"
    CANCEL_CAMPAIGN = "CANCEL_CAMPAIGN"
    VALIDATE_CAMPAIGN = "VALIDATE_CAMPAIGN"
    RECONCILE_CAMPAIGN = "RECONCILE_CAMPAIGN"

    RECORD_PAYMENT = "RECORD_PAYMENT"
    RECORD_PAYMENT_FAILURE = "RECORD_PAYMENT_FAILURE"


class AuditLogEntry(Base):
    """
    One signed record of one state-changing operation.

    Non-goals:
        - The model does not compute or check signatures; that is the
          AuditLedger's job.
    """

    __tablename__ = "audit_log_entries"

    __table_args__ = (
        Index("idx_audit_log_tenant_ts", "tenant_id", "timestamp"),
        Index("idx_audit_log_resource", "resource"),
        Index("idx_audit_log_action", "action"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    # None for platform-level entries
    tenant_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    actor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    action: Mapped[str] = mapped_column(String(60), nullable=False)

    resource: Mapped[str] = mapped_column(String(100), nullable=False)

    severity: Mapped[AuditSeverity] = mapped_column(String(10), nullable=False)

    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    prev_signature: Mapped[str | None] = mapped_column(String(64), nullable=True)

    key_version: Mapped[str] = mapped_column(String(32), nullable=False)

    signature: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditLogEntry #{self.seq} {self.action} {self.resource}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_signature is None
