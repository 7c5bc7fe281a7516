"""
AuditLedger -- signed, append-only audit log.

Responsibility:
    Appends one signed ``AuditLogEntry`` per state-changing operation,
    verifies individual entries, walks the whole log for compliance
    validation, and answers trace queries for forensic review.

Architecture position:
    Kernel > Services -- imperative shell, called by StockLedger,
    CampaignService, ReconciliationEngine and the payment webhook processor.

Invariants enforced:
    - signature = SHA256(canonical_json(entry without signature) + secret),
      using the secret of the entry's own ``key_version``.
    - ``seq`` is allocated by SequenceService (locked counter row).
    - ``prev_signature`` equals the signature of the entry with the previous
      ``seq``; the genesis entry has None.
    - Append-only: entries are never modified or deleted (ORM listeners).

Failure modes:
    - SignatureMismatchError from ``validate_chain()`` on the first entry
      whose signature or chain link does not verify.  Logged CRITICAL and
      raised; never auto-corrected.
    - SigningKeyNotFoundError when an entry names an unregistered key version.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.types import AuditSeverity
from stock_kernel.exceptions import SignatureMismatchError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.audit_log import AuditLogEntry
from stock_kernel.services.sequence_service import SequenceService
from stock_kernel.utils.hashing import (
    audit_signing_payload,
    canonicalize_json,
    compute_entry_signature,
    signatures_match,
)
from stock_kernel.utils.keyring import SigningKeyProvider

logger = get_logger("services.audit_ledger")


def resource_key(kind: str, identifier: Any) -> str:
    """Build the ``resource`` string of an audit entry, e.g. ``campaign:<id>``."""
    return f"{kind}:{identifier}"


@dataclass(frozen=True)
class AuditTraceEntry:
    """A single entry in an audit trace."""

    seq: int
    action: str
    severity: AuditSeverity
    timestamp: datetime
    actor_id: UUID | None
    details: dict[str, Any]
    signature: str


@dataclass(frozen=True)
class AuditTrace:
    """All audit entries for one resource, in ``seq`` order."""

    resource: str
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def actions(self) -> tuple[str, ...]:
        return tuple(entry.action for entry in self.entries)

    @property
    def last_action(self) -> str | None:
        return self.entries[-1].action if self.entries else None


class AuditLedger:
    """
    Service for appending and verifying signed audit entries.

    Contract:
        ``append()`` is the only way rows reach ``audit_log_entries``.  The
        signing secret comes from the injected ``SigningKeyProvider``; each
        entry records the key version it was signed with so that rotation
        never invalidates history.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(
        self,
        session: Session,
        key_provider: SigningKeyProvider,
        clock: Clock | None = None,
    ):
        self._session = session
        self._keys = key_provider
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_signature(self) -> str | None:
        last_entry = self._session.execute(
            select(AuditLogEntry).order_by(AuditLogEntry.seq.desc()).limit(1)
        ).scalar_one_or_none()

        return last_entry.signature if last_entry else None

    @staticmethod
    def _signing_payload(entry: AuditLogEntry) -> dict:
        return audit_signing_payload(
            entry_id=entry.id,
            seq=entry.seq,
            tenant_id=entry.tenant_id,
            actor_id=entry.actor_id,
            timestamp=entry.timestamp,
            action=entry.action,
            resource=entry.resource,
            severity=entry.severity,
            details=entry.details,
            prev_signature=entry.prev_signature,
            key_version=entry.key_version,
        )

    def append(
        self,
        tenant_id: UUID | None,
        action: str,
        resource: str,
        severity: AuditSeverity,
        actor_id: UUID | None,
        details: dict[str, Any] | None = None,
    ) -> AuditLogEntry:
        """
        Append one signed entry.

        ``details`` is normalized through canonical JSON before it is stored
        (UUIDs, Decimals and datetimes become strings), so the stored value
        is exactly what was signed.

        Postconditions:
            - A new entry is flushed with the next ``seq``, linked to the
              previous entry and signed with the active key version.
        """
        # Counter row lock first: the chain head is read under it.
        seq = self._sequence_service.next_value(SequenceService.AUDIT_LOG)
        prev_signature = self._get_last_signature()

        key_version = self._keys.active_version
        entry = AuditLogEntry(
            id=uuid4(),
            seq=seq,
            tenant_id=tenant_id,
            actor_id=actor_id,
            timestamp=self._clock.now(),
            action=action,
            resource=resource,
            severity=AuditSeverity(severity).value,
            details=json.loads(canonicalize_json(details or {})),
            prev_signature=prev_signature,
            key_version=key_version,
        )
        entry.signature = compute_entry_signature(
            self._signing_payload(entry),
            self._keys.secret_for(key_version),
        )

        self._session.add(entry)
        self._session.flush()

        logger.info(
            "audit_entry_appended",
            extra={
                "seq": seq,
                "action": action,
                "resource": resource,
                "severity": entry.severity,
                "key_version": key_version,
            },
        )
        return entry

    def verify(self, entry: AuditLogEntry) -> bool:
        """
        Recompute an entry's signature with the secret of its key version.

        Raises:
            SigningKeyNotFoundError: If the entry's key version is unknown.
        """
        expected = compute_entry_signature(
            self._signing_payload(entry),
            self._keys.secret_for(entry.key_version),
        )
        if signatures_match(expected, entry.signature):
            return True

        logger.critical(
            "audit_signature_mismatch",
            extra={
                "entry_id": str(entry.id),
                "seq": entry.seq,
                "action": entry.action,
                "key_version": entry.key_version,
            },
        )
        return False

    def validate_chain(self) -> bool:
        """
        Compliance walk over every entry in ``seq`` order.

        Returns True when every signature verifies and every
        ``prev_signature`` matches its predecessor.

        Raises:
            SignatureMismatchError: On the first entry that fails.
        """
        entries = self._session.execute(
            select(AuditLogEntry).order_by(AuditLogEntry.seq)
        ).scalars().all()

        previous: AuditLogEntry | None = None
        for entry in entries:
            if not self.verify(entry):
                raise SignatureMismatchError(str(entry.id), entry.seq, "signature does not verify")

            expected_prev = previous.signature if previous is not None else None
            if entry.prev_signature != expected_prev:
                logger.critical(
                    "audit_chain_broken",
                    extra={
                        "entry_id": str(entry.id),
                        "seq": entry.seq,
                        "expected_prev": expected_prev,
                        "actual_prev": entry.prev_signature,
                    },
                )
                raise SignatureMismatchError(
                    str(entry.id),
                    entry.seq,
                    "prev_signature does not match the preceding entry",
                )
            previous = entry

        logger.info("audit_chain_valid", extra={"entry_count": len(entries)})
        return True

    def get_trace(self, resource: str) -> AuditTrace:
        """All entries recorded against ``resource``, oldest first."""
        entries = self._session.execute(
            select(AuditLogEntry)
            .where(AuditLogEntry.resource == resource)
            .order_by(AuditLogEntry.seq)
        ).scalars().all()

        return AuditTrace(
            resource=resource,
            entries=tuple(
                AuditTraceEntry(
                    seq=entry.seq,
                    action=entry.action,
                    severity=AuditSeverity(entry.severity),
                    timestamp=entry.timestamp,
                    actor_id=entry.actor_id,
                    details=entry.details or {},
                    signature=entry.signature,
                )
                for entry in entries
            ),
        )

    def get_recent_entries(
        self,
        tenant_id: UUID | None = None,
        limit: int = 100,
    ) -> list[AuditLogEntry]:
        """Most recent entries first, optionally restricted to one tenant."""
        stmt = select(AuditLogEntry)
        if tenant_id is not None:
            stmt = stmt.where(AuditLogEntry.tenant_id == tenant_id)
        result = self._session.execute(
            stmt.order_by(AuditLogEntry.seq.desc()).limit(limit)
        )
        return list(result.scalars().all())
