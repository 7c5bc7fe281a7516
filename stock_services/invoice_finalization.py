"""
InvoiceFinalizationHandler -- stock decrement on invoice finalization.

The invoicing module calls ``on_invoice_status_changed`` whenever an
invoice's status changes.  Only the transition INTO a finalized status
decrements stock; every other transition is ignored.  The decrement itself
is idempotent per invoice, so a replayed notification is harmless.
"""

from collections.abc import Iterable
from uuid import UUID

from stock_kernel.domain.dtos import InvoiceLine, MovementRecord
from stock_kernel.logging_config import get_logger
from stock_kernel.services.stock_ledger import StockLedger

logger = get_logger("services.invoice_finalization")

FINALIZED_STATUSES = frozenset({"VALIDATED"})


class InvoiceFinalizationHandler:
    """Bridges invoice status changes to ``StockLedger.decrement_for_invoice``."""

    def __init__(
        self,
        ledger: StockLedger,
        finalized_statuses: Iterable[str] = FINALIZED_STATUSES,
    ):
        self._ledger = ledger
        self._finalized = frozenset(s.upper() for s in finalized_statuses)

    def is_finalizing(self, old_status: str | None, new_status: str | None) -> bool:
        old = (old_status or "").upper()
        new = (new_status or "").upper()
        return new in self._finalized and old not in self._finalized

    def on_invoice_status_changed(
        self,
        tenant_id: UUID,
        invoice_id: str,
        old_status: str | None,
        new_status: str | None,
        lines: list[InvoiceLine],
        actor_id: UUID,
    ) -> list[MovementRecord] | None:
        """
        Decrement stock if this change finalizes the invoice.

        Returns the invoice's OUT movements, or None when the transition
        does not finalize the invoice.

        Raises:
            InvoiceStockError: If any line cannot be decremented; nothing
                was applied.
        """
        if not self.is_finalizing(old_status, new_status):
            logger.debug(
                "invoice_transition_ignored",
                extra={
                    "invoice_id": str(invoice_id),
                    "old_status": old_status,
                    "new_status": new_status,
                },
            )
            return None

        movements = self._ledger.decrement_for_invoice(tenant_id, invoice_id, lines, actor_id)
        logger.info(
            "invoice_stock_decremented",
            extra={"invoice_id": str(invoice_id), "lines": len(movements)},
        )
        return movements
