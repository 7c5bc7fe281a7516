"""
StockLedger -- the authoritative per-item quantity store.

Responsibility:
    The sole mutation point of ``StockItem.current_level``.  Every mutation
    appends exactly one Movement carrying the level it produced, and every
    public operation appends one signed audit entry.

Architecture position:
    Kernel > Services -- imperative shell.  Called directly by the route
    layer, by the ReconciliationEngine (one adjustment per counted item) and
    by the invoice finalization handler.

Invariants enforced:
    - current_level never goes below zero: a decrease that would do so
      raises InsufficientStockError and nothing is written.
    - The item row is locked (``SELECT ... FOR UPDATE``) before it is read,
      and the mapper's ``version_id_col`` turns a lost update into
      OptimisticLockError.
    - IN always increases, OUT always decreases, ADJUSTMENT names its
      direction explicitly.
    - Invoice decrements and delivery receipts are all-or-nothing under one
      SAVEPOINT.

Failure modes:
    - ValueError for a non-positive quantity or an inconsistent direction.
    - StockItemNotFoundError for a missing or deactivated item.
    - InsufficientStockError, InvoiceStockError, DuplicateSkuError,
      OptimisticLockError.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import (
    InvoiceLine,
    MovementRecord,
    ReceiptLine,
    StockItemInfo,
)
from stock_kernel.domain.types import AuditSeverity, MovementDirection, MovementType
from stock_kernel.exceptions import (
    DuplicateSkuError,
    InsufficientStockError,
    InvoiceStockError,
    OptimisticLockError,
    StockItemNotFoundError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.audit_log import AuditAction
from stock_kernel.models.stock_item import Movement, StockItem
from stock_kernel.services.audit_ledger import AuditLedger, resource_key
from stock_kernel.services.base import BaseService

logger = get_logger("services.stock_ledger")


def invoice_reference(invoice_id) -> str:
    return f"invoice:{invoice_id}"


def delivery_reference(delivery_ref: str) -> str:
    return f"delivery:{delivery_ref}"


def _resolve_direction(
    movement_type: MovementType,
    direction: MovementDirection | None,
) -> MovementDirection:
    implied = {
        MovementType.IN: MovementDirection.INCREASE,
        MovementType.OUT: MovementDirection.DECREASE,
    }.get(movement_type)

    if implied is None:
        if direction is None:
            raise ValueError("ADJUSTMENT movements require an explicit direction")
        return MovementDirection(direction)

    if direction is not None and MovementDirection(direction) != implied:
        raise ValueError(
            f"{movement_type.value.upper()} movements always {implied.value}; got {direction}"
        )
    return implied


def _lock_order(lines):
    # Lock rows in stock item id order.
    return sorted(enumerate(lines), key=lambda pair: str(pair[1].stock_item_id))


class StockLedger(BaseService[StockItem]):
    """
    Atomic increment/decrement of stock levels with movement history.

    Non-goals:
        - Does NOT commit; every operation flushes into the caller's
          transaction.
        - Does NOT read campaigns; reconciliation calls ``adjust()``.
    """

    def __init__(
        self,
        session: Session,
        auditor: AuditLedger,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._auditor = auditor
        self._clock = clock or SystemClock()

    # Item access

    def _get_for_update(self, item_id: UUID) -> StockItem:
        item = self.session.execute(
            select(StockItem)
            .where(StockItem.id == item_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if item is None or not item.is_active:
            raise StockItemNotFoundError(str(item_id))
        return item

    def _flush_item(self, item: StockItem) -> None:
        try:
            self.session.flush()
        except StaleDataError as exc:
            logger.warning(
                "stock_item_optimistic_lock_conflict",
                extra={"stock_item_id": str(item.id)},
            )
            raise OptimisticLockError("StockItem", str(item.id)) from exc

    def _apply_movement(
        self,
        item: StockItem,
        movement_type: MovementType,
        direction: MovementDirection,
        qty: int,
        reason: str,
        actor_id: UUID,
        reference: str | None,
    ) -> Movement:
        previous_level = item.current_level
        if direction == MovementDirection.DECREASE:
            if qty > previous_level:
                logger.warning(
                    "stock_insufficient",
                    extra={
                        "stock_item_id": str(item.id),
                        "current_level": previous_level,
                        "requested_qty": qty,
                    },
                )
                raise InsufficientStockError(str(item.id), previous_level, qty)
            new_level = previous_level - qty
        else:
            new_level = previous_level + qty

        item.current_level = new_level
        movement = Movement(
            tenant_id=item.tenant_id,
            stock_item_id=item.id,
            type=movement_type.value,
            direction=direction.value,
            qty=qty,
            reason=reason,
            reference=reference,
            actor_id=actor_id,
            created_at=self._clock.now(),
            resulting_level=new_level,
        )
        self.session.add(movement)
        self._flush_item(item)

        logger.info(
            "stock_movement_recorded",
            extra={
                "stock_item_id": str(item.id),
                "movement_id": str(movement.id),
                "type": movement_type.value,
                "direction": direction.value,
                "qty": qty,
                "previous_level": previous_level,
                "resulting_level": new_level,
                "reference": reference,
            },
        )
        return movement

    @staticmethod
    def _validate_qty(qty: int) -> None:
        if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
            raise ValueError(f"Movement quantity must be a positive integer, got {qty!r}")

    # Public operations

    def adjust(
        self,
        item_id: UUID,
        movement_type: MovementType,
        qty: int,
        reason: str,
        actor_id: UUID,
        direction: MovementDirection | None = None,
        reference: str | None = None,
    ) -> MovementRecord:
        """
        Apply one movement to one item.

        Preconditions:
            - ``qty`` is a positive integer.
            - ``direction`` is given for ADJUSTMENT and consistent with
              IN/OUT otherwise.

        Postconditions:
            - ``current_level`` changed by exactly ``qty`` in ``direction``.
            - Exactly one Movement and one MEDIUM audit entry were flushed.

        Raises:
            ValueError, StockItemNotFoundError, InsufficientStockError,
            OptimisticLockError.
        """
        movement_type = MovementType(movement_type)
        self._validate_qty(qty)
        resolved = _resolve_direction(movement_type, direction)

        item = self._get_for_update(item_id)
        previous_level = item.current_level
        movement = self._apply_movement(
            item, movement_type, resolved, qty, reason, actor_id, reference
        )

        self._auditor.append(
            tenant_id=item.tenant_id,
            action=AuditAction.ADJUST_STOCK_ITEM,
            resource=resource_key("stock_item", item.id),
            severity=AuditSeverity.MEDIUM,
            actor_id=actor_id,
            details={
                "movement_id": movement.id,
                "sku": item.sku,
                "type": movement_type.value,
                "direction": resolved.value,
                "qty": qty,
                "reason": reason,
                "reference": reference,
                "previous_level": previous_level,
                "resulting_level": movement.resulting_level,
            },
        )
        return MovementRecord.from_model(movement)

    def decrement_for_invoice(
        self,
        tenant_id: UUID,
        invoice_id: str,
        lines: list[InvoiceLine],
        actor_id: UUID,
    ) -> list[MovementRecord]:
        """
        Decrement stock for every line of a finalized invoice.

        All lines are applied under one SAVEPOINT.  If any line fails, the
        savepoint is rolled back (no line is applied) and InvoiceStockError
        lists every failing line.

        An invoice whose OUT movements already exist is returned as-is, with
        no mutation and no new audit entry.
        """
        reference = invoice_reference(invoice_id)

        existing = self.session.execute(
            select(Movement)
            .where(
                Movement.tenant_id == tenant_id,
                Movement.reference == reference,
                Movement.type == MovementType.OUT.value,
            )
            .order_by(Movement.created_at, Movement.id)
        ).scalars().all()
        if existing:
            logger.info(
                "invoice_already_decremented",
                extra={"invoice_id": str(invoice_id), "movement_count": len(existing)},
            )
            return [MovementRecord.from_model(m) for m in existing]

        if not lines:
            return []
        for line in lines:
            self._validate_qty(line.qty)

        movements: list[Movement] = []
        failures: list[dict] = []

        savepoint = self.session.begin_nested()
        try:
            for index, line in _lock_order(lines):
                try:
                    item = self._get_for_update(line.stock_item_id)
                    if item.tenant_id != tenant_id:
                        raise StockItemNotFoundError(str(line.stock_item_id))
                    movements.append(
                        self._apply_movement(
                            item,
                            MovementType.OUT,
                            MovementDirection.DECREASE,
                            line.qty,
                            f"Invoice {invoice_id}",
                            actor_id,
                            reference,
                        )
                    )
                except (StockItemNotFoundError, InsufficientStockError) as exc:
                    failures.append(
                        {
                            "line": index,
                            "stock_item_id": str(line.stock_item_id),
                            "qty": line.qty,
                            "code": exc.code,
                            "message": str(exc),
                        }
                    )
        except Exception:
            savepoint.rollback()
            raise

        if failures:
            savepoint.rollback()
            logger.warning(
                "invoice_decrement_failed",
                extra={"invoice_id": str(invoice_id), "failed_lines": len(failures)},
            )
            raise InvoiceStockError(str(invoice_id), failures)

        savepoint.commit()

        records = [MovementRecord.from_model(m) for m in movements]
        self._auditor.append(
            tenant_id=tenant_id,
            action=AuditAction.DECREMENT_INVOICE,
            resource=resource_key("invoice", invoice_id),
            severity=AuditSeverity.MEDIUM,
            actor_id=actor_id,
            details={
                "invoice_id": str(invoice_id),
                "lines": [
                    {
                        "stock_item_id": r.stock_item_id,
                        "qty": r.qty,
                        "movement_id": r.id,
                        "resulting_level": r.resulting_level,
                    }
                    for r in records
                ],
            },
        )
        return records

    def receive_bulk(
        self,
        tenant_id: UUID,
        reference: str,
        lines: list[ReceiptLine],
        actor_id: UUID,
    ) -> list[MovementRecord]:
        """
        Record a delivery note: one IN movement per line, all or nothing.

        Raises:
            StockItemNotFoundError: If any line names an unknown item; no
                line is applied.
        """
        if not lines:
            raise ValueError("A delivery must contain at least one line")
        for line in lines:
            self._validate_qty(line.qty)

        movement_reference = delivery_reference(reference)
        movements: list[Movement] = []

        savepoint = self.session.begin_nested()
        try:
            for _, line in _lock_order(lines):
                item = self._get_for_update(line.stock_item_id)
                if item.tenant_id != tenant_id:
                    raise StockItemNotFoundError(str(line.stock_item_id))
                movements.append(
                    self._apply_movement(
                        item,
                        MovementType.IN,
                        MovementDirection.INCREASE,
                        line.qty,
                        f"Delivery {reference}",
                        actor_id,
                        movement_reference,
                    )
                )
        except Exception:
            savepoint.rollback()
            raise
        savepoint.commit()

        records = [MovementRecord.from_model(m) for m in movements]
        self._auditor.append(
            tenant_id=tenant_id,
            action=AuditAction.RECEIVE_DELIVERY,
            resource=resource_key("delivery", reference),
            severity=AuditSeverity.MEDIUM,
            actor_id=actor_id,
            details={
                "reference": reference,
                "total_qty": sum(r.qty for r in records),
                "lines": [
                    {"stock_item_id": r.stock_item_id, "qty": r.qty, "movement_id": r.id}
                    for r in records
                ],
            },
        )
        return records

    # Catalog maintenance

    def create_item(
        self,
        tenant_id: UUID,
        sku: str,
        name: str,
        actor_id: UUID,
        min_threshold: int = 0,
        initial_level: int = 0,
    ) -> StockItemInfo:
        """
        Add an item to the tenant's catalog.

        A positive ``initial_level`` is recorded as an IN movement so that
        the level is always explained by movement history.
        """
        sku = sku.strip()
        if not sku or not name.strip():
            raise ValueError("sku and name are required")
        if min_threshold < 0 or initial_level < 0:
            raise ValueError("min_threshold and initial_level must be non-negative")

        existing = self.session.execute(
            select(StockItem.id).where(StockItem.tenant_id == tenant_id, StockItem.sku == sku)
        ).scalar_one_or_none()
        if existing is not None:
            raise DuplicateSkuError(str(tenant_id), sku)

        item = StockItem(
            tenant_id=tenant_id,
            sku=sku,
            name=name.strip(),
            current_level=0,
            min_threshold=min_threshold,
            is_active=True,
            created_at=self._clock.now(),
            created_by_id=actor_id,
        )
        savepoint = self.session.begin_nested()
        try:
            self.session.add(item)
            self.session.flush()
        except IntegrityError as exc:
            savepoint.rollback()
            raise DuplicateSkuError(str(tenant_id), sku) from exc
        savepoint.commit()

        if initial_level > 0:
            self._apply_movement(
                item,
                MovementType.IN,
                MovementDirection.INCREASE,
                initial_level,
                "Initial stock",
                actor_id,
                None,
            )

        self._auditor.append(
            tenant_id=tenant_id,
            action=AuditAction.CREATE_STOCK_ITEM,
            resource=resource_key("stock_item", item.id),
            severity=AuditSeverity.LOW,
            actor_id=actor_id,
            details={
                "sku": sku,
                "name": item.name,
                "min_threshold": min_threshold,
                "initial_level": initial_level,
            },
        )
        logger.info(
            "stock_item_created",
            extra={"stock_item_id": str(item.id), "sku": sku, "tenant_id": str(tenant_id)},
        )
        return StockItemInfo.from_model(item)

    def deactivate_item(self, item_id: UUID, actor_id: UUID) -> StockItemInfo:
        """
        Remove an item from the catalog (soft delete).

        History and campaign snapshots referencing the item stay intact;
        later ledger operations on it raise StockItemNotFoundError.
        """
        item = self._get_for_update(item_id)
        item.is_active = False
        item.deactivated_at = self._clock.now()
        self._flush_item(item)

        self._auditor.append(
            tenant_id=item.tenant_id,
            action=AuditAction.DEACTIVATE_STOCK_ITEM,
            resource=resource_key("stock_item", item.id),
            severity=AuditSeverity.LOW,
            actor_id=actor_id,
            details={"sku": item.sku, "final_level": item.current_level},
        )
        logger.info("stock_item_deactivated", extra={"stock_item_id": str(item.id)})
        return StockItemInfo.from_model(item)
