"""
Module: stock_kernel.models.stock_item
Responsibility: ORM persistence for the stock ledger -- the per-item current
    level and its append-only movement history.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/types.py only.

Invariants enforced:
    - current_level >= 0 (CHECK constraint; StockLedger refuses first).
    - current_level is mutated only by StockLedger.adjust and the bulk
      operations built on it; ``version`` is the optimistic lock counter.
    - Movements are append-only (ORM listeners in db/immutability.py).
    - Movement.resulting_level is captured when the movement is written and
      never recomputed.

Failure modes:
    - IntegrityError on duplicate (tenant_id, sku).
    - StaleDataError when a concurrent transaction bumped ``version``
      (mapped to OptimisticLockError by StockLedger).
    - ImmutabilityViolationError on any Movement UPDATE/DELETE.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import Base, TrackedBase, UUIDString
from stock_kernel.domain.types import MovementDirection, MovementType


class StockItem(TrackedBase):
    """
    Catalog item with its authoritative current quantity.

    Contract:
        Owned by a tenant.  Removing an item from the catalog is a soft
        delete (``is_active = False``) so that its movement history and any
        campaign snapshots referencing it remain intact.
    """

    __tablename__ = "stock_items"

    __table_args__ = (
        UniqueConstraint("tenant_id", "sku", name="uq_stock_item_tenant_sku"),
        CheckConstraint("current_level >= 0", name="ck_stock_item_level_non_negative"),
        Index("idx_stock_item_tenant_active", "tenant_id", "is_active"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("tenants.id"),
        nullable=False,
    )

    sku: Mapped[str] = mapped_column(String(64), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    current_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Reorder alert level
    min_threshold: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    deactivated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    movements: Mapped[list["Movement"]] = relationship(
        order_by="Movement.created_at",
        viewonly=True,
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<StockItem {self.sku}: {self.current_level}>"

    @property
    def is_below_threshold(self) -> bool:
        return self.current_level < self.min_threshold


class Movement(Base):
    """
    One ledger mutation of one stock item.

    Contract:
        Exactly one Movement is appended per ledger mutation.  ``qty`` is
        always positive; ``direction`` carries the sign.  ``resulting_level``
        is the item's level immediately after this movement.
    """

    __tablename__ = "stock_movements"

    __table_args__ = (
        CheckConstraint("qty > 0", name="ck_movement_qty_positive"),
        CheckConstraint("resulting_level >= 0", name="ck_movement_level_non_negative"),
        Index("idx_movement_item_created", "stock_item_id", "created_at"),
        Index("idx_movement_tenant_created", "tenant_id", "created_at"),
        Index("idx_movement_reference", "reference"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    stock_item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("stock_items.id"),
        nullable=False,
    )

    type: Mapped[MovementType] = mapped_column(String(20), nullable=False)

    direction: Mapped[MovementDirection] = mapped_column(String(20), nullable=False)

    qty: Mapped[int] = mapped_column(Integer, nullable=False)

    reason: Mapped[str] = mapped_column(String(255), nullable=False)

    # Invoice id, delivery note number or campaign id that caused the movement
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    resulting_level: Mapped[int] = mapped_column(Integer, nullable=False)

    stock_item: Mapped[StockItem] = relationship()

    def __repr__(self) -> str:
        return f"<Movement {self.type} {self.direction} {self.qty} -> {self.resulting_level}>"

    @property
    def signed_qty(self) -> int:
        if self.direction == MovementDirection.DECREASE:
            return -self.qty
        return self.qty
