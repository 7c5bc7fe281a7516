"""
Module: stock_kernel.models.campaign
Responsibility: ORM persistence for audit campaigns and their frozen item
    snapshots.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/types.py only.

Invariants enforced:
    - At most one DRAFT or SUSPENDED campaign per tenant: partial unique index
      ``uq_campaign_active_per_tenant`` is the database backstop for the
      locked check in CampaignService.create().
    - CampaignItem.system_qty, sku and name are frozen at creation.
    - Once the campaign is CANCELLED or VALIDATED, the campaign row and all of
      its items are read-only (ORM listeners in db/immutability.py).

Failure modes:
    - IntegrityError on a second active campaign for the same tenant.
    - ImmutabilityViolationError on modification of a terminal campaign or
      of a frozen snapshot column.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import Base, TrackedBase, UUIDString
from stock_kernel.domain.types import CampaignStatus

_ACTIVE_STATUS_PREDICATE = text("status IN ('draft', 'suspended')")


class Campaign(TrackedBase):
    """
    A bounded audit exercise comparing a blind physical count against a
    frozen snapshot of system quantities.
    """

    __tablename__ = "campaigns"

    __table_args__ = (
        Index(
            "uq_campaign_active_per_tenant",
            "tenant_id",
            unique=True,
            sqlite_where=_ACTIVE_STATUS_PREDICATE,
            postgresql_where=_ACTIVE_STATUS_PREDICATE,
        ),
        Index("idx_campaign_tenant_created", "tenant_id", "created_at"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("tenants.id"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    status: Mapped[CampaignStatus] = mapped_column(
        String(20),
        default=CampaignStatus.DRAFT.value,
        nullable=False,
    )

    # Set when the campaign reaches CANCELLED or VALIDATED
    closed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    closed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # The sync flag validation ran with (None until VALIDATED)
    sync_stock: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    items: Mapped[list["CampaignItem"]] = relationship(
        back_populates="campaign",
        order_by="CampaignItem.sku",
    )

    def __repr__(self) -> str:
        return f"<Campaign {self.name}: {self.status}>"

    @property
    def status_enum(self) -> CampaignStatus:
        return CampaignStatus(self.status)

    @property
    def is_active(self) -> bool:
        return self.status_enum.is_active

    @property
    def is_terminal(self) -> bool:
        return self.status_enum.is_terminal


class CampaignItem(Base):
    """
    Snapshot of one stock item at campaign creation, plus its counted value.

    Contract:
        ``stock_item_id`` deliberately has no foreign key: the snapshot must
        survive the item being removed from the catalog, and reports are
        built from ``sku``/``name``/``system_qty`` here, never a live lookup.
        ``counted_qty`` is None until the operator enters a value.
    """

    __tablename__ = "campaign_items"

    __table_args__ = (
        UniqueConstraint("campaign_id", "stock_item_id", name="uq_campaign_item_stock_item"),
        Index("idx_campaign_item_campaign", "campaign_id"),
    )

    campaign_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("campaigns.id"),
        nullable=False,
    )

    stock_item_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    sku: Mapped[str] = mapped_column(String(64), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    system_qty: Mapped[int] = mapped_column(Integer, nullable=False)

    counted_qty: Mapped[int | None] = mapped_column(Integer, nullable=True)

    counted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    counted_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    campaign: Mapped[Campaign] = relationship(back_populates="items")

    def __repr__(self) -> str:
        return f"<CampaignItem {self.sku}: {self.system_qty} / {self.counted_qty}>"

    @property
    def is_counted(self) -> bool:
        return self.counted_qty is not None
