"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Immutable data structures returned by selectors and services and
    accepted by the bulk ledger operations: catalog items, movements,
    campaigns and their items, invoice and delivery lines, movement stats.

Architecture position:
    Kernel > Domain -- pure, zero I/O.
    from_model() class methods exist as boundary converters but are only
    invoked from the service and selector layers.

Failure modes:
    - ValueError on InvoiceLine / ReceiptLine with non-positive qty.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from stock_kernel.domain.types import (
    CampaignStatus,
    MovementDirection,
    MovementType,
)

if TYPE_CHECKING:
    from stock_kernel.models.campaign import Campaign as CampaignModel
    from stock_kernel.models.campaign import CampaignItem as CampaignItemModel
    from stock_kernel.models.stock_item import Movement as MovementModel
    from stock_kernel.models.stock_item import StockItem as StockItemModel


@dataclass(frozen=True)
class StockItemInfo:
    """Immutable snapshot of a catalog item and its current level."""

    id: UUID
    tenant_id: UUID
    sku: str
    name: str
    current_level: int
    min_threshold: int
    is_active: bool

    @property
    def is_below_threshold(self) -> bool:
        return self.current_level < self.min_threshold

    @classmethod
    def from_model(cls, model: StockItemModel) -> StockItemInfo:
        return cls(
            id=model.id,
            tenant_id=model.tenant_id,
            sku=model.sku,
            name=model.name,
            current_level=model.current_level,
            min_threshold=model.min_threshold,
            is_active=model.is_active,
        )


@dataclass(frozen=True)
class MovementRecord:
    """
    Immutable view of one ledger movement.

    Guarantees:
        - qty > 0; direction carries the sign.
        - resulting_level is the level right after this movement.
    """

    id: UUID
    tenant_id: UUID
    stock_item_id: UUID
    type: MovementType
    direction: MovementDirection
    qty: int
    reason: str
    reference: str | None
    actor_id: UUID
    created_at: datetime
    resulting_level: int

    @property
    def signed_qty(self) -> int:
        return -self.qty if self.direction == MovementDirection.DECREASE else self.qty

    @classmethod
    def from_model(cls, model: MovementModel) -> MovementRecord:
        return cls(
            id=model.id,
            tenant_id=model.tenant_id,
            stock_item_id=model.stock_item_id,
            type=MovementType(model.type),
            direction=MovementDirection(model.direction),
            qty=model.qty,
            reason=model.reason,
            reference=model.reference,
            actor_id=model.actor_id,
            created_at=model.created_at,
            resulting_level=model.resulting_level,
        )


@dataclass(frozen=True)
class CampaignItemInfo:
    """Frozen snapshot row of a campaign plus its counted value."""

    id: UUID
    campaign_id: UUID
    stock_item_id: UUID
    sku: str
    name: str
    system_qty: int
    counted_qty: int | None

    @property
    def is_counted(self) -> bool:
        return self.counted_qty is not None

    @property
    def delta(self) -> int | None:
        if self.counted_qty is None:
            return None
        return self.counted_qty - self.system_qty

    @classmethod
    def from_model(cls, model: CampaignItemModel) -> CampaignItemInfo:
        return cls(
            id=model.id,
            campaign_id=model.campaign_id,
            stock_item_id=model.stock_item_id,
            sku=model.sku,
            name=model.name,
            system_qty=model.system_qty,
            counted_qty=model.counted_qty,
        )


@dataclass(frozen=True)
class CampaignInfo:
    """
    Immutable snapshot of campaign state.

    Non-goals:
        - Does NOT carry items; use CampaignSelector.get_items().
    """

    id: UUID
    tenant_id: UUID
    name: str
    status: CampaignStatus
    created_at: datetime
    created_by_id: UUID
    closed_at: datetime | None = None
    closed_by_id: UUID | None = None
    sync_stock: bool | None = None

    @property
    def is_active(self) -> bool:
        return self.status.is_active

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def validated_at(self) -> datetime | None:
        if self.status == CampaignStatus.VALIDATED:
            return self.closed_at
        return None

    @classmethod
    def from_model(cls, model: CampaignModel) -> CampaignInfo:
        return cls(
            id=model.id,
            tenant_id=model.tenant_id,
            name=model.name,
            status=CampaignStatus(model.status),
            created_at=model.created_at,
            created_by_id=model.created_by_id,
            closed_at=model.closed_at,
            closed_by_id=model.closed_by_id,
            sync_stock=model.sync_stock,
        )


@dataclass(frozen=True)
class InvoiceLine:
    """One sold line of a finalized invoice."""

    stock_item_id: UUID
    qty: int

    def __post_init__(self) -> None:
        if self.qty <= 0:
            raise ValueError(f"Invoice line quantity must be positive, got {self.qty}")


@dataclass(frozen=True)
class ReceiptLine:
    """One received line of a delivery note."""

    stock_item_id: UUID
    qty: int

    def __post_init__(self) -> None:
        if self.qty <= 0:
            raise ValueError(f"Receipt line quantity must be positive, got {self.qty}")


@dataclass(frozen=True)
class MovementStats:
    """Totals of movement quantities by type over a query window."""

    total_in: int = 0
    total_out: int = 0
    total_adjustment_increase: int = 0
    total_adjustment_decrease: int = 0
    movement_count: int = 0

    @property
    def net_change(self) -> int:
        return (
            self.total_in
            - self.total_out
            + self.total_adjustment_increase
            - self.total_adjustment_decrease
        )
