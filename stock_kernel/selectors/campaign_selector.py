"""
Module: stock_kernel.selectors.campaign_selector
Responsibility: Read-only campaign queries: campaign lookup, the tenant's
    active campaign, history, and snapshot rows.
Architecture position: Kernel > Selectors.
"""

from uuid import UUID

from sqlalchemy import select

from stock_kernel.domain.dtos import CampaignInfo, CampaignItemInfo
from stock_kernel.domain.types import ACTIVE_CAMPAIGN_STATUSES
from stock_kernel.models.campaign import Campaign, CampaignItem
from stock_kernel.selectors.base import BaseSelector


class CampaignSelector(BaseSelector[Campaign]):
    """Selector for audit campaigns and their frozen items."""

    def get(self, campaign_id: UUID) -> CampaignInfo | None:
        campaign = self.session.get(Campaign, campaign_id)
        return CampaignInfo.from_model(campaign) if campaign is not None else None

    def get_active(self, tenant_id: UUID) -> CampaignInfo | None:
        """The tenant's DRAFT or SUSPENDED campaign, if any."""
        campaign = self.session.execute(
            select(Campaign).where(
                Campaign.tenant_id == tenant_id,
                Campaign.status.in_([s.value for s in ACTIVE_CAMPAIGN_STATUSES]),
            )
        ).scalar_one_or_none()
        return CampaignInfo.from_model(campaign) if campaign is not None else None

    def list_for_tenant(self, tenant_id: UUID) -> list[CampaignInfo]:
        """All campaigns of a tenant, newest first."""
        campaigns = self.session.execute(
            select(Campaign)
            .where(Campaign.tenant_id == tenant_id)
            .order_by(Campaign.created_at.desc(), Campaign.id)
        ).scalars().all()
        return [CampaignInfo.from_model(c) for c in campaigns]

    def get_items(self, campaign_id: UUID) -> list[CampaignItemInfo]:
        """Snapshot rows of a campaign, ordered by SKU."""
        items = self.session.execute(
            select(CampaignItem)
            .where(CampaignItem.campaign_id == campaign_id)
            .order_by(CampaignItem.sku, CampaignItem.id)
        ).scalars().all()
        return [CampaignItemInfo.from_model(item) for item in items]

    def get_item(self, campaign_id: UUID, stock_item_id: UUID) -> CampaignItemInfo | None:
        item = self.session.execute(
            select(CampaignItem).where(
                CampaignItem.campaign_id == campaign_id,
                CampaignItem.stock_item_id == stock_item_id,
            )
        ).scalar_one_or_none()
        return CampaignItemInfo.from_model(item) if item is not None else None
