"""Read-only query selectors."""

from stock_kernel.selectors.campaign_selector import CampaignSelector
from stock_kernel.selectors.stock_selector import StockSelector

__all__ = ["CampaignSelector", "StockSelector"]
