"""Domain models for the stock kernel."""

from stock_kernel.models.audit_log import AuditAction, AuditLogEntry
from stock_kernel.models.campaign import Campaign, CampaignItem
from stock_kernel.models.stock_item import Movement, StockItem
from stock_kernel.models.tenant import Tenant, TenantPayment

__all__ = [
    "AuditAction",
    "AuditLogEntry",
    "Campaign",
    "CampaignItem",
    "Movement",
    "StockItem",
    "Tenant",
    "TenantPayment",
]
