"""Kernel services: the write side of the stock kernel."""

from stock_kernel.services.audit_ledger import AuditLedger, AuditTrace, resource_key
from stock_kernel.services.campaign_service import CampaignService
from stock_kernel.services.reconciliation_engine import ReconciliationEngine
from stock_kernel.services.sequence_service import SequenceService
from stock_kernel.services.stock_ledger import StockLedger

__all__ = [
    "AuditLedger",
    "AuditTrace",
    "CampaignService",
    "ReconciliationEngine",
    "SequenceService",
    "StockLedger",
    "resource_key",
]
