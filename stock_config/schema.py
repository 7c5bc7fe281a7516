"""
Stock engine configuration schema.

YAML configuration sets are parsed into these frozen dataclasses by the
loader.  Secrets never appear here: settings only name the environment
variables that hold them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReconciliationSettings:
    """Verdict thresholds for campaign closure."""

    tolerance: Decimal = Decimal("0.05")


@dataclass(frozen=True)
class BatcherSettings:
    """Client-side count batcher tuning."""

    flush_interval_seconds: float = 10.0
    chunk_size: int = 50
    request_timeout_seconds: float = 5.0
    max_workers: int = 4


@dataclass(frozen=True)
class AuditSettings:
    """Where the audit signing keys come from."""

    keys_env_var: str = "STOCK_AUDIT_KEYS"
    active_key_version: str | None = None


@dataclass(frozen=True)
class BillingSettings:
    max_failed_payment_attempts: int = 3
    webhook_secrets_env_var: str = "STOCK_WEBHOOK_SECRETS"
    finalized_invoice_statuses: tuple[str, ...] = ("VALIDATED",)


@dataclass(frozen=True)
class DatabaseSettings:
    url_env_var: str = "DATABASE_URL"
    default_url: str = "sqlite:///stock.db"
    echo: bool = False
    pool_timeout: int = 30


# ---------------------------------------------------------------------------
# Configuration set
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StockEngineConfig:
    """A complete, validated configuration set."""

    config_id: str
    version: int
    reconciliation: ReconciliationSettings = field(default_factory=ReconciliationSettings)
    batcher: BatcherSettings = field(default_factory=BatcherSettings)
    audit: AuditSettings = field(default_factory=AuditSettings)
    billing: BillingSettings = field(default_factory=BillingSettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    checksum: str = ""
