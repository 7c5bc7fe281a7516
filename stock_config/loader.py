"""
Configuration Loader (``stock_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into the frozen dataclasses
of ``stock_config.schema``.  Services never call this directly; the single
public entry point is ``stock_config.get_active_config()``.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Out-of-range values raise ``ValueError`` with the offending key.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing ``config_id``  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from stock_config.schema import (
    AuditSettings,
    BatcherSettings,
    BillingSettings,
    DatabaseSettings,
    ReconciliationSettings,
    StockEngineConfig,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _positive(value: Any, key: str, kind=int):
    try:
        parsed = kind(value)
    except (TypeError, ValueError):
        raise ValueError(f"{key} is not a number: {value!r}") from None
    if parsed <= 0:
        raise ValueError(f"{key} must be positive, got {value!r}")
    return parsed


def parse_reconciliation(data: dict[str, Any]) -> ReconciliationSettings:
    raw = data.get("tolerance", "0.05")
    try:
        # str() first so a YAML float like 0.05 is read as written
        tolerance = Decimal(str(raw))
    except InvalidOperation:
        raise ValueError(f"reconciliation.tolerance is not a number: {raw!r}") from None
    if not tolerance.is_finite() or tolerance < 0 or tolerance >= 1:
        raise ValueError(f"reconciliation.tolerance must be in [0, 1), got {raw!r}")
    return ReconciliationSettings(tolerance=tolerance)


def parse_batcher(data: dict[str, Any]) -> BatcherSettings:
    return BatcherSettings(
        flush_interval_seconds=_positive(
            data.get("flush_interval_seconds", 10), "batcher.flush_interval_seconds", float
        ),
        chunk_size=_positive(data.get("chunk_size", 50), "batcher.chunk_size"),
        request_timeout_seconds=_positive(
            data.get("request_timeout_seconds", 5), "batcher.request_timeout_seconds", float
        ),
        max_workers=_positive(data.get("max_workers", 4), "batcher.max_workers"),
    )


def parse_audit(data: dict[str, Any]) -> AuditSettings:
    active = data.get("active_key_version")
    return AuditSettings(
        keys_env_var=data.get("keys_env_var", "STOCK_AUDIT_KEYS"),
        active_key_version=str(active) if active is not None else None,
    )


def parse_billing(data: dict[str, Any]) -> BillingSettings:
    statuses = data.get("finalized_invoice_statuses", ["VALIDATED"])
    if not statuses:
        raise ValueError("billing.finalized_invoice_statuses must not be empty")
    return BillingSettings(
        max_failed_payment_attempts=_positive(
            data.get("max_failed_payment_attempts", 3), "billing.max_failed_payment_attempts"
        ),
        webhook_secrets_env_var=data.get("webhook_secrets_env_var", "STOCK_WEBHOOK_SECRETS"),
        finalized_invoice_statuses=tuple(str(s).upper() for s in statuses),
    )


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    return DatabaseSettings(
        url_env_var=data.get("url_env_var", "DATABASE_URL"),
        default_url=data.get("default_url", "sqlite:///stock.db"),
        echo=bool(data.get("echo", False)),
        pool_timeout=_positive(data.get("pool_timeout", 30), "database.pool_timeout"),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 checksum of the canonical JSON serialization."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_config(data: dict[str, Any]) -> StockEngineConfig:
    """
    Parse a full configuration set.

    Raises:
        KeyError: if ``config_id`` is missing.
        ValueError: if any section holds an invalid value.
    """
    return StockEngineConfig(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        reconciliation=parse_reconciliation(data.get("reconciliation") or {}),
        batcher=parse_batcher(data.get("batcher") or {}),
        audit=parse_audit(data.get("audit") or {}),
        billing=parse_billing(data.get("billing") or {}),
        database=parse_database(data.get("database") or {}),
        checksum=compute_checksum(data),
    )


def load_config_file(path: Path) -> StockEngineConfig:
    return parse_config(load_yaml_file(path))
