"""
stock_config -- single public entrypoint for stock engine configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Services receive plain values (tolerance,
    chunk size, key ring) from their composition root; they never read
    configuration files or environment variables themselves.

Architecture position:
    Configuration.  Sits above ``stock_kernel``; the kernel MUST NEVER
    import from ``stock_config``.

Failure modes:
    - ``FileNotFoundError`` -- the requested configuration set is missing.
    - ``ValueError`` -- a setting is out of range.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``stock_config_loaded`` log entry with the config id, version and
    checksum.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from stock_config.loader import load_config_file
from stock_config.schema import (
    AuditSettings,
    BatcherSettings,
    BillingSettings,
    DatabaseSettings,
    ReconciliationSettings,
    StockEngineConfig,
)
from stock_kernel.utils.keyring import EnvironmentKeyRing, parse_key_spec

_logger = logging.getLogger("stock_kernel.config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
_DEFAULT_SET = "default.yaml"


def get_active_config(path: Path | str | None = None) -> StockEngineConfig:
    """The ONLY public configuration entrypoint.

    Args:
        path: A configuration set file.  Defaults to
            ``stock_config/sets/default.yaml``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If validation fails.
    """
    config_path = Path(path) if path is not None else _DEFAULT_CONFIG_DIR / _DEFAULT_SET
    config = load_config_file(config_path)

    _logger.info(
        "stock_config_loaded",
        extra={
            "config_id": config.config_id,
            "version": config.version,
            "checksum": config.checksum,
            "path": str(config_path),
        },
    )
    return config


def build_key_ring(settings: AuditSettings) -> EnvironmentKeyRing:
    """Audit signing key ring from the configured environment variable."""
    return EnvironmentKeyRing(settings.keys_env_var, settings.active_key_version)


def load_webhook_secrets(settings: BillingSettings) -> dict[str, str]:
    """Provider webhook secrets from the configured environment variable."""
    return parse_key_spec(os.environ.get(settings.webhook_secrets_env_var, ""))


def database_url(settings: DatabaseSettings) -> str:
    return os.environ.get(settings.url_env_var, settings.default_url)


__all__ = [
    "AuditSettings",
    "BatcherSettings",
    "BillingSettings",
    "DatabaseSettings",
    "ReconciliationSettings",
    "StockEngineConfig",
    "build_key_ring",
    "database_url",
    "get_active_config",
    "load_webhook_secrets",
]
