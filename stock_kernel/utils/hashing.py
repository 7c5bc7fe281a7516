"""
Canonical JSON and the signatures built on it.

Audit entries and payment webhooks are signed over a canonical rendering
of their fields: sorted keys, compact separators, and a fixed text form for
Decimal, datetime, UUID, Enum and bytes values.  The same fields and secret
give the same digest on every backend, including after SQLite has dropped
the tzinfo from a stored timestamp.
"""

import hashlib
import hmac
import json
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def canonical_timestamp(value: datetime) -> str:
    """UTC ISO-8601; naive values are read as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _canonical_value(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        # 49.90 and 49.9 sign the same
        return str(obj.normalize())
    if isinstance(obj, datetime):
        return canonical_timestamp(obj)
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, bytes):
        return obj.hex()
    raise TypeError(f"{type(obj).__name__} has no canonical JSON form")


def canonicalize_json(data: Any) -> str:
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_canonical_value,
    )


def audit_signing_payload(
    entry_id: UUID,
    seq: int,
    tenant_id: UUID | None,
    actor_id: UUID | None,
    timestamp: datetime,
    action: str,
    resource: str,
    severity: str,
    details: dict | None,
    prev_signature: str | None,
    key_version: str,
) -> dict:
    """The fields an audit signature covers: every column except ``signature``."""
    return {
        "id": str(entry_id),
        "seq": seq,
        "tenant_id": None if tenant_id is None else str(tenant_id),
        "actor_id": None if actor_id is None else str(actor_id),
        "timestamp": canonical_timestamp(timestamp),
        "action": action,
        "resource": resource,
        "severity": severity.value if isinstance(severity, Enum) else severity,
        "details": details,
        "prev_signature": prev_signature,
        "key_version": key_version,
    }


def compute_entry_signature(payload: dict, secret: str) -> str:
    """
    Hex SHA-256 of the canonical payload with the secret appended.

    Args:
        payload: Output of ``audit_signing_payload``.
        secret: Secret for the entry's ``key_version``.
    """
    material = (canonicalize_json(payload) + secret).encode("utf-8")
    return hashlib.sha256(material).hexdigest()


def signatures_match(expected: str, actual: str | None) -> bool:
    if actual is None:
        return False
    return hmac.compare_digest(expected, actual)


def compute_webhook_signature(payload: dict, secret: str) -> str:
    """HMAC-SHA256 of the canonical payload, leaving out any ``signature`` key."""
    body = canonicalize_json({k: v for k, v in payload.items() if k != "signature"})
    return hmac.new(secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256).hexdigest()
