"""
stock_kernel.domain.types -- Enumerations shared by the domain, models and
services.  ZERO I/O.

Enum values are the strings persisted in the database; ORM models map these
columns as ``String`` and compare against the ``str`` enum members.
"""

from __future__ import annotations

from enum import Enum


class MovementType(str, Enum):
    """Kind of stock movement appended by the ledger."""

    IN = "in"
    OUT = "out"
    ADJUSTMENT = "adjustment"


class MovementDirection(str, Enum):
    """Sign of a movement.  IN always increases, OUT always decreases."""

    INCREASE = "increase"
    DECREASE = "decrease"


class CampaignStatus(str, Enum):
    """Audit campaign lifecycle.

    DRAFT <-> SUSPENDED, DRAFT|SUSPENDED -> CANCELLED, DRAFT -> VALIDATED.
    CANCELLED and VALIDATED are terminal.
    """

    DRAFT = "draft"
    SUSPENDED = "suspended"
    CANCELLED = "cancelled"
    VALIDATED = "validated"

    @property
    def is_active(self) -> bool:
        return self in (CampaignStatus.DRAFT, CampaignStatus.SUSPENDED)

    @property
    def is_terminal(self) -> bool:
        return self in (CampaignStatus.CANCELLED, CampaignStatus.VALIDATED)


ACTIVE_CAMPAIGN_STATUSES = (CampaignStatus.DRAFT, CampaignStatus.SUSPENDED)


class Verdict(str, Enum):
    """Audit verdict for one counted item."""

    NORMAL = "normal"
    CONSISTENT = "consistent"
    INCONSISTENT = "inconsistent"


class AuditSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TenantPlan(str, Enum):
    FREE_TRIAL = "free_trial"
    BASIC = "basic"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class PaymentStatus(str, Enum):
    """Tenant billing standing."""

    UP_TO_DATE = "up_to_date"
    LATE = "late"
    FAILED = "failed"
    TRIAL = "trial"
    PENDING = "pending"


class PaymentProvider(str, Enum):
    STRIPE = "STRIPE"
    WAVE = "WAVE"
    ORANGE_MONEY = "ORANGE_MONEY"
    MTN_MOMO = "MTN_MOMO"
    PAYPAL = "PAYPAL"


class TransactionStatus(str, Enum):
    SUCCESS = "SUCCESS"
    PENDING = "PENDING"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
