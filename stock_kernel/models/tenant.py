"""
Module: stock_kernel.models.tenant
Responsibility: ORM persistence for tenants and their billing state.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/types.py only.

Invariants enforced:
    - Tenant billing fields (is_active, payment_status, last_payment_date,
      failed_payment_attempts, plan) are mutated only by the payment webhook
      processor.
    - TenantPayment rows are append-only payment history.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base, UUIDString
from stock_kernel.domain.types import PaymentStatus, TenantPlan


class Tenant(Base):
    """A customer organization; every stock, campaign and audit row is scoped to one."""

    __tablename__ = "tenants"

    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)

    plan: Mapped[TenantPlan] = mapped_column(
        String(20),
        default=TenantPlan.FREE_TRIAL.value,
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    payment_status: Mapped[PaymentStatus] = mapped_column(
        String(20),
        default=PaymentStatus.TRIAL.value,
        nullable=False,
    )

    last_payment_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    failed_payment_attempts: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<Tenant {self.name}: {self.plan} / {self.payment_status}>"


class TenantPayment(Base):
    """One payment received for a tenant subscription."""

    __tablename__ = "tenant_payments"

    __table_args__ = (
        Index("idx_tenant_payment_tenant", "tenant_id", "received_at"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("tenants.id"),
        nullable=False,
    )

    provider: Mapped[str] = mapped_column(String(20), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False)

    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
