"""
PaymentWebhookProcessor -- tenant billing updates from payment providers.

Responsibility:
    Authenticates a provider webhook, updates the tenant's billing state,
    appends payment history and writes one signed audit entry, all inside
    the caller's transaction.

Architecture position:
    Services layer.  The HTTP route hands it the decoded JSON body and maps
    ``WebhookResponse.status_code`` onto the reply.  Second caller of the
    AuditLedger after the stock kernel itself.

Input:
    ``{"provider", "tenantId", "amount", "status", "signature"}`` where
    ``signature`` is HMAC-SHA256 (hex) over the canonical JSON of the other
    fields, keyed with the provider's webhook secret.

Responses:
    401  missing or invalid signature
    400  malformed body
    404  unknown tenant
    200  processed

Failure chain:
    A non-SUCCESS status marks the tenant FAILED and counts the attempt.
    Once ``max_failed_attempts`` consecutive failures accumulate, the tenant
    is downgraded to FREE_TRIAL.  A SUCCESS resets the counter.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.types import (
    AuditSeverity,
    PaymentProvider,
    PaymentStatus,
    TenantPlan,
    TransactionStatus,
)
from stock_kernel.exceptions import (
    InvalidWebhookPayloadError,
    TenantNotFoundError,
    WebhookSignatureError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.audit_log import AuditAction
from stock_kernel.models.tenant import Tenant, TenantPayment
from stock_kernel.services.audit_ledger import AuditLedger, resource_key
from stock_kernel.utils.hashing import compute_webhook_signature, signatures_match

logger = get_logger("services.payment_webhook")

DEFAULT_MAX_FAILED_ATTEMPTS = 3


@dataclass(frozen=True)
class WebhookResponse:
    status_code: int
    message: str

    @property
    def ok(self) -> bool:
        return self.status_code == 200


@dataclass(frozen=True)
class PaymentNotification:
    """A validated webhook body."""

    provider: PaymentProvider
    tenant_id: UUID
    amount: Decimal
    status: TransactionStatus


class PaymentWebhookProcessor:
    """
    Applies payment notifications to tenant billing state.

    Non-goals:
        - Does NOT commit.  A 200 response means the changes are flushed
          and ready for the caller to commit; a 4xx means nothing was
          written.
    """

    def __init__(
        self,
        session: Session,
        auditor: AuditLedger,
        webhook_secrets: Mapping[str, str],
        clock: Clock | None = None,
        max_failed_attempts: int = DEFAULT_MAX_FAILED_ATTEMPTS,
    ):
        self._session = session
        self._auditor = auditor
        self._secrets = dict(webhook_secrets)
        self._clock = clock or SystemClock()
        self._max_failed_attempts = max_failed_attempts

    def handle(self, body: Any) -> WebhookResponse:
        """Process one webhook body and return the HTTP response to send."""
        try:
            notification = self._authenticate(body)
            self._apply(notification)
        except WebhookSignatureError as exc:
            logger.warning(
                "payment_webhook_unauthorized",
                extra={"provider": exc.provider, "reason": exc.reason},
            )
            return WebhookResponse(401, "Unauthorized")
        except InvalidWebhookPayloadError as exc:
            logger.warning(
                "payment_webhook_malformed",
                extra={"field": exc.field, "reason": exc.reason},
            )
            return WebhookResponse(400, "Bad Request")
        except TenantNotFoundError as exc:
            logger.warning(
                "payment_webhook_unknown_tenant",
                extra={"tenant_id": exc.tenant_id},
            )
            return WebhookResponse(404, "Tenant Not Found")

        return WebhookResponse(200, "Webhook Processed")

    # Parsing and authentication

    def _authenticate(self, body: Any) -> PaymentNotification:
        if not isinstance(body, Mapping):
            raise InvalidWebhookPayloadError("body", "expected a JSON object")

        signature = body.get("signature")
        if not signature or not isinstance(signature, str):
            raise WebhookSignatureError(body.get("provider"), "missing signature")

        provider = self._parse_enum(body, "provider", PaymentProvider)

        secret = self._secrets.get(provider.value)
        if secret is None:
            raise WebhookSignatureError(provider.value, "no webhook secret configured")

        expected = compute_webhook_signature(dict(body), secret)
        if not signatures_match(expected, signature):
            raise WebhookSignatureError(provider.value, "signature mismatch")

        return PaymentNotification(
            provider=provider,
            tenant_id=self._parse_tenant_id(body),
            amount=self._parse_amount(body),
            status=self._parse_enum(body, "status", TransactionStatus),
        )

    @staticmethod
    def _parse_enum(body: Mapping, field: str, enum_type):
        value = body.get(field)
        try:
            return enum_type(value)
        except ValueError:
            raise InvalidWebhookPayloadError(field, f"unsupported value {value!r}") from None

    @staticmethod
    def _parse_tenant_id(body: Mapping) -> UUID:
        value = body.get("tenantId")
        try:
            return UUID(str(value))
        except ValueError:
            raise InvalidWebhookPayloadError("tenantId", "not a tenant id") from None

    @staticmethod
    def _parse_amount(body: Mapping) -> Decimal:
        value = body.get("amount")
        if value is None or isinstance(value, bool):
            raise InvalidWebhookPayloadError("amount", "required")
        try:
            amount = Decimal(str(value))
        except InvalidOperation:
            raise InvalidWebhookPayloadError("amount", "not a number") from None
        if not amount.is_finite() or amount < 0:
            raise InvalidWebhookPayloadError("amount", "must be a non-negative number")
        return amount

    # State changes

    def _apply(self, notification: PaymentNotification) -> None:
        tenant = self._session.execute(
            select(Tenant)
            .where(Tenant.id == notification.tenant_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if tenant is None:
            raise TenantNotFoundError(str(notification.tenant_id))

        if notification.status == TransactionStatus.SUCCESS:
            self._record_success(tenant, notification)
        else:
            self._record_failure(tenant, notification)

    def _record_success(self, tenant: Tenant, notification: PaymentNotification) -> None:
        now = self._clock.now()
        tenant.is_active = True
        tenant.payment_status = PaymentStatus.UP_TO_DATE.value
        tenant.last_payment_date = now
        tenant.failed_payment_attempts = 0

        self._session.add(
            TenantPayment(
                tenant_id=tenant.id,
                provider=notification.provider.value,
                amount=notification.amount,
                status=notification.status.value,
                received_at=now,
            )
        )
        self._session.flush()

        self._auditor.append(
            tenant_id=tenant.id,
            action=AuditAction.RECORD_PAYMENT,
            resource=resource_key("tenant", tenant.id),
            severity=AuditSeverity.MEDIUM,
            actor_id=None,
            details={
                "provider": notification.provider.value,
                "amount": notification.amount,
                "status": notification.status.value,
            },
        )
        logger.info(
            "tenant_payment_recorded",
            extra={
                "tenant_id": str(tenant.id),
                "provider": notification.provider.value,
                "amount": str(notification.amount),
            },
        )

    def _record_failure(self, tenant: Tenant, notification: PaymentNotification) -> None:
        tenant.payment_status = PaymentStatus.FAILED.value
        tenant.failed_payment_attempts += 1

        downgraded = False
        if (
            tenant.failed_payment_attempts >= self._max_failed_attempts
            and tenant.plan != TenantPlan.FREE_TRIAL.value
        ):
            previous_plan = tenant.plan
            tenant.plan = TenantPlan.FREE_TRIAL.value
            downgraded = True
            logger.warning(
                "tenant_plan_downgraded",
                extra={
                    "tenant_id": str(tenant.id),
                    "previous_plan": previous_plan,
                    "failed_attempts": tenant.failed_payment_attempts,
                },
            )
        self._session.flush()

        self._auditor.append(
            tenant_id=tenant.id,
            action=AuditAction.RECORD_PAYMENT_FAILURE,
            resource=resource_key("tenant", tenant.id),
            severity=AuditSeverity.HIGH,
            actor_id=None,
            details={
                "provider": notification.provider.value,
                "amount": notification.amount,
                "status": notification.status.value,
                "failed_attempts": tenant.failed_payment_attempts,
                "downgraded": downgraded,
            },
        )
        logger.warning(
            "tenant_payment_failed",
            extra={
                "tenant_id": str(tenant.id),
                "provider": notification.provider.value,
                "failed_attempts": tenant.failed_payment_attempts,
            },
        )
