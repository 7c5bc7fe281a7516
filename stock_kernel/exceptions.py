"""
Typed Exception Hierarchy for the Stock Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (the route layer, the count batcher, compliance tooling) must react
to failures by type, never by parsing message strings:

    try:
        campaigns.create(tenant_id, "Q3 count", actor_id)
    except CampaignConflictError as e:
        api_response(status=409, code=e.code, campaign=e.active_campaign_id)

Every exception carries:
  1. A ``code`` class attribute (machine-readable, API-safe)
  2. Structured attributes with the context needed to act on it

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockKernelError (base)
    |
    +-- CampaignError
    |   +-- CampaignNotFoundError
    |   +-- CampaignItemNotFoundError
    |   +-- CampaignConflictError
    |   +-- InvalidTransitionError
    |   +-- IncompleteCountError
    |   +-- CampaignNotEditableError
    |
    +-- LedgerError
    |   +-- StockItemNotFoundError
    |   +-- DuplicateSkuError
    |   +-- InsufficientStockError
    |   +-- InvoiceStockError
    |
    +-- PersistenceError
    |   +-- PersistenceTimeoutError
    |   +-- CountWriteError
    |
    +-- AuditError
    |   +-- SignatureMismatchError
    |   +-- SigningKeyNotFoundError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- BillingError
        +-- TenantNotFoundError
        +-- WebhookSignatureError
        +-- InvalidWebhookPayloadError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                      | When Raised
-------------|---------------------------|-----------------------------------------
Campaign     | CAMPAIGN_NOT_FOUND        | Campaign ID doesn't exist for tenant
             | CAMPAIGN_ITEM_NOT_FOUND   | Item is not part of the campaign snapshot
             | CAMPAIGN_CONFLICT         | Second DRAFT/SUSPENDED campaign for tenant
             | INVALID_TRANSITION        | State machine violation
             | INCOMPLETE_COUNT          | Closure with unset counted quantities
             | CAMPAIGN_NOT_EDITABLE     | Count written while not DRAFT
-------------|---------------------------|-----------------------------------------
Ledger       | STOCK_ITEM_NOT_FOUND      | Item missing or deactivated
             | DUPLICATE_SKU             | SKU already used by tenant
             | INSUFFICIENT_STOCK        | Decrease would drive level below zero
             | INVOICE_STOCK_FAILED      | One or more invoice lines failed
-------------|---------------------------|-----------------------------------------
Persistence  | PERSISTENCE_TIMEOUT       | Count write did not complete in time
             | COUNT_WRITE_FAILED        | Count write rejected by the server
-------------|---------------------------|-----------------------------------------
Audit        | SIGNATURE_MISMATCH        | Audit entry failed integrity check
             | SIGNING_KEY_NOT_FOUND     | No secret for an entry's key version
-------------|---------------------------|-----------------------------------------
Concurrency  | OPTIMISTIC_LOCK_CONFLICT  | Concurrent modification detected
Immutability | IMMUTABILITY_VIOLATION    | Modifying an append-only record
-------------|---------------------------|-----------------------------------------
Billing      | TENANT_NOT_FOUND          | Webhook names an unknown tenant
             | WEBHOOK_SIGNATURE_INVALID | Missing or wrong webhook signature
             | INVALID_WEBHOOK_PAYLOAD   | Webhook body missing required fields

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Per-item reconciliation failures (InsufficientStockError) are collected
   by the ReconciliationEngine and reported in aggregate; they never abort
   sibling adjustments.

2. PersistenceTimeoutError is recovered by the count batcher: the item stays
   dirty and is retried on the next flush cycle.

3. SignatureMismatchError is fatal for compliance tooling:

    except SignatureMismatchError as e:
        alert_security_team(e)
        halt_processing()  # never auto-correct an audit entry

===============================================================================
"""


class StockKernelError(Exception):
    """
    Base exception for all stock kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "STOCK_KERNEL_ERROR"


# Campaign-related exceptions


class CampaignError(StockKernelError):
    """Base exception for audit campaign errors."""

    code: str = "CAMPAIGN_ERROR"


class CampaignNotFoundError(CampaignError):
    """Campaign with given ID was not found."""

    code: str = "CAMPAIGN_NOT_FOUND"

    def __init__(self, campaign_id: str):
        self.campaign_id = campaign_id
        super().__init__(f"Campaign not found: {campaign_id}")


class CampaignItemNotFoundError(CampaignError):
    """Item is not part of the campaign snapshot."""

    code: str = "CAMPAIGN_ITEM_NOT_FOUND"

    def __init__(self, campaign_id: str, item_id: str):
        self.campaign_id = campaign_id
        self.item_id = item_id
        super().__init__(f"Item {item_id} is not part of campaign {campaign_id}")


class CampaignConflictError(CampaignError):
    """
    A DRAFT or SUSPENDED campaign already exists for the tenant.

    User-visible and not retryable until the existing campaign is cancelled
    or validated.
    """

    code: str = "CAMPAIGN_CONFLICT"

    def __init__(self, tenant_id: str, active_campaign_id: str | None = None):
        self.tenant_id = tenant_id
        self.active_campaign_id = active_campaign_id
        detail = f" (active campaign {active_campaign_id})" if active_campaign_id else ""
        super().__init__(
            f"Tenant {tenant_id} already has an active audit campaign{detail}"
        )


class InvalidTransitionError(CampaignError):
    """Campaign state machine violation."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, campaign_id: str, current_status: str, transition: str):
        self.campaign_id = campaign_id
        self.current_status = current_status
        self.transition = transition
        super().__init__(
            f"Cannot {transition} campaign {campaign_id} from status {current_status}"
        )


class IncompleteCountError(CampaignError):
    """Closure attempted while some counted quantities are still unset."""

    code: str = "INCOMPLETE_COUNT"

    def __init__(self, campaign_id: str, missing_item_ids: list[str]):
        self.campaign_id = campaign_id
        self.missing_item_ids = missing_item_ids
        super().__init__(
            f"Campaign {campaign_id} has {len(missing_item_ids)} item(s) without a counted quantity"
        )


class CampaignNotEditableError(CampaignError):
    """Counted quantities can only be written while the campaign is DRAFT."""

    code: str = "CAMPAIGN_NOT_EDITABLE"

    def __init__(self, campaign_id: str, status: str):
        self.campaign_id = campaign_id
        self.status = status
        super().__init__(f"Campaign {campaign_id} is {status}; counts are read-only")


# Ledger-related exceptions


class LedgerError(StockKernelError):
    """Base exception for stock ledger errors."""

    code: str = "LEDGER_ERROR"


class StockItemNotFoundError(LedgerError):
    """Stock item does not exist or has been removed from the catalog."""

    code: str = "STOCK_ITEM_NOT_FOUND"

    def __init__(self, stock_item_id: str):
        self.stock_item_id = stock_item_id
        super().__init__(f"Stock item not found: {stock_item_id}")


class DuplicateSkuError(LedgerError):
    """SKU is already used by another item of the same tenant."""

    code: str = "DUPLICATE_SKU"

    def __init__(self, tenant_id: str, sku: str):
        self.tenant_id = tenant_id
        self.sku = sku
        super().__init__(f"SKU {sku} already exists for tenant {tenant_id}")


class InsufficientStockError(LedgerError):
    """
    Decrease would drive current_level below zero.

    The ledger never applies a partial quantity: the whole adjustment fails.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, stock_item_id: str, current_level: int, requested_qty: int):
        self.stock_item_id = stock_item_id
        self.current_level = current_level
        self.requested_qty = requested_qty
        super().__init__(
            f"Insufficient stock for {stock_item_id}: "
            f"level {current_level}, requested decrease {requested_qty}"
        )


class InvoiceStockError(LedgerError):
    """One or more invoice lines could not be decremented; nothing was applied."""

    code: str = "INVOICE_STOCK_FAILED"

    def __init__(self, invoice_id: str, failures: list[dict]):
        self.invoice_id = invoice_id
        self.failures = failures
        super().__init__(
            f"Invoice {invoice_id}: {len(failures)} line(s) failed, no stock decremented"
        )


# Persistence-related exceptions


class PersistenceError(StockKernelError):
    """Base exception for count persistence errors."""

    code: str = "PERSISTENCE_ERROR"


class PersistenceTimeoutError(PersistenceError):
    """A count write did not complete within its timeout."""

    code: str = "PERSISTENCE_TIMEOUT"

    def __init__(self, campaign_id: str, item_id: str, timeout_seconds: float):
        self.campaign_id = campaign_id
        self.item_id = item_id
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Writing count for item {item_id} of campaign {campaign_id} "
            f"timed out after {timeout_seconds}s"
        )


class CountWriteError(PersistenceError):
    """The server rejected a count write."""

    code: str = "COUNT_WRITE_FAILED"

    def __init__(self, campaign_id: str, item_id: str, reason: str, status_code: int | None = None):
        self.campaign_id = campaign_id
        self.item_id = item_id
        self.reason = reason
        self.status_code = status_code
        super().__init__(
            f"Writing count for item {item_id} of campaign {campaign_id} failed: {reason}"
        )


# Audit-related exceptions


class AuditError(StockKernelError):
    """Base exception for audit-related errors."""

    code: str = "AUDIT_ERROR"


class SignatureMismatchError(AuditError):
    """
    Audit entry failed integrity verification.

    Fatal for compliance tooling: halt and alert, never auto-correct.
    """

    code: str = "SIGNATURE_MISMATCH"

    def __init__(self, entry_id: str, seq: int, reason: str):
        self.entry_id = entry_id
        self.seq = seq
        self.reason = reason
        super().__init__(f"Audit entry {entry_id} (seq {seq}) failed verification: {reason}")


class SigningKeyNotFoundError(AuditError):
    """No signing secret is registered for the requested key version."""

    code: str = "SIGNING_KEY_NOT_FOUND"

    def __init__(self, key_version: str):
        self.key_version = key_version
        super().__init__(f"No signing key registered for version {key_version}")


# Concurrency-related exceptions


class ConcurrencyError(StockKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Immutability-related exceptions


class ImmutabilityError(StockKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Movements and audit log entries are append-only; campaign snapshots are
    frozen once the campaign is terminal.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Billing-related exceptions


class BillingError(StockKernelError):
    """Base exception for tenant billing errors."""

    code: str = "BILLING_ERROR"


class TenantNotFoundError(BillingError):
    """Tenant with given ID was not found."""

    code: str = "TENANT_NOT_FOUND"

    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id
        super().__init__(f"Tenant not found: {tenant_id}")


class WebhookSignatureError(BillingError):
    """Webhook signature is missing or does not match."""

    code: str = "WEBHOOK_SIGNATURE_INVALID"

    def __init__(self, provider: str | None, reason: str):
        self.provider = provider
        self.reason = reason
        super().__init__(f"Webhook from {provider or 'unknown provider'} rejected: {reason}")


class InvalidWebhookPayloadError(BillingError):
    """Webhook body is missing required fields or has invalid values."""

    code: str = "INVALID_WEBHOOK_PAYLOAD"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid webhook payload field {field!r}: {reason}")
