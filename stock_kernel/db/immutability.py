"""
Write guards for records that must not change.

``before_update`` and ``before_delete`` mapper events run during
``session.flush()``; a guard that objects raises ImmutabilityViolationError
and the statement is never sent.

    AuditLogEntry   never updated or deleted
    Movement        never updated or deleted
    Campaign        frozen once CANCELLED or VALIDATED
    CampaignItem    snapshot columns frozen from creation; counts frozen
                    once the campaign is terminal

``updated_at`` is exempt everywhere.  The flush that moves a campaign
into a terminal status passes, because the guard reads the status the row
had before the flush from attribute history.

Bulk ``UPDATE``/``DELETE`` through Core skips mapper events; the guards
only cover ORM writes.  Tests that tamper with rows on purpose do so
between ``unregister_immutability_listeners()`` and
``register_immutability_listeners()``.
"""

from sqlalchemy import event, inspect, select
from sqlalchemy.orm.attributes import get_history

from stock_kernel.domain.types import CampaignStatus
from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_METADATA_FIELDS = frozenset({"updated_at"})

CAMPAIGN_ITEM_SNAPSHOT_FIELDS = frozenset(
    {"campaign_id", "stock_item_id", "sku", "name", "system_qty"}
)


def _block(entity_type: str, entity_id, operation: str, reason: str, field: str | None = None):
    extra = {
        "entity_type": entity_type,
        "entity_id": str(entity_id),
        "operation": operation,
    }
    if field is not None:
        extra["field"] = field
    logger.error("immutability_violation_blocked", extra=extra)
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _changed_fields(target) -> list[str]:
    insp = inspect(target)
    return [
        attr.key
        for attr in insp.attrs
        if attr.key not in _METADATA_FIELDS and attr.history.has_changes()
    ]


def _status_before_flush(target) -> CampaignStatus:
    status_history = get_history(target, "status")
    if status_history.deleted:
        return CampaignStatus(status_history.deleted[0])
    return CampaignStatus(target.status)


def _check_audit_log_immutability(mapper, connection, target):
    """Audit log entries are always immutable."""
    _block(
        "AuditLogEntry",
        target.id,
        "UPDATE",
        "Audit log entries are immutable and cannot be modified",
    )


def _check_audit_log_delete(mapper, connection, target):
    _block(
        "AuditLogEntry",
        target.id,
        "DELETE",
        "Audit log entries cannot be deleted",
    )


def _check_movement_immutability(mapper, connection, target):
    """Movements are append-only."""
    _block(
        "Movement",
        target.id,
        "UPDATE",
        "Stock movements are append-only and cannot be modified",
    )


def _check_movement_delete(mapper, connection, target):
    _block(
        "Movement",
        target.id,
        "DELETE",
        "Stock movements cannot be deleted",
    )


def _check_campaign_immutability(mapper, connection, target):
    """
    Prevent modifications to CANCELLED or VALIDATED campaigns.

    DRAFT/SUSPENDED -> CANCELLED and DRAFT -> VALIDATED are allowed; any
    change after that is blocked.
    """
    if not _status_before_flush(target).is_terminal:
        return

    for field in _changed_fields(target):
        _block(
            "Campaign",
            target.id,
            "UPDATE",
            f"Cannot modify field '{field}' on closed campaign",
            field=field,
        )


def _check_campaign_delete(mapper, connection, target):
    if _status_before_flush(target).is_terminal:
        _block(
            "Campaign",
            target.id,
            "DELETE",
            "Closed campaigns cannot be deleted",
        )


def _campaign_status(connection, campaign_id) -> CampaignStatus | None:
    from stock_kernel.models.campaign import Campaign

    status = connection.execute(
        select(Campaign.__table__.c.status).where(Campaign.__table__.c.id == str(campaign_id))
    ).scalar()
    return CampaignStatus(status) if status is not None else None


def _check_campaign_item_immutability(mapper, connection, target):
    """
    Snapshot columns are frozen from creation; counted values freeze once
    the owning campaign is terminal.
    """
    changed = _changed_fields(target)
    for field in changed:
        if field in CAMPAIGN_ITEM_SNAPSHOT_FIELDS:
            _block(
                "CampaignItem",
                target.id,
                "UPDATE",
                f"Snapshot field '{field}' is frozen at campaign creation",
                field=field,
            )

    if not changed:
        return

    status = _campaign_status(connection, target.campaign_id)
    if status is not None and status.is_terminal:
        _block(
            "CampaignItem",
            target.id,
            "UPDATE",
            f"Cannot modify items of a {status.value} campaign",
            field=changed[0],
        )


def _check_campaign_item_delete(mapper, connection, target):
    status = _campaign_status(connection, target.campaign_id)
    if status is not None and status.is_terminal:
        _block(
            "CampaignItem",
            target.id,
            "DELETE",
            f"Cannot delete items of a {status.value} campaign",
        )


def _listeners():
    from stock_kernel.models.audit_log import AuditLogEntry
    from stock_kernel.models.campaign import Campaign, CampaignItem
    from stock_kernel.models.stock_item import Movement

    return [
        (AuditLogEntry, "before_update", _check_audit_log_immutability),
        (AuditLogEntry, "before_delete", _check_audit_log_delete),
        (Movement, "before_update", _check_movement_immutability),
        (Movement, "before_delete", _check_movement_delete),
        (Campaign, "before_update", _check_campaign_immutability),
        (Campaign, "before_delete", _check_campaign_delete),
        (CampaignItem, "before_update", _check_campaign_item_immutability),
        (CampaignItem, "before_delete", _check_campaign_item_delete),
    ]


def register_immutability_listeners():
    """Install every guard.  Idempotent; call once models are imported."""
    for target, event_name, fn in _listeners():
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def unregister_immutability_listeners():
    """Remove the guards.  Only tests that need to forge a tampered row use this."""
    for target, event_name, fn in _listeners():
        if event.contains(target, event_name, fn):
            event.remove(target, event_name, fn)
