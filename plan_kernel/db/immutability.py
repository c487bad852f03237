"""
ORM-level immutability enforcement.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity          | When Immutable                         | Operations blocked
----------------|----------------------------------------|-------------------
AuditLogEntry   | ALWAYS (from creation)                 | UPDATE, DELETE
Quarantine      | Once status is RELEASED or EXPIRED     | UPDATE, DELETE

SQLAlchemy fires ``before_update`` / ``before_delete`` before the SQL is
sent.  The listeners below raise ImmutabilityViolationError and the flush
aborts with the database untouched.

A quarantine may still move ACTIVE -> RELEASED (that flush IS the release).
What is blocked is any change after the terminal state has been flushed,
including a transition back to ACTIVE.

===============================================================================
USAGE
===============================================================================

    from plan_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()   # idempotent; init_engine_from_url calls it

To disable temporarily (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from plan_kernel.exceptions import ImmutabilityViolationError
from plan_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_METADATA_FIELDS = frozenset({"updated_at", "updated_by_id", "version"})


def _block(entity_type: str, entity_id, operation: str, reason: str, **extra):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            **extra,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_audit_log_immutability(mapper, connection, target):
    """Audit log entries can never be modified."""
    _block(
        "AuditLogEntry",
        target.id,
        "UPDATE",
        "Audit log entries are immutable and cannot be modified",
    )


def _check_audit_log_delete(mapper, connection, target):
    """Audit log entries can never be deleted."""
    _block(
        "AuditLogEntry",
        target.id,
        "DELETE",
        "Audit log entries are immutable and cannot be deleted",
    )


def _was_terminal_before(target) -> bool:
    """
    True if the row was already RELEASED/EXPIRED before this flush.

    history.deleted holds the value loaded from the database when status is
    changing; otherwise the current value is the stored one.
    """
    from plan_modules.quarantine.models import QuarantineStatus

    status_history = get_history(target, "status")
    if status_history.deleted:
        previous = status_history.deleted[0]
    elif not status_history.added:
        previous = target.status
    else:
        # Newly assigned on a pending object; never terminal in the database.
        return False
    return previous != QuarantineStatus.ACTIVE.value


def _check_quarantine_immutability(mapper, connection, target):
    """Block any field change on a quarantine already in a terminal state."""
    if not _was_terminal_before(target):
        return

    for attr in inspect(target).attrs:
        if attr.key in _METADATA_FIELDS:
            continue
        if attr.history.has_changes():
            _block(
                "Quarantine",
                target.id,
                "UPDATE",
                f"Cannot modify field '{attr.key}' on a {target.status} quarantine",
                field=attr.key,
            )


def _check_quarantine_delete(mapper, connection, target):
    """Quarantines are never deleted; release them instead."""
    _block(
        "Quarantine",
        target.id,
        "DELETE",
        "Quarantines cannot be deleted; release them instead",
    )


def _listeners():
    from plan_kernel.models.audit_log import AuditLogEntry
    from plan_modules.quarantine.orm import QuarantineModel

    return [
        (AuditLogEntry, "before_update", _check_audit_log_immutability),
        (AuditLogEntry, "before_delete", _check_audit_log_delete),
        (QuarantineModel, "before_update", _check_quarantine_immutability),
        (QuarantineModel, "before_delete", _check_quarantine_delete),
    ]


def register_immutability_listeners() -> None:
    """Register every immutability listener.  Safe to call repeatedly."""
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability listeners.

    WARNING: Only use this in tests that need to write forbidden state.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
