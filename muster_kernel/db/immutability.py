"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Two record types have one-way lifecycles that the services rely on:

  AuditLog    created -> (optionally) reverted.  Nothing else ever changes,
              and rows are never deleted by the application.
  InviteCode  unused -> used, and live -> revoked.  Neither transition can
              be undone.

Services already respect these rules.  The listeners here catch the bug
that doesn't: a stray attribute assignment followed by a flush.  Bulk
compare-and-set UPDATE statements issued by the services do not pass through
mapper events; their WHERE clauses enforce the same one-way transitions.

===============================================================================
HOW IT WORKS
===============================================================================

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
         |
    [before_delete] --> _check_audit_log_delete() --^
         |
         v
    SQL sent to database (only if checks pass)

Attribute history distinguishes "was already set" from "is being set now":
history.deleted holds the value loaded from the database, history.added the
value about to be written.

===============================================================================
USAGE
===============================================================================

Registered once at startup (RuleEngine does this on construction):

    from muster_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
    # ... do forbidden operation ...
    register_immutability_listeners()

===============================================================================
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from muster_kernel.exceptions import ImmutabilityViolationError
from muster_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# The only AuditLog column allowed to change, and only from None.
_AUDIT_LOG_MUTABLE_FIELDS = frozenset({"reverted_by_log_id"})


def _block(entity_type: str, entity_id, operation: str, reason: str, field=None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_audit_log_immutability(mapper, connection, target):
    """
    Allow exactly one change to an AuditLog: setting the revert backlink.
    """
    for attr in inspect(target).attrs:
        hist = attr.history
        if not hist.has_changes():
            continue
        if attr.key not in _AUDIT_LOG_MUTABLE_FIELDS:
            _block(
                "AuditLog",
                target.id,
                "UPDATE",
                f"Cannot modify field '{attr.key}' on an audit log entry",
                field=attr.key,
            )
        previous = [value for value in hist.deleted if value is not None]
        if previous:
            _block(
                "AuditLog",
                target.id,
                "UPDATE",
                "Audit log entry has already been reverted",
                field=attr.key,
            )


def _check_audit_log_delete(mapper, connection, target):
    """Audit log rows are only purged by the external retention job."""
    _block(
        "AuditLog",
        target.id,
        "DELETE",
        "Audit log entries cannot be deleted",
    )


def _check_invite_code_immutability(mapper, connection, target):
    """
    Used codes stay used by the same identity; revoked codes stay revoked.
    """
    for field in ("used_by", "used_at"):
        hist = get_history(target, field)
        previous = [value for value in hist.deleted if value is not None]
        if previous and hist.added != previous:
            _block(
                "InviteCode",
                target.id,
                "UPDATE",
                f"Cannot change '{field}' on a used invite code",
                field=field,
            )

    revoked_hist = get_history(target, "revoked")
    if True in revoked_hist.deleted and False in revoked_hist.added:
        _block(
            "InviteCode",
            target.id,
            "UPDATE",
            "Cannot un-revoke an invite code",
            field="revoked",
        )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent: listeners already present are not added twice.
    """
    from muster_kernel.models.audit_log import AuditLog
    from muster_kernel.models.invite_code import InviteCode

    for target, event_name, listener_fn in _listeners(AuditLog, InviteCode):
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """
    Safely remove an event listener, ignoring if not registered.
    """
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that intentionally violate the rules.
    """
    from muster_kernel.models.audit_log import AuditLog
    from muster_kernel.models.invite_code import InviteCode

    for target, event_name, listener_fn in _listeners(AuditLog, InviteCode):
        _safe_remove_listener(target, event_name, listener_fn)


def _listeners(audit_log_cls, invite_code_cls):
    return (
        (audit_log_cls, "before_update", _check_audit_log_immutability),
        (audit_log_cls, "before_delete", _check_audit_log_delete),
        (invite_code_cls, "before_update", _check_invite_code_immutability),
    )
