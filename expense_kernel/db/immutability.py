"""
ORM-level immutability enforcement.

SQLAlchemy fires ``before_update`` / ``before_delete`` mapper events before
the SQL reaches the database.  The listeners below check the frozen-record
rules and raise ImmutabilityViolationError, aborting the flush:

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
         |
         v
    [before_delete] --> _check_*_delete() --------> ImmutabilityViolationError

Protected entities:

Entity          | When immutable                      | Still mutable
----------------|-------------------------------------|----------------------------
AuditEntry      | always                              | nothing
MonthLockEvent  | always                              | nothing
Expense         | once approved or rejected           | updated_at, updated_by_id
Expense delete  | once approved                       | -
Journey         | once completed or cancelled         | expense_id,
                |                                     | additional_expenses_total,
                |                                     | updated_at, updated_by_id

Usage::

    from expense_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # idempotent; called by init_engine_from_url
"""

from sqlalchemy import event, inspect

from expense_kernel.exceptions import ImmutabilityViolationError
from expense_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_TRACKING_FIELDS = frozenset({"updated_at", "updated_by_id"})
_JOURNEY_MUTABLE_AFTER_CLOSE = _TRACKING_FIELDS | {"expense_id", "additional_expenses_total"}


def _persisted_value(target, key: str):
    """Value of ``key`` as last loaded from / flushed to the database."""
    history = inspect(target).attrs[key].history
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    return getattr(target, key)


def _changed_fields(target) -> set[str]:
    return {
        attr.key
        for attr in inspect(target).attrs
        if attr.history.has_changes()
    }


def _block(entity_type: str, target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_audit_entry_update(mapper, connection, target):
    _block("AuditEntry", target, "UPDATE", "Audit entries are append-only")


def _check_audit_entry_delete(mapper, connection, target):
    _block("AuditEntry", target, "DELETE", "Audit entries cannot be deleted")


def _check_lock_event_update(mapper, connection, target):
    _block("MonthLockEvent", target, "UPDATE", "Lock history is append-only")


def _check_lock_event_delete(mapper, connection, target):
    _block("MonthLockEvent", target, "DELETE", "Lock history cannot be deleted")


def _check_expense_immutability(mapper, connection, target):
    """Approved and rejected expenses are terminal."""
    from expense_kernel.domain.values import ExpenseStatus

    previous = _persisted_value(target, "status")
    if previous not in (ExpenseStatus.APPROVED, ExpenseStatus.REJECTED):
        return

    changed = _changed_fields(target) - _TRACKING_FIELDS
    if changed:
        _block(
            "Expense",
            target,
            "UPDATE",
            f"Expense is {previous}; cannot modify {', '.join(sorted(changed))}",
        )


def _check_expense_delete(mapper, connection, target):
    from expense_kernel.domain.values import ExpenseStatus

    if _persisted_value(target, "status") == ExpenseStatus.APPROVED:
        _block("Expense", target, "DELETE", "Approved expenses cannot be deleted")


def _check_journey_immutability(mapper, connection, target):
    """Closed journeys only accept the linked-expense back-reference and totals."""
    from expense_kernel.domain.values import JourneyStatus

    previous = _persisted_value(target, "status")
    if previous == JourneyStatus.ACTIVE:
        return

    changed = _changed_fields(target) - _JOURNEY_MUTABLE_AFTER_CLOSE
    if changed:
        _block(
            "Journey",
            target,
            "UPDATE",
            f"Journey is {previous}; cannot modify {', '.join(sorted(changed))}",
        )


def _listeners():
    from expense_kernel.models.audit_entry import AuditEntry
    from expense_kernel.models.expense import Expense
    from expense_kernel.models.journey import Journey
    from expense_kernel.models.month_lock import MonthLockEvent

    return [
        (AuditEntry, "before_update", _check_audit_entry_update),
        (AuditEntry, "before_delete", _check_audit_entry_delete),
        (MonthLockEvent, "before_update", _check_lock_event_update),
        (MonthLockEvent, "before_delete", _check_lock_event_delete),
        (Expense, "before_update", _check_expense_immutability),
        (Expense, "before_delete", _check_expense_delete),
        (Journey, "before_update", _check_journey_immutability),
    ]


def register_immutability_listeners() -> None:
    """Register all immutability listeners (idempotent)."""
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability listeners.

    Only for tests that need to violate the rules on purpose.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
