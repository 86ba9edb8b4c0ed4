"""
Typed exception hierarchy for the expense kernel.

Every error carries a class-level ``code`` (machine-readable, API-safe) and a
``kind`` naming its category, so callers catch by type and the operations
facade can report an error kind without parsing messages.

    ExpenseKernelError (base)
    |
    +-- ValidationError                      kind = "validation"
    |   +-- InvalidCoordinateError
    |   +-- InvalidDistanceError
    |   +-- InvalidAmountError
    |   +-- InvalidApprovalOptionError
    |   +-- MissingAdminDistanceError
    |   +-- MissingRateError
    |   +-- MissingReasonError
    |   +-- InvalidExpenseError
    |   +-- InvalidJourneyError
    |   +-- InvalidVarianceThresholdError
    |   +-- EmptyBatchError
    |   +-- InvalidPeriodError
    |   +-- InvalidAdvanceError
    |   +-- UnknownSettingError
    |
    +-- StateConflictError                   kind = "state_conflict"
    |   +-- AlreadyProcessedError
    |   +-- PeriodLockedError
    |   +-- PeriodAlreadyLockedError
    |   +-- PeriodNotLockedError
    |   +-- DuplicateActiveJourneyError
    |   +-- JourneyNotActiveError
    |   +-- AdvanceStateError
    |
    +-- NotFoundError                        kind = "not_found"
    |   +-- UnknownExpenseError
    |   +-- UnknownJourneyError
    |   +-- UnknownUserError
    |   +-- UnknownAdvanceError
    |
    +-- AccessDeniedError                    kind = "access_denied"
    |
    +-- ConcurrencyError                     kind = "concurrency"
    |   +-- OptimisticLockError
    |
    +-- LedgerReconciliationError            kind = "ledger"
    |
    +-- ImmutabilityViolationError           kind = "state_conflict"
    |
    +-- ExternalDependencyError              kind = "external"
        +-- DistanceOracleError
            +-- DistanceOracleRateLimitedError

External-dependency errors never reach a caller of the public operations:
the distance service resolves them through the Haversine fallback and keeps
only the message.

Handling pattern::

    try:
        engine.approve(expense_id, actor_id, option=1)
    except PeriodLockedError as e:
        notify(f"{e.period} is locked for {e.subject_key}")
    except ValidationError as e:
        return {"error": e.code, "message": str(e)}
"""

from datetime import date
from decimal import Decimal


class ExpenseKernelError(Exception):
    """Base exception for all expense kernel errors."""

    code: str = "EXPENSE_KERNEL_ERROR"
    kind: str = "internal"


# Validation


class ValidationError(ExpenseKernelError):
    """Caller error; no state was changed."""

    code: str = "VALIDATION_ERROR"
    kind: str = "validation"


class InvalidCoordinateError(ValidationError):
    """Latitude/longitude missing, non-numeric or out of range."""

    code: str = "INVALID_COORDINATE"

    def __init__(self, latitude, longitude, detail: str | None = None):
        self.latitude = latitude
        self.longitude = longitude
        message = f"Invalid GPS coordinate ({latitude}, {longitude})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class InvalidDistanceError(ValidationError):
    """Distance (or variance percentage) is negative or not a number."""

    code: str = "INVALID_DISTANCE"

    def __init__(self, field: str, value):
        self.field = field
        self.value = value
        super().__init__(f"{field} must be a non-negative number, got {value!r}")


class InvalidAmountError(ValidationError):
    """Monetary amount is missing, non-numeric or out of range."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, value, requirement: str = "a non-negative number"):
        self.field = field
        self.value = value
        super().__init__(f"{field} must be {requirement}, got {value!r}")


class InvalidApprovalOptionError(ValidationError):
    """Approval option is not 1 (system), 2 (manual) or 3 (admin)."""

    code: str = "INVALID_APPROVAL_OPTION"

    def __init__(self, option):
        self.option = option
        super().__init__(f"Approved option must be 1, 2, or 3, got {option!r}")


class MissingAdminDistanceError(ValidationError):
    """Option 3 chosen without an admin distance."""

    code: str = "MISSING_ADMIN_DISTANCE"

    def __init__(self, expense_id: str | None = None):
        self.expense_id = expense_id
        super().__init__("Admin distance is required for option 3")


class MissingRateError(ValidationError):
    """Expense carries no positive distance rate."""

    code: str = "MISSING_RATE"

    def __init__(self, value=None, expense_id: str | None = None):
        self.value = value
        self.expense_id = expense_id
        super().__init__(
            f"A positive rate per kilometer is required, got {value!r}"
        )


class MissingReasonError(ValidationError):
    """Rejection or unlock attempted without a reason."""

    code: str = "MISSING_REASON"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"A reason is required to {operation}")


class InvalidExpenseError(ValidationError):
    """Expense fields violate the expense shape (category, type, journey link)."""

    code: str = "INVALID_EXPENSE"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidJourneyError(ValidationError):
    """Journey fields violate the journey shape (visit type, machines, ownership)."""

    code: str = "INVALID_JOURNEY"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidVarianceThresholdError(ValidationError):
    """Bulk max_variance is negative or not a number."""

    code: str = "INVALID_VARIANCE_THRESHOLD"

    def __init__(self, value):
        self.value = value
        super().__init__(f"max_variance must be a non-negative number, got {value!r}")


class EmptyBatchError(ValidationError):
    """Bulk operation called with no ids."""

    code: str = "EMPTY_BATCH"

    def __init__(self):
        super().__init__("Expense IDs array is required and must not be empty")


class InvalidPeriodError(ValidationError):
    """Year or month out of range for a month lock."""

    code: str = "INVALID_PERIOD"

    def __init__(self, year, month):
        self.year = year
        self.month = month
        super().__init__(f"Invalid period year={year!r} month={month!r}")


class InvalidAdvanceError(ValidationError):
    """Advance fields violate the advance shape (amount, payment method)."""

    code: str = "INVALID_ADVANCE"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class UnknownSettingError(ValidationError):
    """Setting key is not one of the known numeric settings."""

    code: str = "UNKNOWN_SETTING"

    def __init__(self, key):
        self.key = key
        super().__init__(f"Unknown setting: {key!r}")


# State conflicts


class StateConflictError(ExpenseKernelError):
    """Well-formed request that violates a lifecycle invariant."""

    code: str = "STATE_CONFLICT"
    kind: str = "state_conflict"


class AlreadyProcessedError(StateConflictError):
    """Expense already left the pending state."""

    code: str = "ALREADY_PROCESSED"

    def __init__(self, expense_id: str, status: str):
        self.expense_id = expense_id
        self.status = status
        super().__init__(f"Expense {expense_id} is already {status}")


class PeriodLockedError(StateConflictError):
    """Mutation touches a date inside a locked month."""

    code: str = "PERIOD_LOCKED"

    def __init__(self, subject_key: str, year: int, month: int, operation: str):
        self.subject_key = subject_key
        self.year = year
        self.month = month
        self.operation = operation
        self.period = f"{date(year, month, 1):%B} {year}"
        super().__init__(
            f"Cannot {operation} expense for {self.period}. Month is locked."
        )


class PeriodAlreadyLockedError(StateConflictError):
    """Month is already locked for the subject."""

    code: str = "PERIOD_ALREADY_LOCKED"

    def __init__(self, subject_key: str, year: int, month: int):
        self.subject_key = subject_key
        self.year = year
        self.month = month
        super().__init__(f"Month {year}-{month:02d} is already locked for {subject_key}")


class PeriodNotLockedError(StateConflictError):
    """Unlock requested for a month that is not locked."""

    code: str = "PERIOD_NOT_LOCKED"

    def __init__(self, subject_key: str, year: int, month: int):
        self.subject_key = subject_key
        self.year = year
        self.month = month
        super().__init__(f"Month {year}-{month:02d} is not locked for {subject_key}")


class DuplicateActiveJourneyError(StateConflictError):
    """Employee already has an active journey."""

    code: str = "DUPLICATE_ACTIVE_JOURNEY"

    def __init__(self, employee_id: str, active_journey_id: str | None = None):
        self.employee_id = employee_id
        self.active_journey_id = active_journey_id
        super().__init__(
            "You already have an active journey. "
            "Please end it before starting a new one."
        )


class JourneyNotActiveError(StateConflictError):
    """End or cancel attempted on a journey that is not active."""

    code: str = "JOURNEY_NOT_ACTIVE"

    def __init__(self, journey_id: str, status: str):
        self.journey_id = journey_id
        self.status = status
        super().__init__(f"Journey is already {status}")


class AdvanceStateError(StateConflictError):
    """Advance already cancelled or deleted."""

    code: str = "ADVANCE_STATE_CONFLICT"

    def __init__(self, advance_id: str, state: str):
        self.advance_id = advance_id
        self.state = state
        super().__init__(f"Advance {advance_id} is already {state}")


# Not found


class NotFoundError(ExpenseKernelError):
    """Referenced entity does not exist."""

    code: str = "NOT_FOUND"
    kind: str = "not_found"


class UnknownExpenseError(NotFoundError):
    code: str = "UNKNOWN_EXPENSE"

    def __init__(self, expense_id: str):
        self.expense_id = expense_id
        super().__init__(f"Expense not found: {expense_id}")


class UnknownJourneyError(NotFoundError):
    code: str = "UNKNOWN_JOURNEY"

    def __init__(self, journey_id: str):
        self.journey_id = journey_id
        super().__init__(f"Journey not found: {journey_id}")


class UnknownUserError(NotFoundError):
    code: str = "UNKNOWN_USER"

    def __init__(self, employee_id: str):
        self.employee_id = employee_id
        super().__init__(f"User not found: {employee_id}")


class UnknownAdvanceError(NotFoundError):
    code: str = "UNKNOWN_ADVANCE"

    def __init__(self, advance_id: str):
        self.advance_id = advance_id
        super().__init__(f"Advance not found: {advance_id}")


# Access


class AccessDeniedError(ExpenseKernelError):
    """Actor's query scope does not cover the target employee."""

    code: str = "ACCESS_DENIED"
    kind: str = "access_denied"

    def __init__(self, actor_id: str, employee_id: str, action: str):
        self.actor_id = actor_id
        self.employee_id = employee_id
        self.action = action
        super().__init__(
            f"Access denied. Actor {actor_id} cannot {action} for employee {employee_id}"
        )


# Concurrency


class ConcurrencyError(ExpenseKernelError):
    code: str = "CONCURRENCY_ERROR"
    kind: str = "concurrency"


class OptimisticLockError(ConcurrencyError):
    """Versioned update kept losing to concurrent writers."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, attempts: int):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.attempts = attempts
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            f"gave up after {attempts} attempts"
        )


# Ledger


class LedgerReconciliationError(ExpenseKernelError):
    """Replayed running balance disagrees with the stored balance."""

    code: str = "LEDGER_RECONCILIATION_FAILED"
    kind: str = "ledger"

    def __init__(self, employee_id: str, stored: Decimal, replayed: Decimal):
        self.employee_id = employee_id
        self.stored = stored
        self.replayed = replayed
        super().__init__(
            f"Balance for {employee_id} does not reconcile: "
            f"stored {stored}, replayed {replayed}"
        )


# External dependencies


class ExternalDependencyError(ExpenseKernelError):
    code: str = "EXTERNAL_DEPENDENCY_ERROR"
    kind: str = "external"


class DistanceOracleError(ExternalDependencyError):
    """Remote distance lookup failed."""

    code: str = "DISTANCE_ORACLE_ERROR"


class DistanceOracleRateLimitedError(DistanceOracleError):
    """Remote distance lookup refused with a rate-limit signal."""

    code: str = "DISTANCE_ORACLE_RATE_LIMITED"


# Immutability


class ImmutabilityViolationError(ExpenseKernelError):
    """Attempted to modify or delete a record that is frozen."""

    code: str = "IMMUTABILITY_VIOLATION"
    kind: str = "state_conflict"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
