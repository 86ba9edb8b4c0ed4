"""
MonthLockService -- per-subject month locks gating expense mutation.

Responsibility:
    Locks and unlocks (subject, year, month) periods and answers whether a
    date falls inside a locked period.  A subject is an employee id or the
    organisation-wide ``"global"`` key.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by ExpenseService and ApprovalService before any create, update,
    delete, approve or reject, and by the operations facade for lock/unlock.

Invariants enforced:
    - Locked-period enforcement: ``ensure_unlocked`` checks the owner's
      subject key and ``"global"``.  The actor's role is never consulted.
    - Point-in-time snapshot: ``lock`` stores the month summary as it stands
      at closing time.
    - History retention: every lock/unlock appends a MonthLockEvent; a
      re-lock never erases an earlier unlock reason.
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - PeriodLockedError: date falls in a locked month.
    - PeriodAlreadyLockedError: lock requested on a locked month.
    - PeriodNotLockedError: unlock requested on an open month.
    - MissingReasonError: unlock without a reason.
    - InvalidPeriodError: month outside 1..12 or non-positive year.

Audit relevance:
    ``month_locked`` / ``month_unlocked`` audit entries carry the snapshot
    and the unlock reason.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from expense_kernel.domain.clock import Clock
from expense_kernel.domain.dtos import MonthLockInfo
from expense_kernel.domain.values import GLOBAL_SUBJECT
from expense_kernel.exceptions import (
    InvalidPeriodError,
    MissingReasonError,
    PeriodAlreadyLockedError,
    PeriodLockedError,
    PeriodNotLockedError,
)
from expense_kernel.logging_config import get_logger
from expense_kernel.models.audit_entry import AuditAction
from expense_kernel.models.month_lock import MonthLock, MonthLockEvent, MonthLockEventType
from expense_kernel.selectors.expense_selector import ExpenseSelector
from expense_kernel.services.auditor_service import AuditorService
from expense_kernel.services.base import BaseService
from expense_kernel.services.sequence_service import SequenceService

logger = get_logger("services.month_lock")


def subject_key_for(employee_id: UUID | str | None) -> str:
    """Lock subject for an employee, or ``"global"`` when None."""
    if employee_id is None:
        return GLOBAL_SUBJECT
    return str(employee_id)


class MonthLockService(BaseService[MonthLock]):
    """
    Service for the month lock lifecycle.

    Contract:
        ``lock``/``unlock`` flush within the caller's transaction and return
        frozen ``MonthLockInfo`` DTOs.  ``ensure_unlocked`` raises
        ``PeriodLockedError`` or returns None.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auditor: AuditorService | None = None,
    ):
        super().__init__(session, clock)
        self._auditor = auditor or AuditorService(session, self.clock)
        self._sequences = SequenceService(session)
        self._expenses = ExpenseSelector(session)

    @staticmethod
    def _validate_period(year, month) -> None:
        if (
            isinstance(year, bool)
            or isinstance(month, bool)
            or not isinstance(year, int)
            or not isinstance(month, int)
            or year < 1
            or not 1 <= month <= 12
        ):
            raise InvalidPeriodError(year, month)

    def _get(self, subject_key: str, year: int, month: int) -> MonthLock | None:
        return self.session.execute(
            select(MonthLock).where(
                MonthLock.subject_key == subject_key,
                MonthLock.year == year,
                MonthLock.month == month,
            )
        ).scalar_one_or_none()

    def _get_for_update(self, subject_key: str, year: int, month: int) -> MonthLock | None:
        return self.session.execute(
            select(MonthLock)
            .where(
                MonthLock.subject_key == subject_key,
                MonthLock.year == year,
                MonthLock.month == month,
            )
            .with_for_update()
        ).scalar_one_or_none()

    def is_locked(self, subject_key: str, year: int, month: int) -> bool:
        self._validate_period(year, month)
        lock = self._get(subject_key, year, month)
        return bool(lock is not None and lock.is_locked)

    def ensure_unlocked(
        self, employee_id: UUID | str, on_date: date, operation: str
    ) -> None:
        """
        Raise PeriodLockedError if ``on_date`` falls in a month locked for
        the employee or globally.

        Args:
            employee_id: Owner of the record being mutated.
            on_date: The record's date (expense date).
            operation: Verb used in the error message ("approve", "create" ...).
        """
        for subject_key in (subject_key_for(employee_id), GLOBAL_SUBJECT):
            if self.is_locked(subject_key, on_date.year, on_date.month):
                logger.warning(
                    "period_locked_violation",
                    extra={
                        "subject_key": subject_key,
                        "year": on_date.year,
                        "month": on_date.month,
                        "operation": operation,
                    },
                )
                raise PeriodLockedError(subject_key, on_date.year, on_date.month, operation)

    def lock(
        self,
        subject_key: str,
        year: int,
        month: int,
        closed_by: UUID,
        notes: str | None = None,
    ) -> MonthLockInfo:
        """
        Lock a month and snapshot its financial summary.

        Postconditions:
            - ``is_locked(subject_key, year, month)`` is True.
            - A ``locked`` MonthLockEvent and a ``month_locked`` audit entry
              exist.

        Raises:
            PeriodAlreadyLockedError: If the month is already locked.
        """
        self._validate_period(year, month)
        lock = self._get_for_update(subject_key, year, month)
        if lock is not None and lock.is_locked:
            raise PeriodAlreadyLockedError(subject_key, year, month)

        summary = self._expenses.month_summary(subject_key, year, month).to_json()
        now = self.clock.now()

        if lock is None:
            lock = MonthLock(
                subject_key=subject_key,
                year=year,
                month=month,
                created_by_id=closed_by,
            )
            self.session.add(lock)
        else:
            lock.updated_by_id = closed_by
            lock.unlocked_by_id = None
            lock.unlocked_at = None
            lock.unlock_reason = None

        lock.is_locked = True
        lock.closed_by_id = closed_by
        lock.closed_at = now
        lock.summary = summary
        lock.notes = notes
        self.session.flush()

        self._append_event(lock, MonthLockEventType.LOCKED, closed_by, notes)
        self._auditor.record(
            AuditAction.MONTH_LOCKED,
            closed_by,
            target_employee_id=self._target(subject_key),
            details={
                "subject_key": subject_key,
                "year": year,
                "month": month,
                "summary": summary,
                "notes": notes,
            },
        )
        logger.info(
            "month_locked",
            extra={"subject_key": subject_key, "year": year, "month": month},
        )
        return MonthLockInfo.from_model(lock)

    def unlock(
        self,
        subject_key: str,
        year: int,
        month: int,
        unlocked_by: UUID,
        reason: str | None,
    ) -> MonthLockInfo:
        """
        Reopen a locked month.  ``reason`` is mandatory and kept in history.

        Raises:
            MissingReasonError: If ``reason`` is blank.
            PeriodNotLockedError: If the month is not locked.
        """
        self._validate_period(year, month)
        if reason is None or not str(reason).strip():
            raise MissingReasonError("unlock a month")

        lock = self._get_for_update(subject_key, year, month)
        if lock is None or not lock.is_locked:
            raise PeriodNotLockedError(subject_key, year, month)

        reason = str(reason).strip()
        lock.is_locked = False
        lock.unlocked_by_id = unlocked_by
        lock.unlocked_at = self.clock.now()
        lock.unlock_reason = reason
        lock.updated_by_id = unlocked_by
        self.session.flush()

        self._append_event(lock, MonthLockEventType.UNLOCKED, unlocked_by, reason)
        self._auditor.record(
            AuditAction.MONTH_UNLOCKED,
            unlocked_by,
            target_employee_id=self._target(subject_key),
            details={
                "subject_key": subject_key,
                "year": year,
                "month": month,
                "reason": reason,
            },
        )
        logger.info(
            "month_unlocked",
            extra={"subject_key": subject_key, "year": year, "month": month},
        )
        return MonthLockInfo.from_model(lock)

    def locked_months(self, subject_key: str) -> list[MonthLockInfo]:
        """Currently locked months for a subject, newest first."""
        rows = self.session.execute(
            select(MonthLock)
            .where(MonthLock.subject_key == subject_key, MonthLock.is_locked.is_(True))
            .order_by(MonthLock.year.desc(), MonthLock.month.desc())
        ).scalars()
        return [MonthLockInfo.from_model(r) for r in rows]

    def latest_lock(self, subject_key: str) -> MonthLockInfo | None:
        locked = self.locked_months(subject_key)
        return locked[0] if locked else None

    def history(self, subject_key: str, year: int, month: int) -> list[MonthLockEvent]:
        """Lock/unlock events for one period, oldest first."""
        return list(
            self.session.execute(
                select(MonthLockEvent)
                .where(
                    MonthLockEvent.subject_key == subject_key,
                    MonthLockEvent.year == year,
                    MonthLockEvent.month == month,
                )
                .order_by(MonthLockEvent.seq)
            ).scalars()
        )

    def _append_event(
        self,
        lock: MonthLock,
        event_type: MonthLockEventType,
        actor_id: UUID,
        reason: str | None,
    ) -> None:
        self.session.add(
            MonthLockEvent(
                month_lock_id=lock.id,
                subject_key=lock.subject_key,
                year=lock.year,
                month=lock.month,
                seq=self._sequences.next_value(SequenceService.MONTH_LOCK_EVENT),
                event_type=event_type.value,
                actor_id=actor_id,
                reason=reason,
                occurred_at=self.clock.now(),
            )
        )
        self.session.flush()

    @staticmethod
    def _target(subject_key: str) -> UUID | None:
        return None if subject_key == GLOBAL_SUBJECT else UUID(subject_key)
