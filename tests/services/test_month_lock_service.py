"""
Tests for MonthLockService -- per-employee and global month locks.

Covers:
- lock(): snapshot summary, event + audit entry, double lock rejected
- unlock(): mandatory reason, history kept, relock after unlock
- ensure_unlocked(): employee lock, global lock, other months unaffected
- period validation
"""

from datetime import date
from decimal import Decimal

import pytest

from expense_kernel.domain.values import ExpenseStatus
from expense_kernel.exceptions import (
    InvalidPeriodError,
    MissingReasonError,
    PeriodAlreadyLockedError,
    PeriodLockedError,
    PeriodNotLockedError,
)
from expense_kernel.models.audit_entry import AuditAction
from expense_kernel.services.month_lock_service import GLOBAL_SUBJECT, subject_key_for
from tests.factories import make_advance


class TestSubjectKey:
    def test_employee_and_global(self, employee):
        assert subject_key_for(employee.id) == str(employee.id)
        assert subject_key_for(None) == GLOBAL_SUBJECT


class TestLock:
    def test_lock_snapshots_summary(self, session, month_locks, employee, admin, create_expense):
        create_expense(employee.id, amount="100")
        create_expense(employee.id, amount="40", status=ExpenseStatus.REJECTED)
        make_advance(session, employee.id, admin.id, amount="500")

        info = month_locks.lock(str(employee.id), 2025, 11, admin.id, notes="Closed")

        assert info.is_locked
        assert info.closed_by_id == admin.id
        assert info.notes == "Closed"
        assert info.summary["total_expenses"] == 2
        assert info.summary["total_pending"] == 1
        assert info.summary["total_rejected"] == 1
        assert Decimal(info.summary["pending_amount"]) == Decimal("100")
        assert Decimal(info.summary["total_advances"]) == Decimal("500")
        assert month_locks.is_locked(str(employee.id), 2025, 11)

    def test_lock_writes_event_and_audit(self, month_locks, auditor, employee, admin):
        month_locks.lock(str(employee.id), 2025, 11, admin.id)

        events = month_locks.history(str(employee.id), 2025, 11)
        assert [e.event_type for e in events] == ["locked"]
        entries = auditor.trace(target_employee_id=employee.id, action=AuditAction.MONTH_LOCKED)
        assert len(entries) == 1
        assert entries[0].details["year"] == 2025

    def test_double_lock_rejected(self, month_locks, employee, admin):
        month_locks.lock(str(employee.id), 2025, 11, admin.id)
        with pytest.raises(PeriodAlreadyLockedError):
            month_locks.lock(str(employee.id), 2025, 11, admin.id)

    def test_global_lock_has_no_target(self, month_locks, auditor, superadmin):
        month_locks.lock(GLOBAL_SUBJECT, 2025, 11, superadmin.id)
        entries = auditor.trace(action=AuditAction.MONTH_LOCKED)
        assert entries[-1].details["subject_key"] == GLOBAL_SUBJECT

    @pytest.mark.parametrize("year, month", [(2025, 0), (2025, 13), (0, 5), (2025, True), ("2025", 1)])
    def test_invalid_period(self, month_locks, admin, year, month):
        with pytest.raises(InvalidPeriodError):
            month_locks.lock(GLOBAL_SUBJECT, year, month, admin.id)


class TestUnlock:
    def test_unlock_requires_reason(self, month_locks, employee, admin):
        month_locks.lock(str(employee.id), 2025, 11, admin.id)
        with pytest.raises(MissingReasonError):
            month_locks.unlock(str(employee.id), 2025, 11, admin.id, "   ")

    def test_unlock_not_locked(self, month_locks, employee, admin):
        with pytest.raises(PeriodNotLockedError):
            month_locks.unlock(str(employee.id), 2025, 11, admin.id, "fix")

    def test_unlock_then_relock_keeps_history(self, month_locks, employee, admin):
        key = str(employee.id)
        month_locks.lock(key, 2025, 11, admin.id)
        info = month_locks.unlock(key, 2025, 11, admin.id, " Late receipt ")
        assert not info.is_locked
        assert info.unlock_reason == "Late receipt"

        month_locks.lock(key, 2025, 11, admin.id)
        events = month_locks.history(key, 2025, 11)
        assert [e.event_type for e in events] == ["locked", "unlocked", "locked"]
        assert events[1].reason == "Late receipt"
        assert events[0].seq < events[1].seq < events[2].seq

    def test_locked_months_newest_first(self, month_locks, employee, admin):
        key = str(employee.id)
        month_locks.lock(key, 2025, 9, admin.id)
        month_locks.lock(key, 2025, 11, admin.id)
        assert [(m.year, m.month) for m in month_locks.locked_months(key)] == [
            (2025, 11),
            (2025, 9),
        ]
        assert month_locks.latest_lock(key).month == 11


class TestEnsureUnlocked:
    def test_open_month_passes(self, month_locks, employee):
        assert month_locks.ensure_unlocked(employee.id, date(2025, 11, 10), "create") is None

    def test_employee_lock_blocks(self, month_locks, employee, admin):
        month_locks.lock(str(employee.id), 2025, 11, admin.id)
        with pytest.raises(PeriodLockedError) as exc_info:
            month_locks.ensure_unlocked(employee.id, date(2025, 11, 10), "approve")
        assert str(exc_info.value) == "Cannot approve expense for November 2025. Month is locked."

    def test_global_lock_blocks_everyone(self, month_locks, employee, superadmin):
        month_locks.lock(GLOBAL_SUBJECT, 2025, 11, superadmin.id)
        with pytest.raises(PeriodLockedError):
            month_locks.ensure_unlocked(employee.id, date(2025, 11, 30), "create")

    def test_other_month_and_employee_unaffected(self, month_locks, employee, create_employee, admin):
        other = create_employee(assigned_to=admin.id)
        month_locks.lock(str(employee.id), 2025, 11, admin.id)
        month_locks.ensure_unlocked(employee.id, date(2025, 12, 1), "create")
        month_locks.ensure_unlocked(other.id, date(2025, 11, 10), "create")

    def test_violation_is_logged(self, month_locks, employee, admin, captured_logs):
        month_locks.lock(str(employee.id), 2025, 11, admin.id)
        with pytest.raises(PeriodLockedError):
            month_locks.ensure_unlocked(employee.id, date(2025, 11, 10), "delete")
        records = [r for r in captured_logs() if r["message"] == "period_locked_violation"]
        assert records[-1]["operation"] == "delete"
