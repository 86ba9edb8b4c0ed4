"""
Frozen-record enforcement by the ORM listeners in db/immutability.py.

Verifies:
- AuditEntry and MonthLockEvent are append-only
- Approved and rejected expenses cannot be modified
- Approved expenses cannot be deleted; rejected ones can
- Closed journeys accept only the linked expense id and running total
- Listeners can be removed and restored
"""

from decimal import Decimal

import pytest

from expense_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from expense_kernel.domain.values import ExpenseStatus
from expense_kernel.exceptions import ImmutabilityViolationError
from expense_kernel.models.audit_entry import AuditAction
from expense_kernel.models.journey import Journey
from tests.factories import make_journey_expense


class TestAuditEntries:
    def test_update_blocked(self, session, auditor, admin):
        entry = auditor.record(AuditAction.SETTINGS_UPDATED, admin.id, details={"key": "x"})
        entry.details = {"key": "y"}
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_delete_blocked(self, session, auditor, admin):
        entry = auditor.record(AuditAction.SETTINGS_UPDATED, admin.id)
        session.delete(entry)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestLockEvents:
    def test_update_blocked(self, session, month_locks, employee, admin):
        month_locks.lock(str(employee.id), 2025, 11, admin.id)
        event = month_locks.history(str(employee.id), 2025, 11)[0]
        event.reason = "rewritten"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestExpenses:
    @pytest.mark.parametrize("status", [ExpenseStatus.APPROVED, ExpenseStatus.REJECTED])
    def test_processed_expense_frozen(self, session, create_expense, employee, status):
        expense = create_expense(employee.id, status=status)
        expense.amount = Decimal("1")
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.code == "IMMUTABILITY_VIOLATION"

    def test_tracking_fields_still_writable(self, session, create_expense, employee, admin):
        expense = create_expense(employee.id, status=ExpenseStatus.APPROVED)
        expense.updated_by_id = admin.id
        session.flush()

    def test_pending_expense_mutable(self, session, create_expense, employee):
        expense = create_expense(employee.id)
        expense.amount = Decimal("5")
        session.flush()

    def test_approved_delete_blocked(self, session, create_expense, employee):
        expense = create_expense(employee.id, status=ExpenseStatus.APPROVED)
        session.delete(expense)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_rejected_delete_allowed(self, session, create_expense, employee):
        expense = create_expense(employee.id, status=ExpenseStatus.REJECTED)
        session.delete(expense)
        session.flush()


class TestJourneys:
    def test_closed_journey_accepts_link_and_total(self, session, employee):
        expense = make_journey_expense(session, employee.id, system_distance="1", manual_distance=None)
        journey = session.get(Journey, expense.journey_id)
        journey.additional_expenses_total = Decimal("50")
        journey.expense_id = None
        session.flush()

    def test_closed_journey_rejects_other_fields(self, session, employee):
        expense = make_journey_expense(session, employee.id, system_distance="1", manual_distance=None)
        journey = session.get(Journey, expense.journey_id)
        journey.end_address = "Elsewhere"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestListenerRegistration:
    def test_unregister_then_register(self, session, create_expense, employee):
        unregister_immutability_listeners()
        try:
            expense = create_expense(employee.id, status=ExpenseStatus.APPROVED)
            expense.amount = Decimal("2")
            session.flush()
        finally:
            register_immutability_listeners()

        expense.amount = Decimal("3")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
