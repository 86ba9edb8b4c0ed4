"""
Race safety for the stored advance balance.

The compare-and-swap in LedgerService is exercised by simulating a second
writer that commits between our read and our swap.  These tests use
sequential simulation of concurrent scenarios.
"""

from decimal import Decimal

import pytest
from sqlalchemy import update

from expense_kernel.exceptions import OptimisticLockError
from expense_kernel.models.employee import Employee
from expense_kernel.services.ledger_service import LedgerService


def _interleave_writer(monkeypatch, ledger, session, employee_id, delta, times=1):
    """Patch ``_read_state`` so another writer lands after each of the first reads."""
    original = ledger._read_state
    remaining = {"n": times}

    def read_then_race(emp_id):
        state = original(emp_id)
        if remaining["n"] > 0:
            remaining["n"] -= 1
            session.execute(
                update(Employee)
                .where(Employee.id == employee_id)
                .values(
                    advance_balance=Employee.advance_balance + delta,
                    version=Employee.version + 1,
                )
                .execution_options(synchronize_session=False)
            )
        return state

    monkeypatch.setattr(ledger, "_read_state", read_then_race)


class TestCompareAndSwap:
    def test_lost_update_prevented(self, monkeypatch, session, clock, employee, captured_logs):
        ledger = LedgerService(session, clock)
        _interleave_writer(monkeypatch, ledger, session, employee.id, Decimal("500"))

        change = ledger.debit(employee.id, Decimal("200"))

        # The retry saw the other writer's credit
        assert change.previous == Decimal("500")
        assert change.current == Decimal("300")
        assert ledger.balance(employee.id) == Decimal("300")
        conflicts = [r for r in captured_logs() if r["message"] == "balance_version_conflict"]
        assert len(conflicts) == 1
        updated = [r for r in captured_logs() if r["message"] == "balance_updated"]
        assert updated[-1]["attempt"] == 2

    def test_version_bumps_once_per_write(self, session, clock, employee):
        ledger = LedgerService(session, clock)
        ledger.credit(employee.id, 100)
        ledger.debit(employee.id, 40)
        session.refresh(employee)
        assert employee.version == 2
        assert employee.advance_balance == Decimal("60")

    def test_retry_budget_exhausted(self, monkeypatch, session, clock, employee):
        ledger = LedgerService(session, clock, max_attempts=3)
        _interleave_writer(monkeypatch, ledger, session, employee.id, Decimal("1"), times=3)

        with pytest.raises(OptimisticLockError) as exc_info:
            ledger.credit(employee.id, 10)

        assert exc_info.value.code == "OPTIMISTIC_LOCK_CONFLICT"
        # Only the competing writer's changes landed
        assert ledger.balance(employee.id) == Decimal("3")

    def test_succeeds_on_last_attempt(self, monkeypatch, session, clock, employee):
        ledger = LedgerService(session, clock, max_attempts=3)
        _interleave_writer(monkeypatch, ledger, session, employee.id, Decimal("1"), times=2)

        change = ledger.credit(employee.id, 10)

        assert change.current == Decimal("12")

    def test_max_attempts_validated(self, session, clock):
        with pytest.raises(ValueError):
            LedgerService(session, clock, max_attempts=0)


class TestInterleavedOperations:
    def test_credits_and_debits_commute(self, session, clock, create_employee):
        ledger = LedgerService(session, clock)
        first = create_employee()
        second = create_employee()

        for amount in ("100", "250.50", "75.25"):
            ledger.credit(first.id, amount)
        for amount in ("75.25", "100", "250.50"):
            ledger.credit(second.id, amount)
        ledger.debit(first.id, "400")
        ledger.debit(second.id, "400")

        assert ledger.balance(first.id) == ledger.balance(second.id) == Decimal("25.75")
