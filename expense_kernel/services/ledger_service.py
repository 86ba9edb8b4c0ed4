"""
LedgerService -- the stored advance balance and its reconciliation.

Responsibility:
    Credits and debits ``Employee.advance_balance`` and proves, on demand,
    that the stored scalar equals the forward replay of advances and
    approved expenses.

Architecture position:
    Kernel > Services -- imperative shell.  Called by the approval, advance
    and bulk approval services.

Invariants enforced:
    - Atomic read-modify-write: every balance change is a compare-and-swap
      ``UPDATE employees SET advance_balance = :new, version = version + 1
      WHERE id = :id AND version = :seen``.  A zero rowcount means another
      writer got there first; the service re-reads and retries up to
      ``max_attempts`` times, then raises OptimisticLockError.
    - No floor: negative balances are written as-is.
    - Reconciliation: replay(employee).final_balance == stored balance.

Failure modes:
    - UnknownUserError: employee does not exist.
    - InvalidAmountError: non-numeric or negative amount.
    - OptimisticLockError: CAS retry budget exhausted.
    - LedgerReconciliationError: assert_reconciled found drift.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from expense_kernel.domain.clock import Clock
from expense_kernel.domain.dtos import BalanceChange, LedgerReplay
from expense_kernel.domain.values import as_decimal
from expense_kernel.exceptions import (
    InvalidAmountError,
    LedgerReconciliationError,
    OptimisticLockError,
    UnknownUserError,
)
from expense_kernel.logging_config import get_logger
from expense_kernel.models.employee import Employee
from expense_kernel.selectors.ledger_selector import LedgerSelector
from expense_kernel.services.base import BaseService

logger = get_logger("services.ledger")

DEFAULT_MAX_ATTEMPTS = 5


class LedgerService(BaseService[Employee]):
    """
    Balance writer.

    Contract:
        ``credit``/``debit`` flush an UPDATE inside the caller's transaction
        and return the before/after balance actually swapped.

    Non-goals:
        - Does NOT decide whether a debit is allowed; every approved amount
          is debited even past zero.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        super().__init__(session, clock)
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._max_attempts = max_attempts
        self._selector = LedgerSelector(session)

    def credit(self, employee_id: UUID, amount) -> BalanceChange:
        return self._apply(employee_id, self._amount(amount), "credit")

    def debit(self, employee_id: UUID, amount) -> BalanceChange:
        return self._apply(employee_id, -self._amount(amount), "debit")

    @staticmethod
    def _amount(amount) -> Decimal:
        value = as_decimal(amount)
        if value is None or value < 0:
            raise InvalidAmountError("amount", amount)
        return value

    def _read_state(self, employee_id: UUID) -> tuple[Decimal, int]:
        """Fresh (balance, version) straight from the database."""
        row = self.session.execute(
            select(Employee.advance_balance, Employee.version).where(
                Employee.id == employee_id
            )
        ).one_or_none()
        if row is None:
            raise UnknownUserError(str(employee_id))
        return Decimal(row.advance_balance), row.version

    def _compare_and_swap(
        self, employee_id: UUID, seen_version: int, new_balance: Decimal
    ) -> bool:
        result = self.session.execute(
            update(Employee)
            .where(Employee.id == employee_id, Employee.version == seen_version)
            .values(advance_balance=new_balance, version=seen_version + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _expire_cached(self, employee_id: UUID) -> None:
        key = self.session.identity_key(Employee, employee_id)
        cached = self.session.identity_map.get(key)
        if cached is not None:
            self.session.expire(cached, ["advance_balance", "version"])

    def _apply(self, employee_id: UUID, delta: Decimal, operation: str) -> BalanceChange:
        for attempt in range(1, self._max_attempts + 1):
            previous, version = self._read_state(employee_id)
            current = previous + delta
            if self._compare_and_swap(employee_id, version, current):
                self._expire_cached(employee_id)
                logger.info(
                    "balance_updated",
                    extra={
                        "employee_id": str(employee_id),
                        "operation": operation,
                        "previous_balance": str(previous),
                        "current_balance": str(current),
                        "version": version + 1,
                        "attempt": attempt,
                    },
                )
                return BalanceChange(
                    employee_id=employee_id, previous=previous, current=current
                )
            logger.warning(
                "balance_version_conflict",
                extra={
                    "employee_id": str(employee_id),
                    "operation": operation,
                    "seen_version": version,
                    "attempt": attempt,
                },
            )

        raise OptimisticLockError("Employee", str(employee_id), self._max_attempts)

    def balance(self, employee_id: UUID) -> Decimal:
        return self._selector.stored_balance(employee_id)

    def derive_balance(self, employee_id: UUID) -> Decimal:
        return self._selector.derive_balance(employee_id)

    def replay(self, employee_id: UUID) -> LedgerReplay:
        return self._selector.replay(employee_id)

    def assert_reconciled(self, employee_id: UUID) -> LedgerReplay:
        """Replay and raise LedgerReconciliationError on drift."""
        replay = self.replay(employee_id)
        if not replay.is_reconciled:
            logger.error(
                "ledger_reconciliation_failed",
                extra={
                    "employee_id": str(employee_id),
                    "stored_balance": str(replay.stored_balance),
                    "replayed_balance": str(replay.final_balance),
                },
            )
            raise LedgerReconciliationError(
                str(employee_id), replay.stored_balance, replay.final_balance
            )
        return replay
