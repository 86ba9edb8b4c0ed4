"""
Module: expense_kernel.selectors.ledger_selector
Responsibility: Forward replay of an employee's advance ledger from source
    records: completed, non-deleted advances (credits) and approved expenses
    (debits).
Architecture position: Kernel > Selectors.  Read-only.

Ordering:
    Transactions are sorted by calendar date.  On the same date advances come
    before expenses; remaining ties break on creation time, then id.  The
    final running balance does not depend on the tie-break.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from expense_kernel.domain.dtos import LedgerReplay, LedgerTransaction
from expense_kernel.domain.values import AdvanceStatus, ExpenseStatus, round2
from expense_kernel.exceptions import UnknownUserError
from expense_kernel.models.advance import Advance
from expense_kernel.models.employee import Employee
from expense_kernel.models.expense import Expense
from expense_kernel.selectors.base import BaseSelector

_ADVANCE_FIRST = 0
_EXPENSE_SECOND = 1


class LedgerSelector(BaseSelector[Employee]):
    """Read-only ledger queries."""

    def stored_balance(self, employee_id: UUID) -> Decimal:
        value = self.session.execute(
            select(Employee.advance_balance).where(Employee.id == employee_id)
        ).scalar_one_or_none()
        if value is None:
            raise UnknownUserError(str(employee_id))
        return Decimal(value)

    def derive_balance(self, employee_id: UUID) -> Decimal:
        """Aggregate form of the replay: credits minus debits."""
        credits = self.session.execute(
            select(func.coalesce(func.sum(Advance.amount), 0)).where(
                Advance.employee_id == employee_id,
                Advance.status == AdvanceStatus.COMPLETED.value,
                Advance.is_deleted.is_(False),
            )
        ).scalar_one()
        debits = self.session.execute(
            select(func.coalesce(func.sum(Expense.approved_amount), 0)).where(
                Expense.employee_id == employee_id,
                Expense.status == ExpenseStatus.APPROVED.value,
            )
        ).scalar_one()
        return round2(Decimal(str(credits)) - Decimal(str(debits)))

    def replay(self, employee_id: UUID) -> LedgerReplay:
        stored = self.stored_balance(employee_id)

        advances = self.session.execute(
            select(Advance)
            .where(
                Advance.employee_id == employee_id,
                Advance.status == AdvanceStatus.COMPLETED.value,
                Advance.is_deleted.is_(False),
            )
        ).scalars().all()
        expenses = self.session.execute(
            select(Expense).where(
                Expense.employee_id == employee_id,
                Expense.status == ExpenseStatus.APPROVED.value,
            )
        ).scalars().all()

        movements = []
        for adv in advances:
            movements.append((
                (adv.advance_date, _ADVANCE_FIRST, adv.created_at, str(adv.id)),
                "advance",
                adv.id,
                adv.advance_date,
                Decimal(adv.amount),
                adv.description or adv.notes or "Advance payment",
                getattr(adv.payment_method, "value", adv.payment_method),
            ))
        for exp in expenses:
            movements.append((
                (exp.expense_date, _EXPENSE_SECOND, exp.created_at, str(exp.id)),
                "expense",
                exp.id,
                exp.expense_date,
                -Decimal(exp.approved_amount or 0),
                exp.description,
                None,
            ))
        movements.sort(key=lambda m: (m[0][0], m[0][1], str(m[0][2]), m[0][3]))

        running = Decimal("0")
        transactions = []
        for _, kind, source_id, on_date, amount, description, method in movements:
            running += amount
            transactions.append(
                LedgerTransaction(
                    kind=kind,
                    source_id=source_id,
                    on_date=on_date,
                    amount=amount,
                    running_balance=running,
                    description=description,
                    payment_method=method,
                )
            )

        total_advances = sum((Decimal(a.amount) for a in advances), Decimal("0"))
        total_expenses = sum(
            (Decimal(e.approved_amount or 0) for e in expenses), Decimal("0")
        )
        return LedgerReplay(
            employee_id=employee_id,
            transactions=tuple(transactions),
            final_balance=running,
            stored_balance=stored,
            total_advances=total_advances,
            total_expenses=total_expenses,
            advance_count=len(advances),
            expense_count=len(expenses),
        )
