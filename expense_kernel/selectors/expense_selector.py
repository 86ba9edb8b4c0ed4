"""
Module: expense_kernel.selectors.expense_selector
Responsibility: Read-only expense queries: scoped listing with filtering,
    sorting and pagination, and the per-month financial summary captured
    when a month is locked.
Architecture position: Kernel > Selectors.  Read-only.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from expense_kernel.domain.dtos import ExpenseInfo, MonthSummary
from expense_kernel.domain.values import (
    GLOBAL_SUBJECT,
    AdvanceStatus,
    ExpenseStatus,
    round2,
)
from expense_kernel.exceptions import UnknownExpenseError
from expense_kernel.models.advance import Advance
from expense_kernel.models.employee import Employee
from expense_kernel.models.expense import Expense
from expense_kernel.selectors.base import BaseSelector, Page, sort_column
from expense_kernel.selectors.scope import QueryScope

_SORTABLE = {
    "expense_date": Expense.expense_date,
    "amount": Expense.amount,
    "created_at": Expense.created_at,
    "status": Expense.status,
}


@dataclass(frozen=True)
class ExpensePage(Page[ExpenseInfo]):
    pass


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """First day of the month and first day of the next month."""
    start = date(year, month, 1)
    end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return start, end


class ExpenseSelector(BaseSelector[Expense]):
    def get(self, expense_id: UUID) -> ExpenseInfo:
        expense = self.session.get(Expense, expense_id)
        if expense is None:
            raise UnknownExpenseError(str(expense_id))
        return ExpenseInfo.from_model(expense)

    def list(
        self,
        scope: QueryScope,
        *,
        status: str | None = None,
        employee_id: UUID | None = None,
        category: str | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        sort: str = "-expense_date",
        page: int = 1,
        page_size: int = 20,
    ) -> ExpensePage:
        """
        Expenses visible to ``scope``.

        ``sort`` is a column name, prefixed with ``-`` for descending.
        """
        order = sort_column(_SORTABLE, sort, "expenses")

        stmt = scope.apply(select(Expense), Expense.employee_id)
        if status is not None:
            stmt = stmt.where(Expense.status == status)
        if employee_id is not None:
            stmt = stmt.where(Expense.employee_id == employee_id)
        if category is not None:
            stmt = stmt.where(Expense.category == category)
        if date_from is not None:
            stmt = stmt.where(Expense.expense_date >= date_from)
        if date_to is not None:
            stmt = stmt.where(Expense.expense_date <= date_to)

        rows, page, page_size = self._paginate(stmt, order, Expense.id, page, page_size)
        return ExpensePage(
            items=tuple(ExpenseInfo.from_model(r) for r in rows),
            total=self._count(stmt),
            page=page,
            page_size=page_size,
        )

    def month_summary(self, subject_key: str, year: int, month: int) -> MonthSummary:
        """
        Totals for one month.  ``subject_key`` is an employee id string, or
        ``"global"`` for every employee.
        """
        start, end = month_bounds(year, month)
        employee_id = None if subject_key == GLOBAL_SUBJECT else UUID(subject_key)

        expense_stmt = select(Expense).where(
            Expense.expense_date >= start, Expense.expense_date < end
        )
        advance_stmt = select(func.coalesce(func.sum(Advance.amount), 0)).where(
            Advance.advance_date >= start,
            Advance.advance_date < end,
            Advance.status == AdvanceStatus.COMPLETED.value,
            Advance.is_deleted.is_(False),
        )
        balance_stmt = select(func.sum(Employee.advance_balance))
        if employee_id is not None:
            expense_stmt = expense_stmt.where(Expense.employee_id == employee_id)
            advance_stmt = advance_stmt.where(Advance.employee_id == employee_id)
            balance_stmt = balance_stmt.where(Employee.id == employee_id)

        expenses = self.session.execute(expense_stmt).scalars().all()

        counts = {s: 0 for s in ExpenseStatus}
        amounts = {s: Decimal("0") for s in ExpenseStatus}
        for exp in expenses:
            status = ExpenseStatus(exp.status)
            counts[status] += 1
            if status is ExpenseStatus.APPROVED:
                amounts[status] += Decimal(exp.approved_amount or exp.amount)
            else:
                amounts[status] += Decimal(exp.amount)

        total_advances = self.session.execute(advance_stmt).scalar_one()
        closing = self.session.execute(balance_stmt).scalar_one_or_none()

        return MonthSummary(
            total_expenses=len(expenses),
            total_approved=counts[ExpenseStatus.APPROVED],
            total_rejected=counts[ExpenseStatus.REJECTED],
            total_pending=counts[ExpenseStatus.PENDING],
            total_amount=round2(sum(amounts.values(), Decimal("0"))),
            approved_amount=round2(amounts[ExpenseStatus.APPROVED]),
            pending_amount=round2(amounts[ExpenseStatus.PENDING]),
            rejected_amount=round2(amounts[ExpenseStatus.REJECTED]),
            total_advances=round2(Decimal(str(total_advances))),
            closing_balance=None if closing is None else round2(Decimal(str(closing))),
        )
