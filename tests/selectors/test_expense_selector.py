"""
Tests for ExpenseSelector and QueryScope.

Covers:
- list(): role scope, filters, sorting, pagination and page size clamp
- month_summary(): per-employee and global totals; cancelled and deleted
  advances excluded
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from expense_kernel.domain.dtos import Actor
from expense_kernel.domain.values import (
    GLOBAL_SUBJECT,
    AdvanceStatus,
    ExpenseStatus,
    Role,
)
from expense_kernel.exceptions import UnknownExpenseError
from expense_kernel.selectors.base import MAX_PAGE_SIZE
from expense_kernel.selectors.expense_selector import ExpensePage, ExpenseSelector, month_bounds
from expense_kernel.selectors.scope import QueryScope, ScopeKind
from tests.factories import make_advance


@pytest.fixture
def selector(session) -> ExpenseSelector:
    return ExpenseSelector(session)


class TestQueryScope:
    def test_kind_follows_role(self, superadmin, admin, employee):
        assert QueryScope.for_actor(Actor.from_model(superadmin)).kind is ScopeKind.ALL
        assert QueryScope.for_actor(Actor.from_model(admin)).kind is ScopeKind.ASSIGNED
        assert QueryScope.for_actor(Actor.from_model(employee)).kind is ScopeKind.SELF

    def test_covers(self, session, admin, employee, create_employee):
        outsider = create_employee()
        scope = QueryScope.for_actor(Actor.from_model(admin))
        assert scope.covers(session, employee.id)
        assert not scope.covers(session, outsider.id)
        assert not scope.covers(session, admin.id)

        own = QueryScope.for_actor(Actor.from_model(employee))
        assert own.covers(session, employee.id)
        assert not own.covers(session, outsider.id)


class TestList:
    def test_scope_limits_rows(self, selector, superadmin, admin, employee, create_employee, create_expense):
        outsider = create_employee(role=Role.USER)
        create_expense(employee.id)
        create_expense(employee.id)
        create_expense(outsider.id)

        def total(model):
            return selector.list(QueryScope.for_actor(Actor.from_model(model))).total

        assert total(employee) == 2
        assert total(admin) == 2
        assert total(outsider) == 1
        assert total(superadmin) == 3

    def test_filters(self, selector, superadmin, employee, create_expense):
        create_expense(employee.id, status=ExpenseStatus.APPROVED, expense_date=date(2025, 10, 5))
        create_expense(employee.id, expense_date=date(2025, 11, 2))
        create_expense(employee.id, expense_date=date(2025, 11, 20))
        scope = QueryScope.for_actor(Actor.from_model(superadmin))

        assert selector.list(scope, status="approved").total == 1
        assert selector.list(scope, date_from=date(2025, 11, 1)).total == 2
        assert selector.list(scope, date_to=date(2025, 11, 2)).total == 2
        assert selector.list(scope, employee_id=uuid4()).total == 0
        assert selector.list(scope, category="journey").total == 0

    def test_sorting(self, selector, employee, create_expense):
        for amount in ("30", "10", "20"):
            create_expense(employee.id, amount=amount)
        scope = QueryScope.for_actor(Actor.from_model(employee))

        ascending = selector.list(scope, sort="amount").items
        descending = selector.list(scope, sort="-amount").items

        assert [i.amount for i in ascending] == [Decimal("10"), Decimal("20"), Decimal("30")]
        assert [i.amount for i in descending] == [Decimal("30"), Decimal("20"), Decimal("10")]

    def test_default_sort_newest_date_first(self, selector, employee, create_expense):
        create_expense(employee.id, expense_date=date(2025, 11, 1))
        create_expense(employee.id, expense_date=date(2025, 11, 9))
        items = selector.list(QueryScope.for_actor(Actor.from_model(employee))).items
        assert [i.expense_date.day for i in items] == [9, 1]

    def test_unknown_sort(self, selector, employee):
        with pytest.raises(ValueError):
            selector.list(QueryScope.for_actor(Actor.from_model(employee)), sort="description")

    def test_pagination(self, selector, employee, create_expense):
        for _ in range(5):
            create_expense(employee.id)
        scope = QueryScope.for_actor(Actor.from_model(employee))

        page = selector.list(scope, page=3, page_size=2)

        assert page.total == 5
        assert page.pages == 3
        assert len(page.items) == 1

    def test_page_bounds_clamped(self, selector, employee):
        page = selector.list(
            QueryScope.for_actor(Actor.from_model(employee)), page=0, page_size=1000
        )
        assert page.page == 1
        assert page.page_size == MAX_PAGE_SIZE
        assert page.pages == 0

    def test_pages_property(self):
        assert ExpensePage(items=(), total=21, page=1, page_size=20).pages == 2


class TestGet:
    def test_unknown(self, selector):
        with pytest.raises(UnknownExpenseError):
            selector.get(uuid4())


class TestMonthSummary:
    def test_month_bounds(self):
        assert month_bounds(2025, 12) == (date(2025, 12, 1), date(2026, 1, 1))
        assert month_bounds(2025, 2) == (date(2025, 2, 1), date(2025, 3, 1))

    def test_employee_totals(self, session, selector, employee, admin, create_expense):
        create_expense(employee.id, amount="100", status=ExpenseStatus.APPROVED)
        create_expense(employee.id, amount="40")
        create_expense(employee.id, amount="15", status=ExpenseStatus.REJECTED)
        create_expense(employee.id, amount="999", expense_date=date(2025, 12, 1))
        make_advance(session, employee.id, admin.id, amount="500")
        make_advance(session, employee.id, admin.id, amount="70", status=AdvanceStatus.CANCELLED)
        deleted = make_advance(session, employee.id, admin.id, amount="30")
        deleted.is_deleted = True
        employee.advance_balance = Decimal("400")
        session.flush()

        summary = selector.month_summary(str(employee.id), 2025, 11)

        assert summary.total_expenses == 3
        assert (summary.total_approved, summary.total_pending, summary.total_rejected) == (1, 1, 1)
        assert summary.total_amount == Decimal("155.00")
        assert summary.approved_amount == Decimal("100.00")
        assert summary.pending_amount == Decimal("40.00")
        assert summary.rejected_amount == Decimal("15.00")
        assert summary.total_advances == Decimal("500.00")
        assert summary.closing_balance == Decimal("400.00")
        assert summary.to_json()["total_amount"] == "155.00"

    def test_global_covers_everyone(self, selector, employee, create_employee, create_expense):
        other = create_employee()
        create_expense(employee.id, amount="10")
        create_expense(other.id, amount="20")

        summary = selector.month_summary(GLOBAL_SUBJECT, 2025, 11)

        assert summary.total_expenses == 2
        assert summary.total_amount == Decimal("30.00")

    def test_empty_month(self, selector, employee):
        summary = selector.month_summary(str(employee.id), 2024, 1)
        assert summary.total_expenses == 0
        assert summary.total_amount == Decimal("0.00")
