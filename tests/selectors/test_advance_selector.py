"""
Tests for AdvanceSelector -- scoped advance listing.

Covers:
- role scope, soft-deleted advances hidden
- status, payment method and date filters
- sorting by amount
"""

from datetime import date
from decimal import Decimal

import pytest

from expense_kernel.domain.dtos import Actor
from expense_kernel.domain.values import AdvanceStatus
from expense_kernel.selectors.advance_selector import AdvanceSelector
from expense_kernel.selectors.scope import QueryScope
from tests.factories import make_advance


@pytest.fixture
def selector(session) -> AdvanceSelector:
    return AdvanceSelector(session)


def _scope(model) -> QueryScope:
    return QueryScope.for_actor(Actor.from_model(model))


class TestList:
    def test_scope_and_soft_delete(self, session, selector, superadmin, admin, employee, create_employee):
        outsider = create_employee()
        make_advance(session, employee.id, admin.id)
        make_advance(session, outsider.id, superadmin.id)
        deleted = make_advance(session, employee.id, admin.id)
        deleted.is_deleted = True
        session.flush()

        assert selector.list(_scope(employee)).total == 1
        assert selector.list(_scope(admin)).total == 1
        assert selector.list(_scope(superadmin)).total == 2

    def test_filters(self, session, selector, admin, employee):
        make_advance(session, employee.id, admin.id, advance_date=date(2025, 10, 20))
        make_advance(session, employee.id, admin.id, advance_date=date(2025, 11, 3))
        make_advance(session, employee.id, admin.id, status=AdvanceStatus.CANCELLED)
        scope = _scope(admin)

        assert selector.list(scope, status="cancelled").total == 1
        assert selector.list(scope, date_from=date(2025, 11, 1)).total == 2
        assert selector.list(scope, date_to=date(2025, 10, 31)).total == 1
        assert selector.list(scope, payment_method="cash").total == 3
        assert selector.list(scope, payment_method="upi").total == 0

    def test_sorting(self, session, selector, admin, employee):
        for amount in ("300", "100", "200"):
            make_advance(session, employee.id, admin.id, amount=amount)

        items = selector.list(_scope(employee), sort="amount").items

        assert [i.amount for i in items] == [Decimal("100"), Decimal("200"), Decimal("300")]
