"""
Tests for ExpenseOperations -- the transactional facade.

Each call runs in its own committed transaction, so these tests seed data
through the ``seed`` fixture and never hold the ``session`` fixture open.

Covers:
- journey -> expense -> approval -> advance flow end to end
- typed failures become OperationResult errors and roll back
- malformed ids reported as not found; in a bulk batch only that item fails
- scoped journey and advance listings, active journey lookup
- month lock permissions (global needs superadmin)
- settings update changes the rate stamped on new expenses
- log context bound per operation
"""

from datetime import date
from decimal import Decimal

import pytest

from expense_kernel.domain.dtos import Actor
from expense_kernel.domain.values import Role
from expense_kernel.models.setting import RATE_PER_KM
from expense_services.operations import ExpenseOperations
from tests.factories import MUMBAI, PUNE, make_employee, make_expense, make_journey


@pytest.fixture
def ops(session_factory, clock):
    operations = ExpenseOperations(session_factory, clock=clock)
    yield operations
    operations.close()


@pytest.fixture
def people(seed):
    """Superadmin, admin and an employee assigned to the admin, as Actors."""

    def _create(s):
        superadmin = make_employee(s, role=Role.SUPERADMIN)
        admin = make_employee(s, role=Role.ADMIN)
        user = make_employee(s, assigned_to=admin.id)
        return {
            "superadmin": Actor.from_model(superadmin),
            "admin": Actor.from_model(admin),
            "user": Actor.from_model(user),
        }

    return seed(_create)


def _expense(seed, employee_id, **kwargs):
    return seed(lambda s: make_expense(s, employee_id, **kwargs).id)


class TestJourneyFlow:
    def test_end_to_end(self, ops, people):
        user, admin = people["user"], people["admin"]

        started = ops.start_journey(user, MUMBAI, start_address="Mumbai", name="Client visit")
        assert started.success, started.message
        assert started.message == "Journey started successfully"
        journey_id = started.data["id"]

        ended = ops.end_journey(user, journey_id, PUNE, end_address="Pune", manual_distance="148.3")
        assert ended.success, ended.message
        assert ended.data["cost"] == Decimal("1186.40")
        assert ended.data["expense"]["status"] == "pending"
        expense_id = ended.data["expense"]["id"]

        approved = ops.approve_expense(admin, expense_id, option=2)
        assert approved.success, approved.message
        # amount already holds 148.3 * 8; approval adds it again
        assert approved.data["approved_amount"] == Decimal("2372.80")
        assert approved.data["balance"]["current"] == Decimal("-2372.80")

        added = ops.add_advance(admin, user.id, "5000", payment_method="cash")
        assert added.success, added.message
        assert added.data["balance"]["current"] == Decimal("2627.20")

        history = ops.advance_history(user, user.id)
        assert history.data["current_balance"] == Decimal("2627.20")
        assert history.data["ledger"]["is_reconciled"] is True

        total = ops.journey_expense_total(user, journey_id)
        assert total.data["approved_total"] == Decimal("2372.80")

    def test_journey_read_back(self, ops, people):
        user = people["user"]
        journey_id = ops.start_journey(user, MUMBAI).data["id"]
        fetched = ops.get_journey(user, journey_id)
        assert fetched.data["status"] == "active"
        cancelled = ops.cancel_journey(user, journey_id)
        assert cancelled.data["status"] == "cancelled"

    def test_active_journey_lookup(self, ops, people):
        user, admin = people["user"], people["admin"]
        empty = ops.get_active_journey(user)
        assert empty.success
        assert empty.data is None
        assert empty.message == "No active journey found"

        journey_id = ops.start_journey(user, MUMBAI).data["id"]
        found = ops.get_active_journey(user)
        assert found.message == "Active journey retrieved successfully"
        assert found.data["id"] == journey_id
        assert ops.get_active_journey(admin, str(user.id)).data["id"] == journey_id

    def test_list_journeys_respects_scope(self, ops, people, seed):
        user, admin = people["user"], people["admin"]
        seed(lambda s: make_journey(s, user.id, calculated_distance="12.5"))
        outsider = seed(lambda s: make_employee(s).id)
        seed(lambda s: make_journey(s, outsider, calculated_distance="40"))

        mine = ops.list_journeys(user)
        assert mine.success
        assert mine.data["total"] == 1
        assert mine.data["total_distance"] == Decimal("12.50")
        assert mine.data["pages"] == 1
        assert ops.list_journeys(admin).data["total"] == 1
        assert ops.list_journeys(people["superadmin"]).data["total"] == 2

        denied = ops.list_journeys(admin, employee_id=str(outsider))
        assert denied.error_code == "ACCESS_DENIED"

    def test_duplicate_journey(self, ops, people):
        user = people["user"]
        ops.start_journey(user, MUMBAI)
        second = ops.start_journey(user, PUNE)
        assert not second.success
        assert second.error_code == "DUPLICATE_ACTIVE_JOURNEY"
        assert second.error_kind == "state_conflict"


class TestExpenses:
    def test_create_update_delete(self, ops, people):
        user = people["user"]
        created = ops.create_expense(user, expense_type="food", amount="120", description="Lunch")
        assert created.message == "Expense created successfully"
        expense_id = created.data["expense"]["id"]

        updated = ops.update_expense(user, expense_id, amount="90")
        assert updated.data["amount"] == Decimal("90.00")

        deleted = ops.delete_expense(user, expense_id)
        assert deleted.success
        assert not ops.delete_expense(user, expense_id).success

    def test_merge_message(self, ops, people):
        user = people["user"]
        journey_id = ops.start_journey(user, MUMBAI).data["id"]
        ops.end_journey(user, journey_id, PUNE, manual_distance="10")

        merged = ops.create_expense(
            user,
            expense_type="toll",
            category="journey",
            amount="40",
            description="Toll",
            journey_id=journey_id,
        )

        assert merged.message == "Expense added to existing journey expense"
        assert merged.data["merged"] is True
        assert merged.data["expense"]["amount"] == Decimal("120.00")

    def test_list_respects_scope(self, ops, people, seed):
        user, admin = people["user"], people["admin"]
        _expense(seed, user.id)
        outsider = seed(lambda s: make_employee(s).id)
        _expense(seed, outsider)

        mine = ops.list_expenses(user)
        assert mine.data["total"] == 1
        assert ops.list_expenses(admin).data["total"] == 1
        assert ops.list_expenses(people["superadmin"]).data["total"] == 2


class TestFailures:
    def test_malformed_id_is_not_found(self, ops, people):
        result = ops.approve_expense(people["admin"], "not-a-uuid")
        assert not result.success
        assert result.error_code == "UNKNOWN_EXPENSE"
        assert result.error_kind == "not_found"
        assert result.data is None

    def test_locked_month_blocks_approval_and_rolls_back(self, ops, people, seed):
        user, admin = people["user"], people["admin"]
        expense_id = _expense(seed, user.id, expense_date=date(2025, 11, 15))

        locked = ops.lock_month(admin, 2025, 11, employee_id=user.id)
        assert locked.success, locked.message

        result = ops.approve_expense(admin, expense_id)
        assert not result.success
        assert result.error_code == "PERIOD_LOCKED"
        assert result.message == "Cannot approve expense for November 2025. Month is locked."

        listing = ops.list_expenses(admin, status="pending")
        assert [item["id"] for item in listing.data["items"]] == [str(expense_id)]

    def test_bulk_message(self, ops, people, seed):
        user, admin = people["user"], people["admin"]
        first = _expense(seed, user.id)
        second = _expense(seed, user.id, distance_rate=None)

        result = ops.bulk_approve_expenses(admin, [str(first), str(second)])

        assert result.success
        assert result.message == "Bulk approval completed. 1 approved, 1 failed."
        assert result.data["total_failed"] == 1
        assert result.data["failed"][0]["error_code"] == "MISSING_RATE"

    def test_bulk_malformed_id_fails_only_that_item(self, ops, people, seed):
        user, admin = people["user"], people["admin"]
        good = _expense(seed, user.id)

        result = ops.bulk_approve_expenses(admin, [str(good), "not-a-uuid"])

        assert result.success, result.message
        assert result.data["total_approved"] == 1
        assert result.data["total_failed"] == 1
        failure = result.data["failed"][0]
        assert failure["expense_id"] == "not-a-uuid"
        assert failure["error_code"] == "UNKNOWN_EXPENSE"
        assert ops.list_expenses(admin, status="approved").data["total"] == 1

    def test_empty_bulk(self, ops, people):
        result = ops.bulk_approve_expenses(people["admin"], [])
        assert result.error_code == "EMPTY_BATCH"


class TestAdvances:
    def test_list_advances_respects_scope(self, ops, people, seed):
        user, admin = people["user"], people["admin"]
        ops.add_advance(admin, user.id, "5000")
        outsider = seed(lambda s: make_employee(s).id)
        ops.add_advance(people["superadmin"], outsider, "700")

        mine = ops.list_advances(user)
        assert mine.message == "Advances retrieved successfully"
        assert mine.data["total"] == 1
        assert mine.data["items"][0]["amount"] == Decimal("5000.00")
        assert ops.list_advances(admin).data["total"] == 1
        assert ops.list_advances(people["superadmin"]).data["total"] == 2
        assert ops.list_advances(user, employee_id=str(outsider)).error_code == "ACCESS_DENIED"

    def test_deleted_advance_hidden(self, ops, people):
        user, admin = people["user"], people["admin"]
        advance_id = ops.add_advance(admin, user.id, "300").data["advance"]["id"]
        assert ops.delete_advance(admin, advance_id).success
        assert ops.list_advances(admin).data["total"] == 0


class TestMonthLocks:
    def test_global_lock_needs_superadmin(self, ops, people):
        denied = ops.lock_month(people["admin"], 2025, 11)
        assert denied.error_code == "ACCESS_DENIED"

        locked = ops.lock_month(people["superadmin"], 2025, 11, notes="Year end")
        assert locked.success
        assert locked.data["subject_key"] == "global"

        status = ops.is_month_locked(people["user"], date(2025, 11, 3))
        assert status.data is True

    def test_unlock_requires_reason(self, ops, people):
        admin, user = people["admin"], people["user"]
        ops.lock_month(admin, 2025, 11, employee_id=user.id)
        missing = ops.unlock_month(admin, 2025, 11, None, employee_id=user.id)
        assert missing.error_code == "MISSING_REASON"
        unlocked = ops.unlock_month(admin, 2025, 11, "Late receipts", employee_id=user.id)
        assert unlocked.success
        assert unlocked.data["is_locked"] is False

    @pytest.mark.parametrize("value", ["2025-11-03", None, 202511])
    def test_lock_status_needs_a_date(self, ops, people, value):
        result = ops.is_month_locked(people["user"], value)
        assert not result.success
        assert result.error_code == "INVALID_PERIOD"
        assert result.error_kind == "validation"

    def test_field_user_cannot_lock(self, ops, people):
        user = people["user"]
        result = ops.lock_month(user, 2025, 11, employee_id=user.id)
        assert result.error_code == "ACCESS_DENIED"


class TestSettings:
    def test_rate_change_applies_to_new_expenses(self, ops, people):
        updated = ops.update_setting(people["admin"], RATE_PER_KM, "10")
        assert updated.success
        assert updated.data["value"] == Decimal("10.00")

        created = ops.create_expense(people["user"], expense_type="food", amount=5, description="x")
        assert created.data["expense"]["distance_rate"] == Decimal("10.00")

    def test_field_user_denied(self, ops, people):
        result = ops.update_setting(people["user"], RATE_PER_KM, "10")
        assert result.error_code == "ACCESS_DENIED"

    def test_zero_rate_rejected(self, ops, people):
        result = ops.update_setting(people["admin"], RATE_PER_KM, 0)
        assert result.error_code == "INVALID_AMOUNT"

    def test_unknown_key_rejected(self, ops, people):
        result = ops.update_setting(people["admin"], "RATE_PER_MILE", "10")
        assert not result.success
        assert result.error_code == "UNKNOWN_SETTING"
        assert result.error_kind == "validation"


class TestLogging:
    def test_operation_context_bound(self, ops, people, captured_logs):
        ops.create_expense(people["user"], expense_type="food", amount=5, description="x")

        records = captured_logs()
        started = next(r for r in records if r["message"] == "operation_started")
        completed = next(r for r in records if r["message"] == "operation_completed")
        assert started["operation"] == "create_expense"
        assert started["correlation_id"] == completed["correlation_id"]
        assert started["actor_id"] == str(people["user"].id)

    def test_rejection_logged(self, ops, people, captured_logs):
        ops.approve_expense(people["user"], "bad-id")
        rejected = [r for r in captured_logs() if r["message"] == "operation_rejected"]
        assert rejected[-1]["error_code"] == "UNKNOWN_EXPENSE"
