"""Row builders shared by the test modules and fixtures."""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from expense_kernel.domain.values import (
    AdvanceStatus,
    ExpenseCategory,
    ExpenseStatus,
    ExpenseType,
    PaymentMethod,
    Role,
)
from expense_kernel.models.advance import Advance
from expense_kernel.models.employee import Employee
from expense_kernel.models.expense import Expense
from expense_kernel.models.journey import Journey

MUMBAI = {"latitude": 19.0760, "longitude": 72.8777}
PUNE = {"latitude": 18.5204, "longitude": 73.8567}


def make_employee(
    session: Session,
    *,
    role: Role = Role.USER,
    assigned_to: UUID | None = None,
    balance: Decimal | str = "0",
    name: str | None = None,
) -> Employee:
    suffix = uuid4().hex[:8]
    employee = Employee(
        name=name or f"{role.value}-{suffix}",
        email=f"{role.value}-{suffix}@example.com",
        role=role.value,
        assigned_to_id=assigned_to,
        advance_balance=Decimal(str(balance)),
        version=0,
    )
    session.add(employee)
    session.flush()
    return employee


def make_expense(
    session: Session,
    employee_id: UUID,
    *,
    amount: Decimal | str = "100",
    expense_type: ExpenseType = ExpenseType.FOOD,
    category: ExpenseCategory = ExpenseCategory.GENERAL,
    journey_id: UUID | None = None,
    system_distance: Decimal | str = "0",
    manual_distance: Decimal | str | None = None,
    distance_rate: Decimal | str | None = "8",
    expense_date: date = date(2025, 11, 10),
    status: ExpenseStatus = ExpenseStatus.PENDING,
) -> Expense:
    expense = Expense(
        employee_id=employee_id,
        journey_id=journey_id,
        expense_date=expense_date,
        category=category.value,
        expense_type=expense_type.value,
        description=f"{expense_type.value} expense",
        amount=Decimal(str(amount)),
        system_distance=Decimal(str(system_distance)),
        manual_distance=None if manual_distance is None else Decimal(str(manual_distance)),
        distance_rate=None if distance_rate is None else Decimal(str(distance_rate)),
        status=status.value,
        created_by_id=employee_id,
    )
    session.add(expense)
    session.flush()
    return expense


def make_journey(
    session: Session,
    employee_id: UUID,
    *,
    status: str = "completed",
    start_time: datetime = datetime(2025, 11, 10, 8, 0),
    calculated_distance: Decimal | str | None = None,
) -> Journey:
    journey = Journey(
        employee_id=employee_id,
        start_latitude=MUMBAI["latitude"],
        start_longitude=MUMBAI["longitude"],
        start_time=start_time,
        status=status,
        calculated_distance=(
            None if calculated_distance is None else Decimal(str(calculated_distance))
        ),
        created_by_id=employee_id,
    )
    session.add(journey)
    session.flush()
    return journey

def make_journey_expense(
    session: Session,
    employee_id: UUID,
    *,
    system_distance: Decimal | str,
    manual_distance: Decimal | str | None,
    amount: Decimal | str = "100",
    expense_date: date = date(2025, 11, 10),
) -> Expense:
    """A completed journey with its pending journey expense."""
    journey = Journey(
        employee_id=employee_id,
        start_latitude=MUMBAI["latitude"],
        start_longitude=MUMBAI["longitude"],
        start_time=datetime(2025, 11, 10, 8, 0),
        status="active",
        created_by_id=employee_id,
    )
    session.add(journey)
    session.flush()
    journey.status = "completed"
    session.flush()
    expense = make_expense(
        session,
        employee_id,
        amount=amount,
        expense_type=ExpenseType.JOURNEY,
        category=ExpenseCategory.JOURNEY,
        journey_id=journey.id,
        system_distance=system_distance,
        manual_distance=manual_distance,
        expense_date=expense_date,
    )
    journey.expense_id = expense.id
    session.flush()
    return expense


def make_advance(
    session: Session,
    employee_id: UUID,
    added_by: UUID,
    *,
    amount: Decimal | str = "1000",
    advance_date: date = date(2025, 11, 1),
    status: AdvanceStatus = AdvanceStatus.COMPLETED,
) -> Advance:
    """Advance row only; the stored balance is left untouched."""
    advance = Advance(
        employee_id=employee_id,
        amount=Decimal(str(amount)),
        advance_date=advance_date,
        payment_method=PaymentMethod.CASH.value,
        added_by_id=added_by,
        status=status.value,
        created_by_id=added_by,
    )
    session.add(advance)
    session.flush()
    return advance
