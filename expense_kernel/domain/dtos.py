"""
DTOs -- immutable data transfer objects.

Responsibility:
    The frozen records that services return and the operations facade
    serializes: journeys, expenses, advances, balance changes, ledger replay
    rows and month summaries.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  ``from_model()`` class methods are
    boundary converters invoked only from the service/selector layers.

Invariants enforced:
    - Services hand out DTOs, never live ORM instances, so callers cannot
      mutate persisted state behind a service's back.
    - Money and distance fields are Decimal.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from expense_kernel.domain.values import Role

if TYPE_CHECKING:
    from expense_kernel.models.advance import Advance as AdvanceModel
    from expense_kernel.models.employee import Employee as EmployeeModel
    from expense_kernel.models.expense import Expense as ExpenseModel
    from expense_kernel.models.journey import Journey as JourneyModel
    from expense_kernel.models.month_lock import MonthLock as MonthLockModel


def _enum_value(value):
    return getattr(value, "value", value)


@dataclass(frozen=True)
class Actor:
    """Who is performing an operation."""

    id: UUID
    role: Role = Role.USER

    @classmethod
    def from_model(cls, model: EmployeeModel) -> Actor:
        return cls(id=model.id, role=Role(_enum_value(model.role)))


@dataclass(frozen=True)
class EmployeeInfo:
    id: UUID
    name: str
    email: str
    role: str
    assigned_to_id: UUID | None
    advance_balance: Decimal
    version: int

    @classmethod
    def from_model(cls, model: EmployeeModel) -> EmployeeInfo:
        return cls(
            id=model.id,
            name=model.name,
            email=model.email,
            role=_enum_value(model.role),
            assigned_to_id=model.assigned_to_id,
            advance_balance=Decimal(model.advance_balance),
            version=model.version,
        )


@dataclass(frozen=True)
class JourneyInfo:
    id: UUID
    employee_id: UUID
    status: str
    name: str | None
    customer_name: str | None
    nature_of_work: str | None
    type_of_visit: str | None
    number_of_machines: int | None
    machine_visit_cost: Decimal
    start_latitude: float
    start_longitude: float
    start_address: str | None
    start_time: datetime
    end_latitude: float | None
    end_longitude: float | None
    end_address: str | None
    end_time: datetime | None
    gps_offline: bool
    gps_offline_reason: str | None
    system_distance: Decimal | None
    calculated_distance: Decimal | None
    calculated_duration: int | None
    distance_source: str | None
    expense_id: UUID | None
    additional_expenses_total: Decimal
    notes: str | None

    @classmethod
    def from_model(cls, model: JourneyModel) -> JourneyInfo:
        return cls(
            id=model.id,
            employee_id=model.employee_id,
            status=_enum_value(model.status),
            name=model.name,
            customer_name=model.customer_name,
            nature_of_work=model.nature_of_work,
            type_of_visit=model.type_of_visit,
            number_of_machines=model.number_of_machines,
            machine_visit_cost=Decimal(model.machine_visit_cost or 0),
            start_latitude=model.start_latitude,
            start_longitude=model.start_longitude,
            start_address=model.start_address,
            start_time=model.start_time,
            end_latitude=model.end_latitude,
            end_longitude=model.end_longitude,
            end_address=model.end_address,
            end_time=model.end_time,
            gps_offline=model.gps_offline,
            gps_offline_reason=model.gps_offline_reason,
            system_distance=model.system_distance,
            calculated_distance=model.calculated_distance,
            calculated_duration=model.calculated_duration,
            distance_source=model.distance_source,
            expense_id=model.expense_id,
            additional_expenses_total=Decimal(model.additional_expenses_total or 0),
            notes=model.notes,
        )


@dataclass(frozen=True)
class ExpenseInfo:
    id: UUID
    employee_id: UUID
    journey_id: UUID | None
    expense_date: date
    category: str
    expense_type: str
    description: str
    amount: Decimal
    system_distance: Decimal
    manual_distance: Decimal | None
    admin_distance: Decimal | None
    distance_rate: Decimal | None
    status: str
    approved_option: int | None
    approved_amount: Decimal | None
    approved_by_id: UUID | None
    approved_at: datetime | None
    admin_notes: str | None
    rejection_reason: str | None
    bulk_approved: bool

    @classmethod
    def from_model(cls, model: ExpenseModel) -> ExpenseInfo:
        return cls(
            id=model.id,
            employee_id=model.employee_id,
            journey_id=model.journey_id,
            expense_date=model.expense_date,
            category=_enum_value(model.category),
            expense_type=model.expense_type,
            description=model.description,
            amount=Decimal(model.amount),
            system_distance=Decimal(model.system_distance or 0),
            manual_distance=model.manual_distance,
            admin_distance=model.admin_distance,
            distance_rate=model.distance_rate,
            status=_enum_value(model.status),
            approved_option=model.approved_option,
            approved_amount=model.approved_amount,
            approved_by_id=model.approved_by_id,
            approved_at=model.approved_at,
            admin_notes=model.admin_notes,
            rejection_reason=model.rejection_reason,
            bulk_approved=model.bulk_approved,
        )


@dataclass(frozen=True)
class AdvanceInfo:
    id: UUID
    employee_id: UUID
    amount: Decimal
    advance_date: date
    payment_method: str
    added_by_id: UUID
    transaction_reference: str | None
    description: str | None
    notes: str | None
    status: str
    is_deleted: bool

    @classmethod
    def from_model(cls, model: AdvanceModel) -> AdvanceInfo:
        return cls(
            id=model.id,
            employee_id=model.employee_id,
            amount=Decimal(model.amount),
            advance_date=model.advance_date,
            payment_method=_enum_value(model.payment_method),
            added_by_id=model.added_by_id,
            transaction_reference=model.transaction_reference,
            description=model.description,
            notes=model.notes,
            status=_enum_value(model.status),
            is_deleted=model.is_deleted,
        )


@dataclass(frozen=True)
class BalanceChange:
    """Stored balance before and after one ledger write."""

    employee_id: UUID
    previous: Decimal
    current: Decimal

    @property
    def delta(self) -> Decimal:
        return self.current - self.previous


@dataclass(frozen=True)
class JourneyTotalChange:
    """Running ``additional_expenses_total`` before and after an approval."""

    journey_id: UUID
    previous: Decimal
    current: Decimal


@dataclass(frozen=True)
class ApprovalOutcome:
    """Result of approving one expense."""

    expense: ExpenseInfo
    approved_amount: Decimal
    distance_cost: Decimal
    balance: BalanceChange
    journey_total: JourneyTotalChange | None = None


@dataclass(frozen=True)
class LedgerTransaction:
    """One replayed ledger movement; ``amount`` is signed (debits negative)."""

    kind: str  # "advance" | "expense"
    source_id: UUID
    on_date: date
    amount: Decimal
    running_balance: Decimal
    description: str | None = None
    payment_method: str | None = None


@dataclass(frozen=True)
class LedgerReplay:
    """Forward replay of an employee's ledger."""

    employee_id: UUID
    transactions: tuple[LedgerTransaction, ...]
    final_balance: Decimal
    stored_balance: Decimal
    total_advances: Decimal = Decimal("0")
    total_expenses: Decimal = Decimal("0")
    advance_count: int = 0
    expense_count: int = 0

    @property
    def is_reconciled(self) -> bool:
        return self.final_balance == self.stored_balance


@dataclass(frozen=True)
class MonthSummary:
    """Point-in-time financial totals for one subject and month."""

    total_expenses: int
    total_approved: int
    total_rejected: int
    total_pending: int
    total_amount: Decimal
    approved_amount: Decimal
    pending_amount: Decimal
    rejected_amount: Decimal
    total_advances: Decimal
    closing_balance: Decimal | None

    def to_json(self) -> dict:
        """JSON-safe mapping for the month lock snapshot column."""
        return {
            "total_expenses": self.total_expenses,
            "total_approved": self.total_approved,
            "total_rejected": self.total_rejected,
            "total_pending": self.total_pending,
            "total_amount": str(self.total_amount),
            "approved_amount": str(self.approved_amount),
            "pending_amount": str(self.pending_amount),
            "rejected_amount": str(self.rejected_amount),
            "total_advances": str(self.total_advances),
            "closing_balance": (
                None if self.closing_balance is None else str(self.closing_balance)
            ),
        }


@dataclass(frozen=True)
class MonthLockInfo:
    id: UUID
    subject_key: str
    year: int
    month: int
    is_locked: bool
    closed_by_id: UUID | None
    closed_at: datetime | None
    unlocked_by_id: UUID | None
    unlocked_at: datetime | None
    unlock_reason: str | None
    summary: dict = field(default_factory=dict)
    notes: str | None = None

    @classmethod
    def from_model(cls, model: MonthLockModel) -> MonthLockInfo:
        return cls(
            id=model.id,
            subject_key=model.subject_key,
            year=model.year,
            month=model.month,
            is_locked=model.is_locked,
            closed_by_id=model.closed_by_id,
            closed_at=model.closed_at,
            unlocked_by_id=model.unlocked_by_id,
            unlocked_at=model.unlocked_at,
            unlock_reason=model.unlock_reason,
            summary=dict(model.summary or {}),
            notes=model.notes,
        )
