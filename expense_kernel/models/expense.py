"""
Module: expense_kernel.models.expense
Responsibility: ORM persistence for reimbursable spend records, general or
    tied to a journey.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - status moves only pending -> approved or pending -> rejected; both are
      terminal (ApprovalService).
    - approved_amount / approved_option are written exactly once, at the
      approval transition.
    - journey_id is set iff category == journey (ExpenseService).
    - distance_rate is stamped at creation; approval never re-reads it from
      configuration.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from expense_kernel.db.base import TrackedBase, UUIDString
from expense_kernel.domain.values import ExpenseCategory, ExpenseStatus


class Expense(TrackedBase):
    """One reimbursable expense."""

    __tablename__ = "expenses"

    __table_args__ = (
        Index("idx_expense_employee_date", "employee_id", "expense_date"),
        Index("idx_expense_employee_status", "employee_id", "status"),
        Index("idx_expense_status_date", "status", "expense_date"),
        Index("idx_expense_journey", "journey_id"),
    )

    employee_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("employees.id"),
        nullable=False,
    )

    journey_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journeys.id"),
        nullable=True,
    )

    expense_date: Mapped[date] = mapped_column(nullable=False)

    category: Mapped[ExpenseCategory] = mapped_column(
        String(20),
        default=ExpenseCategory.GENERAL,
        nullable=False,
    )

    expense_type: Mapped[str] = mapped_column(String(30), nullable=False)

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    # Pre-approval estimate
    amount: Mapped[Decimal] = mapped_column(nullable=False)

    system_distance: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    manual_distance: Mapped[Decimal | None] = mapped_column(nullable=True)
    admin_distance: Mapped[Decimal | None] = mapped_column(nullable=True)
    distance_rate: Mapped[Decimal | None] = mapped_column(nullable=True)

    start_address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    end_address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    gps_offline: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    status: Mapped[ExpenseStatus] = mapped_column(
        String(20),
        default=ExpenseStatus.PENDING,
        nullable=False,
    )

    approved_option: Mapped[int | None] = mapped_column(Integer, nullable=True)
    approved_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    approved_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    admin_notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    rejection_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    rejected_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(nullable=True)

    bulk_approved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return f"<Expense {self.id} {self.expense_type} {self.amount} {self.status}>"

    @property
    def is_pending(self) -> bool:
        return self.status == ExpenseStatus.PENDING

    @property
    def is_journey(self) -> bool:
        return self.category == ExpenseCategory.JOURNEY
