"""
Module: expense_kernel.models.employee
Responsibility: ORM persistence for field employees and the stored advance
    balance scalar.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - advance_balance is changed only by LedgerService, through a
      compare-and-swap on ``version``; every successful write increments
      ``version`` by exactly one.
    - advance_balance has no floor; negative values are valid.

Audit relevance:
    The stored balance must always equal the replay of completed advances
    minus approved expenses (see LedgerService.assert_reconciled).
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from expense_kernel.db.base import Base, UUIDString
from expense_kernel.domain.values import Role


class Employee(Base):
    """
    A user of the system: field employee, admin or superadmin.

    ``assigned_to_id`` is the org-assignment edge from a user to the admin
    responsible for them.
    """

    __tablename__ = "employees"

    __table_args__ = (
        Index("idx_employee_assigned_to", "assigned_to_id"),
        Index("idx_employee_role", "role"),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    role: Mapped[Role] = mapped_column(
        String(20),
        default=Role.USER,
        nullable=False,
    )

    assigned_to_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("employees.id"),
        nullable=True,
    )

    advance_balance: Mapped[Decimal] = mapped_column(
        default=Decimal("0"),
        nullable=False,
    )

    # Optimistic concurrency counter for advance_balance
    version: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Employee {self.email} ({self.role})>"
