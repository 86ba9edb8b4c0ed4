"""
Module: expense_kernel.models.advance
Responsibility: ORM persistence for cash advances credited to employees.
Architecture position: Kernel > Models.  May import from db/base.py only.

Only ``completed`` advances that are not soft-deleted count towards the
balance.  Cancelling or deleting a completed advance reverses its credit.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from expense_kernel.db.base import TrackedBase, UUIDString
from expense_kernel.domain.values import AdvanceStatus, PaymentMethod


class Advance(TrackedBase):
    """A credit given to an employee against future expenses."""

    __tablename__ = "advances"

    __table_args__ = (
        Index("idx_advance_employee_date", "employee_id", "advance_date"),
        Index("idx_advance_status", "status"),
    )

    employee_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("employees.id"),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    advance_date: Mapped[date] = mapped_column(nullable=False)

    payment_method: Mapped[PaymentMethod] = mapped_column(
        String(20),
        default=PaymentMethod.BANK_TRANSFER,
        nullable=False,
    )

    added_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    transaction_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    status: Mapped[AdvanceStatus] = mapped_column(
        String(20),
        default=AdvanceStatus.COMPLETED,
        nullable=False,
    )

    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    deleted_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return f"<Advance {self.id} {self.amount} {self.status}>"

    @property
    def counts_towards_balance(self) -> bool:
        return self.status == AdvanceStatus.COMPLETED and not self.is_deleted
