"""
Module: expense_kernel.models.audit_entry
Responsibility: ORM persistence for the append-only action log.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Rows are never updated or deleted (db/immutability.py).

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, BigInteger, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from expense_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    """Types of auditable actions."""

    EXPENSE_CREATED = "expense_created"
    EXPENSE_UPDATED = "expense_updated"
    EXPENSE_DELETED = "expense_deleted"
    EXPENSE_APPROVED = "expense_approved"
    EXPENSE_BULK_APPROVED = "expense_bulk_approved"
    EXPENSE_REJECTED = "expense_rejected"

    ADVANCE_ADDED = "advance_added"
    ADVANCE_CANCELLED = "advance_cancelled"
    ADVANCE_DELETED = "advance_deleted"

    JOURNEY_STARTED = "journey_started"
    JOURNEY_ENDED = "journey_ended"
    JOURNEY_CANCELLED = "journey_cancelled"

    MONTH_LOCKED = "month_locked"
    MONTH_UNLOCKED = "month_unlocked"

    SETTINGS_UPDATED = "settings_updated"


class AuditEntry(Base):
    """One recorded action: who did what to whom."""

    __tablename__ = "audit_entries"

    __table_args__ = (
        Index("idx_audit_action", "action"),
        Index("idx_audit_target_employee", "target_employee_id"),
        Index("idx_audit_occurred", "occurred_at"),
    )

    # Insertion order, from SequenceService; ties on occurred_at sort by this
    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    action: Mapped[AuditAction] = mapped_column(String(50), nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    target_employee_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    expense_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    journey_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    advance_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # JSON-safe payload (strings, numbers, booleans)
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEntry {self.action} by {self.actor_id}>"
