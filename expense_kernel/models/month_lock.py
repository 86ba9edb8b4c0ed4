"""
Module: expense_kernel.models.month_lock
Responsibility: ORM persistence for per-subject month locks and their
    append-only lock/unlock history.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One MonthLock row per (subject_key, year, month).
    - MonthLockEvent rows are never updated or deleted, so re-locking never
      erases earlier unlock reasons.
    - MonthLockEvent.seq orders history by insertion.

Audit relevance:
    ``summary`` is the point-in-time financial snapshot captured when the
    month was closed.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, BigInteger, Boolean, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from expense_kernel.db.base import Base, TrackedBase, UUIDString


class MonthLockEventType(str, Enum):
    LOCKED = "locked"
    UNLOCKED = "unlocked"


class MonthLock(TrackedBase):
    """Current lock state of one month for one subject."""

    __tablename__ = "month_locks"

    __table_args__ = (
        UniqueConstraint("subject_key", "year", "month", name="uq_month_lock_period"),
        Index("idx_month_lock_locked", "is_locked"),
    )

    # Employee id as a string, or "global" for the whole organisation
    subject_key: Mapped[str] = mapped_column(String(64), nullable=False)

    year: Mapped[int] = mapped_column(Integer, nullable=False)

    month: Mapped[int] = mapped_column(Integer, nullable=False)

    is_locked: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    closed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    unlocked_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    unlocked_at: Mapped[datetime | None] = mapped_column(nullable=True)
    unlock_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    summary: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    def __repr__(self) -> str:
        state = "locked" if self.is_locked else "open"
        return f"<MonthLock {self.subject_key} {self.year}-{self.month:02d} {state}>"


class MonthLockEvent(Base):
    """One lock or unlock action."""

    __tablename__ = "month_lock_events"

    __table_args__ = (
        Index("idx_month_lock_event_period", "subject_key", "year", "month"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    month_lock_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    subject_key: Mapped[str] = mapped_column(String(64), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)

    event_type: Mapped[MonthLockEventType] = mapped_column(String(20), nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)
