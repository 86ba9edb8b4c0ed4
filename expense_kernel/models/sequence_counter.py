"""
Module: expense_kernel.models.sequence_counter
Responsibility: One counter row per named sequence.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - ``name`` is unique; ``current_value`` only ever grows.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from expense_kernel.db.base import Base


class SequenceCounter(Base):
    __tablename__ = "sequence_counters"

    # "audit_entry" or "month_lock_event"
    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<SequenceCounter {self.name}={self.current_value}>"
