"""
Module: expense_kernel.models.setting
Responsibility: Key/value runtime settings (rate per km, machine visit cost).
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from uuid import UUID

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from expense_kernel.db.base import Base, UUIDString

RATE_PER_KM = "RATE_PER_KM"
COST_PER_MACHINE_VISIT = "COST_PER_MACHINE_VISIT"


class Setting(Base):
    """A named runtime setting.  ``value`` holds the decimal as text."""

    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    value: Mapped[str] = mapped_column(String(255), nullable=False)

    description: Mapped[str | None] = mapped_column(String(255), nullable=True)

    updated_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return f"<Setting {self.key}={self.value}>"
