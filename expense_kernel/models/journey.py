"""
Module: expense_kernel.models.journey
Responsibility: ORM persistence for tracked trips from a start to an end GPS
    point.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - At most one ``active`` journey per employee (partial unique index
      ``uq_journey_one_active``, also checked by JourneyService).
    - After end/cancel only ``expense_id`` and ``additional_expenses_total``
      change.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from expense_kernel.db.base import TrackedBase, UUIDString
from expense_kernel.domain.values import JourneyStatus


class Journey(TrackedBase):
    """A field trip by one employee."""

    __tablename__ = "journeys"

    __table_args__ = (
        Index("idx_journey_employee_start", "employee_id", "start_time"),
        Index("idx_journey_status", "status"),
        Index(
            "uq_journey_one_active",
            "employee_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    employee_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("employees.id"),
        nullable=False,
    )

    # Visit details
    name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    customer_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    nature_of_work: Mapped[str | None] = mapped_column(String(500), nullable=True)
    type_of_visit: Mapped[str | None] = mapped_column(String(30), nullable=True)
    number_of_machines: Mapped[int | None] = mapped_column(Integer, nullable=True)
    machine_visit_cost: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    start_latitude: Mapped[float] = mapped_column(nullable=False)
    start_longitude: Mapped[float] = mapped_column(nullable=False)
    start_address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    start_time: Mapped[datetime] = mapped_column(nullable=False)

    end_latitude: Mapped[float | None] = mapped_column(nullable=True)
    end_longitude: Mapped[float | None] = mapped_column(nullable=True)
    end_address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    end_time: Mapped[datetime | None] = mapped_column(nullable=True)

    status: Mapped[JourneyStatus] = mapped_column(
        String(20),
        default=JourneyStatus.ACTIVE,
        nullable=False,
    )

    gps_offline: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    gps_offline_reason: Mapped[str | None] = mapped_column(String(30), nullable=True)

    # System distance (km), final distance (manual if given, else system), duration (min)
    system_distance: Mapped[Decimal | None] = mapped_column(nullable=True)
    calculated_distance: Mapped[Decimal | None] = mapped_column(nullable=True)
    calculated_duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    distance_source: Mapped[str | None] = mapped_column(String(20), nullable=True)

    expense_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    additional_expenses_total: Mapped[Decimal] = mapped_column(
        default=Decimal("0"),
        nullable=False,
    )

    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def __repr__(self) -> str:
        return f"<Journey {self.id} {self.status}>"

    @property
    def is_active(self) -> bool:
        return self.status == JourneyStatus.ACTIVE

