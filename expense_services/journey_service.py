"""
JourneyService -- start, end and cancel field journeys.

Responsibility:
    Owns the journey lifecycle.  Ending a journey measures the system
    distance (Haversine), prices the trip at the current rate, spawns the
    pending journey expense and queues the best-effort remote duration
    lookup.

Architecture position:
    Services -- imperative shell.  Called by the operations facade.

Invariants enforced:
    - At most one active journey per employee (checked here, backed by the
      ``uq_journey_one_active`` partial unique index).
    - Only the owner ends or cancels a journey, and only while it is active.
    - GPS offline journeys get a system distance of 0.
    - final distance = manual distance when given, else system distance;
      expense amount = final distance * rate, with the rate stamped on the
      expense.
    - The remote duration lookup never changes the returned completion or
      the stored journey row; its result is read back through ``get``.

Failure modes:
    - DuplicateActiveJourneyError, InvalidJourneyError,
      InvalidCoordinateError, InvalidDistanceError, UnknownJourneyError,
      UnknownUserError, AccessDeniedError, JourneyNotActiveError,
      PeriodLockedError (expense date inside a locked month),
      MissingRateError.
"""

from __future__ import annotations

import dataclasses
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from expense_config.provider import ConfigProvider, StaticConfigProvider
from expense_engines.distance import calculate_journey_cost, machine_visit_cost
from expense_kernel.domain.clock import Clock
from expense_kernel.domain.dtos import Actor, ExpenseInfo, JourneyInfo
from expense_kernel.domain.values import (
    ZERO,
    Coordinate,
    DistanceSource,
    ExpenseCategory,
    ExpenseStatus,
    ExpenseType,
    GpsOfflineReason,
    JourneyStatus,
    VisitType,
    as_decimal,
    round2,
)
from expense_kernel.exceptions import (
    DuplicateActiveJourneyError,
    InvalidDistanceError,
    InvalidJourneyError,
    JourneyNotActiveError,
    UnknownExpenseError,
    UnknownJourneyError,
    UnknownUserError,
)
from expense_kernel.logging_config import get_logger
from expense_kernel.models.audit_entry import AuditAction
from expense_kernel.models.employee import Employee
from expense_kernel.models.expense import Expense
from expense_kernel.models.journey import Journey
from expense_kernel.selectors.journey_selector import JourneyPage, JourneySelector
from expense_kernel.selectors.scope import QueryScope
from expense_kernel.services.auditor_service import AuditorService
from expense_kernel.services.base import BaseService
from expense_kernel.services.month_lock_service import MonthLockService
from expense_services.access import require_owner, require_owner_or_scope
from expense_services.approval_service import ApprovalService
from expense_services.distance_service import DistanceEstimator, DurationEnricher
from expense_services.results import JourneyCompletion, JourneyExpenseTotal

logger = get_logger("services.journey")

MAX_MACHINES = 10


class JourneyService(BaseService[Journey]):
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        *,
        config: ConfigProvider | None = None,
        estimator: DistanceEstimator | None = None,
        enricher: DurationEnricher | None = None,
        month_locks: MonthLockService | None = None,
        auditor: AuditorService | None = None,
        approvals: ApprovalService | None = None,
    ):
        super().__init__(session, clock)
        self._config = config or StaticConfigProvider()
        self._estimator = estimator or DistanceEstimator()
        self._enricher = enricher
        self._reads = JourneySelector(session)
        self._auditor = auditor or AuditorService(session, self.clock)
        self._month_locks = month_locks or MonthLockService(
            session, self.clock, auditor=self._auditor
        )
        self._approvals = approvals or ApprovalService(
            session, self.clock, month_locks=self._month_locks, auditor=self._auditor
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _get(self, journey_id: UUID) -> Journey:
        journey = self.session.get(Journey, journey_id)
        if journey is None:
            raise UnknownJourneyError(str(journey_id))
        return journey

    def active_journey(self, employee_id: UUID) -> Journey | None:
        return self.session.execute(
            select(Journey).where(
                Journey.employee_id == employee_id,
                Journey.status == JourneyStatus.ACTIVE.value,
            )
        ).scalar_one_or_none()

    def active_for(self, actor: Actor, employee_id: UUID | None = None) -> JourneyInfo | None:
        """The employee's active journey (the actor's own by default), or None."""
        target = actor.id if employee_id is None else employee_id
        require_owner_or_scope(self.session, actor, target, "view journeys")
        journey = self.active_journey(target)
        return JourneyInfo.from_model(journey) if journey is not None else None

    def list(self, actor: Actor, *, employee_id: UUID | None = None, **filters) -> JourneyPage:
        """Journeys in the actor's scope; an explicit employee must be in scope."""
        if employee_id is not None:
            require_owner_or_scope(self.session, actor, employee_id, "view journeys")
        return self._reads.list(QueryScope.for_actor(actor), employee_id=employee_id, **filters)

    def get(self, journey_id: UUID, actor: Actor) -> JourneyInfo:
        """
        Journey as stored, with the remote duration filled in when a
        background lookup has finished since the journey ended.
        """
        journey = self._get(journey_id)
        require_owner_or_scope(self.session, actor, journey.employee_id, "view journeys")
        info = JourneyInfo.from_model(journey)
        enriched = self._enricher.result_for(journey.id) if self._enricher else None
        if enriched is not None and info.calculated_duration is None:
            info = dataclasses.replace(info, calculated_duration=enriched.duration_min)
        return info

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(
        self,
        actor: Actor,
        start,
        *,
        start_address: str | None = None,
        name: str | None = None,
        customer_name: str | None = None,
        nature_of_work: str | None = None,
        type_of_visit: str | None = None,
        number_of_machines: int | None = None,
        gps_offline: bool = False,
        gps_offline_reason: str | None = None,
        notes: str | None = None,
    ) -> JourneyInfo:
        """Start a journey for the acting employee."""
        employee_id = actor.id
        if self.session.get(Employee, employee_id) is None:
            raise UnknownUserError(str(employee_id))

        active = self.active_journey(employee_id)
        if active is not None:
            raise DuplicateActiveJourneyError(str(employee_id), str(active.id))

        origin = Coordinate.from_mapping(start)
        visit = self._visit_type(type_of_visit)
        machines = self._machines(visit, number_of_machines)
        reason = self._offline_reason(gps_offline, gps_offline_reason)

        if name:
            duplicate = self.session.execute(
                select(func.count())
                .select_from(Journey)
                .where(Journey.employee_id == employee_id, Journey.name == name)
            ).scalar_one()
            if duplicate:
                raise InvalidJourneyError(
                    "A journey with this name already exists. Please choose a different name.",
                    field="name",
                )

        journey = Journey(
            employee_id=employee_id,
            name=name,
            customer_name=customer_name,
            nature_of_work=nature_of_work,
            type_of_visit=visit.value if visit else None,
            number_of_machines=machines,
            start_latitude=origin.latitude,
            start_longitude=origin.longitude,
            start_address=start_address,
            start_time=self.clock.now(),
            status=JourneyStatus.ACTIVE.value,
            gps_offline=bool(gps_offline),
            gps_offline_reason=reason,
            notes=notes,
            created_by_id=employee_id,
        )
        try:
            with self.session.begin_nested():
                self.session.add(journey)
                self.session.flush()
        except IntegrityError as exc:
            # Another request started a journey between the check and the insert
            logger.warning(
                "concurrent_journey_start_conflict",
                extra={"employee_id": str(employee_id)},
            )
            raise DuplicateActiveJourneyError(str(employee_id)) from exc

        self._auditor.record(
            AuditAction.JOURNEY_STARTED,
            employee_id,
            target_employee_id=employee_id,
            journey_id=journey.id,
            details={
                "start_coordinates": {"latitude": origin.latitude, "longitude": origin.longitude},
                "gps_offline": journey.gps_offline,
                "type_of_visit": journey.type_of_visit,
            },
        )
        logger.info(
            "journey_started",
            extra={"journey_id": str(journey.id), "employee_id": str(employee_id)},
        )
        return JourneyInfo.from_model(journey)

    def end(
        self,
        journey_id: UUID,
        actor: Actor,
        end=None,
        *,
        end_address: str | None = None,
        manual_distance=None,
        notes: str | None = None,
    ) -> JourneyCompletion:
        """
        End an active journey and create its pending expense.

        Postconditions:
            - journey completed with end point, time, system and final
              distance and (machine visits) the machine visit cost.
            - One pending journey expense linked both ways.
            - ``journey_ended`` and ``expense_created`` audit entries.
        """
        journey = self._get(journey_id)
        require_owner(actor, journey.employee_id, "end journeys")
        if journey.status != JourneyStatus.ACTIVE:
            raise JourneyNotActiveError(str(journey.id), JourneyStatus(journey.status).value)

        today = self.clock.today()
        self._month_locks.ensure_unlocked(journey.employee_id, today, "create")

        manual = None
        if manual_distance is not None:
            manual = as_decimal(manual_distance)
            if manual is None or manual < 0:
                raise InvalidDistanceError("manual_distance", manual_distance)

        origin = Coordinate(journey.start_latitude, journey.start_longitude)
        destination = None
        if end is not None or not journey.gps_offline:
            destination = Coordinate.from_mapping(end)

        if journey.gps_offline:
            system_distance = ZERO
            source = DistanceSource.GPS_OFFLINE
        else:
            estimate = self._estimator.estimate(origin, destination, prefer_remote=False)
            system_distance = estimate.distance_km
            source = estimate.source

        final_distance = manual if manual is not None else system_distance
        rate = self._config.get_rate_per_km()
        cost = calculate_journey_cost(final_distance, rate)

        visit_cost = ZERO
        if journey.type_of_visit == VisitType.MACHINE_VISIT and journey.number_of_machines:
            visit_cost = machine_visit_cost(
                journey.number_of_machines, self._config.get_cost_per_machine_visit()
            )

        now = self.clock.now()
        if destination is not None:
            journey.end_latitude = destination.latitude
            journey.end_longitude = destination.longitude
        journey.end_address = end_address
        journey.end_time = now
        if notes:
            journey.notes = notes
        journey.system_distance = system_distance
        journey.calculated_distance = final_distance
        journey.calculated_duration = None
        journey.distance_source = source.value
        journey.machine_visit_cost = visit_cost
        journey.status = JourneyStatus.COMPLETED.value
        journey.updated_by_id = actor.id
        self.session.flush()

        expense = Expense(
            employee_id=journey.employee_id,
            journey_id=journey.id,
            expense_date=today,
            category=ExpenseCategory.JOURNEY.value,
            expense_type=ExpenseType.JOURNEY.value,
            description=f"Journey from {journey.start_address} to {journey.end_address}",
            amount=cost,
            system_distance=system_distance,
            manual_distance=manual,
            distance_rate=rate,
            start_address=journey.start_address,
            end_address=journey.end_address,
            gps_offline=journey.gps_offline,
            status=ExpenseStatus.PENDING.value,
            created_by_id=actor.id,
        )
        self.session.add(expense)
        self.session.flush()

        journey.expense_id = expense.id
        self.session.flush()

        self._auditor.record(
            AuditAction.JOURNEY_ENDED,
            actor.id,
            target_employee_id=journey.employee_id,
            journey_id=journey.id,
            expense_id=expense.id,
            details={
                "system_distance": system_distance,
                "manual_distance": manual,
                "final_distance": final_distance,
                "cost": cost,
                "distance_source": source,
                "machine_visit_cost": visit_cost,
            },
        )
        self._auditor.record(
            AuditAction.EXPENSE_CREATED,
            actor.id,
            target_employee_id=journey.employee_id,
            journey_id=journey.id,
            expense_id=expense.id,
            details={
                "type": ExpenseType.JOURNEY,
                "amount": cost,
                "description": expense.description,
            },
        )
        logger.info(
            "journey_ended",
            extra={
                "journey_id": str(journey.id),
                "expense_id": str(expense.id),
                "final_distance": str(final_distance),
                "cost": str(cost),
            },
        )

        if self._enricher is not None and destination is not None:
            self._enricher.submit(journey.id, origin, destination)

        return JourneyCompletion(
            journey=JourneyInfo.from_model(journey),
            expense=ExpenseInfo.from_model(expense),
            system_distance=system_distance,
            manual_distance=manual,
            final_distance=final_distance,
            cost=cost,
            distance_source=source.value,
            machine_visit_cost=visit_cost,
        )

    def cancel(self, journey_id: UUID, actor: Actor, reason: str | None = None) -> JourneyInfo:
        journey = self._get(journey_id)
        require_owner(actor, journey.employee_id, "cancel journeys")
        if journey.status != JourneyStatus.ACTIVE:
            raise JourneyNotActiveError(str(journey.id), JourneyStatus(journey.status).value)

        journey.status = JourneyStatus.CANCELLED.value
        journey.end_time = self.clock.now()
        journey.notes = reason or "Journey cancelled by user"
        journey.updated_by_id = actor.id
        self.session.flush()

        if self._enricher is not None:
            self._enricher.cancel(journey.id)

        self._auditor.record(
            AuditAction.JOURNEY_CANCELLED,
            actor.id,
            target_employee_id=journey.employee_id,
            journey_id=journey.id,
            details={"reason": journey.notes},
        )
        logger.info("journey_cancelled", extra={"journey_id": str(journey.id)})
        return JourneyInfo.from_model(journey)

    # ------------------------------------------------------------------
    # Totals
    # ------------------------------------------------------------------

    def expense_total(
        self,
        journey_id: UUID,
        actor: Actor,
        include_expense_id: UUID | None = None,
    ) -> JourneyExpenseTotal:
        """
        Approved spend on a journey, plus the estimated approved amount of one
        pending expense when ``include_expense_id`` names one.
        """
        journey = self._get(journey_id)
        require_owner_or_scope(self.session, actor, journey.employee_id, "view journeys")

        row = self.session.execute(
            select(
                func.coalesce(func.sum(Expense.approved_amount), 0),
                func.count(Expense.id),
            ).where(
                Expense.journey_id == journey.id,
                Expense.status == ExpenseStatus.APPROVED.value,
            )
        ).one()
        approved_total = round2(Decimal(str(row[0])))
        approved_count = row[1]

        pending_amount = ZERO
        pending_id = None
        if include_expense_id is not None:
            pending = self.session.get(Expense, include_expense_id)
            if pending is None:
                raise UnknownExpenseError(str(include_expense_id))
            if pending.journey_id == journey.id and pending.status == ExpenseStatus.PENDING:
                pending_amount = self._approvals.preview_amount(pending)
                pending_id = pending.id

        return JourneyExpenseTotal(
            journey_id=journey.id,
            journey_name=journey.name,
            approved_total=approved_total,
            approved_count=approved_count,
            pending_amount=pending_amount,
            pending_expense_id=pending_id,
            total_amount=approved_total + pending_amount,
        )

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _visit_type(type_of_visit) -> VisitType | None:
        if type_of_visit is None:
            return None
        try:
            return VisitType(type_of_visit)
        except ValueError as exc:
            raise InvalidJourneyError(
                f"Invalid type of visit: {type_of_visit!r}", field="type_of_visit"
            ) from exc

    @staticmethod
    def _machines(visit: VisitType | None, number_of_machines) -> int | None:
        if visit is not VisitType.MACHINE_VISIT:
            return None
        if (
            isinstance(number_of_machines, bool)
            or not isinstance(number_of_machines, int)
            or not 1 <= number_of_machines <= MAX_MACHINES
        ):
            raise InvalidJourneyError(
                "Number of machines is required for machine visit type "
                f"(1 to {MAX_MACHINES})",
                field="number_of_machines",
            )
        return number_of_machines

    @staticmethod
    def _offline_reason(gps_offline: bool, reason) -> str | None:
        if not gps_offline or reason is None:
            return None
        try:
            return GpsOfflineReason(reason).value
        except ValueError as exc:
            raise InvalidJourneyError(
                f"Invalid GPS offline reason: {reason!r}", field="gps_offline_reason"
            ) from exc
