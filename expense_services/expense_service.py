"""
ExpenseService -- create, update and delete pending expenses.

Responsibility:
    Everything that happens to an expense before an approver looks at it.
    Amount and category validation, journey linkage, rate stamping and the
    month lock gate for create / update / delete.

Architecture position:
    Services -- imperative shell.  Approval and rejection live in
    ApprovalService.

Invariants enforced:
    - journey_id is present iff category == journey; a ``journey`` type with a
      journey id is filed under the journey category.
    - Only the journey's owner files expenses against it.  When the journey
      already has a pending expense the new amount is merged into it.
    - distance_rate is stamped at creation from the ConfigProvider.
    - Only pending expenses are updated; approved expenses are never deleted.
    - A locked month (owner or global) blocks create, update and delete.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from expense_config.provider import ConfigProvider, StaticConfigProvider
from expense_kernel.domain.clock import Clock
from expense_kernel.domain.dtos import Actor, ExpenseInfo
from expense_kernel.domain.values import (
    ExpenseCategory,
    ExpenseStatus,
    ExpenseType,
    as_decimal,
)
from expense_kernel.exceptions import (
    AlreadyProcessedError,
    InvalidAmountError,
    InvalidDistanceError,
    InvalidExpenseError,
    UnknownExpenseError,
    UnknownJourneyError,
    UnknownUserError,
)
from expense_kernel.logging_config import get_logger
from expense_kernel.models.audit_entry import AuditAction
from expense_kernel.models.employee import Employee
from expense_kernel.models.expense import Expense
from expense_kernel.models.journey import Journey
from expense_kernel.services.auditor_service import AuditorService
from expense_kernel.services.base import BaseService
from expense_kernel.services.month_lock_service import MonthLockService
from expense_services.access import require_owner, require_owner_or_scope
from expense_services.results import ExpenseCreation

logger = get_logger("services.expense")

UPDATABLE_FIELDS = frozenset(
    {"expense_type", "expense_date", "description", "amount", "manual_distance"}
)


def _positive_amount(value) -> Decimal:
    amount = as_decimal(value)
    if amount is None or amount <= 0:
        raise InvalidAmountError("amount", value, "a positive number")
    return amount


def _optional_distance(field: str, value) -> Decimal | None:
    if value is None:
        return None
    distance = as_decimal(value)
    if distance is None or distance < 0:
        raise InvalidDistanceError(field, value)
    return distance


def _category(value) -> ExpenseCategory:
    try:
        return ExpenseCategory(value or ExpenseCategory.GENERAL)
    except ValueError as exc:
        raise InvalidExpenseError(f"Invalid expense category: {value!r}", field="category") from exc


def _expense_type(value) -> ExpenseType:
    if value is None:
        raise InvalidExpenseError("Expense type is required", field="expense_type")
    try:
        return ExpenseType(value)
    except ValueError as exc:
        raise InvalidExpenseError(f"Invalid expense type: {value!r}", field="expense_type") from exc


class ExpenseService(BaseService[Expense]):
    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        *,
        config: ConfigProvider | None = None,
        month_locks: MonthLockService | None = None,
        auditor: AuditorService | None = None,
    ):
        super().__init__(session, clock)
        self._config = config or StaticConfigProvider()
        self._auditor = auditor or AuditorService(session, self.clock)
        self._month_locks = month_locks or MonthLockService(
            session, self.clock, auditor=self._auditor
        )

    def _get(self, expense_id: UUID) -> Expense:
        expense = self.session.get(Expense, expense_id)
        if expense is None:
            raise UnknownExpenseError(str(expense_id))
        return expense

    def create(
        self,
        actor: Actor,
        *,
        expense_type,
        amount,
        description: str,
        category=None,
        expense_date: date | None = None,
        journey_id: UUID | None = None,
        system_distance=None,
        manual_distance=None,
        start_address: str | None = None,
        end_address: str | None = None,
        gps_offline: bool = False,
    ) -> ExpenseCreation:
        """
        File an expense for the acting employee.

        Journey-category expenses attach to the caller's own journey.  If that
        journey already has a pending expense, ``amount`` is added to it and
        the result is flagged ``merged``.
        """
        if self.session.get(Employee, actor.id) is None:
            raise UnknownUserError(str(actor.id))

        on_date = expense_date or self.clock.today()
        self._month_locks.ensure_unlocked(actor.id, on_date, "create")

        kind = _expense_type(expense_type)
        chosen = _category(category)
        if kind is ExpenseType.JOURNEY and journey_id is not None:
            chosen = ExpenseCategory.JOURNEY
        if chosen is ExpenseCategory.JOURNEY and journey_id is None:
            raise InvalidExpenseError(
                "Journey ID is required when expense category is journey", field="journey_id"
            )
        if chosen is ExpenseCategory.GENERAL and journey_id is not None:
            raise InvalidExpenseError(
                "Journey ID is only allowed for journey expenses", field="journey_id"
            )
        if not description or not str(description).strip():
            raise InvalidExpenseError("Description is required", field="description")

        value = _positive_amount(amount)

        if journey_id is not None:
            journey = self.session.get(Journey, journey_id)
            if journey is None:
                raise UnknownJourneyError(str(journey_id))
            require_owner(actor, journey.employee_id, "file expenses for this journey")

            existing = (
                self.session.get(Expense, journey.expense_id)
                if journey.expense_id is not None
                else None
            )
            if existing is not None and existing.status == ExpenseStatus.PENDING:
                return self._merge(existing, value, actor)

        is_journey_type = kind is ExpenseType.JOURNEY
        system = None
        manual = None
        if is_journey_type:
            system = _optional_distance("system_distance", system_distance)
            manual = _optional_distance("manual_distance", manual_distance)
        expense = Expense(
            employee_id=actor.id,
            journey_id=journey_id,
            expense_date=on_date,
            category=chosen.value,
            expense_type=kind.value,
            description=str(description).strip(),
            amount=value,
            system_distance=system if system is not None else Decimal("0"),
            manual_distance=manual,
            distance_rate=self._config.get_rate_per_km(),
            start_address=start_address if is_journey_type else None,
            end_address=end_address if is_journey_type else None,
            gps_offline=bool(gps_offline) if is_journey_type else False,
            status=ExpenseStatus.PENDING.value,
            created_by_id=actor.id,
        )
        self.session.add(expense)
        self.session.flush()

        self._auditor.record(
            AuditAction.EXPENSE_CREATED,
            actor.id,
            target_employee_id=actor.id,
            expense_id=expense.id,
            journey_id=journey_id,
            details={"type": kind, "amount": value, "description": expense.description},
        )
        logger.info(
            "expense_created",
            extra={
                "expense_id": str(expense.id),
                "employee_id": str(actor.id),
                "amount": str(value),
                "category": chosen.value,
            },
        )
        return ExpenseCreation(expense=ExpenseInfo.from_model(expense))

    def _merge(self, existing: Expense, value: Decimal, actor: Actor) -> ExpenseCreation:
        self._month_locks.ensure_unlocked(existing.employee_id, existing.expense_date, "update")
        existing.amount = Decimal(existing.amount) + value
        existing.updated_by_id = actor.id
        self.session.flush()

        self._auditor.record(
            AuditAction.EXPENSE_UPDATED,
            actor.id,
            target_employee_id=existing.employee_id,
            expense_id=existing.id,
            journey_id=existing.journey_id,
            details={"added_amount": value, "new_total_amount": existing.amount},
        )
        logger.info(
            "expense_merged_into_journey",
            extra={"expense_id": str(existing.id), "added_amount": str(value)},
        )
        return ExpenseCreation(
            expense=ExpenseInfo.from_model(existing), merged=True, added_amount=value
        )

    def update(self, expense_id: UUID, actor: Actor, **changes) -> ExpenseInfo:
        """Apply ``changes`` (a subset of UPDATABLE_FIELDS) to a pending expense."""
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise InvalidExpenseError(
                f"Cannot update field(s): {', '.join(sorted(unknown))}", field=sorted(unknown)[0]
            )

        expense = self._get(expense_id)
        require_owner_or_scope(self.session, actor, expense.employee_id, "update expenses")
        if expense.status != ExpenseStatus.PENDING:
            raise AlreadyProcessedError(str(expense.id), ExpenseStatus(expense.status).value)

        self._month_locks.ensure_unlocked(expense.employee_id, expense.expense_date, "update")
        new_date = changes.get("expense_date")
        if new_date is not None and new_date != expense.expense_date:
            self._month_locks.ensure_unlocked(expense.employee_id, new_date, "update")

        if "expense_type" in changes:
            kind = _expense_type(changes["expense_type"])
            if expense.category == ExpenseCategory.JOURNEY and kind is not ExpenseType.JOURNEY:
                raise InvalidExpenseError(
                    "Journey expenses must keep the journey type", field="expense_type"
                )
            expense.expense_type = kind.value
        if new_date is not None:
            expense.expense_date = new_date
        if "description" in changes:
            description = changes["description"]
            if not description or not str(description).strip():
                raise InvalidExpenseError("Description is required", field="description")
            expense.description = str(description).strip()
        if "amount" in changes:
            expense.amount = _positive_amount(changes["amount"])
        if "manual_distance" in changes and expense.expense_type == ExpenseType.JOURNEY:
            expense.manual_distance = _optional_distance(
                "manual_distance", changes["manual_distance"]
            )
        expense.updated_by_id = actor.id
        self.session.flush()

        self._auditor.record(
            AuditAction.EXPENSE_UPDATED,
            actor.id,
            target_employee_id=expense.employee_id,
            expense_id=expense.id,
            journey_id=expense.journey_id,
            details={"updates": changes},
        )
        logger.info(
            "expense_updated",
            extra={"expense_id": str(expense.id), "fields": sorted(changes)},
        )
        return ExpenseInfo.from_model(expense)

    def delete(self, expense_id: UUID, actor: Actor) -> ExpenseInfo:
        expense = self._get(expense_id)
        require_owner_or_scope(self.session, actor, expense.employee_id, "delete expenses")
        if expense.status == ExpenseStatus.APPROVED:
            raise AlreadyProcessedError(str(expense.id), ExpenseStatus.APPROVED.value)
        self._month_locks.ensure_unlocked(expense.employee_id, expense.expense_date, "delete")

        snapshot = ExpenseInfo.from_model(expense)
        if expense.journey_id is not None:
            journey = self.session.get(Journey, expense.journey_id)
            if journey is not None and journey.expense_id == expense.id:
                journey.expense_id = None
                journey.updated_by_id = actor.id
        self.session.delete(expense)
        self.session.flush()

        self._auditor.record(
            AuditAction.EXPENSE_DELETED,
            actor.id,
            target_employee_id=snapshot.employee_id,
            expense_id=snapshot.id,
            journey_id=snapshot.journey_id,
            details={
                "type": snapshot.expense_type,
                "amount": snapshot.amount,
                "description": snapshot.description,
            },
        )
        logger.info("expense_deleted", extra={"expense_id": str(snapshot.id)})
        return snapshot
