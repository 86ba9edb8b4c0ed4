"""
expense_services.operations -- transactional entry points for callers.

Responsibility:
    One method per user-facing operation.  Each call opens its own
    transaction (``session_scope``), wires the services for that session,
    binds the log context and converts the outcome into an OperationResult.

Architecture position:
    Services -- outermost layer.  An HTTP or CLI adapter calls these methods
    and renders the OperationResult; nothing below this module commits.

Invariants enforced:
    - Transaction ownership: commit on success, rollback on any exception.
      Typed ExpenseKernelError failures become ``success=False`` results;
      persistence errors (SQLAlchemyError) roll back and propagate.
    - Single-instance wiring: one auditor, ledger, month lock service and
      config provider per transaction, shared by every service in it.
    - Identifiers arrive as UUIDs or strings; a malformed id is reported as
      the matching not-found error.

Usage:
    ops = ExpenseOperations(get_session_factory(), settings=load_settings())
    result = ops.approve_expense(actor, expense_id, option=1)
    if not result.success:
        print(result.error_code, result.message)
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import date
from typing import Any, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from expense_config.provider import SettingsConfigProvider
from expense_config.settings import AppSettings
from expense_kernel.db.engine import session_scope
from expense_kernel.domain.clock import Clock, SystemClock
from expense_kernel.domain.dtos import Actor
from expense_kernel.domain.values import ApprovalOption, PaymentMethod
from expense_kernel.exceptions import (
    ExpenseKernelError,
    InvalidPeriodError,
    UnknownAdvanceError,
    UnknownExpenseError,
    UnknownJourneyError,
    UnknownUserError,
)
from expense_kernel.logging_config import LogContext, get_logger
from expense_kernel.models.audit_entry import AuditAction
from expense_kernel.selectors.expense_selector import ExpenseSelector
from expense_kernel.selectors.scope import QueryScope
from expense_kernel.services.auditor_service import AuditorService
from expense_kernel.services.ledger_service import LedgerService
from expense_kernel.services.month_lock_service import MonthLockService, subject_key_for
from expense_services.access import require_approver, require_scope, require_superadmin
from expense_services.advance_service import AdvanceService
from expense_services.approval_service import ApprovalService
from expense_services.bulk_approval import BulkApprovalCoordinator
from expense_services.distance_service import DistanceEstimator, DurationEnricher
from expense_services.expense_service import ExpenseService
from expense_services.journey_service import JourneyService
from expense_services.results import BulkApprovalResult, OperationResult

logger = get_logger("services.operations")

T = TypeVar("T")


def _as_uuid(value, not_found: type[ExpenseKernelError]) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError, AttributeError) as exc:
        raise not_found(str(value)) from exc


def _period_of(on_date) -> tuple[int, int]:
    if not isinstance(on_date, date):
        raise InvalidPeriodError(on_date, None)
    return on_date.year, on_date.month


class _Services:
    """Every service for one session, each constructed exactly once."""

    def __init__(
        self,
        session: Session,
        clock: Clock,
        settings: AppSettings,
        estimator: DistanceEstimator,
        enricher: DurationEnricher | None,
    ):
        self.session = session
        self.auditor = AuditorService(session, clock)
        self.ledger = LedgerService(session, clock, max_attempts=settings.ledger.max_attempts)
        self.month_locks = MonthLockService(session, clock, auditor=self.auditor)
        self.config = SettingsConfigProvider(session, settings.rates)
        self.approvals = ApprovalService(
            session,
            clock,
            ledger=self.ledger,
            month_locks=self.month_locks,
            auditor=self.auditor,
        )
        self.bulk = BulkApprovalCoordinator(session, clock, approvals=self.approvals)
        self.journeys = JourneyService(
            session,
            clock,
            config=self.config,
            estimator=estimator,
            enricher=enricher,
            month_locks=self.month_locks,
            auditor=self.auditor,
            approvals=self.approvals,
        )
        self.expenses = ExpenseService(
            session,
            clock,
            config=self.config,
            month_locks=self.month_locks,
            auditor=self.auditor,
        )
        self.advances = AdvanceService(session, clock, ledger=self.ledger, auditor=self.auditor)
        self.expense_reads = ExpenseSelector(session)


class ExpenseOperations:
    """
    Facade over the expense services.

    Contract:
        Every public method returns an OperationResult and never leaves a
        transaction open.

    Non-goals:
        - Does NOT authenticate; ``actor`` is trusted as given.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        *,
        settings: AppSettings | None = None,
        clock: Clock | None = None,
        estimator: DistanceEstimator | None = None,
        enricher: DurationEnricher | None = None,
    ):
        self._factory = session_factory
        self._settings = settings or AppSettings()
        self._clock = clock or SystemClock()
        self._estimator = estimator or DistanceEstimator.from_settings(
            self._settings.distance_oracle
        )
        if enricher is None and self._estimator.remote_enabled:
            enricher = DurationEnricher(
                self._estimator,
                self._settings.distance_oracle.enrichment_workers,
                self._settings.distance_oracle.enrichment_cache_size,
            )
        self._enricher = enricher

    def close(self) -> None:
        """Stop background duration lookups."""
        if self._enricher is not None:
            self._enricher.shutdown(wait=False)

    def _run(
        self,
        operation: str,
        actor: Actor,
        message: str | Callable[[Any], str],
        work: Callable[[_Services], T],
    ) -> OperationResult:
        with LogContext.bind(
            correlation_id=uuid4(), actor_id=actor.id, operation=operation
        ):
            logger.info("operation_started")
            try:
                with session_scope(self._factory) as session:
                    data = work(
                        _Services(
                            session, self._clock, self._settings, self._estimator, self._enricher
                        )
                    )
            except ExpenseKernelError as exc:
                logger.warning(
                    "operation_rejected",
                    extra={"error_code": exc.code, "error_kind": exc.kind},
                )
                return OperationResult.from_error(exc)
            logger.info("operation_completed")
            text = message(data) if callable(message) else message
            return OperationResult.ok(text, data)

    # ------------------------------------------------------------------
    # Journeys
    # ------------------------------------------------------------------

    def start_journey(self, actor: Actor, start, **details) -> OperationResult:
        return self._run(
            "start_journey",
            actor,
            "Journey started successfully",
            lambda s: s.journeys.start(actor, start, **details),
        )

    def end_journey(
        self,
        actor: Actor,
        journey_id,
        end=None,
        *,
        end_address: str | None = None,
        manual_distance=None,
        notes: str | None = None,
    ) -> OperationResult:
        def work(s: _Services):
            return s.journeys.end(
                _as_uuid(journey_id, UnknownJourneyError),
                actor,
                end,
                end_address=end_address,
                manual_distance=manual_distance,
                notes=notes,
            )

        return self._run(
            "end_journey", actor, "Journey ended and expense created successfully", work
        )

    def cancel_journey(self, actor: Actor, journey_id, reason: str | None = None) -> OperationResult:
        return self._run(
            "cancel_journey",
            actor,
            "Journey cancelled successfully",
            lambda s: s.journeys.cancel(_as_uuid(journey_id, UnknownJourneyError), actor, reason),
        )

    def get_journey(self, actor: Actor, journey_id) -> OperationResult:
        return self._run(
            "get_journey",
            actor,
            "Journey retrieved successfully",
            lambda s: s.journeys.get(_as_uuid(journey_id, UnknownJourneyError), actor),
        )

    def get_active_journey(self, actor: Actor, employee_id=None) -> OperationResult:
        def work(s: _Services):
            target = _as_uuid(employee_id, UnknownUserError) if employee_id is not None else None
            return s.journeys.active_for(actor, target)

        return self._run(
            "get_active_journey",
            actor,
            lambda journey: (
                "No active journey found"
                if journey is None
                else "Active journey retrieved successfully"
            ),
            work,
        )

    def list_journeys(self, actor: Actor, employee_id=None, **filters) -> OperationResult:
        def work(s: _Services):
            target = _as_uuid(employee_id, UnknownUserError) if employee_id is not None else None
            return s.journeys.list(actor, employee_id=target, **filters)

        return self._run("list_journeys", actor, "Journeys retrieved successfully", work)

    def journey_expense_total(
        self, actor: Actor, journey_id, include_expense_id=None
    ) -> OperationResult:
        def work(s: _Services):
            pending = (
                _as_uuid(include_expense_id, UnknownExpenseError)
                if include_expense_id is not None
                else None
            )
            return s.journeys.expense_total(
                _as_uuid(journey_id, UnknownJourneyError), actor, pending
            )

        return self._run(
            "journey_expense_total", actor, "Journey expense total calculated", work
        )

    # ------------------------------------------------------------------
    # Expenses
    # ------------------------------------------------------------------

    def create_expense(self, actor: Actor, *, journey_id=None, **fields) -> OperationResult:
        def work(s: _Services):
            linked = _as_uuid(journey_id, UnknownJourneyError) if journey_id is not None else None
            return s.expenses.create(actor, journey_id=linked, **fields)

        return self._run(
            "create_expense",
            actor,
            lambda created: (
                "Expense added to existing journey expense"
                if created.merged
                else "Expense created successfully"
            ),
            work,
        )

    def update_expense(self, actor: Actor, expense_id, **changes) -> OperationResult:
        return self._run(
            "update_expense",
            actor,
            "Expense updated successfully",
            lambda s: s.expenses.update(_as_uuid(expense_id, UnknownExpenseError), actor, **changes),
        )

    def delete_expense(self, actor: Actor, expense_id) -> OperationResult:
        return self._run(
            "delete_expense",
            actor,
            "Expense deleted successfully",
            lambda s: s.expenses.delete(_as_uuid(expense_id, UnknownExpenseError), actor),
        )

    def list_expenses(self, actor: Actor, **filters) -> OperationResult:
        return self._run(
            "list_expenses",
            actor,
            "Expenses retrieved successfully",
            lambda s: s.expense_reads.list(QueryScope.for_actor(actor), **filters),
        )

    # ------------------------------------------------------------------
    # Approvals
    # ------------------------------------------------------------------

    def approve_expense(
        self,
        actor: Actor,
        expense_id,
        option=ApprovalOption.SYSTEM,
        admin_distance=None,
        notes: str | None = None,
    ) -> OperationResult:
        return self._run(
            "approve_expense",
            actor,
            "Expense approved successfully",
            lambda s: s.approvals.approve(
                _as_uuid(expense_id, UnknownExpenseError), actor, option, admin_distance, notes
            ),
        )

    def reject_expense(self, actor: Actor, expense_id, reason: str | None) -> OperationResult:
        return self._run(
            "reject_expense",
            actor,
            "Expense rejected successfully",
            lambda s: s.approvals.reject(_as_uuid(expense_id, UnknownExpenseError), actor, reason),
        )

    def bulk_approve_expenses(
        self,
        actor: Actor,
        expense_ids: Sequence,
        option=ApprovalOption.SYSTEM,
        max_variance=None,
        notes: str | None = None,
    ) -> OperationResult:
        def work(s: _Services) -> BulkApprovalResult:
            return s.bulk.bulk_approve(list(expense_ids or ()), actor, option, max_variance, notes)

        return self._run(
            "bulk_approve_expenses", actor, lambda result: result.message, work
        )

    # ------------------------------------------------------------------
    # Advances
    # ------------------------------------------------------------------

    def add_advance(
        self,
        actor: Actor,
        employee_id,
        amount,
        *,
        payment_method=PaymentMethod.BANK_TRANSFER,
        transaction_reference: str | None = None,
        description: str | None = None,
        notes: str | None = None,
    ) -> OperationResult:
        return self._run(
            "add_advance",
            actor,
            "Advance payment added successfully",
            lambda s: s.advances.add(
                _as_uuid(employee_id, UnknownUserError),
                actor,
                amount,
                payment_method=payment_method,
                transaction_reference=transaction_reference,
                description=description,
                notes=notes,
            ),
        )

    def cancel_advance(self, actor: Actor, advance_id, reason: str | None = None) -> OperationResult:
        return self._run(
            "cancel_advance",
            actor,
            "Advance cancelled successfully",
            lambda s: s.advances.cancel(_as_uuid(advance_id, UnknownAdvanceError), actor, reason),
        )

    def delete_advance(self, actor: Actor, advance_id) -> OperationResult:
        return self._run(
            "delete_advance",
            actor,
            "Advance deleted successfully",
            lambda s: s.advances.delete(_as_uuid(advance_id, UnknownAdvanceError), actor),
        )

    def list_advances(self, actor: Actor, employee_id=None, **filters) -> OperationResult:
        def work(s: _Services):
            target = _as_uuid(employee_id, UnknownUserError) if employee_id is not None else None
            return s.advances.list(actor, employee_id=target, **filters)

        return self._run("list_advances", actor, "Advances retrieved successfully", work)

    def advance_history(self, actor: Actor, employee_id) -> OperationResult:
        return self._run(
            "advance_history",
            actor,
            "Advance history retrieved successfully",
            lambda s: s.advances.history(_as_uuid(employee_id, UnknownUserError), actor),
        )

    # ------------------------------------------------------------------
    # Month locks
    # ------------------------------------------------------------------

    @staticmethod
    def _lock_subject(s: _Services, actor: Actor, employee_id, action: str) -> str:
        """Subject key the actor may lock: global for superadmins, else a scoped employee."""
        require_approver(actor, action)
        if employee_id is None:
            require_superadmin(actor, action)
            return subject_key_for(None)
        target = _as_uuid(employee_id, UnknownUserError)
        require_scope(s.session, actor, target, action)
        return subject_key_for(target)

    def lock_month(
        self,
        actor: Actor,
        year: int,
        month: int,
        employee_id=None,
        notes: str | None = None,
    ) -> OperationResult:
        def work(s: _Services):
            subject = self._lock_subject(s, actor, employee_id, "lock months")
            return s.month_locks.lock(subject, year, month, actor.id, notes)

        return self._run("lock_month", actor, "Month locked successfully", work)

    def unlock_month(
        self,
        actor: Actor,
        year: int,
        month: int,
        reason: str | None,
        employee_id=None,
    ) -> OperationResult:
        def work(s: _Services):
            subject = self._lock_subject(s, actor, employee_id, "unlock months")
            return s.month_locks.unlock(subject, year, month, actor.id, reason)

        return self._run("unlock_month", actor, "Month unlocked successfully", work)

    def is_month_locked(self, actor: Actor, on_date: date, employee_id=None) -> OperationResult:
        def work(s: _Services):
            year, month = _period_of(on_date)
            subject = subject_key_for(
                _as_uuid(employee_id, UnknownUserError) if employee_id is not None else None
            )
            return s.month_locks.is_locked(subject, year, month)

        return self._run("is_month_locked", actor, "Lock status retrieved", work)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def update_setting(self, actor: Actor, key: str, value) -> OperationResult:
        def work(s: _Services):
            require_approver(actor, "update settings")
            stored = s.config.set_setting(key, value, actor.id)
            s.auditor.record(
                AuditAction.SETTINGS_UPDATED,
                actor.id,
                details={"key": key, "value": stored},
            )
            return {"key": key, "value": stored}

        return self._run("update_setting", actor, "Setting updated successfully", work)
