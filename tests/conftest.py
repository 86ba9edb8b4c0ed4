"""
Pytest fixtures for the expense ledger test suite.

Provides:
- A fresh in-memory SQLite database per test (schema from the ORM models,
  immutability listeners registered, SAVEPOINT support enabled)
- A deterministic clock fixed in November 2025
- Employee and expense factories (row builders live in tests/factories.py)
- Captured structured logs

Service tests work on the ``session`` fixture and flush only.  Tests that
go through ExpenseOperations must not hold ``session`` open: the in-memory
database has a single shared connection, so they seed data through
``seed`` (a committed session_scope) instead.
"""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy.orm import Session

from expense_config.provider import StaticConfigProvider
from expense_config.settings import RateDefaults
from expense_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from expense_kernel.domain.clock import DeterministicClock
from expense_kernel.domain.values import Role
from expense_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from expense_kernel.models.employee import Employee
from expense_kernel.services.auditor_service import AuditorService
from expense_kernel.services.ledger_service import LedgerService
from expense_kernel.services.month_lock_service import MonthLockService
from expense_services.approval_service import ApprovalService
from tests.factories import make_employee, make_expense

CLOCK_START = datetime(2025, 11, 15, 9, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture expense_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, approvals):
            approvals.approve(...)
            logs = captured_logs()
            assert any(r["message"] == "expense_approved" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("expense_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def session_factory():
    init_engine_from_url("sqlite://")
    create_tables()
    yield get_session_factory()
    reset_engine()


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def seed(session_factory):
    """Committed, closed session for setting up facade tests."""

    def _seed(fn):
        with session_scope(session_factory) as s:
            return fn(s)

    return _seed


# =============================================================================
# Clock and services
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(CLOCK_START)


@pytest.fixture
def rates() -> RateDefaults:
    return RateDefaults(rate_per_km=Decimal("8"), cost_per_machine_visit=Decimal("100"))


@pytest.fixture
def config(rates) -> StaticConfigProvider:
    return StaticConfigProvider(rates)


@pytest.fixture
def auditor(session, clock) -> AuditorService:
    return AuditorService(session, clock)


@pytest.fixture
def ledger(session, clock) -> LedgerService:
    return LedgerService(session, clock)


@pytest.fixture
def month_locks(session, clock, auditor) -> MonthLockService:
    return MonthLockService(session, clock, auditor=auditor)


@pytest.fixture
def approvals(session, clock, ledger, month_locks, auditor) -> ApprovalService:
    return ApprovalService(
        session, clock, ledger=ledger, month_locks=month_locks, auditor=auditor
    )


# =============================================================================
# Data factories
# =============================================================================


@pytest.fixture
def create_employee(session):
    def _create(**kwargs) -> Employee:
        return make_employee(session, **kwargs)

    return _create


@pytest.fixture
def create_expense(session):
    def _create(employee_id, **kwargs):
        return make_expense(session, employee_id, **kwargs)

    return _create


@pytest.fixture
def superadmin(create_employee) -> Employee:
    return create_employee(role=Role.SUPERADMIN)


@pytest.fixture
def admin(create_employee) -> Employee:
    return create_employee(role=Role.ADMIN)


@pytest.fixture
def employee(create_employee, admin) -> Employee:
    """A field user assigned to ``admin``."""
    return create_employee(assigned_to=admin.id)
