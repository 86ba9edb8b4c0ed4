"""ORM models for the expense kernel."""

from expense_kernel.models.advance import Advance
from expense_kernel.models.audit_entry import AuditAction, AuditEntry
from expense_kernel.models.employee import Employee
from expense_kernel.models.expense import Expense
from expense_kernel.models.journey import Journey
from expense_kernel.models.month_lock import MonthLock, MonthLockEvent, MonthLockEventType
from expense_kernel.models.sequence_counter import SequenceCounter
from expense_kernel.models.setting import COST_PER_MACHINE_VISIT, RATE_PER_KM, Setting

__all__ = [
    "Advance",
    "AuditAction",
    "AuditEntry",
    "COST_PER_MACHINE_VISIT",
    "Employee",
    "Expense",
    "Journey",
    "MonthLock",
    "MonthLockEvent",
    "MonthLockEventType",
    "RATE_PER_KM",
    "SequenceCounter",
    "Setting",
]
