"""Kernel services: audit, ledger, month lock and sequences."""

from expense_kernel.services.auditor_service import AuditorService
from expense_kernel.services.ledger_service import LedgerService
from expense_kernel.services.month_lock_service import MonthLockService
from expense_kernel.services.sequence_service import SequenceService

__all__ = ["AuditorService", "LedgerService", "MonthLockService", "SequenceService"]
