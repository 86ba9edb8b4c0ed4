"""
SequenceService -- monotonic sequence numbers from locked counter rows.

Responsibility:
    Hands out strictly increasing integers for the append-only tables
    (audit entries, month lock events) so their history reads back in
    insertion order even when two rows share a timestamp.

Architecture position:
    Kernel > Services -- called by AuditorService and MonthLockService.

Invariants enforced:
    - Monotonic: the locked counter row is the only source of the next
      value.  Aggregate max-plus-one over the target table is never used.
    - Transactional: an allocated value is visible only after the caller
      commits; a rollback returns it.

Failure modes:
    - IntegrityError when two sessions create the same counter at once.
      Handled by rolling back the savepoint and re-reading the winner's row.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from expense_kernel.logging_config import get_logger
from expense_kernel.models.sequence_counter import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """
    Next-value allocation over ``sequence_counters``.

    Non-goals:
        - Does NOT commit; the caller owns the transaction.
    """

    AUDIT_ENTRY = "audit_entry"
    MONTH_LOCK_EVENT = "month_lock_event"

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, name: str) -> int:
        """Return a value greater than any previously returned for ``name``."""
        counter = self._locked_counter(name)

        if counter is None:
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug("sequence_allocated", extra={"sequence_name": name, "value": 1})
                return 1
            except IntegrityError:
                logger.debug("sequence_counter_race_retry", extra={"sequence_name": name})
                savepoint.rollback()
                counter = self._locked_counter(name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, name: str) -> int | None:
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == name)
        ).scalar_one_or_none()
        return counter.current_value if counter is not None else None
