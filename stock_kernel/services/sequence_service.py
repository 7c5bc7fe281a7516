"""
Named counters handed out under a row lock.

``next_value`` locks the counter row with ``SELECT ... FOR UPDATE``,
bumps it and flushes.  The new value becomes visible when the caller
commits; a rollback, SAVEPOINT rollbacks included, gives it back.  Values
are never derived from ``MAX(seq) + 1``.

The audit ledger draws its ``seq`` here, and holding the counter lock for
the rest of the transaction is what keeps appenders from both linking to
the same previous signature.
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from stock_kernel.db.base import Base
from stock_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    current_value: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)


class SequenceService:
    """
    Allocates values from named counters inside the caller's transaction::

        seq = SequenceService(session).next_value(SequenceService.AUDIT_LOG)
    """

    AUDIT_LOG = "audit_log"

    def __init__(self, session: Session):
        self._session = session

    def _locked(self, name: str) -> SequenceCounter | None:
        stmt = (
            select(SequenceCounter)
            .where(SequenceCounter.name == name)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self._session.execute(stmt).scalar_one_or_none()

    def _create(self, name: str) -> SequenceCounter | None:
        """Insert the counter at 1; None if a concurrent transaction created it first."""
        savepoint = self._session.begin_nested()
        try:
            counter = SequenceCounter(name=name, current_value=1)
            self._session.add(counter)
            self._session.flush()
        except IntegrityError:
            savepoint.rollback()
            logger.debug("sequence_create_lost_race", extra={"sequence_name": name})
            return None
        savepoint.commit()
        return counter

    def next_value(self, sequence_name: str) -> int:
        """Increment and return the counter, starting at 1.  The row stays locked."""
        counter = self._locked(sequence_name)
        if counter is None:
            created = self._create(sequence_name)
            if created is not None:
                value = created.current_value
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": value},
                )
                return value
            counter = self._locked(sequence_name)
            if counter is None:
                raise RuntimeError(f"Sequence {sequence_name!r} vanished after a create race")

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Last value handed out, or None if the counter was never used."""
        return self._session.execute(
            select(SequenceCounter.current_value).where(
                SequenceCounter.name == sequence_name
            )
        ).scalar_one_or_none()
