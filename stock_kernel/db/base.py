"""
ORM base classes.

Every model gets a uuid4 primary key.  Column types follow the annotation:
aware timestamps, BigInteger for ints, Numeric(38, 9) for Decimal amounts
(payments), and UUIDs kept as 36-character strings so the same schema runs
on SQLite and PostgreSQL.

Nothing here imports from the rest of the kernel.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """``uuid.UUID`` in Python, ``VARCHAR(36)`` in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        datetime: DateTime(timezone=True),
        Decimal: Numeric(38, 9),
        int: BigInteger,
        PyUUID: UUIDString(),
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Adds who/when columns.

    ``created_at`` comes from the service's Clock, not the database, so a
    campaign's snapshot and its audit entries carry the same timestamp.
    ``updated_at`` is maintained by the database and may change on rows
    that are otherwise frozen.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
    created_by_id: Mapped[PyUUID] = mapped_column(nullable=False)


UUID = PyUUID
