"""
Common base for the kernel's write services.

A service works inside the caller's transaction: it adds and flushes, and
may open SAVEPOINTs with ``begin_nested()`` for partial rollback, but it
never commits or rolls back the outer transaction.  ``session_scope()``,
the count writers and the webhook handlers own that boundary.

Reads that do not change state live in ``stock_kernel.selectors``.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from stock_kernel.db.base import Base

M = TypeVar("M", bound=Base)


class BaseService(ABC, Generic[M]):
    """Holds the session; parameterized by the model the service owns."""

    def __init__(self, session: Session):
        self.session = session
