"""
Common base for read-only selectors.

Selectors query through the caller's session and hand back frozen DTOs
from ``stock_kernel.domain.dtos``, never ORM instances.  They do not add,
delete, flush or commit.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from stock_kernel.db.base import Base

M = TypeVar("M", bound=Base)


class BaseSelector(ABC, Generic[M]):

    def __init__(self, session: Session):
        self.session = session
