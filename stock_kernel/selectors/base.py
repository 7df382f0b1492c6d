"""
Module: stock_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors and
    the timestamp normalization every DTO builder shares.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/.  MUST NOT import from services/ or outer layers.
    Selectors NEVER create, modify, or delete data.

Invariants enforced:
    - Read-only access: selectors never call session.add(), session.delete(),
      session.commit() or session.flush().
    - DTO return convention: selectors return frozen dataclasses, never ORM
      instances.
    - Every datetime leaving a selector is timezone-aware UTC.  SQLite hands
      back naive values for DateTime(timezone=True) columns; they were
      written as UTC and are re-labelled as such.
"""

from abc import ABC
from datetime import UTC, datetime
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from stock_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


def as_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` as an aware UTC datetime (None passes through)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only
        queries, and return DTOs or computed results.

    Non-goals:
        - BaseSelector defines no query methods of its own.
    """

    def __init__(self, session: Session):
        self.session = session
