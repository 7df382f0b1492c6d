"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor and session-handling contract for every write
    service in the kernel.  Services receive a SQLAlchemy ``Session`` and
    use ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit it.  Multi-row operations run inside a SAVEPOINT
    (``session.begin_nested()``) that the service itself commits or rolls
    back, so a failed call leaves the caller's transaction as it found it.
    The caller (StockMovementService or a test harness) owns commit.

Failure modes:
    - A subclass that calls ``session.commit()`` breaks batch atomicity
      for any caller composing several operations in one transaction.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from stock_kernel.db.base import Base
from stock_kernel.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and an optional
        ``Clock``; persists changes with ``session.flush()``.

    Non-goals:
        - Does NOT manage the outer transaction lifecycle.
        - Does NOT provide read models -- those belong in
          ``stock_kernel/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()
