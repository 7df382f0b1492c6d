"""
Module: stock_kernel.selectors.movement_selector
Responsibility: Read-only queries over the stock movement store.  Converts
    StockMovement rows into the tagged movement variants.
Architecture position: Kernel > Selectors.  May import from models/, domain/
    and selectors/base.py.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only.
    - Every row is returned as exactly one of SentMovement,
      ReceivedMovement, RejectedMovement or ReturnedMovement, chosen by its
      stored status.

Failure modes:
    - Returns None or an empty list when nothing matches; never raises on
      absence of data.
    - ValueError if a row carries a status string outside MovementStatus
      (corrupted data).

Audit relevance:
    ``list_movements`` and ``get_batch`` reconstruct the full history of a
    location or a send, including the RETURNED records spawned by
    rejections.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from stock_kernel.domain.movements import (
    MovementVariant,
    ReceivedMovement,
    RejectedMovement,
    ReturnedMovement,
    SentMovement,
)
from stock_kernel.domain.values import Direction, MovementStatus
from stock_kernel.models.movement import StockMovement, TransferBatch
from stock_kernel.selectors.base import BaseSelector, as_utc


def to_movement(row: StockMovement) -> MovementVariant:
    """Build the tagged variant for one movement row."""
    status = MovementStatus(row.status)
    common = dict(
        movement_id=row.id,
        batch_id=row.batch_id,
        product_id=row.product_id,
        quantity=row.quantity,
        source_location_id=row.source_location_id,
        dest_location_id=row.dest_location_id,
        created_at=as_utc(row.created_at),
        expected_delivery_at=as_utc(row.expected_delivery_at),
        notes=row.notes,
        evidence_ref=row.evidence_ref,
        created_by_id=row.created_by_id,
    )

    if status is MovementStatus.SENT:
        return SentMovement(**common)
    if status is MovementStatus.RECEIVED:
        return ReceivedMovement(
            **common,
            actual_delivery_at=as_utc(row.actual_delivery_at),
            resolved_by_id=row.updated_by_id,
        )
    if status is MovementStatus.REJECTED:
        return RejectedMovement(
            **common,
            actual_delivery_at=as_utc(row.actual_delivery_at),
            resolved_by_id=row.updated_by_id,
        )
    return ReturnedMovement(
        **common,
        actual_delivery_at=as_utc(row.actual_delivery_at),
        returned_from_id=row.returned_from_id,
    )


class MovementSelector(BaseSelector[StockMovement]):
    """
    Selector for stock movement queries.

    Contract:
        All public methods return movement variants (or lists/sums of
        them).  Rows are always re-read from the database
        (``populate_existing``) so that compare-and-swap updates issued
        earlier in the same session are visible.

    Guarantees:
        - Pending lists are ordered oldest first (the order a receiver
          unpacks them); history lists newest first.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def _rows(self, stmt) -> list[StockMovement]:
        return list(
            self.session.execute(
                stmt.execution_options(populate_existing=True)
            ).scalars()
        )

    def get(self, movement_id: UUID) -> MovementVariant | None:
        rows = self._rows(select(StockMovement).where(StockMovement.id == movement_id))
        return to_movement(rows[0]) if rows else None

    def list_pending(self, dest_location_id: str) -> list[SentMovement]:
        """SENT movements addressed to ``dest_location_id``, oldest first."""
        rows = self._rows(
            select(StockMovement)
            .where(
                StockMovement.dest_location_id == dest_location_id,
                StockMovement.status == MovementStatus.SENT.value,
            )
            .order_by(StockMovement.created_at, StockMovement.line_no)
        )
        return [to_movement(row) for row in rows]

    def list_overdue(
        self,
        location_id: str,
        as_of: datetime,
        direction: Direction = Direction.INCOMING,
    ) -> list[SentMovement]:
        """SENT movements past their expected delivery time, oldest first."""
        rows = self._rows(
            select(StockMovement)
            .where(
                self._direction_clause(location_id, Direction(direction)),
                StockMovement.status == MovementStatus.SENT.value,
                StockMovement.expected_delivery_at < as_utc(as_of),
            )
            .order_by(StockMovement.expected_delivery_at, StockMovement.line_no)
        )
        return [to_movement(row) for row in rows]

    def list_movements(
        self,
        location_id: str,
        direction: Direction = Direction.BOTH,
        status: MovementStatus | None = None,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
    ) -> list[MovementVariant]:
        """
        Movement history of a location, newest first.

        ``created_from`` is inclusive, ``created_to`` exclusive.
        """
        stmt = select(StockMovement).where(
            self._direction_clause(location_id, Direction(direction))
        )
        if status is not None:
            stmt = stmt.where(StockMovement.status == MovementStatus(status).value)
        if created_from is not None:
            stmt = stmt.where(StockMovement.created_at >= as_utc(created_from))
        if created_to is not None:
            stmt = stmt.where(StockMovement.created_at < as_utc(created_to))

        rows = self._rows(
            stmt.order_by(StockMovement.created_at.desc(), StockMovement.line_no)
        )
        return [to_movement(row) for row in rows]

    def get_batch(self, batch_id: UUID) -> list[MovementVariant]:
        """
        All movements of a batch in line order.

        A RETURNED record shares its rejected movement's line number and
        follows it.
        """
        rows = self._rows(
            select(StockMovement)
            .where(StockMovement.batch_id == batch_id)
            .order_by(
                StockMovement.line_no,
                StockMovement.returned_from_id.is_not(None),
                StockMovement.created_at,
            )
        )
        return [to_movement(row) for row in rows]

    def batch_exists(self, batch_id: UUID) -> bool:
        return self.session.execute(
            select(TransferBatch.id).where(TransferBatch.id == batch_id)
        ).first() is not None

    def in_flight_total(self, product_id: str) -> int:
        """Quantity of ``product_id`` currently in SENT movements."""
        total = self.session.execute(
            select(func.coalesce(func.sum(StockMovement.quantity), 0)).where(
                StockMovement.product_id == product_id,
                StockMovement.status == MovementStatus.SENT.value,
            )
        ).scalar_one()
        return int(total)

    @staticmethod
    def _direction_clause(location_id: str, direction: Direction):
        if direction is Direction.INCOMING:
            return StockMovement.dest_location_id == location_id
        if direction is Direction.OUTGOING:
            return StockMovement.source_location_id == location_id
        return or_(
            StockMovement.dest_location_id == location_id,
            StockMovement.source_location_id == location_id,
        )
