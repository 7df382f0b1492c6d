"""
Movement history as a tagged variant.

Responsibility:
    Immutable read-side representation of stock movements.  Each status
    gets its own frozen dataclass carrying only the fields that mean
    something in that status, so a ``SentMovement`` has no delivery time
    and a ``ReturnedMovement`` always points at the rejection it undoes.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Built from ORM rows by
    ``stock_kernel.selectors.movement_selector.to_movement``.

Invariants enforced:
    - ``status`` is a class-level tag; it cannot disagree with the type.
    - Quantity is always positive; direction is carried by source/dest.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import ClassVar
from uuid import UUID

from stock_kernel.domain.values import MovementStatus

REJECTION_NOTE_PREFIX = "REJECTED: "


@dataclass(frozen=True)
class Movement:
    """Fields shared by every movement variant."""

    status: ClassVar[MovementStatus]

    movement_id: UUID
    batch_id: UUID
    product_id: str
    quantity: int
    source_location_id: str
    dest_location_id: str
    created_at: datetime
    expected_delivery_at: datetime
    notes: str | None
    evidence_ref: str | None
    created_by_id: UUID

    @property
    def is_pending(self) -> bool:
        return self.status is MovementStatus.SENT


@dataclass(frozen=True)
class SentMovement(Movement):
    """Stock in flight: left the source, not yet added at the destination."""

    status: ClassVar[MovementStatus] = MovementStatus.SENT

    def is_overdue(self, as_of: datetime) -> bool:
        return as_of > self.expected_delivery_at


@dataclass(frozen=True)
class ReceivedMovement(Movement):
    """Accepted by the destination; quantity added to its ledger."""

    status: ClassVar[MovementStatus] = MovementStatus.RECEIVED

    actual_delivery_at: datetime
    resolved_by_id: UUID | None


@dataclass(frozen=True)
class RejectedMovement(Movement):
    """Refused by the destination; quantity restored at the source."""

    status: ClassVar[MovementStatus] = MovementStatus.REJECTED

    actual_delivery_at: datetime
    resolved_by_id: UUID | None

    @property
    def rejection_reason(self) -> str:
        notes = self.notes or ""
        if notes.startswith(REJECTION_NOTE_PREFIX):
            return notes[len(REJECTION_NOTE_PREFIX):]
        return notes


@dataclass(frozen=True)
class ReturnedMovement(Movement):
    """Compensating record written when a movement is rejected."""

    status: ClassVar[MovementStatus] = MovementStatus.RETURNED

    actual_delivery_at: datetime
    returned_from_id: UUID


MovementVariant = SentMovement | ReceivedMovement | RejectedMovement | ReturnedMovement

VARIANT_BY_STATUS: dict[MovementStatus, type[Movement]] = {
    MovementStatus.SENT: SentMovement,
    MovementStatus.RECEIVED: ReceivedMovement,
    MovementStatus.REJECTED: RejectedMovement,
    MovementStatus.RETURNED: ReturnedMovement,
}
