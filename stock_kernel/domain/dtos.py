"""
DTOs -- results returned across the kernel boundary.

Responsibility:
    Immutable acknowledgements for the write operations and the read-side
    shapes for ledger queries.  Callers never receive ORM instances.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from stock_kernel.domain.values import BatchKind, MovementStatus


@dataclass(frozen=True)
class TransferResult:
    """Outcome of a send: the batch and one movement id per line item.

    ``replayed`` is True when an idempotency key matched an earlier
    identical request and nothing was changed.
    """

    batch_id: UUID
    movement_ids: tuple[UUID, ...]
    kind: BatchKind = BatchKind.TRANSFER
    replayed: bool = False


@dataclass(frozen=True)
class ResolutionResult:
    """Acknowledgement of a confirm or reject call.

    For rejections, ``returned_movement_ids[i]`` is the compensating
    record of ``movement_ids[i]``.
    """

    movement_ids: tuple[UUID, ...]
    status: MovementStatus
    resolved_at: datetime
    returned_movement_ids: tuple[UUID, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class StockLevel:
    """Quantity on hand of one product at one location."""

    location_id: str
    product_id: str
    quantity: int
    min_level: int | None
    max_level: int | None
    last_updated: datetime

    @property
    def is_low(self) -> bool:
        return self.min_level is not None and self.quantity < self.min_level


@dataclass(frozen=True)
class ProductPosition:
    """Conservation view of a product: on hand everywhere plus in flight."""

    product_id: str
    on_hand: int
    in_flight: int

    @property
    def total(self) -> int:
        return self.on_hand + self.in_flight
