"""
Value objects shared across the kernel.

Frozen dataclasses and string enums only.  No I/O, no ORM imports; models
import the enums from here so that the stored strings and the domain
values cannot drift apart.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class LocationKind(str, Enum):
    """Stock-holding tier of a location."""

    HUB = "hub"
    SMALL_BRANCH = "small_branch"
    RIDER = "rider"


class MovementStatus(str, Enum):
    """Lifecycle status of a stock movement.

    Contract: SENT -> RECEIVED | SENT -> REJECTED.  RETURNED is only ever
    assigned at creation, to the compensating record of a rejection.
    Nothing transitions back into SENT.
    """

    SENT = "sent"
    RECEIVED = "received"
    REJECTED = "rejected"
    RETURNED = "returned"

    @property
    def is_terminal(self) -> bool:
        return self is not MovementStatus.SENT


class BatchKind(str, Enum):
    """Why a transfer batch was created."""

    TRANSFER = "transfer"
    SHIFT_RETURN = "shift_return"


class Direction(str, Enum):
    """Which side of a movement a location is on, for history queries."""

    INCOMING = "incoming"
    OUTGOING = "outgoing"
    BOTH = "both"


@dataclass(frozen=True)
class LocationInfo:
    """What the Location Directory knows about a stock-holding point."""

    location_id: str
    kind: LocationKind
    parent_id: str | None = None
    name: str = ""
    active: bool = True


@dataclass(frozen=True)
class LineItem:
    """One (product, quantity) pair of a transfer request."""

    product_id: str
    quantity: int
