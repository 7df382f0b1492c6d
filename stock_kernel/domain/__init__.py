"""Pure domain layer: values, rules, collaborator ports and DTOs."""

from stock_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from stock_kernel.domain.collaborators import (
    EvidenceStore,
    LocationDirectory,
    ProductCatalog,
)
from stock_kernel.domain.dtos import (
    ProductPosition,
    ResolutionResult,
    StockLevel,
    TransferResult,
)
from stock_kernel.domain.hierarchy import is_reachable
from stock_kernel.domain.movements import (
    Movement,
    ReceivedMovement,
    RejectedMovement,
    ReturnedMovement,
    SentMovement,
)
from stock_kernel.domain.values import (
    BatchKind,
    Direction,
    LineItem,
    LocationInfo,
    LocationKind,
    MovementStatus,
)

__all__ = [
    "BatchKind",
    "Clock",
    "DeterministicClock",
    "Direction",
    "EvidenceStore",
    "LineItem",
    "LocationDirectory",
    "LocationInfo",
    "LocationKind",
    "Movement",
    "MovementStatus",
    "ProductCatalog",
    "ProductPosition",
    "ReceivedMovement",
    "RejectedMovement",
    "ResolutionResult",
    "ReturnedMovement",
    "SentMovement",
    "StockLevel",
    "SystemClock",
    "TransferResult",
    "is_reachable",
]
