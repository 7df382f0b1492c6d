"""
Typed Exception Hierarchy for the Stock Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

A failed transfer has to be rendered to a person standing next to a coffee
cart: "Not enough Arabica beans at Hub Malang: 5 available, 6 requested".
Callers must not parse message strings to build that sentence, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (offending product, location, status)

Example - RIGHT way to handle a failed send:
    try:
        service.create_transfer(hub, rider, items, actor_id=user)
    except InsufficientStockError as e:
        for short in e.shortages:
            show(short["product_id"], short["available"], short["requested"])

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from StockKernelError:

    StockKernelError (base)
    |
    +-- ValidationError
    |   +-- UnknownLocationError
    |   +-- UnknownProductError
    |   +-- UnreachableLocationError
    |   +-- IdempotencyConflictError
    |
    +-- InsufficientStockError
    |
    +-- NotFoundError
    |   +-- MovementNotFoundError
    |
    +-- InvalidStateError
    |
    +-- PersistenceError
    |
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                     | When Raised                              | Retry?
-------------------------|------------------------------------------|--------
VALIDATION_ERROR         | Malformed caller input                   | never
UNKNOWN_LOCATION         | Location not in the directory / inactive | never
UNKNOWN_PRODUCT          | Product not in the catalog               | never
LOCATION_NOT_REACHABLE   | Dest not a child/parent/peer of source   | never
IDEMPOTENCY_CONFLICT     | Same key reused for a different request  | never
INSUFFICIENT_STOCK       | Decrement would drive quantity below 0   | after restock
NOT_FOUND                | Generic stale or foreign id              | refresh
MOVEMENT_NOT_FOUND       | Movement unknown or addressed elsewhere  | refresh
INVALID_MOVEMENT_STATE   | Movement already received/rejected       | refresh
PERSISTENCE_ERROR        | Store unavailable / lock timeout         | whole op
IMMUTABILITY_VIOLATION   | Update/delete of an append-only record   | never

===============================================================================
DESIGN DECISIONS
===============================================================================

1. WHY INHERIT FROM Exception (not ValueError, etc.)?
   Domain exceptions should be catchable as a group. Inheriting from
   built-in types mixes domain errors with programming errors.

2. WHY code CLASS ATTRIBUTE (not instance)?
   Codes are static per exception type and usable without instantiation.

3. WHY STORE ALL CONTEXT AS ATTRIBUTES?
   Exceptions are logged by StructuredFormatter, which copies public
   attributes into the JSON record. Structured attributes survive;
   parsed message strings don't.

===============================================================================
"""

from __future__ import annotations

from typing import Any


class StockKernelError(Exception):
    """
    Base exception for all stock kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "STOCK_KERNEL_ERROR"


# Validation errors


class ValidationError(StockKernelError):
    """Caller input is malformed. Never retried automatically."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class UnknownLocationError(ValidationError):
    """Location does not resolve in the Location Directory, or is inactive."""

    code: str = "UNKNOWN_LOCATION"

    def __init__(self, location_id: str, field: str = "location_id"):
        self.location_id = location_id
        super().__init__(field, f"unknown or inactive location '{location_id}'")


class UnknownProductError(ValidationError):
    """Product does not resolve in the Product Catalog."""

    code: str = "UNKNOWN_PRODUCT"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__("product_id", f"unknown product '{product_id}'")


class UnreachableLocationError(ValidationError):
    """Destination is not reachable from the source in the hierarchy."""

    code: str = "LOCATION_NOT_REACHABLE"

    def __init__(self, source_location_id: str, dest_location_id: str):
        self.source_location_id = source_location_id
        self.dest_location_id = dest_location_id
        super().__init__(
            "dest_location_id",
            f"'{dest_location_id}' is not reachable from '{source_location_id}'",
        )


class IdempotencyConflictError(ValidationError):
    """
    Idempotency key was already used for a different transfer request.

    The stored request hash and the received one differ, so replaying the
    original result would silently answer a different question.
    """

    code: str = "IDEMPOTENCY_CONFLICT"

    def __init__(self, idempotency_key: str, expected_hash: str, received_hash: str):
        self.idempotency_key = idempotency_key
        self.expected_hash = expected_hash
        self.received_hash = received_hash
        super().__init__(
            "idempotency_key",
            f"key '{idempotency_key}' already used for a different request",
        )


# Stock errors


class InsufficientStockError(StockKernelError):
    """
    One or more line items exceed the quantity on hand at the source.

    ``shortages`` lists every short line as a dict with ``product_id``,
    ``requested`` and ``available``. ``product_id``/``requested``/
    ``available`` mirror the first shortage for single-item callers.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, location_id: str, shortages: list[dict[str, Any]]):
        if not shortages:
            raise ValueError("InsufficientStockError requires at least one shortage")
        self.location_id = location_id
        self.shortages = [dict(s) for s in shortages]
        first = self.shortages[0]
        self.product_id = first["product_id"]
        self.requested = first["requested"]
        self.available = first["available"]
        detail = ", ".join(
            f"{s['product_id']} (requested {s['requested']}, available {s['available']})"
            for s in self.shortages
        )
        super().__init__(f"Insufficient stock at {location_id}: {detail}")

    @classmethod
    def single(
        cls, location_id: str, product_id: str, requested: int, available: int
    ) -> InsufficientStockError:
        return cls(
            location_id,
            [{"product_id": product_id, "requested": requested, "available": available}],
        )


# Lookup / state errors


class NotFoundError(StockKernelError):
    """Referenced record does not exist or is not visible to the caller."""

    code: str = "NOT_FOUND"


class MovementNotFoundError(NotFoundError):
    """Movement does not exist or is not addressed to the caller's location."""

    code: str = "MOVEMENT_NOT_FOUND"

    def __init__(self, movement_id: str, location_id: str | None = None):
        self.movement_id = movement_id
        self.location_id = location_id
        if location_id is None:
            super().__init__(f"Movement not found: {movement_id}")
        else:
            super().__init__(
                f"Movement not found for location {location_id}: {movement_id}"
            )


class InvalidStateError(StockKernelError):
    """
    Movement is not in the state the operation requires.

    Raised when a confirm/reject/attach targets a movement that is no longer
    ``sent`` -- including the loser of two concurrent confirmations.
    """

    code: str = "INVALID_MOVEMENT_STATE"

    def __init__(self, movement_id: str, current_status: str, expected_status: str = "sent"):
        self.movement_id = movement_id
        self.current_status = current_status
        self.expected_status = expected_status
        super().__init__(
            f"Movement {movement_id} is '{current_status}', expected '{expected_status}'"
        )


# Infrastructure errors


class PersistenceError(StockKernelError):
    """
    Underlying store failed (connection loss, lock timeout, ...).

    The failed operation was rolled back in full; retrying the whole
    operation is safe.
    """

    code: str = "PERSISTENCE_ERROR"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Persistence failure during {operation}: {detail}")


class ImmutabilityViolationError(StockKernelError):
    """
    Attempted to modify or delete an append-only record.

    Resolved movements, batch headers and inventory record existence are
    append-only.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")
