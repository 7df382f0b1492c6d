"""
InventoryLedger -- sole authority over quantity on hand.

Responsibility:
    Reads and mutates InventoryRecord.quantity per (location, product).
    Every quantity change in the system goes through ``increment`` or
    ``decrement``; nothing else writes the column.

Architecture position:
    Kernel > Services -- imperative shell.  Called by TransferOrchestrator
    (decrement at send time) and ConfirmationHandler (increment at
    confirm/reject time).

Invariants enforced:
    NON_NEGATIVE_STOCK -- ``decrement`` is a single conditional UPDATE:

        UPDATE inventory_records
           SET quantity = quantity - :amount
         WHERE location_id = :loc AND product_id = :prod
           AND quantity >= :amount

    Zero affected rows means the stock was not there.  Two concurrent
    decrements serialize on the row lock and the second re-evaluates the
    WHERE clause against the committed quantity; no read-then-write
    happens in Python.  The CHECK constraint on the table is the backstop.

Failure modes:
    - InsufficientStockError: current quantity < amount (nothing changed).
    - ValidationError: amount is not a positive integer.
    - IntegrityError during first-arrival INSERT race: handled by savepoint
      rollback and a retried UPDATE.

Audit relevance:
    Every change is logged (stock_incremented / stock_decremented) with
    location, product, amount and the resulting quantity.
"""

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock
from stock_kernel.domain.dtos import StockLevel
from stock_kernel.domain.validation import (
    require_non_negative_level,
    require_positive_quantity,
)
from stock_kernel.exceptions import InsufficientStockError, ValidationError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.inventory import InventoryRecord
from stock_kernel.selectors.base import as_utc
from stock_kernel.services.base import BaseService

logger = get_logger("services.inventory_ledger")


class InventoryLedger(BaseService[InventoryRecord]):
    """
    Atomic per-row quantity arithmetic.

    Contract:
        ``get_quantity`` never fails for a missing record (returns 0).
        ``increment`` creates the record on first arrival.
        ``decrement`` either subtracts the full amount or raises
        InsufficientStockError without touching the row.

    Guarantees:
        - quantity >= 0 after every call, under any interleaving.
        - last_updated is stamped from the injected clock.

    Non-goals:
        - Does NOT lock source and destination together; a transfer never
          needs both rows at once.
        - Does NOT commit.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)

    def get_quantity(self, location_id: str, product_id: str) -> int:
        """Quantity on hand, or 0 when no record exists."""
        quantity = self.session.execute(
            select(InventoryRecord.quantity).where(
                InventoryRecord.location_id == location_id,
                InventoryRecord.product_id == product_id,
            )
        ).scalar_one_or_none()
        return quantity or 0

    def increment(self, location_id: str, product_id: str, amount: int) -> int:
        """
        Add ``amount`` at a location, creating the record if absent.

        Returns:
            The quantity after the increment.
        """
        require_positive_quantity(amount, "amount")
        now = self._clock.now()

        if not self._add(location_id, product_id, amount, now):
            # First arrival of this product here.  A concurrent first arrival
            # may win the INSERT; the savepoint keeps the caller's work intact.
            savepoint = self.session.begin_nested()
            try:
                self.session.add(
                    InventoryRecord(
                        location_id=location_id,
                        product_id=product_id,
                        quantity=amount,
                        last_updated=now,
                    )
                )
                self.session.flush()
                savepoint.commit()
            except IntegrityError:
                logger.debug(
                    "inventory_record_race_retry",
                    extra={"location_id": location_id, "product_id": product_id},
                )
                savepoint.rollback()
                if not self._add(location_id, product_id, amount, now):
                    raise

        quantity = self.get_quantity(location_id, product_id)
        logger.info(
            "stock_incremented",
            extra={
                "location_id": location_id,
                "product_id": product_id,
                "amount": amount,
                "quantity": quantity,
            },
        )
        return quantity

    def decrement(self, location_id: str, product_id: str, amount: int) -> int:
        """
        Subtract ``amount`` at a location if, and only if, it is available.

        Returns:
            The quantity after the decrement (>= 0).

        Raises:
            InsufficientStockError: Fewer than ``amount`` units on hand.
        """
        require_positive_quantity(amount, "amount")
        now = self._clock.now()

        # INVARIANT: NON_NEGATIVE_STOCK -- check and subtract in one statement
        result = self.session.execute(
            update(InventoryRecord)
            .where(
                InventoryRecord.location_id == location_id,
                InventoryRecord.product_id == product_id,
                InventoryRecord.quantity >= amount,
            )
            .values(
                quantity=InventoryRecord.quantity - amount,
                last_updated=now,
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            available = self.get_quantity(location_id, product_id)
            logger.warning(
                "insufficient_stock",
                extra={
                    "location_id": location_id,
                    "product_id": product_id,
                    "requested": amount,
                    "available": available,
                },
            )
            raise InsufficientStockError.single(
                location_id, product_id, amount, available
            )

        quantity = self.get_quantity(location_id, product_id)
        logger.info(
            "stock_decremented",
            extra={
                "location_id": location_id,
                "product_id": product_id,
                "amount": amount,
                "quantity": quantity,
            },
        )
        return quantity

    def set_levels(
        self,
        location_id: str,
        product_id: str,
        min_level: int | None,
        max_level: int | None,
    ) -> StockLevel:
        """
        Set reorder thresholds without touching quantity.

        The record is created at quantity 0 if absent.

        Raises:
            ValidationError: negative level, or min_level > max_level.
        """
        require_non_negative_level(min_level, "min_level")
        require_non_negative_level(max_level, "max_level")
        if min_level is not None and max_level is not None and min_level > max_level:
            raise ValidationError(
                "min_level", f"must not exceed max_level ({min_level} > {max_level})"
            )

        now = self._clock.now()
        values = {"min_level": min_level, "max_level": max_level}

        if not self._update(location_id, product_id, values):
            savepoint = self.session.begin_nested()
            try:
                self.session.add(
                    InventoryRecord(
                        location_id=location_id,
                        product_id=product_id,
                        quantity=0,
                        min_level=min_level,
                        max_level=max_level,
                        last_updated=now,
                    )
                )
                self.session.flush()
                savepoint.commit()
            except IntegrityError:
                savepoint.rollback()
                if not self._update(location_id, product_id, values):
                    raise

        logger.info(
            "stock_levels_set",
            extra={
                "location_id": location_id,
                "product_id": product_id,
                "min_level": min_level,
                "max_level": max_level,
            },
        )

        record = self.session.execute(
            select(InventoryRecord)
            .where(
                InventoryRecord.location_id == location_id,
                InventoryRecord.product_id == product_id,
            )
            .execution_options(populate_existing=True)
        ).scalar_one()
        return StockLevel(
            location_id=record.location_id,
            product_id=record.product_id,
            quantity=record.quantity,
            min_level=record.min_level,
            max_level=record.max_level,
            last_updated=as_utc(record.last_updated),
        )

    def _add(self, location_id, product_id, amount, now) -> bool:
        return self._update(
            location_id,
            product_id,
            {"quantity": InventoryRecord.quantity + amount, "last_updated": now},
        )

    def _update(self, location_id, product_id, values) -> bool:
        result = self.session.execute(
            update(InventoryRecord)
            .where(
                InventoryRecord.location_id == location_id,
                InventoryRecord.product_id == product_id,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
