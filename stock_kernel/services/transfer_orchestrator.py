"""
TransferOrchestrator -- the "send" half of the transfer protocol.

Responsibility:
    Validates a transfer request against the Location Directory and the
    Product Catalog, decrements the source ledger for every line item and
    writes one SENT StockMovement per line under a shared batch header.
    Also builds the rider end-of-shift return, which is an ordinary send
    of everything the rider still holds back to its parent.

Architecture position:
    Kernel > Services -- imperative shell.  Uses InventoryLedger for
    quantity changes; consumes the LocationDirectory and ProductCatalog
    ports from domain/collaborators.py.

Invariants enforced:
    BATCH_ATOMICITY -- the header, every decrement and every movement row
        are written inside one SAVEPOINT.  Any failure rolls the savepoint
        back: no decrement survives, no movement row exists.
    NON_NEGATIVE_STOCK -- every decrement is the ledger's conditional
        UPDATE.  The shortage pre-check only exists to report every short
        line at once; it is not what keeps stock non-negative.
    IDEMPOTENT_TRANSFER -- an idempotency key is stored on the batch header
        under a UNIQUE constraint together with the request hash.  A retry
        with the same request replays the original result; a concurrent
        duplicate loses the INSERT and replays the winner.

Failure modes:
    - ValidationError (and subclasses): malformed request, unknown or
      inactive location, unknown product, unreachable destination, key
      reused for a different request.
    - InsufficientStockError: at least one line exceeds the source quantity.
      Lists every short line.  Source inventory is untouched.

Audit relevance:
    Logs transfer_created with batch, endpoints and line count; each
    decrement is logged by the ledger.  created_by_id on the batch and its
    movements records the sender.
"""

from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock
from stock_kernel.domain.collaborators import LocationDirectory, ProductCatalog
from stock_kernel.domain.dtos import TransferResult
from stock_kernel.domain.validation import validate_line_items
from stock_kernel.domain.values import (
    BatchKind,
    LineItem,
    LocationInfo,
    LocationKind,
    MovementStatus,
)
from stock_kernel.exceptions import (
    IdempotencyConflictError,
    InsufficientStockError,
    UnknownLocationError,
    UnknownProductError,
    UnreachableLocationError,
    ValidationError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.inventory import InventoryRecord
from stock_kernel.models.movement import StockMovement, TransferBatch
from stock_kernel.services.base import BaseService
from stock_kernel.services.inventory_ledger import InventoryLedger
from stock_kernel.utils.idempotency import (
    normalize_idempotency_key,
    transfer_request_hash,
)

logger = get_logger("services.transfer_orchestrator")

DEFAULT_DELIVERY_SLA = timedelta(hours=1)


class TransferOrchestrator(BaseService[TransferBatch]):
    """
    Executes validated, all-or-nothing sends.

    Contract:
        ``create_transfer`` either writes a complete batch (header, one SENT
        movement per line, source decremented by every line) or changes
        nothing and raises.

    Guarantees:
        - Movements are created in submitted line order (line_no 1..n).
        - expected_delivery_at = now + delivery SLA for every movement.
        - Replays (same idempotency key, same request) return the stored
          ids with ``replayed=True`` and perform no writes.

    Non-goals:
        - Does NOT touch the destination ledger; stock is in flight until
          the ConfirmationHandler resolves it.
        - Does NOT retry anything; retry policy belongs to the caller.
    """

    def __init__(
        self,
        session: Session,
        directory: LocationDirectory,
        catalog: ProductCatalog,
        clock: Clock | None = None,
        ledger: InventoryLedger | None = None,
        delivery_sla: timedelta = DEFAULT_DELIVERY_SLA,
    ):
        super().__init__(session, clock)
        if delivery_sla <= timedelta(0):
            raise ValueError("delivery_sla must be positive")
        self._directory = directory
        self._catalog = catalog
        self._ledger = ledger or InventoryLedger(session, self._clock)
        self._delivery_sla = delivery_sla

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def create_transfer(
        self,
        source_location_id: str,
        dest_location_id: str,
        items: Iterable,
        actor_id: UUID,
        note: str | None = None,
        idempotency_key: str | None = None,
    ) -> TransferResult:
        """
        Send ``items`` from source to dest as one batch.

        Preconditions:
            - ``items`` is a non-empty sequence of LineItem or
              ``{"product_id", "quantity"}`` mappings.
            - The caller is already authorized for ``source_location_id``.

        Postconditions:
            - On success the source quantity of every product dropped by
              exactly its line quantity and one SENT movement per line exists.
            - On failure nothing changed.

        Raises:
            ValidationError, InsufficientStockError, IdempotencyConflictError.
        """
        line_items = validate_line_items(items)
        if source_location_id == dest_location_id:
            raise ValidationError(
                "dest_location_id", "source and destination must differ"
            )

        key = normalize_idempotency_key(idempotency_key)
        request_hash = transfer_request_hash(
            source_location_id, dest_location_id, line_items, note
        )
        replay = self._replay_if_known(key, request_hash)
        if replay is not None:
            return replay

        self._check_endpoints(source_location_id, dest_location_id)
        for item in line_items:
            if not self._catalog.resolve_product(item.product_id):
                raise UnknownProductError(item.product_id)

        return self._send(
            kind=BatchKind.TRANSFER,
            source_location_id=source_location_id,
            dest_location_id=dest_location_id,
            items=line_items,
            actor_id=actor_id,
            note=note,
            idempotency_key=key,
            request_hash=request_hash,
        )

    def return_remaining_stock(
        self,
        rider_location_id: str,
        actor_id: UUID,
        note: str | None = None,
        idempotency_key: str | None = None,
    ) -> TransferResult:
        """
        Send everything a rider holds back to its parent.

        The parent is a hub or, for a branch-owned rider, a small branch.
        The batch (kind ``shift_return``) carries one line per product with
        a positive quantity, ordered by product id.  The parent resolves it
        with the normal confirm/reject operations.

        Raises:
            UnknownLocationError: rider unknown or inactive.
            ValidationError: location is not a rider, has no parent, or
                holds no stock.
        """
        rider = self._require_location(rider_location_id, "location_id")
        if rider.kind is not LocationKind.RIDER:
            raise ValidationError(
                "location_id", f"'{rider_location_id}' is not a rider"
            )
        if not rider.parent_id:
            raise ValidationError(
                "location_id", f"rider '{rider_location_id}' has no parent"
            )

        key = normalize_idempotency_key(idempotency_key)
        # Lines are derived from the ledger, so the request is rider + note
        request_hash = transfer_request_hash(
            rider.location_id, rider.parent_id, (), note, BatchKind.SHIFT_RETURN
        )
        replay = self._replay_if_known(key, request_hash)
        if replay is not None:
            return replay

        self._check_endpoints(rider.location_id, rider.parent_id)

        records = self.session.execute(
            select(InventoryRecord.product_id, InventoryRecord.quantity)
            .where(
                InventoryRecord.location_id == rider.location_id,
                InventoryRecord.quantity > 0,
            )
            .order_by(InventoryRecord.product_id)
        ).all()
        if not records:
            raise ValidationError(
                "location_id", f"rider '{rider_location_id}' holds no stock"
            )

        return self._send(
            kind=BatchKind.SHIFT_RETURN,
            source_location_id=rider.location_id,
            dest_location_id=rider.parent_id,
            items=[LineItem(product_id=p, quantity=q) for p, q in records],
            actor_id=actor_id,
            note=note,
            idempotency_key=key,
            request_hash=request_hash,
        )

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _require_location(self, location_id: str, field: str) -> LocationInfo:
        info = self._directory.resolve_location(location_id)
        if info is None or not info.active:
            raise UnknownLocationError(location_id, field=field)
        return info

    def _check_endpoints(self, source_location_id: str, dest_location_id: str) -> None:
        self._require_location(source_location_id, "source_location_id")
        self._require_location(dest_location_id, "dest_location_id")
        if not self._directory.is_reachable(source_location_id, dest_location_id):
            raise UnreachableLocationError(source_location_id, dest_location_id)

    def _shortages(
        self, source_location_id: str, items: Sequence[LineItem]
    ) -> list[dict]:
        shortages = []
        for item in items:
            available = self._ledger.get_quantity(source_location_id, item.product_id)
            if available < item.quantity:
                shortages.append({
                    "product_id": item.product_id,
                    "requested": item.quantity,
                    "available": available,
                })
        return shortages

    # ------------------------------------------------------------------
    # Idempotency
    # ------------------------------------------------------------------

    def _find_batch(self, idempotency_key: str) -> TransferBatch | None:
        return self.session.execute(
            select(TransferBatch).where(TransferBatch.idempotency_key == idempotency_key)
        ).scalar_one_or_none()

    def _replay_if_known(
        self, idempotency_key: str | None, request_hash: str
    ) -> TransferResult | None:
        if idempotency_key is None:
            return None
        existing = self._find_batch(idempotency_key)
        if existing is None:
            return None
        return self._replay(existing, request_hash)

    def _replay(self, batch: TransferBatch, request_hash: str) -> TransferResult:
        if batch.request_hash != request_hash:
            logger.warning(
                "idempotency_conflict",
                extra={
                    "idempotency_key": batch.idempotency_key,
                    "batch_id": str(batch.id),
                },
            )
            raise IdempotencyConflictError(
                batch.idempotency_key, batch.request_hash, request_hash
            )

        movement_ids = self.session.execute(
            select(StockMovement.id)
            .where(
                StockMovement.batch_id == batch.id,
                StockMovement.returned_from_id.is_(None),
            )
            .order_by(StockMovement.line_no)
        ).scalars().all()

        logger.info(
            "transfer_replayed",
            extra={
                "idempotency_key": batch.idempotency_key,
                "batch_id": str(batch.id),
            },
        )
        return TransferResult(
            batch_id=batch.id,
            movement_ids=tuple(movement_ids),
            kind=BatchKind(batch.kind),
            replayed=True,
        )

    # ------------------------------------------------------------------
    # Send
    # ------------------------------------------------------------------

    def _send(
        self,
        kind: BatchKind,
        source_location_id: str,
        dest_location_id: str,
        items: Sequence[LineItem],
        actor_id: UUID,
        note: str | None,
        idempotency_key: str | None,
        request_hash: str,
    ) -> TransferResult:
        shortages = self._shortages(source_location_id, items)
        if shortages:
            logger.warning(
                "transfer_rejected_insufficient_stock",
                extra={
                    "source_location_id": source_location_id,
                    "dest_location_id": dest_location_id,
                    "shortages": shortages,
                },
            )
            raise InsufficientStockError(source_location_id, shortages)

        now = self._clock.now()
        expected = now + self._delivery_sla

        # INVARIANT: BATCH_ATOMICITY -- one savepoint around header,
        # decrements and movement rows
        savepoint = self.session.begin_nested()
        try:
            batch = TransferBatch(
                kind=kind.value,
                source_location_id=source_location_id,
                dest_location_id=dest_location_id,
                idempotency_key=idempotency_key,
                request_hash=request_hash,
                note=note,
                item_count=len(items),
                created_at=now,
                updated_at=now,
                created_by_id=actor_id,
            )
            self.session.add(batch)
            self.session.flush()

            movements = [
                self._movement(batch, line_no, item, actor_id, note, now, expected)
                for line_no, item in enumerate(items, start=1)
            ]
            for item in items:
                self._ledger.decrement(source_location_id, item.product_id, item.quantity)
            self.session.add_all(movements)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            if idempotency_key is None:
                raise
            # A concurrent request with the same key committed first
            logger.warning(
                "concurrent_transfer_conflict",
                extra={"idempotency_key": idempotency_key},
            )
            existing = self._find_batch(idempotency_key)
            if existing is None:
                raise
            return self._replay(existing, request_hash)
        except Exception:
            savepoint.rollback()
            raise

        logger.info(
            "transfer_created",
            extra={
                "batch_id": str(batch.id),
                "kind": kind.value,
                "source_location_id": source_location_id,
                "dest_location_id": dest_location_id,
                "item_count": len(items),
                "expected_delivery_at": expected,
            },
        )
        return TransferResult(
            batch_id=batch.id,
            movement_ids=tuple(m.id for m in movements),
            kind=kind,
        )

    @staticmethod
    def _movement(
        batch: TransferBatch,
        line_no: int,
        item: LineItem,
        actor_id: UUID,
        note: str | None,
        now: datetime,
        expected: datetime,
    ) -> StockMovement:
        return StockMovement(
            batch_id=batch.id,
            line_no=line_no,
            product_id=item.product_id,
            quantity=item.quantity,
            source_location_id=batch.source_location_id,
            dest_location_id=batch.dest_location_id,
            status=MovementStatus.SENT.value,
            expected_delivery_at=expected,
            notes=note,
            created_at=now,
            updated_at=now,
            created_by_id=actor_id,
        )
