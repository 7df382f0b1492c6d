"""
stock_services.stock_movement_service -- outward facade of the stock core.

Responsibility:
    Exposes the send / pending / confirm / reject protocol and the ledger
    queries to UI and report collaborators.  Each call runs in its own
    transaction: open a session, construct the kernel services over it,
    run, commit.  Any failure rolls the whole call back.

Architecture position:
    Services -- the only layer that owns transaction boundaries.
    Dependency direction:
        stock_services -> stock_kernel, stock_config  (allowed)
        stock_kernel   -> stock_services             (FORBIDDEN)

Invariants enforced:
    - One transaction per call; kernel services only flush.
    - Infrastructure failures (``sqlalchemy.exc.DBAPIError``: lost
      connection, lock timeout, ...) surface as PersistenceError after the
      rollback.  Domain errors surface unchanged.  Nothing is retried here.

Failure modes:
    - Every StockKernelError subclass raised by the kernel.
    - PersistenceError for database failures; the call had no effect.

Audit relevance:
    Every call binds ``operation``, ``actor_id``, ``location_id`` and a
    fresh ``correlation_id`` into the LogContext, so every log line the
    kernel emits during the call carries them.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta
from uuid import UUID, uuid4

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, sessionmaker

from stock_kernel.db.engine import session_scope
from stock_kernel.domain.clock import Clock, SystemClock
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
from stock_kernel.domain.movements import MovementVariant, SentMovement
from stock_kernel.domain.values import Direction, MovementStatus
from stock_kernel.exceptions import (
    NotFoundError,
    PersistenceError,
    UnknownLocationError,
    UnknownProductError,
    ValidationError,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.selectors.inventory_selector import InventorySelector
from stock_kernel.selectors.movement_selector import MovementSelector
from stock_kernel.services.confirmation_handler import ConfirmationHandler
from stock_kernel.services.inventory_ledger import InventoryLedger
from stock_kernel.services.transfer_orchestrator import (
    DEFAULT_DELIVERY_SLA,
    TransferOrchestrator,
)

logger = get_logger("services.stock_movement")


def _actor(actor_id) -> UUID:
    if isinstance(actor_id, UUID):
        return actor_id
    try:
        return UUID(str(actor_id))
    except ValueError:
        raise ValidationError("actor_id", f"not a valid id: {actor_id!r}") from None


def _batch_uuid(batch_id) -> UUID:
    if isinstance(batch_id, UUID):
        return batch_id
    try:
        return UUID(str(batch_id))
    except ValueError:
        raise ValidationError("batch_id", f"not a valid id: {batch_id!r}") from None


class StockMovementService:
    """
    Transactional facade over the stock kernel.

    Contract:
        Stateless between calls; safe to share across threads as long as
        the session factory is (SQLAlchemy's sessionmaker is).  The caller
        is assumed to have authorized the ``location_id`` it passes.

    Guarantees:
        - Each public method is one transaction.
        - Returned values are DTOs or movement variants, never ORM rows.

    Non-goals:
        - Does NOT authorize; role-based visibility lives in the caller.
        - Does NOT retry failed calls.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        directory: LocationDirectory,
        catalog: ProductCatalog,
        evidence_store: EvidenceStore | None = None,
        clock: Clock | None = None,
        delivery_sla: timedelta = DEFAULT_DELIVERY_SLA,
    ):
        self._session_factory = session_factory
        self._directory = directory
        self._catalog = catalog
        self._evidence_store = evidence_store
        self._clock = clock or SystemClock()
        self._delivery_sla = delivery_sla

    # ------------------------------------------------------------------
    # Transaction scope
    # ------------------------------------------------------------------

    @contextmanager
    def _unit_of_work(self, operation: str, **context) -> Iterator[Session]:
        with LogContext.bind(
            correlation_id=str(uuid4()), operation=operation, **context
        ):
            try:
                with session_scope(self._session_factory) as session:
                    yield session
            except DBAPIError as exc:
                logger.error(
                    "persistence_failure",
                    extra={"operation": operation, "error": str(exc.orig)},
                )
                raise PersistenceError(operation, str(exc.orig)) from exc

    def _orchestrator(self, session: Session) -> TransferOrchestrator:
        return TransferOrchestrator(
            session,
            self._directory,
            self._catalog,
            clock=self._clock,
            delivery_sla=self._delivery_sla,
        )

    def _handler(self, session: Session) -> ConfirmationHandler:
        return ConfirmationHandler(session, clock=self._clock)

    # ------------------------------------------------------------------
    # Send / receive protocol
    # ------------------------------------------------------------------

    def create_transfer(
        self,
        source_location_id: str,
        dest_location_id: str,
        items: Iterable,
        actor_id,
        note: str | None = None,
        idempotency_key: str | None = None,
    ) -> TransferResult:
        """Send line items from source to dest as one all-or-nothing batch."""
        actor = _actor(actor_id)
        with self._unit_of_work(
            "create_transfer", actor_id=actor, location_id=source_location_id
        ) as session:
            result = self._orchestrator(session).create_transfer(
                source_location_id,
                dest_location_id,
                items,
                actor,
                note=note,
                idempotency_key=idempotency_key,
            )
        return result

    def return_remaining_stock(
        self,
        rider_location_id: str,
        actor_id,
        note: str | None = None,
        idempotency_key: str | None = None,
    ) -> TransferResult:
        """End of shift: send everything the rider holds back to its parent."""
        actor = _actor(actor_id)
        with self._unit_of_work(
            "return_remaining_stock", actor_id=actor, location_id=rider_location_id
        ) as session:
            result = self._orchestrator(session).return_remaining_stock(
                rider_location_id,
                actor,
                note=note,
                idempotency_key=idempotency_key,
            )
        return result

    def list_pending(self, location_id: str) -> list[SentMovement]:
        with self._unit_of_work("list_pending", location_id=location_id) as session:
            return self._handler(session).list_pending(location_id)

    def confirm(
        self,
        location_id: str,
        movement_ids: Iterable,
        actor_id,
        evidence_ref: str | None = None,
    ) -> ResolutionResult:
        """Accept movements addressed to ``location_id``."""
        actor = _actor(actor_id)
        with self._unit_of_work(
            "confirm", actor_id=actor, location_id=location_id
        ) as session:
            result = self._handler(session).confirm(
                location_id, movement_ids, actor, evidence_ref=evidence_ref
            )
        return result

    def reject(
        self,
        location_id: str,
        movement_ids: Iterable,
        reason: str,
        actor_id,
    ) -> ResolutionResult:
        """Refuse movements addressed to ``location_id``; stock goes back."""
        actor = _actor(actor_id)
        with self._unit_of_work(
            "reject", actor_id=actor, location_id=location_id
        ) as session:
            result = self._handler(session).reject(
                location_id, movement_ids, reason, actor
            )
        return result

    def attach_evidence(
        self,
        location_id: str,
        movement_id,
        actor_id,
        evidence_ref: str | None = None,
        payload: bytes | None = None,
    ) -> str:
        """
        Attach a delivery photo to a pending movement.

        Pass either an existing ``evidence_ref`` or the raw ``payload``.
        A payload is written to the evidence store only after the kernel
        has accepted its reference, inside the same transaction, so an
        unknown or resolved movement leaves nothing on disk.  Returns the
        reference that was attached.
        """
        if (evidence_ref is None) == (payload is None):
            raise ValidationError(
                "evidence", "pass exactly one of evidence_ref or payload"
            )
        if payload is not None:
            if self._evidence_store is None:
                raise ValidationError("payload", "no evidence store is configured")
            evidence_ref = self._evidence_store.reference_for(payload)

        actor = _actor(actor_id)
        with self._unit_of_work(
            "attach_evidence",
            actor_id=actor,
            location_id=location_id,
            movement_id=movement_id,
        ) as session:
            self._handler(session).attach_evidence(
                location_id, movement_id, evidence_ref, actor
            )
            if payload is not None:
                self._evidence_store.store(payload)
        return evidence_ref

    # ------------------------------------------------------------------
    # Movement queries
    # ------------------------------------------------------------------

    def get_batch(self, batch_id) -> list[MovementVariant]:
        """All movements of a batch, including returned records."""
        batch_uuid = _batch_uuid(batch_id)
        with self._unit_of_work("get_batch", batch_id=batch_uuid) as session:
            selector = MovementSelector(session)
            if not selector.batch_exists(batch_uuid):
                raise NotFoundError(f"Batch not found: {batch_uuid}")
            return selector.get_batch(batch_uuid)

    def list_movements(
        self,
        location_id: str,
        direction: Direction = Direction.BOTH,
        status: MovementStatus | None = None,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
    ) -> list[MovementVariant]:
        try:
            direction = Direction(direction)
            status = MovementStatus(status) if status is not None else None
        except ValueError as exc:
            raise ValidationError("filter", str(exc)) from None
        with self._unit_of_work("list_movements", location_id=location_id) as session:
            return MovementSelector(session).list_movements(
                location_id,
                direction=direction,
                status=status,
                created_from=created_from,
                created_to=created_to,
            )

    def list_overdue(
        self, location_id: str, as_of: datetime | None = None
    ) -> list[SentMovement]:
        """Pending movements past their expected delivery; nothing is cancelled."""
        as_of = as_of or self._clock.now()
        with self._unit_of_work("list_overdue", location_id=location_id) as session:
            return MovementSelector(session).list_overdue(location_id, as_of)

    # ------------------------------------------------------------------
    # Ledger queries and levels
    # ------------------------------------------------------------------

    def get_quantity(self, location_id: str, product_id: str) -> int:
        with self._unit_of_work("get_quantity", location_id=location_id) as session:
            return InventoryLedger(session, self._clock).get_quantity(
                location_id, product_id
            )

    def stock_on_hand(self, location_id: str) -> list[StockLevel]:
        with self._unit_of_work("stock_on_hand", location_id=location_id) as session:
            return InventorySelector(session).stock_on_hand(location_id)

    def low_stock(self, location_id: str) -> list[StockLevel]:
        with self._unit_of_work("low_stock", location_id=location_id) as session:
            return InventorySelector(session).low_stock(location_id)

    def product_position(self, product_id: str) -> ProductPosition:
        with self._unit_of_work("product_position") as session:
            return InventorySelector(session).product_position(product_id)

    def set_stock_levels(
        self,
        location_id: str,
        product_id: str,
        min_level: int | None,
        max_level: int | None,
    ) -> StockLevel:
        """Maintain reorder thresholds; quantity is untouched."""
        info = self._directory.resolve_location(location_id)
        if info is None or not info.active:
            raise UnknownLocationError(location_id)
        if not self._catalog.resolve_product(product_id):
            raise UnknownProductError(product_id)

        with self._unit_of_work("set_stock_levels", location_id=location_id) as session:
            level = InventoryLedger(session, self._clock).set_levels(
                location_id, product_id, min_level, max_level
            )
        return level
