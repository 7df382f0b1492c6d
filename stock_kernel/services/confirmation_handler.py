"""
ConfirmationHandler -- the "receive" half of the transfer protocol.

Responsibility:
    Resolves SENT movements addressed to a location.  Confirm adds the
    quantity at the destination; reject restores it at the source and
    appends a RETURNED movement in the reverse direction.  Also attaches
    delivery evidence to a movement that is still SENT.

Architecture position:
    Kernel > Services -- imperative shell.  Uses InventoryLedger for
    quantity changes and MovementSelector for the pending list.

Invariants enforced:
    SINGLE_RESOLUTION -- every status change is a compare-and-swap:

        UPDATE stock_movements SET status = :new, ...
         WHERE id = :id AND status = 'sent'

    Of two concurrent confirmations of one movement exactly one UPDATE
    affects a row; the other raises InvalidStateError and its ledger
    increment never happens.
    APPEND_ONLY_HISTORY -- a rejection never rewrites what moved; it adds
        a RETURNED record (returned_from_id -> the rejected movement).
    CONSERVATION -- the quantity that leaves "in flight" is added to
        exactly one ledger row: the destination on confirm, the source on
        reject.

Failure modes:
    - ValidationError: empty or duplicate id list, malformed id, missing
      rejection reason, empty evidence reference.
    - MovementNotFoundError: id does not exist or is addressed to another
      location.
    - InvalidStateError: movement is not SENT (already resolved, or a
      RETURNED record).
    A multi-id call is all-or-nothing: any failure rolls back every id of
    the call.

Audit relevance:
    updated_by_id records the resolving actor, actual_delivery_at the
    resolution time.  Logs movement_received / movement_rejected /
    evidence_attached per movement.
"""

from collections.abc import Iterable
from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock
from stock_kernel.domain.dtos import ResolutionResult
from stock_kernel.domain.movements import REJECTION_NOTE_PREFIX, SentMovement
from stock_kernel.domain.validation import require_text, validate_movement_ids
from stock_kernel.domain.values import MovementStatus
from stock_kernel.exceptions import InvalidStateError, MovementNotFoundError
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.movement import StockMovement
from stock_kernel.selectors.movement_selector import MovementSelector
from stock_kernel.services.base import BaseService
from stock_kernel.services.inventory_ledger import InventoryLedger

logger = get_logger("services.confirmation_handler")


class ConfirmationHandler(BaseService[StockMovement]):
    """
    Resolves in-flight stock at its destination.

    Contract:
        ``confirm`` and ``reject`` validate every id of the call before
        applying any, then apply each one through a compare-and-swap
        UPDATE inside a single savepoint.

    Guarantees:
        - A movement is resolved at most once, under any interleaving.
        - Rejecting quantity Q returns exactly Q to the original source.
        - The RETURNED record reuses the rejected movement's batch id and
          line number, and is terminal from creation.

    Non-goals:
        - Does NOT cancel overdue movements.
        - Does NOT read evidence binaries; only the reference is stored.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        ledger: InventoryLedger | None = None,
    ):
        super().__init__(session, clock)
        self._ledger = ledger or InventoryLedger(session, self._clock)

    def list_pending(self, dest_location_id: str) -> list[SentMovement]:
        """SENT movements addressed to ``dest_location_id``, oldest first."""
        return MovementSelector(self.session).list_pending(dest_location_id)

    def confirm(
        self,
        location_id: str,
        movement_ids: Iterable,
        actor_id: UUID,
        evidence_ref: str | None = None,
    ) -> ResolutionResult:
        """
        Accept movements at ``location_id``.

        Postconditions:
            - Each movement is RECEIVED with actual_delivery_at = now.
            - The destination ledger grew by each movement's quantity.
            - ``evidence_ref``, when given, replaces any earlier reference;
              when omitted the earlier one is kept.
        """
        ids = validate_movement_ids(movement_ids)
        if evidence_ref is not None:
            evidence_ref = require_text(evidence_ref, "evidence_ref")
        now = self._clock.now()

        values = {
            "status": MovementStatus.RECEIVED.value,
            "actual_delivery_at": now,
            "updated_at": now,
            "updated_by_id": actor_id,
        }
        if evidence_ref is not None:
            values["evidence_ref"] = evidence_ref

        savepoint = self.session.begin_nested()
        try:
            movements = self._load_sent(location_id, ids)
            for movement in movements:
                with LogContext.bind(movement_id=movement.id):
                    self._transition(movement, values)
                    self._ledger.increment(
                        movement.dest_location_id,
                        movement.product_id,
                        movement.quantity,
                    )
                    logger.info(
                        "movement_received",
                        extra={
                            "movement_id": str(movement.id),
                            "product_id": movement.product_id,
                            "quantity": movement.quantity,
                            "dest_location_id": movement.dest_location_id,
                        },
                    )
            savepoint.commit()
        except Exception:
            savepoint.rollback()
            raise

        self._expire(movements)
        return ResolutionResult(
            movement_ids=tuple(ids),
            status=MovementStatus.RECEIVED,
            resolved_at=now,
        )

    def reject(
        self,
        location_id: str,
        movement_ids: Iterable,
        reason: str,
        actor_id: UUID,
    ) -> ResolutionResult:
        """
        Refuse movements at ``location_id`` and send the stock back.

        Postconditions:
            - Each movement is REJECTED, notes = "REJECTED: " + reason.
            - The original source ledger grew by each movement's quantity.
            - One RETURNED movement (dest -> source, same quantity) exists
              per rejected movement.
        """
        ids = validate_movement_ids(movement_ids)
        reason = require_text(reason, "reason")
        note = REJECTION_NOTE_PREFIX + reason
        now = self._clock.now()

        values = {
            "status": MovementStatus.REJECTED.value,
            "actual_delivery_at": now,
            "notes": note,
            "updated_at": now,
            "updated_by_id": actor_id,
        }

        returned: list[StockMovement] = []
        savepoint = self.session.begin_nested()
        try:
            movements = self._load_sent(location_id, ids)
            for movement in movements:
                with LogContext.bind(movement_id=movement.id):
                    self._transition(movement, values)
                    self._ledger.increment(
                        movement.source_location_id,
                        movement.product_id,
                        movement.quantity,
                    )
                    returned.append(
                        self._returned_record(movement, note, actor_id, now)
                    )
                    logger.info(
                        "movement_rejected",
                        extra={
                            "movement_id": str(movement.id),
                            "product_id": movement.product_id,
                            "quantity": movement.quantity,
                            "source_location_id": movement.source_location_id,
                            "reason": reason,
                        },
                    )
            self.session.add_all(returned)
            self.session.flush()
            savepoint.commit()
        except Exception:
            savepoint.rollback()
            raise

        self._expire(movements)
        return ResolutionResult(
            movement_ids=tuple(ids),
            status=MovementStatus.REJECTED,
            resolved_at=now,
            returned_movement_ids=tuple(r.id for r in returned),
        )

    def attach_evidence(
        self,
        location_id: str,
        movement_id,
        evidence_ref: str,
        actor_id: UUID,
    ) -> None:
        """
        Set the evidence reference on a SENT movement addressed here.

        The status does not change; confirm or reject still has to follow.
        """
        (movement_uuid,) = validate_movement_ids([movement_id])
        evidence_ref = require_text(evidence_ref, "evidence_ref")
        now = self._clock.now()

        savepoint = self.session.begin_nested()
        try:
            (movement,) = self._load_sent(location_id, [movement_uuid])
            self._transition(
                movement,
                {
                    "evidence_ref": evidence_ref,
                    "updated_at": now,
                    "updated_by_id": actor_id,
                },
            )
            savepoint.commit()
        except Exception:
            savepoint.rollback()
            raise

        self._expire([movement])
        logger.info(
            "evidence_attached",
            extra={"movement_id": str(movement_uuid), "evidence_ref": evidence_ref},
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load_sent(self, location_id: str, ids: list[UUID]) -> list[StockMovement]:
        """Load every id, in call order, or raise for the first bad one."""
        rows = self.session.execute(
            select(StockMovement)
            .where(StockMovement.id.in_(ids))
            .execution_options(populate_existing=True)
        ).scalars().all()
        by_id = {row.id: row for row in rows}

        movements = []
        for movement_id in ids:
            row = by_id.get(movement_id)
            if row is None or row.dest_location_id != location_id:
                raise MovementNotFoundError(str(movement_id), location_id)
            if row.status != MovementStatus.SENT.value:
                raise InvalidStateError(str(movement_id), row.status)
            movements.append(row)
        return movements

    def _transition(self, movement: StockMovement, values: dict) -> None:
        # INVARIANT: SINGLE_RESOLUTION -- compare-and-swap on status
        result = self.session.execute(
            update(StockMovement)
            .where(
                StockMovement.id == movement.id,
                StockMovement.status == MovementStatus.SENT.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = self.session.execute(
                select(StockMovement.status).where(StockMovement.id == movement.id)
            ).scalar_one()
            logger.warning(
                "movement_resolution_conflict",
                extra={"movement_id": str(movement.id), "current_status": current},
            )
            raise InvalidStateError(str(movement.id), current)

    @staticmethod
    def _returned_record(
        movement: StockMovement,
        note: str,
        actor_id: UUID,
        now: datetime,
    ) -> StockMovement:
        return StockMovement(
            batch_id=movement.batch_id,
            line_no=movement.line_no,
            product_id=movement.product_id,
            quantity=movement.quantity,
            source_location_id=movement.dest_location_id,
            dest_location_id=movement.source_location_id,
            status=MovementStatus.RETURNED.value,
            expected_delivery_at=now,
            actual_delivery_at=now,
            notes=note,
            returned_from_id=movement.id,
            created_at=now,
            updated_at=now,
            created_by_id=actor_id,
        )

    def _expire(self, movements: list[StockMovement]) -> None:
        # Rows were changed behind the identity map
        for movement in movements:
            self.session.expire(movement)
