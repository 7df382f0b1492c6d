"""
Module: stock_kernel.models.movement
Responsibility: ORM persistence for transfer batches and stock movements --
    the durable record of stock in flight and its resolution.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/values.py only.  MUST NOT import from services/, selectors/, or
    outer layers.

Invariants enforced:
    IDEMPOTENT_TRANSFER -- UNIQUE constraint on transfer_batches.idempotency_key.
    APPEND_ONLY_HISTORY -- ORM listeners in db/immutability.py block UPDATE of
        resolved movements and batch headers and any DELETE.  A rejection
        adds a RETURNED row pointing at the rejected one (returned_from_id,
        UNIQUE: at most one compensating record per rejection).
    Quantity is strictly positive -- CHECK constraint.

Failure modes:
    - IntegrityError on duplicate idempotency_key (concurrent retry; the
      orchestrator replays the winner).
    - ImmutabilityViolationError on ORM UPDATE/DELETE of protected rows.

Audit relevance:
    created_by_id is the sender, updated_by_id the resolver.  Together with
    the returned rows these tables reconstruct every unit of stock that ever
    moved between two locations.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import TrackedBase, UUIDString
from stock_kernel.domain.values import BatchKind, MovementStatus


class TransferBatch(TrackedBase):
    """
    Header of one createTransfer request.

    Contract:
        Written once, in the same savepoint as its movements and the source
        decrements.  Never updated afterwards.

    Guarantees:
        - idempotency_key, when present, identifies exactly one batch.
        - request_hash is the canonical hash of (source, dest, items, note),
          used to detect a key reused for a different request.
    """

    __tablename__ = "transfer_batches"

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_batch_idempotency"),
        Index("idx_batch_source", "source_location_id"),
    )

    kind: Mapped[BatchKind] = mapped_column(
        String(20),
        nullable=False,
        default=BatchKind.TRANSFER.value,
    )

    source_location_id: Mapped[str] = mapped_column(String(64), nullable=False)

    dest_location_id: Mapped[str] = mapped_column(String(64), nullable=False)

    idempotency_key: Mapped[str | None] = mapped_column(String(200), nullable=True)

    request_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    # Sender's free text, kept even if a movement's notes are later overwritten
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    item_count: Mapped[int] = mapped_column(Integer, nullable=False)

    movements: Mapped[list["StockMovement"]] = relationship(
        back_populates="batch",
        order_by="StockMovement.line_no",
    )


class StockMovement(TrackedBase):
    """
    One product/quantity travelling between two locations.

    Contract:
        Created SENT by the TransferOrchestrator (source already
        decremented), or RETURNED by the ConfirmationHandler when a SENT
        movement is rejected.  SENT rows change exactly once, through a
        compare-and-swap UPDATE guarded by ``status = 'sent'``.

    Guarantees:
        - quantity > 0.
        - A RETURNED row has returned_from_id set; no other status does.
    """

    __tablename__ = "stock_movements"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_movement_quantity_positive"),
        UniqueConstraint("returned_from_id", name="uq_movement_returned_from"),
        Index("idx_movement_dest_status", "dest_location_id", "status"),
        Index("idx_movement_batch", "batch_id"),
        Index("idx_movement_source", "source_location_id"),
    )

    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("transfer_batches.id"),
        nullable=False,
    )

    # Position of the line item in the request, 1-based
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)

    product_id: Mapped[str] = mapped_column(String(64), nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    source_location_id: Mapped[str] = mapped_column(String(64), nullable=False)

    dest_location_id: Mapped[str] = mapped_column(String(64), nullable=False)

    status: Mapped[MovementStatus] = mapped_column(
        String(10),
        default=MovementStatus.SENT.value,
        nullable=False,
    )

    expected_delivery_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    actual_delivery_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Opaque reference into the evidence store; the binary never lives here
    evidence_ref: Mapped[str | None] = mapped_column(String(500), nullable=True)

    returned_from_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("stock_movements.id"),
        nullable=True,
    )

    batch: Mapped[TransferBatch] = relationship(back_populates="movements")

    def __repr__(self) -> str:
        return (
            f"<StockMovement {self.id} {self.product_id} x{self.quantity} "
            f"{self.source_location_id}->{self.dest_location_id} {self.status}>"
        )
