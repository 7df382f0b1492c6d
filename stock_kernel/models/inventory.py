"""
Module: stock_kernel.models.inventory
Responsibility: ORM persistence for quantity on hand per (location, product).
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, or outer layers.

Invariants enforced:
    NON_NEGATIVE_STOCK -- CHECK (quantity >= 0) at the database.  The ledger's
        conditional UPDATE is the primary guard; the constraint catches any
        writer that bypasses it.
    One row per (location_id, product_id) -- UNIQUE constraint.
    Rows are never deleted (db/immutability.py); quantity may fall to zero.

Failure modes:
    - IntegrityError on a second row for the same pair (concurrent first
      arrival; InventoryLedger.increment retries as an UPDATE).
    - IntegrityError if a raw UPDATE drives quantity negative.

Audit relevance:
    last_updated is stamped by every increment/decrement from the injected
    clock.
"""

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base


class InventoryRecord(Base):
    """
    Quantity on hand of one product at one location.

    Contract:
        Created lazily on first arrival of stock (or first level setting)
        at a location.  All quantity mutation goes through
        InventoryLedger.increment / InventoryLedger.decrement.

    Guarantees:
        - quantity >= 0 at all times.
        - At most one record per (location_id, product_id).
    """

    __tablename__ = "inventory_records"

    __table_args__ = (
        UniqueConstraint("location_id", "product_id", name="uq_inventory_location_product"),
        CheckConstraint("quantity >= 0", name="ck_inventory_quantity_non_negative"),
        Index("idx_inventory_product", "product_id"),
    )

    location_id: Mapped[str] = mapped_column(String(64), nullable=False)

    product_id: Mapped[str] = mapped_column(String(64), nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Reorder thresholds; informational, never enforced on quantity
    min_level: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_level: Mapped[int | None] = mapped_column(Integer, nullable=True)

    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<InventoryRecord {self.location_id}/{self.product_id} "
            f"qty={self.quantity}>"
        )
