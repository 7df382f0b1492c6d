"""
Module: stock_kernel.selectors.inventory_selector
Responsibility: Read-only ledger queries: stock on hand, low stock and the
    per-product conservation position.
Architecture position: Kernel > Selectors.  May import from models/, domain/
    and selectors/.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only.
    - ``product_position`` derives in-flight quantity from SENT movements,
      so on_hand + in_flight is exactly the conserved quantity.

Failure modes:
    - Returns empty lists / zero totals when nothing matches.
"""

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stock_kernel.domain.dtos import ProductPosition, StockLevel
from stock_kernel.models.inventory import InventoryRecord
from stock_kernel.selectors.base import BaseSelector, as_utc
from stock_kernel.selectors.movement_selector import MovementSelector


def _to_level(record: InventoryRecord) -> StockLevel:
    return StockLevel(
        location_id=record.location_id,
        product_id=record.product_id,
        quantity=record.quantity,
        min_level=record.min_level,
        max_level=record.max_level,
        last_updated=as_utc(record.last_updated),
    )


class InventorySelector(BaseSelector[InventoryRecord]):
    """
    Selector for inventory ledger queries.

    Contract:
        Returns StockLevel / ProductPosition DTOs, never ORM rows.
        Results are ordered by product_id for stable rendering.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def _records(self, stmt) -> list[InventoryRecord]:
        return list(
            self.session.execute(
                stmt.execution_options(populate_existing=True)
            ).scalars()
        )

    def stock_level(self, location_id: str, product_id: str) -> StockLevel | None:
        records = self._records(
            select(InventoryRecord).where(
                InventoryRecord.location_id == location_id,
                InventoryRecord.product_id == product_id,
            )
        )
        return _to_level(records[0]) if records else None

    def stock_on_hand(self, location_id: str) -> list[StockLevel]:
        """Every inventory record at a location, including zero quantities."""
        records = self._records(
            select(InventoryRecord)
            .where(InventoryRecord.location_id == location_id)
            .order_by(InventoryRecord.product_id)
        )
        return [_to_level(r) for r in records]

    def low_stock(self, location_id: str) -> list[StockLevel]:
        """Records whose quantity is below their min_level."""
        records = self._records(
            select(InventoryRecord)
            .where(
                InventoryRecord.location_id == location_id,
                InventoryRecord.min_level.is_not(None),
                InventoryRecord.quantity < InventoryRecord.min_level,
            )
            .order_by(InventoryRecord.product_id)
        )
        return [_to_level(r) for r in records]

    def total_on_hand(self, product_id: str) -> int:
        total = self.session.execute(
            select(func.coalesce(func.sum(InventoryRecord.quantity), 0)).where(
                InventoryRecord.product_id == product_id
            )
        ).scalar_one()
        return int(total)

    def product_position(self, product_id: str) -> ProductPosition:
        """On hand across all locations plus quantity in flight."""
        return ProductPosition(
            product_id=product_id,
            on_hand=self.total_on_hand(product_id),
            in_flight=MovementSelector(self.session).in_flight_total(product_id),
        )
