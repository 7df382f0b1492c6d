"""Persistence models for the stock kernel."""

from stock_kernel.models.inventory import InventoryRecord
from stock_kernel.models.movement import StockMovement, TransferBatch

__all__ = [
    "InventoryRecord",
    "StockMovement",
    "TransferBatch",
]
