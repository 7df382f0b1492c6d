"""Selectors for the stock kernel (read side)."""

from stock_kernel.selectors.inventory_selector import InventorySelector
from stock_kernel.selectors.movement_selector import MovementSelector, to_movement

__all__ = [
    "InventorySelector",
    "MovementSelector",
    "to_movement",
]
