"""Kernel services (write side)."""

from stock_kernel.services.confirmation_handler import ConfirmationHandler
from stock_kernel.services.inventory_ledger import InventoryLedger
from stock_kernel.services.transfer_orchestrator import (
    DEFAULT_DELIVERY_SLA,
    TransferOrchestrator,
)

__all__ = [
    "ConfirmationHandler",
    "DEFAULT_DELIVERY_SLA",
    "InventoryLedger",
    "TransferOrchestrator",
]
