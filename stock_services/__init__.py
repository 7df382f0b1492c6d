"""
stock_services -- public API of the stock core.

Responsibility:
    The transactional facade (StockMovementService), the concrete
    collaborators it is wired with, and ``build_service`` which assembles
    them from configuration.

Architecture position:
    Services -- top layer.
        stock_services -> stock_kernel, stock_config  (allowed)
        stock_kernel   -> stock_services             (FORBIDDEN)
"""

from stock_services.catalog import StaticProductCatalog
from stock_services.directory import StaticLocationDirectory
from stock_services.evidence import FileSystemEvidenceStore
from stock_services.stock_movement_service import StockMovementService
from stock_services.wiring import build_service

__all__ = [
    "FileSystemEvidenceStore",
    "StaticLocationDirectory",
    "StaticProductCatalog",
    "StockMovementService",
    "build_service",
]
