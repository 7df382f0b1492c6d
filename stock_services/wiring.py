"""
stock_services.wiring -- builds a ready StockMovementService from settings.

The single place where the engine, the tables, the append-only listeners
and the concrete collaborators are put together.  Tests build the same
graph by hand over their own engine.
"""

from __future__ import annotations

from stock_config.schema import CoreSettings
from stock_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
from stock_kernel.db.immutability import register_immutability_listeners
from stock_kernel.domain.clock import Clock
from stock_kernel.logging_config import get_logger
from stock_services.catalog import StaticProductCatalog
from stock_services.directory import StaticLocationDirectory
from stock_services.evidence import FileSystemEvidenceStore
from stock_services.stock_movement_service import StockMovementService

logger = get_logger("services.wiring")


def build_service(
    settings: CoreSettings,
    clock: Clock | None = None,
    create_schema: bool = True,
) -> StockMovementService:
    """
    Initialize the database and return a wired facade.

    Args:
        settings: Output of ``stock_config.get_active_settings()``.
        clock: Injected clock; SystemClock when omitted.
        create_schema: Create missing tables (idempotent).
    """
    engine = init_engine_from_url(
        settings.database.url,
        echo=settings.database.echo,
        pool_size=settings.database.pool_size,
        max_overflow=settings.database.max_overflow,
    )
    if create_schema:
        create_tables(engine)
    register_immutability_listeners()

    service = StockMovementService(
        session_factory=get_session_factory(),
        directory=StaticLocationDirectory.from_settings(settings),
        catalog=StaticProductCatalog.from_settings(settings),
        evidence_store=FileSystemEvidenceStore(settings.evidence.directory),
        clock=clock,
        delivery_sla=settings.transfer_policy.delivery_sla,
    )
    logger.info(
        "service_built",
        extra={
            "config_id": settings.config_id,
            "checksum": settings.checksum,
            "dialect": engine.dialect.name,
        },
    )
    return service
