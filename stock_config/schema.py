"""
Stock core configuration schema.

Frozen dataclasses that YAML configuration sets are parsed into by
``stock_config.loader``.  Runtime code receives a ``CoreSettings`` from
``stock_config.get_active_settings()`` and never reads YAML itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta

from stock_kernel.domain.values import LocationKind


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection parameters passed to ``init_engine_from_url``."""

    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10


@dataclass(frozen=True)
class TransferPolicy:
    """Send-side policy."""

    delivery_sla_minutes: int = 60

    @property
    def delivery_sla(self) -> timedelta:
        return timedelta(minutes=self.delivery_sla_minutes)


@dataclass(frozen=True)
class EvidenceSettings:
    """Where delivery photos are stored."""

    directory: str


@dataclass(frozen=True)
class LocationDef:
    """A hub, small branch or rider known to the static directory."""

    location_id: str
    kind: LocationKind
    name: str
    parent_id: str | None = None
    active: bool = True


@dataclass(frozen=True)
class ProductDef:
    """A product known to the static catalog."""

    product_id: str
    name: str
    unit: str
    category: str | None = None


@dataclass(frozen=True)
class CoreSettings:
    """Everything needed to wire a StockMovementService."""

    config_id: str
    version: int
    database: DatabaseSettings
    transfer_policy: TransferPolicy
    evidence: EvidenceSettings
    locations: tuple[LocationDef, ...] = field(default_factory=tuple)
    products: tuple[ProductDef, ...] = field(default_factory=tuple)
    checksum: str = ""
