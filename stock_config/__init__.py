"""
stock_config -- single public entrypoint for stock core configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_settings()``.  No other component reads configuration
    files or environment variables directly.

Architecture position:
    Configuration -- YAML-driven settings.  Sits above ``stock_kernel``
    and below ``stock_services``.  The kernel MUST NEVER import from
    ``stock_config``.

Environment overrides:
    STOCK_DATABASE_URL (falls back to DATABASE_URL) -- database.url
    STOCK_DELIVERY_SLA_MINUTES                      -- transfer_policy
    STOCK_EVIDENCE_DIR                              -- evidence.directory

Failure modes:
    - ``FileNotFoundError`` -- configuration file does not exist.
    - ``ValueError`` / ``KeyError`` -- invalid document or override.

Audit relevance:
    Every call emits a ``STOCK_CONFIG_TRACE`` log entry with the config id,
    version, checksum and the overrides that were applied.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import replace
from pathlib import Path

from stock_config.loader import load_settings
from stock_config.schema import (
    CoreSettings,
    DatabaseSettings,
    EvidenceSettings,
    LocationDef,
    ProductDef,
    TransferPolicy,
)

_logger = logging.getLogger("stock_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_settings(
    config_path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> CoreSettings:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: YAML configuration set.  Defaults to
            ``stock_config/sets/default.yaml``.
        environ: Environment mapping for overrides.  Defaults to
            ``os.environ``.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        ValueError: If the document or an override is invalid.
    """
    path = Path(config_path) if config_path is not None else _DEFAULT_CONFIG_PATH
    env = os.environ if environ is None else environ

    settings = load_settings(path)
    settings, overrides = _apply_overrides(settings, env)

    _logger.info(
        "STOCK_CONFIG_TRACE",
        extra={
            "trace_type": "STOCK_CONFIG_TRACE",
            "config_id": settings.config_id,
            "config_version": settings.version,
            "checksum": settings.checksum,
            "location_count": len(settings.locations),
            "product_count": len(settings.products),
            "overrides": sorted(overrides),
        },
    )
    return settings


def _apply_overrides(
    settings: CoreSettings, env: Mapping[str, str]
) -> tuple[CoreSettings, list[str]]:
    applied: list[str] = []

    url = env.get("STOCK_DATABASE_URL") or env.get("DATABASE_URL")
    if url:
        settings = replace(settings, database=replace(settings.database, url=url))
        applied.append(
            "STOCK_DATABASE_URL" if env.get("STOCK_DATABASE_URL") else "DATABASE_URL"
        )

    sla = env.get("STOCK_DELIVERY_SLA_MINUTES")
    if sla:
        try:
            minutes = int(sla)
        except ValueError:
            raise ValueError(
                f"STOCK_DELIVERY_SLA_MINUTES must be an integer, got {sla!r}"
            ) from None
        if minutes <= 0:
            raise ValueError(f"STOCK_DELIVERY_SLA_MINUTES must be positive, got {minutes}")
        settings = replace(
            settings, transfer_policy=TransferPolicy(delivery_sla_minutes=minutes)
        )
        applied.append("STOCK_DELIVERY_SLA_MINUTES")

    evidence_dir = env.get("STOCK_EVIDENCE_DIR")
    if evidence_dir:
        settings = replace(settings, evidence=EvidenceSettings(directory=evidence_dir))
        applied.append("STOCK_EVIDENCE_DIR")

    return settings, applied


__all__ = [
    "CoreSettings",
    "DatabaseSettings",
    "EvidenceSettings",
    "LocationDef",
    "ProductDef",
    "TransferPolicy",
    "get_active_settings",
]
