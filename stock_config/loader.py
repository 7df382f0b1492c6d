"""
Configuration Loader (``stock_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into the frozen dataclasses
of ``stock_config.schema``.  The single public entry point for runtime
configuration is ``stock_config.get_active_settings()``; this module is
what it calls.

Architecture position
---------------------
**Config layer**.  Depends on ``stock_kernel.domain.values`` for the
location kind enum and nothing else from the kernel.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; there are no silent defaults for required keys.
* The location hierarchy is well formed: ids are unique, hubs have no
  parent, every small branch names an existing hub as parent and every
  rider names an existing hub or small branch.
* ``compute_checksum`` is a deterministic SHA-256 over the source
  document.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid values or hierarchy  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from stock_config.schema import (
    CoreSettings,
    DatabaseSettings,
    EvidenceSettings,
    LocationDef,
    ProductDef,
    TransferPolicy,
)
from stock_kernel.domain.values import LocationKind

_PARENT_KINDS = {
    LocationKind.SMALL_BRANCH: (LocationKind.HUB,),
    LocationKind.RIDER: (LocationKind.HUB, LocationKind.SMALL_BRANCH),
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _positive_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {value!r}")
    return value


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    """Parse the ``database`` section."""
    return DatabaseSettings(
        url=data["url"],
        echo=bool(data.get("echo", False)),
        pool_size=_positive_int(data.get("pool_size", 20), "database.pool_size"),
        max_overflow=int(data.get("max_overflow", 10)),
    )


def parse_transfer_policy(data: dict[str, Any]) -> TransferPolicy:
    """Parse the ``transfer_policy`` section."""
    return TransferPolicy(
        delivery_sla_minutes=_positive_int(
            data.get("delivery_sla_minutes", 60),
            "transfer_policy.delivery_sla_minutes",
        ),
    )


def parse_evidence(data: dict[str, Any]) -> EvidenceSettings:
    return EvidenceSettings(directory=str(data["directory"]))


def parse_location(data: dict[str, Any]) -> LocationDef:
    """
    Parse one ``locations`` entry.

    Raises:
        KeyError: missing ``id`` or ``kind``.
        ValueError: unknown kind.
    """
    try:
        kind = LocationKind(data["kind"])
    except ValueError:
        raise ValueError(
            f"Location {data.get('id')!r}: unknown kind {data['kind']!r}"
        ) from None
    return LocationDef(
        location_id=str(data["id"]),
        kind=kind,
        name=data.get("name", str(data["id"])),
        parent_id=data.get("parent"),
        active=bool(data.get("active", True)),
    )


def parse_product(data: dict[str, Any]) -> ProductDef:
    """Parse one ``products`` entry."""
    return ProductDef(
        product_id=str(data["id"]),
        name=data["name"],
        unit=data["unit"],
        category=data.get("category"),
    )


def validate_hierarchy(locations: tuple[LocationDef, ...]) -> None:
    """
    Check the location tree.

    Small branches hang off a hub.  Riders hang off a hub or a small
    branch.

    Raises:
        ValueError: duplicate id, hub with a parent, non-hub without a
            parent, or a parent of the wrong kind.
    """
    by_id: dict[str, LocationDef] = {}
    for loc in locations:
        if loc.location_id in by_id:
            raise ValueError(f"Duplicate location id {loc.location_id!r}")
        by_id[loc.location_id] = loc

    for loc in locations:
        if loc.kind is LocationKind.HUB:
            if loc.parent_id is not None:
                raise ValueError(f"Hub {loc.location_id!r} must not have a parent")
            continue
        if loc.parent_id is None:
            raise ValueError(
                f"{loc.kind.value} {loc.location_id!r} must name its parent"
            )
        parent = by_id.get(loc.parent_id)
        if parent is None:
            raise ValueError(
                f"{loc.kind.value} {loc.location_id!r}: unknown parent {loc.parent_id!r}"
            )
        if parent.kind not in _PARENT_KINDS[loc.kind]:
            raise ValueError(
                f"{loc.kind.value} {loc.location_id!r}: parent {loc.parent_id!r} "
                f"is a {parent.kind.value}"
            )


def parse_settings(data: dict[str, Any]) -> CoreSettings:
    """
    Parse a whole configuration document.

    Postconditions:
        - The returned settings carry the checksum of ``data``.
    """
    locations = tuple(parse_location(d) for d in data.get("locations", []))
    validate_hierarchy(locations)

    products = tuple(parse_product(d) for d in data.get("products", []))
    product_ids = [p.product_id for p in products]
    if len(product_ids) != len(set(product_ids)):
        raise ValueError("Duplicate product id in configuration")

    return CoreSettings(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        database=parse_database(data["database"]),
        transfer_policy=parse_transfer_policy(data.get("transfer_policy", {})),
        evidence=parse_evidence(data["evidence"]),
        locations=locations,
        products=products,
        checksum=compute_checksum(data),
    )


def load_settings(path: Path) -> CoreSettings:
    """Load and parse the configuration set at ``path``."""
    return parse_settings(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
