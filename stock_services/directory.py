"""
StaticLocationDirectory -- in-memory Location Directory.

Responsibility:
    Implements the LocationDirectory port over a fixed set of locations,
    typically the ``locations`` section of the active configuration set.
    Reachability is delegated to ``stock_kernel.domain.hierarchy`` so this
    directory and any other implementation apply the same rule.

Architecture position:
    Services -- concrete collaborator.  Constructed by ``build_service``.
"""

from __future__ import annotations

from collections.abc import Iterable

from stock_config.schema import LocationDef
from stock_kernel.domain.hierarchy import is_reachable
from stock_kernel.domain.values import LocationInfo, LocationKind


class StaticLocationDirectory:
    """
    Read-only location lookup.

    Contract:
        ``resolve_location`` returns None for unknown ids (inactive
        locations are returned with ``active=False``).
        ``is_reachable`` is False whenever either id is unknown.
    """

    def __init__(self, locations: Iterable[LocationInfo | LocationDef]):
        self._locations: dict[str, LocationInfo] = {}
        for loc in locations:
            info = _as_info(loc)
            if info.location_id in self._locations:
                raise ValueError(f"Duplicate location id {info.location_id!r}")
            self._locations[info.location_id] = info

    @classmethod
    def from_settings(cls, settings) -> StaticLocationDirectory:
        return cls(settings.locations)

    def resolve_location(self, location_id: str) -> LocationInfo | None:
        return self._locations.get(location_id)

    def is_reachable(self, source_location_id: str, dest_location_id: str) -> bool:
        source = self._locations.get(source_location_id)
        dest = self._locations.get(dest_location_id)
        if source is None or dest is None:
            return False
        return is_reachable(source, dest)

    def children(self, parent_id: str) -> list[LocationInfo]:
        """Small branches and riders directly under ``parent_id``."""
        return [
            loc for loc in self._locations.values()
            if loc.parent_id == parent_id
        ]

    def __len__(self) -> int:
        return len(self._locations)


def _as_info(loc: LocationInfo | LocationDef) -> LocationInfo:
    if isinstance(loc, LocationInfo):
        return loc
    return LocationInfo(
        location_id=loc.location_id,
        kind=LocationKind(loc.kind),
        parent_id=loc.parent_id,
        name=loc.name,
        active=loc.active,
    )
