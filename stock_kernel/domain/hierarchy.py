"""
Location hierarchy rules.

Responsibility:
    Pure decision of whether stock may travel directly from one location
    to another.  Location Directory implementations delegate here so that
    every directory applies the same rule.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.

Rule:
    hub          -> its own small branches and riders
    small branch -> its own parent hub and its own riders
    rider        -> its own parent (a hub or a small branch)
    hub          -> any other hub
    Nothing else: no self-transfer, no rider-to-rider, no branch-to-branch,
    no inactive endpoint.
"""

from stock_kernel.domain.values import LocationInfo, LocationKind


def is_reachable(source: LocationInfo, dest: LocationInfo) -> bool:
    """Return True if stock may be sent from ``source`` to ``dest``."""
    if source.location_id == dest.location_id:
        return False
    if not (source.active and dest.active):
        return False

    if source.kind is LocationKind.HUB and dest.kind is LocationKind.HUB:
        return True

    # Otherwise only along a parent/child edge, in either direction
    return (
        dest.parent_id == source.location_id
        or source.parent_id == dest.location_id
    )
