"""
Collaborator ports consumed by the kernel.

The Location Directory, Product Catalog and Evidence Store are owned by
other parts of the system.  The kernel only depends on these protocols;
concrete implementations live in ``stock_services``.
"""

from typing import Protocol, runtime_checkable

from stock_kernel.domain.values import LocationInfo


@runtime_checkable
class LocationDirectory(Protocol):
    """Read-only view of branch and rider identities and their hierarchy."""

    def resolve_location(self, location_id: str) -> LocationInfo | None:
        """Return the location, or None if it does not exist."""
        ...

    def is_reachable(self, source_location_id: str, dest_location_id: str) -> bool:
        """Check whether stock may be sent directly from source to dest."""
        ...


@runtime_checkable
class ProductCatalog(Protocol):
    """Read-only product reference data."""

    def resolve_product(self, product_id: str) -> bool:
        """Return True if the product exists."""
        ...


@runtime_checkable
class EvidenceStore(Protocol):
    """Opaque binary storage for delivery photos."""

    def reference_for(self, payload: bytes) -> str:
        """Return the reference ``store`` would return, without writing."""
        ...

    def store(self, payload: bytes) -> str:
        """Persist ``payload`` and return a reference string."""
        ...
