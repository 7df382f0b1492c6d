"""
Idempotency helpers for transfer requests.

A createTransfer retry carrying the same idempotency key must describe
the same request.  The request hash captures everything that determines
the effect of a send: endpoints, line items in submitted order, note and
batch kind.  The actor is not part of the hash.
"""

from collections.abc import Sequence

from stock_kernel.domain.values import BatchKind, LineItem
from stock_kernel.utils.hashing import hash_payload


def transfer_request_hash(
    source_location_id: str,
    dest_location_id: str,
    items: Sequence[LineItem],
    note: str | None,
    kind: BatchKind = BatchKind.TRANSFER,
) -> str:
    """Canonical SHA-256 of a transfer request."""
    return hash_payload({
        "kind": kind.value,
        "source": source_location_id,
        "dest": dest_location_id,
        "items": [[item.product_id, item.quantity] for item in items],
        "note": note,
    })


def normalize_idempotency_key(key: str | None) -> str | None:
    """Strip surrounding whitespace; blank keys mean "no key"."""
    if key is None:
        return None
    key = key.strip()
    return key or None
