"""Utility modules for the stock kernel."""

from stock_kernel.utils.hashing import (
    canonicalize_json,
    hash_bytes,
    hash_payload,
)
from stock_kernel.utils.idempotency import (
    normalize_idempotency_key,
    transfer_request_hash,
)

__all__ = [
    "canonicalize_json",
    "hash_bytes",
    "hash_payload",
    "normalize_idempotency_key",
    "transfer_request_hash",
]
