"""
Kernel Invariants Contract.

These invariants are structural law. They are hardcoded in the ledger,
the orchestrator, the confirmation handler and the ORM listeners. No
configuration value may override them.

This module exists solely to declare these invariants explicitly. The
enforcement is distributed across InventoryLedger, TransferOrchestrator,
ConfirmationHandler and db/immutability.
"""

from enum import Enum, unique


@unique
class KernelInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel.

    Each value names one structural guarantee that the kernel provides
    unconditionally.
    """

    NON_NEGATIVE_STOCK = "non_negative_stock"
    """Quantity on hand never drops below zero. Enforced by the conditional
    UPDATE in InventoryLedger.decrement and by a DB check constraint."""

    CONSERVATION = "conservation"
    """On-hand plus in-flight quantity of a product is unchanged by
    send/confirm/reject. Enforced by pairing every decrement with a sent
    movement and every resolution with exactly one increment."""

    BATCH_ATOMICITY = "batch_atomicity"
    """A transfer batch applies completely or not at all. Enforced by the
    savepoint around TransferOrchestrator.create_transfer."""

    SINGLE_RESOLUTION = "single_resolution"
    """A sent movement is resolved at most once. Enforced by the
    compare-and-swap status UPDATE in ConfirmationHandler."""

    APPEND_ONLY_HISTORY = "append_only_history"
    """Resolved movements and batch headers are never updated or deleted;
    rejections add a new returned record. Enforced by ORM listeners
    (stock_kernel.db.immutability)."""

    IDEMPOTENT_TRANSFER = "idempotent_transfer"
    """The same idempotency key never produces a second batch. Enforced by
    the unique constraint on transfer_batches.idempotency_key."""


# All invariants as a frozenset for programmatic checks.
ALL_KERNEL_INVARIANTS: frozenset[KernelInvariant] = frozenset(KernelInvariant)

# The kernel package may not import from these packages.
# This is enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "stock_services",
    "stock_config",
)
