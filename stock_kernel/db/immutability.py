"""
ORM-level append-only enforcement for the stock movement store.

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires mapper events before an ORM UPDATE/DELETE reaches the
database.  The listeners below inspect the pending change and raise
ImmutabilityViolationError, aborting the flush:

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
         |
    [before_delete] --> _check_*_delete() --------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Status transitions are not made through the ORM unit of work at all: the
ConfirmationHandler issues compare-and-swap UPDATE statements guarded by
``status = 'sent'``.  Those statements are the store-level guard against
double resolution; these listeners catch application code that tries to
rewrite history through mapped objects.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity           | Rule
-----------------|-------------------------------------------------------------
StockMovement    | Never deleted.  Once terminal, no field may change.
                 | While sent, product/quantity/endpoints/batch are frozen.
TransferBatch    | Never updated, never deleted.
InventoryRecord  | Never deleted (quantity may fall to zero).

updated_at and updated_by_id are audit metadata and may always change.

===============================================================================
USAGE
===============================================================================

    from stock_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

Tests that need to bypass enforcement call
unregister_immutability_listeners() and re-register afterwards.
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})

# Fields that define what moved where; fixed from creation
_MOVEMENT_IDENTITY_FIELDS = frozenset({
    "batch_id",
    "line_no",
    "product_id",
    "quantity",
    "source_location_id",
    "dest_location_id",
    "expected_delivery_at",
    "returned_from_id",
    "created_at",
    "created_by_id",
})


def _status_value(status) -> str:
    return getattr(status, "value", status)


def _blocked(entity_type: str, entity_id, operation: str, reason: str, field=None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "field": field,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _changed_fields(target) -> list[str]:
    return [
        attr.key
        for attr in inspect(target).attrs
        if attr.key not in _AUDIT_FIELDS and attr.history.has_changes()
    ]


def _check_movement_immutability(mapper, connection, target):
    """
    Block rewrites of movement history.

    A movement that was already terminal before this flush may not change
    at all.  A sent movement may change status and its resolution fields,
    never what was moved or between which locations.
    """
    from stock_kernel.models.movement import StockMovement

    if not isinstance(target, StockMovement):
        return

    status_history = get_history(target, "status")
    if status_history.deleted:
        previous = _status_value(status_history.deleted[0])
    else:
        previous = _status_value(target.status)

    changed = _changed_fields(target)
    if previous != "sent":
        if changed:
            raise _blocked(
                "StockMovement",
                target.id,
                "UPDATE",
                f"Cannot modify field '{changed[0]}' on {previous} movement",
                field=changed[0],
            )
        return

    for field in changed:
        if field in _MOVEMENT_IDENTITY_FIELDS:
            raise _blocked(
                "StockMovement",
                target.id,
                "UPDATE",
                f"Field '{field}' is fixed when a movement is created",
                field=field,
            )


def _check_movement_delete(mapper, connection, target):
    from stock_kernel.models.movement import StockMovement

    if not isinstance(target, StockMovement):
        return

    raise _blocked(
        "StockMovement",
        target.id,
        "DELETE",
        "Stock movements cannot be deleted",
    )


def _check_batch_immutability(mapper, connection, target):
    from stock_kernel.models.movement import TransferBatch

    if not isinstance(target, TransferBatch):
        return

    changed = _changed_fields(target)
    if changed:
        raise _blocked(
            "TransferBatch",
            target.id,
            "UPDATE",
            f"Cannot modify field '{changed[0]}' on transfer batch",
            field=changed[0],
        )


def _check_batch_delete(mapper, connection, target):
    from stock_kernel.models.movement import TransferBatch

    if not isinstance(target, TransferBatch):
        return

    raise _blocked(
        "TransferBatch",
        target.id,
        "DELETE",
        "Transfer batches cannot be deleted",
    )


def _check_inventory_delete(mapper, connection, target):
    from stock_kernel.models.inventory import InventoryRecord

    if not isinstance(target, InventoryRecord):
        return

    raise _blocked(
        "InventoryRecord",
        target.id,
        "DELETE",
        "Inventory records are never deleted; quantity may fall to zero",
    )


_LISTENERS = (
    ("StockMovement", "before_update", _check_movement_immutability),
    ("StockMovement", "before_delete", _check_movement_delete),
    ("TransferBatch", "before_update", _check_batch_immutability),
    ("TransferBatch", "before_delete", _check_batch_delete),
    ("InventoryRecord", "before_delete", _check_inventory_delete),
)


def _models() -> dict:
    from stock_kernel.models import InventoryRecord, StockMovement, TransferBatch

    return {
        "InventoryRecord": InventoryRecord,
        "StockMovement": StockMovement,
        "TransferBatch": TransferBatch,
    }


def register_immutability_listeners():
    """
    Register all append-only enforcement listeners.

    Safe to call more than once; a listener already registered is left
    in place.
    """
    models = _models()
    for model_name, event_name, listener_fn in _LISTENERS:
        target = models[model_name]
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove the append-only enforcement listeners.

    WARNING: Only use this in tests that need to write forbidden changes.
    """
    models = _models()
    for model_name, event_name, listener_fn in _LISTENERS:
        _safe_remove_listener(models[model_name], event_name, listener_fn)
