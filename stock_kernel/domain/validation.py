"""
Input validation for kernel operations.

Pure functions that turn caller input into domain values or raise
ValidationError naming the offending field.  Nothing here touches the
database or the collaborators; existence checks against the Location
Directory and Product Catalog happen in the services.
"""

from collections.abc import Iterable, Mapping
from uuid import UUID

from stock_kernel.domain.values import LineItem
from stock_kernel.exceptions import ValidationError


def require_positive_quantity(value, field: str = "quantity") -> int:
    """Return ``value`` if it is an int > 0.  Booleans are rejected."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(field, f"must be an integer, got {type(value).__name__}")
    if value <= 0:
        raise ValidationError(field, f"must be positive, got {value}")
    return value


def require_non_negative_level(value, field: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(field, f"must be an integer, got {type(value).__name__}")
    if value < 0:
        raise ValidationError(field, f"must not be negative, got {value}")
    return value


def require_text(value, field: str) -> str:
    """Return ``value`` stripped; empty or whitespace-only text is rejected."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(field, "is required")
    return value.strip()


def _coerce_item(raw, index: int) -> LineItem:
    if isinstance(raw, LineItem):
        product_id, quantity = raw.product_id, raw.quantity
    elif isinstance(raw, Mapping):
        if "product_id" not in raw or "quantity" not in raw:
            raise ValidationError(
                f"items[{index}]", "requires 'product_id' and 'quantity'"
            )
        product_id, quantity = raw["product_id"], raw["quantity"]
    else:
        raise ValidationError(
            f"items[{index}]", f"unsupported line item type {type(raw).__name__}"
        )

    if not isinstance(product_id, str) or not product_id:
        raise ValidationError(f"items[{index}].product_id", "is required")
    require_positive_quantity(quantity, f"items[{index}].quantity")
    return LineItem(product_id=product_id, quantity=quantity)


def validate_line_items(items: Iterable) -> list[LineItem]:
    """
    Normalize a transfer request's line items.

    Accepts LineItem instances or mappings with ``product_id`` and
    ``quantity``.  Order is preserved.

    Raises:
        ValidationError: empty list, malformed item, non-positive or
            non-integer quantity, or a product listed twice.
    """
    if items is None:
        raise ValidationError("items", "at least one line item is required")

    result: list[LineItem] = []
    seen: set[str] = set()
    for index, raw in enumerate(items):
        item = _coerce_item(raw, index)
        if item.product_id in seen:
            raise ValidationError(
                f"items[{index}].product_id",
                f"product '{item.product_id}' appears more than once",
            )
        seen.add(item.product_id)
        result.append(item)

    if not result:
        raise ValidationError("items", "at least one line item is required")
    return result


def validate_movement_ids(movement_ids: Iterable) -> list[UUID]:
    """
    Coerce movement ids to UUIDs, preserving order.

    Raises:
        ValidationError: empty list, malformed id, or an id listed twice.
    """
    if movement_ids is None or isinstance(movement_ids, (str, UUID)):
        raise ValidationError("movement_ids", "must be a list of movement ids")

    result: list[UUID] = []
    for index, raw in enumerate(movement_ids):
        if isinstance(raw, UUID):
            movement_id = raw
        else:
            try:
                movement_id = UUID(str(raw))
            except ValueError:
                raise ValidationError(
                    f"movement_ids[{index}]", f"not a valid id: {raw!r}"
                ) from None
        if movement_id in result:
            raise ValidationError(
                f"movement_ids[{index}]", f"id {movement_id} listed more than once"
            )
        result.append(movement_id)

    if not result:
        raise ValidationError("movement_ids", "at least one movement id is required")
    return result
