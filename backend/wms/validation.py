from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .errors import ValidationError


MAX_TEXT_LENGTH = 255


@dataclass(frozen=True)
class ItemRequest:
    """One requested line: a product (by id or sku) and a positive quantity."""
    quantity: int
    product_id: int | None = None
    sku: str | None = None


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion for caller-supplied values.

    Accepts ints and plain digit strings; rejects bools, floats, decimals
    and scientific notation.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def require_id(value: Any, field: str) -> int:
    if value is None or value == "":
        raise ValidationError(f"{field} is required")
    result = coerce_int(value, field)
    if result <= 0:
        raise ValidationError(f"{field} must be a positive id")
    return result


def optional_text(value: Any, field: str, max_length: int = MAX_TEXT_LENGTH) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if max_length and len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text


def parse_items(raw_items: Any) -> list[ItemRequest]:
    """
    Validate the item list of a create request.

    Each item is a mapping with ``quantity`` and either ``product_id`` or
    ``sku``; ItemRequest instances pass through after the quantity check.
    """
    if not raw_items or not isinstance(raw_items, (list, tuple)):
        raise ValidationError("At least one item is required")

    items: list[ItemRequest] = []
    for index, raw in enumerate(raw_items, start=1):
        if isinstance(raw, ItemRequest):
            item = raw
        elif isinstance(raw, dict):
            product_id = raw.get("product_id")
            sku = optional_text(raw.get("sku"), f"items[{index}].sku", max_length=64)
            if product_id is None and sku is None:
                raise ValidationError(f"items[{index}] needs product_id or sku")
            item = ItemRequest(
                quantity=coerce_int(raw.get("quantity"), f"items[{index}].quantity"),
                product_id=require_id(product_id, f"items[{index}].product_id") if product_id is not None else None,
                sku=sku,
            )
        else:
            raise ValidationError(f"items[{index}] must be an object")

        if isinstance(item.quantity, bool) or not isinstance(item.quantity, int):
            raise ValidationError(f"items[{index}].quantity must be an integer")
        if item.quantity <= 0:
            raise ValidationError(f"items[{index}].quantity must be greater than 0")
        items.append(item)

    return items
