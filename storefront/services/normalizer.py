# storefront/services/normalizer.py
import math
from collections.abc import Mapping
from typing import Any

from storefront.schemas.cart import CartLine

DEFAULT_PRODUCT_NAME = "Producto"


def _to_number(value: Any) -> float | None:
    """Parse ints, floats and numeric strings. Anything else is None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            # ints beyond float range, e.g. from json.loads
            return None
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _to_sku(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        return ""
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float) and math.isfinite(value):
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return str(value)
    return ""


def _to_text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def parse_quantity(value: Any) -> int | None:
    """Floor a numeric value to a positive int; None when that is impossible."""
    number = _to_number(value)
    if number is None or number <= 0:
        return None
    quantity = math.floor(number)
    return quantity if quantity >= 1 else None


def _first(raw: Mapping, *keys: str) -> Any:
    # camelCase first, then legacy spellings
    for key in keys:
        if key in raw:
            return raw[key]
    return None


def normalize_line(raw: Any, default_name: str = DEFAULT_PRODUCT_NAME) -> CartLine | None:
    """
    Coerce one candidate into a CartLine, or None if it is invalid.

    Rules:
      - sku must be a non-empty string after trimming
      - quantity must parse to a finite number; it is floored and must be >= 1
      - price falls back to 0 when not a finite number
      - productName falls back to `default_name`, variantName to None
    """
    if isinstance(raw, CartLine):
        raw = raw.as_payload()
    if not isinstance(raw, Mapping):
        return None

    sku = _to_sku(raw.get("sku"))
    if not sku:
        return None

    quantity = parse_quantity(_first(raw, "quantity", "qty"))
    if quantity is None:
        return None

    price = _to_number(raw.get("price"))

    return CartLine(
        sku=sku,
        product_name=_to_text(_first(raw, "productName", "product_name")) or default_name,
        variant_name=_to_text(_first(raw, "variantName", "variant_name")),
        price=price if price is not None else 0.0,
        quantity=quantity,
    )


def normalize_lines(raw: Any, default_name: str = DEFAULT_PRODUCT_NAME) -> list[CartLine]:
    """
    Turn arbitrary data (storage blob, API body, legacy shape) into valid lines.

    Never raises. Invalid entries are dropped silently; duplicate skus are
    merged by summing quantities, keeping the first occurrence's position
    and display data. A legacy `{"items": [...]}` wrapper is unwrapped.
    """
    if isinstance(raw, Mapping) and isinstance(raw.get("items"), list):
        raw = raw["items"]
    if not isinstance(raw, list):
        return []

    merged: dict[str, CartLine] = {}
    for candidate in raw:
        line = normalize_line(candidate, default_name)
        if line is None:
            continue
        existing = merged.get(line.sku)
        if existing:
            merged[line.sku] = existing.model_copy(
                update={"quantity": existing.quantity + line.quantity}
            )
        else:
            merged[line.sku] = line

    return list(merged.values())


def cart_count(lines: list[CartLine]) -> int:
    return sum(line.quantity for line in lines)


def cart_subtotal(lines: list[CartLine]) -> float:
    return round(sum(line.line_total for line in lines), 2)
