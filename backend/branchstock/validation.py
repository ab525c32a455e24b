from __future__ import annotations

from typing import Any

from .errors import InvalidQuantity, ValidationError


# Maximum price: 9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion for request payloads.

    Rejects bools, floats with a fraction, scientific notation and blanks.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.startswith("-"):
            digits = stripped[1:]
        else:
            digits = stripped
        if not digits.isdigit():
            raise ValidationError(f"{field} must be an integer")
        return int(stripped)
    raise ValidationError(f"{field} must be an integer")


def positive_quantity(value: Any, field: str = "quantity") -> int:
    try:
        qty = coerce_int(value, field)
    except ValidationError as exc:
        raise InvalidQuantity(str(exc), {"field": field}) from exc
    if qty <= 0:
        raise InvalidQuantity(f"{field} must be a positive integer", {"field": field, "value": qty})
    return qty


def non_negative_quantity(value: Any, field: str = "quantity") -> int:
    try:
        qty = coerce_int(value, field)
    except ValidationError as exc:
        raise InvalidQuantity(str(exc), {"field": field}) from exc
    if qty < 0:
        raise InvalidQuantity(f"{field} cannot be negative", {"field": field, "value": qty})
    return qty


def money_cents(value: Any, field: str) -> int:
    cents = coerce_int(value, field)
    if cents < 0:
        raise ValidationError(f"{field} cannot be negative")
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} exceeds maximum of {MAX_PRICE_CENTS}")
    return cents


def require_fields(data: dict | None, *fields: str) -> dict:
    """Return the payload or raise listing every missing field."""
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    missing = [f for f in fields if data.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}", {"missing": missing})
    return data


def optional_text(value: Any, field: str, max_length: int = 500) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return value or None
