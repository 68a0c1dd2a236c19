from __future__ import annotations

from datetime import date, datetime
from typing import Any

from purchasing.errors import ValidationError
from purchasing.time_utils import parse_iso_datetime


# Maximum amount: 9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion for quantities and cent amounts.

    Accepts ints and plain digit strings. Rejects bools, floats, decimals and
    scientific notation so "12.5" or "1e3" never become silently truncated.
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


def require_positive_cents(value: Any, field: str = "amount_cents") -> int:
    cents = coerce_int(value, field)
    if cents <= 0:
        raise ValidationError(f"{field} must be greater than zero")
    if cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} exceeds maximum of {MAX_AMOUNT_CENTS}")
    return cents


def require_non_negative_int(value: Any, field: str) -> int:
    number = coerce_int(value, field)
    if number < 0:
        raise ValidationError(f"{field} cannot be negative")
    return number


def require_text(value: Any, field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required")
    return str(value).strip()


def coerce_business_date(value: Any, field: str, *, default: date | None = None) -> date:
    """Normalize a business date given as date, datetime or ISO-8601 string."""
    if value is None:
        if default is None:
            raise ValidationError(f"{field} is required")
        return default
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            dt = parse_iso_datetime(value)
        except ValueError:
            raise ValidationError(f"{field} must be an ISO-8601 date")
        if dt is None:
            if default is None:
                raise ValidationError(f"{field} is required")
            return default
        return dt.date()
    raise ValidationError(f"{field} must be a date")


def require_choice(value: Any, field: str, choices) -> str:
    if value not in choices:
        raise ValidationError(
            f"Invalid {field}: {value}. Must be one of {sorted(choices)}"
        )
    return value


def normalize_quantity_updates(updates: Any, quantity_field: str) -> list[tuple[int, int]]:
    """
    Normalize processor input to [(purchase_item_id, cumulative_quantity), ...].

    Accepts a mapping {item_id: quantity}, a list of (item_id, quantity)
    pairs, or a list of dicts with "purchase_item_id" and quantity_field.
    Duplicate item ids are rejected.
    """
    if updates is None:
        raise ValidationError("At least one item update is required")
    if isinstance(updates, dict):
        pairs = list(updates.items())
    else:
        pairs = []
        for row in updates:
            if isinstance(row, dict):
                if "purchase_item_id" not in row or quantity_field not in row:
                    raise ValidationError(
                        f"Each update requires purchase_item_id and {quantity_field}"
                    )
                pairs.append((row["purchase_item_id"], row[quantity_field]))
            else:
                try:
                    item_id, quantity = row
                except (TypeError, ValueError):
                    raise ValidationError("Each update must be a (purchase_item_id, quantity) pair")
                pairs.append((item_id, quantity))

    if not pairs:
        raise ValidationError("At least one item update is required")

    normalized: list[tuple[int, int]] = []
    seen: set[int] = set()
    for raw_id, raw_quantity in pairs:
        item_id = coerce_int(raw_id, "purchase_item_id")
        if item_id in seen:
            raise ValidationError(f"Duplicate update for purchase item {item_id}")
        seen.add(item_id)
        normalized.append((item_id, require_non_negative_int(raw_quantity, quantity_field)))
    return normalized
