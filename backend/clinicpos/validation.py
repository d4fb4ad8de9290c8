from __future__ import annotations

from datetime import date
from typing import Any

from .errors import ValidationError, InvalidDateRange
from .time_utils import parse_iso_date


# Maximum amount: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical amounts
MAX_AMOUNT_CENTS = 999_999_999


def parse_int(value: Any, field: str) -> int:
    """
    Strict integer coercion.

    Accepts ints (not bools) and plain digit strings with an optional leading
    minus. Rejects floats, decimals and scientific notation.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def parse_cents(value: Any, field: str, *, allow_zero: bool = False, allow_negative: bool = False) -> int:
    """Parse a money amount expressed in integer cents."""
    if value is None:
        raise ValidationError(f"{field} is required")
    cents = parse_int(value, field)
    if cents < 0 and not allow_negative:
        raise ValidationError(f"{field} cannot be negative")
    if cents == 0 and not allow_zero:
        raise ValidationError(f"{field} must be greater than zero")
    if abs(cents) > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} exceeds maximum of {MAX_AMOUNT_CENTS} cents")
    return cents


def parse_optional_int(value: Any, field: str) -> int | None:
    if value is None or value == "":
        return None
    return parse_int(value, field)


def parse_date(value: Any, field: str, *, required: bool = True) -> date | None:
    try:
        parsed = parse_iso_date(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a date in YYYY-MM-DD format")
    if parsed is None and required:
        raise ValidationError(f"{field} is required")
    return parsed


def parse_date_range(start: Any, end: Any, *, required: bool = True) -> tuple[date | None, date | None]:
    """Parse an inclusive [start, end] window of calendar dates."""
    try:
        start_date = parse_iso_date(start)
        end_date = parse_iso_date(end)
    except (TypeError, ValueError):
        raise InvalidDateRange("Dates must be in YYYY-MM-DD format")

    if required and (start_date is None or end_date is None):
        raise InvalidDateRange("start and end dates are required")
    if start_date and end_date and start_date > end_date:
        raise InvalidDateRange(
            "start date must be on or before end date",
            details={"start": start_date.isoformat(), "end": end_date.isoformat()},
        )
    return start_date, end_date


def require_text(value: Any, field: str, *, max_length: int = 255) -> str:
    if value is None or not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    text = value.strip()
    if len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return text


def optional_text(value: Any, field: str, *, max_length: int = 255) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    text = value.strip()
    if not text:
        return None
    if len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return text


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    if isinstance(value, int):
        return value != 0
    return False
