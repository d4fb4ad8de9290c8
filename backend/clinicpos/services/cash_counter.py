# Overview: Pure cash counting; converts denomination counts into a total in cents.

"""
Cash Counter

Used at shift open (initial drawer) and shift close (final drawer count).

DESIGN:
- Face values are configured as strings ("200", "0.25") and converted to
  integer cents through Decimal, so 0.10 is exactly 10 cents.
- Keys of the incoming maps may be strings or numbers ("0.50", 0.5, 200).
- Unknown face value -> InvalidDenomination. Negative or non-integer count
  -> InvalidCount. A map that is not a mapping -> InvalidBreakdown.
- No side effects, no database access.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from decimal import Decimal

from flask import current_app, has_app_context

from ..errors import InvalidBreakdown, InvalidCount, InvalidDenomination


DEFAULT_BILL_DENOMINATIONS = ("200", "100", "50", "20", "10", "5", "1")
DEFAULT_COIN_DENOMINATIONS = ("1", "0.50", "0.25", "0.10", "0.05")

KIND_BILL = "bill"
KIND_COIN = "coin"


def configured_denominations() -> tuple[tuple[str, ...], tuple[str, ...]]:
    """Bill and coin face values from app config, falling back to defaults."""
    if has_app_context():
        return (
            tuple(current_app.config.get("BILL_DENOMINATIONS", DEFAULT_BILL_DENOMINATIONS)),
            tuple(current_app.config.get("COIN_DENOMINATIONS", DEFAULT_COIN_DENOMINATIONS)),
        )
    return DEFAULT_BILL_DENOMINATIONS, DEFAULT_COIN_DENOMINATIONS


_FACE_VALUE_RE = re.compile(r"^\d+(\.\d+)?$")


def face_value_cents(face, kind: str = KIND_BILL) -> int:
    """
    Convert a face value ("0.25", 0.25, 200) to integer cents.

    Only plain decimal notation is accepted: "1e2", "NaN" or "-5" are
    rejected before any arithmetic.
    """
    details = {"kind": kind, "denomination": str(face)}
    if isinstance(face, bool) or face is None:
        raise InvalidDenomination(f"Invalid {kind} denomination: {face!r}", details=details)

    text = str(face).strip()
    if not _FACE_VALUE_RE.match(text):
        raise InvalidDenomination(f"Invalid {kind} denomination: {face!r}", details=details)

    cents = Decimal(text) * 100
    if cents <= 0 or cents != cents.to_integral_value():
        raise InvalidDenomination(f"Invalid {kind} denomination: {face!r}", details=details)
    return int(cents)


def format_face_value(cents: int) -> str:
    """Canonical key for persistence: 20000 -> "200", 50 -> "0.50"."""
    if cents % 100 == 0:
        return str(cents // 100)
    return f"{cents // 100}.{cents % 100:02d}"


def _parse_count(value, face, kind: str) -> int:
    details = {"kind": kind, "denomination": str(face), "count": value}
    if isinstance(value, bool):
        raise InvalidCount(f"Count for {kind} {face} must be an integer", details=details)
    if isinstance(value, int):
        count = value
    elif isinstance(value, str) and value.strip().lstrip("-").isdigit():
        count = int(value.strip())
    else:
        raise InvalidCount(f"Count for {kind} {face} must be an integer", details=details)

    if count < 0:
        raise InvalidCount(f"Count for {kind} {face} cannot be negative", details=details)
    return count


def _allowed_cents(denominations, kind: str) -> set[int]:
    return {face_value_cents(face, kind) for face in denominations}


def _sum_counts(counts, allowed: set[int], kind: str) -> int:
    if counts is None:
        return 0
    if not isinstance(counts, Mapping):
        raise InvalidBreakdown(f"{kind.capitalize()} counts must be an object of denomination -> count")

    total = 0
    for face, raw_count in counts.items():
        cents = face_value_cents(face, kind)
        if cents not in allowed:
            raise InvalidDenomination(
                f"Unknown {kind} denomination: {face}",
                details={"kind": kind, "denomination": str(face)},
            )
        total += cents * _parse_count(raw_count, face, kind)
    return total


def compute_total(bill_counts, coin_counts, *, bills=None, coins=None) -> int:
    """
    Total drawer cash in cents: sum of face value x count over both maps.

    bills / coins override the configured face values (used by tests and
    tooling that count a foreign drawer).
    """
    default_bills, default_coins = configured_denominations()
    allowed_bills = _allowed_cents(bills if bills is not None else default_bills, KIND_BILL)
    allowed_coins = _allowed_cents(coins if coins is not None else default_coins, KIND_COIN)

    return _sum_counts(bill_counts, allowed_bills, KIND_BILL) + _sum_counts(coin_counts, allowed_coins, KIND_COIN)


def normalize_counts(counts, kind: str = KIND_BILL) -> dict[str, int]:
    """Canonical {"200": 3, "0.25": 4} map for storage; zero counts dropped."""
    if not counts:
        return {}
    if not isinstance(counts, Mapping):
        raise InvalidBreakdown(f"{kind.capitalize()} counts must be an object of denomination -> count")
    normalized: dict[str, int] = {}
    for face, raw_count in counts.items():
        count = _parse_count(raw_count, face, kind)
        if count:
            key = format_face_value(face_value_cents(face, kind))
            normalized[key] = normalized.get(key, 0) + count
    return normalized


def parse_breakdown(payload) -> tuple[dict, dict]:
    """
    Split a request payload {"bills": {...}, "coins": {...}} into two maps.

    Missing maps count as empty drawers; anything else malformed raises
    InvalidBreakdown.
    """
    if payload is None:
        return {}, {}
    if not isinstance(payload, Mapping):
        raise InvalidBreakdown("Cash breakdown must be an object with 'bills' and 'coins'")

    bills = payload.get("bills") or {}
    coins = payload.get("coins") or {}
    if not isinstance(bills, Mapping) or not isinstance(coins, Mapping):
        raise InvalidBreakdown("'bills' and 'coins' must be objects of denomination -> count")
    return dict(bills), dict(coins)
