"""Coerce-or-default helpers for untrusted JSON leaves. None of them raise."""

import math
from typing import Any, Mapping

VALID_CATEGORIES = frozenset({"protein", "carb", "vegetable", "fruit", "dairy", "fat", "mixed"})
DEFAULT_CATEGORY = "mixed"
DEFAULT_UNIT = "g"
MAX_UNIT_LENGTH = 16


def to_string_or_empty(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def to_finite_number(value: Any, fallback: float) -> float:
    """Return ``value`` as a finite float, parsing numeric strings, else ``fallback``."""
    if isinstance(value, bool):
        return fallback

    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return fallback
        return number if math.isfinite(number) else fallback

    if isinstance(value, str):
        trimmed = value.strip()
        # float() also takes "1_000" and non-ASCII digits; JSON numbers never do
        if not trimmed or not trimmed.isascii() or "_" in trimmed:
            return fallback
        try:
            parsed = float(trimmed)
        except ValueError:
            return fallback
        return parsed if math.isfinite(parsed) else fallback

    return fallback


def clamp(value: float, minimum: float, maximum: float) -> float:
    return max(minimum, min(maximum, value))


def sanitize_category(value: Any) -> str:
    raw = to_string_or_empty(value).lower()
    return raw if raw in VALID_CATEGORIES else DEFAULT_CATEGORY


def sanitize_unit(value: Any, default: str = DEFAULT_UNIT) -> str:
    # Any unit is accepted; only length is bounded.
    unit = to_string_or_empty(value).lower()
    if not unit:
        return default
    return unit[:MAX_UNIT_LENGTH]


def first_present(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def dig(obj: Any, *keys: str) -> Any:
    """Read ``obj[k1][k2]...``; any missing key or non-mapping step yields None."""
    current = obj
    for key in keys:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
    return current
