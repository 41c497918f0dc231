"""
Total coercion helpers for untrusted LLM output.

Every function here is defined for every input: none of them raise,
whatever shape the value arrives in. The schema normalizers rely on
that, so keep it true when adding helpers.
"""

import math
from typing import Any, Dict, Iterable, List, Optional


def clamp(value: float, minimum: float, maximum: float) -> float:
    """Bound ``value`` to ``[minimum, maximum]``. NaN collapses to ``minimum``."""
    try:
        if value != value:
            return minimum
        return min(maximum, max(minimum, value))
    except TypeError:
        return minimum


def to_number(value: Any, fallback: float = 0) -> float:
    """
    Coerce ``value`` to a finite number, or return ``fallback``.

    Accepts ints, floats and numeric strings ("3", " 2.5 "). Booleans,
    containers, None, NaN and infinities are treated as absent.
    """
    if isinstance(value, bool) or value is None:
        return fallback

    if isinstance(value, (int, float)):
        number = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped or len(stripped) > 64:
            return fallback
        try:
            number = float(stripped)
        except ValueError:
            return fallback
    else:
        return fallback

    try:
        if not math.isfinite(number):
            return fallback
    except (OverflowError, TypeError):
        return fallback

    if isinstance(number, float) and number.is_integer():
        try:
            return int(number)
        except (OverflowError, ValueError):
            return fallback
    return number


def to_int(value: Any, fallback: int = 0) -> int:
    number = to_number(value, fallback)
    try:
        return int(round(number))
    except (OverflowError, ValueError, TypeError):
        return fallback


def safe_string(value: Any, fallback: str = "") -> str:
    """
    Return ``value`` as a string.

    Strings pass through, numbers are stringified and booleans use their
    JSON spelling. Objects, lists and None are wrong-typed for a text field
    and produce ``fallback`` instead of a stringified container.
    """
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        try:
            if isinstance(value, float) and not math.isfinite(value):
                return fallback
            return str(value)
        except (ValueError, OverflowError):
            return fallback
    return fallback


def truncate(value: Any, max_length: int, fallback: str = "") -> str:
    """Strip, cut to ``max_length`` and strip again (a fixed point)."""
    text = safe_string(value, fallback).strip()
    if len(text) > max_length:
        text = text[:max_length].rstrip()
    return text


def unique_strings(values: Any, limit: int = 5, max_length: Optional[int] = None) -> List[str]:
    """
    Deduplicate a list of strings, preserving first appearance.

    Non-list input yields ``[]``. Elements are stripped (and cut to
    ``max_length`` when given), empties are dropped, and scanning stops
    once ``limit`` entries are collected.
    """
    if not isinstance(values, (list, tuple)) or limit <= 0:
        return []

    seen = set()
    result: List[str] = []
    for item in values:
        if max_length is None:
            text = safe_string(item).strip()
        else:
            text = truncate(item, max_length)
        if not text or text in seen:
            continue
        seen.add(text)
        result.append(text)
        if len(result) >= limit:
            break
    return result


def pick_enum(value: Any, allowed: Iterable[str], default: Optional[str] = None) -> Optional[str]:
    """Return the lower-cased ``value`` when it is in ``allowed``, else ``default``."""
    text = safe_string(value).strip().lower()
    if text and text in set(allowed):
        return text
    return default


def number_map(
    value: Any,
    max_keys: int = 24,
    key_length: int = 80,
    minimum: Optional[float] = None,
) -> Dict[str, float]:
    """Bounded ``{name: number}`` map; non-numeric values become 0."""
    if not isinstance(value, dict):
        return {}

    result: Dict[str, float] = {}
    for key, raw in value.items():
        name = truncate(key, key_length)
        if not name or name in result:
            continue
        number = to_number(raw, 0)
        if minimum is not None:
            number = max(minimum, number)
        result[name] = number
        if len(result) >= max_keys:
            break
    return result


def as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def as_list(value: Any, limit: int) -> List[Any]:
    """First ``limit`` elements of a list/tuple, ``[]`` for anything else."""
    if not isinstance(value, (list, tuple)):
        return []
    return list(value[:limit])
