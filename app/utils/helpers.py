"""
Helper utilities
"""
import math
from typing import Any, Iterable, Optional


def mean_or_none(values: Iterable[float]) -> Optional[float]:
    """Arithmetic mean, or None for an empty input (never 0)"""
    items = list(values)
    if not items:
        return None
    return sum(items) / len(items)


def calculate_percentage_change(current: float, previous: float) -> Optional[float]:
    """
    Percentage change between two counts

    A jump from zero is reported as exactly +100 ("new activity"), not
    infinity. Zero to zero has no change to report.
    """
    if previous > 0:
        return ((current - previous) / previous) * 100
    if current > 0:
        return 100.0
    return None


def clamp_int(value: Any, minimum: int, maximum: int, default: Optional[int] = None) -> int:
    """Parse value as an int clamped to [minimum, maximum]; garbage falls back to default (or minimum)"""
    fallback = minimum if default is None else default
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = float(fallback)
    if not math.isfinite(number):
        number = float(fallback)
    return max(minimum, min(maximum, math.floor(number)))


def is_number(value: Any) -> bool:
    """True for real ints/floats, excluding bools and NaN"""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def format_rating(value: float) -> str:
    """Star ratings are shown to one decimal"""
    return f"{value:.1f}"


def format_pct(value: Optional[float], signed: bool = False) -> str:
    """Percentages are shown without decimals"""
    if value is None or not math.isfinite(value):
        return "—"
    sign = "+" if signed and value > 0 else ""
    return f"{sign}{value:.0f}%"


def pluralize(count: int, singular: str, plural: Optional[str] = None) -> str:
    word = singular if count == 1 else (plural or f"{singular}s")
    return f"{count} {word}"
