"""
Value parsing and formatting helpers shared by the API, exports and client.
"""
import math
from datetime import date, datetime, timedelta
from typing import Optional, Union


def round_half_up(value: float) -> int:
    """
    Round to the nearest integer with halves going up (72.5 -> 73).

    Unlike round(), which rounds halves to even.
    """
    return int(math.floor(value + 0.5))


def format_confidence(value: Optional[float]) -> str:
    """Confidence as "87.0%", or an empty string when unknown."""
    if value is None:
        return ""
    return f"{value:.1f}%"


def start_of(bound: Union[date, datetime]) -> datetime:
    """Lower bound as a datetime (midnight for a bare date)."""
    if isinstance(bound, datetime):
        return bound
    return datetime(bound.year, bound.month, bound.day)


def end_exclusive(bound: date) -> datetime:
    """Midnight after a bare date, making the whole day inclusive."""
    return datetime(bound.year, bound.month, bound.day) + timedelta(days=1)
