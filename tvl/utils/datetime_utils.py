"""
Datetime utilities.

Hourly timestamp helpers and UTC formatting for logs.
All timestamps handled by the indexers are unix seconds aligned to full hours.
"""

import time
from datetime import UTC, datetime

from tvl.config.constants import HOUR


def unix_now() -> int:
    """Current unix time in seconds."""
    return int(time.time())


def floor_hour(timestamp: int) -> int:
    """Round a unix timestamp down to the full hour."""
    return timestamp - (timestamp % HOUR)


def hours_after(cursor: int, bound: int, limit: int | None = None) -> list[int]:
    """
    List full hours strictly after cursor and not after bound.

    Args:
        cursor: Exclusive lower end
        bound: Inclusive upper end
        limit: Maximum number of hours to return

    Returns:
        Increasing list of hour timestamps
    """
    first = floor_hour(cursor) + HOUR
    last = floor_hour(bound)
    if first > last:
        return []

    count = (last - first) // HOUR + 1
    if limit is not None:
        count = min(count, limit)
    return [first + i * HOUR for i in range(count)]


def hours_between(cursor: int, bound: int) -> int:
    """Number of full hours strictly after cursor and not after bound."""
    first = floor_hour(cursor) + HOUR
    last = floor_hour(bound)
    if first > last:
        return 0
    return (last - first) // HOUR + 1


def format_timestamp(timestamp: int | None) -> str:
    """Human readable UTC form for logging."""
    if timestamp is None:
        return "None"
    return datetime.fromtimestamp(timestamp, UTC).strftime("%Y-%m-%d %H:%M")
