"""
Utility functions for Deadlinewatch.
"""

import math
import logging
from typing import Dict, Any, Iterable, List
from datetime import datetime, date, timedelta
from rich.logging import RichHandler


# Configure logging with Rich handler
def setup_logger(name: str = "deadlinewatch", level: str = "INFO") -> logging.Logger:
    """Set up a logger with Rich formatting."""
    logger = logging.getLogger(name)

    # Clear existing handlers
    logger.handlers = []

    handler = RichHandler(
        show_time=True,
        show_path=False,
        markup=True,
        rich_tracebacks=True,
        tracebacks_show_locals=True
    )

    handler.setFormatter(logging.Formatter("%(message)s"))

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    return logger


# Global logger instance
logger = setup_logger()


def merge_dicts(base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries."""
    result = base.copy()

    for key, value in update.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_dicts(result[key], value)
        else:
            result[key] = value

    return result


def moving_average(current: float, new_value: float, count: int) -> float:
    """Fold a new observation into a running mean over ``count`` values."""
    if count <= 0:
        raise ValueError(f"Moving average count must be positive, got {count}")
    return (current * (count - 1) + new_value) / count


def clamp(value: float, lower: float, upper: float) -> float:
    """Clamp value into [lower, upper]."""
    return max(lower, min(upper, value))


def add_working_days(start: datetime, hours: float, hours_per_day: float = 8.0) -> date:
    """Advance from start by the weekdays needed to cover ``hours`` of work.

    Saturdays and Sundays are skipped. The result is never before start.
    """
    working_days = math.ceil(max(hours, 0.0) / hours_per_day)
    current = start
    days_added = 0

    while days_added < working_days:
        current += timedelta(days=1)
        if current.weekday() < 5:
            days_added += 1

    # Zero-hour estimates can land on a weekend start date
    while current.weekday() >= 5:
        current += timedelta(days=1)

    return current.date()


def parse_datetime(value: Any) -> Any:
    """Parse ISO strings and dates into naive local datetimes, pass through None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, datetime.min.time())
    elif isinstance(value, (int, float)):
        parsed = datetime.fromtimestamp(value)
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
        except ValueError:
            raise ValueError(f"Invalid timestamp: {value!r}")

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def as_string_set(values: Iterable[Any]) -> set:
    """Normalise an iterable of identifiers into a set of strings."""
    if values is None:
        return set()
    if isinstance(values, str):
        return {values}
    return {str(v) for v in values}


def unique_in_order(items: Iterable[str]) -> List[str]:
    """Deduplicate while keeping first occurrence order."""
    seen = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result
