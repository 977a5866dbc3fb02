"""Date and time formatting utilities."""

import time
from datetime import datetime
from typing import Optional


def format_date(timestamp: Optional[float]) -> str:
    """
    Format a unix timestamp as YYYY-MM-DD HH:MM.

    Args:
        timestamp: Seconds since the epoch, or None

    Returns:
        Formatted date string, "-" when unknown
    """
    if timestamp is None:
        return "-"
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M")


def format_age(timestamp: Optional[float], now: Optional[float] = None) -> str:
    """
    Format how long ago timestamp was, in the largest whole unit.

    Args:
        timestamp: Seconds since the epoch, or None
        now: Reference time, defaults to the current time

    Returns:
        "42s", "5m", "3h" or "2d"; "-" when unknown
    """
    if timestamp is None:
        return "-"
    elapsed = max(0, int((now if now is not None else time.time()) - timestamp))
    if elapsed < 60:
        return f"{elapsed}s"
    if elapsed < 3600:
        return f"{elapsed // 60}m"
    if elapsed < 86400:
        return f"{elapsed // 3600}h"
    return f"{elapsed // 86400}d"
