"""Threading utilities for sizing the poll worker pool."""

import os
import sys
from typing import Any, Dict, Optional


def is_free_threading_enabled() -> bool:
    """Detect if Python is running with free-threading enabled.

    Returns:
        True if running on Python 3.13+ with the GIL disabled
    """
    # sys._is_gil_enabled() only exists on 3.13+
    return hasattr(sys, "_is_gil_enabled") and not sys._is_gil_enabled()


def get_optimal_worker_count(user_specified: Optional[int] = None, pending: Optional[int] = None) -> int:
    """Calculate the worker count for one poll tick.

    Args:
        user_specified: Configured worker count, if any
        pending: Number of sessions to read this tick; the pool is never
            larger than that

    Returns:
        Number of workers to use, at least 1
    """
    if user_specified is not None and user_specified > 0:
        workers = user_specified
    else:
        cpu_count = os.cpu_count() or 1
        if is_free_threading_enabled():
            workers = min(64, cpu_count * 2)
        else:
            # git and psutil reads are I/O bound
            workers = min(32, cpu_count + 4)

    if pending is not None:
        workers = min(workers, max(pending, 1))
    return workers


def get_threading_info() -> Dict[str, Any]:
    """Threading details for debug logging."""
    return {
        "free_threading": is_free_threading_enabled(),
        "cpu_count": os.cpu_count() or 1,
        "optimal_workers": get_optimal_worker_count(),
        "python_version": f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
    }
