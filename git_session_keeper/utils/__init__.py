"""Utility functions for git-session-keeper."""

from .threading import get_optimal_worker_count, get_threading_info, is_free_threading_enabled

__all__ = [
    "get_optimal_worker_count",
    "get_threading_info",
    "is_free_threading_enabled",
]
