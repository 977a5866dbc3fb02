"""Process metrics model."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ProcessMetrics:
    """One resource sample for a session's backing process."""

    pid: int
    running: bool
    cpu_percent: float = 0.0
    memory_mb: float = 0.0
    memory_rss: int = 0  # bytes
    name: Optional[str] = None
