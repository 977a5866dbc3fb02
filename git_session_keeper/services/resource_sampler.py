"""Resource sampling for session processes."""

import threading
from typing import Dict

import psutil

from git_session_keeper.exceptions import ProcessGone
from git_session_keeper.logging_config import get_logger
from git_session_keeper.models.process import ProcessMetrics

logger = get_logger(__name__)

BYTES_PER_MB = 1024 * 1024


class ResourceSampler:
    """Samples CPU and memory of session processes with psutil.

    psutil reports cpu_percent relative to the previous call on the same
    Process object, so objects are kept per pid between ticks. The first
    sample of a pid therefore always reads 0.0.
    """

    def __init__(self):
        self._processes: Dict[int, psutil.Process] = {}
        self._lock = threading.Lock()

    def _get_process(self, pid: int) -> psutil.Process:
        with self._lock:
            proc = self._processes.get(pid)
            if proc is None:
                proc = psutil.Process(pid)
                self._processes[pid] = proc
            return proc

    def forget(self, pid: int) -> None:
        with self._lock:
            self._processes.pop(pid, None)

    def sample(self, pid: int) -> ProcessMetrics:
        """Take one sample.

        Raises:
            ProcessGone: the pid no longer exists or is a zombie
        """
        try:
            proc = self._get_process(pid)
            if not proc.is_running() or proc.status() == psutil.STATUS_ZOMBIE:
                raise psutil.NoSuchProcess(pid)
            with proc.oneshot():
                cpu = proc.cpu_percent(interval=None)
                rss = proc.memory_info().rss
                name = proc.name()
        except psutil.NoSuchProcess as e:
            self.forget(pid)
            raise ProcessGone(pid) from e
        except psutil.AccessDenied:
            # Alive but not ours to inspect
            logger.debug(f"Access denied sampling pid {pid}")
            return ProcessMetrics(pid=pid, running=True)

        return ProcessMetrics(
            pid=pid,
            running=True,
            cpu_percent=cpu,
            memory_mb=rss / BYTES_PER_MB,
            memory_rss=rss,
            name=name,
        )
