"""Background status polling across live sessions."""

import math
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Set

from git_session_keeper.config import Config, ConfigStore
from git_session_keeper.exceptions import ProcessGone, ReaderTimeout, TransientIOError, WorktreeMissing
from git_session_keeper.interfaces import TerminalSurface
from git_session_keeper.logging_config import get_logger
from git_session_keeper.models.process import ProcessMetrics
from git_session_keeper.models.session import Session
from git_session_keeper.models.worktree import WorktreeStatus
from git_session_keeper.services.git.status_reader import GitStatusReader
from git_session_keeper.services.resource_sampler import ResourceSampler
from git_session_keeper.services.session_state_machine import SessionStateMachine
from git_session_keeper.utils.threading import get_optimal_worker_count, get_threading_info

logger = get_logger(__name__)

# How often the tick re-checks per-read deadlines
WAIT_SLICE = 0.05


@dataclass
class PollReport:
    """Outcome of one poll tick."""
    polled_at: float
    committed: List[str] = field(default_factory=list)
    warnings: Dict[str, str] = field(default_factory=dict)
    timed_out: List[str] = field(default_factory=list)
    retired: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    deferred: List[str] = field(default_factory=list)


@dataclass
class _Observation:
    git_status: Optional[WorktreeStatus] = None
    metrics: Optional[ProcessMetrics] = None
    activity_at: Optional[float] = None
    awaiting_input: bool = False
    process_exited: bool = False
    git_retired: bool = False
    warning: Optional[str] = None


class StatusPoller:
    """Drives the git reader and resource sampler for every live session.

    One background thread ticks every ``config.effective_poll_interval``
    seconds; the reads of one tick run on a bounded thread pool and each
    session's results are committed through its own state machine.
    """

    def __init__(
        self,
        config_store: ConfigStore,
        sessions: Callable[[], Iterable[SessionStateMachine]],
        surface: Optional[TerminalSurface],
        reader: Optional[GitStatusReader] = None,
        sampler: Optional[ResourceSampler] = None,
        on_tick: Optional[Callable[[PollReport], None]] = None,
    ):
        self.config_store = config_store
        self._sessions = sessions
        self.surface = surface
        self.reader = reader or GitStatusReader()
        self.sampler = sampler or ResourceSampler()
        self._on_tick = on_tick
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._deferred: Set[str] = set()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="status-poller", daemon=True)
        self._thread.start()
        logger.info("Status poller started")
        logger.debug(f"Threading: {get_threading_info()}")

    def stop(self, grace_period: Optional[float] = None) -> bool:
        """Stop the loop, waiting at most grace_period for the current tick.

        Returns:
            True if the loop exited within the grace period
        """
        if grace_period is None:
            grace_period = self.config_store.get().stop_grace_period
        self._stop_event.set()
        thread = self._thread
        if thread is None:
            return True
        thread.join(grace_period)
        if thread.is_alive():
            logger.warning(f"Status poller did not stop within {grace_period:.1f}s, abandoning in-flight reads")
            return False
        self._thread = None
        logger.info("Status poller stopped")
        return True

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            started = time.monotonic()
            try:
                self.run_once()
            except Exception as e:
                logger.error(f"Poll tick failed: {e}")
            # Re-read every tick so interval changes apply without a restart
            interval = self.config_store.get().effective_poll_interval
            self._stop_event.wait(max(0.0, interval - (time.monotonic() - started)))

    def run_once(self) -> PollReport:
        """Run one tick synchronously.

        Each read gets the reader timeout counted from when a worker picks it
        up, so sessions queued behind slow ones are not charged for the wait.
        Reads that never get a worker before the tick deadline are deferred
        and go first on the next tick.
        """
        config = self.config_store.get()
        report = PollReport(polled_at=time.time())

        machines = []
        for machine in list(self._sessions()):
            if machine.session.surface_delegated:
                report.skipped.append(machine.session_id)
            else:
                machines.append(machine)

        if machines:
            # Sessions deferred last tick go to the front of the queue
            machines.sort(key=lambda m: m.session_id not in self._deferred)
            timeout = config.effective_reader_timeout
            max_workers = get_optimal_worker_count(config.workers, pending=len(machines))
            logger.debug(f"Polling {len(machines)} sessions with {max_workers} workers")

            rounds = math.ceil(len(machines) / max_workers)
            tick_deadline = time.monotonic() + timeout * (rounds + 1)
            started: Dict[str, float] = {}

            executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="poll-read")
            try:
                future_to_machine = {
                    executor.submit(self._timed_observe, machine.session, timeout, started): machine
                    for machine in machines
                }
                self._collect(future_to_machine, started, timeout, tick_deadline, config, report)
            finally:
                # Hung reads are abandoned; git subprocesses get killed by their own timeout
                executor.shutdown(wait=False, cancel_futures=True)
            self._deferred = set(report.deferred)

        if self._on_tick is not None:
            self._on_tick(report)
        return report

    def _timed_observe(self, session: Session, timeout: float, started: Dict[str, float]) -> _Observation:
        started[session.id] = time.monotonic()
        return self._observe(session, timeout)

    def _collect(self, future_to_machine: Dict[Future, SessionStateMachine], started: Dict[str, float],
                 timeout: float, tick_deadline: float, config: Config, report: PollReport) -> None:
        pending = set(future_to_machine)
        while pending:
            done, pending = wait(pending, timeout=WAIT_SLICE, return_when=FIRST_COMPLETED)
            for future in done:
                machine = future_to_machine[future]
                if future.cancelled():
                    continue
                try:
                    observation = future.result()
                except Exception as e:
                    observation = _Observation(warning=f"Status read failed: {e}")
                self._commit(machine, observation, config.quiescence_seconds, report)

            now = time.monotonic()
            for future in list(pending):
                machine = future_to_machine[future]
                read_started = started.get(machine.session_id)
                if read_started is not None:
                    if now - read_started < timeout:
                        continue
                    pending.discard(future)
                    report.timed_out.append(machine.session_id)
                    error = ReaderTimeout(machine.session_id, timeout)
                    self._commit(machine, _Observation(warning=str(error)), config.quiescence_seconds, report)
                elif now >= tick_deadline and future.cancel():
                    # Every worker is stuck on an abandoned read
                    pending.discard(future)
                    report.deferred.append(machine.session_id)
                    logger.debug(f"Session {machine.session.name} deferred to the next tick")

    def _observe(self, session: Session, timeout: float) -> _Observation:
        """Collect everything one session needs for this tick. Runs on a worker."""
        observation = _Observation()
        warnings = []

        pid = None
        if self.surface is not None and session.terminal_surface is not None:
            pid = self.surface.process_id(session.id)
            observation.activity_at = self.surface.last_activity(session.id)
            observation.awaiting_input = self.surface.is_awaiting_input(session.id)

        if not session.git_retired:
            try:
                observation.git_status = self.reader.read_status(session.worktree_path, timeout=timeout)
            except WorktreeMissing as e:
                observation.git_retired = True
                warnings.append(str(e))
            except TransientIOError as e:
                warnings.append(str(e))

        if pid is not None:
            try:
                observation.metrics = self.sampler.sample(pid)
            except ProcessGone:
                observation.process_exited = True
        elif session.pid is not None and session.terminal_surface is not None:
            # Surface had a process last tick and reports none now
            observation.process_exited = True

        if warnings:
            observation.warning = "; ".join(warnings)
        return observation

    def _commit(self, machine: SessionStateMachine, observation: _Observation,
                quiescence_seconds: float, report: PollReport) -> None:
        previous = machine.session.last_warning
        machine.commit_poll(
            git_status=observation.git_status,
            metrics=observation.metrics,
            activity_at=observation.activity_at,
            awaiting_input=observation.awaiting_input,
            process_exited=observation.process_exited,
            git_retired=observation.git_retired,
            warning=observation.warning,
            quiescence_seconds=quiescence_seconds,
        )
        session_id = machine.session_id
        report.committed.append(session_id)
        if observation.git_retired:
            report.retired.append(session_id)
        if observation.warning:
            report.warnings[session_id] = observation.warning
            if observation.warning != previous:
                logger.warning(f"Session {machine.session.name}: {observation.warning}")
            else:
                logger.debug(f"Session {machine.session.name} still failing: {observation.warning}")
