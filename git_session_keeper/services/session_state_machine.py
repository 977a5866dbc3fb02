"""Session status transitions.

The state machine is the only writer of ``Session.status``. Every commit
builds a new frozen Session and swaps it in under the machine's lock, so a
reader sees either the whole previous record or the whole new one.
"""

import threading
import time
from dataclasses import replace
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from git_session_keeper.logging_config import get_logger
from git_session_keeper.models.process import ProcessMetrics
from git_session_keeper.models.session import Session, SessionStatus
from git_session_keeper.models.worktree import WorktreeStatus

logger = get_logger(__name__)


class SessionSignal(Enum):
    """Inputs that can move a session between states."""
    ACTIVITY = "activity"
    AWAITING_INPUT = "awaiting_input"
    PROCESS_EXITED = "process_exited"
    RESET = "reset"
    STOP = "stop"


TRANSITIONS: Dict[Tuple[SessionStatus, SessionSignal], SessionStatus] = {
    (SessionStatus.IDLE, SessionSignal.ACTIVITY): SessionStatus.RUNNING,
    (SessionStatus.RUNNING, SessionSignal.AWAITING_INPUT): SessionStatus.WAITING,
    (SessionStatus.RUNNING, SessionSignal.PROCESS_EXITED): SessionStatus.ERROR,
    (SessionStatus.WAITING, SessionSignal.PROCESS_EXITED): SessionStatus.ERROR,
    (SessionStatus.ERROR, SessionSignal.RESET): SessionStatus.IDLE,
    (SessionStatus.RUNNING, SessionSignal.STOP): SessionStatus.IDLE,
    (SessionStatus.WAITING, SessionSignal.STOP): SessionStatus.IDLE,
    (SessionStatus.ERROR, SessionSignal.STOP): SessionStatus.IDLE,
}

# Fields only the state machine may write
_MANAGED_FIELDS = {"status", "last_activity_at"}

TransitionListener = Callable[[Session, Session], None]


def next_status(status: SessionStatus, signal: SessionSignal) -> SessionStatus:
    """Target state for signal, or status itself when the pair is not a transition."""
    return TRANSITIONS.get((status, signal), status)


class SessionStateMachine:
    """Owns one Session record."""

    def __init__(self, session: Session):
        self._session = session
        self._lock = threading.Lock()
        self._listeners: List[TransitionListener] = []

    @property
    def session(self) -> Session:
        return self._session

    @property
    def session_id(self) -> str:
        return self._session.id

    def on_transition(self, callback: TransitionListener) -> None:
        """Register callback(old, new) for status changes."""
        self._listeners.append(callback)

    def apply(self, signal: SessionSignal, now: Optional[float] = None, **fields) -> Session:
        """Feed a single signal. Pairs outside the table leave the status unchanged.

        Extra user-owned fields are committed together with the transition.
        """
        self._check_fields(fields)
        with self._lock:
            old = self._session
            new = self._transition(replace(old, **fields), signal, now or time.time())
            self._session = new
        self._notify(old, new)
        return new

    def reset(self, **fields) -> Session:
        return self.apply(SessionSignal.RESET, **fields)

    def stop(self, **fields) -> Session:
        return self.apply(SessionSignal.STOP, **fields)

    def update(self, **fields) -> Session:
        """Commit user-owned fields (name, override, surface, ...)."""
        self._check_fields(fields)
        with self._lock:
            self._session = replace(self._session, **fields)
            return self._session

    @staticmethod
    def _check_fields(fields: dict) -> None:
        forbidden = _MANAGED_FIELDS.intersection(fields)
        if forbidden:
            raise ValueError(f"Fields managed by the state machine: {', '.join(sorted(forbidden))}")

    def commit_poll(
        self,
        git_status: Optional[WorktreeStatus] = None,
        metrics: Optional[ProcessMetrics] = None,
        activity_at: Optional[float] = None,
        awaiting_input: bool = False,
        process_exited: bool = False,
        git_retired: bool = False,
        warning: Optional[str] = None,
        quiescence_seconds: float = 5.0,
        now: Optional[float] = None,
    ) -> Session:
        """Fold one poll tick's observations into a single commit.

        Args:
            git_status: Fresh git snapshot, None to keep the previous one
            metrics: Fresh process sample, None to keep the previous one
            activity_at: Last terminal activity reported by the surface
            awaiting_input: The surface thinks the process waits for input
            process_exited: The session's process disappeared this tick
            git_retired: The worktree vanished; stop reading git
            warning: Transient problem to surface, None clears it
            quiescence_seconds: Silence required before running -> waiting
        """
        now = now or time.time()
        with self._lock:
            old = self._session
            changes = {"last_warning": warning}

            if git_status is not None:
                changes.update(
                    uncommitted_count=git_status.uncommitted_count,
                    staged_count=git_status.staged_count,
                    ahead=git_status.ahead,
                    behind=git_status.behind,
                    is_clean=git_status.is_clean,
                )
            if git_retired:
                changes["git_retired"] = True

            # An exited process keeps its last sample
            if metrics is not None and not process_exited:
                changes.update(
                    cpu_percent=metrics.cpu_percent,
                    memory_mb=metrics.memory_mb,
                    pid=metrics.pid,
                )

            last_output_at = old.last_output_at
            active = activity_at is not None and (last_output_at is None or activity_at > last_output_at)
            if active:
                last_output_at = activity_at
                changes["last_output_at"] = activity_at

            signal = None
            if process_exited:
                signal = SessionSignal.PROCESS_EXITED
            elif active:
                signal = SessionSignal.ACTIVITY
            elif awaiting_input:
                quiet_for = now - last_output_at if last_output_at is not None else None
                if quiet_for is None or quiet_for > quiescence_seconds:
                    signal = SessionSignal.AWAITING_INPUT

            new = replace(old, **changes)
            if signal is not None:
                new = self._transition(new, signal, now)
            self._session = new

        self._notify(old, new)
        return new

    def _transition(self, session: Session, signal: SessionSignal, now: float) -> Session:
        target = next_status(session.status, signal)
        if target == session.status:
            return session
        logger.debug(f"Session {session.name}: {session.status.value} -> {target.value} on {signal.value}")
        return replace(session, status=target, last_activity_at=now)

    def _notify(self, old: Session, new: Session) -> None:
        if old.status == new.status:
            return
        for listener in list(self._listeners):
            try:
                listener(old, new)
            except Exception as e:
                logger.error(f"Transition listener failed for session {new.name}: {e}")
