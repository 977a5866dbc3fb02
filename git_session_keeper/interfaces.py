"""Collaborator interfaces consumed by git-session-keeper.

The host application supplies these. Tests use in-memory fakes.
"""

from typing import Callable, Optional, Protocol, runtime_checkable

from git_session_keeper.config import Config
from git_session_keeper.models.session import ProjectState


@runtime_checkable
class TerminalSurface(Protocol):
    """The terminal/process surface behind a session."""

    def attach_surface(self, session_id: str) -> str:
        """Bind a terminal to the session and return its surface reference."""
        ...

    def is_awaiting_input(self, session_id: str) -> bool:
        """Heuristic: the process is blocked on interactive input."""
        ...

    def process_id(self, session_id: str) -> Optional[int]:
        """Pid of the process in the session's terminal, if any."""
        ...

    def send_directive(self, session_id: str, text: str) -> None:
        """Write text to the session's process as if typed."""
        ...

    def last_activity(self, session_id: str) -> Optional[float]:
        """Timestamp of the most recent terminal input or output."""
        ...


@runtime_checkable
class SettingsStore(Protocol):
    def get_global_sandbox_enabled(self) -> bool:
        ...

    def on_config_change(self, callback: Callable[[Config, Config], None]) -> None:
        ...


@runtime_checkable
class ProjectStateStore(Protocol):
    def load_project_state(self, project_path: str) -> Optional[ProjectState]:
        ...

    def save_project_state(self, state: ProjectState) -> None:
        """Persist the snapshot. Returns only once the write is durable."""
        ...
