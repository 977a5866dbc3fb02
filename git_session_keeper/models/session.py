"""Session model and related enums"""
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, Union

from git_session_keeper.config import Config
from git_session_keeper.exceptions import InvalidSandboxOverride
from git_session_keeper.models.web_session import WebSession


class SessionStatus(Enum):
    """Lifecycle status of a session. Written only by the state machine."""
    IDLE = "idle"
    RUNNING = "running"
    WAITING = "waiting"
    ERROR = "error"


class SandboxOverride(Enum):
    """Per-session sandbox setting."""
    GLOBAL = "global"
    ENABLED = "enabled"
    DISABLED = "disabled"

    @classmethod
    def coerce(cls, value: Union["SandboxOverride", str, None]) -> "SandboxOverride":
        """Accept the enum, its string value, or None (meaning global)."""
        if value is None or value == "":
            return cls.GLOBAL
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.lower())
            except ValueError:
                pass
        raise InvalidSandboxOverride(value)


def new_session_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass(frozen=True)
class Session:
    """One coding-agent working unit bound to a worktree."""
    id: str
    name: str
    worktree_path: str
    branch_name: str
    project_path: str
    status: SessionStatus = SessionStatus.IDLE
    terminal_surface: Optional[str] = None
    created_at: float = field(default_factory=time.time)
    last_activity_at: float = field(default_factory=time.time)

    # Git snapshot
    uncommitted_count: int = 0
    staged_count: int = 0
    ahead: int = 0
    behind: int = 0
    is_clean: bool = True

    # Process snapshot
    cpu_percent: float = 0.0
    memory_mb: float = 0.0
    pid: Optional[int] = None

    sandbox_override: SandboxOverride = SandboxOverride.GLOBAL
    surface_delegated: bool = False  # Handed off to the web surface
    web_session_id: Optional[str] = None
    last_output_at: Optional[float] = None
    git_retired: bool = False  # Worktree vanished, stop reading git
    last_warning: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "worktree_path": self.worktree_path,
            "branch_name": self.branch_name,
            "project_path": self.project_path,
            "status": self.status.value,
            "terminal_surface": self.terminal_surface,
            "created_at": self.created_at,
            "last_activity_at": self.last_activity_at,
            "uncommitted_count": self.uncommitted_count,
            "staged_count": self.staged_count,
            "ahead": self.ahead,
            "behind": self.behind,
            "is_clean": self.is_clean,
            "cpu_percent": self.cpu_percent,
            "memory_mb": self.memory_mb,
            "pid": self.pid,
            "sandbox_override": self.sandbox_override.value,
            "surface_delegated": self.surface_delegated,
            "web_session_id": self.web_session_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Session":
        """Rebuild a persisted session.

        Live terminal state does not survive a restart, so the surface,
        pid and status are reset; the git/resource snapshot is kept.
        """
        now = time.time()
        return cls(
            id=data["id"],
            name=data["name"],
            worktree_path=data["worktree_path"],
            branch_name=data["branch_name"],
            project_path=data["project_path"],
            status=SessionStatus.IDLE,
            created_at=data.get("created_at", now),
            last_activity_at=data.get("last_activity_at", now),
            uncommitted_count=data.get("uncommitted_count", 0),
            staged_count=data.get("staged_count", 0),
            ahead=data.get("ahead", 0),
            behind=data.get("behind", 0),
            is_clean=data.get("is_clean", True),
            cpu_percent=data.get("cpu_percent", 0.0),
            memory_mb=data.get("memory_mb", 0.0),
            sandbox_override=SandboxOverride.coerce(data.get("sandbox_override")),
            surface_delegated=data.get("surface_delegated", False),
            web_session_id=data.get("web_session_id"),
        )


@dataclass(frozen=True)
class ProjectState:
    """All sessions of one project root."""
    project_path: str
    sessions: Tuple[Session, ...] = ()
    web_sessions: Tuple[WebSession, ...] = ()
    focused_session_id: Optional[str] = None
    config: Config = field(default_factory=Config)
    last_polled_at: Optional[float] = None

    def get_session(self, session_id: str) -> Optional[Session]:
        for session in self.sessions:
            if session.id == session_id:
                return session
        return None

    def get_web_session(self, web_session_id: str) -> Optional[WebSession]:
        for web in self.web_sessions:
            if web.id == web_session_id:
                return web
        return None

    def to_dict(self) -> dict:
        return {
            "project_path": self.project_path,
            "sessions": [s.to_dict() for s in self.sessions],
            "web_sessions": [w.to_dict() for w in self.web_sessions],
            "focused_session_id": self.focused_session_id,
            "config": self.config.to_dict(),
            "last_polled_at": self.last_polled_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProjectState":
        sessions = tuple(Session.from_dict(s) for s in data.get("sessions", []))
        focused = data.get("focused_session_id")
        if focused and not any(s.id == focused for s in sessions):
            focused = None
        return cls(
            project_path=data["project_path"],
            sessions=sessions,
            web_sessions=tuple(WebSession.from_dict(w) for w in data.get("web_sessions", [])),
            focused_session_id=focused,
            config=Config.from_dict(data.get("config") or {}),
            last_polled_at=data.get("last_polled_at"),
        )
