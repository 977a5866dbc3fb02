"""Web session model and related enums"""
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

DEFAULT_WEB_DESCRIPTION = "Web session"

_WEB_ID_PATTERN = re.compile(r"^web-(\d+)$")


class WebSessionOrigin(Enum):
    """How a web session came to exist."""
    HANDOFF = "handoff"
    MANUAL = "manual"


class WebSessionStatus(Enum):
    """Lifecycle of a web session."""
    ACTIVE = "active"
    COMPLETED = "completed"
    UNKNOWN = "unknown"


def next_web_session_id(existing_ids: Iterable[str]) -> str:
    """Next free ``web-<n>`` id after the highest one in use."""
    highest = 0
    for web_id in existing_ids:
        match = _WEB_ID_PATTERN.match(web_id or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return f"web-{highest + 1}"


@dataclass(frozen=True)
class WebSession:
    """A session living on (or handed off to) the remote web surface."""
    id: str
    description: str = DEFAULT_WEB_DESCRIPTION
    url: str = ""
    origin: WebSessionOrigin = WebSessionOrigin.MANUAL
    origin_branch: Optional[str] = None
    origin_project_path: Optional[str] = None
    origin_worktree_path: Optional[str] = None
    origin_session_id: Optional[str] = None
    created_at: float = field(default_factory=time.time)
    status: WebSessionStatus = WebSessionStatus.ACTIVE

    def __post_init__(self):
        if self.origin == WebSessionOrigin.HANDOFF and not self.origin_branch:
            raise ValueError(f"Handoff web session {self.id} must reference its origin branch")

    @property
    def is_handoff(self) -> bool:
        return self.origin == WebSessionOrigin.HANDOFF

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "url": self.url,
            "origin": self.origin.value,
            "origin_branch": self.origin_branch,
            "origin_project_path": self.origin_project_path,
            "origin_worktree_path": self.origin_worktree_path,
            "origin_session_id": self.origin_session_id,
            "created_at": self.created_at,
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WebSession":
        # Older snapshots have no status; those are still live
        status = data.get("status") or WebSessionStatus.ACTIVE.value
        try:
            parsed_status = WebSessionStatus(status)
        except ValueError:
            parsed_status = WebSessionStatus.UNKNOWN
        return cls(
            id=data["id"],
            description=data.get("description") or DEFAULT_WEB_DESCRIPTION,
            url=data.get("url", ""),
            origin=WebSessionOrigin(data.get("origin", WebSessionOrigin.MANUAL.value)),
            origin_branch=data.get("origin_branch"),
            origin_project_path=data.get("origin_project_path"),
            origin_worktree_path=data.get("origin_worktree_path"),
            origin_session_id=data.get("origin_session_id"),
            created_at=data.get("created_at", time.time()),
            status=parsed_status,
        )
