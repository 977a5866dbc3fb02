"""Configuration handling for git-session-keeper"""

import json
import threading
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from git_session_keeper.logging_config import get_logger

logger = get_logger(__name__)

# Polling faster than this only burns CPU on git subprocesses
MIN_POLL_INTERVAL = 0.25

# Project-local overrides, first match wins
PROJECT_CONFIG_LOCATIONS = (
    Path(".claude-workstation") / "cw.json",
    Path(".cw") / "cw.json",
)

# Host settings keys -> Config fields
SETTINGS_KEYS = {
    "cw:worktreesdir": "worktrees_dir",
    "cw:defaultbranchprefix": "default_branch_prefix",
    "cw:pollinterval": "poll_interval",
    "cw:notificationsenabled": "notifications_enabled",
    "cw:sandboxenabled": "sandbox_enabled",
}

# cw.json keys -> Config fields
PROJECT_FILE_KEYS = {key.split(":", 1)[1]: attr for key, attr in SETTINGS_KEYS.items()}

TRUE_STRINGS = ("true", "1", "yes", "on")
FALSE_STRINGS = ("false", "0", "no", "off", "")


@dataclass(frozen=True)
class Config:
    """Immutable configuration snapshot for git-session-keeper with validation."""

    # Worktree layout
    worktrees_dir: str = ".worktrees"  # relative paths live under the project root
    default_branch_prefix: str = ""

    # Polling
    poll_interval: float = 2.0  # seconds
    reader_timeout: float = 1.5  # seconds, capped below the poll interval
    quiescence_seconds: float = 5.0  # silence before a session may be "waiting"
    workers: Optional[int] = None  # None = auto-detect
    stop_grace_period: float = 2.0

    # Feature toggles
    notifications_enabled: bool = True
    sandbox_enabled: bool = False

    # Remote surface
    web_base_url: str = "https://claude.ai/code"

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._validate_worktrees_dir()
        self._validate_poll_interval()
        self._validate_timeouts()
        self._validate_workers()

    def _validate_worktrees_dir(self):
        """Validate worktrees_dir is not empty."""
        if not self.worktrees_dir or not str(self.worktrees_dir).strip():
            raise ValueError("worktrees_dir cannot be empty")

    def _validate_poll_interval(self):
        """Validate poll_interval is positive."""
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {self.poll_interval}")

    def _validate_timeouts(self):
        """Validate reader and grace timeouts."""
        if self.reader_timeout <= 0:
            raise ValueError(f"reader_timeout must be positive, got {self.reader_timeout}")
        if self.quiescence_seconds < 0:
            raise ValueError(f"quiescence_seconds cannot be negative, got {self.quiescence_seconds}")
        if self.stop_grace_period < 0:
            raise ValueError(f"stop_grace_period cannot be negative, got {self.stop_grace_period}")

    def _validate_workers(self):
        """Validate workers is positive when given."""
        if self.workers is not None and self.workers <= 0:
            raise ValueError(f"workers must be positive, got {self.workers}")

    @property
    def effective_poll_interval(self) -> float:
        """Poll interval with the minimum floor applied."""
        return max(self.poll_interval, MIN_POLL_INTERVAL)

    @property
    def effective_reader_timeout(self) -> float:
        """Reader timeout, always shorter than the poll interval."""
        return min(self.reader_timeout, self.effective_poll_interval * 0.8)

    def worktree_root(self, project_path: str) -> Path:
        """Directory holding the session worktrees of a project."""
        root = Path(self.worktrees_dir).expanduser()
        if root.is_absolute():
            return root
        return Path(project_path) / root

    def to_dict(self) -> dict:
        """Convert config to a plain dictionary."""
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def get(self, key: str, default=None):
        """Get config value by key."""
        return getattr(self, key, default)

    @classmethod
    def from_dict(cls, config_dict: dict) -> "Config":
        """Create Config from dictionary, ignoring unknown keys."""
        known_fields = {f.name for f in fields(cls)}
        ignored = sorted(k for k in config_dict if k not in known_fields)
        if ignored:
            logger.warning(f"Ignoring unknown config keys: {', '.join(ignored)}")

        filtered = {k: v for k, v in config_dict.items() if k in known_fields}
        return cls(**filtered)

    @classmethod
    def from_settings(cls, settings: Dict[str, Any], base: Optional["Config"] = None) -> "Config":
        """Build a Config from the host's flat ``cw:`` settings map.

        Only the keys in SETTINGS_KEYS are recognised. Empty strings and
        non-positive intervals fall back to the base value. Toggles accept
        booleans or strings like "true" and "off"; anything else raises
        ValueError.
        """
        base = base or cls()
        return replace(base, **_coerce(settings, SETTINGS_KEYS))


def _coerce(raw: Dict[str, Any], key_map: Dict[str, str]) -> dict:
    changes = {}
    for key, value in raw.items():
        attr = key_map.get(key)
        if attr is None or value is None:
            continue
        if attr in ("worktrees_dir", "default_branch_prefix"):
            if attr == "worktrees_dir" and value == "":
                continue
            changes[attr] = str(value)
        elif attr == "poll_interval":
            if float(value) > 0:
                changes[attr] = float(value)
        else:
            changes[attr] = _parse_bool(key, value)
    return changes


def _parse_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_STRINGS:
            return True
        if lowered in FALSE_STRINGS:
            return False
    raise ValueError(f"{key} must be a boolean, got {value!r}")


def load_project_config(project_path: str, base: Optional[Config] = None) -> Config:
    """Overlay a project-local cw.json onto base.

    Looks in ``.claude-workstation/cw.json`` then ``.cw/cw.json``. A missing
    file returns base unchanged; a malformed one raises ValueError.
    """
    base = base or Config()
    for relative in PROJECT_CONFIG_LOCATIONS:
        candidate = Path(project_path) / relative
        if not candidate.is_file():
            continue
        try:
            with open(candidate, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Error parsing project config {candidate}: {e}") from e
        if not isinstance(raw, dict):
            raise ValueError(f"Project config {candidate} must be a JSON object")
        logger.debug(f"Loaded project config from {candidate}")
        return replace(base, **_coerce(raw, PROJECT_FILE_KEYS))
    return base


ConfigListener = Callable[[Config, Config], None]


class ConfigStore:
    """Holds the process-wide Config snapshot.

    Readers call get() once per operation and keep that snapshot. Writers
    swap in a whole new object, so nobody sees a half-applied change.
    """

    def __init__(self, config: Optional[Config] = None):
        self._config = config or Config()
        self._lock = threading.Lock()
        self._listeners: List[ConfigListener] = []

    def get(self) -> Config:
        return self._config

    def replace(self, config: Config) -> Config:
        """Swap in a new snapshot and notify listeners."""
        return self._swap(lambda current: config)

    def update(self, **changes) -> Config:
        """Copy the current snapshot with changes applied and swap it in."""
        return self._swap(lambda current: replace(current, **changes))

    def _swap(self, build: Callable[[Config], Config]) -> Config:
        # Build and swap under one lock so concurrent updates compose
        with self._lock:
            old = self._config
            config = build(old)
            self._config = config
            listeners = list(self._listeners)
        if old != config:
            logger.info("Configuration updated")
            for listener in listeners:
                try:
                    listener(old, config)
                except Exception as e:
                    logger.error(f"Config listener failed: {e}")
        return config

    def on_config_change(self, callback: ConfigListener) -> None:
        with self._lock:
            self._listeners.append(callback)

    def get_global_sandbox_enabled(self) -> bool:
        return self._config.sandbox_enabled
