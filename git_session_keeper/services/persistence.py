"""JSON file storage for project state snapshots."""
import hashlib
import json
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from git_session_keeper.logging_config import get_logger
from git_session_keeper.models.session import ProjectState

# Import fcntl for POSIX file locking (Unix/Linux/macOS)
try:
    import fcntl
    HAS_FCNTL = True
except ImportError:
    HAS_FCNTL = False

logger = get_logger(__name__)

STATE_FORMAT_VERSION = 1


def default_state_dir() -> Path:
    return Path.home() / ".git-session-keeper" / "state"


class JsonProjectStateStore:
    """Stores one JSON file per project under a state directory.

    Writes go to a temp file under an exclusive lock and are renamed into
    place, so save_project_state returns only after the snapshot is on disk.
    """

    def __init__(self, state_dir: Optional[Path] = None):
        self.state_dir = Path(state_dir) if state_dir else default_state_dir()
        self.state_dir.mkdir(parents=True, exist_ok=True)

    def state_file(self, project_path: str) -> Path:
        """Per-project file, named by a hash of the resolved project path."""
        resolved = str(Path(project_path).resolve())
        return self.state_dir / f"{hashlib.md5(resolved.encode()).hexdigest()}.json"

    @contextmanager
    def _acquire_lock(self, file_handle, operation: str = "read"):
        """Acquire a shared (read) or exclusive (write) lock on file_handle."""
        if not HAS_FCNTL:
            logger.debug("File locking not available on this platform")
            yield
            return

        lock_type = fcntl.LOCK_EX if operation == "write" else fcntl.LOCK_SH
        fcntl.flock(file_handle.fileno(), lock_type)
        try:
            yield
        finally:
            fcntl.flock(file_handle.fileno(), fcntl.LOCK_UN)

    def _validate_state_data(self, data: Dict) -> bool:
        """Check the structure of a loaded state file."""
        if not isinstance(data, dict):
            logger.warning("State data is not a dictionary")
            return False

        if data.get("version") != STATE_FORMAT_VERSION:
            logger.warning(f"Unsupported state format version: {data.get('version')}")
            return False

        state = data.get("state")
        if not isinstance(state, dict) or "project_path" not in state:
            logger.warning("State file missing 'state.project_path'")
            return False

        for key in ("sessions", "web_sessions"):
            if not isinstance(state.get(key, []), list):
                logger.warning(f"State '{key}' is not a list")
                return False

        return True

    def load_project_state(self, project_path: str) -> Optional[ProjectState]:
        """Load the saved snapshot for project_path.

        Returns:
            The snapshot, or None if there is none or it is unreadable
        """
        state_file = self.state_file(project_path)
        if not state_file.exists():
            logger.debug(f"No saved state for {project_path}")
            return None

        try:
            with open(state_file, "r", encoding="utf-8") as f:
                with self._acquire_lock(f, operation="read"):
                    data = json.load(f)
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid JSON in state file {state_file}: {e}")
            return None

        if not self._validate_state_data(data):
            logger.warning(f"State validation failed, ignoring {state_file}")
            return None

        try:
            state = ProjectState.from_dict(data["state"])
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Failed to deserialize state for {project_path}: {e}")
            return None

        logger.debug(f"Loaded state with {len(state.sessions)} sessions for {project_path}")
        return state

    def save_project_state(self, state: ProjectState) -> None:
        """Write the snapshot atomically.

        Raises:
            OSError: if the snapshot could not be written
        """
        state_file = self.state_file(state.project_path)
        data = {
            "version": STATE_FORMAT_VERSION,
            "saved_at": datetime.now().isoformat(),
            "state": state.to_dict(),
        }

        # Atomic write: write to temp file, then rename
        temp_file = state_file.with_suffix(".tmp")
        try:
            with open(temp_file, "w", encoding="utf-8") as f:
                with self._acquire_lock(f, operation="write"):
                    json.dump(data, f, indent=2)
                    f.flush()
            # Atomic rename (POSIX systems guarantee atomicity)
            temp_file.replace(state_file)
        finally:
            if temp_file.exists():
                temp_file.unlink()

        logger.debug(f"Saved state with {len(state.sessions)} sessions for {state.project_path}")

    def delete_project_state(self, project_path: str) -> None:
        state_file = self.state_file(project_path)
        if state_file.exists():
            state_file.unlink()
            logger.info(f"Removed saved state for {project_path}")
