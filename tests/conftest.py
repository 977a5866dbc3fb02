"""Pytest fixtures for git-session-keeper tests"""
import tempfile
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional, Set

import git
import pytest

from git_session_keeper.config import Config, ConfigStore
from git_session_keeper.core.orchestrator import SessionOrchestrator
from git_session_keeper.exceptions import ProcessGone
from git_session_keeper.models.process import ProcessMetrics


class FakeTerminal:
    """In-memory terminal surface with a controllable process per session."""

    def __init__(self):
        self.surfaces: Dict[str, str] = {}
        self.pids: Dict[str, int] = {}
        self.activity: Dict[str, float] = {}
        self.awaiting: Dict[str, bool] = {}
        self.directives: List[tuple] = []
        self._next_pid = 40000
        self._lock = threading.Lock()
        self.on_directive = None  # Optional hook(session_id, text)

    def attach_surface(self, session_id: str) -> str:
        with self._lock:
            self._next_pid += 1
            self.surfaces[session_id] = f"term-{session_id}"
            self.pids[session_id] = self._next_pid
        return self.surfaces[session_id]

    def is_awaiting_input(self, session_id: str) -> bool:
        return self.awaiting.get(session_id, False)

    def process_id(self, session_id: str) -> Optional[int]:
        return self.pids.get(session_id)

    def send_directive(self, session_id: str, text: str) -> None:
        self.directives.append((session_id, text))
        if self.on_directive is not None:
            self.on_directive(session_id, text)

    def last_activity(self, session_id: str) -> Optional[float]:
        return self.activity.get(session_id)

    # Test controls

    def emit_output(self, session_id: str, at: Optional[float] = None) -> None:
        self.activity[session_id] = at if at is not None else time.time()

    def exit_process(self, session_id: str) -> None:
        self.pids.pop(session_id, None)

    def directives_for(self, session_id: str) -> List[str]:
        return [text for sid, text in self.directives if sid == session_id]


class InMemoryStore:
    """Project state store that keeps snapshots in a dict."""

    def __init__(self):
        self.states = {}
        self.saves = []
        self.fail_saves = False

    def load_project_state(self, project_path):
        return self.states.get(project_path)

    def save_project_state(self, state):
        if self.fail_saves:
            raise OSError("disk full")
        self.states[state.project_path] = state
        self.saves.append(state)


class FakeSampler:
    """Resource sampler returning fixed metrics for known pids."""

    def __init__(self, cpu_percent: float = 12.5, memory_mb: float = 256.0):
        self.cpu_percent = cpu_percent
        self.memory_mb = memory_mb
        self.gone: Set[int] = set()
        self.forgotten: List[int] = []

    def sample(self, pid: int) -> ProcessMetrics:
        if pid in self.gone:
            raise ProcessGone(pid)
        return ProcessMetrics(
            pid=pid,
            running=True,
            cpu_percent=self.cpu_percent,
            memory_mb=self.memory_mb,
            memory_rss=int(self.memory_mb * 1024 * 1024),
            name="agent",
        )

    def forget(self, pid: int) -> None:
        self.forgotten.append(pid)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def git_repo(temp_dir):
    """Create a real Git repository with one commit on main."""
    repo_path = temp_dir / "test_repo"
    repo_path.mkdir()

    repo = git.Repo.init(repo_path)

    # Configure git user for commits
    repo.config_writer().set_value("user", "name", "Test User").release()
    repo.config_writer().set_value("user", "email", "test@example.com").release()

    test_file = repo_path / "README.md"
    test_file.write_text("# Test Repository\n")
    repo.index.add(["README.md"])
    repo.index.commit("Initial commit")

    # Rename master to main if needed
    repo.git.branch("-M", "main")

    yield repo

    repo.close()


@pytest.fixture
def project_path(git_repo):
    return str(Path(git_repo.working_dir).resolve())


@pytest.fixture
def config():
    # Generous timeouts so slow CI machines do not trip the reader deadline
    return Config(poll_interval=10.0, reader_timeout=8.0, quiescence_seconds=5.0, workers=4)


@pytest.fixture
def config_store(config):
    return ConfigStore(config)


@pytest.fixture
def terminal():
    return FakeTerminal()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def sampler():
    return FakeSampler()


@pytest.fixture
def orchestrator(config_store, terminal, store, sampler):
    orch = SessionOrchestrator(
        config_store=config_store,
        surface=terminal,
        store=store,
        sampler=sampler,
    )
    yield orch
    orch.stop_polling(grace_period=1.0)


def commit_file(worktree_path, name: str, content: str = "content\n", message: str = "Add file"):
    """Commit a file inside a worktree."""
    repo = git.Repo(worktree_path)
    try:
        (Path(worktree_path) / name).write_text(content)
        repo.git.add(name)
        repo.git.commit("-m", message)
    finally:
        repo.close()


@pytest.fixture
def make_commit():
    return commit_file
