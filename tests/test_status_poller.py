"""Tests for the background status poller"""
import threading
import time
from unittest.mock import Mock

import pytest

from git_session_keeper.config import Config, ConfigStore
from git_session_keeper.exceptions import GitCommandFailed, WorktreeMissing
from git_session_keeper.models.session import Session, SessionStatus
from git_session_keeper.models.worktree import WorktreeStatus
from git_session_keeper.services.session_state_machine import SessionStateMachine
from git_session_keeper.services.status_poller import StatusPoller


def make_machine(session_id, **fields):
    session = Session(
        id=session_id,
        name=session_id,
        worktree_path=f"/tmp/project/.worktrees/{session_id}",
        branch_name=session_id,
        project_path="/tmp/project",
        **fields,
    )
    return SessionStateMachine(session)


@pytest.fixture
def reader():
    reader = Mock()
    reader.read_status.return_value = WorktreeStatus(
        branch_name="s1", uncommitted_files=("a.py",), ahead=1
    )
    return reader


@pytest.fixture
def machines():
    return []


@pytest.fixture
def make_poller(config_store, terminal, reader, sampler, machines):
    def factory(**kwargs):
        return StatusPoller(
            kwargs.pop("config_store", config_store),
            lambda: machines,
            terminal,
            reader=reader,
            sampler=sampler,
            **kwargs,
        )
    return factory


class TestRunOnce:
    """Test single poll ticks."""

    def test_commits_git_and_process_snapshot(self, make_poller, machines, terminal):
        machine = make_machine("s1", terminal_surface="term-s1")
        machines.append(machine)
        terminal.attach_surface("s1")

        report = make_poller().run_once()

        assert report.committed == ["s1"]
        session = machine.session
        assert session.uncommitted_count == 1
        assert session.ahead == 1
        assert session.cpu_percent == 12.5
        assert session.pid == terminal.process_id("s1")

    def test_unattached_session_reads_git_only(self, make_poller, machines, sampler):
        machine = make_machine("s1")
        machines.append(machine)

        make_poller().run_once()

        assert machine.session.uncommitted_count == 1
        assert machine.session.pid is None

    def test_reader_gets_timeout(self, make_poller, machines, reader, config):
        machines.append(make_machine("s1"))
        make_poller().run_once()
        reader.read_status.assert_called_once_with(
            "/tmp/project/.worktrees/s1", timeout=config.effective_reader_timeout
        )

    def test_delegated_sessions_skipped(self, make_poller, machines, reader):
        machines.append(make_machine("s1", surface_delegated=True))

        report = make_poller().run_once()

        assert report.skipped == ["s1"]
        assert report.committed == []
        reader.read_status.assert_not_called()

    def test_activity_starts_running(self, make_poller, machines, terminal):
        machine = make_machine("s1", terminal_surface="term-s1")
        machines.append(machine)
        terminal.attach_surface("s1")
        terminal.emit_output("s1")

        make_poller().run_once()
        assert machine.session.status == SessionStatus.RUNNING

    def test_process_exit_moves_to_error(self, make_poller, machines, terminal):
        machine = make_machine("s1", terminal_surface="term-s1", status=SessionStatus.RUNNING)
        machines.append(machine)
        terminal.attach_surface("s1")
        poller = make_poller()
        poller.run_once()

        terminal.exit_process("s1")
        poller.run_once()

        assert machine.session.status == SessionStatus.ERROR

    def test_sampler_reports_gone(self, make_poller, machines, terminal, sampler):
        machine = make_machine("s1", terminal_surface="term-s1", status=SessionStatus.RUNNING)
        machines.append(machine)
        terminal.attach_surface("s1")
        sampler.gone.add(terminal.process_id("s1"))

        make_poller().run_once()
        assert machine.session.status == SessionStatus.ERROR

    def test_missing_worktree_retires_git_reads(self, make_poller, machines, reader):
        machine = make_machine("s1")
        machines.append(machine)
        reader.read_status.side_effect = WorktreeMissing("/tmp/project/.worktrees/s1")
        poller = make_poller()

        report = poller.run_once()
        assert report.retired == ["s1"]
        assert machine.session.git_retired
        assert "missing" in machine.session.last_warning

        poller.run_once()
        assert reader.read_status.call_count == 1

    def test_git_failure_is_a_warning(self, make_poller, machines, reader):
        machine = make_machine("s1", uncommitted_count=4)
        machines.append(machine)
        reader.read_status.side_effect = GitCommandFailed("status", "/tmp", "index.lock exists")

        report = make_poller().run_once()

        assert "index.lock" in report.warnings["s1"]
        assert machine.session.uncommitted_count == 4
        assert machine.session.status == SessionStatus.IDLE

    def test_failure_isolated_to_one_session(self, make_poller, machines, reader):
        healthy = make_machine("healthy")
        broken = make_machine("broken")
        machines.extend([healthy, broken])

        def read_status(path, timeout=None):
            if path.endswith("broken"):
                raise GitCommandFailed("status", path, "boom")
            return WorktreeStatus(branch_name="healthy", staged_files=("x",))

        reader.read_status.side_effect = read_status
        report = make_poller().run_once()

        assert set(report.committed) == {"healthy", "broken"}
        assert healthy.session.staged_count == 1
        assert broken.session.last_warning is not None

    def test_slow_reader_times_out(self, make_poller, machines, reader, terminal):
        config_store = ConfigStore(Config(poll_interval=0.5, reader_timeout=0.1))
        release = threading.Event()

        def slow_read(path, timeout=None):
            release.wait(5)
            return WorktreeStatus(branch_name="s1")

        reader.read_status.side_effect = slow_read
        machine = make_machine("s1", uncommitted_count=2)
        machines.append(machine)

        try:
            report = make_poller(config_store=config_store).run_once()
        finally:
            release.set()

        assert report.timed_out == ["s1"]
        assert "timed out" in machine.session.last_warning
        assert machine.session.uncommitted_count == 2

    def test_on_tick_receives_report(self, make_poller, machines):
        ticks = []
        machines.append(make_machine("s1"))

        make_poller(on_tick=ticks.append).run_once()
        assert len(ticks) == 1
        assert ticks[0].committed == ["s1"]

    def test_no_sessions(self, make_poller, reader):
        report = make_poller().run_once()
        assert report.committed == []
        reader.read_status.assert_not_called()


class TestReadDeadlines:
    """Test per-read timeouts when sessions outnumber workers."""

    def test_queued_sessions_are_all_read(self, make_poller, machines, reader):
        config_store = ConfigStore(Config(poll_interval=1.0, reader_timeout=5.0, workers=1))

        def slow_read(path, timeout=None):
            time.sleep(0.3)
            return WorktreeStatus(branch_name=path.rsplit("/", 1)[-1], staged_files=("x",))

        reader.read_status.side_effect = slow_read
        machines.extend(make_machine(f"s{i}") for i in range(4))

        report = make_poller(config_store=config_store).run_once()

        assert report.timed_out == []
        assert report.deferred == []
        assert sorted(report.committed) == ["s0", "s1", "s2", "s3"]
        assert all(m.session.staged_count == 1 for m in machines)

    def test_hung_read_does_not_time_out_others(self, make_poller, machines, reader):
        config_store = ConfigStore(Config(poll_interval=0.5, reader_timeout=0.2, workers=2))
        release = threading.Event()

        def read_status(path, timeout=None):
            if path.endswith("hung"):
                release.wait(5)
            return WorktreeStatus(branch_name="x", uncommitted_files=("a",))

        reader.read_status.side_effect = read_status
        hung = make_machine("hung", uncommitted_count=7)
        others = [make_machine(f"s{i}") for i in range(3)]
        machines.extend([hung] + others)

        try:
            report = make_poller(config_store=config_store).run_once()
        finally:
            release.set()

        assert report.timed_out == ["hung"]
        assert hung.session.uncommitted_count == 7
        for machine in others:
            assert machine.session.uncommitted_count == 1
            assert machine.session.last_warning is None

    def test_starved_session_goes_first_next_tick(self, make_poller, machines, reader):
        config_store = ConfigStore(Config(poll_interval=0.5, reader_timeout=0.2, workers=1))
        release = threading.Event()

        def read_status(path, timeout=None):
            if path.endswith("hung"):
                release.wait(5)
            return WorktreeStatus(branch_name="x", uncommitted_files=("a",))

        reader.read_status.side_effect = read_status
        hung = make_machine("hung")
        starved = make_machine("starved")
        machines.extend([hung, starved])
        poller = make_poller(config_store=config_store)

        try:
            first = poller.run_once()
            second = poller.run_once()
        finally:
            release.set()

        assert first.timed_out == ["hung"]
        assert first.deferred == ["starved"]
        assert starved.session.last_warning is None
        assert second.committed[0] == "starved"
        assert starved.session.uncommitted_count == 1


class TestPollerLoop:
    """Test the background thread."""

    def test_start_and_stop(self, make_poller, machines):
        config_store = ConfigStore(Config(poll_interval=0.25, reader_timeout=0.1))
        ticks = []
        machines.append(make_machine("s1"))
        poller = make_poller(config_store=config_store, on_tick=ticks.append)

        poller.start()
        assert poller.is_running
        deadline = time.time() + 5
        while len(ticks) < 2 and time.time() < deadline:
            time.sleep(0.05)

        assert poller.stop(grace_period=2.0) is True
        assert not poller.is_running
        assert len(ticks) >= 2

    def test_stop_without_start(self, make_poller):
        assert make_poller().stop(grace_period=0.1) is True
