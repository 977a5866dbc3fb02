"""Tests for configuration handling"""
import json
import threading

import pytest

from git_session_keeper.config import (
    MIN_POLL_INTERVAL,
    Config,
    ConfigStore,
    load_project_config,
)


class TestConfigDefaults:
    """Test default values and validation."""

    def test_defaults(self):
        config = Config()
        assert config.worktrees_dir == ".worktrees"
        assert config.default_branch_prefix == ""
        assert config.poll_interval == 2.0
        assert config.notifications_enabled is True
        assert config.sandbox_enabled is False

    def test_invalid_poll_interval(self):
        with pytest.raises(ValueError, match="poll_interval"):
            Config(poll_interval=0)

    def test_empty_worktrees_dir(self):
        with pytest.raises(ValueError, match="worktrees_dir"):
            Config(worktrees_dir="  ")

    def test_invalid_workers(self):
        with pytest.raises(ValueError, match="workers"):
            Config(workers=0)

    def test_config_is_immutable(self):
        config = Config()
        with pytest.raises(Exception):
            config.poll_interval = 5.0


class TestPollTiming:
    """Test the derived poll interval and reader timeout."""

    def test_poll_interval_floor(self):
        config = Config(poll_interval=0.01)
        assert config.effective_poll_interval == MIN_POLL_INTERVAL

    def test_reader_timeout_shorter_than_interval(self):
        config = Config(poll_interval=1.0, reader_timeout=5.0)
        assert config.effective_reader_timeout == pytest.approx(0.8)

    def test_reader_timeout_kept_when_short(self):
        config = Config(poll_interval=10.0, reader_timeout=1.5)
        assert config.effective_reader_timeout == 1.5


class TestWorktreeRoot:
    def test_relative_root_under_project(self, temp_dir):
        config = Config()
        assert config.worktree_root(str(temp_dir)) == temp_dir / ".worktrees"

    def test_absolute_root(self, temp_dir):
        root = temp_dir / "elsewhere"
        config = Config(worktrees_dir=str(root))
        assert config.worktree_root("/some/project") == root


class TestConfigParsing:
    """Test building Config from loosely typed maps."""

    def test_from_dict_ignores_unknown_keys(self, caplog):
        config = Config.from_dict({"poll_interval": 3.0, "theme": "dark"})
        assert config.poll_interval == 3.0
        assert "theme" in caplog.text

    def test_from_settings_reads_cw_keys(self):
        config = Config.from_settings({
            "cw:worktreesdir": "trees",
            "cw:defaultbranchprefix": "parallel/",
            "cw:pollinterval": 5,
            "cw:notificationsenabled": False,
            "cw:sandboxenabled": True,
            "term:fontsize": 12,
        })
        assert config.worktrees_dir == "trees"
        assert config.default_branch_prefix == "parallel/"
        assert config.poll_interval == 5.0
        assert config.notifications_enabled is False
        assert config.sandbox_enabled is True

    def test_from_settings_keeps_base_for_empty_values(self):
        base = Config(worktrees_dir="trees", poll_interval=3.0)
        config = Config.from_settings({"cw:worktreesdir": "", "cw:pollinterval": 0}, base=base)
        assert config.worktrees_dir == "trees"
        assert config.poll_interval == 3.0

    @pytest.mark.parametrize("raw,expected", [
        ("false", False), ("False", False), ("off", False), ("0", False),
        ("true", True), ("yes", True), (1, True), (0, False),
    ])
    def test_string_toggles(self, raw, expected):
        config = Config.from_settings({"cw:sandboxenabled": raw, "cw:notificationsenabled": raw})
        assert config.sandbox_enabled is expected
        assert config.notifications_enabled is expected

    def test_unparseable_toggle_rejected(self):
        with pytest.raises(ValueError, match="cw:sandboxenabled must be a boolean"):
            Config.from_settings({"cw:sandboxenabled": "maybe"})


class TestProjectConfig:
    """Test project-local cw.json overlays."""

    def test_missing_file_returns_base(self, temp_dir):
        base = Config(poll_interval=4.0)
        assert load_project_config(str(temp_dir), base) is base

    def test_claude_workstation_location(self, temp_dir):
        config_dir = temp_dir / ".claude-workstation"
        config_dir.mkdir()
        (config_dir / "cw.json").write_text(json.dumps({"worktreesdir": "wt", "sandboxenabled": True}))

        config = load_project_config(str(temp_dir))
        assert config.worktrees_dir == "wt"
        assert config.sandbox_enabled is True

    def test_cw_location(self, temp_dir):
        config_dir = temp_dir / ".cw"
        config_dir.mkdir()
        (config_dir / "cw.json").write_text(json.dumps({"defaultbranchprefix": "agent/"}))

        assert load_project_config(str(temp_dir)).default_branch_prefix == "agent/"

    def test_string_false_in_file(self, temp_dir):
        config_dir = temp_dir / ".cw"
        config_dir.mkdir()
        (config_dir / "cw.json").write_text(json.dumps({"notificationsenabled": "false"}))

        assert load_project_config(str(temp_dir)).notifications_enabled is False

    def test_malformed_file_raises(self, temp_dir):
        config_dir = temp_dir / ".cw"
        config_dir.mkdir()
        (config_dir / "cw.json").write_text("{not json")

        with pytest.raises(ValueError, match="Error parsing project config"):
            load_project_config(str(temp_dir))


class TestConfigStore:
    """Test copy-and-swap updates."""

    def test_update_swaps_whole_object(self):
        store = ConfigStore()
        before = store.get()
        after = store.update(sandbox_enabled=True)

        assert before.sandbox_enabled is False
        assert after.sandbox_enabled is True
        assert store.get() is after
        assert store.get_global_sandbox_enabled() is True

    def test_listeners_receive_old_and_new(self):
        store = ConfigStore()
        seen = []
        store.on_config_change(lambda old, new: seen.append((old.poll_interval, new.poll_interval)))

        store.update(poll_interval=7.0)
        assert seen == [(2.0, 7.0)]

    def test_no_notification_without_change(self):
        store = ConfigStore()
        seen = []
        store.on_config_change(lambda old, new: seen.append(new))

        store.replace(Config())
        assert seen == []

    def test_failing_listener_does_not_block_others(self):
        store = ConfigStore()
        seen = []

        def broken(old, new):
            raise RuntimeError("boom")

        store.on_config_change(broken)
        store.on_config_change(lambda old, new: seen.append(new))
        store.update(sandbox_enabled=True)
        assert len(seen) == 1

    def test_readers_never_see_torn_config(self):
        store = ConfigStore(Config(poll_interval=1.0, reader_timeout=1.0))
        torn = []
        stop = threading.Event()

        def reader():
            while not stop.is_set():
                config = store.get()
                if config.poll_interval != config.reader_timeout:
                    torn.append(config)

        thread = threading.Thread(target=reader)
        thread.start()
        for i in range(2, 200):
            store.replace(Config(poll_interval=float(i), reader_timeout=float(i)))
        stop.set()
        thread.join()

        assert torn == []

    def test_concurrent_updates_compose(self):
        store = ConfigStore()
        barrier = threading.Barrier(2)

        def set_interval():
            barrier.wait()
            for _ in range(200):
                store.update(poll_interval=7.0)

        def enable_sandbox():
            barrier.wait()
            for _ in range(200):
                store.update(sandbox_enabled=True)

        threads = [threading.Thread(target=set_interval), threading.Thread(target=enable_sandbox)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        config = store.get()
        assert config.poll_interval == 7.0
        assert config.sandbox_enabled is True

    def test_update_waits_for_pending_swap(self):
        store = ConfigStore()
        entered = threading.Event()
        release = threading.Event()

        def slow_build(current):
            entered.set()
            release.wait(5)
            return Config(poll_interval=7.0)

        worker = threading.Thread(target=store._swap, args=(slow_build,))
        worker.start()
        assert entered.wait(5)
        updater = threading.Thread(target=store.update, kwargs={"sandbox_enabled": True})
        updater.start()
        release.set()
        worker.join()
        updater.join()

        assert store.get().poll_interval == 7.0
        assert store.get().sandbox_enabled is True
