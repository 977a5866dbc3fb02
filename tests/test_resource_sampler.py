"""Tests for process resource sampling"""
import os
import subprocess
import sys
from unittest.mock import patch

import psutil
import pytest

from git_session_keeper.exceptions import ProcessGone
from git_session_keeper.services.resource_sampler import ResourceSampler


class TestResourceSampler:
    """Test psutil-backed sampling."""

    def test_samples_own_process(self):
        sampler = ResourceSampler()
        metrics = sampler.sample(os.getpid())

        assert metrics.running
        assert metrics.pid == os.getpid()
        assert metrics.memory_rss > 0
        assert metrics.memory_mb == pytest.approx(metrics.memory_rss / (1024 * 1024))
        assert metrics.cpu_percent >= 0.0

    def test_reuses_process_objects(self):
        sampler = ResourceSampler()
        sampler.sample(os.getpid())
        first = sampler._processes[os.getpid()]
        sampler.sample(os.getpid())
        assert sampler._processes[os.getpid()] is first

    def test_exited_process_raises(self):
        proc = subprocess.Popen([sys.executable, "-c", "pass"])
        proc.wait()

        sampler = ResourceSampler()
        with pytest.raises(ProcessGone) as exc_info:
            sampler.sample(proc.pid)
        assert exc_info.value.pid == proc.pid
        assert proc.pid not in sampler._processes

    def test_access_denied_reports_running(self):
        sampler = ResourceSampler()
        with patch.object(psutil.Process, "memory_info", side_effect=psutil.AccessDenied(os.getpid())):
            metrics = sampler.sample(os.getpid())

        assert metrics.running
        assert metrics.memory_mb == 0.0

    def test_forget(self):
        sampler = ResourceSampler()
        sampler.sample(os.getpid())
        sampler.forget(os.getpid())
        sampler.forget(os.getpid())
        assert os.getpid() not in sampler._processes
