"""Shared fixtures for coordinator tests."""

import subprocess
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from coordinator.config import CoordinatorConfig


@pytest.fixture
def config(tmp_path):
    """Configuration rooted in a temporary repository directory."""
    return CoordinatorConfig(base_dir=tmp_path)


@pytest.fixture
def dead_pid():
    """PID of a process that has already exited."""
    proc = subprocess.Popen([sys.executable, "-c", "pass"])
    proc.wait()
    return proc.pid
