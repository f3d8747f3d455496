"""
Tests for CoordinatorConfig loading

Tests cover:
- Defaults and directory layout
- Environment overrides and .env files
- Immutability
"""

import dataclasses
from pathlib import Path

import pytest

from coordinator.config import PLAN_FILE_NAME, CoordinatorConfig, load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("COORDINATOR_BASE_DIR", "COORDINATOR_PLAN_FILE",
                 "COORDINATOR_LOCK_ATTEMPTS", "COORDINATOR_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


def test_defaults(tmp_path):
    config = load_config(base_dir=tmp_path, env_file=tmp_path / "missing.env")

    assert config.base_dir == tmp_path
    assert config.plan_file_name == PLAN_FILE_NAME
    assert config.lock_acquire_attempts == 3
    assert config.sessions_dir == tmp_path / ".claudio" / "sessions"
    assert config.session_dir("abc") == tmp_path / ".claudio" / "sessions" / "abc"


def test_environment_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("COORDINATOR_BASE_DIR", str(tmp_path))
    monkeypatch.setenv("COORDINATOR_PLAN_FILE", "plan.json")
    monkeypatch.setenv("COORDINATOR_LOCK_ATTEMPTS", "5")
    monkeypatch.setenv("COORDINATOR_LOG_LEVEL", "debug")

    config = load_config(env_file=tmp_path / "missing.env")

    assert config.base_dir == Path(tmp_path)
    assert config.plan_file_name == "plan.json"
    assert config.lock_acquire_attempts == 5
    assert config.log_level == "DEBUG"


def test_env_file(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text("COORDINATOR_PLAN_FILE=from-dotenv.json\n")
    # load_dotenv writes into os.environ; let monkeypatch restore it
    monkeypatch.setenv("COORDINATOR_PLAN_FILE", "")
    monkeypatch.delenv("COORDINATOR_PLAN_FILE")

    config = load_config(base_dir=tmp_path, env_file=env_file)

    assert config.plan_file_name == "from-dotenv.json"


def test_invalid_attempts_fall_back(tmp_path, monkeypatch):
    monkeypatch.setenv("COORDINATOR_LOCK_ATTEMPTS", "many")

    config = load_config(base_dir=tmp_path, env_file=tmp_path / "missing.env")

    assert config.lock_acquire_attempts == 3


def test_config_is_frozen(tmp_path):
    config = CoordinatorConfig(base_dir=tmp_path)

    with pytest.raises(dataclasses.FrozenInstanceError):
        config.base_dir = Path("/elsewhere")

    moved = config.with_base_dir(Path("/elsewhere"))
    assert moved.base_dir == Path("/elsewhere")
    assert config.base_dir == tmp_path
