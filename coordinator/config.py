"""
Coordinator Configuration
=========================

Immutable configuration passed explicitly into the session and planning
managers. Values come from the environment, optionally seeded from a .env
file via python-dotenv.

Environment variables:
    COORDINATOR_BASE_DIR: Repository root holding the .claudio directory
    COORDINATOR_PLAN_FILE: Planner artifact file name
    COORDINATOR_LOCK_ATTEMPTS: Create attempts when reclaiming stale locks
    COORDINATOR_LOG_LEVEL: Logging level name for scripts
"""

import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

SESSIONS_SUBDIR = Path(".claudio") / "sessions"
PLAN_FILE_NAME = ".claudio-plan.json"
DEFAULT_LOCK_ATTEMPTS = 3


@dataclass(frozen=True)
class CoordinatorConfig:
    """
    Settings for one coordinator process.

    Attributes:
        base_dir: Repository root; sessions live under base_dir/.claudio/sessions
        plan_file_name: File name planners write their plan to
        lock_acquire_attempts: How many create attempts acquire makes before
            reporting the lock as held
        log_level: Logging level name used by the scripts
    """
    base_dir: Path
    plan_file_name: str = PLAN_FILE_NAME
    lock_acquire_attempts: int = DEFAULT_LOCK_ATTEMPTS
    log_level: str = "INFO"

    @property
    def sessions_dir(self) -> Path:
        return self.base_dir / SESSIONS_SUBDIR

    def session_dir(self, session_id: str) -> Path:
        return self.sessions_dir / session_id

    def with_base_dir(self, base_dir: Path) -> "CoordinatorConfig":
        return replace(self, base_dir=Path(base_dir))


def load_config(base_dir: Optional[Path] = None, env_file: Optional[Path] = None) -> CoordinatorConfig:
    """
    Build a CoordinatorConfig from the environment.

    Args:
        base_dir: Explicit base directory; overrides COORDINATOR_BASE_DIR
        env_file: Optional .env file to load before reading variables

    Returns:
        Frozen CoordinatorConfig
    """
    if env_file is not None:
        load_dotenv(env_file)
    else:
        load_dotenv()

    if base_dir is None:
        base_dir = Path(os.getenv("COORDINATOR_BASE_DIR", os.getcwd()))

    raw_attempts = os.getenv("COORDINATOR_LOCK_ATTEMPTS", str(DEFAULT_LOCK_ATTEMPTS))
    try:
        attempts = int(raw_attempts)
    except ValueError:
        logger.warning(f"Ignoring invalid COORDINATOR_LOCK_ATTEMPTS={raw_attempts!r}")
        attempts = DEFAULT_LOCK_ATTEMPTS

    return CoordinatorConfig(
        base_dir=Path(base_dir),
        plan_file_name=os.getenv("COORDINATOR_PLAN_FILE", PLAN_FILE_NAME),
        lock_acquire_attempts=max(1, attempts),
        log_level=os.getenv("COORDINATOR_LOG_LEVEL", "INFO").upper(),
    )
