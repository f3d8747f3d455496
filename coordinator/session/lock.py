"""
Session Lock Manager
====================

Host-local exclusive lock per session directory.

Ownership is decided solely by OS process liveness of the PID recorded in
the lock file; there is no time-based expiry. A lock whose PID is gone is
stale and is reclaimed automatically on the next acquire.

Key Features:
- Create-only (O_CREAT | O_EXCL) lock writes, so racing reclaimers produce
  exactly one winner
- Release removes the file only while it still names our PID
- Refresh touches the mtime as an advisory heartbeat for external tooling
- Force release for recovery tooling

Usage:
    manager = LockManager(config)
    with manager.acquire(session_id) as handle:
        ...  # mutate and save the session
"""

import json
import logging
import os
import socket
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from coordinator.config import CoordinatorConfig
from coordinator.errors import LockNotHeldError, NotFoundError, SessionLockedError
from coordinator.probes import is_process_alive
from coordinator.timestamps import format_time, parse_time, utc_now

logger = logging.getLogger(__name__)

LOCK_FILE_NAME = "session.lock"

# A racer that won the exclusive create may not have written its record yet
SETTLE_POLLS = 10
SETTLE_INTERVAL = 0.01


def _hostname() -> str:
    try:
        return socket.gethostname() or "unknown"
    except OSError:
        return "unknown"


@dataclass(frozen=True)
class LockInfo:
    """
    Contents of a session lock file.

    Attributes:
        session_id: Session the lock protects
        pid: PID of the owning process
        hostname: Host the owner runs on
        started_at: When the lock was acquired
    """
    session_id: str
    pid: int
    hostname: str
    started_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "pid": self.pid,
            "hostname": self.hostname,
            "started_at": format_time(self.started_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LockInfo":
        return cls(
            session_id=data.get("session_id") or "",
            pid=int(data.get("pid") or 0),
            hostname=data.get("hostname") or "",
            started_at=parse_time(data.get("started_at")),
        )


def read_lock(lock_path: Path) -> LockInfo:
    """
    Read a lock file.

    Raises:
        FileNotFoundError: If the lock file does not exist
        ValueError: If the file is not a valid lock record
    """
    with open(lock_path, "r", encoding="utf-8") as f:
        raw = f.read()
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"failed to parse lock file {lock_path}: {e}")
    if not isinstance(data, dict):
        raise ValueError(f"lock file {lock_path} is not a JSON object")
    try:
        return LockInfo.from_dict(data)
    except (TypeError, AttributeError, ValueError) as e:
        raise ValueError(f"lock file {lock_path} has invalid fields: {e}")


def _read_settled(lock_path: Path) -> LockInfo:
    """Read a lock, waiting briefly while it is still empty."""
    for _ in range(SETTLE_POLLS):
        try:
            return read_lock(lock_path)
        except ValueError:
            if os.path.getsize(lock_path) > 0:
                raise
        time.sleep(SETTLE_INTERVAL)
    return read_lock(lock_path)


class LockHandle:
    """
    An acquired session lock.

    release() is safe to call any number of times and never removes a lock
    that has since been taken over by another process.
    """

    def __init__(self, info: LockInfo, lock_path: Path):
        self.info = info
        self.lock_path = lock_path
        self._released = False

    @property
    def session_id(self) -> str:
        return self.info.session_id

    @property
    def released(self) -> bool:
        return self._released

    def _still_ours(self) -> bool:
        try:
            current = read_lock(self.lock_path)
        except (OSError, ValueError):
            return False
        return current.pid == self.info.pid

    def release(self) -> bool:
        """
        Release the lock.

        Returns:
            True if this call removed the lock file, False otherwise
        """
        if self._released:
            return False
        self._released = True

        if not self._still_ours():
            logger.warning(
                f"Lock for session {self.session_id} is no longer held by PID "
                f"{self.info.pid}; leaving it in place"
            )
            return False

        try:
            os.remove(self.lock_path)
        except FileNotFoundError:
            return False

        logger.info(f"Session lock released for {self.session_id}")
        return True

    def refresh(self) -> None:
        """
        Update the lock file's modification time.

        Raises:
            LockNotHeldError: If the lock was released or taken over
        """
        if self._released or not self._still_ours():
            raise LockNotHeldError(f"lock for session {self.session_id} is not held")
        try:
            os.utime(self.lock_path, None)
        except FileNotFoundError:
            raise LockNotHeldError(f"lock for session {self.session_id} is not held")

    def __enter__(self) -> "LockHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


class LockManager:
    """Acquires and inspects session locks under the configured sessions directory."""

    def __init__(self, config: CoordinatorConfig):
        """
        Initialize the lock manager.

        Args:
            config: Coordinator configuration (sessions directory, attempts)
        """
        self.config = config

    def lock_path(self, session_id: str) -> Path:
        return self.config.session_dir(session_id) / LOCK_FILE_NAME

    def _create_lock_file(self, lock_path: Path, info: LockInfo) -> None:
        payload = json.dumps(info.to_dict(), indent=2).encode("utf-8")
        fd = os.open(lock_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        try:
            os.write(fd, payload)
            os.fsync(fd)
        except OSError:
            os.close(fd)
            os.remove(lock_path)
            raise
        os.close(fd)

    def _remove_if_unchanged(self, lock_path: Path, stale: LockInfo) -> bool:
        # Only delete the exact record we judged stale; a racer may already
        # have replaced it with a live lock.
        try:
            current = read_lock(lock_path)
        except FileNotFoundError:
            return False
        except ValueError:
            return False
        if current != stale:
            return False
        try:
            os.remove(lock_path)
        except FileNotFoundError:
            return False
        logger.warning(
            f"Stale lock cleaned for session {stale.session_id} (old PID {stale.pid})"
        )
        return True

    def acquire(self, session_id: str) -> LockHandle:
        """
        Acquire the exclusive lock for a session.

        Args:
            session_id: Session to lock

        Returns:
            LockHandle for the new lock

        Raises:
            SessionLockedError: If a live process holds the lock
        """
        lock_path = self.lock_path(session_id)
        lock_path.parent.mkdir(parents=True, exist_ok=True)

        holder: Optional[LockInfo] = None
        for attempt in range(self.config.lock_acquire_attempts):
            info = LockInfo(
                session_id=session_id,
                pid=os.getpid(),
                hostname=_hostname(),
                started_at=utc_now(),
            )
            try:
                self._create_lock_file(lock_path, info)
            except FileExistsError:
                pass
            else:
                logger.info(f"Session lock acquired for {session_id} (PID {info.pid})")
                return LockHandle(info, lock_path)

            try:
                holder = _read_settled(lock_path)
            except FileNotFoundError:
                # Released between our create and read; try again
                holder = None
                continue
            except ValueError as e:
                # Partially written or corrupt: treat as held
                logger.error(f"Failed to acquire lock for {session_id}: {e}")
                raise SessionLockedError(session_id, None)

            if is_process_alive(holder.pid):
                logger.error(
                    f"Failed to acquire lock for {session_id}: locked by PID "
                    f"{holder.pid} on {holder.hostname}"
                )
                raise SessionLockedError(session_id, holder)

            self._remove_if_unchanged(lock_path, holder)

        raise SessionLockedError(session_id, holder)

    def is_locked(self, session_id: str) -> Tuple[Optional[LockInfo], bool]:
        """
        Check whether a live process holds the session lock.

        Returns:
            (holder, True) when locked by a live process; (None, False) when
            there is no lock or the recorded PID is dead. An unreadable lock
            file reports (None, True).
        """
        try:
            holder = read_lock(self.lock_path(session_id))
        except FileNotFoundError:
            return None, False
        except ValueError:
            return None, True
        if is_process_alive(holder.pid):
            return holder, True
        return None, False

    def read(self, session_id: str) -> Optional[LockInfo]:
        """Return the raw lock record regardless of liveness, or None."""
        try:
            return read_lock(self.lock_path(session_id))
        except (FileNotFoundError, ValueError):
            return None

    def force_release(self, session_id: str) -> None:
        """
        Unconditionally remove a session's lock file.

        Raises:
            NotFoundError: If the session has no lock file
        """
        try:
            os.remove(self.lock_path(session_id))
        except FileNotFoundError:
            raise NotFoundError(f"no lock for session {session_id}")
        logger.warning(f"Lock force-released for session {session_id}")

    def reclaim_stale(self, session_id: str) -> bool:
        """
        Remove the session's lock if its owner is dead or the file is unreadable.

        Returns:
            True if a stale lock was removed
        """
        lock_path = self.lock_path(session_id)
        try:
            holder = read_lock(lock_path)
        except FileNotFoundError:
            return False
        except ValueError:
            try:
                os.remove(lock_path)
            except FileNotFoundError:
                return False
            logger.warning(f"Unreadable lock removed for session {session_id}")
            return True
        if is_process_alive(holder.pid):
            return False
        return self._remove_if_unchanged(lock_path, holder)
