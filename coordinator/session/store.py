"""
Session Store
=============

Atomic JSON persistence of sessions under {base}/.claudio/sessions/{id}/.

Key Features:
- save/load/delete/exists with NotFound and Corrupted reported distinctly
- list(): summary scan that reads a small per-session summary file instead
  of deserializing full session bodies
- Versioned sub-records for state updated outside the session lock
"""

import logging
import shutil
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from coordinator.config import CoordinatorConfig
from coordinator.errors import NotFoundError, SessionCorruptedError
from coordinator.session.filestore import FileStore
from coordinator.session.lock import LockInfo, LockManager
from coordinator.session.models import Session
from coordinator.timestamps import format_time, parse_time

logger = logging.getLogger(__name__)

SESSION_FILE_KEY = "session"
SUMMARY_FILE_KEY = "session.info"


@dataclass
class SessionInfo:
    """
    Summary of a stored session.

    Attributes:
        id: Session ID
        name: Display name
        created: Creation time
        instance_count: Number of instances in the session
        is_locked: True when a live process holds the session lock
        lock_holder: Lock record of the live holder, if any
    """
    id: str
    name: str
    created: Optional[datetime]
    instance_count: int
    is_locked: bool = False
    lock_holder: Optional[LockInfo] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "created": format_time(self.created),
            "instance_count": self.instance_count,
            "is_locked": self.is_locked,
            "lock_holder": self.lock_holder.to_dict() if self.lock_holder else None,
        }


def _summary(session: Session) -> Dict[str, Any]:
    return {
        "id": session.id,
        "name": session.name,
        "created": format_time(session.created),
        "instance_count": len(session.instances),
    }


class SessionStore:
    """Reads and writes sessions; callers hold the session lock before saving."""

    def __init__(self, config: CoordinatorConfig, lock_manager: Optional[LockManager] = None):
        """
        Initialize the session store.

        Args:
            config: Coordinator configuration
            lock_manager: Used to report lock status in list(); defaults to a
                LockManager over the same configuration
        """
        self.config = config
        self.files = FileStore(config.sessions_dir)
        self.lock_manager = lock_manager or LockManager(config)

    def _key(self, session_id: str, name: str = SESSION_FILE_KEY) -> str:
        if not session_id or "/" in session_id or session_id in (".", ".."):
            raise ValueError(f"invalid session ID: {session_id!r}")
        return f"{session_id}/{name}"

    def save(self, session: Session) -> None:
        """Atomically write the session and its summary."""
        self.files.save(self._key(session.id), session.to_dict())
        self.files.save(self._key(session.id, SUMMARY_FILE_KEY), _summary(session))
        logger.debug(f"Saved session {session.id}")

    def load_raw(self, session_id: str) -> Any:
        """
        Load the decoded session JSON without building a Session.

        Raises:
            NotFoundError: No session file
            SessionCorruptedError: The file is not valid JSON
        """
        return self.files.load(self._key(session_id))

    def load(self, session_id: str) -> Session:
        """
        Load a session.

        Raises:
            NotFoundError: The session does not exist
            SessionCorruptedError: The file exists but does not decode to a session
        """
        data = self.load_raw(session_id)
        if not isinstance(data, dict):
            raise SessionCorruptedError(f"session {session_id} is not a JSON object")
        try:
            return Session.from_dict(data)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise SessionCorruptedError(f"session {session_id} has invalid content: {e}")

    def exists(self, session_id: str) -> bool:
        return self.files.exists(self._key(session_id))

    def delete(self, session_id: str) -> None:
        """
        Remove a session directory, including its lock.

        Raises:
            NotFoundError: The session directory does not exist
        """
        session_dir = self.config.session_dir(session_id)
        self._key(session_id)  # validates the ID
        if not session_dir.is_dir():
            raise NotFoundError(f"session {session_id} not found")
        shutil.rmtree(session_dir)
        logger.info(f"Deleted session {session_id}")

    def session_ids(self) -> List[str]:
        """IDs of directories holding a session file, sorted."""
        sessions_dir = self.config.sessions_dir
        if not sessions_dir.is_dir():
            return []
        return sorted(
            entry.name for entry in sessions_dir.iterdir()
            if entry.is_dir() and self.files.exists(f"{entry.name}/{SESSION_FILE_KEY}")
        )

    def _read_summary(self, session_id: str) -> Optional[Dict[str, Any]]:
        try:
            summary = self.files.load(self._key(session_id, SUMMARY_FILE_KEY))
            if isinstance(summary, dict) and summary.get("id"):
                return summary
        except (NotFoundError, SessionCorruptedError):
            pass
        # Written before summaries existed: fall back to the full body
        try:
            data = self.load_raw(session_id)
        except SessionCorruptedError as e:
            logger.warning(f"Skipping session {session_id} in listing: {e}")
            return None
        if not isinstance(data, dict):
            logger.warning(f"Skipping session {session_id} in listing: not a JSON object")
            return None
        return {
            "id": data.get("id") or session_id,
            "name": data.get("name") or "",
            "created": data.get("created"),
            "instance_count": len(data.get("instances") or []),
        }

    def list(self) -> List[SessionInfo]:
        """Summaries of all readable sessions, sorted by ID."""
        infos = []
        for session_id in self.session_ids():
            summary = self._read_summary(session_id)
            if summary is None:
                continue
            holder, locked = self.lock_manager.is_locked(session_id)
            try:
                created = parse_time(summary.get("created"))
            except (ValueError, AttributeError):
                created = None
            infos.append(SessionInfo(
                id=session_id,
                name=summary.get("name") or "",
                created=created,
                instance_count=int(summary.get("instance_count") or 0),
                is_locked=locked,
                lock_holder=holder,
            ))
        return infos

    # =========================================================================
    # Versioned sub-records
    # =========================================================================

    def save_record(self, session_id: str, name: str, data: Any, version: int) -> int:
        """Optimistically save a versioned record beside the session file."""
        return self.files.save_with_version(self._key(session_id, name), data, version)

    def load_record(self, session_id: str, name: str) -> Tuple[Any, int]:
        return self.files.load_with_version(self._key(session_id, name))
