"""
Session Recovery Manager
========================

Finds and repairs sessions left behind by processes that exited without
releasing their lock.

Recovery here is limited to lock and bookkeeping repair. Reconnecting live
workers or pausing them is left to the orchestrator, which uses the
instance liveness probes and agent session IDs.
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from coordinator.errors import (
    NotFoundError,
    SessionCorruptedError,
    SessionLockedError,
)
from coordinator.probes import is_process_alive
from coordinator.session.lock import LockInfo, LockManager, read_lock
from coordinator.session.store import SessionStore
from coordinator.timestamps import format_time, utc_now

logger = logging.getLogger(__name__)

STALE_LOCK_REASON = "stale lock detected - owning process no longer running"
UNREADABLE_LOCK_REASON = "lock file is unreadable"


@dataclass
class RecoveryCandidate:
    """
    A session that looks abandoned.

    Attributes:
        session_id: Session ID
        session_dir: Session directory
        last_modified: Modification time of the session file
        has_stale_lock: True when the lock names a dead process or is unreadable
        lock_info: Lock record, None if unreadable
        reason: Why the session was flagged
    """
    session_id: str
    session_dir: Path
    last_modified: Optional[datetime]
    has_stale_lock: bool
    lock_info: Optional[LockInfo]
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "session_dir": str(self.session_dir),
            "last_modified": format_time(self.last_modified),
            "has_stale_lock": self.has_stale_lock,
            "lock_info": self.lock_info.to_dict() if self.lock_info else None,
            "reason": self.reason,
        }


@dataclass
class RecoveryResult:
    """
    Outcome of recovering one session.

    Attributes:
        session_id: Session ID
        recovered: True once the session is safe to attach to
        cleaned_up: True if this call removed a stale lock
        interrupted_ids: Instances marked interrupted by this call
        reconnected_ids: Instances an orchestrator reattached (filled by callers)
        paused_ids: Instances an orchestrator paused (filled by callers)
    """
    session_id: str
    recovered: bool = False
    cleaned_up: bool = False
    interrupted_ids: List[str] = field(default_factory=list)
    reconnected_ids: List[str] = field(default_factory=list)
    paused_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "recovered": self.recovered,
            "cleaned_up": self.cleaned_up,
            "interrupted_ids": list(self.interrupted_ids),
            "reconnected_ids": list(self.reconnected_ids),
            "paused_ids": list(self.paused_ids),
        }


class RecoveryManager:
    """Scans the sessions directory for stale locks and repairs them."""

    def __init__(self, store: SessionStore, lock_manager: Optional[LockManager] = None):
        """
        Initialize the recovery manager.

        Args:
            store: Session store to scan and repair
            lock_manager: Lock manager; defaults to the store's
        """
        self.store = store
        self.lock_manager = lock_manager or store.lock_manager

    def check_for_recovery(self) -> List[RecoveryCandidate]:
        """Flag every session whose lock names a dead process."""
        candidates = []
        for session_id in self.store.session_ids():
            lock_path = self.lock_manager.lock_path(session_id)
            try:
                info = read_lock(lock_path)
            except FileNotFoundError:
                continue
            except (OSError, ValueError) as e:
                logger.warning(f"Session {session_id} has an unreadable lock: {e}")
                info = None
                reason = UNREADABLE_LOCK_REASON
            else:
                if is_process_alive(info.pid):
                    continue
                reason = STALE_LOCK_REASON

            session_dir = self.store.config.session_dir(session_id)
            candidates.append(RecoveryCandidate(
                session_id=session_id,
                session_dir=session_dir,
                last_modified=self._last_modified(session_id),
                has_stale_lock=True,
                lock_info=info,
                reason=reason,
            ))
        return candidates

    def _last_modified(self, session_id: str) -> Optional[datetime]:
        path = self.store.files.path_for(f"{session_id}/session")
        try:
            return datetime.fromtimestamp(os.path.getmtime(path), tz=timezone.utc)
        except OSError:
            return None

    def recover_session(self, session_id: str) -> RecoveryResult:
        """
        Make a session attachable again.

        Removes a stale lock if present. When a lock was cleaned, instances
        that were mid-work are marked interrupted and the session's recovery
        bookkeeping is updated. Calling again is a no-op that still reports
        recovered=True.

        Raises:
            NotFoundError: The session does not exist
            SessionLockedError: A live process holds the lock
        """
        if not self.store.exists(session_id):
            raise NotFoundError(f"session {session_id} not found")

        holder, locked = self.lock_manager.is_locked(session_id)
        if locked and holder is not None:
            raise SessionLockedError(session_id, holder)

        result = RecoveryResult(session_id=session_id)
        result.cleaned_up = self.lock_manager.reclaim_stale(session_id)

        if result.cleaned_up:
            self._record_recovery(session_id, result)
            logger.info(f"Recovered session {session_id}")

        result.recovered = True
        return result

    def _record_recovery(self, session_id: str, result: RecoveryResult) -> None:
        try:
            session = self.store.load(session_id)
        except SessionCorruptedError as e:
            logger.warning(f"Lock cleaned but session {session_id} is corrupted: {e}")
            return
        now = utc_now()
        result.interrupted_ids = session.mark_interrupted(now)
        session.clean_shutdown = False
        session.recovery_state = "recovered"
        session.recovered_at = now
        session.recovery_attempt += 1
        self.store.save(session)

    def cleanup_stale(self) -> int:
        """
        Remove stale locks from every flagged session.

        A failure on one session is logged and does not stop the sweep.

        Returns:
            Number of locks removed
        """
        cleaned = 0
        for candidate in self.check_for_recovery():
            try:
                if self.lock_manager.reclaim_stale(candidate.session_id):
                    cleaned += 1
            except Exception as e:
                logger.warning(
                    f"Failed to clean stale lock for session {candidate.session_id}: {e}"
                )
        if cleaned:
            logger.info(f"Cleaned {cleaned} stale session lock(s)")
        return cleaned

    def cleanup_empty(self) -> List[str]:
        """
        Delete unlocked sessions that have no instances.

        Returns:
            IDs of the deleted sessions
        """
        removed = []
        for info in self.store.list():
            if info.is_locked or info.instance_count > 0:
                continue
            try:
                self.store.delete(info.id)
            except (OSError, NotFoundError) as e:
                logger.warning(f"Failed to remove empty session {info.id}: {e}")
                continue
            removed.append(info.id)
        return removed

    def validate_session(self, session_id: str) -> None:
        """
        Check that a session file is well formed and correctly labelled.

        Raises:
            NotFoundError: The session does not exist
            SessionCorruptedError: The file does not parse, has no ID, or its
                ID differs from the directory it is stored under
        """
        data = self.store.load_raw(session_id)
        if not isinstance(data, dict):
            raise SessionCorruptedError(f"session {session_id} is not a JSON object")
        stored_id = data.get("id")
        if not stored_id:
            raise SessionCorruptedError(f"session {session_id} has no ID")
        if stored_id != session_id:
            raise SessionCorruptedError(
                f"session ID mismatch: stored as {session_id}, file says {stored_id}"
            )
