"""
Session Persistence Module
==========================

Host-local locking, atomic persistence and crash recovery for sessions.

Main Components:
- LockManager: exclusive per-session lock reclaimed by PID liveness
- SessionStore: atomic JSON persistence with summary listing
- RecoveryManager: stale-lock detection and repair

Usage:
    from coordinator.session import LockManager, SessionStore

    store = SessionStore(config)
    with store.lock_manager.acquire(session_id):
        session = store.load(session_id)
        ...
        store.save(session)
"""

from coordinator.session.models import Session, Instance, InstanceGroup, InstanceStatus, GroupPhase
from coordinator.session.lock import LockManager, LockHandle, LockInfo
from coordinator.session.store import SessionStore, SessionInfo
from coordinator.session.recovery import RecoveryManager, RecoveryCandidate, RecoveryResult

__all__ = [
    'Session',
    'Instance',
    'InstanceGroup',
    'InstanceStatus',
    'GroupPhase',
    'LockManager',
    'LockHandle',
    'LockInfo',
    'SessionStore',
    'SessionInfo',
    'RecoveryManager',
    'RecoveryCandidate',
    'RecoveryResult',
]
