"""
Session API Routes
==================

REST API endpoints for inspecting and repairing coordinator sessions and
for validating plans.
"""

from typing import List, Dict, Any, Optional
import logging

from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel, Field

from coordinator.config import CoordinatorConfig, load_config
from coordinator.errors import (
    NotFoundError,
    PlanParseError,
    SessionCorruptedError,
    SessionLockedError,
)
from coordinator.planning.dependency_resolver import DependencyResolver
from coordinator.planning.plan_parser import plan_from_data
from coordinator.planning.validator import validate_plan
from coordinator.session.recovery import RecoveryManager
from coordinator.session.store import SessionStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["sessions"])


# =============================================================================
# Request/Response Models
# =============================================================================

class LockHolderResponse(BaseModel):
    """Response model for a lock holder."""
    session_id: str
    pid: int
    hostname: str
    started_at: Optional[str] = None


class SessionSummaryResponse(BaseModel):
    """Response model for a session listing entry."""
    id: str
    name: str
    created: Optional[str] = None
    instance_count: int
    is_locked: bool
    lock_holder: Optional[LockHolderResponse] = None


class LockStatusResponse(BaseModel):
    """Response model for lock status."""
    session_id: str
    locked: bool
    holder: Optional[LockHolderResponse] = None


class RecoveryCandidateResponse(BaseModel):
    """Response model for a recovery candidate."""
    session_id: str
    session_dir: str
    last_modified: Optional[str] = None
    has_stale_lock: bool
    lock_info: Optional[LockHolderResponse] = None
    reason: str


class RecoveryResultResponse(BaseModel):
    """Response model for a recovery operation."""
    session_id: str
    recovered: bool
    cleaned_up: bool
    interrupted_ids: List[str] = []
    reconnected_ids: List[str] = []
    paused_ids: List[str] = []


class CleanupResponse(BaseModel):
    """Response model for bulk cleanup."""
    stale_locks_removed: int
    empty_sessions_removed: List[str] = []


class CleanupRequest(BaseModel):
    """Request model for bulk cleanup."""
    remove_empty: bool = Field(False, description="Also delete unlocked sessions with no instances")


class ValidationMessageResponse(BaseModel):
    """Model for a single validation message."""
    severity: str
    message: str
    task_id: Optional[str] = None
    field: Optional[str] = None
    suggestion: Optional[str] = None
    related_ids: List[str] = []


class PlanValidationResponse(BaseModel):
    """Response model for plan validation."""
    valid: bool
    error_count: int
    warning_count: int
    info_count: int
    messages: List[ValidationMessageResponse] = []
    execution_order: List[List[str]] = []
    parse_error: Optional[str] = None


# =============================================================================
# Helper Functions
# =============================================================================

def get_config() -> CoordinatorConfig:
    """Configuration dependency; overridden in tests."""
    return load_config()


def get_store(config: CoordinatorConfig = Depends(get_config)) -> SessionStore:
    return SessionStore(config)


def get_recovery_manager(store: SessionStore = Depends(get_store)) -> RecoveryManager:
    return RecoveryManager(store)


# =============================================================================
# API Endpoints
# =============================================================================

@router.get("/api/sessions", response_model=List[SessionSummaryResponse])
def list_sessions(store: SessionStore = Depends(get_store)):
    """
    List all sessions with instance counts and lock status.
    """
    try:
        return [info.to_dict() for info in store.list()]
    except Exception as e:
        logger.error(f"Failed to list sessions: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/api/sessions/{session_id}")
def get_session(session_id: str, store: SessionStore = Depends(get_store)) -> Dict[str, Any]:
    """
    Get the full persisted state of a session.
    """
    try:
        return store.load(session_id).to_dict()
    except NotFoundError:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    except SessionCorruptedError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to load session {session_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/api/sessions/{session_id}/lock", response_model=LockStatusResponse)
def get_lock_status(session_id: str, store: SessionStore = Depends(get_store)):
    """
    Report whether a live process holds the session lock.
    """
    try:
        if not store.exists(session_id):
            raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
        holder, locked = store.lock_manager.is_locked(session_id)
        return LockStatusResponse(
            session_id=session_id,
            locked=locked,
            holder=holder.to_dict() if holder else None,
        )
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to read lock for {session_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/api/sessions/{session_id}/recover", response_model=RecoveryResultResponse)
def recover_session(session_id: str, recovery: RecoveryManager = Depends(get_recovery_manager)):
    """
    Remove a stale lock and mark interrupted work so the session can be reattached.
    """
    try:
        return recovery.recover_session(session_id).to_dict()
    except NotFoundError:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    except SessionLockedError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to recover session {session_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/api/recovery/candidates", response_model=List[RecoveryCandidateResponse])
def list_recovery_candidates(recovery: RecoveryManager = Depends(get_recovery_manager)):
    """
    List sessions whose lock names a process that is no longer running.
    """
    try:
        return [c.to_dict() for c in recovery.check_for_recovery()]
    except Exception as e:
        logger.error(f"Failed to scan for recovery candidates: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/api/recovery/cleanup", response_model=CleanupResponse)
def cleanup_sessions(
    request: CleanupRequest,
    recovery: RecoveryManager = Depends(get_recovery_manager)
):
    """
    Remove every stale lock, optionally deleting empty sessions too.
    """
    try:
        removed = recovery.cleanup_stale()
        empty = recovery.cleanup_empty() if request.remove_empty else []
        return CleanupResponse(stale_locks_removed=removed, empty_sessions_removed=empty)
    except Exception as e:
        logger.error(f"Failed to clean up sessions: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/api/plans/validate", response_model=PlanValidationResponse)
def validate_plan_document(plan: Dict[str, Any]):
    """
    Validate a plan document.

    Accepts the planner JSON format, including the "depends"/"complexity"
    aliases and a {"plan": {...}} wrapper. Parse failures are reported in
    parse_error with valid=false rather than as an HTTP error.
    """
    try:
        spec = plan_from_data(plan, require_tasks=False)
    except PlanParseError as e:
        return PlanValidationResponse(
            valid=False, error_count=0, warning_count=0, info_count=0,
            parse_error=str(e),
        )

    try:
        graph = DependencyResolver().resolve(spec.tasks)
        result = validate_plan(spec, graph=graph)
        return PlanValidationResponse(
            **result.to_dict(),
            execution_order=graph.execution_order,
        )
    except Exception as e:
        logger.error(f"Failed to validate plan: {e}")
        raise HTTPException(status_code=500, detail=str(e))
