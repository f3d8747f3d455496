"""
Coordinator Errors
==================

Exception taxonomy shared by the lock, storage, recovery and planning layers.

Callers catch the specific subclass they can act on (retry, report, repair)
and let the rest propagate. Validation problems are not raised per task;
they are aggregated into a ValidationResult and only surface as
ValidationFailedError when a caller explicitly requires a valid plan.
"""

from typing import Any, Optional


class CoordinatorError(Exception):
    """Base class for all coordinator errors."""
    pass


class NotFoundError(CoordinatorError):
    """Raised when a session, record or lock does not exist."""
    pass


class AlreadyExistsError(CoordinatorError):
    """Raised when a create-only write finds the key already present."""
    pass


class SessionLockedError(CoordinatorError):
    """
    Raised when a session is locked by another live process.

    Attributes:
        holder: LockInfo of the current owner, or None if the lock file
            exists but could not be read
    """

    def __init__(self, session_id: str, holder: Optional[Any] = None):
        self.session_id = session_id
        self.holder = holder
        if holder is not None:
            message = (
                f"session {session_id} is locked by PID {holder.pid} "
                f"on {holder.hostname}"
            )
        else:
            message = f"session {session_id} is locked by another process"
        super().__init__(message)


class LockNotHeldError(CoordinatorError):
    """Raised when refreshing a lock this process no longer owns."""
    pass


class SessionCorruptedError(CoordinatorError):
    """Raised when a persisted session exists but cannot be decoded."""
    pass


class StaleDataError(CoordinatorError):
    """Raised when a versioned save supplies an outdated version."""
    pass


class ValidationFailedError(CoordinatorError):
    """
    Raised when a plan is required to be valid but has errors.

    Attributes:
        result: The ValidationResult carrying all messages
    """

    def __init__(self, result: Any):
        self.result = result
        super().__init__(
            f"plan validation failed with {result.error_count} error(s)"
        )


class PlanningExhaustedError(CoordinatorError):
    """Raised when every planner finished but none produced a usable plan."""
    pass


class PlanParseError(CoordinatorError):
    """Raised when a plan artifact cannot be read or decoded."""
    pass
