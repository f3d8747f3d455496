"""
Liveness Probes
===============

Checks whether the process or execution surface behind a lock or an
instance is still running. Liveness is host-local: a PID is only
meaningful on the machine that recorded it.

Instances normally run inside a tmux session; a recorded PID is the
fallback when no tmux session name is known.
"""

import logging
import os
import subprocess

logger = logging.getLogger(__name__)


def is_process_alive(pid: int) -> bool:
    """
    Check whether a process exists using signal 0.

    A PermissionError means the process exists but belongs to another user,
    which still counts as alive.
    """
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return False
    return True


def tmux_session_alive(name: str, timeout: float = 5) -> bool:
    """Return True if `tmux has-session` finds a session with this name."""
    if not name:
        return False
    try:
        result = subprocess.run(
            ["tmux", "has-session", "-t", name],
            capture_output=True,
            text=True,
            timeout=timeout
        )
    except FileNotFoundError:
        logger.debug("tmux is not installed; treating sessions as not running")
        return False
    except subprocess.TimeoutExpired:
        # A hung tmux server still means the session may be running
        logger.warning(f"tmux has-session timed out for {name}")
        return True
    return result.returncode == 0


def instance_alive(instance) -> bool:
    """Probe an Instance by its tmux session, falling back to its PID."""
    if instance.tmux_session:
        return tmux_session_alive(instance.tmux_session)
    return is_process_alive(instance.pid)
