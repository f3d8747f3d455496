#!/usr/bin/env python3
"""
Manage Coordinator Sessions

Lists sessions and repairs ones left behind by crashed processes.

Usage:
    python scripts/sessions.py list
    python scripts/sessions.py recover <session_id>
    python scripts/sessions.py clean                 # remove stale locks
    python scripts/sessions.py clean --empty         # also delete empty sessions
    python scripts/sessions.py validate <session_id>

Environment:
    COORDINATOR_BASE_DIR selects the repository (default: current directory)
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv
load_dotenv()

from coordinator.config import CoordinatorConfig, load_config
from coordinator.errors import CoordinatorError
from coordinator.session.recovery import RecoveryManager
from coordinator.session.store import SessionStore


def cmd_list(store: SessionStore, out) -> int:
    sessions = store.list()
    if not sessions:
        print("No sessions found.", file=out)
        return 0
    for info in sessions:
        created = info.created.strftime("%Y-%m-%d %H:%M") if info.created else "-"
        if info.is_locked and info.lock_holder:
            status = f"locked by PID {info.lock_holder.pid} on {info.lock_holder.hostname}"
        elif info.is_locked:
            status = "locked"
        else:
            status = "available"
        print(
            f"{info.id}  {info.name or '(unnamed)'}  created {created}  "
            f"{info.instance_count} instance(s)  {status}",
            file=out,
        )
    return 0


def cmd_recover(recovery: RecoveryManager, session_id: str, out) -> int:
    result = recovery.recover_session(session_id)
    if result.cleaned_up:
        print(f"Recovered session {session_id}: stale lock removed", file=out)
        if result.interrupted_ids:
            print(f"  Interrupted instances: {', '.join(result.interrupted_ids)}", file=out)
    else:
        print(f"Session {session_id} had no stale lock", file=out)
    return 0


def cmd_clean(recovery: RecoveryManager, remove_empty: bool, out) -> int:
    removed = recovery.cleanup_stale()
    print(f"Removed {removed} stale lock(s)", file=out)
    if remove_empty:
        empty = recovery.cleanup_empty()
        print(f"Deleted {len(empty)} empty session(s)", file=out)
        for session_id in empty:
            print(f"  - {session_id}", file=out)
    return 0


def cmd_validate(recovery: RecoveryManager, session_id: str, out) -> int:
    recovery.validate_session(session_id)
    print(f"Session {session_id} is valid", file=out)
    return 0


def run(config: CoordinatorConfig, argv=None, out=None) -> int:
    """
    Parse arguments and run one sessions command.

    Returns:
        Process exit code
    """
    out = out or sys.stdout
    parser = argparse.ArgumentParser(description="Manage coordinator sessions")
    sub = parser.add_subparsers(dest='command', required=True)
    sub.add_parser('list', help='List sessions')
    recover = sub.add_parser('recover', help='Recover a session left by a crashed process')
    recover.add_argument('session_id')
    clean = sub.add_parser('clean', help='Remove stale locks')
    clean.add_argument('--empty', action='store_true', help='Also delete sessions with no instances')
    validate = sub.add_parser('validate', help='Check a session file for corruption')
    validate.add_argument('session_id')
    args = parser.parse_args(argv)

    store = SessionStore(config)
    recovery = RecoveryManager(store)

    try:
        if args.command == 'list':
            return cmd_list(store, out)
        if args.command == 'recover':
            return cmd_recover(recovery, args.session_id, out)
        if args.command == 'clean':
            return cmd_clean(recovery, args.empty, out)
        return cmd_validate(recovery, args.session_id, out)
    except CoordinatorError as e:
        print(f"Error: {e}", file=out)
        return 1


def main():
    config = load_config()
    logging.basicConfig(level=config.log_level)
    sys.exit(run(config))


if __name__ == "__main__":
    main()
