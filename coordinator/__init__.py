"""
Worktree Coordinator
====================

Crash-safe session state and plan coordination for AI-agent workers that
run in isolated git worktrees.

Main Components:
- coordinator.session: session lock, store and recovery
- coordinator.planning: plan models, validation and multi-pass resume
- coordinator.config: immutable configuration loaded from the environment
"""

__version__ = "0.1.0"
