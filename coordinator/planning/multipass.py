"""
Multi-Pass Planning Resume
==========================

Resumable coordination of N independent planner processes that each
produce a candidate plan, followed by a single evaluator run.

resume() is a cheap poll meant to be called repeatedly (UI refresh,
process reattach). It collects finished planners' plans, waits while any
planner is still live, and starts the evaluator exactly once when every
planner has been accounted for.

Key Features:
- Vanished planners count as completed with no candidate
- Unparseable plans are logged and never retried
- Evaluator guard: plan_manager_id is set at most once per phase
- Zero usable candidates fails the phase with PlanningExhaustedError
"""

from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any, Callable, List, Optional
import logging

from coordinator.config import PLAN_FILE_NAME
from coordinator.errors import PlanningExhaustedError
from coordinator.planning.models import (
    MultiPassPlanning,
    PlanSpec,
    UltraPlanPhase,
    UltraPlanSession,
)
from coordinator.planning.plan_parser import parse_plan_from_worktree
from coordinator.probes import instance_alive

logger = logging.getLogger(__name__)

NO_VALID_PLANS_MESSAGE = "all multi-pass planners completed but no valid plans were produced"


class ResumeOutcome(Enum):
    """What a resume call did."""
    RESTARTED = "restarted"
    WAITING = "waiting"
    EVALUATOR_RUNNING = "evaluator_running"
    EVALUATOR_TRIGGERED = "evaluator_triggered"
    FAILED = "failed"


@dataclass
class ResumeStatus:
    """
    Result of one resume call.

    Attributes:
        outcome: What the call did
        processed: Planners accounted for
        total: Planners recorded for the phase
        candidates: Usable candidate plans collected so far
    """
    outcome: ResumeOutcome
    processed: int = 0
    total: int = 0
    candidates: int = 0


@dataclass
class MultiPassResumeDeps:
    """
    Collaborators the resume logic calls into.

    Attributes:
        get_instance: Instance lookup by ID; None when the instance is gone
        is_running: Liveness probe for an instance ID
        parse_plan: Parses the plan in (worktree_path, objective); raises on failure
        run_planning: Starts multi-pass planning from scratch
        start_evaluator: Starts the evaluator over the candidates and returns its ID
        save_session: Persists the session holding the ultra-plan state
    """
    get_instance: Callable[[str], Optional[Any]]
    is_running: Callable[[str], bool]
    parse_plan: Callable[[str, str], PlanSpec]
    run_planning: Callable[[], None]
    start_evaluator: Callable[[List[PlanSpec]], str]
    save_session: Callable[[], None]


class MultiPassResumer:
    """Drives a multi-pass ultra-plan toward its evaluator."""

    def __init__(self, deps: MultiPassResumeDeps):
        """
        Initialize the resumer.

        Args:
            deps: Collaborator callables
        """
        self.deps = deps

    @classmethod
    def for_session(
        cls,
        session: Any,
        store: Any,
        run_planning: Callable[[], None],
        start_evaluator: Callable[[List[PlanSpec]], str],
        is_running: Optional[Callable[[str], bool]] = None,
        plan_file_name: str = PLAN_FILE_NAME,
    ) -> "MultiPassResumer":
        """
        Build a resumer wired to a loaded session and its store.

        Liveness defaults to probing each instance's tmux session (or PID).
        """
        if is_running is None:
            def is_running(instance_id: str) -> bool:
                instance = session.get_instance(instance_id)
                return instance is not None and instance_alive(instance)

        deps = MultiPassResumeDeps(
            get_instance=session.get_instance,
            is_running=is_running,
            parse_plan=partial(parse_plan_from_worktree, plan_file_name=plan_file_name),
            run_planning=run_planning,
            start_evaluator=start_evaluator,
            save_session=lambda: store.save(session),
        )
        return cls(deps)

    def _save_best_effort(self, context: str) -> None:
        try:
            self.deps.save_session()
        except Exception as e:
            logger.warning(f"Failed to save session after {context}: {e}")

    def _collect(self, ultra: UltraPlanSession, planning: MultiPassPlanning) -> None:
        for index in planning.unprocessed_indices():
            planner_id = planning.plan_coordinator_ids[index]
            instance = self.deps.get_instance(planner_id)

            if instance is None:
                logger.warning(
                    f"Planner instance not found in session "
                    f"(index {index}, id {planner_id}); treating as completed"
                )
                planning.mark_processed(index)
                continue

            if self.deps.is_running(planner_id):
                logger.debug(f"Planner {index} ({planner_id}) still running")
                continue

            try:
                plan = self.deps.parse_plan(instance.worktree_path, ultra.objective)
            except Exception as e:
                logger.warning(
                    f"Failed to parse plan from completed planner "
                    f"(index {index}, id {planner_id}): {e}"
                )
                planning.mark_processed(index)
                continue

            planning.mark_processed(index, plan)
            logger.info(
                f"Collected plan from completed planner (index {index}, "
                f"id {planner_id}, {len(plan.tasks)} tasks)"
            )

    def resume(self, ultra: UltraPlanSession) -> ResumeStatus:
        """
        Advance multi-pass planning as far as current external state allows.

        Args:
            ultra: Ultra-plan state, updated in place

        Returns:
            ResumeStatus describing what happened

        Raises:
            PlanningExhaustedError: Every planner finished without a usable plan
        """
        if ultra.phase == UltraPlanPhase.FAILED:
            return ResumeStatus(ResumeOutcome.FAILED)

        planning = ultra.planning if isinstance(ultra.planning, MultiPassPlanning) else None
        if planning is None or not planning.plan_coordinator_ids:
            logger.info("No existing planners found, starting multi-pass planning")
            self.deps.run_planning()
            return ResumeStatus(ResumeOutcome.RESTARTED)

        total = len(planning.plan_coordinator_ids)
        planning.ensure_candidate_capacity()
        self._collect(ultra, planning)

        processed = total - len(planning.unprocessed_indices())
        candidates = planning.collected_candidates()

        def status(outcome: ResumeOutcome) -> ResumeStatus:
            return ResumeStatus(outcome, processed, total, len(candidates))

        if processed < total:
            logger.debug(f"Multi-pass planning in progress ({processed}/{total} planners completed)")
            return status(ResumeOutcome.WAITING)

        if ultra.plan_manager_id:
            return status(ResumeOutcome.EVALUATOR_RUNNING)

        if not candidates:
            ultra.phase = UltraPlanPhase.FAILED
            ultra.error = NO_VALID_PLANS_MESSAGE
            logger.error(NO_VALID_PLANS_MESSAGE)
            self._save_best_effort("failing multi-pass planning")
            raise PlanningExhaustedError(NO_VALID_PLANS_MESSAGE)

        logger.info(f"Starting plan evaluator with {len(candidates)}/{total} valid plans")
        ultra.plan_manager_id = self.deps.start_evaluator(candidates)
        ultra.phase = UltraPlanPhase.PLAN_SELECTION
        self._save_best_effort("triggering evaluator")
        return status(ResumeOutcome.EVALUATOR_TRIGGERED)
