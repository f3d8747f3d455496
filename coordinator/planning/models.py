"""
Planning Data Models
====================

Plans, tasks, validation results and the persisted multi-pass planning state.

Key Features:
- PlanSpec / PlannedTask with to_dict/from_dict in the plan JSON layout
- ValidationResult aggregating error/warning/info messages
- UltraPlanSession whose planning strategy is a closed tagged union
  (SinglePassPlanning | MultiPassPlanning) discriminated by "strategy"
"""

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Union
import logging

from coordinator.timestamps import format_time, parse_time, utc_now

logger = logging.getLogger(__name__)


class TaskComplexity(Enum):
    """Estimated task complexity."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value: Optional[str]) -> "TaskComplexity":
        if not value:
            return cls.MEDIUM
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            logger.warning(f"Unknown task complexity {value!r}, assuming medium")
            return cls.MEDIUM


class UltraPlanPhase(Enum):
    """Phases of an ultra-plan session."""
    PLANNING = "planning"
    PLAN_SELECTION = "plan_selection"
    CONTEXT_REFRESH = "context_refresh"
    EXECUTING = "executing"
    SYNTHESIS = "synthesis"
    REVISION = "revision"
    CONSOLIDATING = "consolidating"
    COMPLETE = "complete"
    FAILED = "failed"


class ValidationSeverity(Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass
class PlannedTask:
    """
    A single unit of planned work.

    Attributes:
        id: Identifier, unique within the plan
        title: Short task title
        description: What the task should accomplish
        files: Files the task expects to touch
        depends_on: IDs of tasks that must finish first
        priority: Lower runs earlier when the planner cares
        est_complexity: Estimated complexity
        issue_url: Optional tracker link
        no_code: True for tasks that produce no code changes
    """
    id: str
    title: str = ""
    description: str = ""
    files: List[str] = field(default_factory=list)
    depends_on: List[str] = field(default_factory=list)
    priority: int = 0
    est_complexity: TaskComplexity = TaskComplexity.MEDIUM
    issue_url: Optional[str] = None
    no_code: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "files": list(self.files),
            "depends_on": list(self.depends_on),
            "priority": self.priority,
            "est_complexity": self.est_complexity.value,
        }
        if self.issue_url:
            data["issue_url"] = self.issue_url
        if self.no_code:
            data["no_code"] = True
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlannedTask":
        """Create a PlannedTask from canonical (already normalized) JSON."""
        return cls(
            id=str(data.get("id", "")),
            title=data.get("title") or "",
            description=data.get("description") or "",
            files=list(data.get("files") or []),
            depends_on=list(data.get("depends_on") or []),
            priority=int(data.get("priority") or 0),
            est_complexity=TaskComplexity.parse(data.get("est_complexity")),
            issue_url=data.get("issue_url") or None,
            no_code=bool(data.get("no_code", False)),
        )


@dataclass
class PlanSpec:
    """
    A complete plan produced by a planner.

    dependency_graph and execution_order are cached projections of tasks;
    ensure_plan_computed() re-derives them when absent.

    Attributes:
        id: Plan identifier
        objective: The objective the plan addresses
        summary: Planner's summary of the approach
        tasks: Planned tasks in input order
        dependency_graph: Task ID -> IDs it depends on
        execution_order: Layers of task IDs that may run concurrently
        insights: Free-form observations from the planner
        constraints: Constraints the planner identified
        created_at: When the plan was produced
    """
    id: str = ""
    objective: str = ""
    summary: str = ""
    tasks: List[PlannedTask] = field(default_factory=list)
    dependency_graph: Dict[str, List[str]] = field(default_factory=dict)
    execution_order: List[List[str]] = field(default_factory=list)
    insights: List[str] = field(default_factory=list)
    constraints: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None

    def task_by_id(self, task_id: str) -> Optional[PlannedTask]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "objective": self.objective,
            "summary": self.summary,
            "tasks": [t.to_dict() for t in self.tasks],
            "dependency_graph": {k: list(v) for k, v in self.dependency_graph.items()},
            "execution_order": [list(group) for group in self.execution_order],
            "insights": list(self.insights),
            "constraints": list(self.constraints),
            "created_at": format_time(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlanSpec":
        return cls(
            id=data.get("id") or "",
            objective=data.get("objective") or "",
            summary=data.get("summary") or "",
            tasks=[PlannedTask.from_dict(t) for t in data.get("tasks") or []],
            dependency_graph={
                k: list(v or []) for k, v in (data.get("dependency_graph") or {}).items()
            },
            execution_order=[list(g) for g in data.get("execution_order") or []],
            insights=list(data.get("insights") or []),
            constraints=list(data.get("constraints") or []),
            created_at=parse_time(data.get("created_at")),
        )


@dataclass
class ValidationMessage:
    """
    A single validation finding.

    Attributes:
        severity: error, warning or info
        message: Human-readable description
        task_id: Task the finding is about, if any
        field: Plan field involved (depends_on, files, ...)
        suggestion: How to fix or improve the plan
        related_ids: Other tasks involved (cycle members, conflicting tasks)
    """
    severity: ValidationSeverity
    message: str
    task_id: Optional[str] = None
    field: Optional[str] = None
    suggestion: Optional[str] = None
    # "field" is an attribute here, so the dataclasses helper is qualified
    related_ids: List[str] = dataclasses.field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "severity": self.severity.value,
            "message": self.message,
        }
        if self.task_id:
            data["task_id"] = self.task_id
        if self.field:
            data["field"] = self.field
        if self.suggestion:
            data["suggestion"] = self.suggestion
        if self.related_ids:
            data["related_ids"] = list(self.related_ids)
        return data


@dataclass
class ValidationResult:
    """
    Aggregated outcome of validating a plan.

    A plan is valid when it has no error-severity messages; warnings and
    info never block execution.
    """
    messages: List[ValidationMessage] = field(default_factory=list)

    def add(self, severity: ValidationSeverity, message: str, **kwargs: Any) -> ValidationMessage:
        entry = ValidationMessage(severity=severity, message=message, **kwargs)
        self.messages.append(entry)
        return entry

    def _count(self, severity: ValidationSeverity) -> int:
        return sum(1 for m in self.messages if m.severity == severity)

    @property
    def error_count(self) -> int:
        return self._count(ValidationSeverity.ERROR)

    @property
    def warning_count(self) -> int:
        return self._count(ValidationSeverity.WARNING)

    @property
    def info_count(self) -> int:
        return self._count(ValidationSeverity.INFO)

    @property
    def is_valid(self) -> bool:
        return self.error_count == 0

    def by_severity(self, severity: ValidationSeverity) -> List[ValidationMessage]:
        return [m for m in self.messages if m.severity == severity]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.is_valid,
            "error_count": self.error_count,
            "warning_count": self.warning_count,
            "info_count": self.info_count,
            "messages": [m.to_dict() for m in self.messages],
        }


# =============================================================================
# Ultra-plan session state
# =============================================================================

@dataclass
class SinglePassPlanning:
    """One coordinator produces the plan directly."""
    coordinator_id: Optional[str] = None

    strategy = "single"

    def to_dict(self) -> Dict[str, Any]:
        return {"strategy": self.strategy, "coordinator_id": self.coordinator_id}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SinglePassPlanning":
        return cls(coordinator_id=data.get("coordinator_id") or None)


@dataclass
class MultiPassPlanning:
    """
    Several planners each produce a candidate plan for one evaluator.

    Attributes:
        plan_coordinator_ids: Instance IDs of the planners, by index
        processed_coordinators: Indices whose outcome has been collected
        candidate_plans: Parsed plan per index, None for unusable results
    """
    plan_coordinator_ids: List[str] = field(default_factory=list)
    processed_coordinators: Set[int] = field(default_factory=set)
    candidate_plans: List[Optional[PlanSpec]] = field(default_factory=list)

    strategy = "multi"

    def ensure_candidate_capacity(self) -> None:
        """Grow candidate_plans so every planner index is addressable."""
        missing = len(self.plan_coordinator_ids) - len(self.candidate_plans)
        if missing > 0:
            self.candidate_plans.extend([None] * missing)

    def mark_processed(self, index: int, plan: Optional[PlanSpec] = None) -> None:
        self.ensure_candidate_capacity()
        if plan is not None:
            self.candidate_plans[index] = plan
        self.processed_coordinators.add(index)

    def is_processed(self, index: int) -> bool:
        return index in self.processed_coordinators

    def unprocessed_indices(self) -> List[int]:
        return [
            i for i in range(len(self.plan_coordinator_ids))
            if i not in self.processed_coordinators
        ]

    @property
    def all_processed(self) -> bool:
        return not self.unprocessed_indices()

    def collected_candidates(self) -> List[PlanSpec]:
        return [p for p in self.candidate_plans if p is not None]

    def reset(self) -> None:
        self.plan_coordinator_ids = []
        self.processed_coordinators = set()
        self.candidate_plans = []

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy,
            "plan_coordinator_ids": list(self.plan_coordinator_ids),
            "processed_coordinators": sorted(self.processed_coordinators),
            "candidate_plans": [p.to_dict() if p else None for p in self.candidate_plans],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MultiPassPlanning":
        raw_processed = data.get("processed_coordinators") or []
        if isinstance(raw_processed, dict):
            # Older files stored the set as {"0": true, "2": true}
            processed = {int(k) for k, v in raw_processed.items() if v}
        else:
            processed = {int(i) for i in raw_processed}
        return cls(
            plan_coordinator_ids=list(data.get("plan_coordinator_ids") or []),
            processed_coordinators=processed,
            candidate_plans=[
                PlanSpec.from_dict(p) if p else None
                for p in data.get("candidate_plans") or []
            ],
        )


PlanningStrategy = Union[SinglePassPlanning, MultiPassPlanning]

_STRATEGIES = {
    SinglePassPlanning.strategy: SinglePassPlanning,
    MultiPassPlanning.strategy: MultiPassPlanning,
}


def planning_from_dict(data: Optional[Dict[str, Any]]) -> PlanningStrategy:
    """Decode the planning union; unknown discriminators are rejected."""
    if not data:
        return SinglePassPlanning()
    strategy = data.get("strategy", SinglePassPlanning.strategy)
    try:
        return _STRATEGIES[strategy].from_dict(data)
    except KeyError:
        raise ValueError(f"unknown planning strategy: {strategy!r}")


@dataclass
class UltraPlanSession:
    """
    Persisted state of an ultra-plan run inside a session.

    Attributes:
        objective: What the plan should achieve
        phase: Current phase
        planning: Strategy-specific planner bookkeeping
        plan_manager_id: Evaluator instance ID, set at most once per phase
        plan: The selected plan once evaluation finishes
        error: Terminal error text when phase is failed
        created_at: When the ultra-plan started
    """
    objective: str = ""
    phase: UltraPlanPhase = UltraPlanPhase.PLANNING
    planning: PlanningStrategy = field(default_factory=SinglePassPlanning)
    plan_manager_id: Optional[str] = None
    plan: Optional[PlanSpec] = None
    error: str = ""
    created_at: datetime = field(default_factory=utc_now)

    @property
    def is_multi_pass(self) -> bool:
        return isinstance(self.planning, MultiPassPlanning)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "objective": self.objective,
            "phase": self.phase.value,
            "planning": self.planning.to_dict(),
            "plan_manager_id": self.plan_manager_id,
            "plan": self.plan.to_dict() if self.plan else None,
            "error": self.error,
            "created_at": format_time(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UltraPlanSession":
        planning_data = data.get("planning")
        if planning_data is None and "plan_coordinator_ids" in data:
            # Flat layout: multi-pass fields stored beside the phase
            planning_data = dict(data, strategy=MultiPassPlanning.strategy)
        elif planning_data is None and data.get("coordinator_id"):
            planning_data = {"strategy": SinglePassPlanning.strategy,
                             "coordinator_id": data["coordinator_id"]}
        return cls(
            objective=data.get("objective") or "",
            phase=UltraPlanPhase(data.get("phase") or UltraPlanPhase.PLANNING.value),
            planning=planning_from_dict(planning_data),
            plan_manager_id=data.get("plan_manager_id") or None,
            plan=PlanSpec.from_dict(data["plan"]) if data.get("plan") else None,
            error=data.get("error") or "",
            created_at=parse_time(data.get("created_at")) or utc_now(),
        )
