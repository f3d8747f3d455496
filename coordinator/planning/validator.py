"""
Plan Validator
==============

Structural and advisory validation of a PlanSpec.

Findings are aggregated into one ValidationResult instead of raised, so a
single bad task never prevents the rest of the plan from being checked.
Any error makes the plan invalid; warnings and info never do.

Key Features:
- Errors: empty plan, duplicate IDs, self dependencies, unknown
  dependencies, dependency cycles, incomplete execution order
- Warnings: files shared by tasks in the same execution layer
- Info: high-complexity tasks, missing titles or descriptions
- format_validation_report() for terminal output
"""

from typing import Dict, List, Optional
import logging

from coordinator.errors import ValidationFailedError
from coordinator.planning.dependency_resolver import DependencyGraph, DependencyResolver
from coordinator.planning.models import (
    PlanSpec,
    TaskComplexity,
    ValidationMessage,
    ValidationResult,
    ValidationSeverity,
)

logger = logging.getLogger(__name__)

ERROR = ValidationSeverity.ERROR
WARNING = ValidationSeverity.WARNING
INFO = ValidationSeverity.INFO


class PlanValidator:
    """Validates plans against structural rules and scheduling hazards."""

    def __init__(self, resolver: Optional[DependencyResolver] = None):
        self.resolver = resolver or DependencyResolver()

    def validate(self, plan: Optional[PlanSpec], graph: Optional[DependencyGraph] = None) -> ValidationResult:
        """
        Validate a plan.

        Args:
            plan: Canonical plan (aliases already normalized)
            graph: Already resolved graph of plan.tasks, to avoid resolving twice

        Returns:
            ValidationResult with every finding
        """
        result = ValidationResult()

        if plan is None:
            result.add(ERROR, "Plan is missing")
            return result

        if not plan.tasks:
            result.add(
                ERROR,
                "Plan has no tasks",
                suggestion="Add at least one task to the plan",
            )
            return result

        if graph is None:
            graph = self.resolver.resolve(plan.tasks)

        self._check_duplicates(graph, result)
        self._check_dependencies(graph, result)
        self._check_cycles(graph, result)
        self._check_task_details(plan, result)
        self._check_file_conflicts(plan, graph, result)

        logger.debug(
            f"Validated plan {plan.id or '<unnamed>'}: {result.error_count} errors, "
            f"{result.warning_count} warnings, {result.info_count} info"
        )
        return result

    def _check_duplicates(self, graph: DependencyGraph, result: ValidationResult) -> None:
        for task_id in graph.duplicate_ids:
            result.add(
                ERROR,
                f"Duplicate task ID '{task_id}'",
                task_id=task_id,
                field="id",
                suggestion="Give every task a unique ID",
            )

    def _check_dependencies(self, graph: DependencyGraph, result: ValidationResult) -> None:
        for task_id in graph.self_deps:
            result.add(
                ERROR,
                "Task depends on itself",
                task_id=task_id,
                field="depends_on",
                related_ids=[task_id],
                suggestion="Remove the self-dependency",
            )
        for task_id, dep_id in graph.missing_deps:
            result.add(
                ERROR,
                f"Depends on unknown task '{dep_id}'",
                task_id=task_id,
                field="depends_on",
                related_ids=[dep_id],
                suggestion=f"Remove '{dep_id}' from dependencies or create a task with that ID",
            )

    def _check_cycles(self, graph: DependencyGraph, result: ValidationResult) -> None:
        for cycle in graph.cycles:
            members = list(cycle[:-1])
            result.add(
                ERROR,
                f"Dependency cycle detected: {' -> '.join(cycle)}",
                task_id=members[0],
                field="depends_on",
                related_ids=members,
                suggestion="Remove one of the dependencies to break the cycle",
            )

        scheduled = sum(len(layer) for layer in graph.execution_order)
        if graph.unscheduled and not graph.cycles:
            result.add(
                ERROR,
                f"Execution order incomplete: only {scheduled} of "
                f"{len(graph.task_ids)} tasks scheduled",
                related_ids=list(graph.unscheduled),
                suggestion="Fix the dependency cycle to allow all tasks to be scheduled",
            )

    def _check_task_details(self, plan: PlanSpec, result: ValidationResult) -> None:
        for task in plan.tasks:
            if not task.title.strip():
                result.add(
                    INFO,
                    "Task has no title",
                    task_id=task.id,
                    field="title",
                    suggestion="Add a descriptive title for the task",
                )
            if not task.description.strip():
                result.add(
                    INFO,
                    "Task has no description",
                    task_id=task.id,
                    field="description",
                    suggestion="Add a detailed description for the task",
                )
            if task.est_complexity == TaskComplexity.HIGH:
                result.add(
                    INFO,
                    "High complexity task may benefit from splitting",
                    task_id=task.id,
                    field="est_complexity",
                    suggestion="Consider splitting into smaller, more manageable subtasks",
                )

    def _check_file_conflicts(self, plan: PlanSpec, graph: DependencyGraph, result: ValidationResult) -> None:
        """Emit one warning per file shared by tasks in the same layer."""
        files_by_task: Dict[str, List[str]] = {}
        for task in plan.tasks:
            files_by_task.setdefault(task.id, list(dict.fromkeys(task.files)))

        conflicts: Dict[str, List[str]] = {}
        for layer in graph.execution_order:
            file_to_tasks: Dict[str, List[str]] = {}
            for task_id in layer:
                for path in files_by_task.get(task_id, []):
                    file_to_tasks.setdefault(path, []).append(task_id)
            for path, task_ids in file_to_tasks.items():
                if len(task_ids) > 1:
                    bucket = conflicts.setdefault(path, [])
                    bucket.extend(t for t in task_ids if t not in bucket)

        for path, task_ids in conflicts.items():
            result.add(
                WARNING,
                f"File '{path}' is modified by multiple parallel tasks: {', '.join(task_ids)}",
                task_id=task_ids[0],
                field="files",
                related_ids=task_ids,
                suggestion="Add a dependency between these tasks to serialize them, or assign different files",
            )


def validate_plan(plan: Optional[PlanSpec], graph: Optional[DependencyGraph] = None) -> ValidationResult:
    return PlanValidator().validate(plan, graph)


def require_valid(plan: Optional[PlanSpec]) -> ValidationResult:
    """
    Validate a plan and raise if it has errors.

    Raises:
        ValidationFailedError: The plan has at least one error
    """
    result = validate_plan(plan)
    if not result.is_valid:
        raise ValidationFailedError(result)
    return result


def _format_message(message: ValidationMessage) -> List[str]:
    prefix = f"  - [{message.task_id}] " if message.task_id else "  - "
    lines = [f"{prefix}{message.message}"]
    if message.suggestion:
        lines.append(f"    Suggestion: {message.suggestion}")
    return lines


def format_validation_report(file_path: str, plan: Optional[PlanSpec], result: ValidationResult) -> str:
    """
    Render a validation result for a terminal.

    Returns:
        Multi-line report text
    """
    lines = [f"Validating: {file_path}", ""]

    if plan is not None:
        lines.append("Plan Summary:")
        lines.append(f"  Tasks: {len(plan.tasks)}")
        lines.append(f"  Execution Groups: {len(plan.execution_order)}")
        if plan.summary:
            summary = plan.summary
            if len(summary) > 100:
                summary = summary[:97] + "..."
            lines.append(f"  Summary: {summary}")
        lines.append("")

    lines.append("Status: VALID" if result.is_valid else "Status: INVALID")
    if result.messages:
        lines.append(
            f"  Errors: {result.error_count}, Warnings: {result.warning_count}, "
            f"Info: {result.info_count}"
        )
    lines.append("")

    for title, severity in (("Errors:", ERROR), ("Warnings:", WARNING), ("Info:", INFO)):
        messages = result.by_severity(severity)
        if not messages:
            continue
        lines.append(title)
        for message in messages:
            lines.extend(_format_message(message))
        lines.append("")

    return "\n".join(lines)
