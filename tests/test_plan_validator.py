"""
Tests for PlanValidator

Tests cover:
- Structural errors: empty plan, missing plan, duplicates, self/unknown
  dependencies, cycles
- File conflict warnings (one per shared filename, same layer only)
- Informational findings that never invalidate a plan
- require_valid() and the terminal report format
- Deep dependency chains and pre-resolved graphs
"""

import pytest

from coordinator.errors import ValidationFailedError
from coordinator.planning.dependency_resolver import DependencyResolver
from coordinator.planning.models import (
    PlannedTask,
    PlanSpec,
    TaskComplexity,
    ValidationMessage,
    ValidationSeverity,
)
from coordinator.planning.validator import (
    PlanValidator,
    format_validation_report,
    require_valid,
    validate_plan,
)


def task(task_id, deps=(), files=(), complexity=TaskComplexity.MEDIUM, title=None, description="work"):
    return PlannedTask(
        id=task_id,
        title=f"Task {task_id}" if title is None else title,
        description=description,
        depends_on=list(deps),
        files=list(files),
        est_complexity=complexity,
    )


def plan_of(*tasks):
    return PlanSpec(id="plan-1", objective="test", summary="Test plan", tasks=list(tasks))


def errors(result):
    return result.by_severity(ValidationSeverity.ERROR)


def warnings(result):
    return result.by_severity(ValidationSeverity.WARNING)


# =============================================================================
# Structural errors
# =============================================================================

class TestStructuralErrors:
    """Error-severity findings always make the plan invalid."""

    def test_valid_plan(self):
        result = validate_plan(plan_of(task("A"), task("B", ["A"]), task("C", ["A"])))

        assert result.is_valid
        assert result.error_count == 0
        assert result.warning_count == 0

    def test_missing_plan(self):
        result = validate_plan(None)

        assert not result.is_valid
        assert result.error_count == 1

    def test_empty_task_list_rejected(self):
        result = validate_plan(plan_of())

        assert not result.is_valid
        assert result.error_count == 1
        assert result.messages[0].message == "Plan has no tasks"

    def test_self_dependency(self):
        result = validate_plan(plan_of(task("A", ["A"])))

        assert not result.is_valid
        errs = errors(result)
        assert len(errs) == 1, f"Expected only the self-dependency error, got {errs}"
        assert errs[0].task_id == "A"
        assert errs[0].field == "depends_on"

    def test_unknown_dependency(self):
        result = validate_plan(plan_of(task("A"), task("B", ["missing"])))

        assert not result.is_valid
        errs = errors(result)
        assert len(errs) == 1
        assert errs[0].task_id == "B"
        assert "missing" in errs[0].message
        assert errs[0].related_ids == ["missing"]

    def test_two_task_cycle_names_both(self):
        result = validate_plan(plan_of(task("A", ["B"]), task("B", ["A"])))

        assert not result.is_valid
        cycle_errors = [m for m in errors(result) if "cycle" in m.message]
        assert len(cycle_errors) == 1, f"Expected one cycle error, got {result.messages}"
        assert set(cycle_errors[0].related_ids) == {"A", "B"}
        assert "A -> B -> A" in cycle_errors[0].message

    def test_three_task_cycle_detected(self):
        result = validate_plan(plan_of(task("A", ["C"]), task("B", ["A"]), task("C", ["B"])))

        assert not result.is_valid
        cycle_errors = [m for m in errors(result) if "cycle" in m.message]
        assert len(cycle_errors) == 1
        assert set(cycle_errors[0].related_ids) == {"A", "B", "C"}

    def test_duplicate_ids(self):
        result = validate_plan(plan_of(task("A"), task("A")))

        assert not result.is_valid
        assert any("Duplicate task ID" in m.message for m in errors(result))

    def test_bad_task_does_not_hide_others(self):
        """All problems are aggregated into one result"""
        result = validate_plan(plan_of(
            task("A", ["A"]),
            task("B", ["nope"]),
            task("C", ["D"]),
            task("D", ["C"]),
        ))

        assert result.error_count == 3, f"Got {[m.message for m in result.messages]}"


# =============================================================================
# Advisory findings
# =============================================================================

class TestAdvisoryFindings:
    """Warnings and info never block execution."""

    def test_same_layer_file_conflict_one_warning_per_file(self):
        result = validate_plan(plan_of(
            task("A", files=["main.py", "util.py"]),
            task("B", files=["main.py", "util.py"]),
            task("C", files=["main.py"]),
        ))

        assert result.is_valid, "File conflicts must not invalidate the plan"
        warns = warnings(result)
        assert len(warns) == 2, f"Expected one warning per shared file, got {warns}"
        by_file = {w.message.split("'")[1]: w for w in warns}
        assert by_file["main.py"].related_ids == ["A", "B", "C"]
        assert by_file["util.py"].related_ids == ["A", "B"]
        assert all(w.field == "files" for w in warns)
        assert all("dependency" in w.suggestion for w in warns)

    def test_dependent_tasks_sharing_file_do_not_conflict(self):
        result = validate_plan(plan_of(
            task("A", files=["main.py"]),
            task("B", ["A"], files=["main.py"]),
        ))

        assert result.warning_count == 0

    def test_high_complexity_is_informational(self):
        result = validate_plan(plan_of(task("A", complexity=TaskComplexity.HIGH)))

        assert result.is_valid
        assert result.info_count == 1
        assert result.messages[0].task_id == "A"
        assert "splitting" in result.messages[0].message

    def test_missing_title_and_description(self):
        result = validate_plan(plan_of(task("A", title="", description=" ")))

        assert result.is_valid
        fields = {m.field for m in result.by_severity(ValidationSeverity.INFO)}
        assert fields == {"title", "description"}


# =============================================================================
# Output helpers
# =============================================================================

class TestOutput:

    def test_to_dict_shape(self):
        result = validate_plan(plan_of(task("A", ["A"])))

        data = result.to_dict()

        assert data["valid"] is False
        assert data["error_count"] == 1
        assert data["warning_count"] == 0
        assert data["info_count"] == 0
        assert data["messages"][0]["severity"] == "error"
        assert data["messages"][0]["task_id"] == "A"
        assert "suggestion" in data["messages"][0]

    def test_require_valid_raises_with_result(self):
        with pytest.raises(ValidationFailedError) as exc_info:
            require_valid(plan_of(task("A", ["missing"])))

        assert exc_info.value.result.error_count == 1

    def test_require_valid_passes_warnings(self):
        result = require_valid(plan_of(task("A", files=["x"]), task("B", files=["x"])))

        assert result.warning_count == 1

    def test_report_format(self):
        plan = plan_of(task("A", ["ghost"]), task("B", complexity=TaskComplexity.HIGH))
        plan.execution_order = [["A", "B"]]
        result = PlanValidator().validate(plan)

        report = format_validation_report("plan.json", plan, result)

        assert "Validating: plan.json" in report
        assert "Status: INVALID" in report
        assert "Errors: 1, Warnings: 0, Info: 1" in report
        assert "  - [A] Depends on unknown task 'ghost'" in report
        assert "    Suggestion: Remove 'ghost' from dependencies" in report
        assert report.index("Errors:\n") < report.index("Info:\n")


class TestMessagesAndGraphs:

    def test_message_with_field_and_related_ids(self):
        message = ValidationMessage(
            severity=ValidationSeverity.ERROR,
            message="Dependency cycle detected: A -> B -> A",
            task_id="A",
            field="depends_on",
            related_ids=["A", "B"],
        )
        other = ValidationMessage(severity=ValidationSeverity.INFO, message="note")

        assert message.to_dict()["field"] == "depends_on"
        assert message.to_dict()["related_ids"] == ["A", "B"]
        assert other.related_ids == []
        assert other.related_ids is not message.related_ids

    def test_deep_chain_is_valid(self):
        count = 2000
        plan = plan_of(*[task(f"t{i}", [f"t{i + 1}"] if i + 1 < count else []) for i in range(count)])

        result = validate_plan(plan)

        assert result.is_valid, f"Expected valid plan, got {errors(result)[:3]}"

    def test_pre_resolved_graph_is_used(self):
        plan = plan_of(task("A", files=["x.py"]), task("B", files=["x.py"]))
        graph = DependencyResolver().resolve(plan.tasks)

        result = validate_plan(plan, graph=graph)

        assert len(warnings(result)) == 1
        assert graph.execution_order == [["A", "B"]]
