"""
Tests for plan ingestion

Tests cover:
- Alias normalization ("depends", "complexity")
- {"plan": {...}} wrapper
- <plan> blocks in planner output
- Worktree plan file lookup and error reporting
"""

import json

import pytest

from coordinator.errors import PlanParseError
from coordinator.planning.models import TaskComplexity
from coordinator.planning.plan_parser import (
    normalize_plan_data,
    parse_plan_from_file,
    parse_plan_from_output,
    parse_plan_from_worktree,
    plan_from_data,
)


PLAN_DOC = {
    "summary": "Add caching",
    "tasks": [
        {"id": "t1", "title": "Cache layer", "description": "Add cache", "files": ["cache.py"]},
        {"id": "t2", "title": "Wire cache", "description": "Use it", "depends": ["t1"], "complexity": "high"},
    ],
    "insights": ["reads dominate"],
    "constraints": ["no new services"],
}


class TestNormalization:

    def test_aliases_mapped_to_canonical_fields(self):
        plan = plan_from_data(PLAN_DOC, objective="speed up")

        t2 = plan.task_by_id("t2")
        assert t2.depends_on == ["t1"]
        assert t2.est_complexity == TaskComplexity.HIGH
        assert plan.objective == "speed up"
        assert plan.id.startswith("plan-")
        assert plan.created_at is not None

    def test_canonical_fields_win_over_aliases(self):
        data = normalize_plan_data({"tasks": [
            {"id": "a", "depends_on": ["x"], "depends": ["y"], "est_complexity": "low", "complexity": "high"},
        ]})

        task = data["tasks"][0]
        assert task["depends_on"] == ["x"]
        assert task["est_complexity"] == "low"
        assert "depends" not in task and "complexity" not in task

    def test_wrapper_unwrapped(self):
        plan = plan_from_data({"plan": PLAN_DOC})

        assert [t.id for t in plan.tasks] == ["t1", "t2"]
        assert plan.summary == "Add caching"

    def test_computed_fields_derived(self):
        plan = plan_from_data(PLAN_DOC)

        assert plan.dependency_graph == {"t1": [], "t2": ["t1"]}
        assert plan.execution_order == [["t1"], ["t2"]]

    def test_no_tasks_rejected_when_required(self):
        with pytest.raises(PlanParseError, match="no tasks"):
            plan_from_data({"summary": "empty", "tasks": []})

    def test_no_tasks_allowed_for_validation(self):
        plan = plan_from_data({"summary": "empty"}, require_tasks=False)

        assert plan.tasks == []

    def test_non_object_rejected(self):
        with pytest.raises(PlanParseError):
            plan_from_data(["not", "a", "plan"])


class TestSources:

    def test_parse_from_output(self):
        output = f"Here is my plan:\n<plan>\n{json.dumps(PLAN_DOC)}\n</plan>\nDone."

        plan = parse_plan_from_output(output, objective="obj")

        assert len(plan.tasks) == 2
        assert plan.objective == "obj"

    def test_output_without_plan_block(self):
        with pytest.raises(PlanParseError, match="no plan found"):
            parse_plan_from_output("I could not decide.")

    def test_parse_from_file_bad_json(self, tmp_path):
        path = tmp_path / "plan.json"
        path.write_text("{not json")

        with pytest.raises(PlanParseError, match="failed to parse plan JSON"):
            parse_plan_from_file(path)

    def test_parse_from_worktree(self, tmp_path):
        (tmp_path / ".claudio-plan.json").write_text(json.dumps(PLAN_DOC))

        plan = parse_plan_from_worktree(tmp_path, "objective")

        assert [t.id for t in plan.tasks] == ["t1", "t2"]

    def test_worktree_without_plan_file(self, tmp_path):
        with pytest.raises(PlanParseError, match="plan file not found"):
            parse_plan_from_worktree(tmp_path, "objective")

    def test_worktree_falls_back_to_output(self, tmp_path):
        output = f"<plan>{json.dumps(PLAN_DOC)}</plan>"

        plan = parse_plan_from_worktree(tmp_path, "objective", output=output)

        assert len(plan.tasks) == 2
