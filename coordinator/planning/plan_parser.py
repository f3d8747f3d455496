"""
Plan Parser
===========

Ingestion boundary for plans written by planner processes.

Planner output is normalized here so the validator and resolver only ever
see the canonical structure:
- "depends" is accepted as an alias for "depends_on"
- "complexity" is accepted as an alias for "est_complexity"
- a {"plan": {...}} wrapper is unwrapped when the root carries no tasks
"""

import json
import logging
import re
import uuid
from pathlib import Path
from typing import Any, Dict, Optional, Union

from coordinator.config import PLAN_FILE_NAME
from coordinator.errors import PlanParseError
from coordinator.planning.dependency_resolver import ensure_plan_computed
from coordinator.planning.models import PlanSpec
from coordinator.timestamps import utc_now

logger = logging.getLogger(__name__)

_PLAN_TAG = re.compile(r"<plan>\s*(.*?)\s*</plan>", re.DOTALL)


def _generate_plan_id() -> str:
    return f"plan-{uuid.uuid4().hex[:12]}"


def normalize_task(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Map alternate task field names onto the canonical ones."""
    task = dict(raw)
    if not task.get("depends_on") and task.get("depends"):
        task["depends_on"] = task["depends"]
    task.pop("depends", None)
    if not task.get("est_complexity") and task.get("complexity"):
        task["est_complexity"] = task["complexity"]
    task.pop("complexity", None)
    return task


def normalize_plan_data(data: Any) -> Dict[str, Any]:
    """
    Unwrap and normalize a decoded plan document.

    Raises:
        PlanParseError: If the document is not a JSON object
    """
    if not isinstance(data, dict):
        raise PlanParseError("plan JSON must be an object")
    if not data.get("tasks") and isinstance(data.get("plan"), dict):
        if data["plan"].get("tasks"):
            data = data["plan"]
    tasks = data.get("tasks") or []
    if not isinstance(tasks, list) or not all(isinstance(t, dict) for t in tasks):
        raise PlanParseError("plan tasks must be a list of objects")
    normalized = dict(data)
    normalized["tasks"] = [normalize_task(t) for t in tasks]
    return normalized


def plan_from_data(data: Any, objective: str = "", require_tasks: bool = True) -> PlanSpec:
    """
    Build a PlanSpec from decoded plan JSON.

    Args:
        data: Decoded JSON document
        objective: Objective to record when the document has none
        require_tasks: Raise when the plan has no tasks

    Returns:
        PlanSpec with dependency graph and execution order computed

    Raises:
        PlanParseError: Malformed document, or no tasks when required
    """
    normalized = normalize_plan_data(data)
    if require_tasks and not normalized["tasks"]:
        raise PlanParseError("plan contains no tasks")
    try:
        plan = PlanSpec.from_dict(normalized)
    except (TypeError, ValueError) as e:
        raise PlanParseError(f"invalid plan content: {e}")
    if not plan.id:
        plan.id = _generate_plan_id()
    if not plan.objective:
        plan.objective = objective
    if plan.created_at is None:
        plan.created_at = utc_now()
    return ensure_plan_computed(plan)


def parse_plan_json(text: str, objective: str = "", require_tasks: bool = True) -> PlanSpec:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise PlanParseError(f"failed to parse plan JSON: {e}")
    return plan_from_data(data, objective, require_tasks=require_tasks)


def parse_plan_from_file(path: Union[str, Path], objective: str = "", require_tasks: bool = True) -> PlanSpec:
    """
    Read and parse a plan file.

    Raises:
        PlanParseError: The file cannot be read or does not hold a plan
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise PlanParseError(f"failed to read plan file: {e}")
    return parse_plan_json(text, objective, require_tasks=require_tasks)


def parse_plan_from_output(output: str, objective: str = "") -> PlanSpec:
    """
    Extract a plan embedded in planner output as <plan>JSON</plan>.

    Raises:
        PlanParseError: No plan block, bad JSON, or no tasks
    """
    match = _PLAN_TAG.search(output or "")
    if not match:
        raise PlanParseError("no plan found in output (expected <plan>JSON</plan>)")
    return parse_plan_json(match.group(1).strip(), objective)


def plan_file_path(worktree_path: Union[str, Path], plan_file_name: str = PLAN_FILE_NAME) -> Path:
    return Path(worktree_path) / plan_file_name


def parse_plan_from_worktree(
    worktree_path: Union[str, Path],
    objective: str,
    plan_file_name: str = PLAN_FILE_NAME,
    output: Optional[str] = None,
) -> PlanSpec:
    """
    Parse the plan a planner left in its worktree.

    Falls back to the planner's captured output when the plan file is
    missing and output is supplied.

    Args:
        worktree_path: Planner's working directory
        objective: Objective the planner worked on
        plan_file_name: Plan file name inside the worktree
        output: Optional captured planner output

    Raises:
        PlanParseError: No usable plan was found
    """
    path = plan_file_path(worktree_path, plan_file_name)
    if path.is_file():
        return parse_plan_from_file(path, objective)
    if output:
        logger.debug(f"No plan file at {path}, trying planner output")
        return parse_plan_from_output(output, objective)
    raise PlanParseError(f"plan file not found: {path}")
