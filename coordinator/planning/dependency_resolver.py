"""
Plan Dependency Resolver
========================

Builds the task dependency graph of a plan and computes its layered
execution order.

Key Features:
- Identity map with duplicate-ID detection
- Self and unknown dependency detection
- Three-colour DFS cycle detection reporting every distinct cycle
- Layered topological sort: each layer holds mutually independent tasks
  in original input order
- ensure_plan_computed() fills in cached graph/order on loaded plans
"""

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Sequence, Tuple
import logging

from coordinator.planning.models import PlannedTask, PlanSpec

logger = logging.getLogger(__name__)

_WHITE, _GRAY, _BLACK = 0, 1, 2


@dataclass
class DependencyGraph:
    """
    Result of dependency resolution.

    Attributes:
        task_ids: Unique task IDs in input order
        edges: Task ID -> dependency IDs as declared (first occurrence wins
            for duplicated IDs)
        execution_order: Layers of task IDs that may run concurrently
        cycles: Detected cycles as ID tuples closed on their first element
        missing_deps: (task_id, dependency_id) pairs naming unknown tasks
        self_deps: Task IDs that depend on themselves
        duplicate_ids: IDs declared by more than one task
        unscheduled: Task IDs the layering could not place
    """
    task_ids: List[str] = field(default_factory=list)
    edges: Dict[str, List[str]] = field(default_factory=dict)
    execution_order: List[List[str]] = field(default_factory=list)
    cycles: List[Tuple[str, ...]] = field(default_factory=list)
    missing_deps: List[Tuple[str, str]] = field(default_factory=list)
    self_deps: List[str] = field(default_factory=list)
    duplicate_ids: List[str] = field(default_factory=list)
    unscheduled: List[str] = field(default_factory=list)

    @property
    def is_acyclic(self) -> bool:
        return not self.cycles and not self.unscheduled

    def layer_of(self, task_id: str) -> int:
        for index, layer in enumerate(self.execution_order):
            if task_id in layer:
                return index
        return -1


class DependencyResolver:
    """
    Resolves plan task dependencies into an execution order.

    Unknown and self dependencies are recorded but ignored when ordering, so
    a plan with those errors still gets the best order available.
    """

    def resolve(self, tasks: Sequence[PlannedTask]) -> DependencyGraph:
        """
        Resolve dependencies for a list of tasks.

        Args:
            tasks: Planned tasks in input order

        Returns:
            DependencyGraph with execution order and structural findings
        """
        graph = DependencyGraph()
        if not tasks:
            return graph

        task_map: Dict[str, PlannedTask] = {}
        for task in tasks:
            if task.id in task_map:
                if task.id not in graph.duplicate_ids:
                    graph.duplicate_ids.append(task.id)
                    logger.warning(f"Duplicate task ID in plan: {task.id}")
                continue
            task_map[task.id] = task
            graph.task_ids.append(task.id)

        # Edges usable for ordering: known, non-self dependencies
        usable: Dict[str, List[str]] = {}
        for task_id in graph.task_ids:
            declared = task_map[task_id].depends_on
            graph.edges[task_id] = list(declared)
            usable[task_id] = []
            for dep_id in declared:
                if dep_id == task_id:
                    if task_id not in graph.self_deps:
                        graph.self_deps.append(task_id)
                elif dep_id not in task_map:
                    graph.missing_deps.append((task_id, dep_id))
                    logger.warning(f"Task {task_id} has invalid dependency: {dep_id}")
                elif dep_id not in usable[task_id]:
                    usable[task_id].append(dep_id)

        graph.cycles = self._detect_cycles(graph.task_ids, usable)
        graph.execution_order, graph.unscheduled = self._layer(graph.task_ids, usable)

        if graph.unscheduled:
            logger.warning(f"Tasks left unscheduled by dependency cycles: {graph.unscheduled}")
        logger.debug(
            f"Resolved {len(graph.task_ids)} tasks into "
            f"{len(graph.execution_order)} execution layers"
        )
        return graph

    def _layer(self, task_ids: List[str], usable: Dict[str, List[str]]) -> Tuple[List[List[str]], List[str]]:
        position = {tid: i for i, tid in enumerate(task_ids)}
        pending = {tid: len(usable[tid]) for tid in task_ids}
        dependents: Dict[str, List[str]] = {tid: [] for tid in task_ids}
        for tid in task_ids:
            for dep_id in usable[tid]:
                dependents[dep_id].append(tid)

        order: List[List[str]] = []
        scheduled = set()
        layer = [tid for tid in task_ids if pending[tid] == 0]
        while layer:
            order.append(layer)
            scheduled.update(layer)
            ready = []
            for tid in layer:
                for child in dependents[tid]:
                    pending[child] -= 1
                    if pending[child] == 0:
                        ready.append(child)
            layer = sorted(ready, key=position.__getitem__)

        remaining = [tid for tid in task_ids if tid not in scheduled]
        return order, remaining

    def _detect_cycles(self, task_ids: List[str], usable: Dict[str, List[str]]) -> List[Tuple[str, ...]]:
        """
        Find dependency cycles with a white/gray/black DFS.

        Any edge into a gray node closes a cycle; each distinct cycle is
        reported once regardless of which member the walk entered it from.
        The walk keeps an explicit stack so long dependency chains do not
        hit the interpreter recursion limit.

        Returns:
            Cycles as tuples like ("A", "B", "A")
        """
        color = {tid: _WHITE for tid in task_ids}
        cycles: List[Tuple[str, ...]] = []
        seen = set()

        for root in task_ids:
            if color[root] != _WHITE:
                continue
            color[root] = _GRAY
            path = [root]
            stack: List[Tuple[str, Iterator[str]]] = [(root, iter(usable[root]))]
            while stack:
                task_id, deps = stack[-1]
                for dep_id in deps:
                    if color[dep_id] == _WHITE:
                        color[dep_id] = _GRAY
                        path.append(dep_id)
                        stack.append((dep_id, iter(usable[dep_id])))
                        break
                    if color[dep_id] == _GRAY:
                        members = path[path.index(dep_id):]
                        key = frozenset(members)
                        if key not in seen:
                            seen.add(key)
                            cycles.append(tuple(members + [dep_id]))
                else:
                    stack.pop()
                    path.pop()
                    color[task_id] = _BLACK

        return cycles


def ensure_plan_computed(plan: PlanSpec) -> PlanSpec:
    """
    Derive dependency_graph and execution_order when a plan lacks them.

    Returns:
        The same plan, updated in place
    """
    if not plan.tasks:
        return plan
    if not plan.dependency_graph:
        plan.dependency_graph = {t.id: list(t.depends_on) for t in plan.tasks}
    if not plan.execution_order:
        plan.execution_order = DependencyResolver().resolve(plan.tasks).execution_order
    return plan
