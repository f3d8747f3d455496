"""
Test DependencyResolver implementation

Tests cover:
- Layered execution order and input-order stability within a layer
- Cycle detection (two-task, longer, multiple distinct cycles)
- Unknown, self and duplicate dependency bookkeeping
- ensure_plan_computed filling missing cached fields
"""

import sys
sys.path.insert(0, '.')

from coordinator.planning.dependency_resolver import DependencyResolver, ensure_plan_computed
from coordinator.planning.models import PlannedTask, PlanSpec


def task(task_id, deps=(), files=(), priority=0):
    return PlannedTask(id=task_id, title=f"Task {task_id}", description="work",
                       depends_on=list(deps), files=list(files), priority=priority)


def test_independent_tasks_share_one_layer():
    """Tasks without dependencies all run in the first layer"""
    graph = DependencyResolver().resolve([task("a"), task("b"), task("c")])

    assert graph.execution_order == [["a", "b", "c"]], f"Got {graph.execution_order}"
    assert graph.cycles == []
    assert graph.missing_deps == []


def test_fan_out_layers():
    """A, B(deps A), C(deps A) => [[A], [B, C]]"""
    tasks = [task("A"), task("B", ["A"]), task("C", ["A"])]

    graph = DependencyResolver().resolve(tasks)

    assert graph.execution_order == [["A"], ["B", "C"]], f"Got {graph.execution_order}"
    assert graph.is_acyclic


def test_layer_keeps_input_order_not_priority():
    """Members of a layer follow input order even when priorities disagree"""
    tasks = [task("z", priority=9), task("m", priority=1), task("a", priority=5)]

    graph = DependencyResolver().resolve(tasks)

    assert graph.execution_order == [["z", "m", "a"]]


def test_diamond_and_partition():
    """Every task appears exactly once, after all of its dependencies"""
    tasks = [
        task("4", ["2", "3"]),
        task("2", ["1"]),
        task("1"),
        task("3", ["1"]),
        task("5", ["4", "1"]),
    ]

    graph = DependencyResolver().resolve(tasks)

    flat = [tid for layer in graph.execution_order for tid in layer]
    assert sorted(flat) == ["1", "2", "3", "4", "5"]
    assert len(flat) == len(set(flat))
    for t in tasks:
        for dep in t.depends_on:
            assert graph.layer_of(dep) < graph.layer_of(t.id), f"{dep} must precede {t.id}"
    assert graph.execution_order == [["1"], ["2", "3"], ["4"], ["5"]]


def test_two_task_cycle():
    """A(deps B), B(deps A) is reported as one cycle naming both"""
    graph = DependencyResolver().resolve([task("A", ["B"]), task("B", ["A"])])

    assert graph.cycles == [("A", "B", "A")], f"Got {graph.cycles}"
    assert graph.execution_order == []
    assert graph.unscheduled == ["A", "B"]
    assert not graph.is_acyclic


def test_longer_cycle_after_acyclic_prefix():
    """Tasks outside the cycle are still scheduled"""
    tasks = [task("root"), task("x", ["root", "z"]), task("y", ["x"]), task("z", ["y"])]

    graph = DependencyResolver().resolve(tasks)

    assert len(graph.cycles) == 1
    assert set(graph.cycles[0]) == {"x", "y", "z"}
    assert graph.execution_order == [["root"]]
    assert graph.unscheduled == ["x", "y", "z"]


def test_multiple_distinct_cycles():
    """Each independent cycle is reported once"""
    tasks = [task("a", ["b"]), task("b", ["a"]), task("c", ["d"]), task("d", ["c"])]

    graph = DependencyResolver().resolve(tasks)

    assert len(graph.cycles) == 2
    assert {frozenset(c) for c in graph.cycles} == {frozenset("ab"), frozenset("cd")}


def test_self_and_unknown_dependencies_do_not_block_ordering():
    """Self and unknown edges are recorded but ignored when layering"""
    tasks = [task("a", ["a"]), task("b", ["a", "ghost"])]

    graph = DependencyResolver().resolve(tasks)

    assert graph.self_deps == ["a"]
    assert graph.missing_deps == [("b", "ghost")]
    assert graph.cycles == []
    assert graph.execution_order == [["a"], ["b"]]


def test_duplicate_ids_recorded_once():
    tasks = [task("a"), task("a", ["b"]), task("b"), task("a")]

    graph = DependencyResolver().resolve(tasks)

    assert graph.duplicate_ids == ["a"]
    assert graph.task_ids == ["a", "b"]
    assert graph.execution_order == [["a", "b"]]


def test_empty_task_list():
    graph = DependencyResolver().resolve([])

    assert graph.execution_order == []
    assert graph.task_ids == []


def test_ensure_plan_computed_fills_missing_fields():
    """Graph and order are derived when absent and kept when present"""
    plan = PlanSpec(id="p", tasks=[task("A"), task("B", ["A"])])

    ensure_plan_computed(plan)

    assert plan.dependency_graph == {"A": [], "B": ["A"]}
    assert plan.execution_order == [["A"], ["B"]]

    plan.execution_order = [["custom"]]
    ensure_plan_computed(plan)
    assert plan.execution_order == [["custom"]]


def test_long_chain_listed_dependents_first():
    """Deep chains resolve without hitting the recursion limit"""
    count = 2000
    tasks = [task(f"t{i}", [f"t{i + 1}"] if i + 1 < count else []) for i in range(count)]

    graph = DependencyResolver().resolve(tasks)

    assert graph.cycles == []
    assert graph.unscheduled == []
    assert len(graph.execution_order) == count
    assert graph.execution_order[0] == [f"t{count - 1}"]
    assert graph.execution_order[-1] == ["t0"]


def test_long_cycle_reported_once():
    count = 2000
    tasks = [task(f"t{i}", [f"t{(i + 1) % count}"]) for i in range(count)]

    graph = DependencyResolver().resolve(tasks)

    assert len(graph.cycles) == 1
    cycle = graph.cycles[0]
    assert cycle[0] == cycle[-1] == "t0"
    assert len(cycle) == count + 1
    assert graph.execution_order == []
    assert len(graph.unscheduled) == count
