from __future__ import annotations

import random
import subprocess

import allure
import pytest

from tasklog.errors import DependencyCycleError, TaskLogError
from tasklog.graph import render
from tasklog.graph.analysis import DependencyGraph
from tasklog.graph.blocking import BlockingGraph
from tasklog.models import Dependency, Task, TaskStatus, TreeDirection
from tasklog.store import TaskStore

pytestmark = [
    allure.epic("Task Tracking"),
    allure.feature("Dependency Graph"),
]


def _task(store: TaskStore, title: str, **kwargs) -> str:
    task = store.create(Task(title=title, **kwargs))
    assert task.id is not None
    return task.id


def _close(store: TaskStore, task_id: str) -> None:
    task = store.find_or_raise(task_id)
    task.close()
    store.update(task)


def _expected_blocked(store: TaskStore) -> set[str]:
    """Recursive recomputation of the blocked set, independent of the worklist engine."""
    statuses = {task_id: store.find_or_raise(task_id).status for task_id in store.all_task_ids()}
    edges = [dep for dep in store.all_dependencies() if dep.is_blocking]

    def is_blocked(task_id: str, seen: frozenset[str]) -> bool:
        if task_id in seen:
            return False
        for dep in edges:
            if dep.target_id != task_id or dep.source_id not in statuses:
                continue
            if statuses[dep.source_id] not in {"closed", "tombstone"}:
                return True
            if dep.dep_type == "parent-child" and is_blocked(dep.source_id, seen | {task_id}):
                return True
        return False

    return {
        task_id
        for task_id, status in statuses.items()
        if status == "open" and is_blocked(task_id, frozenset())
    }


def test_blocks_scenario_ready_then_released(store: TaskStore) -> None:
    a = _task(store, "A", priority=1)
    b = _task(store, "B", priority=2)

    store.add_dependency(Dependency(source_id=a, target_id=b, dep_type="blocks"))

    assert [task.id for task in store.ready()] == [a]
    assert [task.id for task in store.blocked()] == [b]

    _close(store, a)

    assert [task.id for task in store.ready()] == [b]
    assert store.blocked() == []


def test_reverse_edge_is_rejected_as_cycle(store: TaskStore) -> None:
    a = _task(store, "A")
    b = _task(store, "B")
    store.add_dependency(Dependency(source_id=a, target_id=b, dep_type="blocks"))
    blocked_before = store.blocked_ids()

    with pytest.raises(DependencyCycleError):
        store.add_dependency(Dependency(source_id=b, target_id=a, dep_type="blocks"))

    edges = store.all_dependencies()
    assert [(edge.source_id, edge.target_id) for edge in edges] == [(a, b)]
    assert store.blocked_ids() == blocked_before


def test_transitive_cycle_through_mixed_blocking_types_is_rejected(store: TaskStore) -> None:
    a = _task(store, "A")
    b = _task(store, "B")
    c = _task(store, "C")
    store.add_dependency(Dependency(source_id=a, target_id=b, dep_type="blocks"))
    store.add_dependency(Dependency(source_id=b, target_id=c, dep_type="parent-child"))

    with pytest.raises(DependencyCycleError):
        store.add_dependency(Dependency(source_id=c, target_id=a, dep_type="blocks"))


def test_non_blocking_edges_skip_cycle_check_and_cache(store: TaskStore) -> None:
    a = _task(store, "A")
    b = _task(store, "B")
    store.add_dependency(Dependency(source_id=a, target_id=b, dep_type="blocks"))

    store.add_dependency(Dependency(source_id=b, target_id=a, dep_type="related"))

    assert len(store.all_dependencies()) == 2
    assert store.blocked_ids() == {b}


def test_identical_edge_is_stored_once(store: TaskStore) -> None:
    a = _task(store, "A")
    b = _task(store, "B")

    first = store.add_dependency(Dependency(source_id=a, target_id=b))
    second = store.add_dependency(Dependency(source_id=a, target_id=b))

    assert second.id == first.id
    assert len(store.all_dependencies()) == 1


def test_remove_dependency_rebuilds_cache(store: TaskStore) -> None:
    a = _task(store, "A")
    b = _task(store, "B")
    store.add_dependency(Dependency(source_id=a, target_id=b))

    assert store.remove_dependency(a, b, "related") == 0
    assert store.blocked_ids() == {b}
    assert store.remove_dependency(a, b) == 1
    assert store.blocked_ids() == set()


def test_blocked_parent_propagates_to_children_even_when_closed(store: TaskStore) -> None:
    blocker = _task(store, "blocker")
    parent = _task(store, "parent")
    child = store.create_child(parent, Task(title="child")).id
    store.add_dependency(Dependency(source_id=blocker, target_id=parent))

    _close(store, parent)

    assert store.blocked_ids() == {child}

    _close(store, blocker)

    assert store.blocked_ids() == set()


def test_blocks_edge_does_not_propagate_through_closed_source(store: TaskStore) -> None:
    a = _task(store, "A")
    b = _task(store, "B")
    c = _task(store, "C")
    store.add_dependency(Dependency(source_id=a, target_id=b))
    store.add_dependency(Dependency(source_id=b, target_id=c))

    _close(store, b)

    assert store.blocked_ids() == set()


def test_random_mutations_keep_graph_acyclic_and_cache_consistent(store: TaskStore) -> None:
    rng = random.Random(7)
    ids = [_task(store, f"task {n}") for n in range(8)]
    for _ in range(40):
        source, target = rng.sample(ids, 2)
        dep_type = rng.choice(["blocks", "parent-child", "related"])
        try:
            store.add_dependency(Dependency(source_id=source, target_id=target, dep_type=dep_type))
        except DependencyCycleError:
            pass
        if rng.random() < 0.2:
            _close(store, rng.choice(ids))
        edges = store.all_dependencies()
        if edges and rng.random() < 0.1:
            edge = rng.choice(edges)
            store.remove_dependency(edge.source_id, edge.target_id, edge.dep_type)

        assert store.blocked_ids() == _expected_blocked(store)

    graph = BlockingGraph.build(
        [(task_id, "open") for task_id in ids],
        [(dep.source_id, dep.target_id, dep.dep_type) for dep in store.all_dependencies()],
    )
    for dep in store.all_dependencies():
        if dep.is_blocking:
            assert not graph.reaches(dep.target_id, dep.source_id)


def test_blocking_graph_handles_unknown_sources() -> None:
    graph = BlockingGraph.build(
        [("tl-aaaa", "open")],
        [("tl-gone", "tl-aaaa", "blocks"), ("tl-aaaa", "tl-bbbb", "related")],
    )

    assert graph.blocked_ids() == set()
    assert not graph.reaches("tl-aaaa", "tl-bbbb")


def test_dependency_tree_and_transitive_queries(store: TaskStore) -> None:
    a = _task(store, "A")
    b = _task(store, "B")
    c = _task(store, "C")
    d = _task(store, "D")
    store.add_dependency(Dependency(source_id=a, target_id=b))
    store.add_dependency(Dependency(source_id=b, target_id=c))
    store.add_dependency(Dependency(source_id=a, target_id=c))
    store.add_dependency(Dependency(source_id=c, target_id=d, dep_type="related"))
    graph = DependencyGraph(store)

    tree = graph.dependency_tree(c)
    assert tree is not None
    assert tree.id == c
    assert [child.id for child in tree.children] == [b, a]
    assert [grandchild.id for grandchild in tree.children[0].children] == [a]

    dependents = graph.dependency_tree(a, TreeDirection.DEPENDENTS, max_depth=2)
    assert dependents is not None
    assert [child.id for child in dependents.children] == [b, c]
    assert all(child.children == [] for child in dependents.children)

    assert [task.id for task in graph.all_blockers(c)] == [b, a]
    assert [task.id for task in graph.all_blocked(a)] == [b, c]
    assert graph.all_blocked(c) == []


def test_critical_path_and_roots_leaves(store: TaskStore) -> None:
    a = _task(store, "A")
    b = _task(store, "B")
    c = _task(store, "C")
    e = _task(store, "E")
    store.add_dependency(Dependency(source_id=a, target_id=e))
    store.add_dependency(Dependency(source_id=a, target_id=b))
    store.add_dependency(Dependency(source_id=b, target_id=c))
    graph = DependencyGraph(store)

    assert [task.id for task in graph.critical_path(a)] == [a, b, c]
    assert [task.id for task in graph.critical_path(c)] == [c]
    assert graph.critical_path("tl-0000") == []
    assert {task.id for task in graph.root_tasks()} == {a}
    assert {task.id for task in graph.leaf_tasks()} == {c, e}


def test_critical_path_ties_keep_first_child(store: TaskStore) -> None:
    root = _task(store, "root")
    first = _task(store, "first")
    second = _task(store, "second")
    store.add_dependency(Dependency(source_id=root, target_id=first))
    store.add_dependency(Dependency(source_id=root, target_id=second))

    assert [task.id for task in DependencyGraph(store).critical_path(root)] == [root, first]


def test_analyze_reports_orphans_and_bottlenecks(store: TaskStore) -> None:
    hub = _task(store, "hub")
    spokes = [_task(store, f"spoke {n}") for n in range(3)]
    for spoke in spokes:
        store.add_dependency(Dependency(source_id=hub, target_id=spoke))
    _task(store, "stray", parent_id="tl-0000")

    analysis = DependencyGraph(store).analyze()

    assert analysis.total_tasks == 5
    assert analysis.open_tasks == 5
    assert analysis.ready_tasks == 2
    assert analysis.blocked_tasks == 3
    assert analysis.orphan_tasks == 1
    assert [item.id for item in analysis.bottlenecks] == [hub]
    assert analysis.bottlenecks[0].outgoing == 3


def test_to_dot_renders_colored_nodes_and_styled_edges(store: TaskStore) -> None:
    a = _task(store, "A very long task title that will be truncated", priority=0)
    b = _task(store, "B", status=TaskStatus.IN_PROGRESS)
    closed = _task(store, "done")
    _close(store, closed)
    store.add_dependency(Dependency(source_id=a, target_id=b))
    store.add_dependency(Dependency(source_id=b, target_id=closed, dep_type="related"))

    dot = render.to_dot(store)

    assert dot.startswith("digraph dependencies {")
    assert f'"{a}" [label="{a}\\nA very long task title that...", fillcolor="#e53e3e"];' in dot
    assert 'fillcolor="#3182ce"' in dot
    assert f'"{a}" -> "{b}" [color="#e53e3e", style=bold];' in dot
    assert closed not in dot

    with_closed = render.to_dot(store, include_closed=True)
    assert f'"{b}" -> "{closed}" [color="#a0aec0", style=dotted];' in with_closed


def test_to_svg_replaces_white_fill(store: TaskStore, monkeypatch: pytest.MonkeyPatch) -> None:
    _task(store, "A")

    def fake_run(*args, **kwargs):
        return subprocess.CompletedProcess(args, 0, stdout='<svg fill="white"/>', stderr="")

    monkeypatch.setattr(render.subprocess, "run", fake_run)

    assert render.to_svg(store) == '<svg fill="none"/>'


def test_to_svg_surfaces_graphviz_failures(
    store: TaskStore,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def missing(*args, **kwargs):
        raise FileNotFoundError("dot")

    monkeypatch.setattr(render.subprocess, "run", missing)
    with pytest.raises(TaskLogError, match="not found"):
        render.to_svg(store)

    def failing(*args, **kwargs):
        return subprocess.CompletedProcess(args, 1, stdout="", stderr="syntax error")

    monkeypatch.setattr(render.subprocess, "run", failing)
    with pytest.raises(TaskLogError, match="syntax error"):
        render.to_svg(store)
