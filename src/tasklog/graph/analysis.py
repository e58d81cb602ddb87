"""Read-only analytics over the stored dependency graph."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field

from tasklog.models import BLOCKING_TYPES, EdgeDirection, Task, TaskStatus, TreeDirection
from tasklog.store import TaskFilters, TaskStore

BOTTLENECK_DEGREE = 3


@dataclass(slots=True)
class TreeNode:
    id: str
    title: str
    status: str
    priority: int
    children: list[TreeNode] = field(default_factory=list)


@dataclass(slots=True)
class Bottleneck:
    id: str
    title: str
    incoming: int
    outgoing: int

    @property
    def degree(self) -> int:
        return self.incoming + self.outgoing


@dataclass(slots=True)
class GraphAnalysis:
    total_tasks: int
    open_tasks: int
    ready_tasks: int
    blocked_tasks: int
    orphan_tasks: int
    bottlenecks: list[Bottleneck] = field(default_factory=list)


class DependencyGraph:
    """Tree, path, and health queries on top of a ``TaskStore``."""

    def __init__(self, store: TaskStore) -> None:
        self.store = store

    def dependency_tree(
        self,
        task_id: str,
        direction: TreeDirection = TreeDirection.BLOCKING,
        max_depth: int = 10,
    ) -> TreeNode | None:
        """Nested view rooted at ``task_id``.

        ``blocking`` follows incoming blocking edges towards blockers,
        ``dependents`` follows every outgoing edge. Each branch carries its own
        visited set, so a task reachable by two routes appears under both.
        """

        task = self.store.find_or_raise(task_id)
        return self._build_node(task, TreeDirection(direction), max_depth, set())

    def all_blockers(self, task_id: str) -> list[Task]:
        """Transitive blocking predecessors, nearest first."""

        return self._collect(task_id, EdgeDirection.INCOMING)

    def all_blocked(self, task_id: str) -> list[Task]:
        """Transitive blocking successors, nearest first."""

        return self._collect(task_id, EdgeDirection.OUTGOING)

    def critical_path(self, root_id: str) -> list[Task]:
        """Longest chain of blocking edges starting at ``root_id``.

        Ties go to the first child in edge creation order.
        """

        return self._longest_path(root_id, {})

    def root_tasks(self) -> list[Task]:
        """Tasks nothing blocks."""

        targets = {
            dep.target_id for dep in self.store.all_dependencies() if dep.is_blocking
        }
        return [task for task in self.store.list() if task.id not in targets]

    def leaf_tasks(self) -> list[Task]:
        """Tasks that block nothing."""

        sources = {
            dep.source_id for dep in self.store.all_dependencies() if dep.is_blocking
        }
        return [task for task in self.store.list() if task.id not in sources]

    def find_orphans(self) -> list[Task]:
        """Tasks whose ``parent_id`` points at a task that does not exist."""

        known = set(self.store.all_task_ids())
        return [
            task
            for task in self.store.list()
            if task.parent_id and task.parent_id not in known
        ]

    def find_bottlenecks(self) -> list[Bottleneck]:
        incoming: dict[str, int] = {}
        outgoing: dict[str, int] = {}
        for dep in self.store.all_dependencies():
            outgoing[dep.source_id] = outgoing.get(dep.source_id, 0) + 1
            incoming[dep.target_id] = incoming.get(dep.target_id, 0) + 1

        bottlenecks = []
        for task in self._open_tasks():
            if task.id is None:
                continue
            n_in = incoming.get(task.id, 0)
            n_out = outgoing.get(task.id, 0)
            if n_in >= BOTTLENECK_DEGREE or n_out >= BOTTLENECK_DEGREE:
                bottlenecks.append(
                    Bottleneck(id=task.id, title=task.title, incoming=n_in, outgoing=n_out),
                )
        bottlenecks.sort(key=lambda item: item.degree, reverse=True)
        return bottlenecks

    def analyze(self) -> GraphAnalysis:
        return GraphAnalysis(
            total_tasks=len(self.store.all_task_ids()),
            open_tasks=len(self._open_tasks()),
            ready_tasks=len(self.store.ready()),
            blocked_tasks=len(self.store.blocked()),
            orphan_tasks=len(self.find_orphans()),
            bottlenecks=self.find_bottlenecks(),
        )

    def _open_tasks(self) -> list[Task]:
        return self.store.list(TaskFilters(status=TaskStatus.OPEN.value))

    def _build_node(
        self,
        task: Task,
        direction: TreeDirection,
        remaining_depth: int,
        visited: set[str],
    ) -> TreeNode | None:
        if remaining_depth <= 0 or task.id is None or task.id in visited:
            return None
        visited.add(task.id)

        node = TreeNode(
            id=task.id,
            title=task.title,
            status=task.status,
            priority=task.priority,
        )
        if direction is TreeDirection.BLOCKING:
            deps = [
                dep
                for dep in self.store.find_dependencies(task.id, EdgeDirection.INCOMING)
                if dep.is_blocking
            ]
        else:
            deps = self.store.find_dependencies(task.id, EdgeDirection.OUTGOING)

        for dep in deps:
            related_id = dep.source_id if direction is TreeDirection.BLOCKING else dep.target_id
            related = self.store.find(related_id)
            if related is None:
                continue
            child = self._build_node(related, direction, remaining_depth - 1, set(visited))
            if child is not None:
                node.children.append(child)
        return node

    def _collect(self, start_id: str, direction: EdgeDirection) -> list[Task]:
        visited = {start_id}
        queue = deque([start_id])
        found: list[Task] = []
        while queue:
            current = queue.popleft()
            for dep in self.store.find_dependencies(current, direction):
                if dep.dep_type not in BLOCKING_TYPES:
                    continue
                related_id = dep.source_id if direction is EdgeDirection.INCOMING else dep.target_id
                if related_id in visited:
                    continue
                visited.add(related_id)
                task = self.store.find(related_id)
                if task is not None:
                    found.append(task)
                    queue.append(related_id)
        return found

    def _longest_path(self, task_id: str, memo: dict[str, list[Task]]) -> list[Task]:
        if task_id in memo:
            return memo[task_id]
        task = self.store.find(task_id)
        if task is None:
            return []
        # Seed the memo so a stray cycle terminates instead of recursing forever.
        memo[task_id] = [task]

        targets = [
            dep.target_id
            for dep in self.store.find_dependencies(task_id, EdgeDirection.OUTGOING)
            if dep.is_blocking
        ]
        longest: list[Task] = []
        for target_id in targets:
            path = self._longest_path(target_id, memo)
            if len(path) > len(longest):
                longest = path
        memo[task_id] = [task, *longest]
        return memo[task_id]
