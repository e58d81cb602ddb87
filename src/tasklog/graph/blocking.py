"""Arena-backed view of the blocking subgraph.

Pure data in, data out: the store loads task statuses and edges, this module
answers reachability (cycle checks) and computes the blocked set.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field

from tasklog.models import BLOCKING_TYPES, TERMINAL_STATUSES, DependencyType, TaskStatus

_PARENT_CHILD = DependencyType.PARENT_CHILD.value


@dataclass(slots=True)
class BlockingGraph:
    """Blocking edges over integer task handles.

    Nodes referenced only by edges (tasks missing from the store) get a handle
    with ``status=None``; they never block anything.
    """

    handles: dict[str, int] = field(default_factory=dict)
    ids: list[str] = field(default_factory=list)
    statuses: list[str | None] = field(default_factory=list)
    incoming: list[list[tuple[int, str]]] = field(default_factory=list)
    outgoing: list[list[tuple[int, str]]] = field(default_factory=list)

    @classmethod
    def build(
        cls,
        tasks: Iterable[tuple[str, str]],
        edges: Iterable[tuple[str, str, str]],
    ) -> BlockingGraph:
        """Build from ``(task_id, status)`` pairs and ``(source, target, type)`` triples.

        Non-blocking edge types are dropped.
        """

        graph = cls()
        for task_id, status in tasks:
            handle = graph._handle(task_id)
            graph.statuses[handle] = status
        for source_id, target_id, dep_type in edges:
            if dep_type not in BLOCKING_TYPES:
                continue
            source = graph._handle(source_id)
            target = graph._handle(target_id)
            graph.outgoing[source].append((target, dep_type))
            graph.incoming[target].append((source, dep_type))
        return graph

    def _handle(self, task_id: str) -> int:
        handle = self.handles.get(task_id)
        if handle is None:
            handle = len(self.ids)
            self.handles[task_id] = handle
            self.ids.append(task_id)
            self.statuses.append(None)
            self.incoming.append([])
            self.outgoing.append([])
        return handle

    def reaches(self, start_id: str, goal_id: str) -> bool:
        """True when ``goal_id`` is reachable from ``start_id`` along outgoing edges."""

        if start_id == goal_id:
            return True
        start = self.handles.get(start_id)
        goal = self.handles.get(goal_id)
        if start is None or goal is None:
            return False

        visited = [False] * len(self.ids)
        queue = deque([start])
        visited[start] = True
        while queue:
            current = queue.popleft()
            for target, _ in self.outgoing[current]:
                if target == goal:
                    return True
                if not visited[target]:
                    visited[target] = True
                    queue.append(target)
        return False

    def blocked_handles(self) -> set[int]:
        """Every handle blocked by an active blocker, whatever its own status.

        A blocker is active when it exists and is not closed/tombstoned. A closed
        parent still blocks its children through ``parent-child`` edges while the
        parent itself is blocked; ``blocks`` edges do not propagate that way.
        """

        blocked: set[int] = set()
        worklist: deque[int] = deque()
        for handle, sources in enumerate(self.incoming):
            if any(self._is_active(source) for source, _ in sources):
                blocked.add(handle)
                worklist.append(handle)

        while worklist:
            current = worklist.popleft()
            if self.statuses[current] is None or self._is_active(current):
                continue
            for target, dep_type in self.outgoing[current]:
                if dep_type == _PARENT_CHILD and target not in blocked:
                    blocked.add(target)
                    worklist.append(target)
        return blocked

    def blocked_ids(self) -> set[str]:
        """IDs of open tasks that are currently blocked."""

        return {
            self.ids[handle]
            for handle in self.blocked_handles()
            if self.statuses[handle] == TaskStatus.OPEN.value
        }

    def _is_active(self, handle: int) -> bool:
        status = self.statuses[handle]
        return status is not None and status not in TERMINAL_STATUSES
