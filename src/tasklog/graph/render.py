"""Graphviz export of the dependency graph (dark theme palette)."""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Iterable

from tasklog.errors import TaskLogError
from tasklog.models import DependencyType, EdgeDirection, Task, TaskStatus
from tasklog.store import TaskStore

logger = logging.getLogger(__name__)

STATUS_COLORS = {
    TaskStatus.CLOSED.value: "#4a5568",
    TaskStatus.TOMBSTONE.value: "#4a5568",
    TaskStatus.IN_PROGRESS.value: "#3182ce",
    TaskStatus.BLOCKED.value: "#e53e3e",
    TaskStatus.DEFERRED.value: "#d69e2e",
    TaskStatus.PINNED.value: "#805ad5",
}
PRIORITY_COLORS = {
    0: "#e53e3e",
    1: "#ed8936",
    2: "#48bb78",
    3: "#4299e1",
}
BACKLOG_COLOR = "#a0aec0"
EDGE_STYLES = {
    DependencyType.BLOCKS.value: ("#e53e3e", "bold"),
    DependencyType.PARENT_CHILD.value: ("#3182ce", "dashed"),
    DependencyType.RELATED.value: ("#a0aec0", "dotted"),
    DependencyType.DISCOVERED_FROM.value: ("#805ad5", "dotted"),
}
TITLE_WIDTH = 30
DOT_TIMEOUT_SECONDS = 60


def to_dot(
    store: TaskStore,
    task_ids: Iterable[str] | None = None,
    include_closed: bool = False,
) -> str:
    """Render tasks and the edges between them as a DOT digraph."""

    ids = list(task_ids) if task_ids is not None else store.all_task_ids()
    tasks = [task for task in (store.find(task_id) for task_id in ids) if task is not None]
    if not include_closed:
        tasks = [task for task in tasks if not task.is_closed]

    lines = [
        "digraph dependencies {",
        "  rankdir=TB;",
        "  node [shape=box, style=filled];",
        "",
    ]
    for task in tasks:
        label = f"{task.id}\\n{_escape(_truncate(task.title, TITLE_WIDTH))}"
        lines.append(f'  "{task.id}" [label="{label}", fillcolor="{node_color(task)}"];')
    lines.append("")

    included = {task.id for task in tasks}
    for task in tasks:
        if task.id is None:
            continue
        for dep in store.find_dependencies(task.id, EdgeDirection.OUTGOING):
            if dep.target_id not in included:
                continue
            lines.append(f'  "{dep.source_id}" -> "{dep.target_id}" [{edge_style(dep.dep_type)}];')
    lines.append("}")
    return "\n".join(lines)


def to_svg(
    store: TaskStore,
    task_ids: Iterable[str] | None = None,
    include_closed: bool = False,
) -> str:
    """Pipe the DOT rendering through ``dot -Tsvg`` with a transparent background."""

    dot = to_dot(store, task_ids=task_ids, include_closed=include_closed)
    try:
        completed = subprocess.run(
            ["dot", "-Tsvg"],
            input=dot,
            capture_output=True,
            text=True,
            timeout=DOT_TIMEOUT_SECONDS,
            check=False,
        )
    except FileNotFoundError as error:
        raise TaskLogError("Graphviz 'dot' executable not found") from error
    if completed.returncode != 0:
        logger.warning("Graphviz exited with code %d", completed.returncode)
        raise TaskLogError(f"Graphviz error: {completed.stderr.strip()}")
    return completed.stdout.replace('fill="white"', 'fill="none"')


def node_color(task: Task) -> str:
    status_color = STATUS_COLORS.get(task.status)
    if status_color is not None:
        return status_color
    return PRIORITY_COLORS.get(task.priority, BACKLOG_COLOR)


def edge_style(dep_type: str) -> str:
    style = EDGE_STYLES.get(dep_type)
    if style is None:
        return ""
    color, line = style
    return f'color="{color}", style={line}'


def _truncate(text: str, width: int) -> str:
    if len(text) <= width:
        return text
    return f"{text[: width - 3]}..."


def _escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')
