"""Plan blueprints and the Workflows instantiated from them."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping

from tasklog.errors import TaskLogError
from tasklog.models import DEFAULT_PRIORITY, Task, TaskType
from tasklog.store import TaskStore

logger = logging.getLogger(__name__)

_DURATION_PATTERN = re.compile(r"^(\d+)([hdw])$")
_HOURS_PER_UNIT = {"h": 1, "d": 24, "w": 24 * 7}


class WorkflowService:
    """Lifecycle of Plans and Workflows on top of a ``TaskStore``."""

    def __init__(self, store: TaskStore) -> None:
        self.store = store

    def create_plan(
        self,
        title: str,
        *,
        description: str = "",
        task_type: str = TaskType.TASK.value,
        priority: int = DEFAULT_PRIORITY,
    ) -> Task:
        plan = Task(
            title=title,
            description=description,
            task_type=task_type,
            priority=priority,
            plan=True,
        )
        return self.store.create(plan)

    def add_step(
        self,
        plan_id: str,
        title: str,
        *,
        description: str = "",
        task_type: str = TaskType.TASK.value,
        priority: int = DEFAULT_PRIORITY,
    ) -> Task:
        self._require_plan(plan_id)
        step = Task(title=title, description=description, task_type=task_type, priority=priority)
        return self.store.create_child(plan_id, step)

    def start(self, plan_id: str, variables: Mapping[str, object] | None = None) -> Task:
        """Instantiate a persistent Workflow that is exported with the log."""

        return self._instantiate(plan_id, variables or {}, ephemeral=False)

    def execute(self, plan_id: str, variables: Mapping[str, object] | None = None) -> Task:
        """Instantiate an ephemeral Workflow that stays local and is garbage-collected."""

        return self._instantiate(plan_id, variables or {}, ephemeral=True)

    def convert_to_plan(self, task_id: str) -> Task:
        task = self.store.find_or_raise(task_id)
        if task.is_plan:
            raise TaskLogError("Task is already a Plan")
        if task.is_ephemeral:
            raise TaskLogError("Cannot convert ephemeral tasks to Plans")
        return self.store.mark_as_plan(task_id)

    def discard(self, workflow_id: str) -> None:
        """Delete an ephemeral Workflow and its steps."""

        workflow = self.store.find_or_raise(workflow_id)
        if not workflow.is_discardable:
            raise TaskLogError("Can only discard ephemeral Workflows")
        for child in self.store.children(workflow_id):
            if child.id is not None:
                self.store.delete(child.id)
        self.store.delete(workflow_id)
        logger.info("Discarded workflow %s", workflow_id)

    def summarize(self, workflow_id: str, summary: str) -> Task:
        """Append ``summary`` to the Workflow notes, then close it and its steps."""

        workflow = self.store.find_or_raise(workflow_id)
        if workflow.is_plan:
            raise TaskLogError(f"{workflow_id} is a Plan; Plans cannot be closed")
        workflow.notes = f"{workflow.notes}\n\n[Summary]\n{summary}".strip()
        workflow.close("summarized")
        self.store.update(workflow)

        for child in self.store.children(workflow_id):
            child.close("workflow summarized")
            self.store.update(child)
        return workflow

    def collect_garbage(self, max_age_hours: int = 24) -> int:
        return self.store.garbage_collect_ephemeral(max_age_hours)

    def _require_plan(self, plan_id: str) -> Task:
        plan = self.store.find_or_raise(plan_id)
        if not plan.is_plan:
            raise TaskLogError(f"{plan_id} is not a Plan")
        return plan

    def _instantiate(
        self,
        plan_id: str,
        variables: Mapping[str, object],
        *,
        ephemeral: bool,
    ) -> Task:
        plan = self._require_plan(plan_id)
        workflow = self.store.create(
            Task(
                title=interpolate(plan.title, variables),
                description=interpolate(plan.description, variables),
                task_type=plan.task_type,
                priority=plan.priority,
                source_plan_id=plan.id,
                ephemeral=ephemeral,
            ),
        )
        workflow.append_trace("INSTANTIATED", f"from Plan {plan.id}")
        self.store.update(workflow)
        if workflow.id is None:
            raise TaskLogError(f"Workflow from Plan {plan_id} was stored without an ID")

        for step in self.store.find_plan_steps(plan_id):
            self.store.create_child(
                workflow.id,
                Task(
                    title=interpolate(step.title, variables),
                    description=interpolate(step.description, variables),
                    task_type=step.task_type,
                    priority=step.priority,
                    ephemeral=ephemeral,
                ),
            )
        logger.info(
            "Created %s workflow %s from plan %s",
            "ephemeral" if ephemeral else "persistent",
            workflow.id,
            plan.id,
        )
        return workflow


def interpolate(text: str, variables: Mapping[str, object]) -> str:
    """Replace ``{{name}}`` placeholders; unknown placeholders are left as-is."""

    if not text or not variables:
        return text
    for name, value in variables.items():
        text = text.replace(f"{{{{{name}}}}}", str(value))
    return text


def parse_duration(value: str) -> int:
    """Convert ``24h`` / ``7d`` / ``2w`` into hours."""

    match = _DURATION_PATTERN.match(value.strip())
    if match is None:
        raise ValueError(f"Invalid duration {value!r}; expected <number><h|d|w>")
    return int(match.group(1)) * _HOURS_PER_UNIT[match.group(2)]
