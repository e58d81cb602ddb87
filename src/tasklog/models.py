"""Domain models for tasks, dependency edges, labels, and comments."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from tasklog.errors import ValidationError
from tasklog.ids import content_hash
from tasklog.storage.common import parse_timestamp, utc_now


class TaskStatus(str, Enum):
    """Task lifecycle states."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    DEFERRED = "deferred"
    CLOSED = "closed"
    TOMBSTONE = "tombstone"
    PINNED = "pinned"


class TaskType(str, Enum):
    BUG = "bug"
    FEATURE = "feature"
    TASK = "task"
    EPIC = "epic"
    CHORE = "chore"


class DependencyType(str, Enum):
    """Edge kinds. Only ``blocks`` and ``parent-child`` gate ready work."""

    BLOCKS = "blocks"
    RELATED = "related"
    PARENT_CHILD = "parent-child"
    DISCOVERED_FROM = "discovered-from"


class EdgeDirection(str, Enum):
    INCOMING = "incoming"
    OUTGOING = "outgoing"
    BOTH = "both"


class TreeDirection(str, Enum):
    """``blocking`` walks towards blockers, ``dependents`` towards what waits on a task."""

    BLOCKING = "blocking"
    DEPENDENTS = "dependents"


class OrphanHandling(str, Enum):
    """What import does with tasks whose parent is missing from the log."""

    ALLOW = "allow"
    SKIP = "skip"
    RESURRECT = "resurrect"
    STRICT = "strict"


class ErrorPolicy(str, Enum):
    """Per-entity failure handling for bulk import/export."""

    STRICT = "strict"
    WARN = "warn"
    IGNORE = "ignore"


TASK_STATUSES = frozenset(status.value for status in TaskStatus)
TASK_TYPES = frozenset(task_type.value for task_type in TaskType)
DEPENDENCY_TYPES = frozenset(dep_type.value for dep_type in DependencyType)
BLOCKING_TYPES = frozenset({DependencyType.BLOCKS.value, DependencyType.PARENT_CHILD.value})
TERMINAL_STATUSES = frozenset({TaskStatus.CLOSED.value, TaskStatus.TOMBSTONE.value})
PRIORITIES = range(0, 5)
DEFAULT_PRIORITY = 2

_LABEL_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_:-]+$")


@dataclass(slots=True)
class Task:
    """One unit of work.

    The same record plays several roles depending on its flags:

    - Plan: ``plan`` is true; an immutable blueprint that stays ``open``.
    - Workflow: ``source_plan_id`` is set and ``plan`` is false.
    - Step: any task whose ``parent_id`` points at a Plan or Workflow.
    - Ephemeral: garbage-collectible and never exported to the log.
    """

    title: str
    id: str | None = None
    description: str = ""
    status: str = TaskStatus.OPEN.value
    priority: int = DEFAULT_PRIORITY
    task_type: str = TaskType.TASK.value
    assignee: str | None = None
    parent_id: str | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    closed_at: datetime | None = None
    content_hash: str | None = None
    plan: bool = False
    source_plan_id: str | None = None
    ephemeral: bool = False
    notes: str = ""

    def __post_init__(self) -> None:
        self.status = _enum_value(self.status)
        self.task_type = _enum_value(self.task_type)

    def errors(self) -> list[str]:
        problems: list[str] = []
        _check_text(problems, "Title", self.title)
        for label, value in (
            ("ID", self.id),
            ("Description", self.description),
            ("Assignee", self.assignee),
            ("Parent ID", self.parent_id),
            ("Source Plan ID", self.source_plan_id),
            ("Notes", self.notes),
        ):
            _check_text(problems, label, value, required=False)
        for label, value in (("Plan", self.plan), ("Ephemeral", self.ephemeral)):
            if not isinstance(value, bool):
                problems.append(f"{label} flag must be a boolean")
        if self.status not in TASK_STATUSES:
            problems.append(f"Invalid status: {self.status}")
        if not isinstance(self.priority, int) or self.priority not in PRIORITIES:
            problems.append(f"Invalid priority: {self.priority}")
        if self.task_type not in TASK_TYPES:
            problems.append(f"Invalid type: {self.task_type}")
        if self.plan is True and self.ephemeral is True:
            problems.append("Plans cannot be ephemeral")
        if self.plan is True and self.status != TaskStatus.OPEN.value:
            problems.append("Plans cannot change status")
        if self.plan is True and self.source_plan_id:
            problems.append("Plans cannot be derived from other Plans")
        return problems

    def validate(self) -> None:
        problems = self.errors()
        if problems:
            raise ValidationError(", ".join(problems))

    @property
    def is_open(self) -> bool:
        return self.status == TaskStatus.OPEN.value

    @property
    def is_closed(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_plan(self) -> bool:
        return bool(self.plan)

    @property
    def is_workflow(self) -> bool:
        return bool(self.source_plan_id) and not self.is_plan

    @property
    def is_ephemeral(self) -> bool:
        return bool(self.ephemeral)

    @property
    def is_executable(self) -> bool:
        return not self.is_plan

    @property
    def is_discardable(self) -> bool:
        return self.is_ephemeral

    def touch(self) -> None:
        """Bump ``updated_at`` and recompute the content hash."""

        self.updated_at = utc_now()
        self.update_content_hash()

    def close(self, reason: str | None = None) -> None:
        self.status = TaskStatus.CLOSED.value
        self.closed_at = utc_now()
        if reason:
            self.notes = f"{self.notes}\n[Closed] {reason}".strip()
        self.touch()

    def reopen(self, reason: str | None = None) -> None:
        self.status = TaskStatus.OPEN.value
        self.closed_at = None
        if reason:
            self.notes = f"{self.notes}\n[Reopened] {reason}".strip()
        self.touch()

    def append_trace(self, action: str, message: str) -> None:
        """Append a timestamped entry to the notes trace log."""

        stamp = utc_now().isoformat(timespec="seconds")
        self.notes = f"{self.notes}\n[{stamp}] [{action}] {message}".strip()
        self.touch()

    def update_content_hash(self) -> None:
        payload = self.to_dict()
        payload.pop("content_hash", None)
        payload.pop("updated_at", None)
        self.content_hash = content_hash(payload)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "type": self.task_type,
            "assignee": self.assignee,
            "parent_id": self.parent_id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "closed_at": _iso(self.closed_at),
            "content_hash": self.content_hash,
            "plan": self.plan,
            "source_plan_id": self.source_plan_id,
            "ephemeral": self.ephemeral,
            "notes": self.notes,
        }
        return {key: value for key, value in data.items() if value is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Task:
        priority = data.get("priority")
        return cls(
            id=_scalar(data, "id"),
            title=data.get("title") or "",
            description=data.get("description") or "",
            status=_scalar(data, "status") or TaskStatus.OPEN.value,
            priority=int(priority) if priority is not None else DEFAULT_PRIORITY,
            task_type=_scalar(data, "type") or TaskType.TASK.value,
            assignee=data.get("assignee"),
            parent_id=_scalar(data, "parent_id"),
            created_at=parse_timestamp(data.get("created_at")) or utc_now(),
            updated_at=parse_timestamp(data.get("updated_at")) or utc_now(),
            closed_at=parse_timestamp(data.get("closed_at")),
            content_hash=data.get("content_hash"),
            plan=_flag(data, "plan"),
            source_plan_id=data.get("source_plan_id"),
            ephemeral=_flag(data, "ephemeral"),
            notes=data.get("notes") or "",
        )


@dataclass(slots=True)
class Dependency:
    """Directed edge ``source -> target``; for blocking kinds the target waits on the source."""

    source_id: str
    target_id: str
    dep_type: str = DependencyType.BLOCKS.value
    id: str = field(default_factory=lambda: str(uuid4()))
    created_at: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        self.dep_type = _enum_value(self.dep_type)

    def errors(self) -> list[str]:
        problems: list[str] = []
        _check_text(problems, "ID", self.id)
        _check_text(problems, "Source ID", self.source_id)
        _check_text(problems, "Target ID", self.target_id)
        if self.dep_type not in DEPENDENCY_TYPES:
            problems.append(f"Invalid type: {self.dep_type}")
        if self.source_id and self.source_id == self.target_id:
            problems.append("Self-referential dependency not allowed")
        return problems

    def validate(self) -> None:
        problems = self.errors()
        if problems:
            raise ValidationError(", ".join(problems))

    @property
    def is_blocking(self) -> bool:
        return self.dep_type in BLOCKING_TYPES

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "source_id": self.source_id,
            "target_id": self.target_id,
            "type": self.dep_type,
            "created_at": _iso(self.created_at),
        }
        return {key: value for key, value in data.items() if value is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Dependency:
        return cls(
            id=_scalar(data, "id") or str(uuid4()),
            source_id=_scalar(data, "source_id") or "",
            target_id=_scalar(data, "target_id") or "",
            dep_type=_scalar(data, "type") or DependencyType.BLOCKS.value,
            created_at=parse_timestamp(data.get("created_at")) or utc_now(),
        )


@dataclass(slots=True)
class Label:
    """Tag on a task. ``dimension:value`` names act as single-valued state slots."""

    task_id: str
    name: str
    id: str = field(default_factory=lambda: str(uuid4()))
    created_at: datetime = field(default_factory=utc_now)

    def errors(self) -> list[str]:
        problems: list[str] = []
        _check_text(problems, "ID", self.id)
        _check_text(problems, "Task ID", self.task_id)
        _check_text(problems, "Name", self.name)
        if not isinstance(self.name, str) or _LABEL_NAME_PATTERN.match(self.name) is None:
            problems.append("Invalid label name")
        return problems

    def validate(self) -> None:
        problems = self.errors()
        if problems:
            raise ValidationError(", ".join(problems))

    @property
    def is_state_label(self) -> bool:
        return ":" in self.name

    @property
    def dimension(self) -> str | None:
        if not self.is_state_label:
            return None
        return self.name.split(":", 1)[0]

    @property
    def value(self) -> str:
        if not self.is_state_label:
            return self.name
        return self.name.split(":", 1)[1]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "task_id": self.task_id,
            "name": self.name,
            "created_at": _iso(self.created_at),
        }
        return {key: value for key, value in data.items() if value is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Label:
        return cls(
            id=_scalar(data, "id") or str(uuid4()),
            task_id=_scalar(data, "task_id") or "",
            name=data.get("name") or "",
            created_at=parse_timestamp(data.get("created_at")) or utc_now(),
        )


@dataclass(slots=True)
class Comment:
    task_id: str
    body: str
    author: str | None = None
    id: str = field(default_factory=lambda: str(uuid4()))
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def errors(self) -> list[str]:
        problems: list[str] = []
        _check_text(problems, "ID", self.id)
        _check_text(problems, "Task ID", self.task_id)
        _check_text(problems, "Body", self.body)
        _check_text(problems, "Author", self.author, required=False)
        return problems

    def validate(self) -> None:
        problems = self.errors()
        if problems:
            raise ValidationError(", ".join(problems))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "task_id": self.task_id,
            "author": self.author,
            "body": self.body,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        return {key: value for key, value in data.items() if value is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Comment:
        return cls(
            id=_scalar(data, "id") or str(uuid4()),
            task_id=_scalar(data, "task_id") or "",
            author=data.get("author"),
            body=data.get("body") or "",
            created_at=parse_timestamp(data.get("created_at")) or utc_now(),
            updated_at=parse_timestamp(data.get("updated_at")) or utc_now(),
        )


def _scalar(data: dict[str, Any], key: str) -> Any:
    """Return ``data[key]``; arrays and objects raise ``TypeError`` and void the record."""

    value = data.get(key)
    if isinstance(value, (list, dict)):
        raise TypeError(f"{key!r} must be a string, not {type(value).__name__}")
    return value


def _flag(data: dict[str, Any], key: str) -> Any:
    value = data.get(key)
    return False if value is None else value


def _check_text(problems: list[str], label: str, value: object, *, required: bool = True) -> None:
    if value is None or value == "":
        if required:
            problems.append(f"{label} is required")
    elif not isinstance(value, str):
        problems.append(f"{label} must be a string")
    elif required and not value.strip():
        problems.append(f"{label} is required")


def _enum_value(value: object) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()
