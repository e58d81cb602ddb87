"""SQLModel-backed task cache.

The cache answers local queries in milliseconds and is disposable: it can be
rebuilt from the JSONL log at any time. Every dependency mutation leaves the
``blocked_tasks`` table equal to a fresh recomputation over current edges.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from types import TracebackType

from sqlalchemy import literal_column, or_
from sqlmodel import Session, col, delete, select

from tasklog.config import IdSettings
from tasklog.errors import DependencyCycleError, TaskNotFoundError, ValidationError
from tasklog.graph.blocking import BlockingGraph
from tasklog.ids import child_index_of, generate_child_id, generate_id
from tasklog.models import (
    BLOCKING_TYPES,
    Comment,
    Dependency,
    DependencyType,
    EdgeDirection,
    Label,
    Task,
    TaskStatus,
)
from tasklog.storage.alembic_runner import upgrade_head
from tasklog.storage.common import (
    DEFAULT_BUSY_TIMEOUT_MS,
    build_sqlite_engine,
    to_db_datetime,
    to_utc_aware,
    utc_now,
)
from tasklog.storage.sqlmodel_models import (
    BlockedTaskRow,
    CommentRow,
    DependencyRow,
    LabelRow,
    TaskRow,
)

logger = logging.getLogger(__name__)

_ROWID = literal_column("tasks.rowid")
_DEP_ROWID = literal_column("dependencies.rowid")
_COMMENT_ROWID = literal_column("comments.rowid")


@dataclass(slots=True)
class TaskFilters:
    """Conjunctive filters for ``TaskStore.list``.

    Ephemeral tasks, Plans and tombstones are hidden unless explicitly included.
    """

    status: str | Sequence[str] | None = None
    priority: int | None = None
    priority_min: int | None = None
    priority_max: int | None = None
    task_type: str | None = None
    assignee: str | None = None
    title_contains: str | None = None
    description_contains: str | None = None
    notes_contains: str | None = None
    created_after: datetime | None = None
    created_before: datetime | None = None
    updated_after: datetime | None = None
    updated_before: datetime | None = None
    closed_after: datetime | None = None
    closed_before: datetime | None = None
    empty_description: bool = False
    no_assignee: bool = False
    include_ephemeral: bool = False
    include_plans: bool = False
    include_tombstones: bool = False


@dataclass(slots=True)
class TaskImportCounts:
    created: int = 0
    updated: int = 0
    unchanged: int = 0


class TaskStore:
    """Task persistence facade backed by SQLModel + SQLite."""

    def __init__(
        self,
        db_path: Path,
        *,
        ids: IdSettings | None = None,
        actor: str = "",
        busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
    ) -> None:
        self.db_path = db_path
        self.ids = ids or IdSettings()
        self.actor = actor
        self.dirty = False
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)

    def __enter__(self) -> TaskStore:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations up to head."""

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        upgrade_head(self.db_path)

    def mark_dirty(self) -> None:
        self.dirty = True

    def mark_clean(self) -> None:
        self.dirty = False

    # Tasks

    def create(self, task: Task) -> Task:
        """Validate, allocate an ID if missing, and insert the task."""

        task.validate()
        with Session(self.engine) as session:
            self._insert_task(session, task)
            session.commit()
        self.mark_dirty()
        return task

    def find(self, task_id: str) -> Task | None:
        with Session(self.engine) as session:
            row = session.get(TaskRow, task_id)
            return _to_task(row) if row is not None else None

    def find_or_raise(self, task_id: str) -> Task:
        task = self.find(task_id)
        if task is None:
            raise TaskNotFoundError(f"Task not found: {task_id}")
        return task

    def update(self, task: Task) -> Task:
        """Re-validate, touch, and overwrite the stored row.

        A status change can release or block dependents, so it rebuilds the
        blocked cache in the same transaction.
        """

        task.validate()
        with Session(self.engine) as session:
            row = session.get(TaskRow, task.id)
            if row is None:
                raise TaskNotFoundError(f"Task not found: {task.id}")
            status_changed = row.status != task.status
            task.touch()
            _apply_task(row, task)
            session.add(row)
            if status_changed:
                self._rebuild_blocked_cache(session)
            session.commit()
        self.mark_dirty()
        return task

    def delete(self, task_id: str) -> bool:
        """Delete one task with its edges, labels, and comments.

        Children are left in place; callers that need a cascade delete them first.
        """

        with Session(self.engine) as session:
            deleted = self._delete_task(session, task_id)
            self._rebuild_blocked_cache(session)
            session.commit()
        self.mark_dirty()
        return deleted

    def list(self, filters: TaskFilters | None = None) -> list[Task]:
        filters = filters or TaskFilters()
        statement = _apply_filters(select(TaskRow), filters)
        with Session(self.engine) as session:
            rows = session.exec(_ordered(statement)).all()
            return [_to_task(row) for row in rows]

    def all_task_ids(self) -> list[str]:
        with Session(self.engine) as session:
            return list(session.exec(select(TaskRow.id).order_by(_ROWID)).all())

    def children(self, parent_id: str) -> list[Task]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(TaskRow).where(TaskRow.parent_id == parent_id).order_by(_ROWID),
            ).all()
            return [_to_task(row) for row in rows]

    def create_child(self, parent_id: str, task: Task) -> Task:
        """Create ``task`` as the next dotted child of ``parent_id``.

        The child row and its ``parent-child`` edge are written in one transaction.
        """

        task.parent_id = parent_id
        task.validate()
        with Session(self.engine) as session:
            if session.get(TaskRow, parent_id) is None:
                raise TaskNotFoundError(f"Task not found: {parent_id}")
            task.id = self._next_child_id(session, parent_id)
            self._insert_task(session, task)
            session.add(
                _dependency_to_row(
                    Dependency(
                        source_id=parent_id,
                        target_id=task.id,
                        dep_type=DependencyType.PARENT_CHILD,
                    ),
                ),
            )
            session.flush()
            self._rebuild_blocked_cache(session)
            session.commit()
        self.mark_dirty()
        return task

    def ready(self) -> list[Task]:
        """Open, executable, non-ephemeral tasks with no active blocker."""

        statement = select(TaskRow).where(
            TaskRow.status == TaskStatus.OPEN.value,
            col(TaskRow.ephemeral).is_(False),
            col(TaskRow.plan).is_(False),
            col(TaskRow.id).not_in(select(BlockedTaskRow.task_id)),
        )
        with Session(self.engine) as session:
            rows = session.exec(_ordered(statement)).all()
            return [_to_task(row) for row in rows]

    def blocked(self) -> list[Task]:
        statement = select(TaskRow).where(
            TaskRow.status == TaskStatus.OPEN.value,
            col(TaskRow.ephemeral).is_(False),
            col(TaskRow.plan).is_(False),
            col(TaskRow.id).in_(select(BlockedTaskRow.task_id)),
        )
        with Session(self.engine) as session:
            rows = session.exec(_ordered(statement)).all()
            return [_to_task(row) for row in rows]

    def blocked_ids(self) -> set[str]:
        """Raw contents of the blocked cache."""

        with Session(self.engine) as session:
            return set(session.exec(select(BlockedTaskRow.task_id)).all())

    def stale(self, days: int = 30, status: str | None = None) -> list[Task]:
        """Tasks not touched for ``days`` days, least recently updated first."""

        cutoff = utc_now() - timedelta(days=days)
        statement = select(TaskRow).where(
            col(TaskRow.ephemeral).is_(False),
            col(TaskRow.plan).is_(False),
            col(TaskRow.updated_at) < to_db_datetime(cutoff),
        )
        if status is not None:
            statement = statement.where(TaskRow.status == status)
        with Session(self.engine) as session:
            rows = session.exec(statement.order_by(col(TaskRow.updated_at).asc())).all()
            return [_to_task(row) for row in rows]

    def garbage_collect_ephemeral(self, max_age_hours: int = 24) -> int:
        """Delete ephemeral tasks created more than ``max_age_hours`` ago."""

        cutoff = utc_now() - timedelta(hours=max_age_hours)
        with Session(self.engine) as session:
            expired = session.exec(
                select(TaskRow.id).where(
                    col(TaskRow.ephemeral).is_(True),
                    col(TaskRow.created_at) < to_db_datetime(cutoff),
                ),
            ).all()
            for task_id in expired:
                self._delete_task(session, task_id)
            if expired:
                self._rebuild_blocked_cache(session)
            session.commit()
        if expired:
            logger.info(
                "Collected %d ephemeral task(s) older than %dh",
                len(expired),
                max_age_hours,
            )
            self.mark_dirty()
        return len(expired)

    # Plans and workflows

    def mark_as_plan(self, task_id: str) -> Task:
        task = self.find_or_raise(task_id)
        task.plan = True
        task.status = TaskStatus.OPEN.value
        task.ephemeral = False
        return self.update(task)

    def find_plans(self) -> list[Task]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(TaskRow)
                .where(col(TaskRow.plan).is_(True))
                .order_by(col(TaskRow.title).asc()),
            ).all()
            return [_to_task(row) for row in rows]

    def find_plan_steps(self, plan_id: str) -> list[Task]:
        """Direct children of a Plan or Workflow, most urgent first."""

        with Session(self.engine) as session:
            rows = session.exec(
                select(TaskRow)
                .where(TaskRow.parent_id == plan_id)
                .order_by(col(TaskRow.priority).asc(), col(TaskRow.title).asc()),
            ).all()
            return [_to_task(row) for row in rows]

    find_workflow_steps = find_plan_steps

    def find_workflows(self, plan_id: str | None = None) -> list[Task]:
        statement = select(TaskRow).where(
            col(TaskRow.plan).is_(False),
            col(TaskRow.source_plan_id).is_not(None),
            TaskRow.source_plan_id != "",
        )
        if plan_id is not None:
            statement = statement.where(TaskRow.source_plan_id == plan_id)
        with Session(self.engine) as session:
            rows = session.exec(statement.order_by(col(TaskRow.created_at).desc())).all()
            return [_to_task(row) for row in rows]

    def find_ephemeral(self) -> list[Task]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(TaskRow).where(col(TaskRow.ephemeral).is_(True)).order_by(_ROWID),
            ).all()
            return [_to_task(row) for row in rows]

    # Bulk operations

    def import_tasks(self, tasks: Iterable[Task]) -> TaskImportCounts:
        """Upsert tasks in one transaction, skipping rows whose content hash matches.

        Incoming rows are written verbatim (no touch) so the stored hash equals
        the log's and a second import is a no-op.
        """

        counts = TaskImportCounts()
        with Session(self.engine) as session:
            for task in tasks:
                if task.content_hash is None:
                    task.update_content_hash()
                row = session.get(TaskRow, task.id)
                if row is None:
                    session.add(_task_to_row(task))
                    counts.created += 1
                elif row.content_hash != task.content_hash:
                    _apply_task(row, task)
                    session.add(row)
                    counts.updated += 1
                else:
                    counts.unchanged += 1
            if counts.created or counts.updated:
                session.flush()
                self._rebuild_blocked_cache(session)
            session.commit()
        return counts

    def clear(self) -> None:
        with Session(self.engine) as session:
            for table in (TaskRow, DependencyRow, LabelRow, CommentRow, BlockedTaskRow):
                session.exec(delete(table))
            session.commit()
        self.mark_dirty()

    # Dependencies

    def add_dependency(self, dependency: Dependency) -> Dependency:
        """Insert an edge, refusing any blocking edge that would close a cycle.

        Re-adding an identical ``(source, target, type)`` edge returns the stored
        one without writing anything.
        """

        dependency.validate()
        with Session(self.engine) as session:
            if dependency.is_blocking:
                graph = self._load_blocking_graph(session)
                if graph.reaches(dependency.target_id, dependency.source_id):
                    raise DependencyCycleError(
                        "Adding this dependency would create a cycle: "
                        f"{dependency.source_id} -> {dependency.target_id}",
                    )

            existing = session.exec(
                select(DependencyRow).where(
                    DependencyRow.source_id == dependency.source_id,
                    DependencyRow.target_id == dependency.target_id,
                    col(DependencyRow.dep_type) == dependency.dep_type,
                ),
            ).first()
            if existing is not None:
                return _to_dependency(existing)
            if session.get(DependencyRow, dependency.id) is not None:
                raise ValidationError(f"Dependency already exists: {dependency.id}")

            session.add(_dependency_to_row(dependency))
            session.flush()
            self._rebuild_blocked_cache(session)
            session.commit()
        self.mark_dirty()
        return dependency

    def remove_dependency(
        self,
        source_id: str,
        target_id: str,
        dep_type: str | None = None,
    ) -> int:
        statement = delete(DependencyRow).where(
            col(DependencyRow.source_id) == source_id,
            col(DependencyRow.target_id) == target_id,
        )
        if dep_type is not None:
            statement = statement.where(col(DependencyRow.dep_type) == _value(dep_type))
        with Session(self.engine) as session:
            removed = session.exec(statement).rowcount
            if removed:
                self._rebuild_blocked_cache(session)
            session.commit()
        if removed:
            self.mark_dirty()
        return removed

    def find_dependencies(
        self,
        task_id: str,
        direction: EdgeDirection = EdgeDirection.BOTH,
    ) -> list[Dependency]:
        found: list[Dependency] = []
        with Session(self.engine) as session:
            if direction in {EdgeDirection.BOTH, EdgeDirection.OUTGOING}:
                rows = session.exec(
                    select(DependencyRow)
                    .where(DependencyRow.source_id == task_id)
                    .order_by(col(DependencyRow.created_at).asc(), _DEP_ROWID.asc()),
                ).all()
                found.extend(_to_dependency(row) for row in rows)
            if direction in {EdgeDirection.BOTH, EdgeDirection.INCOMING}:
                rows = session.exec(
                    select(DependencyRow)
                    .where(DependencyRow.target_id == task_id)
                    .order_by(col(DependencyRow.created_at).asc(), _DEP_ROWID.asc()),
                ).all()
                found.extend(_to_dependency(row) for row in rows)
        return found

    def blocking_dependencies(self, task_id: str) -> list[Dependency]:
        """Incoming blocking edges of ``task_id``."""

        with Session(self.engine) as session:
            rows = session.exec(
                select(DependencyRow).where(
                    DependencyRow.target_id == task_id,
                    col(DependencyRow.dep_type).in_(BLOCKING_TYPES),
                ),
            ).all()
            return [_to_dependency(row) for row in rows]

    def all_dependencies(self) -> list[Dependency]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(DependencyRow).order_by(
                    col(DependencyRow.created_at).asc(),
                    _DEP_ROWID.asc(),
                ),
            ).all()
            return [_to_dependency(row) for row in rows]

    def rebuild_blocked_cache(self) -> set[str]:
        with Session(self.engine) as session:
            blocked = self._rebuild_blocked_cache(session)
            session.commit()
        return blocked

    # Labels

    def add_label(self, label: Label) -> Label:
        label.validate()
        with Session(self.engine) as session:
            existing = session.exec(
                select(LabelRow).where(
                    LabelRow.task_id == label.task_id,
                    LabelRow.name == label.name,
                ),
            ).first()
            if existing is not None:
                return _to_label(existing)
            if session.get(LabelRow, label.id) is not None:
                raise ValidationError(f"Label already exists: {label.id}")
            session.add(_label_to_row(label))
            session.commit()
        self.mark_dirty()
        return label

    def remove_label(self, task_id: str, name: str) -> int:
        with Session(self.engine) as session:
            removed = session.exec(
                delete(LabelRow).where(
                    col(LabelRow.task_id) == task_id,
                    col(LabelRow.name) == name,
                ),
            ).rowcount
            session.commit()
        if removed:
            self.mark_dirty()
        return removed

    def find_labels(self, task_id: str) -> list[Label]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(LabelRow)
                .where(LabelRow.task_id == task_id)
                .order_by(col(LabelRow.name).asc()),
            ).all()
            return [_to_label(row) for row in rows]

    def all_label_names(self) -> list[str]:
        with Session(self.engine) as session:
            names = session.exec(select(LabelRow.name).distinct()).all()
        return sorted(names)

    def set_state(
        self,
        task_id: str,
        dimension: str,
        value: str,
        *,
        reason: str | None = None,
    ) -> Label:
        """Replace the ``dimension:*`` label of a task with ``dimension:value``."""

        label = Label(task_id=task_id, name=f"{dimension}:{value}")
        label.validate()
        task = self.find_or_raise(task_id)
        with Session(self.engine) as session:
            session.exec(
                delete(LabelRow).where(
                    col(LabelRow.task_id) == task_id,
                    col(LabelRow.name).like(f"{_escape_like(dimension)}:%", escape="\\"),
                ),
            )
            session.add(_label_to_row(label))
            session.commit()
        self.mark_dirty()

        if reason:
            task.notes = f"{task.notes}\n[State] {dimension}={value}: {reason}".strip()
            self.update(task)
        return label

    def get_state(self, task_id: str, dimension: str) -> str | None:
        with Session(self.engine) as session:
            name = session.exec(
                select(LabelRow.name).where(
                    LabelRow.task_id == task_id,
                    col(LabelRow.name).like(f"{_escape_like(dimension)}:%", escape="\\"),
                ),
            ).first()
        if name is None:
            return None
        return name.split(":", 1)[1]

    # Comments

    def add_comment(self, comment: Comment) -> Comment:
        comment.validate()
        if comment.author is None and self.actor:
            comment.author = self.actor
        with Session(self.engine) as session:
            if session.get(CommentRow, comment.id) is not None:
                raise ValidationError(f"Comment already exists: {comment.id}")
            session.add(_comment_to_row(comment))
            session.commit()
        self.mark_dirty()
        return comment

    def find_comments(self, task_id: str) -> list[Comment]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(CommentRow)
                .where(CommentRow.task_id == task_id)
                .order_by(col(CommentRow.created_at).asc(), _COMMENT_ROWID.asc()),
            ).all()
            return [_to_comment(row) for row in rows]

    def all_comment_ids(self) -> set[str]:
        with Session(self.engine) as session:
            return set(session.exec(select(CommentRow.id)).all())

    # Internals

    def _insert_task(self, session: Session, task: Task) -> None:
        if task.id is None:
            existing = set(session.exec(select(TaskRow.id)).all())
            task.id = generate_id(
                existing,
                prefix=self.ids.prefix,
                min_length=self.ids.min_hash_length,
                max_length=self.ids.max_hash_length,
            )
        elif session.get(TaskRow, task.id) is not None:
            raise ValidationError(f"Task already exists: {task.id}")
        task.update_content_hash()
        session.add(_task_to_row(task))

    def _next_child_id(self, session: Session, parent_id: str) -> str:
        sibling_ids = session.exec(select(TaskRow.id).where(TaskRow.parent_id == parent_id)).all()
        highest = max(
            (index for index in (child_index_of(sid, parent_id) for sid in sibling_ids) if index),
            default=0,
        )
        index = max(len(sibling_ids), highest) + 1
        child_id = generate_child_id(parent_id, index)
        while session.get(TaskRow, child_id) is not None:
            index += 1
            child_id = generate_child_id(parent_id, index)
        return child_id

    def _delete_task(self, session: Session, task_id: str) -> bool:
        removed = session.exec(delete(TaskRow).where(col(TaskRow.id) == task_id)).rowcount
        session.exec(delete(LabelRow).where(col(LabelRow.task_id) == task_id))
        session.exec(
            delete(DependencyRow).where(
                or_(
                    col(DependencyRow.source_id) == task_id,
                    col(DependencyRow.target_id) == task_id,
                ),
            ),
        )
        session.exec(delete(CommentRow).where(col(CommentRow.task_id) == task_id))
        return bool(removed)

    def _load_blocking_graph(self, session: Session) -> BlockingGraph:
        tasks = session.exec(select(TaskRow.id, TaskRow.status)).all()
        edges = session.exec(
            select(
                DependencyRow.source_id,
                DependencyRow.target_id,
                DependencyRow.dep_type,
            ).where(col(DependencyRow.dep_type).in_(BLOCKING_TYPES)),
        ).all()
        return BlockingGraph.build(tasks, edges)

    def _rebuild_blocked_cache(self, session: Session) -> set[str]:
        blocked = self._load_blocking_graph(session).blocked_ids()
        session.exec(delete(BlockedTaskRow))
        for task_id in sorted(blocked):
            session.add(BlockedTaskRow(task_id=task_id))
        logger.debug("Rebuilt blocked cache: %d blocked task(s)", len(blocked))
        return blocked


def _apply_filters(statement, filters: TaskFilters):  # noqa: C901, PLR0912
    if filters.status is not None:
        statuses = [filters.status] if isinstance(filters.status, str) else list(filters.status)
        statement = statement.where(col(TaskRow.status).in_([_value(s) for s in statuses]))
    if filters.priority is not None:
        statement = statement.where(TaskRow.priority == filters.priority)
    if filters.priority_min is not None:
        statement = statement.where(col(TaskRow.priority) >= filters.priority_min)
    if filters.priority_max is not None:
        statement = statement.where(col(TaskRow.priority) <= filters.priority_max)
    if filters.task_type is not None:
        statement = statement.where(col(TaskRow.task_type) == _value(filters.task_type))
    if filters.assignee is not None:
        statement = statement.where(TaskRow.assignee == filters.assignee)

    for column, needle in (
        (TaskRow.title, filters.title_contains),
        (TaskRow.description, filters.description_contains),
        (TaskRow.notes, filters.notes_contains),
    ):
        if needle:
            statement = statement.where(
                col(column).ilike(f"%{_escape_like(needle)}%", escape="\\"),
            )

    for column, lower, upper in (
        (TaskRow.created_at, filters.created_after, filters.created_before),
        (TaskRow.updated_at, filters.updated_after, filters.updated_before),
        (TaskRow.closed_at, filters.closed_after, filters.closed_before),
    ):
        if lower is not None:
            statement = statement.where(col(column) >= to_db_datetime(lower))
        if upper is not None:
            statement = statement.where(col(column) <= to_db_datetime(upper))

    if filters.empty_description:
        statement = statement.where(
            or_(col(TaskRow.description).is_(None), col(TaskRow.description) == ""),
        )
    if filters.no_assignee:
        statement = statement.where(col(TaskRow.assignee).is_(None))
    if not filters.include_ephemeral:
        statement = statement.where(col(TaskRow.ephemeral).is_(False))
    if not filters.include_plans:
        statement = statement.where(col(TaskRow.plan).is_(False))
    if not filters.include_tombstones:
        statement = statement.where(TaskRow.status != TaskStatus.TOMBSTONE.value)
    return statement


def _ordered(statement):
    return statement.order_by(
        col(TaskRow.priority).asc(),
        col(TaskRow.updated_at).desc(),
        _ROWID.asc(),
    )


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _value(value: object) -> object:
    return getattr(value, "value", value)


def _task_to_row(task: Task) -> TaskRow:
    row = TaskRow(
        id=task.id or "",
        title=task.title,
        created_at=to_db_datetime(task.created_at),
        updated_at=to_db_datetime(task.updated_at),
    )
    _apply_task(row, task)
    return row


def _apply_task(row: TaskRow, task: Task) -> None:
    row.title = task.title
    row.description = task.description
    row.status = task.status
    row.priority = task.priority
    row.task_type = task.task_type
    row.assignee = task.assignee
    row.parent_id = task.parent_id
    row.created_at = to_db_datetime(task.created_at)
    row.updated_at = to_db_datetime(task.updated_at)
    row.closed_at = to_db_datetime(task.closed_at) if task.closed_at is not None else None
    row.content_hash = task.content_hash
    row.plan = bool(task.plan)
    row.source_plan_id = task.source_plan_id
    row.ephemeral = bool(task.ephemeral)
    row.notes = task.notes


def _to_task(row: TaskRow) -> Task:
    return Task(
        id=row.id,
        title=row.title,
        description=row.description or "",
        status=row.status,
        priority=row.priority,
        task_type=row.task_type,
        assignee=row.assignee,
        parent_id=row.parent_id,
        created_at=to_utc_aware(row.created_at),
        updated_at=to_utc_aware(row.updated_at),
        closed_at=to_utc_aware(row.closed_at) if row.closed_at is not None else None,
        content_hash=row.content_hash,
        plan=bool(row.plan),
        source_plan_id=row.source_plan_id,
        ephemeral=bool(row.ephemeral),
        notes=row.notes or "",
    )


def _dependency_to_row(dependency: Dependency) -> DependencyRow:
    return DependencyRow(
        id=dependency.id,
        source_id=dependency.source_id,
        target_id=dependency.target_id,
        dep_type=dependency.dep_type,
        created_at=to_db_datetime(dependency.created_at),
    )


def _to_dependency(row: DependencyRow) -> Dependency:
    return Dependency(
        id=row.id,
        source_id=row.source_id,
        target_id=row.target_id,
        dep_type=row.dep_type,
        created_at=to_utc_aware(row.created_at),
    )


def _label_to_row(label: Label) -> LabelRow:
    return LabelRow(
        id=label.id,
        task_id=label.task_id,
        name=label.name,
        created_at=to_db_datetime(label.created_at),
    )


def _to_label(row: LabelRow) -> Label:
    return Label(
        id=row.id,
        task_id=row.task_id,
        name=row.name,
        created_at=to_utc_aware(row.created_at),
    )


def _comment_to_row(comment: Comment) -> CommentRow:
    return CommentRow(
        id=comment.id,
        task_id=comment.task_id,
        author=comment.author,
        body=comment.body,
        created_at=to_db_datetime(comment.created_at),
        updated_at=to_db_datetime(comment.updated_at),
    )


def _to_comment(row: CommentRow) -> Comment:
    return Comment(
        id=row.id,
        task_id=row.task_id,
        author=row.author,
        body=row.body,
        created_at=to_utc_aware(row.created_at),
        updated_at=to_utc_aware(row.updated_at),
    )
