"""Reconciliation between the SQLite cache and the durable JSONL log.

The log is the git-tracked source of truth: one ``{"type", "data"}`` object per
line so diffs stay readable and merges are usually automatic. Ephemeral tasks
never reach it.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from tasklog.config import SyncSettings
from tasklog.errors import TaskLogError, ValidationError
from tasklog.ids import CONTENT_HASH_LENGTH
from tasklog.models import (
    Comment,
    Dependency,
    EdgeDirection,
    ErrorPolicy,
    Label,
    OrphanHandling,
    Task,
)
from tasklog.storage.common import to_utc_aware, utc_now
from tasklog.store import TaskFilters, TaskStore

logger = logging.getLogger(__name__)

HEADER = "# tasklog task tracker data"


@dataclass(slots=True)
class TaskRecord:
    task: Task

    @property
    def key(self) -> str:
        return f"task-{self.task.id}"


@dataclass(slots=True)
class DependencyRecord:
    dependency: Dependency

    @property
    def key(self) -> str:
        return f"dependency-{self.dependency.id}"


@dataclass(slots=True)
class LabelRecord:
    label: Label

    @property
    def key(self) -> str:
        return f"label-{self.label.id}"


@dataclass(slots=True)
class CommentRecord:
    comment: Comment

    @property
    def key(self) -> str:
        return f"comment-{self.comment.id}"


Record = TaskRecord | DependencyRecord | LabelRecord | CommentRecord


def decode_record(payload: object) -> Record:
    """Decode one parsed log line; unknown shapes raise ``ValueError``."""

    match payload:
        case {"type": "task", "data": dict() as data}:
            return TaskRecord(Task.from_dict(data))
        case {"type": "dependency", "data": dict() as data}:
            return DependencyRecord(Dependency.from_dict(data))
        case {"type": "label", "data": dict() as data}:
            return LabelRecord(Label.from_dict(data))
        case {"type": "comment", "data": dict() as data}:
            return CommentRecord(Comment.from_dict(data))
        case _:
            raise ValueError("expected an object with a known 'type' and a 'data' object")


def encode_record(record: Record) -> dict[str, Any]:
    match record:
        case TaskRecord(task=task):
            return {"type": "task", "data": task.to_dict()}
        case DependencyRecord(dependency=dependency):
            return {"type": "dependency", "data": dependency.to_dict()}
        case LabelRecord(label=label):
            return {"type": "label", "data": label.to_dict()}
        case CommentRecord(comment=comment):
            return {"type": "comment", "data": comment.to_dict()}
    raise TypeError(f"Unsupported record: {record!r}")


def _entity_errors(record: Record) -> list[str]:
    match record:
        case TaskRecord(task=entity):
            return entity.errors()
        case DependencyRecord(dependency=entity):
            return entity.errors()
        case LabelRecord(label=entity):
            return entity.errors()
        case CommentRecord(comment=entity):
            return entity.errors()
    return []


@dataclass(slots=True)
class ImportResult:
    tasks_created: int = 0
    tasks_updated: int = 0
    tasks_unchanged: int = 0
    orphans_skipped: int = 0
    orphans_resurrected: int = 0
    dependencies: int = 0
    labels: int = 0
    comments: int = 0
    errors: list[str] = field(default_factory=list)


class JsonlLog:
    """Line-oriented durable log for one task store."""

    def __init__(self, path: Path, *, sync: SyncSettings | None = None) -> None:
        self.path = path
        self.sync = sync or SyncSettings()

    def exists(self) -> bool:
        return self.path.exists()

    def changed_since(self, timestamp: datetime) -> bool:
        """True when the file is missing or was modified after ``timestamp``."""

        if not self.path.exists():
            return True
        modified = datetime.fromtimestamp(self.path.stat().st_mtime, tz=UTC)
        return modified > to_utc_aware(timestamp)

    def content_hash(self) -> str | None:
        if not self.path.exists():
            return None
        return hashlib.sha256(self.path.read_bytes()).hexdigest()[:CONTENT_HASH_LENGTH]

    def read_records(self) -> list[Record]:
        """Decode every record line; blank, ``#`` and malformed lines are skipped."""

        if not self.path.exists():
            return []
        records: list[Record] = []
        with self.path.open("rb") as handle:
            for line_no, raw in enumerate(handle, start=1):
                try:
                    line = raw.decode("utf-8").strip()
                    if not line or line.startswith("#"):
                        continue
                    records.append(decode_record(json.loads(line)))
                except (ValueError, TypeError) as error:
                    logger.warning("Skipping line %d of %s: %s", line_no, self.path, error)
        return records

    def write_records(self, records: Iterable[Record]) -> None:
        """Atomically rewrite the log with a header block followed by ``records``."""

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=self.path.parent)
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(f"{HEADER}\n")
                handle.write(f"# Generated at {utc_now().isoformat(timespec='seconds')}\n")
                handle.write("\n")
                for record in records:
                    handle.write(json.dumps(encode_record(record), ensure_ascii=False))
                    handle.write("\n")
            os.replace(tmp_path, self.path)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise

    def export(self, store: TaskStore) -> int:
        """Rewrite the whole log from the store and clear its dirty flag.

        Returns the number of records written.
        """

        records = self._collect(store, self._exportable_tasks(store), store.all_task_ids())
        records = self._apply_export_policy(records)
        self.write_records(records)
        store.mark_clean()
        logger.info("Exported %d record(s) to %s", len(records), self.path)
        return len(records)

    def incremental_export(self, store: TaskStore, changed_ids: Iterable[str]) -> int:
        """Refresh only the entries attached to ``changed_ids`` in the existing log."""

        if not self.path.exists():
            return self.export(store)

        merged: dict[str, Record] = {record.key: record for record in self.read_records()}
        for task_id in changed_ids:
            for key in [key for key, record in merged.items() if _belongs_to(record, task_id)]:
                del merged[key]

            task = store.find(task_id)
            if task is None or task.is_ephemeral:
                continue
            records = self._collect(store, [task], [task_id])
            records.extend(
                DependencyRecord(dep)
                for dep in store.find_dependencies(task_id, EdgeDirection.INCOMING)
            )
            for record in records:
                merged[record.key] = record

        records = self._apply_export_policy(list(merged.values()))
        self.write_records(records)
        store.mark_clean()
        return len(records)

    def import_(
        self,
        store: TaskStore,
        orphan_handling: OrphanHandling | None = None,
        error_policy: ErrorPolicy | None = None,
    ) -> ImportResult:
        """Merge the log into the store.

        Tasks are upserted in one transaction keyed on content hash. Edges,
        labels, and comments follow one at a time under ``error_policy``;
        ``strict`` still attempts every entity and raises once at the end.
        """

        orphan_handling = OrphanHandling(orphan_handling or self.sync.orphan_handling)
        error_policy = ErrorPolicy(error_policy or self.sync.import_error_policy)
        result = ImportResult()
        was_dirty = store.dirty

        tasks: list[Task] = []
        dependencies: list[Dependency] = []
        labels: list[Label] = []
        comments: list[Comment] = []
        for record in self.read_records():
            match record:
                case TaskRecord(task=task):
                    tasks.append(task)
                case DependencyRecord(dependency=dependency):
                    dependencies.append(dependency)
                case LabelRecord(label=label):
                    labels.append(label)
                case CommentRecord(comment=comment):
                    comments.append(comment)

        tasks = self._resolve_orphans(tasks, orphan_handling, result)
        valid_tasks = []
        for task in tasks:
            problems = task.errors()
            if not task.id:
                problems.append("ID is required")
            if problems:
                self._record_failure(result, error_policy, "Task", task.id, ", ".join(problems))
                continue
            valid_tasks.append(task)

        counts = store.import_tasks(valid_tasks)
        result.tasks_created = counts.created
        result.tasks_updated = counts.updated
        result.tasks_unchanged = counts.unchanged

        for dependency in dependencies:
            try:
                store.add_dependency(dependency)
                result.dependencies += 1
            except TaskLogError as error:
                self._record_failure(result, error_policy, "Dependency", dependency.id, str(error))
        for label in labels:
            try:
                store.add_label(label)
                result.labels += 1
            except TaskLogError as error:
                self._record_failure(result, error_policy, "Label", label.id, str(error))

        known_comments = store.all_comment_ids()
        for comment in comments:
            if comment.id in known_comments:
                continue
            try:
                store.add_comment(comment)
                known_comments.add(comment.id)
                result.comments += 1
            except TaskLogError as error:
                self._record_failure(result, error_policy, "Comment", comment.id, str(error))

        store.dirty = was_dirty or bool(result.orphans_skipped or result.orphans_resurrected)
        logger.info(
            "Imported %s: %d created, %d updated, %d unchanged",
            self.path,
            result.tasks_created,
            result.tasks_updated,
            result.tasks_unchanged,
        )

        if error_policy is ErrorPolicy.STRICT and result.errors:
            details = "\n  ".join(result.errors)
            raise ValidationError(
                f"Import failed with {len(result.errors)} error(s):\n  {details}",
            )
        return result

    def _exportable_tasks(self, store: TaskStore) -> list[Task]:
        tasks = store.list(TaskFilters(include_plans=True, include_tombstones=True))
        return sorted(tasks, key=lambda task: task.id or "")

    def _collect(
        self,
        store: TaskStore,
        tasks: Iterable[Task],
        attached_ids: Iterable[str],
    ) -> list[Record]:
        records: list[Record] = [TaskRecord(task) for task in tasks]
        for task_id in attached_ids:
            records.extend(
                DependencyRecord(dep)
                for dep in store.find_dependencies(task_id, EdgeDirection.OUTGOING)
            )
            records.extend(LabelRecord(label) for label in store.find_labels(task_id))
            records.extend(CommentRecord(comment) for comment in store.find_comments(task_id))
        return records

    def _apply_export_policy(self, records: list[Record]) -> list[Record]:
        policy = ErrorPolicy(self.sync.export_error_policy)
        kept: list[Record] = []
        failures: list[str] = []
        for record in records:
            problems = _entity_errors(record)
            if not problems:
                kept.append(record)
                continue
            message = f"{record.key}: {', '.join(problems)}"
            failures.append(message)
            if policy is ErrorPolicy.WARN:
                logger.warning("Export skipped %s", message)
        if policy is ErrorPolicy.STRICT and failures:
            details = "\n  ".join(failures)
            raise ValidationError(f"Export failed with {len(failures)} error(s):\n  {details}")
        return kept

    def _resolve_orphans(
        self,
        tasks: list[Task],
        handling: OrphanHandling,
        result: ImportResult,
    ) -> list[Task]:
        known = {task.id for task in tasks}
        orphans = [task for task in tasks if task.parent_id and task.parent_id not in known]
        if not orphans:
            return tasks

        if handling is OrphanHandling.STRICT:
            raise ValidationError(f"Found {len(orphans)} orphaned tasks with missing parents")
        if handling is OrphanHandling.SKIP:
            logger.warning("Skipping %d orphaned task(s)", len(orphans))
            result.orphans_skipped = len(orphans)
            return [task for task in tasks if not task.parent_id or task.parent_id in known]
        if handling is OrphanHandling.RESURRECT:
            for orphan in orphans:
                logger.warning(
                    "Resurrecting orphan %s (missing parent %s)",
                    orphan.id,
                    orphan.parent_id,
                )
                orphan.parent_id = None
                orphan.update_content_hash()
            result.orphans_resurrected = len(orphans)
        return tasks

    def _record_failure(
        self,
        result: ImportResult,
        policy: ErrorPolicy,
        entity_type: str,
        entity_id: str | None,
        message: str,
    ) -> None:
        description = f"{entity_type} {entity_id}: {message}"
        result.errors.append(description)
        if policy is ErrorPolicy.WARN:
            logger.warning("Import failed for %s", description)


def _belongs_to(record: Record, task_id: str) -> bool:
    match record:
        case TaskRecord(task=task):
            return task.id == task_id
        case DependencyRecord(dependency=dependency):
            return task_id in {dependency.source_id, dependency.target_id}
        case LabelRecord(label=label):
            return label.task_id == task_id
        case CommentRecord(comment=comment):
            return comment.task_id == task_id
    return False
