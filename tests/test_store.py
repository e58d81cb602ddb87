from __future__ import annotations

from datetime import timedelta

import allure
import pytest
from sqlmodel import Session

from tasklog.errors import TaskNotFoundError, ValidationError
from tasklog.ids import is_valid_id
from tasklog.models import Comment, Dependency, Label, Task, TaskStatus
from tasklog.storage.common import to_db_datetime, utc_now
from tasklog.storage.sqlmodel_models import TaskRow
from tasklog.store import TaskFilters, TaskStore

pytestmark = [
    allure.epic("Task Tracking"),
    allure.feature("Task Cache"),
]


def test_create_assigns_valid_id_and_hash(store: TaskStore) -> None:
    task = store.create(Task(title="Write docs"))

    assert task.id is not None
    assert is_valid_id(task.id)
    assert task.content_hash is not None
    assert store.dirty
    assert store.find(task.id) == task


def test_create_rejects_invalid_task_and_duplicate_id(store: TaskStore) -> None:
    with pytest.raises(ValidationError, match="Title is required"):
        store.create(Task(title=""))
    assert store.all_task_ids() == []

    store.create(Task(title="a", id="tl-aaaa"))
    with pytest.raises(ValidationError, match="already exists"):
        store.create(Task(title="b", id="tl-aaaa"))


def test_find_or_raise_and_update_missing(store: TaskStore) -> None:
    with pytest.raises(TaskNotFoundError):
        store.find_or_raise("tl-0000")
    with pytest.raises(TaskNotFoundError):
        store.update(Task(title="ghost", id="tl-0000"))


def test_update_touches_and_persists(store: TaskStore) -> None:
    task = store.create(Task(title="Draft"))
    original_hash = task.content_hash
    task.title = "Final"

    store.update(task)

    assert task.id is not None
    stored = store.find_or_raise(task.id)
    assert stored.title == "Final"
    assert stored.content_hash != original_hash


def test_create_child_yields_sequential_hierarchical_ids(store: TaskStore) -> None:
    parent = store.create(Task(title="Epic", task_type="epic"))
    assert parent.id is not None

    children = [store.create_child(parent.id, Task(title=f"step {n}")) for n in range(3)]

    assert [child.id for child in children] == [f"{parent.id}.{n}" for n in (1, 2, 3)]
    assert all(child.parent_id == parent.id for child in children)
    edges = store.find_dependencies(parent.id)
    assert {edge.target_id for edge in edges} == {child.id for child in children}
    assert {edge.dep_type for edge in edges} == {"parent-child"}


def test_create_child_after_delete_does_not_reuse_ids(store: TaskStore) -> None:
    parent = store.create(Task(title="Epic"))
    assert parent.id is not None
    store.create_child(parent.id, Task(title="one"))
    second = store.create_child(parent.id, Task(title="two"))
    assert second.id is not None
    store.delete(f"{parent.id}.1")

    third = store.create_child(parent.id, Task(title="three"))

    assert third.id == f"{parent.id}.3"


def test_create_child_requires_existing_parent(store: TaskStore) -> None:
    with pytest.raises(TaskNotFoundError):
        store.create_child("tl-0000", Task(title="orphan"))


def test_list_filters_and_ordering(store: TaskStore) -> None:
    low = store.create(Task(title="Low priority chore", priority=3, task_type="chore"))
    urgent = store.create(Task(title="Urgent bug", priority=0, task_type="bug", assignee="sam"))
    store.create(Task(title="Hidden scratch", ephemeral=True))
    store.create(Task(title="Blueprint", plan=True))
    store.create(Task(title="Gone", status=TaskStatus.TOMBSTONE))

    assert [task.id for task in store.list()] == [urgent.id, low.id]
    assert [task.id for task in store.list(TaskFilters(task_type="bug"))] == [urgent.id]
    assert [task.id for task in store.list(TaskFilters(assignee="sam"))] == [urgent.id]
    assert [task.id for task in store.list(TaskFilters(no_assignee=True))] == [low.id]
    assert [task.id for task in store.list(TaskFilters(priority_min=1))] == [low.id]
    assert [task.id for task in store.list(TaskFilters(title_contains="URGENT"))] == [urgent.id]
    assert len(store.list(TaskFilters(include_ephemeral=True, include_plans=True))) == 4
    assert len(store.list(TaskFilters(include_tombstones=True))) == 3


def test_list_title_filter_escapes_like_wildcards(store: TaskStore) -> None:
    store.create(Task(title="100% done"))
    store.create(Task(title="1000 items"))

    matched = store.list(TaskFilters(title_contains="0%"))

    assert [task.title for task in matched] == ["100% done"]


def test_list_filters_by_status_collection(store: TaskStore) -> None:
    store.create(Task(title="a"))
    store.create(Task(title="b", status=TaskStatus.IN_PROGRESS))
    store.create(Task(title="c", status=TaskStatus.DEFERRED))

    titles = {task.title for task in store.list(TaskFilters(status=["open", "deferred"]))}

    assert titles == {"a", "c"}


def test_delete_removes_attached_rows(store: TaskStore) -> None:
    a = store.create(Task(title="a"))
    b = store.create(Task(title="b"))
    assert a.id is not None and b.id is not None
    store.add_dependency(Dependency(source_id=a.id, target_id=b.id))
    store.add_label(Label(task_id=a.id, name="urgent"))
    store.add_comment(Comment(task_id=a.id, body="note"))

    assert store.delete(a.id)

    assert store.find(a.id) is None
    assert store.all_dependencies() == []
    assert store.find_labels(a.id) == []
    assert store.find_comments(a.id) == []
    assert [task.id for task in store.ready()] == [b.id]
    assert not store.delete(a.id)


def test_labels_are_idempotent(store: TaskStore) -> None:
    task = store.create(Task(title="a"))
    assert task.id is not None

    store.add_label(Label(task_id=task.id, name="backend"))
    store.add_label(Label(task_id=task.id, name="backend"))
    store.add_label(Label(task_id=task.id, name="api"))

    assert [label.name for label in store.find_labels(task.id)] == ["api", "backend"]
    assert store.all_label_names() == ["api", "backend"]
    assert store.remove_label(task.id, "api") == 1
    assert store.remove_label(task.id, "api") == 0


def test_set_state_replaces_dimension(store: TaskStore) -> None:
    task = store.create(Task(title="a"))
    assert task.id is not None

    store.set_state(task.id, "phase", "design")
    store.set_state(task.id, "phase", "review", reason="design approved")

    assert store.get_state(task.id, "phase") == "review"
    assert [label.name for label in store.find_labels(task.id)] == ["phase:review"]
    assert "[State] phase=review: design approved" in store.find_or_raise(task.id).notes
    assert store.get_state(task.id, "owner") is None


def test_comments_default_author_to_actor(store: TaskStore) -> None:
    task = store.create(Task(title="a"))
    assert task.id is not None

    store.add_comment(Comment(task_id=task.id, body="first"))
    store.add_comment(Comment(task_id=task.id, body="second", author="robin"))

    comments = store.find_comments(task.id)
    assert [comment.body for comment in comments] == ["first", "second"]
    assert [comment.author for comment in comments] == ["tester", "robin"]


def test_stale_returns_untouched_tasks(store: TaskStore) -> None:
    old = store.create(Task(title="old"))
    store.create(Task(title="fresh"))
    with Session(store.engine) as session:
        row = session.get(TaskRow, old.id)
        assert row is not None
        row.updated_at = to_db_datetime(utc_now() - timedelta(days=45))
        session.add(row)
        session.commit()

    assert [task.id for task in store.stale(days=30)] == [old.id]
    assert store.stale(days=30, status="closed") == []


def test_garbage_collect_ephemeral_only_removes_expired(store: TaskStore) -> None:
    expired = store.create(
        Task(title="old scratch", ephemeral=True, created_at=utc_now() - timedelta(hours=48)),
    )
    recent = store.create(Task(title="new scratch", ephemeral=True))
    durable = store.create(
        Task(title="durable", created_at=utc_now() - timedelta(hours=48)),
    )

    assert store.garbage_collect_ephemeral(max_age_hours=24) == 1

    remaining = set(store.all_task_ids())
    assert expired.id not in remaining
    assert {recent.id, durable.id} <= remaining


def test_plan_and_workflow_queries(store: TaskStore) -> None:
    plan = store.create(Task(title="Release", plan=True))
    assert plan.id is not None
    step_b = store.create_child(plan.id, Task(title="b step", priority=2))
    step_a = store.create_child(plan.id, Task(title="a step", priority=1))
    workflow = store.create(Task(title="Release 1.0", source_plan_id=plan.id))
    scratch = store.create(Task(title="scratch", source_plan_id=plan.id, ephemeral=True))

    assert [task.id for task in store.find_plans()] == [plan.id]
    assert [task.id for task in store.find_plan_steps(plan.id)] == [step_a.id, step_b.id]
    assert {task.id for task in store.find_workflows(plan.id)} == {workflow.id, scratch.id}
    assert store.find_workflows("tl-0000") == []
    assert [task.id for task in store.find_ephemeral()] == [scratch.id]


def test_mark_as_plan_reopens_task(store: TaskStore) -> None:
    task = store.create(Task(title="Recurring release", status=TaskStatus.IN_PROGRESS))
    assert task.id is not None

    plan = store.mark_as_plan(task.id)

    assert plan.is_plan
    assert plan.status == "open"
    assert store.ready() == []


def test_import_tasks_is_hash_gated(store: TaskStore) -> None:
    incoming = Task(title="from log", id="tl-1111")
    incoming.update_content_hash()

    first = store.import_tasks([incoming])
    second = store.import_tasks([incoming])
    changed = Task.from_dict({**incoming.to_dict(), "title": "edited", "content_hash": "ffff"})
    third = store.import_tasks([changed])

    assert (first.created, first.updated, first.unchanged) == (1, 0, 0)
    assert (second.created, second.updated, second.unchanged) == (0, 0, 1)
    assert (third.created, third.updated, third.unchanged) == (0, 1, 0)
    assert store.find_or_raise("tl-1111").title == "edited"


def test_clear_empties_every_table(store: TaskStore) -> None:
    a = store.create(Task(title="a"))
    b = store.create(Task(title="b"))
    assert a.id is not None and b.id is not None
    store.add_dependency(Dependency(source_id=a.id, target_id=b.id))

    store.clear()

    assert store.all_task_ids() == []
    assert store.all_dependencies() == []
    assert store.blocked_ids() == set()


def test_reused_entity_ids_are_rejected(store: TaskStore) -> None:
    a = store.create(Task(title="a"))
    b = store.create(Task(title="b"))
    assert a.id is not None and b.id is not None

    store.add_dependency(Dependency(id="d1", source_id=a.id, target_id=b.id))
    store.add_label(Label(id="l1", task_id=a.id, name="urgent"))
    store.add_comment(Comment(id="c1", task_id=a.id, body="first"))

    with pytest.raises(ValidationError, match="Dependency already exists: d1"):
        store.add_dependency(
            Dependency(id="d1", source_id=a.id, target_id=b.id, dep_type="related"),
        )
    with pytest.raises(ValidationError, match="Label already exists: l1"):
        store.add_label(Label(id="l1", task_id=b.id, name="urgent"))
    with pytest.raises(ValidationError, match="Comment already exists: c1"):
        store.add_comment(Comment(id="c1", task_id=b.id, body="second"))

    assert [dep.dep_type for dep in store.all_dependencies()] == ["blocks"]
    assert store.find_labels(b.id) == []
    assert store.find_comments(b.id) == []
