import sqlite3
from pathlib import Path

import allure

from tasklog.store import TaskStore

pytestmark = [
    allure.epic("Task Tracking"),
    allure.feature("Task Cache"),
]


def test_alembic_schema_is_initialized_to_head(tmp_path: Path) -> None:
    db_path = tmp_path / "migrations.db"
    store = TaskStore(db_path)
    store.init_schema()
    store.init_schema()
    store.close()

    connection = sqlite3.connect(db_path)
    try:
        version = connection.execute("SELECT version_num FROM alembic_version").fetchall()
        assert version == [("20261019_0002",)]

        tables = connection.execute(
            """
            SELECT name
            FROM sqlite_master
            WHERE type = 'table'
              AND name IN ('tasks', 'dependencies', 'labels', 'comments', 'blocked_tasks')
            ORDER BY name
            """
        ).fetchall()
        assert [row[0] for row in tables] == [
            "blocked_tasks",
            "comments",
            "dependencies",
            "labels",
            "tasks",
        ]

        task_columns = {row[1] for row in connection.execute("PRAGMA table_info(tasks)")}
        assert {"type", "plan", "source_plan_id", "ephemeral", "content_hash"} <= task_columns

        label_indexes = connection.execute("PRAGMA index_list(labels)").fetchall()
        assert any(row[2] == 1 for row in label_indexes)
    finally:
        connection.close()
