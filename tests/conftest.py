"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from tasklog.store import TaskStore


@pytest.fixture()
def store(tmp_path: Path) -> Iterator[TaskStore]:
    """Fresh migrated task cache in a temporary directory."""
    task_store = TaskStore(tmp_path / "tasklog.db", actor="tester")
    task_store.init_schema()
    try:
        yield task_store
    finally:
        task_store.close()
