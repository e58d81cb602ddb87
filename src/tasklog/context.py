"""Per-invocation wiring of store, log, and services."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from tasklog.config import Settings
from tasklog.graph.analysis import DependencyGraph
from tasklog.store import TaskStore
from tasklog.sync import JsonlLog
from tasklog.workflows import WorkflowService

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TaskLogContext:
    settings: Settings
    store: TaskStore
    log: JsonlLog
    graph: DependencyGraph
    workflows: WorkflowService


@contextmanager
def open_context(settings: Settings, *, auto_sync: bool = True) -> Iterator[TaskLogContext]:
    """Open the cache for one command and guarantee it is closed afterwards.

    With ``auto_sync`` the log is imported on entry and, when the body finished
    without raising and left unexported changes, written back on exit.
    """

    store = TaskStore(settings.db_path, ids=settings.ids, actor=settings.actor)
    try:
        store.init_schema()
        log = JsonlLog(settings.log_path, sync=settings.sync)
        if auto_sync and log.exists():
            log.import_(store)

        context = TaskLogContext(
            settings=settings,
            store=store,
            log=log,
            graph=DependencyGraph(store),
            workflows=WorkflowService(store),
        )
        yield context

        if auto_sync and store.dirty:
            logger.debug("Store is dirty, exporting to %s", log.path)
            log.export(store)
    finally:
        store.close()
