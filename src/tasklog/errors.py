"""Error hierarchy shared by store, graph, and sync layers."""

from __future__ import annotations


class TaskLogError(Exception):
    """Base error, also raised directly for policy violations."""


class ValidationError(TaskLogError):
    """Entity fails field invariants or a bulk operation collected failures."""


class TaskNotFoundError(TaskLogError):
    """Lookup by ID found nothing."""


class DependencyCycleError(TaskLogError):
    """Blocking edge would close a directed cycle."""
