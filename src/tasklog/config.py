"""Runtime configuration for the task cache, ID generation, and log sync."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TypeVar

from tasklog.ids import DEFAULT_PREFIX, MAX_HASH_LENGTH, MIN_HASH_LENGTH
from tasklog.models import ErrorPolicy, OrphanHandling

_E = TypeVar("_E", bound=Enum)
_PREFIX_PATTERN = re.compile(r"^[a-z]+$")


@dataclass(slots=True)
class IdSettings:
    """Task ID generation bounds."""

    prefix: str = DEFAULT_PREFIX
    min_hash_length: int = MIN_HASH_LENGTH
    max_hash_length: int = MAX_HASH_LENGTH


@dataclass(slots=True)
class SyncSettings:
    """Policies applied when reconciling the cache with the JSONL log."""

    orphan_handling: OrphanHandling = OrphanHandling.ALLOW
    import_error_policy: ErrorPolicy = ErrorPolicy.WARN
    export_error_policy: ErrorPolicy = ErrorPolicy.WARN


@dataclass(slots=True)
class WorkflowSettings:
    """Plan/workflow lifecycle settings."""

    gc_max_age_hours: int = 24


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    root_dir: Path = Path(".tasklog")
    db_file: str = "tasklog.db"
    log_file: str = "tasks.jsonl"
    actor: str = ""
    ids: IdSettings = field(default_factory=IdSettings)
    sync: SyncSettings = field(default_factory=SyncSettings)
    workflows: WorkflowSettings = field(default_factory=WorkflowSettings)

    @property
    def db_path(self) -> Path:
        return self.root_dir / self.db_file

    @property
    def log_path(self) -> Path:
        return self.root_dir / self.log_file

    @classmethod
    def from_env(cls, root_dir: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        settings = cls(
            root_dir=root_dir or Path(os.getenv("TASKLOG_ROOT", ".tasklog")),
            db_file=os.getenv("TASKLOG_DB_FILE", "tasklog.db"),
            log_file=os.getenv("TASKLOG_LOG_FILE", "tasks.jsonl"),
            actor=os.getenv("TASKLOG_ACTOR", os.getenv("USER", "")),
            ids=IdSettings(
                prefix=os.getenv("TASKLOG_ID_PREFIX", DEFAULT_PREFIX),
                min_hash_length=_env_int("TASKLOG_ID_MIN_HASH_LENGTH", MIN_HASH_LENGTH),
                max_hash_length=_env_int("TASKLOG_ID_MAX_HASH_LENGTH", MAX_HASH_LENGTH),
            ),
            sync=SyncSettings(
                orphan_handling=_env_enum(
                    "TASKLOG_ORPHAN_HANDLING",
                    OrphanHandling,
                    OrphanHandling.ALLOW,
                ),
                import_error_policy=_env_enum(
                    "TASKLOG_IMPORT_ERROR_POLICY",
                    ErrorPolicy,
                    ErrorPolicy.WARN,
                ),
                export_error_policy=_env_enum(
                    "TASKLOG_EXPORT_ERROR_POLICY",
                    ErrorPolicy,
                    ErrorPolicy.WARN,
                ),
            ),
            workflows=WorkflowSettings(
                gc_max_age_hours=_env_int("TASKLOG_GC_MAX_AGE_HOURS", 24),
            ),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        """Raise configuration error if ID bounds or lifecycle settings are invalid."""

        if not _PREFIX_PATTERN.match(self.ids.prefix):
            raise ValueError(
                f"TASKLOG_ID_PREFIX must be lowercase letters only, got {self.ids.prefix!r}.",
            )
        if not MIN_HASH_LENGTH <= self.ids.min_hash_length <= MAX_HASH_LENGTH:
            raise ValueError(
                "TASKLOG_ID_MIN_HASH_LENGTH must be between "
                f"{MIN_HASH_LENGTH} and {MAX_HASH_LENGTH}.",
            )
        if not MIN_HASH_LENGTH <= self.ids.max_hash_length <= MAX_HASH_LENGTH:
            raise ValueError(
                "TASKLOG_ID_MAX_HASH_LENGTH must be between "
                f"{MIN_HASH_LENGTH} and {MAX_HASH_LENGTH}.",
            )
        if self.ids.min_hash_length > self.ids.max_hash_length:
            raise ValueError(
                "TASKLOG_ID_MIN_HASH_LENGTH must not exceed TASKLOG_ID_MAX_HASH_LENGTH.",
            )
        if self.workflows.gc_max_age_hours <= 0:
            raise ValueError("TASKLOG_GC_MAX_AGE_HOURS must be > 0.")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {raw!r}") from error


def _env_enum(name: str, enum_type: type[_E], default: _E) -> _E:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    normalized = raw.strip().lower()
    try:
        return enum_type(normalized)
    except ValueError as error:
        allowed = ", ".join(member.value for member in enum_type)
        raise ValueError(
            f"Invalid value for {name}: {raw!r}. Expected one of: {allowed}.",
        ) from error
