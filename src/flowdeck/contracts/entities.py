# src/flowdeck/contracts/entities.py
"""Entities fetched from the orchestration server.

All records are frozen: the cache replaces a record wholesale on refresh and
hands the same immutable objects to the render path, so readers never see a
half-applied update. Use dataclasses.replace() to derive modified copies.

Two Dag fields are cache-local (`state_priority`, `schedule_frequency`).
They are computed by flowdeck.core.health, excluded from equality, and never
sent back to the server.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class Dag:
    """A workflow definition as reported by the server."""

    dag_id: str
    display_name: str | None = None
    description: str | None = None
    is_paused: bool = False
    is_active: bool = True
    has_import_errors: bool = False
    fileloc: str | None = None
    owners: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    timetable_description: str | None = None
    schedule_interval: str | None = None
    next_run_logical_date: datetime | None = None
    next_run_create_after: datetime | None = None
    last_parsed_time: datetime | None = None
    # Opaque handle for the DAG source endpoint (older API dialect)
    file_token: str | None = None

    # Cache-local derived fields
    state_priority: int | None = field(default=None, compare=False)
    schedule_frequency: int | None = field(default=None, compare=False)

    @property
    def label(self) -> str:
        """Human-facing name (display name when the server provides one)."""
        return self.display_name or self.dag_id


@dataclass(frozen=True)
class DagRun:
    """One execution of a DAG at a logical time."""

    dag_id: str
    dag_run_id: str
    state: str | None = None
    run_type: str | None = None
    logical_date: datetime | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    note: str | None = None


def task_key(task_id: str, map_index: int = -1) -> str:
    """Cache key of a task instance; unmapped tasks use the bare task_id."""
    if map_index < 0:
        return task_id
    return f"{task_id}[{map_index}]"


@dataclass(frozen=True)
class TaskInstance:
    """One task's execution within a DAG run."""

    dag_id: str
    dag_run_id: str
    task_id: str
    state: str | None = None
    try_number: int = 0
    start_date: datetime | None = None
    end_date: datetime | None = None
    duration: float | None = None
    operator: str | None = None
    map_index: int = -1

    @property
    def key(self) -> str:
        """Cache key (mapped task instances share a task_id)."""
        return task_key(self.task_id, self.map_index)


@dataclass(frozen=True)
class LogChunk:
    """One page of a task attempt's log."""

    content: str
    continuation_token: str | None = None


@dataclass(frozen=True)
class ImportErrorRecord:
    """A DAG file the scheduler failed to parse."""

    import_error_id: int
    filename: str
    timestamp: datetime | None = None
    stack_trace: str = ""


@dataclass(frozen=True)
class DagDetails:
    """Extended DAG attributes from the details endpoint."""

    dag_id: str
    description: str | None = None
    doc_md: str | None = None
    fileloc: str | None = None
    owners: tuple[str, ...] = ()
    catchup: bool | None = None
    start_date: datetime | None = None
    params: dict[str, Any] = field(default_factory=dict, compare=False)
