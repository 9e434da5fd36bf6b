# src/flowdeck/contracts/commands.py
"""Commands (intents) queued from the dashboard to the sync worker.

Each command names the screen that issues it; a failed command surfaces its
error popup on that screen only.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from flowdeck.contracts.enums import RunState, Screen, TaskState


@dataclass(frozen=True)
class Command:
    """Base class for worker commands."""

    screen: ClassVar[Screen] = Screen.DAGS

    @property
    def error_screen(self) -> Screen:
        """Screen whose popup receives this command's failure."""
        return self.screen


@dataclass(frozen=True)
class ActivateEnvironment(Command):
    """Build (or reuse) the client for a configured server and make it active."""

    screen: ClassVar[Screen] = Screen.CONFIG

    name: str


@dataclass(frozen=True)
class RefreshDags(Command):
    """Re-fetch the DAG list from the first page."""

    # Drop cached DAGs (with their runs and logs) before storing the first page
    prune: bool = False


@dataclass(frozen=True)
class FetchDagPage(Command):
    """Fetch one page of DAGs starting at offset."""

    offset: int


@dataclass(frozen=True)
class RefreshDagRuns(Command):
    screen: ClassVar[Screen] = Screen.DAG_RUNS

    dag_id: str


@dataclass(frozen=True)
class FetchDagRunPage(Command):
    screen: ClassVar[Screen] = Screen.DAG_RUNS

    dag_id: str
    offset: int
    limit: int


@dataclass(frozen=True)
class RefreshTaskInstances(Command):
    screen: ClassVar[Screen] = Screen.TASK_INSTANCES

    dag_id: str
    dag_run_id: str
    # Forget the cached task order so the graph is fetched again
    reload_order: bool = False


@dataclass(frozen=True)
class FetchTaskOrder(Command):
    """Fetch the task dependency list and compute the display order."""

    screen: ClassVar[Screen] = Screen.TASK_INSTANCES

    dag_id: str


@dataclass(frozen=True)
class FetchLogChunk(Command):
    """Fetch the first log chunk of an attempt, or the next one when load_more."""

    screen: ClassVar[Screen] = Screen.LOGS

    dag_id: str
    dag_run_id: str
    task_id: str
    attempt: int
    load_more: bool = False
    map_index: int = -1


@dataclass(frozen=True)
class EnsureLogLoaded(Command):
    """Load an attempt's log unless cached, then evict attempts not in keep."""

    screen: ClassVar[Screen] = Screen.LOGS

    dag_id: str
    dag_run_id: str
    task_id: str
    attempt: int
    keep: tuple[int, ...] = ()
    map_index: int = -1


@dataclass(frozen=True)
class TogglePause(Command):
    """Flip a DAG's paused flag; is_paused is the state before the toggle."""

    dag_id: str
    is_paused: bool


@dataclass(frozen=True)
class MarkDagRun(Command):
    screen: ClassVar[Screen] = Screen.DAG_RUNS

    dag_id: str
    dag_run_id: str
    state: RunState


@dataclass(frozen=True)
class ClearDagRun(Command):
    screen: ClassVar[Screen] = Screen.DAG_RUNS

    dag_id: str
    dag_run_id: str


@dataclass(frozen=True)
class TriggerDagRun(Command):
    screen: ClassVar[Screen] = Screen.DAG_RUNS

    dag_id: str


@dataclass(frozen=True)
class MarkTaskInstance(Command):
    screen: ClassVar[Screen] = Screen.TASK_INSTANCES

    dag_id: str
    dag_run_id: str
    task_id: str
    state: TaskState
    map_index: int = -1


@dataclass(frozen=True)
class ClearTaskInstance(Command):
    screen: ClassVar[Screen] = Screen.TASK_INSTANCES

    dag_id: str
    dag_run_id: str
    task_id: str
    map_index: int = -1


@dataclass(frozen=True)
class RefreshImportErrors(Command):
    pass


@dataclass(frozen=True)
class FetchDagDetails(Command):
    dag_id: str


@dataclass(frozen=True)
class FetchDagCode(Command):
    """Fetch a DAG's source file for the code panel."""

    dag_id: str


@dataclass(frozen=True)
class OpenItem(Command):
    """Open the server's web page for the selected item in a browser.

    An explicit `url` is opened as is. Otherwise the most specific field set
    decides the page: the server itself, a DAG, a run, a task instance, or
    (with `attempt`) a task attempt's log tab.
    """

    origin: Screen
    url: str | None = None
    dag_id: str | None = None
    dag_run_id: str | None = None
    task_id: str | None = None
    attempt: int | None = None
    map_index: int = -1

    @property
    def error_screen(self) -> Screen:
        return self.origin


@dataclass(frozen=True)
class Shutdown(Command):
    """Sentinel that stops the worker loop."""
