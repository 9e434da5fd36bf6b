# src/flowdeck/views/models.py
"""Per-screen view models.

View models hold what a screen renders: a working copy of the cached items,
the screen's text filter, sort and selection, and its error popup. They
contain no textual code, so the render path and the worker can share them
under AppState's lock and tests can drive them directly.

The View Synchronizer (flowdeck.engine.synchronizer) overwrites the working
lists from the cache; each set_items() call reapplies filter and sort.
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar

from flowdeck.contracts.entities import Dag, DagRun, TaskInstance, task_key
from flowdeck.contracts.enums import LogLevel, Screen, StatePriority
from flowdeck.core.graph_layout import build_graph_layout, build_graph_layout_ordered
from flowdeck.core.ordering import invert_dependencies
from flowdeck.core.store import TaskLog
from flowdeck.views.sortable import SortableTable

# Keys bound to navigation and actions; never used as sort keys
RESERVED_KEYS = "jkgGqrpstfcxmeTobv/?[]12345"

# "[timestamp] {source} LEVEL - message"; Airflow 3 lines carry no {source}
_LOG_LINE = re.compile(r"^\[[^\]]+\]\s+(?:\{[^}]+\}\s+)?(\w+)\s+-\s")


@dataclass
class ErrorPopup:
    """Error messages shown on one screen until dismissed."""

    messages: list[str] = field(default_factory=list)


def filter_lines_by_level(lines: Iterable[str], min_level: LogLevel) -> list[str]:
    """Keep log lines at or above `min_level`.

    A line starting with "[" opens a new entry; the lines after it (tracebacks,
    multi-line messages) share its fate. Lines before the first entry and
    entries whose level cannot be read are always kept.
    """
    kept = []
    include = True
    for line in lines:
        if line.startswith("["):
            match = _LOG_LINE.match(line)
            level = LogLevel.parse(match.group(1)) if match else None
            include = level is None or level >= min_level
        if include:
            kept.append(line)
    return kept


def _fmt_time(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else ""


def _run_time(run: DagRun) -> datetime | None:
    return run.logical_date or run.start_date


def _fmt_duration(seconds: float | None) -> str:
    if seconds is None:
        return ""
    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    return f"{hours}:{minutes:02d}:{secs:02d}"


class ScreenView:
    """State shared by every screen."""

    COLUMNS: ClassVar[tuple[str, ...]] = ()

    def __init__(self) -> None:
        self.error_popup: ErrorPopup | None = None
        self.filter_text: str | None = None
        self.selected = 0
        self.sort = SortableTable(self.COLUMNS, RESERVED_KEYS)

    def show_error(self, message: str) -> None:
        if self.error_popup is None:
            self.error_popup = ErrorPopup()
        self.error_popup.messages.append(message)

    def dismiss_error(self) -> None:
        self.error_popup = None

    def set_filter(self, text: str | None) -> None:
        self.filter_text = text or None
        self.apply()

    def sort_by_key(self, key: str) -> bool:
        """Forward a key press to the sortable table; re-sorts when handled."""
        handled = self.sort.handle_key(key)
        if handled:
            self.apply()
        return handled

    def _matches(self, *values: str | None) -> bool:
        if not self.filter_text:
            return True
        needle = self.filter_text.lower()
        return any(value is not None and needle in value.lower() for value in values)

    def _clamp_selection(self, count: int) -> None:
        self.selected = min(max(self.selected, 0), max(count - 1, 0))

    def apply(self) -> None:
        """Recompute the visible list from the working copy."""

    def table_rows(self) -> list[tuple[str, ...]]:
        return []


class ConfigView(ScreenView):
    """Configured servers."""

    COLUMNS: ClassVar[tuple[str, ...]] = ("Name", "Endpoint", "Version", "Active")

    def __init__(self) -> None:
        super().__init__()
        self.servers: list[tuple[str, str, str]] = []
        self.active: str | None = None
        self.filtered: list[tuple[str, str, str]] = []

    def set_items(self, servers: Iterable[tuple[str, str, str]], active: str | None) -> None:
        """Replace the server rows: (name, endpoint, version)."""
        self.servers = list(servers)
        self.active = active
        self.apply()

    def apply(self) -> None:
        rows = [row for row in self.servers if self._matches(row[0], row[1])]
        self.filtered = self.sort.apply(
            rows, lambda row, column: (*row, row[0] == self.active)[column]
        )
        self._clamp_selection(len(self.filtered))

    def selected_name(self) -> str | None:
        if not self.filtered:
            return None
        return self.filtered[self.selected][0]

    def table_rows(self) -> list[tuple[str, ...]]:
        return [
            (name, endpoint, version, "*" if name == self.active else "")
            for name, endpoint, version in self.filtered
        ]


class DagListView(ScreenView):
    """DAG list: unpaused first, then by health, then alphabetically."""

    COLUMNS: ClassVar[tuple[str, ...]] = ("Name", "Schedule", "Next run", "Health", "Tags")

    def __init__(self) -> None:
        super().__init__()
        self.all: list[Dag] = []
        self.filtered: list[Dag] = []
        self.show_paused = False
        self.import_error_count = 0

    def set_items(self, dags: Iterable[Dag], import_error_count: int = 0) -> None:
        self.all = list(dags)
        self.import_error_count = import_error_count
        self.apply()

    def toggle_show_paused(self) -> None:
        self.show_paused = not self.show_paused
        self.apply()

    @staticmethod
    def _priority(dag: Dag) -> int:
        if dag.state_priority is None:
            return StatePriority.PAUSED if dag.is_paused else StatePriority.UNKNOWN
        return dag.state_priority

    def apply(self) -> None:
        visible = [
            dag
            for dag in self.all
            if dag.is_active
            and (self.show_paused or not dag.is_paused)
            and self._matches(dag.dag_id, dag.display_name, *dag.tags)
        ]
        visible.sort(key=lambda dag: (dag.is_paused, self._priority(dag), dag.dag_id))
        self.filtered = self.sort.apply(visible, self._column_value)
        self._clamp_selection(len(self.filtered))

    def _column_value(self, dag: Dag, column: int) -> Any:
        if column == 0:
            return dag.label.lower()
        if column == 1:
            return dag.schedule_frequency
        if column == 2:
            return dag.next_run_logical_date
        if column == 3:
            return self._priority(dag)
        return ",".join(dag.tags) or None

    def selected_dag(self) -> Dag | None:
        return self.filtered[self.selected] if self.filtered else None

    def table_rows(self) -> list[tuple[str, ...]]:
        return [
            (
                dag.label,
                dag.schedule_interval or "",
                _fmt_time(dag.next_run_logical_date),
                StatePriority(self._priority(dag)).name.lower(),
                ", ".join(dag.tags),
            )
            for dag in self.filtered
        ]


class DagRunListView(ScreenView):
    """Runs of one DAG, newest first, paginated locally."""

    COLUMNS: ClassVar[tuple[str, ...]] = ("Run id", "State", "Type", "Logical date", "Duration")

    def __init__(self, page_size: int = 40) -> None:
        super().__init__()
        self.dag_id: str | None = None
        self.page_size = page_size
        self.page = 0
        self.total: int | None = None
        self.all: list[DagRun] = []
        self.filtered: list[DagRun] = []

    def open(self, dag_id: str) -> None:
        """Switch to another DAG's runs."""
        if dag_id != self.dag_id:
            self.dag_id = dag_id
            self.page = 0
            self.selected = 0
            self.all = []
            self.filtered = []
            self.total = None

    def set_items(self, runs: Iterable[DagRun], total: int | None = None) -> None:
        self.all = list(runs)
        self.total = total
        self.apply()

    def apply(self) -> None:
        visible = [run for run in self.all if self._matches(run.dag_run_id, run.state)]
        dated = [run for run in visible if _run_time(run) is not None]
        undated = [run for run in visible if _run_time(run) is None]
        dated.sort(key=lambda run: (_run_time(run), run.dag_run_id), reverse=True)
        undated.sort(key=lambda run: run.dag_run_id, reverse=True)
        self.filtered = self.sort.apply(dated + undated, self._column_value)
        self.page = min(self.page, max(self.page_count - 1, 0))
        self._clamp_selection(len(self.page_items()))

    @staticmethod
    def _column_value(run: DagRun, column: int) -> Any:
        if column == 0:
            return run.dag_run_id
        if column == 1:
            return run.state
        if column == 2:
            return run.run_type
        if column == 3:
            return run.logical_date
        if run.start_date and run.end_date:
            return (run.end_date - run.start_date).total_seconds()
        return None

    @property
    def known_total(self) -> int:
        return max(self.total or 0, len(self.all))

    @property
    def page_count(self) -> int:
        count = self.known_total if not self.filter_text else len(self.filtered)
        return max(math.ceil(count / self.page_size), 1)

    def page_items(self) -> list[DagRun]:
        start = self.page * self.page_size
        return self.filtered[start : start + self.page_size]

    def needs_fetch(self, page: int) -> bool:
        """True if showing `page` requires runs that are not cached yet."""
        wanted = (page + 1) * self.page_size
        return len(self.all) < min(wanted, self.known_total)

    def next_offset(self) -> int:
        return len(self.all)

    def go_to_page(self, page: int) -> None:
        self.page = min(max(page, 0), self.page_count - 1)
        self.selected = 0

    def selected_run(self) -> DagRun | None:
        items = self.page_items()
        return items[self.selected] if items else None

    def table_rows(self) -> list[tuple[str, ...]]:
        rows = []
        for run in self.page_items():
            duration = self._column_value(run, 4)
            rows.append(
                (
                    run.dag_run_id,
                    run.state or "",
                    run.run_type or "",
                    _fmt_time(run.logical_date),
                    _fmt_duration(duration),
                )
            )
        return rows


class TaskInstanceListView(ScreenView):
    """Task instances of one run, in dependency order."""

    COLUMNS: ClassVar[tuple[str, ...]] = ("Task", "State", "Attempt", "Duration", "Operator")

    def __init__(self) -> None:
        super().__init__()
        self.dag_id: str | None = None
        self.dag_run_id: str | None = None
        self.all: list[TaskInstance] = []
        self.filtered: list[TaskInstance] = []
        # Tree walk with repeated multi-parent tasks, for the graph panel
        self.layout: list[tuple[str, str]] = []
        self.prefixes: dict[str, str] = {}
        self._order: list[str] = []

    def open(self, dag_id: str, dag_run_id: str) -> None:
        if (dag_id, dag_run_id) != (self.dag_id, self.dag_run_id):
            self.dag_id = dag_id
            self.dag_run_id = dag_run_id
            self.selected = 0
            self.all = []
            self.filtered = []
            self.layout = []
            self.prefixes = {}
            self._order = []

    def set_items(
        self,
        task_instances: Iterable[TaskInstance],
        dependency_graph: dict[str, list[str]] | None = None,
        task_order: Sequence[str] | None = None,
    ) -> None:
        """Replace the working list.

        Args:
            task_instances: Cached task instances of the run
            dependency_graph: task_id -> upstream ids, when fetched
            task_order: Topological order, used when no graph is cached
        """
        self.all = list(task_instances)
        if dependency_graph is not None:
            downstream = invert_dependencies(dependency_graph)
            self.layout = build_graph_layout_ordered(downstream)
            self.prefixes = build_graph_layout(downstream)
            self._order = list(dict.fromkeys(task_id for task_id, _ in self.layout))
        else:
            self.layout = []
            self.prefixes = {}
            self._order = list(task_order or [])
        self.apply()

    def apply(self) -> None:
        rank = {task_id: index for index, task_id in enumerate(self._order)}
        visible = [ti for ti in self.all if self._matches(ti.task_id, ti.state)]
        visible.sort(key=lambda ti: (rank.get(ti.task_id, len(rank)), ti.task_id, ti.map_index))
        self.filtered = self.sort.apply(visible, self._column_value)
        self._clamp_selection(len(self.filtered))

    @staticmethod
    def _column_value(ti: TaskInstance, column: int) -> Any:
        return (ti.task_id, ti.state, ti.try_number, ti.duration, ti.operator)[column]

    def selected_task(self) -> TaskInstance | None:
        return self.filtered[self.selected] if self.filtered else None

    def table_rows(self) -> list[tuple[str, ...]]:
        return [
            (
                self.prefixes.get(ti.task_id, "") + ti.key,
                ti.state or "",
                str(ti.try_number),
                _fmt_duration(ti.duration),
                ti.operator or "",
            )
            for ti in self.filtered
        ]


class LogView(ScreenView):
    """Log of one task attempt plus the most-recently-viewed attempts."""

    def __init__(self, max_recent: int = 5) -> None:
        super().__init__()
        self.max_recent = max_recent
        self.dag_id: str | None = None
        self.dag_run_id: str | None = None
        self.task_id: str | None = None
        self.map_index = -1
        self.max_attempt = 1
        self.attempt = 1
        self.recent_attempts: list[int] = []
        self.min_level = LogLevel.INFO
        self.content = ""
        self.has_more = False
        self.loaded = False

    @property
    def task_key(self) -> str | None:
        return task_key(self.task_id, self.map_index) if self.task_id else None

    def open(
        self, dag_id: str, dag_run_id: str, task_id: str, max_attempt: int, map_index: int = -1
    ) -> None:
        """Show a task's logs, starting at its latest attempt.

        Switching to another task instance resets the level filter to INFO.
        """
        identity = (dag_id, dag_run_id, task_id, map_index)
        if identity != (self.dag_id, self.dag_run_id, self.task_id, self.map_index):
            self.dag_id = dag_id
            self.dag_run_id = dag_run_id
            self.task_id = task_id
            self.map_index = map_index
            self.recent_attempts = []
            self.min_level = LogLevel.INFO
        self.max_attempt = max(max_attempt, 1)
        self.view_attempt(self.max_attempt)

    def view_attempt(self, attempt: int) -> None:
        """Select an attempt and move it to the front of the recent list."""
        attempt = min(max(attempt, 1), self.max_attempt)
        self.attempt = attempt
        if attempt in self.recent_attempts:
            self.recent_attempts.remove(attempt)
        self.recent_attempts.insert(0, attempt)
        del self.recent_attempts[self.max_recent :]
        self.content = ""
        self.has_more = False
        self.loaded = False

    def set_min_level(self, level: LogLevel) -> None:
        self.min_level = LogLevel(level)

    def keep(self) -> tuple[int, ...]:
        """Attempts whose cached logs must survive eviction."""
        return tuple(self.recent_attempts)

    def set_log(self, log: TaskLog | None) -> None:
        if log is None:
            self.content = ""
            self.has_more = False
            self.loaded = False
            return
        self.content = log.content
        self.has_more = log.has_more()
        self.loaded = True

    def visible_lines(self) -> list[str]:
        lines = filter_lines_by_level(self.content.splitlines(), self.min_level)
        if not self.filter_text:
            return lines
        return [line for line in lines if self._matches(line)]


class DagCodeView:
    """Source of one DAG, shown in place of the side panel while open."""

    def __init__(self) -> None:
        self.dag_id: str | None = None
        # None until fetched
        self.content: str | None = None

    @property
    def visible(self) -> bool:
        return self.dag_id is not None

    def open(self, dag_id: str) -> None:
        if dag_id != self.dag_id:
            self.dag_id = dag_id
            self.content = None

    def close(self) -> None:
        self.dag_id = None
        self.content = None

    def set_code(self, content: str | None) -> None:
        self.content = content

    def render_content(self) -> str:
        if self.dag_id is None:
            return ""
        header = f"{self.dag_id} (source, esc to close)"
        body = self.content if self.content is not None else "Loading..."
        return f"{header}\n\n{body}"


class ScreenViews:
    """All view models of the dashboard."""

    def __init__(self, run_page_size: int = 40, log_lru_size: int = 5) -> None:
        self._run_page_size = run_page_size
        self._log_lru_size = log_lru_size
        self.config = ConfigView()
        self.reset()

    def reset(self) -> None:
        """Fresh per-screen state for everything below the config screen."""
        self.dags = DagListView()
        self.dag_runs = DagRunListView(self._run_page_size)
        self.task_instances = TaskInstanceListView()
        self.logs = LogView(self._log_lru_size)
        self.code = DagCodeView()

    def for_screen(self, screen: Screen) -> ScreenView:
        return {
            Screen.CONFIG: self.config,
            Screen.DAGS: self.dags,
            Screen.DAG_RUNS: self.dag_runs,
            Screen.TASK_INSTANCES: self.task_instances,
            Screen.LOGS: self.logs,
        }[screen]
