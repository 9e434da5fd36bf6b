# src/flowdeck/tui/dashboard_app.py
"""Dashboard TUI application for Flowdeck.

Renders the active screen's view model on a fixed tick and turns key
presses into worker commands. The app never calls the server itself: every
fetch or mutation goes through SyncWorker.submit().
"""

import os
import shlex
import subprocess
import tempfile
from pathlib import Path
from typing import Any

from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, VerticalScroll
from textual.widgets import DataTable, Footer, Header, Input, Static

from flowdeck.contracts.commands import ActivateEnvironment, Command, RefreshDags, RefreshImportErrors
from flowdeck.contracts.enums import LogLevel, Screen
from flowdeck.contracts.errors import WorkerQueueFull
from flowdeck.core.log_archive import LogArchive
from flowdeck.engine.synchronizer import ViewSynchronizer
from flowdeck.engine.worker import SyncWorker
from flowdeck.tui import intents
from flowdeck.tui.widgets.task_graph import TaskGraph
from flowdeck.views.app_state import AppState

# Ticks between automatic refreshes of the active screen
REFRESH_EVERY_TICKS = 10

SCREEN_TITLES: dict[Screen, str] = {
    Screen.CONFIG: "Servers",
    Screen.DAGS: "DAGs",
    Screen.DAG_RUNS: "DAG runs",
    Screen.TASK_INSTANCES: "Task instances",
    Screen.LOGS: "Logs",
}


def status_line(state: AppState) -> str:
    """One-line summary: environment, screen, selection context, loading."""
    with state.lock:
        screen = state.active_screen
        views = state.views
        parts = [state.store.active_environment or "(no environment)", SCREEN_TITLES[screen]]
        if screen in (Screen.DAG_RUNS, Screen.TASK_INSTANCES, Screen.LOGS) and views.dag_runs.dag_id:
            parts.append(views.dag_runs.dag_id)
        if screen in (Screen.TASK_INSTANCES, Screen.LOGS) and views.task_instances.dag_run_id:
            parts.append(views.task_instances.dag_run_id)
        if screen == Screen.LOGS and views.logs.task_key:
            logs = views.logs
            parts.append(f"{logs.task_key} (attempt {logs.attempt}/{logs.max_attempt})")
            parts.append(f"level >= {logs.min_level.name}")
        if screen == Screen.DAG_RUNS:
            parts.append(f"page {views.dag_runs.page + 1}/{views.dag_runs.page_count}")
        if screen == Screen.DAGS and views.dags.import_error_count:
            parts.append(f"{views.dags.import_error_count} import errors")
        if views.for_screen(screen).filter_text:
            parts.append(f"filter: {views.for_screen(screen).filter_text}")
        if state.loading:
            parts.append("loading...")
        return " | ".join(parts)


def side_panel(state: AppState) -> str:
    """Content of the panel beside the table for the active screen."""
    with state.lock:
        screen = state.active_screen
        views = state.views
        if screen in (Screen.DAGS, Screen.DAG_RUNS) and views.code.visible:
            return views.code.render_content()
        if screen == Screen.TASK_INSTANCES:
            view = views.task_instances
            states = {ti.task_id: ti.state for ti in view.all}
            return TaskGraph(view.layout, states).render_content()
        if screen == Screen.DAGS:
            dag = views.dags.selected_dag()
            if dag is None:
                return "No DAG selected."
            lines = [dag.label, ""]
            details = state.store.dag_details(dag.dag_id)
            description = (details.description if details else None) or dag.description
            if description:
                lines += [description, ""]
            if dag.owners:
                lines.append(f"Owners:   {', '.join(dag.owners)}")
            if dag.timetable_description:
                lines.append(f"Schedule: {dag.timetable_description}")
            if dag.fileloc:
                lines.append(f"File:     {dag.fileloc}")
            if dag.has_import_errors:
                lines.append("Import errors reported for this DAG")
            return "\n".join(lines)
        return ""


class DashboardApp(App[None]):
    """Interactive TUI for browsing and operating an orchestration server.

    Screens drill down from servers to DAGs, runs, task instances and logs.
    Enter opens the selected row, q or escape goes back.
    """

    TITLE = "Flowdeck"
    CSS = """
    #status {
        height: 1;
        background: $boost;
    }

    #body {
        height: 1fr;
    }

    #table {
        width: 2fr;
    }

    #side-panel {
        width: 1fr;
        border: solid green;
    }

    #log-panel {
        border: solid blue;
    }

    #popup {
        border: heavy red;
        height: auto;
        max-height: 10;
    }
    """

    BINDINGS = [  # noqa: RUF012 - Textual pattern
        Binding("q", "back_or_quit", "Back/Quit"),
        Binding("escape", "back", "Back", show=False),
        Binding("j", "cursor(1)", "Down", show=False),
        Binding("k", "cursor(-1)", "Up", show=False),
        Binding("g", "cursor_edge(False)", "Top", show=False),
        Binding("G", "cursor_edge(True)", "Bottom", show=False),
        Binding("r", "refresh", "Refresh"),
        Binding("/", "filter", "Filter"),
        Binding("p", "toggle_pause", "Pause"),
        Binding("t", "toggle_show_paused", "Show paused", show=False),
        Binding("T", "trigger", "Trigger"),
        Binding("s", "mark(True)", "Success"),
        Binding("f", "mark(False)", "Failed"),
        Binding("c", "clear", "Clear"),
        Binding("[", "step(-1)", "Prev"),
        Binding("]", "step(1)", "Next"),
        Binding("m", "load_more", "More log", show=False),
        Binding("e", "edit", "Editor", show=False),
        Binding("o", "import_errors", "Import errors", show=False),
        Binding("v", "toggle_code", "Code"),
        Binding("b", "open_in_browser", "Browser"),
        Binding("1", "log_level(1)", "Debug+", show=False),
        Binding("2", "log_level(2)", "Info+", show=False),
        Binding("3", "log_level(3)", "Warning+", show=False),
        Binding("4", "log_level(4)", "Error+", show=False),
        Binding("5", "log_level(5)", "Critical", show=False),
        Binding("x", "dismiss", "Dismiss", show=False),
        Binding("?", "help", "Help"),
    ]

    def __init__(
        self,
        state: AppState,
        worker: SyncWorker,
        synchronizer: ViewSynchronizer,
        log_archive: LogArchive | None = None,
        tick_rate_ms: int = 200,
        initial_server: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self._state = state
        self._worker = worker
        self._sync = synchronizer
        self._log_archive = log_archive
        self._tick_rate_ms = tick_rate_ms
        self._initial_server = initial_server
        self._ticks = 0
        self._rendered: tuple[Any, ...] | None = None

    def compose(self) -> ComposeResult:
        """Create child widgets."""
        yield Header()
        yield Static("", id="status")
        yield Static("", id="popup")
        yield Input(placeholder="Filter (enter to apply, empty to clear)", id="filter")
        with Horizontal(id="body"):
            yield DataTable(id="table", cursor_type="row", zebra_stripes=True)
            yield Static("", id="side-panel", markup=False)
            with VerticalScroll(id="log-panel"):
                yield Static("", id="log-content", markup=False)
        yield Footer()

    def on_mount(self) -> None:
        self.query_one("#filter", Input).display = False
        self.query_one("#popup", Static).display = False
        self._sync.sync_active()
        if self._initial_server:
            self._state.navigate(Screen.DAGS)
            self._submit(
                [ActivateEnvironment(self._initial_server), RefreshDags(), RefreshImportErrors()]
            )
        self.set_interval(self._tick_rate_ms / 1000, self._tick)
        self._render_state()

    # === Tick ===

    def _tick(self) -> None:
        self._ticks += 1
        if self._ticks % REFRESH_EVERY_TICKS == 0:
            self._periodic_refresh()
        self._render_state()

    def _periodic_refresh(self) -> None:
        with self._state.lock:
            screen = self._state.active_screen
        if screen == Screen.CONFIG:
            return
        if screen == Screen.LOGS:
            self._submit(intents.load_more(self._state), quiet=True)
        else:
            self._submit(intents.refresh(self._state), quiet=True)

    def _render_state(self) -> None:
        state = self._state
        with state.lock:
            screen = state.active_screen
            view = state.views.for_screen(screen)
            headers = tuple(view.sort.header_labels())
            rows = tuple(view.table_rows())
            selected = view.selected
            popup = tuple(view.error_popup.messages) if view.error_popup else ()
            log_text = "\n".join(state.views.logs.visible_lines()) if screen == Screen.LOGS else ""
            code_open = state.views.code.visible
        status = status_line(state)
        side = side_panel(state)

        self.query_one("#status", Static).update(status)
        popup_widget = self.query_one("#popup", Static)
        popup_widget.display = bool(popup)
        popup_widget.update("\n".join(popup) + "\n(x to dismiss)" if popup else "")

        table = self.query_one("#table", DataTable)
        side_widget = self.query_one("#side-panel", Static)
        log_panel = self.query_one("#log-panel", VerticalScroll)
        table.display = screen != Screen.LOGS
        side_widget.display = screen in (Screen.DAGS, Screen.TASK_INSTANCES) or (
            screen == Screen.DAG_RUNS and code_open
        )
        log_panel.display = screen == Screen.LOGS
        side_widget.update(side)

        rendered = (screen, headers, rows, log_text)
        if rendered == self._rendered:
            return
        self._rendered = rendered
        if screen == Screen.LOGS:
            self.query_one("#log-content", Static).update(log_text or "(no log content)")
            return
        table.clear(columns=True)
        table.add_columns(*headers)
        table.add_rows(rows)
        if rows:
            table.move_cursor(row=min(selected, len(rows) - 1))

    # === Submission ===

    def _submit(self, commands: list[Command], quiet: bool = False) -> None:
        for command in commands:
            try:
                self._worker.submit(command)
            except WorkerQueueFull as e:
                if not quiet:
                    self.notify(str(e), severity="warning")
                break
        self._sync.sync_active()

    # === Events ===

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        with self._state.lock:
            self._state.views.for_screen(self._state.active_screen).selected = event.cursor_row

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        self._submit(intents.enter(self._state))
        self._render_state()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        with self._state.lock:
            self._state.views.for_screen(self._state.active_screen).set_filter(event.value)
        self._close_filter()
        self._render_state()

    def on_key(self, event: events.Key) -> None:
        if self.query_one("#filter", Input).has_focus or event.character is None:
            return
        with self._state.lock:
            handled = self._state.views.for_screen(self._state.active_screen).sort_by_key(
                event.character
            )
        if handled:
            event.stop()
            self._render_state()

    def _close_filter(self) -> None:
        filter_input = self.query_one("#filter", Input)
        filter_input.display = False
        self.query_one("#table", DataTable).focus()

    # === Actions ===

    def action_back(self) -> None:
        """Go back one screen (or close the filter)."""
        if self.query_one("#filter", Input).display:
            self._close_filter()
            return
        if intents.close_code(self._state):
            self._render_state()
            return
        if intents.back(self._state):
            self._sync.sync_active()
            self._render_state()

    def action_back_or_quit(self) -> None:
        if intents.back(self._state):
            self._sync.sync_active()
            self._render_state()
        else:
            self.exit()

    def action_cursor(self, delta: int) -> None:
        table = self.query_one("#table", DataTable)
        if table.row_count:
            table.move_cursor(row=min(max(table.cursor_row + delta, 0), table.row_count - 1))

    def action_cursor_edge(self, bottom: bool) -> None:
        table = self.query_one("#table", DataTable)
        if table.row_count:
            table.move_cursor(row=table.row_count - 1 if bottom else 0)

    def action_refresh(self) -> None:
        """Re-fetch the active screen, dropping what the server no longer reports."""
        self._submit(intents.refresh(self._state, full=True))

    def action_filter(self) -> None:
        filter_input = self.query_one("#filter", Input)
        with self._state.lock:
            filter_input.value = (
                self._state.views.for_screen(self._state.active_screen).filter_text or ""
            )
        filter_input.display = True
        filter_input.focus()

    def action_toggle_pause(self) -> None:
        self._submit(intents.toggle_pause(self._state))

    def action_toggle_show_paused(self) -> None:
        with self._state.lock:
            if self._state.active_screen == Screen.DAGS:
                self._state.views.dags.toggle_show_paused()
        self._render_state()

    def action_trigger(self) -> None:
        self._submit(intents.trigger(self._state))

    def action_mark(self, success: bool) -> None:
        self._submit(intents.mark(self._state, success))

    def action_clear(self) -> None:
        self._submit(intents.clear(self._state))

    def action_step(self, delta: int) -> None:
        self._submit(intents.step(self._state, delta))
        self._render_state()

    def action_load_more(self) -> None:
        self._submit(intents.load_more(self._state))

    def action_toggle_code(self) -> None:
        self._submit(intents.toggle_code(self._state))
        self._render_state()

    def action_open_in_browser(self) -> None:
        self._submit(intents.open_in_browser(self._state))

    def action_log_level(self, level: int) -> None:
        if intents.set_log_level(self._state, LogLevel(level)):
            self._render_state()

    def action_dismiss(self) -> None:
        with self._state.lock:
            self._state.views.for_screen(self._state.active_screen).dismiss_error()
        self._render_state()

    def action_import_errors(self) -> None:
        """Show import errors as notifications."""
        with self._state.lock:
            errors = self._state.store.import_errors()
        if not errors:
            self.notify("No import errors")
            return
        for error in errors[:5]:
            self.notify(f"{error.filename}\n{error.stack_trace[:300]}", severity="error", timeout=10)

    def action_edit(self) -> None:
        """Open the visible log in $EDITOR."""
        with self._state.lock:
            if self._state.active_screen != Screen.LOGS:
                return
            logs = self._state.views.logs
            content = logs.content
            environment = self._state.store.active_environment
            archived = None
            if self._log_archive and environment and logs.dag_id and logs.dag_run_id and logs.task_key:
                archived = self._log_archive.path_for(
                    environment, logs.dag_id, logs.dag_run_id, logs.task_key, logs.attempt
                )
        path = archived if archived is not None and archived.exists() else self._write_editor_file(content)
        editor = shlex.split(os.environ.get("EDITOR", "vi"))
        with self.suspend():
            subprocess.run([*editor, str(path)], check=False)
        self.refresh()

    def _write_editor_file(self, content: str) -> Path:
        with tempfile.NamedTemporaryFile(
            "w", suffix=".log", prefix="flowdeck-", delete=False, encoding="utf-8"
        ) as handle:
            handle.write(content)
            return Path(handle.name)

    def action_help(self) -> None:
        """Show help."""
        self.notify(
            "enter open, q/esc back, r refresh, / filter, [ ] page/attempt, "
            "p pause, T trigger, s/f mark, c clear, v code, b browser, "
            "1-5 log level, letters in headers sort"
        )
