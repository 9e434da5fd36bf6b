# src/flowdeck/tui/intents.py
"""Translate dashboard actions into navigation and worker commands.

Every function takes the shared AppState, updates navigation and view
state under its lock, and returns the commands the dashboard should submit
to the sync worker. Nothing here touches textual or the network.
"""

from __future__ import annotations

from flowdeck.contracts.commands import (
    ActivateEnvironment,
    ClearDagRun,
    ClearTaskInstance,
    Command,
    EnsureLogLoaded,
    FetchDagCode,
    FetchDagDetails,
    FetchDagRunPage,
    FetchLogChunk,
    MarkDagRun,
    MarkTaskInstance,
    OpenItem,
    RefreshDagRuns,
    RefreshDags,
    RefreshImportErrors,
    RefreshTaskInstances,
    TogglePause,
    TriggerDagRun,
)
from flowdeck.contracts.enums import LogLevel, RunState, Screen, TaskState
from flowdeck.views.app_state import AppState


def refresh(state: AppState, full: bool = False) -> list[Command]:
    """Commands that re-fetch what the active screen shows.

    A full refresh (user initiated) also drops DAGs the server no longer
    reports and reloads the task dependency graph.
    """
    with state.lock:
        views = state.views
        screen = state.active_screen
        if screen == Screen.DAGS:
            return [RefreshDags(prune=full), RefreshImportErrors()]
        if screen == Screen.DAG_RUNS and views.dag_runs.dag_id:
            return [RefreshDagRuns(views.dag_runs.dag_id)]
        if screen == Screen.TASK_INSTANCES:
            view = views.task_instances
            if view.dag_id and view.dag_run_id:
                return [RefreshTaskInstances(view.dag_id, view.dag_run_id, reload_order=full)]
        if screen == Screen.LOGS:
            logs = views.logs
            if logs.dag_id and logs.dag_run_id and logs.task_id:
                return [
                    FetchLogChunk(
                        logs.dag_id,
                        logs.dag_run_id,
                        logs.task_id,
                        logs.attempt,
                        map_index=logs.map_index,
                    )
                ]
        return []


def enter(state: AppState) -> list[Command]:
    """Drill into the selected row."""
    with state.lock:
        views = state.views
        screen = state.active_screen

        if screen == Screen.CONFIG:
            name = views.config.selected_name()
            if name is None:
                return []
            state.navigate(Screen.DAGS)
            return [ActivateEnvironment(name), RefreshDags(), RefreshImportErrors()]

        if screen == Screen.DAGS:
            dag = views.dags.selected_dag()
            if dag is None:
                return []
            views.dag_runs.open(dag.dag_id)
            views.code.close()
            state.navigate(Screen.DAG_RUNS)
            return [RefreshDagRuns(dag.dag_id), FetchDagDetails(dag.dag_id)]

        if screen == Screen.DAG_RUNS:
            run = views.dag_runs.selected_run()
            if run is None:
                return []
            views.task_instances.open(run.dag_id, run.dag_run_id)
            views.code.close()
            state.navigate(Screen.TASK_INSTANCES)
            return [RefreshTaskInstances(run.dag_id, run.dag_run_id)]

        if screen == Screen.TASK_INSTANCES:
            ti = views.task_instances.selected_task()
            if ti is None:
                return []
            logs = views.logs
            logs.open(ti.dag_id, ti.dag_run_id, ti.task_id, ti.try_number, map_index=ti.map_index)
            state.navigate(Screen.LOGS)
            return _ensure_log(state)

        return []


def back(state: AppState) -> bool:
    """Return to the parent screen; False when already at the top."""
    with state.lock:
        if state.active_screen == Screen.CONFIG:
            return False
        state.views.code.close()
        state.navigate(state.active_screen.parent)
        return True


def toggle_pause(state: AppState) -> list[Command]:
    with state.lock:
        if state.active_screen != Screen.DAGS:
            return []
        dag = state.views.dags.selected_dag()
        if dag is None:
            return []
        return [TogglePause(dag.dag_id, dag.is_paused)]


def trigger(state: AppState) -> list[Command]:
    with state.lock:
        dag_id: str | None = None
        if state.active_screen == Screen.DAGS:
            dag = state.views.dags.selected_dag()
            dag_id = dag.dag_id if dag else None
        elif state.active_screen == Screen.DAG_RUNS:
            dag_id = state.views.dag_runs.dag_id
        return [TriggerDagRun(dag_id)] if dag_id else []


def mark(state: AppState, success: bool) -> list[Command]:
    """Mark the selected run or task instance as success or failed."""
    with state.lock:
        if state.active_screen == Screen.DAG_RUNS:
            run = state.views.dag_runs.selected_run()
            if run is None:
                return []
            run_state = RunState.SUCCESS if success else RunState.FAILED
            return [MarkDagRun(run.dag_id, run.dag_run_id, run_state)]
        if state.active_screen == Screen.TASK_INSTANCES:
            ti = state.views.task_instances.selected_task()
            if ti is None:
                return []
            task_state = TaskState.SUCCESS if success else TaskState.FAILED
            return [
                MarkTaskInstance(
                    ti.dag_id, ti.dag_run_id, ti.task_id, task_state, map_index=ti.map_index
                )
            ]
        return []


def clear(state: AppState) -> list[Command]:
    with state.lock:
        if state.active_screen == Screen.DAG_RUNS:
            run = state.views.dag_runs.selected_run()
            return [ClearDagRun(run.dag_id, run.dag_run_id)] if run else []
        if state.active_screen == Screen.TASK_INSTANCES:
            ti = state.views.task_instances.selected_task()
            if ti is None:
                return []
            return [ClearTaskInstance(ti.dag_id, ti.dag_run_id, ti.task_id, map_index=ti.map_index)]
        return []


def step(state: AppState, delta: int) -> list[Command]:
    """Previous/next page of runs, or previous/next attempt of a log."""
    with state.lock:
        if state.active_screen == Screen.DAG_RUNS:
            view = state.views.dag_runs
            if view.dag_id is None:
                return []
            target = view.page + delta
            commands: list[Command] = []
            if target >= 0 and view.needs_fetch(target):
                commands.append(
                    FetchDagRunPage(view.dag_id, view.next_offset(), view.page_size)
                )
            view.go_to_page(target)
            return commands
        if state.active_screen == Screen.LOGS:
            logs = state.views.logs
            if logs.task_id is None:
                return []
            logs.view_attempt(logs.attempt + delta)
            return _ensure_log(state)
        return []


def load_more(state: AppState) -> list[Command]:
    """Fetch the next chunk of the visible log, if the server has more."""
    with state.lock:
        logs = state.views.logs
        if state.active_screen != Screen.LOGS or not logs.has_more:
            return []
        if logs.dag_id is None or logs.dag_run_id is None or logs.task_id is None:
            return []
        return [
            FetchLogChunk(
                logs.dag_id,
                logs.dag_run_id,
                logs.task_id,
                logs.attempt,
                load_more=True,
                map_index=logs.map_index,
            )
        ]


def set_log_level(state: AppState, level: LogLevel) -> bool:
    """Hide log lines below `level`; False when no log is shown."""
    with state.lock:
        if state.active_screen != Screen.LOGS:
            return False
        state.views.logs.set_min_level(level)
        return True


def toggle_code(state: AppState) -> list[Command]:
    """Show (and fetch) the source of the selected DAG, or hide it again."""
    with state.lock:
        dag_id: str | None = None
        if state.active_screen == Screen.DAGS:
            dag = state.views.dags.selected_dag()
            dag_id = dag.dag_id if dag else None
        elif state.active_screen == Screen.DAG_RUNS:
            dag_id = state.views.dag_runs.dag_id
        if dag_id is None:
            return []
        code = state.views.code
        if code.dag_id == dag_id:
            code.close()
            return []
        code.open(dag_id)
        return [FetchDagCode(dag_id)]


def close_code(state: AppState) -> bool:
    """Hide the source panel; False if it was not shown."""
    with state.lock:
        if not state.views.code.visible:
            return False
        state.views.code.close()
        return True


def open_in_browser(state: AppState) -> list[Command]:
    """Open the web page of whatever is selected on the active screen."""
    with state.lock:
        views = state.views
        screen = state.active_screen
        if screen == Screen.CONFIG:
            rows = views.config.filtered
            if not rows:
                return []
            return [OpenItem(screen, url=rows[views.config.selected][1])]
        if screen == Screen.DAGS:
            dag = views.dags.selected_dag()
            return [OpenItem(screen, dag_id=dag.dag_id)] if dag else []
        if screen == Screen.DAG_RUNS:
            run = views.dag_runs.selected_run()
            return [OpenItem(screen, dag_id=run.dag_id, dag_run_id=run.dag_run_id)] if run else []
        if screen == Screen.TASK_INSTANCES:
            ti = views.task_instances.selected_task()
            if ti is None:
                return []
            return [
                OpenItem(
                    screen,
                    dag_id=ti.dag_id,
                    dag_run_id=ti.dag_run_id,
                    task_id=ti.task_id,
                    map_index=ti.map_index,
                )
            ]
        logs = views.logs
        if logs.dag_id is None or logs.dag_run_id is None or logs.task_id is None:
            return []
        return [
            OpenItem(
                screen,
                dag_id=logs.dag_id,
                dag_run_id=logs.dag_run_id,
                task_id=logs.task_id,
                attempt=logs.attempt,
                map_index=logs.map_index,
            )
        ]


def _ensure_log(state: AppState) -> list[Command]:
    logs = state.views.logs
    if logs.dag_id is None or logs.dag_run_id is None or logs.task_id is None:
        return []
    return [
        EnsureLogLoaded(
            logs.dag_id,
            logs.dag_run_id,
            logs.task_id,
            logs.attempt,
            keep=logs.keep(),
            map_index=logs.map_index,
        )
    ]
