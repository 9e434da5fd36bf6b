# src/flowdeck/engine/synchronizer.py
"""View Synchronizer: copies cache slices into the per-screen view models.

Pure read-and-copy, no network I/O. Called by the worker after every cache
write that affects a screen and by the dashboard whenever the active screen
changes. Each copy reapplies the screen's filter and sort.
"""

from __future__ import annotations

from collections.abc import Sequence

from flowdeck.contracts.enums import Screen
from flowdeck.core.config import ServerSettings
from flowdeck.views.app_state import AppState


class ViewSynchronizer:
    """Copies the active environment's cache into view models."""

    def __init__(self, state: AppState, servers: Sequence[ServerSettings] = ()) -> None:
        self._state = state
        self._servers = list(servers)

    def sync_active(self) -> None:
        """Refresh the view model of the screen currently shown."""
        with self._state.lock:
            self.sync_screen(self._state.active_screen)

    def sync_if_visible(self, screen: Screen) -> None:
        """Refresh `screen`'s view model only if it is the one shown."""
        with self._state.lock:
            if self._state.active_screen == screen:
                self.sync_screen(screen)

    def sync_screen(self, screen: Screen) -> None:
        with self._state.lock:
            {
                Screen.CONFIG: self._sync_config,
                Screen.DAGS: self._sync_dags,
                Screen.DAG_RUNS: self._sync_dag_runs,
                Screen.TASK_INSTANCES: self._sync_task_instances,
                Screen.LOGS: self._sync_logs,
            }[screen]()

    def _sync_config(self) -> None:
        rows = [(s.name, s.endpoint, s.version.value) for s in self._servers]
        self._state.views.config.set_items(rows, self._state.store.active_environment)

    def _sync_dags(self) -> None:
        store = self._state.store
        self._state.views.dags.set_items(store.active_workflows(), store.import_error_count())
        self._sync_code()

    def _sync_code(self) -> None:
        code = self._state.views.code
        if code.dag_id is not None:
            code.set_code(self._state.store.dag_code(code.dag_id))

    def _sync_dag_runs(self) -> None:
        view = self._state.views.dag_runs
        self._sync_code()
        if view.dag_id is None:
            view.set_items([])
            return
        store = self._state.store
        view.set_items(store.active_runs(view.dag_id), store.active_total_runs(view.dag_id))

    def _sync_task_instances(self) -> None:
        view = self._state.views.task_instances
        if view.dag_id is None or view.dag_run_id is None:
            view.set_items([])
            return
        store = self._state.store
        view.set_items(
            store.active_task_instances(view.dag_id, view.dag_run_id),
            dependency_graph=store.get_dependency_graph(view.dag_id),
            task_order=store.get_task_order(view.dag_id),
        )

    def _sync_logs(self) -> None:
        view = self._state.views.logs
        if view.dag_id is None or view.dag_run_id is None or view.task_id is None:
            view.set_log(None)
            return
        view.set_log(
            self._state.store.active_log(
                view.dag_id, view.dag_run_id, view.task_id, view.attempt, map_index=view.map_index
            )
        )
