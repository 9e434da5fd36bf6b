# src/flowdeck/engine/worker.py
"""Sync worker: the only component that talks to the orchestration server.

Commands are processed strictly in submission order, one at a time, each to
completion (network calls included) before the next is dequeued. The queue
is bounded; submit() never blocks and raises WorkerQueueFull instead.

A few commands spawn detached background refreshes (DAG health windows,
DAG details). Those run on a small thread pool concurrently with later
commands. Each one carries a snapshot of the active environment and screen
taken when it was spawned and discards its result if either has changed by
the time it is ready to write.

Failure handling:
- foreground: DecodeError -> "Failed to parse response" popup (body excerpt
  logged); other errors -> popup with the error text. Popups are scoped to
  the screen that issued the command.
- background: logged only; the next periodic refresh retries.

Mutating commands update the cache optimistically before the network call
and are NOT rolled back when the call fails; the next refresh reconciles.
"""

from __future__ import annotations

import queue
import threading
import webbrowser
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import datetime, timezone
from typing import Any

import structlog

from flowdeck.client.factory import create_client
from flowdeck.client.protocol import OrchestrationClient
from flowdeck.contracts.commands import (
    ActivateEnvironment,
    ClearDagRun,
    ClearTaskInstance,
    Command,
    EnsureLogLoaded,
    FetchDagCode,
    FetchDagDetails,
    FetchDagPage,
    FetchDagRunPage,
    FetchLogChunk,
    FetchTaskOrder,
    MarkDagRun,
    MarkTaskInstance,
    OpenItem,
    RefreshDagRuns,
    RefreshDags,
    RefreshImportErrors,
    RefreshTaskInstances,
    Shutdown,
    TogglePause,
    TriggerDagRun,
)
from flowdeck.contracts.entities import DagRun, task_key
from flowdeck.contracts.enums import RunState, Screen, TaskState
from flowdeck.contracts.errors import (
    ClientConstructionError,
    DecodeError,
    FlowdeckError,
    NoActiveEnvironment,
    WorkerQueueFull,
)
from flowdeck.core.config import FlowdeckSettings, ServerSettings
from flowdeck.core.log_archive import LogArchive
from flowdeck.core.ordering import invert_dependencies, topological_sort
from flowdeck.engine.health_batch import fetch_recent_runs
from flowdeck.engine.synchronizer import ViewSynchronizer
from flowdeck.views.app_state import AppState, Snapshot

logger = structlog.get_logger(__name__)

ClientFactory = Callable[[ServerSettings], OrchestrationClient]
UrlOpener = Callable[[str], object]

PARSE_FAILURE_MESSAGE = "Failed to parse response"


class SyncWorker:
    """Sequential command processor with detached background refreshes.

    Usage:
        worker = SyncWorker(state, settings)
        worker.start()
        worker.submit(ActivateEnvironment("prod"))
        worker.submit(RefreshDags())
        ...
        worker.stop()

    Tests drive it synchronously with run_pending() and drain_background().
    """

    def __init__(
        self,
        state: AppState,
        settings: FlowdeckSettings,
        client_factory: ClientFactory | None = None,
        log_archive: LogArchive | None = None,
        synchronizer: ViewSynchronizer | None = None,
        background_workers: int = 4,
        url_opener: UrlOpener | None = None,
    ) -> None:
        """Initialize the worker.

        Args:
            state: Shared cache and view models
            settings: Validated settings (servers, page sizes, queue size)
            client_factory: Builds a client for a server entry
            log_archive: Receives every accumulated log after a chunk insert
            synchronizer: View synchronizer (one over `state` if omitted)
            background_workers: Threads for detached refreshes
            url_opener: Opens web UI pages (the default browser if omitted)
        """
        self._state = state
        self._settings = settings
        self._client_factory = client_factory or self._default_client_factory
        self._log_archive = log_archive
        self._sync = synchronizer or ViewSynchronizer(state, settings.servers)
        self._url_opener: UrlOpener = url_opener or webbrowser.open

        self._queue: queue.Queue[Command] = queue.Queue(maxsize=settings.worker_queue_size)
        self._executor = ThreadPoolExecutor(
            max_workers=background_workers, thread_name_prefix="flowdeck-refresh"
        )
        self._background: list[Future[None]] = []
        self._background_lock = threading.Lock()
        self._thread: threading.Thread | None = None

        self._handlers: dict[type[Command], Callable[[Any], None]] = {
            ActivateEnvironment: self._activate_environment,
            RefreshDags: self._refresh_dags,
            FetchDagPage: self._fetch_dag_page,
            RefreshDagRuns: self._refresh_dag_runs,
            FetchDagRunPage: self._fetch_dag_run_page,
            RefreshTaskInstances: self._refresh_task_instances,
            FetchTaskOrder: self._fetch_task_order,
            FetchLogChunk: self._fetch_log_chunk,
            EnsureLogLoaded: self._ensure_log_loaded,
            TogglePause: self._toggle_pause,
            MarkDagRun: self._mark_dag_run,
            ClearDagRun: self._clear_dag_run,
            TriggerDagRun: self._trigger_dag_run,
            MarkTaskInstance: self._mark_task_instance,
            ClearTaskInstance: self._clear_task_instance,
            RefreshImportErrors: self._refresh_import_errors,
            FetchDagDetails: self._fetch_dag_details,
            FetchDagCode: self._fetch_dag_code,
            OpenItem: self._open_item,
        }

    def _default_client_factory(self, server: ServerSettings) -> OrchestrationClient:
        return create_client(server, timeout=self._settings.request_timeout_seconds)

    # === Queue ===

    def submit(self, command: Command) -> None:
        """Queue a command without blocking.

        Raises:
            WorkerQueueFull: If the queue is at capacity
        """
        try:
            self._queue.put_nowait(command)
        except queue.Full:
            raise WorkerQueueFull(
                f"Worker queue is full; dropped {type(command).__name__}"
            ) from None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        """Run the command loop on a daemon thread."""
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self.run, name="flowdeck-worker", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the command loop and release background threads and clients."""
        if self._thread is not None:
            try:
                self._queue.put(Shutdown(), timeout=timeout)
            except queue.Full:
                logger.warning("Worker queue full at shutdown; abandoning pending commands")
            self._thread.join(timeout=timeout)
            self._thread = None
        self._executor.shutdown(wait=False, cancel_futures=True)
        for client in self._state.store.clients():
            client.close()

    def run(self) -> None:
        """Process commands until a Shutdown command arrives."""
        while True:
            command = self._queue.get()
            try:
                if isinstance(command, Shutdown):
                    return
                self.process(command)
            finally:
                self._queue.task_done()

    def run_pending(self) -> int:
        """Process queued commands (including follow-ups) until the queue is empty.

        Returns:
            Number of commands processed
        """
        processed = 0
        while True:
            try:
                command = self._queue.get_nowait()
            except queue.Empty:
                return processed
            try:
                if not isinstance(command, Shutdown):
                    self.process(command)
                    processed += 1
            finally:
                self._queue.task_done()

    def drain_background(self, timeout: float | None = None) -> None:
        """Wait for every detached refresh spawned so far."""
        with self._background_lock:
            futures = list(self._background)
        wait(futures, timeout=timeout)
        with self._background_lock:
            self._background = [f for f in self._background if not f.done()]

    # === Dispatch ===

    def process(self, command: Command) -> None:
        """Execute one command; failures become popups on the command's screen."""
        name = type(command).__name__
        self._state.set_loading(True)
        try:
            handler = self._handlers.get(type(command))
            if handler is None:
                raise TypeError(f"Unsupported command: {name}")
            handler(command)
        except DecodeError as e:
            logger.error(
                "Failed to parse response",
                command=name,
                error=str(e),
                body_excerpt=e.body_excerpt,
            )
            self._state.show_error(command.error_screen, PARSE_FAILURE_MESSAGE)
        except FlowdeckError as e:
            logger.warning("Command failed", command=name, error=str(e))
            self._state.show_error(command.error_screen, str(e))
        except Exception as e:
            logger.exception("Unexpected error while processing command", command=name)
            self._state.show_error(command.error_screen, f"Unexpected error: {e}")
        finally:
            self._state.set_loading(False)

    def _require_client(self) -> tuple[str, OrchestrationClient]:
        store = self._state.store
        with self._state.lock:
            environment = store.active_environment
            client = store.active_client()
        if environment is None or client is None:
            raise NoActiveEnvironment("No active environment selected")
        return environment, client

    # === Detached refreshes ===

    def _spawn(self, task: Callable[..., None], *args: Any) -> None:
        snapshot = self._state.snapshot()
        future = self._executor.submit(self._run_detached, task, snapshot, *args)
        with self._background_lock:
            self._background = [f for f in self._background if not f.done()]
            self._background.append(future)

    def _run_detached(self, task: Callable[..., None], snapshot: Snapshot, *args: Any) -> None:
        name = getattr(task, "__name__", repr(task))
        try:
            task(snapshot, *args)
        except DecodeError as e:
            logger.warning(
                "Background refresh could not parse response",
                task=name,
                error=str(e),
                body_excerpt=e.body_excerpt,
            )
        except FlowdeckError as e:
            logger.warning("Background refresh failed", task=name, error=str(e))
        except Exception:
            logger.exception("Unexpected error in background refresh", task=name)

    def _refresh_recent_runs(
        self, snapshot: Snapshot, client: OrchestrationClient, dag_ids: list[str]
    ) -> None:
        result = fetch_recent_runs(client, dag_ids, self._settings.health_window)
        with self._state.lock:
            if not self._state.is_current(snapshot):
                logger.debug("Discarding stale health refresh", dag_count=len(dag_ids))
                return
            for dag_id, runs in result.runs.items():
                self._state.store.set_recent_runs(dag_id, runs)
            self._sync.sync_if_visible(Screen.DAGS)

    def _load_dag_details(
        self, snapshot: Snapshot, client: OrchestrationClient, dag_id: str
    ) -> None:
        details = client.get_dag_details(dag_id)
        with self._state.lock:
            if not self._state.is_current(snapshot):
                logger.debug("Discarding stale DAG details", dag_id=dag_id)
                return
            self._state.store.set_dag_details(details)
            self._sync.sync_if_visible(Screen.DAGS)

    # === Environment ===

    def _activate_environment(self, command: ActivateEnvironment) -> None:
        store = self._state.store
        try:
            server = self._settings.get_server(command.name)
        except KeyError as e:
            raise ClientConstructionError(f"Unknown server '{command.name}'") from e

        if not store.has_environment(command.name):
            try:
                client = self._client_factory(server)
            except ClientConstructionError as e:
                raise ClientConstructionError(
                    f"Failed to create client for '{command.name}': {e}. "
                    "Check the endpoint, credentials and proxy settings."
                ) from e
            store.add_environment(command.name, client)

        with self._state.lock:
            store.set_active_environment(command.name)
            self._state.reset_views()
            self._sync.sync_screen(Screen.CONFIG)
            self._sync.sync_active()
        logger.info("Activated environment", environment=command.name)

    # === DAGs ===

    def _refresh_dags(self, command: RefreshDags) -> None:
        self._fetch_dag_page(FetchDagPage(offset=0), prune=command.prune)

    def _fetch_dag_page(self, command: FetchDagPage, prune: bool = False) -> None:
        _, client = self._require_client()
        dags, total = client.list_dags(offset=command.offset, limit=self._settings.dag_page_size)
        with self._state.lock:
            if prune:
                # Later pages re-add the rest; DAGs deleted on the server stay gone
                self._state.store.clear_workflows()
            self._state.store.upsert_workflows(dags)
            self._sync.sync_if_visible(Screen.DAGS)

        fetched = command.offset + len(dags)
        if dags and fetched < total:
            self.submit(FetchDagPage(offset=fetched))

        unpaused = [dag.dag_id for dag in dags if not dag.is_paused]
        if unpaused:
            self._spawn(self._refresh_recent_runs, client, unpaused)

    def _toggle_pause(self, command: TogglePause) -> None:
        _, client = self._require_client()
        with self._state.lock:
            self._state.store.set_paused(command.dag_id, not command.is_paused)
            self._sync.sync_if_visible(Screen.DAGS)
        client.toggle_dag_pause(command.dag_id, command.is_paused)

    def _refresh_import_errors(self, command: RefreshImportErrors) -> None:
        _, client = self._require_client()
        errors, total = client.list_import_errors()
        with self._state.lock:
            self._state.store.set_import_errors(errors, total)
            self._sync.sync_if_visible(Screen.DAGS)

    def _fetch_dag_details(self, command: FetchDagDetails) -> None:
        _, client = self._require_client()
        self._spawn(self._load_dag_details, client, command.dag_id)

    def _fetch_dag_code(self, command: FetchDagCode) -> None:
        _, client = self._require_client()
        dag = self._state.store.active_workflow(command.dag_id)
        if dag is None:
            raise FlowdeckError(f"DAG '{command.dag_id}' not found")
        code = client.get_dag_code(command.dag_id, dag.file_token)
        with self._state.lock:
            self._state.store.set_dag_code(command.dag_id, code)
            self._sync.sync_if_visible(Screen.DAGS)
            self._sync.sync_if_visible(Screen.DAG_RUNS)

    def _open_item(self, command: OpenItem) -> None:
        url = command.url
        if url is None:
            _, client = self._require_client()
            url = client.build_open_url(
                dag_id=command.dag_id,
                dag_run_id=command.dag_run_id,
                task_id=command.task_id,
                attempt=command.attempt,
                map_index=command.map_index,
            )
        logger.info("Opening in browser", url=url)
        self._url_opener(url)

    # === DAG runs ===

    def _refresh_dag_runs(self, command: RefreshDagRuns) -> None:
        self._fetch_dag_run_page(
            FetchDagRunPage(command.dag_id, offset=0, limit=self._settings.run_page_size)
        )

    def _fetch_dag_run_page(self, command: FetchDagRunPage) -> None:
        _, client = self._require_client()
        runs, total = client.list_dag_runs(command.dag_id, offset=command.offset, limit=command.limit)
        with self._state.lock:
            self._state.store.upsert_runs(runs)
            self._state.store.set_total_runs(command.dag_id, total)
            self._sync.sync_if_visible(Screen.DAG_RUNS)

    def _mark_dag_run(self, command: MarkDagRun) -> None:
        _, client = self._require_client()
        with self._state.lock:
            self._state.store.set_run_state(
                command.dag_id, command.dag_run_id, RunState(command.state).value
            )
            self._sync.sync_if_visible(Screen.DAG_RUNS)
        client.mark_dag_run(command.dag_id, command.dag_run_id, command.state)

    def _clear_dag_run(self, command: ClearDagRun) -> None:
        _, client = self._require_client()
        with self._state.lock:
            self._state.store.set_run_state(
                command.dag_id, command.dag_run_id, RunState.QUEUED.value
            )
            self._sync.sync_if_visible(Screen.DAG_RUNS)
        client.clear_dag_run(command.dag_id, command.dag_run_id)

    def _trigger_dag_run(self, command: TriggerDagRun) -> None:
        _, client = self._require_client()
        now = datetime.now(timezone.utc)
        dag_run_id = f"manual__{now.isoformat()}"
        with self._state.lock:
            self._state.store.upsert_run(
                DagRun(
                    dag_id=command.dag_id,
                    dag_run_id=dag_run_id,
                    state=RunState.QUEUED.value,
                    run_type="manual",
                    logical_date=now,
                )
            )
            self._sync.sync_if_visible(Screen.DAG_RUNS)
        client.trigger_dag_run(command.dag_id, dag_run_id)

    # === Task instances ===

    def _refresh_task_instances(self, command: RefreshTaskInstances) -> None:
        _, client = self._require_client()
        task_instances = client.list_task_instances(command.dag_id, command.dag_run_id)
        with self._state.lock:
            if command.reload_order:
                self._state.store.invalidate_task_order(command.dag_id)
            self._state.store.upsert_task_instances(task_instances)
            self._sync.sync_if_visible(Screen.TASK_INSTANCES)
            needs_order = not self._state.store.has_dependency_graph(command.dag_id)
        if needs_order:
            self.submit(FetchTaskOrder(command.dag_id))

    def _fetch_task_order(self, command: FetchTaskOrder) -> None:
        _, client = self._require_client()
        tasks = client.list_tasks(command.dag_id)
        downstream = {task_id: list(targets) for task_id, targets in tasks}
        upstream = invert_dependencies(downstream)
        order = topological_sort(tasks)
        with self._state.lock:
            self._state.store.set_dependency_graph(command.dag_id, upstream)
            self._state.store.set_task_order(command.dag_id, order)
            self._sync.sync_if_visible(Screen.TASK_INSTANCES)

    def _mark_task_instance(self, command: MarkTaskInstance) -> None:
        _, client = self._require_client()
        with self._state.lock:
            self._state.store.set_task_state(
                command.dag_id,
                command.dag_run_id,
                command.task_id,
                TaskState(command.state).value,
                map_index=command.map_index,
            )
            self._sync.sync_if_visible(Screen.TASK_INSTANCES)
        client.mark_task_instance(
            command.dag_id,
            command.dag_run_id,
            command.task_id,
            command.state,
            map_index=command.map_index,
        )

    def _clear_task_instance(self, command: ClearTaskInstance) -> None:
        _, client = self._require_client()
        with self._state.lock:
            self._state.store.set_task_state(
                command.dag_id,
                command.dag_run_id,
                command.task_id,
                None,
                map_index=command.map_index,
            )
            self._sync.sync_if_visible(Screen.TASK_INSTANCES)
        client.clear_task_instance(
            command.dag_id, command.dag_run_id, command.task_id, map_index=command.map_index
        )

    # === Logs ===

    def _fetch_log_chunk(self, command: FetchLogChunk) -> None:
        environment, client = self._require_client()
        token = None
        if command.load_more:
            with self._state.lock:
                log = self._state.store.active_log(
                    command.dag_id,
                    command.dag_run_id,
                    command.task_id,
                    command.attempt,
                    map_index=command.map_index,
                )
            if log is None or not log.has_more():
                logger.debug("No more log content to load", task_id=command.task_id)
                return
            token = log.continuation_token

        chunk = client.get_log_chunk(
            command.dag_id,
            command.dag_run_id,
            command.task_id,
            command.attempt,
            token,
            map_index=command.map_index,
        )
        with self._state.lock:
            content = self._state.store.append_log_chunk(
                command.dag_id,
                command.dag_run_id,
                command.task_id,
                command.attempt,
                chunk,
                reset=not command.load_more,
                keep=self._state.views.logs.keep(),
                map_index=command.map_index,
            )
            self._sync.sync_if_visible(Screen.LOGS)
        self._archive_log(environment, command, content)

    def _ensure_log_loaded(self, command: EnsureLogLoaded) -> None:
        environment, client = self._require_client()
        store = self._state.store
        with self._state.lock:
            store.mark_log_viewed(
                command.dag_id,
                command.dag_run_id,
                command.task_id,
                command.attempt,
                map_index=command.map_index,
            )
            cached = store.active_log(
                command.dag_id,
                command.dag_run_id,
                command.task_id,
                command.attempt,
                map_index=command.map_index,
            )
            if cached is not None:
                self._sync.sync_if_visible(Screen.LOGS)
                return

        chunk = client.get_log_chunk(
            command.dag_id,
            command.dag_run_id,
            command.task_id,
            command.attempt,
            map_index=command.map_index,
        )
        with self._state.lock:
            content = store.append_log_chunk(
                command.dag_id,
                command.dag_run_id,
                command.task_id,
                command.attempt,
                chunk,
                reset=True,
                keep=command.keep,
                map_index=command.map_index,
            )
            if command.keep:
                store.evict_logs_not_in(
                    command.dag_id,
                    command.dag_run_id,
                    command.task_id,
                    command.keep,
                    map_index=command.map_index,
                )
            self._sync.sync_if_visible(Screen.LOGS)
        self._archive_log(environment, command, content)

    def _archive_log(
        self, environment: str, command: FetchLogChunk | EnsureLogLoaded, content: str | None
    ) -> None:
        if self._log_archive is None or content is None:
            return
        self._log_archive.write(
            environment,
            command.dag_id,
            command.dag_run_id,
            task_key(command.task_id, command.map_index),
            command.attempt,
            content,
        )
