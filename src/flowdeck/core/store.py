# src/flowdeck/core/store.py
"""Environment state cache.

One EnvironmentStore holds a nested cache per configured server:

    Environment
    └── DagData (per dag_id)
        ├── DagRunData (per dag_run_id)
        │   └── TaskInstanceData (per task instance key)
        │       └── TaskLog (per attempt, at most `max_cached_attempts`)
        ├── dependency graph + task order
        └── recent runs (health window), details and source code

Consistency rules:
- A child is only inserted under an existing parent. Inserts into a missing
  parent are dropped (the fetch raced with a cache clear) and logged at
  debug level.
- Records are frozen and replaced wholesale; the derived Dag fields survive
  a refresh that does not carry them.
- All reads and writes go through one re-entrant lock shared with the view
  models (see flowdeck.views.app_state). Never hold it across network I/O.
- Only the active environment is readable.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from collections.abc import Collection, Iterable, Sequence
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

import structlog

from flowdeck.contracts.entities import (
    Dag,
    DagDetails,
    DagRun,
    ImportErrorRecord,
    LogChunk,
    TaskInstance,
    task_key,
)
from flowdeck.core.health import compute_state_priority, schedule_frequency

if TYPE_CHECKING:
    from flowdeck.client.protocol import OrchestrationClient

logger = structlog.get_logger(__name__)

MAX_CACHED_ATTEMPTS = 5


@dataclass
class TaskLog:
    """Accumulated log of one task attempt."""

    chunks: list[str] = field(default_factory=list)
    continuation_token: str | None = None

    @property
    def content(self) -> str:
        return "".join(self.chunks)

    def has_more(self) -> bool:
        """True while the server handed out a continuation token."""
        return self.continuation_token is not None

    def append(self, chunk: LogChunk) -> None:
        self.chunks.append(chunk.content)
        self.continuation_token = chunk.continuation_token

    def copy(self) -> TaskLog:
        return TaskLog(chunks=list(self.chunks), continuation_token=self.continuation_token)


@dataclass
class TaskInstanceData:
    task_instance: TaskInstance
    # attempt -> log, least recently viewed first
    logs: OrderedDict[int, TaskLog] = field(default_factory=OrderedDict)


@dataclass
class DagRunData:
    dag_run: DagRun
    task_instances: dict[str, TaskInstanceData] = field(default_factory=dict)


@dataclass
class DagData:
    dag: Dag
    dag_runs: dict[str, DagRunData] = field(default_factory=dict)
    total_dag_runs: int | None = None
    recent_runs: list[DagRun] | None = None
    # task_id -> upstream task ids
    dependency_graph: dict[str, list[str]] | None = None
    task_order: list[str] | None = None
    details: DagDetails | None = None
    code: str | None = None


@dataclass
class EnvironmentData:
    dags: dict[str, DagData] = field(default_factory=dict)
    import_errors: list[ImportErrorRecord] = field(default_factory=list)
    import_error_count: int = 0


@dataclass
class Environment:
    """A configured server: its client handle and its cache."""

    name: str
    client: OrchestrationClient
    data: EnvironmentData = field(default_factory=EnvironmentData)


class EnvironmentStore:
    """Lock-guarded, per-environment cache of fetched entities.

    Usage:
        store = EnvironmentStore()
        store.add_environment("prod", client)
        store.set_active_environment("prod")
        store.upsert_workflows(dags)
        store.active_workflows()
    """

    def __init__(
        self,
        lock: threading.RLock | None = None,
        max_cached_attempts: int = MAX_CACHED_ATTEMPTS,
    ) -> None:
        """Initialize an empty store.

        Args:
            lock: Lock shared with the view layer (a private one if omitted)
            max_cached_attempts: Log attempts kept per task instance
        """
        self._lock = lock if lock is not None else threading.RLock()
        self._max_cached_attempts = max_cached_attempts
        self._environments: dict[str, Environment] = {}
        self._active: str | None = None

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    # === Environments ===

    def add_environment(self, name: str, client: OrchestrationClient) -> None:
        """Register an environment; an existing one keeps its cache."""
        with self._lock:
            if name not in self._environments:
                self._environments[name] = Environment(name=name, client=client)

    def has_environment(self, name: str) -> bool:
        with self._lock:
            return name in self._environments

    def environment_names(self) -> list[str]:
        with self._lock:
            return list(self._environments)

    def set_active_environment(self, name: str) -> bool:
        """Activate a registered environment.

        Returns:
            False (and nothing changes) if the environment is unknown
        """
        with self._lock:
            if name not in self._environments:
                return False
            self._active = name
            return True

    @property
    def active_environment(self) -> str | None:
        with self._lock:
            return self._active

    def active_client(self) -> OrchestrationClient | None:
        with self._lock:
            env = self._active_env()
            return env.client if env else None

    def clients(self) -> list[OrchestrationClient]:
        with self._lock:
            return [env.client for env in self._environments.values()]

    def _active_env(self) -> Environment | None:
        if self._active is None:
            return None
        return self._environments.get(self._active)

    def _active_data(self) -> EnvironmentData | None:
        env = self._active_env()
        if env is None:
            logger.debug("No active environment; cache access skipped")
            return None
        return env.data

    def _dag_data(self, dag_id: str) -> DagData | None:
        data = self._active_data()
        if data is None:
            return None
        dag_data = data.dags.get(dag_id)
        if dag_data is None:
            logger.debug("Dropping write for missing DAG", dag_id=dag_id)
        return dag_data

    def _run_data(self, dag_id: str, dag_run_id: str) -> DagRunData | None:
        dag_data = self._dag_data(dag_id)
        if dag_data is None:
            return None
        run_data = dag_data.dag_runs.get(dag_run_id)
        if run_data is None:
            logger.debug("Dropping write for missing DAG run", dag_id=dag_id, dag_run_id=dag_run_id)
        return run_data

    def _task_data(
        self, dag_id: str, dag_run_id: str, task_id: str, map_index: int
    ) -> TaskInstanceData | None:
        run_data = self._run_data(dag_id, dag_run_id)
        if run_data is None:
            return None
        key = task_key(task_id, map_index)
        task_data = run_data.task_instances.get(key)
        if task_data is None:
            logger.debug(
                "Dropping write for missing task instance",
                dag_id=dag_id,
                dag_run_id=dag_run_id,
                task_key=key,
            )
        return task_data

    # === Workflows ===

    def upsert_workflow(self, dag: Dag) -> None:
        """Insert or replace a DAG, keeping its runs and derived fields."""
        with self._lock:
            data = self._active_data()
            if data is None:
                return
            existing = data.dags.get(dag.dag_id)
            if existing is None:
                data.dags[dag.dag_id] = DagData(dag=self._derive(dag, None, None))
                return
            existing.dag = self._derive(dag, existing.dag, existing.recent_runs)

    def upsert_workflows(self, dags: Iterable[Dag]) -> None:
        with self._lock:
            for dag in dags:
                self.upsert_workflow(dag)

    @staticmethod
    def _derive(dag: Dag, previous: Dag | None, recent_runs: list[DagRun] | None) -> Dag:
        frequency = dag.schedule_frequency
        if frequency is None:
            frequency = schedule_frequency(dag.schedule_interval)
        priority = dag.state_priority
        if priority is None:
            paused_changed = previous is not None and previous.is_paused != dag.is_paused
            if recent_runs is not None or dag.is_paused or paused_changed:
                priority = compute_state_priority(dag.is_paused, recent_runs or [])
            elif previous is not None:
                priority = previous.state_priority
        return replace(dag, state_priority=priority, schedule_frequency=frequency)

    def set_paused(self, dag_id: str, is_paused: bool) -> None:
        with self._lock:
            dag_data = self._dag_data(dag_id)
            if dag_data is None:
                return
            dag = replace(dag_data.dag, is_paused=is_paused, state_priority=None)
            dag_data.dag = self._derive(dag, None, dag_data.recent_runs)

    def set_recent_runs(self, dag_id: str, runs: Sequence[DagRun]) -> None:
        """Store a DAG's health window (newest first) and recompute its priority."""
        with self._lock:
            dag_data = self._dag_data(dag_id)
            if dag_data is None:
                return
            dag_data.recent_runs = list(runs)
            dag_data.dag = replace(
                dag_data.dag,
                state_priority=compute_state_priority(dag_data.dag.is_paused, runs),
            )

    def set_dag_details(self, details: DagDetails) -> None:
        with self._lock:
            dag_data = self._dag_data(details.dag_id)
            if dag_data is not None:
                dag_data.details = details

    def set_dag_code(self, dag_id: str, code: str) -> None:
        with self._lock:
            dag_data = self._dag_data(dag_id)
            if dag_data is not None:
                dag_data.code = code

    def clear_workflows(self) -> None:
        """Drop every DAG (with runs, tasks and logs) of the active environment."""
        with self._lock:
            data = self._active_data()
            if data is not None:
                data.dags.clear()

    # === Runs ===

    def upsert_run(self, run: DagRun) -> bool:
        """Insert or replace a run under its DAG.

        Returns:
            False if the parent DAG is not cached (the run is dropped)
        """
        with self._lock:
            dag_data = self._dag_data(run.dag_id)
            if dag_data is None:
                return False
            existing = dag_data.dag_runs.get(run.dag_run_id)
            if existing is None:
                dag_data.dag_runs[run.dag_run_id] = DagRunData(dag_run=run)
            else:
                existing.dag_run = run
            return True

    def upsert_runs(self, runs: Iterable[DagRun]) -> int:
        """Upsert many runs; returns how many were stored."""
        with self._lock:
            return sum(1 for run in runs if self.upsert_run(run))

    def set_total_runs(self, dag_id: str, total: int) -> None:
        with self._lock:
            dag_data = self._dag_data(dag_id)
            if dag_data is not None:
                dag_data.total_dag_runs = total

    def set_run_state(self, dag_id: str, dag_run_id: str, state: str | None) -> None:
        with self._lock:
            run_data = self._run_data(dag_id, dag_run_id)
            if run_data is not None:
                run_data.dag_run = replace(run_data.dag_run, state=state)

    # === Task instances ===

    def upsert_task_instance(self, task_instance: TaskInstance) -> bool:
        """Insert or replace a task instance under its run, keeping its logs.

        Returns:
            False if the parent run is not cached (the record is dropped)
        """
        with self._lock:
            run_data = self._run_data(task_instance.dag_id, task_instance.dag_run_id)
            if run_data is None:
                return False
            existing = run_data.task_instances.get(task_instance.key)
            if existing is None:
                run_data.task_instances[task_instance.key] = TaskInstanceData(task_instance)
            else:
                existing.task_instance = task_instance
            return True

    def upsert_task_instances(self, task_instances: Iterable[TaskInstance]) -> int:
        with self._lock:
            return sum(1 for ti in task_instances if self.upsert_task_instance(ti))

    def set_task_state(
        self,
        dag_id: str,
        dag_run_id: str,
        task_id: str,
        state: str | None,
        map_index: int = -1,
    ) -> None:
        with self._lock:
            task_data = self._task_data(dag_id, dag_run_id, task_id, map_index)
            if task_data is not None:
                task_data.task_instance = replace(task_data.task_instance, state=state)

    # === Logs ===

    def append_log_chunk(
        self,
        dag_id: str,
        dag_run_id: str,
        task_id: str,
        attempt: int,
        chunk: LogChunk,
        reset: bool = False,
        keep: Collection[int] = (),
        map_index: int = -1,
    ) -> str | None:
        """Append a chunk to an attempt's log.

        A new attempt beyond the cap evicts the least recently viewed attempt
        that is not in `keep`.

        Args:
            reset: Start the attempt's log over (initial fetch)
            keep: Attempts that must survive eviction
            map_index: Index of a mapped task instance (-1 if unmapped)

        Returns:
            The full accumulated content, or None if the task is not cached
        """
        with self._lock:
            task_data = self._task_data(dag_id, dag_run_id, task_id, map_index)
            if task_data is None:
                return None
            logs = task_data.logs
            log = logs.get(attempt)
            if log is None or reset:
                log = TaskLog()
                logs[attempt] = log
            logs.move_to_end(attempt)
            log.append(chunk)
            self._evict_over_capacity(logs, keep)
            return log.content

    def _evict_over_capacity(self, logs: OrderedDict[int, TaskLog], keep: Collection[int]) -> None:
        while len(logs) > self._max_cached_attempts:
            victim = next((a for a in logs if a not in keep), next(iter(logs)))
            del logs[victim]
            logger.debug("Evicted cached log attempt", attempt=victim)

    def mark_log_viewed(
        self, dag_id: str, dag_run_id: str, task_id: str, attempt: int, map_index: int = -1
    ) -> None:
        """Move an attempt to the most-recently-viewed end."""
        with self._lock:
            task_data = self._task_data(dag_id, dag_run_id, task_id, map_index)
            if task_data is not None and attempt in task_data.logs:
                task_data.logs.move_to_end(attempt)

    def evict_logs_not_in(
        self,
        dag_id: str,
        dag_run_id: str,
        task_id: str,
        keep: Collection[int],
        map_index: int = -1,
    ) -> list[int]:
        """Drop cached attempts not in `keep`; returns the evicted attempts."""
        with self._lock:
            task_data = self._task_data(dag_id, dag_run_id, task_id, map_index)
            if task_data is None:
                return []
            evicted = [attempt for attempt in task_data.logs if attempt not in keep]
            for attempt in evicted:
                del task_data.logs[attempt]
            return evicted

    # === Dependency graph ===

    def set_dependency_graph(self, dag_id: str, graph: dict[str, list[str]]) -> None:
        with self._lock:
            dag_data = self._dag_data(dag_id)
            if dag_data is not None:
                dag_data.dependency_graph = {k: list(v) for k, v in graph.items()}

    def get_dependency_graph(self, dag_id: str) -> dict[str, list[str]] | None:
        with self._lock:
            dag_data = self._read_dag(dag_id)
            if dag_data is None or dag_data.dependency_graph is None:
                return None
            return {k: list(v) for k, v in dag_data.dependency_graph.items()}

    def has_dependency_graph(self, dag_id: str) -> bool:
        with self._lock:
            dag_data = self._read_dag(dag_id)
            return dag_data is not None and dag_data.dependency_graph is not None

    def set_task_order(self, dag_id: str, order: Sequence[str]) -> None:
        with self._lock:
            dag_data = self._dag_data(dag_id)
            if dag_data is not None:
                dag_data.task_order = list(order)

    def get_task_order(self, dag_id: str) -> list[str] | None:
        with self._lock:
            dag_data = self._read_dag(dag_id)
            if dag_data is None or dag_data.task_order is None:
                return None
            return list(dag_data.task_order)

    def invalidate_task_order(self, dag_id: str) -> None:
        """Forget the dependency graph and task order together."""
        with self._lock:
            dag_data = self._read_dag(dag_id)
            if dag_data is not None:
                dag_data.dependency_graph = None
                dag_data.task_order = None

    # === Import errors ===

    def set_import_errors(self, errors: Sequence[ImportErrorRecord], total: int) -> None:
        with self._lock:
            data = self._active_data()
            if data is not None:
                data.import_errors = list(errors)
                data.import_error_count = total

    def import_errors(self) -> list[ImportErrorRecord]:
        with self._lock:
            data = self._active_data()
            return list(data.import_errors) if data else []

    def import_error_count(self) -> int:
        with self._lock:
            data = self._active_data()
            return data.import_error_count if data else 0

    # === Read accessors (active environment only) ===

    def _read_dag(self, dag_id: str) -> DagData | None:
        data = self._active_data()
        return data.dags.get(dag_id) if data else None

    def active_workflows(self) -> list[Dag]:
        with self._lock:
            data = self._active_data()
            return [dag_data.dag for dag_data in data.dags.values()] if data else []

    def active_workflow(self, dag_id: str) -> Dag | None:
        with self._lock:
            dag_data = self._read_dag(dag_id)
            return dag_data.dag if dag_data else None

    def recent_runs(self, dag_id: str) -> list[DagRun] | None:
        with self._lock:
            dag_data = self._read_dag(dag_id)
            if dag_data is None or dag_data.recent_runs is None:
                return None
            return list(dag_data.recent_runs)

    def dag_details(self, dag_id: str) -> DagDetails | None:
        with self._lock:
            dag_data = self._read_dag(dag_id)
            return dag_data.details if dag_data else None

    def dag_code(self, dag_id: str) -> str | None:
        with self._lock:
            dag_data = self._read_dag(dag_id)
            return dag_data.code if dag_data else None

    def active_runs(self, dag_id: str) -> list[DagRun]:
        with self._lock:
            dag_data = self._read_dag(dag_id)
            if dag_data is None:
                return []
            return [run_data.dag_run for run_data in dag_data.dag_runs.values()]

    def active_total_runs(self, dag_id: str) -> int | None:
        with self._lock:
            dag_data = self._read_dag(dag_id)
            return dag_data.total_dag_runs if dag_data else None

    def active_task_instances(self, dag_id: str, dag_run_id: str) -> list[TaskInstance]:
        with self._lock:
            dag_data = self._read_dag(dag_id)
            run_data = dag_data.dag_runs.get(dag_run_id) if dag_data else None
            if run_data is None:
                return []
            return [td.task_instance for td in run_data.task_instances.values()]

    def active_log(
        self, dag_id: str, dag_run_id: str, task_id: str, attempt: int, map_index: int = -1
    ) -> TaskLog | None:
        """A copy of the cached log of one attempt, or None if not cached."""
        with self._lock:
            task_data = self._read_task(dag_id, dag_run_id, task_key(task_id, map_index))
            if task_data is None or attempt not in task_data.logs:
                return None
            return task_data.logs[attempt].copy()

    def cached_attempts(
        self, dag_id: str, dag_run_id: str, task_id: str, map_index: int = -1
    ) -> list[int]:
        """Cached attempts, least recently viewed first."""
        with self._lock:
            task_data = self._read_task(dag_id, dag_run_id, task_key(task_id, map_index))
            return list(task_data.logs) if task_data else []

    def _read_task(self, dag_id: str, dag_run_id: str, key: str) -> TaskInstanceData | None:
        dag_data = self._read_dag(dag_id)
        run_data = dag_data.dag_runs.get(dag_run_id) if dag_data else None
        return run_data.task_instances.get(key) if run_data else None
