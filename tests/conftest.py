# tests/conftest.py
"""Shared test fixtures and helpers.

This module provides an in-memory FakeClient implementing the
OrchestrationClient protocol, plus settings/state/worker fixtures wired to
it, so engine and view tests never touch the network.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/core/
"""

import os
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from typing import Any

import pytest
from hypothesis import Phase, Verbosity, settings

from flowdeck.contracts.entities import (
    Dag,
    DagDetails,
    DagRun,
    ImportErrorRecord,
    LogChunk,
    TaskInstance,
    task_key,
)
from flowdeck.contracts.enums import RunState, TaskState

# =============================================================================
# Hypothesis Configuration
# =============================================================================

# CI profile: Fast tests for continuous integration
settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,  # Disable deadline for CI (timing varies)
)

# Nightly profile: Thorough testing for scheduled runs
settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Debug profile: Minimal examples with verbose output for debugging
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Load profile from environment, default to "ci"
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


# =============================================================================
# Fake orchestration client
# =============================================================================


class FakeClient:
    """In-memory OrchestrationClient.

    Usage:
        client = FakeClient(dags=[Dag("a"), Dag("b")])
        client.runs["a"] = [DagRun("a", "r1", state="success")]
        client.fail["list_dags"] = TransportError("boom")

    Every call is recorded in `calls` as (method name, args tuple).
    """

    def __init__(self, dags: Sequence[Dag] = ()) -> None:
        self.dags: list[Dag] = list(dags)
        self.runs: dict[str, list[DagRun]] = {}
        self.task_instances: dict[tuple[str, str], list[TaskInstance]] = {}
        self.tasks: dict[str, list[tuple[str, list[str]]]] = {}
        # (dag_id, dag_run_id, task instance key, attempt) -> chunks
        self.logs: dict[tuple[str, str, str, int], list[str]] = {}
        self.sources: dict[str, str] = {}
        self.import_errors: list[ImportErrorRecord] = []
        self.details: dict[str, DagDetails] = {}
        self.fail: dict[str, Exception] = {}
        # DAGs the batch endpoint never returns
        self.omit_from_batch: set[str] = set()
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.closed = False

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        if name in self.fail:
            raise self.fail[name]

    def calls_to(self, name: str) -> list[tuple[Any, ...]]:
        return [args for method, args in self.calls if method == name]

    def list_dags(self, offset: int, limit: int) -> tuple[list[Dag], int]:
        self._record("list_dags", offset, limit)
        return self.dags[offset : offset + limit], len(self.dags)

    def list_dag_runs(
        self, dag_id: str, offset: int = 0, limit: int = 40
    ) -> tuple[list[DagRun], int]:
        self._record("list_dag_runs", dag_id, offset, limit)
        runs = self.runs.get(dag_id, [])
        return runs[offset : offset + limit], len(runs)

    def list_dag_runs_batch(self, dag_ids: Sequence[str], limit_per_dag: int) -> list[DagRun]:
        self._record("list_dag_runs_batch", tuple(dag_ids), limit_per_dag)
        result: list[DagRun] = []
        for dag_id in dag_ids:
            if dag_id not in self.omit_from_batch:
                result.extend(self.runs.get(dag_id, [])[:limit_per_dag])
        return result

    def list_task_instances(self, dag_id: str, dag_run_id: str) -> list[TaskInstance]:
        self._record("list_task_instances", dag_id, dag_run_id)
        return list(self.task_instances.get((dag_id, dag_run_id), []))

    def list_tasks(self, dag_id: str) -> list[tuple[str, list[str]]]:
        self._record("list_tasks", dag_id)
        return list(self.tasks.get(dag_id, []))

    def get_log_chunk(
        self,
        dag_id: str,
        dag_run_id: str,
        task_id: str,
        attempt: int,
        continuation_token: str | None = None,
        map_index: int = -1,
    ) -> LogChunk:
        self._record(
            "get_log_chunk", dag_id, dag_run_id, task_id, attempt, continuation_token, map_index
        )
        key = (dag_id, dag_run_id, task_key(task_id, map_index), attempt)
        chunks = self.logs.get(key, [""])
        index = int(continuation_token) if continuation_token else 0
        token = str(index + 1) if index + 1 < len(chunks) else None
        return LogChunk(chunks[index], token)

    def toggle_dag_pause(self, dag_id: str, is_paused: bool) -> None:
        self._record("toggle_dag_pause", dag_id, is_paused)

    def mark_dag_run(self, dag_id: str, dag_run_id: str, state: RunState) -> None:
        self._record("mark_dag_run", dag_id, dag_run_id, state)

    def clear_dag_run(self, dag_id: str, dag_run_id: str) -> None:
        self._record("clear_dag_run", dag_id, dag_run_id)

    def trigger_dag_run(
        self, dag_id: str, dag_run_id: str, logical_date: datetime | None = None
    ) -> None:
        self._record("trigger_dag_run", dag_id, dag_run_id, logical_date)

    def mark_task_instance(
        self,
        dag_id: str,
        dag_run_id: str,
        task_id: str,
        state: TaskState,
        map_index: int = -1,
    ) -> None:
        self._record("mark_task_instance", dag_id, dag_run_id, task_id, state, map_index)

    def clear_task_instance(
        self, dag_id: str, dag_run_id: str, task_id: str, map_index: int = -1
    ) -> None:
        self._record("clear_task_instance", dag_id, dag_run_id, task_id, map_index)

    def list_import_errors(self) -> tuple[list[ImportErrorRecord], int]:
        self._record("list_import_errors")
        return list(self.import_errors), len(self.import_errors)

    def get_dag_details(self, dag_id: str) -> DagDetails:
        self._record("get_dag_details", dag_id)
        return self.details.get(dag_id, DagDetails(dag_id=dag_id))

    def get_dag_code(self, dag_id: str, file_token: str | None = None) -> str:
        self._record("get_dag_code", dag_id, file_token)
        return self.sources.get(dag_id, "")

    def build_open_url(
        self,
        dag_id: str | None = None,
        dag_run_id: str | None = None,
        task_id: str | None = None,
        attempt: int | None = None,
        map_index: int = -1,
    ) -> str:
        parts = [
            str(part)
            for part in (dag_id, dag_run_id, task_id and task_key(task_id, map_index), attempt)
            if part is not None
        ]
        return "/".join(["http://airflow.test", *parts])

    def close(self) -> None:
        self.closed = True


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def flowdeck_settings(tmp_path: Path) -> Any:
    from flowdeck.core.config import FlowdeckSettings

    return FlowdeckSettings(
        servers=[
            {
                "name": "local",
                "endpoint": "http://localhost:8080",
                "auth": {"basic": {"username": "admin", "password": "admin"}},
            },
            {
                "name": "prod",
                "endpoint": "https://airflow.example.com",
                "version": "v3",
                "auth": {"token": {"token": "secret"}},
            },
        ],
        state_dir=tmp_path / "state",
        dag_page_size=10,
        run_page_size=5,
        health_window=3,
        log_lru_size=5,
    )


@pytest.fixture
def app_state(flowdeck_settings: Any) -> Any:
    from flowdeck.views.app_state import AppState

    return AppState(
        run_page_size=flowdeck_settings.run_page_size,
        log_lru_size=flowdeck_settings.log_lru_size,
    )


@pytest.fixture
def sync_worker(app_state: Any, flowdeck_settings: Any, fake_client: FakeClient) -> Any:
    """Worker whose client factory always returns `fake_client`."""
    from flowdeck.engine.worker import SyncWorker

    worker = SyncWorker(app_state, flowdeck_settings, client_factory=lambda server: fake_client)
    yield worker
    worker.stop()


@pytest.fixture
def active_worker(sync_worker: Any, app_state: Any) -> Any:
    """Worker with the "local" environment already activated."""
    from flowdeck.contracts.commands import ActivateEnvironment

    sync_worker.submit(ActivateEnvironment("local"))
    sync_worker.run_pending()
    return sync_worker
