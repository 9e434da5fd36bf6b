# src/flowdeck/client/protocol.py
"""Protocol for orchestration server clients.

The sync worker only talks to this protocol. Every method may raise
TransportError (no usable response) or DecodeError (unparsable response).
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol, runtime_checkable

from flowdeck.contracts.entities import (
    Dag,
    DagDetails,
    DagRun,
    ImportErrorRecord,
    LogChunk,
    TaskInstance,
)
from flowdeck.contracts.enums import RunState, TaskState


@runtime_checkable
class OrchestrationClient(Protocol):
    """Capability consumed by the sync worker."""

    def list_dags(self, offset: int, limit: int) -> tuple[list[Dag], int]:
        """Fetch one page of DAGs.

        Returns:
            (DAGs on the page, total number of DAGs on the server)
        """
        ...

    def list_dag_runs(
        self, dag_id: str, offset: int = 0, limit: int = 40
    ) -> tuple[list[DagRun], int]:
        """Fetch one page of a DAG's runs, newest first.

        Returns:
            (runs on the page, total number of runs of the DAG)
        """
        ...

    def list_dag_runs_batch(
        self, dag_ids: Sequence[str], limit_per_dag: int
    ) -> list[DagRun]:
        """Fetch recent runs of several DAGs in one call.

        The server may omit DAGs (the page limit is shared); callers group the
        runs by dag_id and detect omissions themselves.
        """
        ...

    def list_task_instances(self, dag_id: str, dag_run_id: str) -> list[TaskInstance]:
        ...

    def list_tasks(self, dag_id: str) -> list[tuple[str, list[str]]]:
        """Fetch (task_id, downstream task ids) for every task of a DAG."""
        ...

    def get_log_chunk(
        self,
        dag_id: str,
        dag_run_id: str,
        task_id: str,
        attempt: int,
        continuation_token: str | None = None,
        map_index: int = -1,
    ) -> LogChunk:
        """Fetch one page of an attempt's log (map_index >= 0 for a mapped task)."""
        ...

    def toggle_dag_pause(self, dag_id: str, is_paused: bool) -> None:
        """Flip the paused flag; is_paused is the current state."""
        ...

    def mark_dag_run(self, dag_id: str, dag_run_id: str, state: RunState) -> None:
        ...

    def clear_dag_run(self, dag_id: str, dag_run_id: str) -> None:
        ...

    def trigger_dag_run(
        self, dag_id: str, dag_run_id: str, logical_date: datetime | None = None
    ) -> None:
        ...

    def mark_task_instance(
        self,
        dag_id: str,
        dag_run_id: str,
        task_id: str,
        state: TaskState,
        map_index: int = -1,
    ) -> None:
        ...

    def clear_task_instance(
        self, dag_id: str, dag_run_id: str, task_id: str, map_index: int = -1
    ) -> None:
        ...

    def list_import_errors(self) -> tuple[list[ImportErrorRecord], int]:
        """Fetch import errors.

        Returns:
            (import errors, total count)
        """
        ...

    def get_dag_details(self, dag_id: str) -> DagDetails:
        ...

    def get_dag_code(self, dag_id: str, file_token: str | None = None) -> str:
        """Fetch the source of the file defining a DAG."""
        ...

    def build_open_url(
        self,
        dag_id: str | None = None,
        dag_run_id: str | None = None,
        task_id: str | None = None,
        attempt: int | None = None,
        map_index: int = -1,
    ) -> str:
        """Web UI address of the most specific item given (the server if none)."""
        ...

    def close(self) -> None:
        """Release network resources."""
        ...
