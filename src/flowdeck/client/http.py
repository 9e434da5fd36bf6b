# src/flowdeck/client/http.py
"""HTTP client for Airflow's stable REST API.

One class serves both server generations; the dialect differences are
confined to request shaping and field names:

- Airflow 2 (ApiVersion.V2): `api/v1`, runs ordered by execution date,
  `is_active` flag, JSON-typed `schedule_interval`
- Airflow 3 (ApiVersion.V3): `api/v2`, `is_stale` flag, string
  `timetable_summary`, structured log lines

Failures are mapped onto the client error taxonomy:
- httpx.RequestError / non-2xx status -> TransportError
- non-JSON body or unexpected shape   -> DecodeError (with body excerpt)
"""

from __future__ import annotations

import ast
import re
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from typing import Any, TypeVar
from urllib.parse import quote, urlencode

import httpx
import structlog

from flowdeck.contracts.entities import (
    Dag,
    DagDetails,
    DagRun,
    ImportErrorRecord,
    LogChunk,
    TaskInstance,
)
from flowdeck.contracts.enums import ApiVersion, RunState, TaskState
from flowdeck.contracts.errors import ClientError, DecodeError, TransportError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

BODY_EXCERPT_CHARS = 500
TASK_INSTANCE_PAGE_SIZE = 100
# The batch run endpoint shares one page across all requested DAGs
BATCH_PAGE_LIMIT = 100

# One ('host', 'text') pair of the repr()'d list Airflow 2 sends as log content
_LOG_FRAGMENT = re.compile(
    r"""\(\s*'(?:\\.|[^'])*'\s*,\s*("(?:\\.|[^"])*"|'(?:\\.|[^'])*')\s*\)"""
)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp from the API (None passes through)."""
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValueError(f"Expected ISO timestamp string, got {type(value).__name__}")
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def schedule_from_interval(value: Any) -> str | None:
    """Render an Airflow 2 `schedule_interval` object as a schedule string.

    Cron expressions pass through; timedeltas become "@every <seconds>s";
    relative deltas and missing schedules become None.
    """
    if value is None:
        return None
    if isinstance(value, str):
        return value
    kind = value.get("__type")
    if kind == "CronExpression":
        return str(value["value"])
    if kind == "TimeDelta":
        seconds = (
            int(value.get("days", 0)) * 86400
            + int(value.get("seconds", 0))
            + int(value.get("microseconds", 0)) // 1_000_000
        )
        return f"@every {seconds}s"
    return None


def parse_log_content(content: str) -> str:
    """Unwrap Airflow 2 log content into plain text.

    Airflow 2 serializes the log as the repr() of a list of (host, text)
    tuples. The text fragments are unescaped and concatenated in order;
    content without any such tuple is returned unchanged.
    """
    fragments = []
    for match in _LOG_FRAGMENT.finditer(content):
        literal = match.group(1)
        try:
            fragments.append(str(ast.literal_eval(literal)))
        except (ValueError, SyntaxError) as e:
            logger.warning("Could not unescape log fragment", error=str(e))
            fragments.append(literal[1:-1])
    if not fragments:
        return content
    return "".join(fragments)


def _segment(value: str) -> str:
    return quote(value, safe="")


def _excerpt(payload: Any) -> str:
    return str(payload)[:BODY_EXCERPT_CHARS]


class AirflowClient:
    """OrchestrationClient implementation over httpx.

    Usage:
        client = AirflowClient("https://airflow.example.com", ApiVersion.V3)
        dags, total = client.list_dags(offset=0, limit=10)
    """

    def __init__(
        self,
        base_url: str,
        version: ApiVersion,
        *,
        auth: httpx.Auth | None = None,
        headers: dict[str, str] | None = None,
        timeout: float = 5.0,
        proxy: str | None = None,
        verify: bool = True,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Webserver URL (without the API prefix)
            version: Server generation; selects the API prefix and dialect
            auth: httpx auth flow (basic auth)
            headers: Extra headers (bearer tokens)
            timeout: Timeout in seconds for every request
            proxy: Optional proxy URL
            verify: Verify TLS certificates
            transport: Custom transport (tests use httpx.MockTransport)
        """
        self.version = version
        self._web_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=f"{self._web_url}/{version.api_prefix}/",
            auth=auth,
            headers=headers,
            timeout=timeout,
            proxy=proxy,
            verify=verify,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return str(self._client.base_url)

    def close(self) -> None:
        self._client.close()

    # === Transport ===

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        try:
            response = self._client.request(
                method, path, params=params, json=json, headers=headers
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise TransportError(
                f"{method} {path} failed with HTTP {status}", status_code=status
            ) from e
        except httpx.RequestError as e:
            raise TransportError(f"{method} {path} failed: {e}") from e
        return response

    def _json(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        response = self._request(method, path, **kwargs)
        try:
            payload = response.json()
        except ValueError as e:
            # JSONDecodeError is a subclass of ValueError
            raise DecodeError(
                f"Response from {path} is not valid JSON",
                body_excerpt=response.text[:BODY_EXCERPT_CHARS],
            ) from e
        if not isinstance(payload, dict):
            raise DecodeError(
                f"Response from {path} is not a JSON object",
                body_excerpt=_excerpt(payload),
            )
        return payload

    @staticmethod
    def _decode(path: str, payload: dict[str, Any], parse: Callable[[dict[str, Any]], T]) -> T:
        try:
            return parse(payload)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise DecodeError(
                f"Unexpected response shape from {path}: {e!r}",
                body_excerpt=_excerpt(payload),
            ) from e

    # === Record parsing ===

    def _parse_dag(self, item: dict[str, Any]) -> Dag:
        if self.version is ApiVersion.V3:
            is_active = not item.get("is_stale", False)
            schedule = item.get("timetable_summary")
            next_run = item.get("next_dagrun_logical_date")
            create_after = item.get("next_dagrun_run_after")
        else:
            is_active = item.get("is_active") is not False
            schedule = schedule_from_interval(item.get("schedule_interval"))
            next_run = item.get("next_dagrun")
            create_after = item.get("next_dagrun_create_after")
        return Dag(
            dag_id=item["dag_id"],
            display_name=item.get("dag_display_name"),
            description=item.get("description"),
            is_paused=bool(item.get("is_paused")),
            is_active=is_active,
            has_import_errors=bool(item.get("has_import_errors")),
            fileloc=item.get("fileloc"),
            owners=tuple(item.get("owners") or ()),
            tags=tuple(tag["name"] for tag in item.get("tags") or ()),
            timetable_description=item.get("timetable_description"),
            schedule_interval=schedule,
            next_run_logical_date=parse_timestamp(next_run),
            next_run_create_after=parse_timestamp(create_after),
            last_parsed_time=parse_timestamp(item.get("last_parsed_time")),
            file_token=item.get("file_token"),
        )

    @staticmethod
    def _parse_dag_run(item: dict[str, Any]) -> DagRun:
        return DagRun(
            dag_id=item["dag_id"],
            dag_run_id=item["dag_run_id"],
            state=item.get("state"),
            run_type=item.get("run_type"),
            logical_date=parse_timestamp(
                item.get("logical_date") or item.get("execution_date")
            ),
            start_date=parse_timestamp(item.get("start_date")),
            end_date=parse_timestamp(item.get("end_date")),
            note=item.get("note"),
        )

    @staticmethod
    def _parse_task_instance(item: dict[str, Any]) -> TaskInstance:
        duration = item.get("duration")
        map_index = item.get("map_index")
        return TaskInstance(
            dag_id=item["dag_id"],
            dag_run_id=item["dag_run_id"],
            task_id=item["task_id"],
            state=item.get("state"),
            try_number=int(item.get("try_number") or 0),
            start_date=parse_timestamp(item.get("start_date")),
            end_date=parse_timestamp(item.get("end_date")),
            duration=float(duration) if duration is not None else None,
            operator=item.get("operator"),
            map_index=int(map_index) if map_index is not None else -1,
        )

    @staticmethod
    def _log_text(content: Any) -> str:
        """Airflow 3 returns structured log lines; Airflow 2 a repr()'d tuple list."""
        if content is None:
            return ""
        if isinstance(content, str):
            return parse_log_content(content)
        lines = []
        for entry in content:
            if isinstance(entry, dict):
                timestamp = entry.get("timestamp")
                event = str(entry.get("event", ""))
                level = entry.get("level")
                if level:
                    event = f"{str(level).upper()} - {event}"
                lines.append(f"[{timestamp}] {event}" if timestamp else event)
            else:
                lines.append(str(entry))
        return "\n".join(lines) + ("\n" if lines else "")

    # === DAGs ===

    def list_dags(self, offset: int, limit: int) -> tuple[list[Dag], int]:
        params: dict[str, Any] = {"limit": limit, "offset": offset, "order_by": "dag_id"}
        if self.version is ApiVersion.V2:
            params["only_active"] = "true"
        payload = self._json("GET", "dags", params=params)
        return self._decode(
            "dags",
            payload,
            lambda p: (
                [self._parse_dag(item) for item in p["dags"]],
                int(p["total_entries"]),
            ),
        )

    def toggle_dag_pause(self, dag_id: str, is_paused: bool) -> None:
        params = {"update_mask": "is_paused"} if self.version is ApiVersion.V2 else None
        self._request(
            "PATCH",
            f"dags/{_segment(dag_id)}",
            params=params,
            json={"is_paused": not is_paused},
        )

    def get_dag_details(self, dag_id: str) -> DagDetails:
        path = f"dags/{_segment(dag_id)}/details"
        payload = self._json("GET", path)
        return self._decode(
            path,
            payload,
            lambda p: DagDetails(
                dag_id=p["dag_id"],
                description=p.get("description"),
                doc_md=p.get("doc_md"),
                fileloc=p.get("fileloc"),
                owners=tuple(p.get("owners") or ()),
                catchup=p.get("catchup"),
                start_date=parse_timestamp(p.get("start_date")),
                params=dict(p.get("params") or {}),
            ),
        )

    def get_dag_code(self, dag_id: str, file_token: str | None = None) -> str:
        """Fetch a DAG's source file.

        Airflow 2 addresses sources by the DAG's file token, Airflow 3 by dag_id.

        Raises:
            ClientError: If an Airflow 2 DAG has no file token
        """
        if self.version is ApiVersion.V3:
            path = f"dagSources/{_segment(dag_id)}"
        elif file_token:
            path = f"dagSources/{_segment(file_token)}"
        else:
            raise ClientError(f"DAG '{dag_id}' has no source file token")
        payload = self._json("GET", path, headers={"Accept": "application/json"})
        return self._decode(path, payload, lambda p: str(p["content"]))

    def list_import_errors(self) -> tuple[list[ImportErrorRecord], int]:
        payload = self._json("GET", "importErrors")
        return self._decode(
            "importErrors",
            payload,
            lambda p: (
                [
                    ImportErrorRecord(
                        import_error_id=int(item["import_error_id"]),
                        filename=item["filename"],
                        timestamp=parse_timestamp(item.get("timestamp")),
                        stack_trace=item.get("stack_trace") or "",
                    )
                    for item in p["import_errors"]
                ],
                int(p["total_entries"]),
            ),
        )

    # === DAG runs ===

    @property
    def _run_order(self) -> str:
        return "-execution_date" if self.version is ApiVersion.V2 else "-start_date"

    def list_dag_runs(
        self, dag_id: str, offset: int = 0, limit: int = 40
    ) -> tuple[list[DagRun], int]:
        path = f"dags/{_segment(dag_id)}/dagRuns"
        payload = self._json(
            "GET",
            path,
            params={"order_by": self._run_order, "offset": offset, "limit": limit},
        )
        return self._decode(
            path,
            payload,
            lambda p: (
                [self._parse_dag_run(item) for item in p["dag_runs"]],
                int(p["total_entries"]),
            ),
        )

    def list_dag_runs_batch(
        self, dag_ids: Sequence[str], limit_per_dag: int
    ) -> list[DagRun]:
        if not dag_ids:
            return []
        path = "dags/~/dagRuns/list"
        payload = self._json(
            "POST",
            path,
            json={
                "dag_ids": list(dag_ids),
                "page_limit": min(limit_per_dag * len(dag_ids), BATCH_PAGE_LIMIT),
                "order_by": self._run_order,
            },
        )
        return self._decode(
            path, payload, lambda p: [self._parse_dag_run(item) for item in p["dag_runs"]]
        )

    def mark_dag_run(self, dag_id: str, dag_run_id: str, state: RunState) -> None:
        self._request(
            "PATCH",
            f"dags/{_segment(dag_id)}/dagRuns/{_segment(dag_run_id)}",
            json={"state": RunState(state).value},
        )

    def clear_dag_run(self, dag_id: str, dag_run_id: str) -> None:
        self._request(
            "POST",
            f"dags/{_segment(dag_id)}/dagRuns/{_segment(dag_run_id)}/clear",
            json={"dry_run": False},
        )

    def trigger_dag_run(
        self, dag_id: str, dag_run_id: str, logical_date: datetime | None = None
    ) -> None:
        body: dict[str, Any] = {"dag_run_id": dag_run_id}
        if logical_date is not None:
            body["logical_date"] = logical_date.isoformat()
        elif self.version is ApiVersion.V3:
            # Airflow 3 requires the key; null lets the server pick
            body["logical_date"] = None
        self._request("POST", f"dags/{_segment(dag_id)}/dagRuns", json=body)

    # === Task instances ===

    def list_task_instances(self, dag_id: str, dag_run_id: str) -> list[TaskInstance]:
        path = f"dags/{_segment(dag_id)}/dagRuns/{_segment(dag_run_id)}/taskInstances"
        collected: list[TaskInstance] = []
        offset = 0
        while True:
            payload = self._json(
                "GET", path, params={"limit": TASK_INSTANCE_PAGE_SIZE, "offset": offset}
            )
            page, total = self._decode(
                path,
                payload,
                lambda p: (
                    [self._parse_task_instance(item) for item in p["task_instances"]],
                    int(p["total_entries"]),
                ),
            )
            collected.extend(page)
            offset += len(page)
            if not page or offset >= total:
                return collected

    def list_tasks(self, dag_id: str) -> list[tuple[str, list[str]]]:
        path = f"dags/{_segment(dag_id)}/tasks"
        payload = self._json("GET", path)
        return self._decode(
            path,
            payload,
            lambda p: [
                (task["task_id"], list(task.get("downstream_task_ids") or []))
                for task in p["tasks"]
            ],
        )

    @staticmethod
    def _task_instance_path(dag_id: str, dag_run_id: str, task_id: str, map_index: int) -> str:
        path = (
            f"dags/{_segment(dag_id)}/dagRuns/{_segment(dag_run_id)}"
            f"/taskInstances/{_segment(task_id)}"
        )
        return f"{path}/{map_index}" if map_index >= 0 else path

    def mark_task_instance(
        self,
        dag_id: str,
        dag_run_id: str,
        task_id: str,
        state: TaskState,
        map_index: int = -1,
    ) -> None:
        self._request(
            "PATCH",
            self._task_instance_path(dag_id, dag_run_id, task_id, map_index),
            json={"new_state": TaskState(state).value, "dry_run": False},
        )

    def clear_task_instance(
        self, dag_id: str, dag_run_id: str, task_id: str, map_index: int = -1
    ) -> None:
        # Mapped instances are addressed as [task_id, map_index] pairs
        target: Any = [task_id, map_index] if map_index >= 0 else task_id
        self._request(
            "POST",
            f"dags/{_segment(dag_id)}/clearTaskInstances",
            json={
                "dry_run": False,
                "task_ids": [target],
                "dag_run_id": dag_run_id,
                "include_downstream": True,
                "only_failed": False,
                "reset_dag_runs": True,
            },
        )

    # === Logs ===

    def get_log_chunk(
        self,
        dag_id: str,
        dag_run_id: str,
        task_id: str,
        attempt: int,
        continuation_token: str | None = None,
        map_index: int = -1,
    ) -> LogChunk:
        path = (
            f"dags/{_segment(dag_id)}/dagRuns/{_segment(dag_run_id)}"
            f"/taskInstances/{_segment(task_id)}/logs/{attempt}"
        )
        params: dict[str, Any] = {}
        if continuation_token:
            params["token"] = continuation_token
        if map_index >= 0:
            params["map_index"] = map_index
        payload = self._json(
            "GET", path, params=params or None, headers={"Accept": "application/json"}
        )
        return self._decode(
            path,
            payload,
            lambda p: LogChunk(
                content=self._log_text(p.get("content")),
                continuation_token=p.get("continuation_token") or None,
            ),
        )

    # === Web UI ===

    def build_open_url(
        self,
        dag_id: str | None = None,
        dag_run_id: str | None = None,
        task_id: str | None = None,
        attempt: int | None = None,
        map_index: int = -1,
    ) -> str:
        """Web UI address of the most specific item given.

        Airflow 2 selects runs, tasks and the log tab through grid view
        query parameters; Airflow 3 has a path per item.
        """
        if dag_id is None:
            return self._web_url
        url = f"{self._web_url}/dags/{_segment(dag_id)}"
        if dag_run_id is None:
            return url
        if self.version is ApiVersion.V3:
            url = f"{url}/runs/{_segment(dag_run_id)}"
            if task_id is None:
                return url
            url = f"{url}/tasks/{_segment(task_id)}"
            if map_index >= 0:
                url = f"{url}/mapped/{map_index}"
            if attempt is not None:
                url = f"{url}?{urlencode({'try_number': attempt})}"
            return url
        params: dict[str, Any] = {"dag_run_id": dag_run_id}
        if task_id is not None:
            params["task_id"] = task_id
            if map_index >= 0:
                params["map_index"] = map_index
            if attempt is not None:
                params["tab"] = "logs"
        return f"{url}/grid?{urlencode(params)}"
