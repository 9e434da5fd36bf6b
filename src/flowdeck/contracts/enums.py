"""Status codes, screens and dialects used across subsystem boundaries.

State enums use (str, Enum) because the values ARE the server's wire strings:
cached entities keep the raw string, so `run.state == RunState.FAILED` works
even for states this client has never heard of.
"""

from enum import Enum, IntEnum


class ApiVersion(str, Enum):
    """Major version of the orchestration server.

    Airflow 2.x serves its stable REST API under `api/v1`, Airflow 3.x
    under `api/v2`.
    """

    V2 = "v2"
    V3 = "v3"

    @property
    def api_prefix(self) -> str:
        """REST path prefix for this server version."""
        if self is ApiVersion.V3:
            return "api/v2"
        return "api/v1"


class RunState(str, Enum):
    """State of a DAG run."""

    QUEUED = "queued"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


class TaskState(str, Enum):
    """State of a task instance.

    A cleared task has no state at all (None), so there is no member for it.
    """

    SCHEDULED = "scheduled"
    QUEUED = "queued"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    UPSTREAM_FAILED = "upstream_failed"
    SKIPPED = "skipped"
    UP_FOR_RETRY = "up_for_retry"
    UP_FOR_RESCHEDULE = "up_for_reschedule"
    DEFERRED = "deferred"
    REMOVED = "removed"
    RESTARTING = "restarting"


class Screen(str, Enum):
    """Dashboard screens, in drill-down order."""

    CONFIG = "config"
    DAGS = "dags"
    DAG_RUNS = "dag_runs"
    TASK_INSTANCES = "task_instances"
    LOGS = "logs"

    @property
    def parent(self) -> "Screen":
        """Screen reached by navigating back (CONFIG is its own parent)."""
        order = list(Screen)
        index = order.index(self)
        return order[max(index - 1, 0)]


class StatePriority(IntEnum):
    """Sort priority of a DAG derived from its recent runs (lower sorts first)."""

    FAILED = 0
    RUNNING = 1
    RECOVERED = 2
    SUCCESS = 3
    UNKNOWN = 4
    PAUSED = 5


class SortDirection(str, Enum):
    """Direction of a sortable column."""

    ASCENDING = "asc"
    DESCENDING = "desc"


class LogLevel(IntEnum):
    """Severity of a task log line; the log panel hides lines below a minimum."""

    DEBUG = 1
    INFO = 2
    WARNING = 3
    ERROR = 4
    CRITICAL = 5

    @classmethod
    def parse(cls, name: str) -> "LogLevel | None":
        """Level named in a log line (WARN and FATAL included), None if unknown."""
        aliases = {"WARN": cls.WARNING, "FATAL": cls.CRITICAL}
        upper = name.upper()
        if upper in aliases:
            return aliases[upper]
        return cls.__members__.get(upper)
