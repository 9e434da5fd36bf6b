"""Shared contracts for cross-boundary data types.

Entities, enums, errors and worker commands that cross subsystem
boundaries are defined here.

Import pattern:
    from flowdeck.contracts import Dag, RunState, TransportError
"""

from flowdeck.contracts.entities import (
    Dag,
    DagDetails,
    DagRun,
    ImportErrorRecord,
    LogChunk,
    TaskInstance,
)
from flowdeck.contracts.enums import (
    ApiVersion,
    RunState,
    Screen,
    SortDirection,
    StatePriority,
    TaskState,
)
from flowdeck.contracts.errors import (
    ClientConstructionError,
    ClientError,
    DecodeError,
    FlowdeckError,
    NoActiveEnvironment,
    TransportError,
    WorkerQueueFull,
)

__all__ = [
    # entities
    "Dag",
    "DagDetails",
    "DagRun",
    "ImportErrorRecord",
    "LogChunk",
    "TaskInstance",
    # enums
    "ApiVersion",
    "RunState",
    "Screen",
    "SortDirection",
    "StatePriority",
    "TaskState",
    # errors
    "ClientConstructionError",
    "ClientError",
    "DecodeError",
    "FlowdeckError",
    "NoActiveEnvironment",
    "TransportError",
    "WorkerQueueFull",
]
