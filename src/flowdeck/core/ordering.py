# src/flowdeck/core/ordering.py
"""Deterministic task ordering for DAG dependency lists.

The orderer is a grouped variant of Kahn's algorithm. A task's group is the
part of its id before the first '.', so tasks inside one task group
(`extract.users`, `extract.orders`) are emitted as a contiguous block
whenever their prerequisites allow it.

Tie-breaks are fixed so the same DAG always renders the same way:
- the alphabetically-first group among available tasks is drained first
- within the group, the alphabetically-first available task is emitted next
- a task becomes available only when ALL its upstream tasks are emitted

Malformed input (a cycle) does not raise: unreachable tasks are appended in
sorted order and a warning naming one offending cycle is logged.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

import networkx as nx
import structlog

logger = structlog.get_logger(__name__)

TaskDependencies = Iterable[tuple[str, Sequence[str]]] | Mapping[str, Sequence[str]]


def task_group(task_id: str) -> str:
    """Group of a task: the prefix before the first '.' (whole id if none)."""
    return task_id.split(".", 1)[0]


def _as_pairs(tasks: TaskDependencies) -> list[tuple[str, list[str]]]:
    if isinstance(tasks, Mapping):
        return [(task_id, list(downstream)) for task_id, downstream in tasks.items()]
    return [(task_id, list(downstream)) for task_id, downstream in tasks]


def invert_dependencies(edges: Mapping[str, Sequence[str]]) -> dict[str, list[str]]:
    """Invert an adjacency map (downstream -> upstream form, or back).

    Every task named anywhere in the input appears as a key of the result,
    with its neighbours sorted and de-duplicated.

    Args:
        edges: task_id -> related task ids

    Returns:
        related task id -> task ids that named it
    """
    inverted: dict[str, set[str]] = {}
    for task_id, related in edges.items():
        inverted.setdefault(task_id, set())
        for other in related:
            inverted.setdefault(other, set()).add(task_id)
    return {task_id: sorted(others) for task_id, others in inverted.items()}


def find_cycle(tasks: TaskDependencies) -> list[tuple[str, str]] | None:
    """Return the edges of one dependency cycle, or None for a DAG."""
    graph: nx.DiGraph[str] = nx.DiGraph()
    for task_id, downstream in _as_pairs(tasks):
        graph.add_node(task_id)
        graph.add_edges_from((task_id, other) for other in downstream)
    try:
        return [(str(u), str(v)) for u, v, *_ in nx.find_cycle(graph)]
    except nx.NetworkXNoCycle:
        return None


def topological_sort(tasks: TaskDependencies) -> list[str]:
    """Order tasks so every task follows all of its upstream tasks.

    Args:
        tasks: (task_id, downstream task ids) pairs, or a mapping of the same.
            Tasks only named as downstream targets are included too.

    Returns:
        Every task id exactly once, in grouped topological order.
    """
    pairs = _as_pairs(tasks)
    if not pairs:
        return []

    downstream_map: dict[str, set[str]] = {}
    upstream_map: dict[str, set[str]] = {}
    for task_id, downstream in pairs:
        downstream_map.setdefault(task_id, set()).update(downstream)
        upstream_map.setdefault(task_id, set())
        for other in downstream:
            upstream_map.setdefault(other, set()).add(task_id)

    processed: set[str] = set()
    available = {task_id for task_id, upstream in upstream_map.items() if not upstream}
    ordered: list[str] = []

    while available:
        group = min(task_group(task_id) for task_id in available)
        while True:
            in_group = [t for t in available if task_group(t) == group]
            if not in_group:
                break
            task_id = min(in_group)
            available.remove(task_id)
            processed.add(task_id)
            ordered.append(task_id)
            for other in downstream_map.get(task_id, ()):
                if other not in processed and upstream_map[other] <= processed:
                    available.add(other)

    leftovers = sorted(set(upstream_map) - processed)
    if leftovers:
        logger.warning(
            "Dependency cycle detected; appending unordered tasks",
            cycle=find_cycle(pairs),
            leftover_count=len(leftovers),
        )
        ordered.extend(leftovers)
    return ordered
