# src/flowdeck/core/graph_layout.py
"""Tree layout of a DAG for the task list.

The DAG is walked as a tree: pre-order, depth-first, starting from every
root (a task nothing points to). A task with several upstream tasks is
emitted once per parent path. Each entry carries the connector prefix that
draws the tree:

    └─start
      ├─t1
      │ └─end
      └─t2
        └─end
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

BRANCH = "├─"
LAST_BRANCH = "└─"
CONTINUATION = "│ "
BLANK = "  "


def _children_map(downstream: Mapping[str, Sequence[str]]) -> dict[str, list[str]]:
    children: dict[str, set[str]] = {}
    for task_id, targets in downstream.items():
        children.setdefault(task_id, set()).update(targets)
        for target in targets:
            children.setdefault(target, set())
    return {task_id: sorted(targets) for task_id, targets in children.items()}


def build_graph_layout_ordered(
    downstream: Mapping[str, Sequence[str]],
) -> list[tuple[str, str]]:
    """Walk the DAG as a tree and return (task_id, prefix) in display order.

    Roots are tasks that never appear as a downstream target, visited in
    alphabetical order; children are visited alphabetically too. A child that
    is already on the current path (a cycle) is not followed again.

    Args:
        downstream: task_id -> downstream task ids

    Returns:
        Ordered (task_id, prefix) pairs; multi-parent tasks repeat.
    """
    children = _children_map(downstream)
    targets = {child for kids in children.values() for child in kids}
    roots = sorted(task_id for task_id in children if task_id not in targets)

    result: list[tuple[str, str]] = []
    # (task_id, parent prefix, is_last sibling, ancestors on this path)
    stack: list[tuple[str, str, bool, frozenset[str]]] = [
        (root, "", index == len(roots) - 1, frozenset())
        for index, root in reversed(list(enumerate(roots)))
    ]
    while stack:
        task_id, prefix, is_last, ancestors = stack.pop()
        result.append((task_id, prefix + (LAST_BRANCH if is_last else BRANCH)))

        path = ancestors | {task_id}
        kids = [child for child in children.get(task_id, []) if child not in path]
        child_prefix = prefix + (BLANK if is_last else CONTINUATION)
        for index in reversed(range(len(kids))):
            stack.append((kids[index], child_prefix, index == len(kids) - 1, path))
    return result


def build_graph_layout(downstream: Mapping[str, Sequence[str]]) -> dict[str, str]:
    """Collapse the tree layout into task_id -> prefix of its first occurrence.

    Tasks the tree walk never reaches (members of a cycle with no root)
    map to an empty prefix so every task has an entry.
    """
    layout: dict[str, str] = {}
    for task_id, prefix in build_graph_layout_ordered(downstream):
        layout.setdefault(task_id, prefix)
    for task_id in sorted(_children_map(downstream)):
        layout.setdefault(task_id, "")
    return layout
