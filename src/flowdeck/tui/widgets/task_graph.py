"""Task graph widget for displaying a run's task dependencies as a tree."""

from collections.abc import Mapping, Sequence
from typing import Any

# Marker drawn after a task's name, by state
STATE_MARKERS: dict[str, str] = {
    "success": "✔",
    "failed": "✘",
    "upstream_failed": "✘",
    "running": "▶",
    "queued": "…",
    "scheduled": "…",
    "up_for_retry": "↻",
    "up_for_reschedule": "↻",
    "skipped": "-",
    "removed": "-",
}


class TaskGraph:
    """Tree rendering of a run's tasks.

    Structure (a diamond: start -> t1, t2 -> end):
        └─start ✔
          ├─t1 ✔
          │ └─end ▶
          └─t2 ✔
            └─end ▶

    Tasks with several upstream tasks appear once under each of them.
    """

    def __init__(
        self,
        layout: Sequence[tuple[str, str]],
        states: Mapping[str, str | None] | None = None,
    ) -> None:
        """Initialize with a graph layout.

        Args:
            layout: (task_id, prefix) pairs in walk order
            states: task_id -> current state, for tasks with an instance
        """
        self._layout = list(layout)
        self._states = dict(states or {})

    def get_lines(self) -> list[dict[str, Any]]:
        """Get flat list of lines for rendering.

        Returns:
            List of dicts with task_id, prefix, state, marker, depth
        """
        lines: list[dict[str, Any]] = []
        for task_id, prefix in self._layout:
            state = self._states.get(task_id)
            lines.append(
                {
                    "task_id": task_id,
                    "prefix": prefix,
                    "state": state,
                    "marker": STATE_MARKERS.get(state or "", ""),
                    "depth": len(prefix) // 2 - 1,
                }
            )
        return lines

    def render_content(self) -> str:
        if not self._layout:
            return "No task dependencies loaded."
        rendered = []
        for line in self.get_lines():
            text = f"{line['prefix']}{line['task_id']}"
            if line["marker"]:
                text = f"{text} {line['marker']}"
            rendered.append(text)
        return "\n".join(rendered)
