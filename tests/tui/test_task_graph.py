"""Tests for the task graph widget."""

from hypothesis import given, settings
from hypothesis import strategies as st

DIAMOND = {"start": ["t1", "t2"], "t1": ["end"], "t2": ["end"]}


class TestTaskGraph:
    """Tree rendering of task dependencies."""

    def test_diamond_renders_end_under_both_parents(self) -> None:
        from flowdeck.core.graph_layout import build_graph_layout_ordered
        from flowdeck.tui.widgets.task_graph import TaskGraph

        graph = TaskGraph(build_graph_layout_ordered(DIAMOND))

        assert graph.render_content().splitlines() == [
            "└─start",
            "  ├─t1",
            "  │ └─end",
            "  └─t2",
            "    └─end",
        ]

    def test_state_markers(self) -> None:
        from flowdeck.core.graph_layout import build_graph_layout_ordered
        from flowdeck.tui.widgets.task_graph import TaskGraph

        graph = TaskGraph(
            build_graph_layout_ordered(DIAMOND),
            states={"start": "success", "t1": "failed", "end": "running"},
        )

        lines = graph.render_content().splitlines()
        assert lines[0] == "└─start ✔"
        assert lines[1] == "  ├─t1 ✘"
        assert lines[2] == "  │ └─end ▶"
        assert lines[3] == "  └─t2"

    def test_unknown_state_has_no_marker(self) -> None:
        from flowdeck.tui.widgets.task_graph import TaskGraph

        lines = TaskGraph([("a", "└─")], states={"a": "some_future_state"}).get_lines()
        assert lines[0]["marker"] == ""
        assert lines[0]["state"] == "some_future_state"

    def test_depth_follows_prefix(self) -> None:
        from flowdeck.core.graph_layout import build_graph_layout_ordered
        from flowdeck.tui.widgets.task_graph import TaskGraph

        lines = TaskGraph(build_graph_layout_ordered(DIAMOND)).get_lines()
        assert [line["depth"] for line in lines] == [0, 1, 2, 1, 2]

    def test_empty_layout(self) -> None:
        from flowdeck.tui.widgets.task_graph import TaskGraph

        assert TaskGraph([]).render_content() == "No task dependencies loaded."

    @given(
        states=st.dictionaries(
            keys=st.sampled_from(["start", "t1", "t2", "end", "other"]),
            values=st.one_of(st.none(), st.text(max_size=20)),
        )
    )
    @settings(max_examples=50)
    def test_arbitrary_states_render(self, states: dict[str, str | None]) -> None:
        """Any state value, including None and junk, renders one line per entry."""
        from flowdeck.core.graph_layout import build_graph_layout_ordered
        from flowdeck.tui.widgets.task_graph import TaskGraph

        graph = TaskGraph(build_graph_layout_ordered(DIAMOND), states)
        assert len(graph.render_content().splitlines()) == 5
