# tests/views/test_view_models.py
"""Tests for per-screen view models and AppState."""

from datetime import datetime, timezone

from hypothesis import given
from hypothesis import strategies as st


def _run(run_id: str, day: int | None, state: str = "success") -> object:
    from flowdeck.contracts.entities import DagRun

    date = datetime(2024, 1, day, tzinfo=timezone.utc) if day else None
    return DagRun("etl", run_id, state=state, logical_date=date)


class TestScreenView:
    """Filter, selection and error popups shared by every screen."""

    def test_errors_accumulate_until_dismissed(self) -> None:
        from flowdeck.views.models import DagListView

        view = DagListView()
        view.show_error("first")
        view.show_error("second")
        assert view.error_popup.messages == ["first", "second"]

        view.dismiss_error()
        assert view.error_popup is None

    def test_selection_clamped_to_filtered_list(self) -> None:
        from flowdeck.contracts.entities import Dag
        from flowdeck.views.models import DagListView

        view = DagListView()
        view.set_items([Dag("a"), Dag("b"), Dag("c")])
        view.selected = 2
        view.set_filter("a")

        assert view.selected == 0
        assert view.selected_dag().dag_id == "a"


class TestDagListView:
    """Visibility and default ordering of DAGs."""

    def test_default_order_health_then_name(self) -> None:
        from flowdeck.contracts.entities import Dag
        from flowdeck.contracts.enums import StatePriority
        from flowdeck.views.models import DagListView

        view = DagListView()
        view.show_paused = True
        view.set_items(
            [
                Dag("zeta", state_priority=StatePriority.FAILED),
                Dag("alpha", state_priority=StatePriority.SUCCESS),
                Dag("beta", is_paused=True),
                Dag("gamma"),
            ]
        )

        assert [d.dag_id for d in view.filtered] == ["zeta", "alpha", "gamma", "beta"]

    def test_inactive_and_paused_hidden(self) -> None:
        from flowdeck.contracts.entities import Dag
        from flowdeck.views.models import DagListView

        view = DagListView()
        view.set_items([Dag("a"), Dag("b", is_paused=True), Dag("c", is_active=False)])
        assert [d.dag_id for d in view.filtered] == ["a"]

        view.toggle_show_paused()
        assert [d.dag_id for d in view.filtered] == ["a", "b"]

    def test_filter_matches_tags_and_display_name(self) -> None:
        from flowdeck.contracts.entities import Dag
        from flowdeck.views.models import DagListView

        view = DagListView()
        view.set_items([Dag("a", tags=("Finance",)), Dag("b", display_name="Nightly Load"), Dag("c")])

        view.set_filter("finance")
        assert [d.dag_id for d in view.filtered] == ["a"]
        view.set_filter("nightly")
        assert [d.dag_id for d in view.filtered] == ["b"]
        view.set_filter("")
        assert len(view.filtered) == 3

    def test_sort_key_overrides_default_order(self) -> None:
        from flowdeck.contracts.entities import Dag
        from flowdeck.views.models import DagListView

        view = DagListView()
        view.set_items([Dag("a"), Dag("b")])
        name_key = view.sort.columns[0].sort_key

        view.sort_by_key(name_key)
        view.sort_by_key(name_key)

        assert [d.dag_id for d in view.filtered] == ["b", "a"]

    def test_table_rows(self) -> None:
        from flowdeck.contracts.entities import Dag
        from flowdeck.views.models import DagListView

        view = DagListView()
        view.set_items([Dag("etl", schedule_interval="@daily", tags=("a", "b"))])

        assert view.table_rows() == [("etl", "@daily", "", "unknown", "a, b")]


class TestDagRunListView:
    """Newest-first runs with local pagination."""

    def test_newest_first_undated_last(self) -> None:
        from flowdeck.views.models import DagRunListView

        view = DagRunListView(page_size=10)
        view.open("etl")
        view.set_items([_run("old", 1), _run("undated", None), _run("new", 3)], total=3)

        assert [r.dag_run_id for r in view.filtered] == ["new", "old", "undated"]

    def test_pagination(self) -> None:
        from flowdeck.views.models import DagRunListView

        view = DagRunListView(page_size=2)
        view.open("etl")
        view.set_items([_run(f"r{day}", day) for day in range(1, 4)], total=7)

        assert view.page_count == 4
        assert [r.dag_run_id for r in view.page_items()] == ["r3", "r2"]
        assert view.needs_fetch(0) is False
        assert view.needs_fetch(1) is True
        assert view.next_offset() == 3

        view.go_to_page(1)
        assert [r.dag_run_id for r in view.page_items()] == ["r1"]
        view.go_to_page(99)
        assert view.page == 3

    def test_opening_another_dag_resets(self) -> None:
        from flowdeck.views.models import DagRunListView

        view = DagRunListView(page_size=2)
        view.open("etl")
        view.set_items([_run("r1", 1)], total=1)
        view.open("other")

        assert view.all == []
        assert view.total is None
        assert view.page == 0


class TestTaskInstanceListView:
    """Dependency order and tree prefixes."""

    def test_graph_order_and_prefixes(self) -> None:
        from flowdeck.contracts.entities import TaskInstance
        from flowdeck.views.models import TaskInstanceListView

        view = TaskInstanceListView()
        view.open("etl", "r1")
        tis = [TaskInstance("etl", "r1", name) for name in ("end", "t2", "t1", "start")]
        upstream = {"start": [], "t1": ["start"], "t2": ["start"], "end": ["t1", "t2"]}

        view.set_items(tis, dependency_graph=upstream)

        assert [ti.task_id for ti in view.filtered] == ["start", "t1", "end", "t2"]
        assert [row[0] for row in view.table_rows()] == ["└─start", "  ├─t1", "  │ └─end", "  └─t2"]
        assert len(view.layout) == 5

    def test_task_order_without_graph(self) -> None:
        from flowdeck.contracts.entities import TaskInstance
        from flowdeck.views.models import TaskInstanceListView

        view = TaskInstanceListView()
        view.open("etl", "r1")
        tis = [TaskInstance("etl", "r1", name) for name in ("unknown", "b", "a")]

        view.set_items(tis, task_order=["b", "a"])

        assert [ti.task_id for ti in view.filtered] == ["b", "a", "unknown"]

    def test_mapped_instances_show_index(self) -> None:
        from flowdeck.contracts.entities import TaskInstance
        from flowdeck.views.models import TaskInstanceListView

        view = TaskInstanceListView()
        view.set_items([TaskInstance("etl", "r1", "load", map_index=1), TaskInstance("etl", "r1", "load", map_index=0)])

        assert [row[0] for row in view.table_rows()] == ["load[0]", "load[1]"]


class TestLogView:
    """Attempt navigation and the recent-attempts keep list."""

    def test_opens_latest_attempt(self) -> None:
        from flowdeck.views.models import LogView

        view = LogView(max_recent=3)
        view.open("etl", "r1", "extract", max_attempt=3)

        assert view.attempt == 3
        assert view.keep() == (3,)

    def test_attempt_is_clamped(self) -> None:
        from flowdeck.views.models import LogView

        view = LogView()
        view.open("etl", "r1", "extract", max_attempt=2)
        view.view_attempt(5)
        assert view.attempt == 2
        view.view_attempt(0)
        assert view.attempt == 1

    def test_recent_attempts_are_bounded_mru(self) -> None:
        from flowdeck.views.models import LogView

        view = LogView(max_recent=2)
        view.open("etl", "r1", "extract", max_attempt=4)
        view.view_attempt(2)
        view.view_attempt(1)

        assert view.keep() == (1, 2)

    def test_visible_lines_filter(self) -> None:
        from flowdeck.core.store import TaskLog
        from flowdeck.views.models import LogView

        view = LogView()
        view.set_log(TaskLog(chunks=["INFO start\n", "ERROR boom\nINFO end\n"]))
        view.set_filter("error")

        assert view.visible_lines() == ["ERROR boom"]

    def test_level_filter_hides_debug_by_default(self) -> None:
        from flowdeck.contracts.enums import LogLevel
        from flowdeck.core.store import TaskLog
        from flowdeck.views.models import LogView

        view = LogView()
        view.open("etl", "r1", "extract", max_attempt=1)
        view.set_log(
            TaskLog(
                chunks=[
                    "*** Reading local file\n",
                    "[2024-01-01 00:00:00] {task.py:10} DEBUG - noisy\n",
                    "[2024-01-01 00:00:01] {task.py:11} INFO - started\n",
                    "[2024-01-01 00:00:02] {task.py:12} ERROR - failed\n",
                    "Traceback (most recent call last):\n",
                ]
            )
        )

        assert view.visible_lines() == [
            "*** Reading local file",
            "[2024-01-01 00:00:01] {task.py:11} INFO - started",
            "[2024-01-01 00:00:02] {task.py:12} ERROR - failed",
            "Traceback (most recent call last):",
        ]

        view.set_min_level(LogLevel.ERROR)
        assert view.visible_lines()[1:] == [
            "[2024-01-01 00:00:02] {task.py:12} ERROR - failed",
            "Traceback (most recent call last):",
        ]

    def test_level_resets_for_another_task(self) -> None:
        from flowdeck.contracts.enums import LogLevel
        from flowdeck.views.models import LogView

        view = LogView()
        view.open("etl", "r1", "extract", max_attempt=1)
        view.set_min_level(LogLevel.WARNING)
        view.open("etl", "r1", "extract", max_attempt=2)
        assert view.min_level == LogLevel.WARNING

        view.open("etl", "r1", "extract", max_attempt=2, map_index=0)
        assert view.min_level == LogLevel.INFO
        assert view.task_key == "extract[0]"


class TestFilterLinesByLevel:
    """Continuation lines follow their entry; unreadable entries are kept."""

    def test_continuations_follow_parent(self) -> None:
        from flowdeck.contracts.enums import LogLevel
        from flowdeck.views.models import filter_lines_by_level

        lines = [
            "[t1] {a.py:1} DEBUG - hidden",
            "  continued",
            "[t2] {a.py:2} WARNING - shown",
            "  continued",
        ]

        assert filter_lines_by_level(lines, LogLevel.INFO) == lines[2:]

    def test_unparsable_entries_are_kept(self) -> None:
        from flowdeck.contracts.enums import LogLevel
        from flowdeck.views.models import filter_lines_by_level

        lines = ["[t1] something odd", "[t2] {a.py:2} DEBUG - hidden", "[t3] ERROR - no source"]

        assert filter_lines_by_level(lines, LogLevel.INFO) == ["[t1] something odd", "[t3] ERROR - no source"]

    @given(st.lists(st.text(alphabet="[]{} -:.abINFOERDBUGW", max_size=30), max_size=20))
    def test_debug_level_keeps_every_line(self, lines: list[str]) -> None:
        from flowdeck.contracts.enums import LogLevel
        from flowdeck.views.models import filter_lines_by_level

        assert filter_lines_by_level(lines, LogLevel.DEBUG) == lines


class TestDagCodeView:
    def test_loading_then_content(self) -> None:
        from flowdeck.views.models import DagCodeView

        view = DagCodeView()
        assert view.render_content() == ""

        view.open("etl")
        assert view.render_content().endswith("Loading...")
        view.set_code("x = 1")
        assert view.render_content().splitlines()[-1] == "x = 1"

        view.close()
        assert view.visible is False


class TestAppState:
    """Navigation, snapshots and screen-scoped errors."""

    def test_starts_on_config(self) -> None:
        from flowdeck.contracts.enums import Screen
        from flowdeck.views.app_state import AppState

        assert AppState().active_screen == Screen.CONFIG

    def test_snapshot_detects_navigation(self) -> None:
        from flowdeck.contracts.enums import Screen
        from flowdeck.views.app_state import AppState

        state = AppState()
        snapshot = state.snapshot()
        assert state.is_current(snapshot)

        state.navigate(Screen.DAGS)
        assert not state.is_current(snapshot)

    def test_errors_scoped_to_screen(self) -> None:
        from flowdeck.contracts.enums import Screen
        from flowdeck.views.app_state import AppState

        state = AppState()
        state.show_error(Screen.LOGS, "log fetch failed")

        assert state.views.logs.error_popup.messages == ["log fetch failed"]
        assert state.views.dags.error_popup is None

    def test_reset_keeps_config_view(self) -> None:
        from flowdeck.views.app_state import AppState

        state = AppState()
        state.views.config.set_items([("local", "http://x", "v2")], "local")
        state.views.dags.set_filter("x")

        state.reset_views()

        assert state.views.config.active == "local"
        assert state.views.dags.filter_text is None

    def test_store_shares_the_lock(self) -> None:
        from flowdeck.views.app_state import AppState

        state = AppState()
        assert state.lock is state.store.lock
