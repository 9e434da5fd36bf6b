"""Tests for shared enums."""

import pytest


class TestApiVersion:
    @pytest.mark.parametrize(("version", "prefix"), [("v2", "api/v1"), ("v3", "api/v2")])
    def test_api_prefix(self, version: str, prefix: str) -> None:
        from flowdeck.contracts.enums import ApiVersion

        assert ApiVersion(version).api_prefix == prefix


class TestScreen:
    """Drill-down order of the dashboard screens."""

    def test_parent_chain(self) -> None:
        from flowdeck.contracts.enums import Screen

        assert Screen.LOGS.parent == Screen.TASK_INSTANCES
        assert Screen.TASK_INSTANCES.parent == Screen.DAG_RUNS
        assert Screen.DAG_RUNS.parent == Screen.DAGS
        assert Screen.DAGS.parent == Screen.CONFIG

    def test_config_is_its_own_parent(self) -> None:
        from flowdeck.contracts.enums import Screen

        assert Screen.CONFIG.parent == Screen.CONFIG


class TestStates:
    def test_states_compare_to_wire_strings(self) -> None:
        from flowdeck.contracts.enums import RunState, TaskState

        assert RunState.FAILED == "failed"
        assert TaskState.UP_FOR_RETRY == "up_for_retry"

    def test_failed_sorts_before_success(self) -> None:
        from flowdeck.contracts.enums import StatePriority

        assert sorted([StatePriority.PAUSED, StatePriority.SUCCESS, StatePriority.FAILED]) == [
            StatePriority.FAILED,
            StatePriority.SUCCESS,
            StatePriority.PAUSED,
        ]


class TestLogLevel:
    @pytest.mark.parametrize(
        ("name", "level"),
        [("INFO", 2), ("warning", 3), ("WARN", 3), ("FATAL", 5), ("Critical", 5), ("started", None)],
    )
    def test_parse(self, name: str, level: int | None) -> None:
        from flowdeck.contracts.enums import LogLevel

        assert LogLevel.parse(name) == level

    def test_order(self) -> None:
        from flowdeck.contracts.enums import LogLevel

        assert LogLevel.DEBUG < LogLevel.INFO < LogLevel.WARNING < LogLevel.ERROR < LogLevel.CRITICAL
