# tests/core/test_health.py
"""Tests for DAG health priority and schedule frequency."""

import pytest


def _runs(*states: str | None) -> list:
    from flowdeck.contracts.entities import DagRun

    return [DagRun("etl", f"run{i}", state=state) for i, state in enumerate(states)]


class TestComputeStatePriority:
    """Priority from the health window (newest run first)."""

    def test_paused_wins_over_everything(self) -> None:
        from flowdeck.contracts.enums import StatePriority
        from flowdeck.core.health import compute_state_priority

        assert compute_state_priority(True, _runs("failed")) == StatePriority.PAUSED

    def test_no_runs_is_unknown(self) -> None:
        from flowdeck.contracts.enums import StatePriority
        from flowdeck.core.health import compute_state_priority

        assert compute_state_priority(False, []) == StatePriority.UNKNOWN

    @pytest.mark.parametrize(
        ("states", "expected"),
        [
            (("failed", "success"), "FAILED"),
            (("upstream_failed",), "FAILED"),
            (("running", "failed"), "RUNNING"),
            (("queued",), "RUNNING"),
            (("success", "failed"), "RECOVERED"),
            (("success", "success"), "SUCCESS"),
            ((None,), "UNKNOWN"),
        ],
    )
    def test_latest_run_decides(self, states: tuple, expected: str) -> None:
        from flowdeck.contracts.enums import StatePriority
        from flowdeck.core.health import compute_state_priority

        assert compute_state_priority(False, _runs(*states)) == StatePriority[expected]

    def test_failed_sorts_before_success(self) -> None:
        from flowdeck.contracts.enums import StatePriority

        assert StatePriority.FAILED < StatePriority.RUNNING < StatePriority.SUCCESS
        assert StatePriority.UNKNOWN < StatePriority.PAUSED


class TestScheduleFrequency:
    """Seconds between scheduled runs."""

    @pytest.mark.parametrize(
        ("schedule", "expected"),
        [
            ("@hourly", 3600),
            ("@daily", 86400),
            ("@weekly", 7 * 86400),
            ("@every 300s", 300),
            ("* * * * *", 60),
            ("*/15 * * * *", 900),
            ("0 * * * *", 3600),
            ("0 0 * * *", 86400),
            ("0 0 * * 1", 7 * 86400),
            ("0 0 1 * *", 30 * 86400),
            ("0 0 1 1 *", 365 * 86400),
            ("0 6,18 * * *", 43200),
        ],
    )
    def test_known_schedules(self, schedule: str, expected: int) -> None:
        from flowdeck.core.health import schedule_frequency

        assert schedule_frequency(schedule) == expected

    @pytest.mark.parametrize("schedule", [None, "", "None", "never", "@once", "not a cron", "0 0 L * *"])
    def test_unscheduled_or_unparsable(self, schedule: str | None) -> None:
        from flowdeck.core.health import schedule_frequency

        assert schedule_frequency(schedule) is None
