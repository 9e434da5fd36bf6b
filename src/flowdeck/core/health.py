# src/flowdeck/core/health.py
"""Cache-local derived fields for DAGs.

Neither value is ever sent to the server; both exist only to sort the DAG
list:
- state priority: failing DAGs first, paused DAGs last
- schedule frequency: seconds between scheduled runs (None when unscheduled)
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from flowdeck.contracts.entities import DagRun
from flowdeck.contracts.enums import RunState, StatePriority, TaskState

FAILED_STATES = frozenset({RunState.FAILED.value, TaskState.UPSTREAM_FAILED.value})
ACTIVE_STATES = frozenset({RunState.RUNNING.value, RunState.QUEUED.value})

MINUTE = 60
HOUR = 60 * MINUTE
DAY = 24 * HOUR
WEEK = 7 * DAY
MONTH = 30 * DAY
YEAR = 365 * DAY

_PRESETS: dict[str, int | None] = {
    "@once": None,
    "@continuous": None,
    "@hourly": HOUR,
    "@daily": DAY,
    "@midnight": DAY,
    "@weekly": WEEK,
    "@monthly": MONTH,
    "@quarterly": 3 * MONTH,
    "@yearly": YEAR,
    "@annually": YEAR,
}

_EVERY = re.compile(r"^@every\s+(\d+(?:\.\d+)?)s$")
_STEP = re.compile(r"^\*/(\d+)$")
_VALUE = re.compile(r"^\d+(-\d+)?(,\d+(-\d+)?)*$")


def compute_state_priority(is_paused: bool, recent_runs: Sequence[DagRun]) -> int:
    """Sort priority of a DAG from its recent runs, newest first.

    Args:
        is_paused: Paused DAGs always sort last
        recent_runs: Health window, newest run first

    Returns:
        A StatePriority value
    """
    if is_paused:
        return StatePriority.PAUSED
    if not recent_runs:
        return StatePriority.UNKNOWN

    latest = recent_runs[0].state
    if latest in FAILED_STATES:
        return StatePriority.FAILED
    if latest in ACTIVE_STATES:
        return StatePriority.RUNNING
    if latest == RunState.SUCCESS:
        if any(run.state in FAILED_STATES for run in recent_runs[1:]):
            return StatePriority.RECOVERED
        return StatePriority.SUCCESS
    return StatePriority.UNKNOWN


def _field_count(field: str, span: int) -> int | None:
    """Number of values a cron field selects within `span` (None for '*')."""
    if field == "*":
        return None
    step = _STEP.match(field)
    if step:
        return max(span // max(int(step.group(1)), 1), 1)
    if _VALUE.match(field):
        count = 0
        for part in field.split(","):
            low, _, high = part.partition("-")
            count += int(high) - int(low) + 1 if high else 1
        return max(count, 1)
    raise ValueError(f"Unsupported cron field: {field}")


def _cron_frequency(expression: str) -> int | None:
    fields = expression.split()
    if len(fields) != 5:
        return None
    minute, hour, day_of_month, month, day_of_week = fields
    try:
        minutes = _field_count(minute, 60)
        hours = _field_count(hour, 24)
        days = _field_count(day_of_month, 31)
        months = _field_count(month, 12)
        weekdays = _field_count(day_of_week, 7)
    except ValueError:
        return None

    if minutes is None:
        return MINUTE
    if hours is None:
        return HOUR // minutes
    runs_per_day = minutes * hours
    if days is None and months is None and weekdays is None:
        return DAY // runs_per_day
    if days is None and months is None and weekdays is not None:
        return WEEK // (runs_per_day * weekdays)
    if months is None:
        return MONTH // (runs_per_day * (days or 1))
    return YEAR // (runs_per_day * (days or 1) * months)


def schedule_frequency(schedule: str | None) -> int | None:
    """Seconds between scheduled runs, or None when unscheduled/unparsable.

    Accepts Airflow presets (@daily, ...), five-field cron expressions and
    fixed intervals written as "@every <seconds>s".
    """
    if schedule is None:
        return None
    text = schedule.strip()
    if not text or text.lower() in ("none", "never"):
        return None
    if text in _PRESETS:
        return _PRESETS[text]
    every = _EVERY.match(text)
    if every:
        return int(float(every.group(1)))
    return _cron_frequency(text)
