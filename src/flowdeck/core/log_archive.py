# src/flowdeck/core/log_archive.py
"""
Filesystem archive of task logs.

Every fetched log chunk rewrites the full accumulated content of its attempt
so logs survive restarts. Writes are best-effort: a failure is logged and
never surfaces to the dashboard.

Structure: base_path/<env>/<dag_id>/<dag_run_id>/<task_id>/attempt_<n>.log
"""

import re
from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def safe_component(value: str) -> str:
    """Make an identifier usable as a single path component."""
    cleaned = _UNSAFE_CHARS.sub("_", value)
    if cleaned in ("", ".", ".."):
        return cleaned.replace(".", "_") or "_"
    return cleaned


class LogArchive:
    """Per-attempt log files under a base directory."""

    def __init__(self, base_path: Path) -> None:
        """Initialize the archive.

        Args:
            base_path: Root directory; created lazily on first write
        """
        self.base_path = base_path

    def path_for(
        self,
        environment: str,
        dag_id: str,
        dag_run_id: str,
        task_id: str,
        attempt: int,
    ) -> Path:
        """Get the file path for one task attempt."""
        return (
            self.base_path
            / safe_component(environment)
            / safe_component(dag_id)
            / safe_component(dag_run_id)
            / safe_component(task_id)
            / f"attempt_{attempt}.log"
        )

    def write(
        self,
        environment: str,
        dag_id: str,
        dag_run_id: str,
        task_id: str,
        attempt: int,
        content: str,
    ) -> Path | None:
        """Replace the archived content of an attempt.

        Returns:
            The written path, or None if the write failed
        """
        path = self.path_for(environment, dag_id, dag_run_id, task_id, attempt)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            logger.warning("Log archive write failed", path=str(path), error=str(e))
            return None
        return path

    def read(
        self,
        environment: str,
        dag_id: str,
        dag_run_id: str,
        task_id: str,
        attempt: int,
    ) -> str | None:
        """Archived content of an attempt, or None if never archived."""
        path = self.path_for(environment, dag_id, dag_run_id, task_id, attempt)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")
