# tests/core/test_log_archive.py
"""Tests for the filesystem task log archive."""

from pathlib import Path

import pytest


class TestSafeComponent:
    """Path component sanitizing."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("manual__2024-01-01T00:00:00+00:00", "manual__2024-01-01T00_00_00_00_00"),
            ("../etc", ".._etc"),
            ("..", "__"),
            ("", "_"),
            ("extract.users", "extract.users"),
        ],
    )
    def test_sanitizes(self, value: str, expected: str) -> None:
        from flowdeck.core.log_archive import safe_component

        assert safe_component(value) == expected


class TestLogArchive:
    """Per-attempt log files."""

    def test_write_then_read(self, tmp_path: Path) -> None:
        from flowdeck.core.log_archive import LogArchive

        archive = LogArchive(tmp_path / "logs")
        path = archive.write("local", "etl", "run/1", "extract", 2, "line 1\nline 2\n")

        assert path == tmp_path / "logs" / "local" / "etl" / "run_1" / "extract" / "attempt_2.log"
        assert archive.read("local", "etl", "run/1", "extract", 2) == "line 1\nline 2\n"

    def test_write_replaces_content(self, tmp_path: Path) -> None:
        from flowdeck.core.log_archive import LogArchive

        archive = LogArchive(tmp_path)
        archive.write("local", "etl", "r1", "t", 1, "first")
        archive.write("local", "etl", "r1", "t", 1, "first\nsecond")

        assert archive.read("local", "etl", "r1", "t", 1) == "first\nsecond"

    def test_missing_attempt_reads_none(self, tmp_path: Path) -> None:
        from flowdeck.core.log_archive import LogArchive

        assert LogArchive(tmp_path).read("local", "etl", "r1", "t", 1) is None

    def test_write_failure_returns_none(self, tmp_path: Path) -> None:
        """A file where a directory should be makes the write fail quietly."""
        from flowdeck.core.log_archive import LogArchive

        blocker = tmp_path / "blocked"
        blocker.write_text("not a directory")

        assert LogArchive(blocker).write("local", "etl", "r1", "t", 1, "x") is None
