"""Sortable table state shared by the list screens.

Every column gets a single-letter sort key derived from its header (first
free letter, skipping keys reserved for navigation). Pressing a column's
key cycles its direction: unsorted -> ascending -> descending -> unsorted.
Selecting another column starts it at ascending.
"""

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

from flowdeck.contracts.enums import SortDirection

T = TypeVar("T")

ColumnValue = Callable[[T, int], Any]


@dataclass(frozen=True)
class ColumnInfo:
    """A column header and the key that sorts it."""

    name: str
    sort_key: str | None
    key_position: int = 0


def assign_sort_keys(headers: Sequence[str], reserved_keys: Iterable[str] = ()) -> list[ColumnInfo]:
    """Assign each header a unique lowercase sort key.

    First pass: the first letter of each header. Second pass, for headers
    whose first letter was taken: the first free letter of the header. A
    header with no free letter gets no key.
    """
    used: set[str] = set()
    for key in reserved_keys:
        used.add(key.lower())
        used.add(key.upper())

    assigned: dict[int, ColumnInfo] = {}
    pending: list[int] = []
    for index, header in enumerate(headers):
        name = header.lower()
        if name and name[0] not in used:
            used.add(name[0])
            assigned[index] = ColumnInfo(header, name[0], 0)
        else:
            pending.append(index)

    for index in pending:
        name = headers[index].lower()
        for position, char in enumerate(name):
            if char.isalnum() and char not in used:
                used.add(char)
                assigned[index] = ColumnInfo(headers[index], char, position)
                break
        else:
            assigned[index] = ColumnInfo(headers[index], None)

    return [assigned[index] for index in range(len(headers))]


class SortableTable:
    """Sort state for one table."""

    def __init__(self, headers: Sequence[str], reserved_keys: Iterable[str] = ()) -> None:
        self.columns = assign_sort_keys(headers, reserved_keys)
        self.sort_column: int | None = None
        self.direction: SortDirection | None = None

    def handle_key(self, key: str) -> bool:
        """Cycle the sort of the column bound to `key`.

        Returns:
            True if the key belongs to a column
        """
        for index, column in enumerate(self.columns):
            if column.sort_key == key:
                break
        else:
            return False

        if self.sort_column != index:
            self.sort_column = index
            self.direction = SortDirection.ASCENDING
        elif self.direction is SortDirection.ASCENDING:
            self.direction = SortDirection.DESCENDING
        else:
            self.sort_column = None
            self.direction = None
        return True

    def header_labels(self) -> list[str]:
        """Headers with the direction indicator on the sorted column."""
        labels = []
        for index, column in enumerate(self.columns):
            label = column.name
            if index == self.sort_column:
                label += " ▲" if self.direction is SortDirection.ASCENDING else " ▼"
            labels.append(label)
        return labels

    def apply(self, items: Sequence[T], column_value: ColumnValue[T]) -> list[T]:
        """Sort items by the active column (unsorted keeps the given order).

        Rows whose value is None always sort last.
        """
        if self.sort_column is None:
            return list(items)
        column = self.sort_column
        present = [item for item in items if column_value(item, column) is not None]
        missing = [item for item in items if column_value(item, column) is None]
        present.sort(
            key=lambda item: column_value(item, column),
            reverse=self.direction is SortDirection.DESCENDING,
        )
        return present + missing
