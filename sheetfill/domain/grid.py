"""Grid model and the contract the enrichment core drives it through."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Iterable, Protocol, Sequence

from sheetfill.core.schema import CellValue

PENDING_TAG = "pending"
FLASH_TAG = "flash"


@dataclass(frozen=True, slots=True, order=True)
class Point:
    row: int
    col: int


@dataclass(frozen=True, slots=True)
class Selection:
    """Inclusive, normalised rectangle of grid coordinates."""

    start: Point
    end: Point

    @classmethod
    def normalized(cls, start: Point, end: Point, *, max_row: int, max_col: int) -> "Selection":
        def clamp(value: int, upper: int) -> int:
            return max(0, min(upper, value))

        a = Point(clamp(start.row, max_row), clamp(start.col, max_col))
        b = Point(clamp(end.row, max_row), clamp(end.col, max_col))
        return cls(
            start=Point(min(a.row, b.row), min(a.col, b.col)),
            end=Point(max(a.row, b.row), max(a.col, b.col)),
        )

    def data_rows(self) -> range:
        """Rows that receive jobs; the header row is never a target."""

        return range(max(1, self.start.row), self.end.row + 1)

    def columns(self) -> range:
        return range(self.start.col, self.end.col + 1)

    def target_cells(self) -> list[Point]:
        return [Point(row, col) for row in self.data_rows() for col in self.columns()]


@dataclass(slots=True)
class Cell:
    value: CellValue = ""
    read_only: bool = False
    tags: set[str] = field(default_factory=set)


class GridView(Protocol):
    """Operations the core performs on the grid it does not own."""

    def headers(self) -> list[str]: ...

    def values(self) -> list[list[CellValue]]: ...

    def set_cell_value(self, row: int, col: int, value: CellValue) -> None: ...

    def mark_pending(self, cells: Iterable[Point]) -> None: ...

    def clear_pending(self, cells: Iterable[Point]) -> None: ...

    def acknowledge(self, cells: Iterable[Point]) -> None: ...

    def report_counts(self, success: int, error: int) -> None: ...

    def report_busy(self, busy: bool) -> None: ...

    def report_status(self, message: str) -> None: ...


class Sheet:
    """In-memory grid whose first row holds the column headers."""

    flash_seconds = 0.8

    def __init__(self, rows: Sequence[Sequence[CellValue]] | None = None) -> None:
        source = [list(row) for row in (rows or [[]])]
        width = max((len(row) for row in source), default=0)
        self._cells: list[list[Cell]] = [
            [Cell(value=row[i] if i < len(row) and row[i] is not None else "") for i in range(width)]
            for row in source
        ]
        self.busy = False
        self.success_count = 0
        self.error_count = 0
        self.status = ""

    # ------------------------------------------------------------------
    # read access
    # ------------------------------------------------------------------
    @property
    def row_count(self) -> int:
        return len(self._cells)

    @property
    def col_count(self) -> int:
        return len(self._cells[0]) if self._cells else 0

    def headers(self) -> list[str]:
        if not self._cells:
            return []
        return ["" if cell.value is None else str(cell.value) for cell in self._cells[0]]

    def values(self) -> list[list[CellValue]]:
        return [[cell.value for cell in row] for row in self._cells]

    def cell(self, row: int, col: int) -> Cell:
        return self._cells[row][col]

    def value(self, row: int, col: int) -> CellValue:
        return self._cells[row][col].value

    def pending_cells(self) -> set[Point]:
        return self._tagged(PENDING_TAG)

    def flashing_cells(self) -> set[Point]:
        return self._tagged(FLASH_TAG)

    def _tagged(self, tag: str) -> set[Point]:
        return {
            Point(r, c)
            for r, row in enumerate(self._cells)
            for c, cell in enumerate(row)
            if tag in cell.tags
        }

    def select(self, start: Point, end: Point) -> Selection:
        return Selection.normalized(
            start,
            end,
            max_row=max(0, self.row_count - 1),
            max_col=max(0, self.col_count - 1),
        )

    def edit(self, row: int, col: int, value: CellValue) -> bool:
        """User edit; refused while the cell is locked by a running enrichment."""

        if not (0 <= row < self.row_count and 0 <= col < self.col_count):
            return False
        cell = self._cells[row][col]
        if cell.read_only:
            return False
        cell.value = "" if value is None else value
        return True

    # ------------------------------------------------------------------
    # GridView
    # ------------------------------------------------------------------
    def set_cell_value(self, row: int, col: int, value: CellValue) -> None:
        if not (0 <= row < self.row_count and 0 <= col < self.col_count):
            return
        self._cells[row][col].value = "" if value is None else value

    def mark_pending(self, cells: Iterable[Point]) -> None:
        self._tag(cells, PENDING_TAG)

    def clear_pending(self, cells: Iterable[Point]) -> None:
        self._untag(cells, PENDING_TAG)

    def acknowledge(self, cells: Iterable[Point]) -> None:
        points = list(cells)
        self._tag(points, FLASH_TAG)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        loop.call_later(self.flash_seconds, self._untag, points, FLASH_TAG)

    def report_counts(self, success: int, error: int) -> None:
        self.success_count = success
        self.error_count = error

    def report_busy(self, busy: bool) -> None:
        self.busy = busy
        for row in self._cells:
            for cell in row:
                cell.read_only = busy

    def report_status(self, message: str) -> None:
        self.status = message

    def _tag(self, cells: Iterable[Point], tag: str) -> None:
        for point in cells:
            if 0 <= point.row < self.row_count and 0 <= point.col < self.col_count:
                self._cells[point.row][point.col].tags.add(tag)

    def _untag(self, cells: Iterable[Point], tag: str) -> None:
        for point in cells:
            if 0 <= point.row < self.row_count and 0 <= point.col < self.col_count:
                self._cells[point.row][point.col].tags.discard(tag)
