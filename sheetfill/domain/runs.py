"""Domain entities for a single enrichment run."""
from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Sequence

from sheetfill.core.schema import CellValue
from sheetfill.domain.grid import Point


@dataclass(frozen=True, slots=True)
class JobSpec:
    """One research job: fill ``target_cols`` of ``row`` given the whole row."""

    row: int
    context: dict[str, CellValue]
    target_headers: tuple[str, ...]
    target_cols: tuple[int, ...]

    def cells(self) -> list[Point]:
        return [Point(self.row, col) for col in self.target_cols]


@dataclass(frozen=True, slots=True)
class RunEntry:
    """The cells a job identifier resolves to."""

    row: int
    target_cols: tuple[int, ...]
    target_headers: tuple[str, ...]

    def cells(self) -> list[Point]:
        return [Point(self.row, col) for col in self.target_cols]


class CorrelationTable(Mapping[str, RunEntry]):
    """Read-only job id -> :class:`RunEntry` mapping for one run."""

    def __init__(self, entries: Mapping[str, RunEntry] | None = None) -> None:
        self._entries = MappingProxyType(dict(entries or {}))

    @classmethod
    def build(cls, job_ids: Sequence[str | None], job_specs: Sequence[JobSpec]) -> "CorrelationTable":
        """Pair ids with specs by position; unusable pairs are dropped."""

        entries: dict[str, RunEntry] = {}
        for index, job_id in enumerate(job_ids):
            if not job_id or index >= len(job_specs):
                continue
            spec = job_specs[index]
            entries[job_id] = RunEntry(
                row=spec.row,
                target_cols=tuple(spec.target_cols),
                target_headers=tuple(spec.target_headers),
            )
        return cls(entries)

    @classmethod
    def from_wire(cls, run_map: Mapping[str, Any]) -> "CorrelationTable":
        entries: dict[str, RunEntry] = {}
        for job_id, raw in (run_map or {}).items():
            if not job_id or not isinstance(raw, Mapping):
                continue
            try:
                entries[job_id] = RunEntry(
                    row=int(raw["row"]),
                    target_cols=tuple(int(col) for col in raw.get("targetCols") or ()),
                    target_headers=tuple(str(h) for h in raw.get("targetHeaders") or ()),
                )
            except (KeyError, TypeError, ValueError):
                continue
        return cls(entries)

    def to_wire(self) -> dict[str, dict[str, Any]]:
        return {
            job_id: {
                "row": entry.row,
                "targetCols": list(entry.target_cols),
                "targetHeaders": list(entry.target_headers),
            }
            for job_id, entry in self._entries.items()
        }

    def __getitem__(self, job_id: str) -> RunEntry:
        return self._entries[job_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


class PendingSet:
    """Cells still awaiting a value. Only ever shrinks."""

    def __init__(self, cells: Iterable[Point]) -> None:
        self._cells: set[Point] = set(cells)
        self.initial_count = len(self._cells)

    def __len__(self) -> int:
        return len(self._cells)

    def __contains__(self, point: object) -> bool:
        return point in self._cells

    def __iter__(self) -> Iterator[Point]:
        return iter(sorted(self._cells))

    @property
    def completed(self) -> int:
        return self.initial_count - len(self._cells)

    def discard_many(self, cells: Iterable[Point]) -> list[Point]:
        """Remove ``cells`` and return the ones that were actually pending."""

        removed = [point for point in cells if point in self._cells]
        self._cells.difference_update(removed)
        return removed

    def drain(self) -> list[Point]:
        remaining = sorted(self._cells)
        self._cells.clear()
        return remaining


class RunOutcome(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"
    TRANSPORT_ERROR = "transport_error"


@dataclass(slots=True)
class RunSummary:
    group_id: str
    outcome: RunOutcome | None
    success_count: int
    error_count: int
    elapsed: float | None
    abandoned: int = 0


@dataclass(eq=False)
class RunState:
    """Mutable state of the single active run."""

    group_id: str
    correlation: CorrelationTable
    pending: PendingSet
    started_at: float
    success_count: int = 0
    error_count: int = 0
    settled_jobs: set[str] = field(default_factory=set)
    outcome: RunOutcome | None = None
    elapsed: float | None = None
    abandoned: int = 0
    error: Exception | None = None
    done: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def busy(self) -> bool:
        return self.outcome is None

    def summary(self) -> RunSummary:
        return RunSummary(
            group_id=self.group_id,
            outcome=self.outcome,
            success_count=self.success_count,
            error_count=self.error_count,
            elapsed=self.elapsed,
            abandoned=self.abandoned,
        )
