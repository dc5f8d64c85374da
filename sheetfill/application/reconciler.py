"""Applies task events to the pending set and the grid."""
from __future__ import annotations

import json
import logging
from typing import Any

from sheetfill.core.events import EventKind, TaskEvent, extract_output_content
from sheetfill.core.headers import resolve_column
from sheetfill.core.schema import CellValue
from sheetfill.domain import GridView, Point, RunEntry, RunState

logger = logging.getLogger(__name__)


def _cell_value(value: Any) -> CellValue:
    if value is None:
        return ""
    if isinstance(value, (str, int, float)):
        return value
    return json.dumps(value, ensure_ascii=False, default=str)


class EventReconciler:
    """Applies classified task events to the pending set and the grid."""

    def __init__(self, grid: GridView) -> None:
        self._grid = grid

    def apply(self, run: RunState, event: TaskEvent) -> bool:
        """Apply one event; returns True once the group reports it is finished."""

        if event.kind is EventKind.JOB_COMPLETED:
            self._apply_completed(run, event)
        elif event.kind is EventKind.JOB_FAILED:
            self._apply_failed(run, event)
        elif event.kind is EventKind.GROUP_STATUS:
            return event.active is False
        return False

    def _settle(self, run: RunState, event: TaskEvent) -> RunEntry | None:
        if not event.job_id:
            return None
        entry = run.correlation.get(event.job_id)
        if entry is None:
            logger.debug("Ignoring %s for unknown run %s", event.kind.value, event.job_id)
            return None
        if event.job_id in run.settled_jobs:
            logger.debug("Ignoring repeated %s for run %s", event.kind.value, event.job_id)
            return None
        run.settled_jobs.add(event.job_id)
        return entry

    def _apply_completed(self, run: RunState, event: TaskEvent) -> None:
        entry = self._settle(run, event)
        if entry is None:
            return

        headers = self._grid.headers()
        resolved: dict[Point, CellValue] = {}
        for key, value in extract_output_content(event.output).items():
            col = resolve_column(str(key), headers, entry.target_cols, entry.target_headers)
            if col is None:
                logger.debug("No column for output key %r of run %s", key, event.job_id)
                continue
            # Several keys may resolve to one column; the last one wins.
            resolved[Point(entry.row, col)] = _cell_value(value)

        filled = run.pending.discard_many(resolved)
        if not filled:
            return
        for point in filled:
            self._grid.set_cell_value(point.row, point.col, resolved[point])
        run.success_count += len(filled)
        self._grid.clear_pending(filled)
        self._grid.acknowledge(filled)
        self._grid.report_counts(run.success_count, run.error_count)
        self._grid.report_status(
            f"Filling… {run.pending.completed} of {run.pending.initial_count} cells done"
        )

    def _apply_failed(self, run: RunState, event: TaskEvent) -> None:
        entry = self._settle(run, event)
        if entry is None:
            return

        cells = entry.cells()
        run.pending.discard_many(cells)
        run.error_count += 1
        logger.info("Run %s failed, releasing %d cells of row %d", event.job_id, len(cells), entry.row)
        self._grid.clear_pending(cells)
        self._grid.report_counts(run.success_count, run.error_count)
        self._grid.report_status(
            f"Some cells failed. {run.success_count} filled, {run.error_count} failed"
        )
