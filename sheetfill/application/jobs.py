"""Turning a grid selection into per-row research jobs."""
from __future__ import annotations

from typing import Sequence

from sheetfill.core.schema import CellValue, ProcessorTier, RowJob, SelectionBounds, SheetSnapshot, SubmitRequest
from sheetfill.domain import JobSpec, Selection


def _header_row(grid: Sequence[Sequence[CellValue]]) -> list[str]:
    if not grid:
        return []
    return ["" if value is None else str(value) for value in grid[0]]


def build_job_specs(selection: Selection, grid: Sequence[Sequence[CellValue]]) -> list[JobSpec]:
    """One job per selected data row, in ascending row order.

    Each job carries the full row as context keyed by header, so the research
    sees every known attribute even when only some columns are targets.
    """

    headers = _header_row(grid)
    target_cols = tuple(selection.columns())
    target_headers = tuple(headers[col] if col < len(headers) else "" for col in target_cols)

    specs: list[JobSpec] = []
    for row in selection.data_rows():
        values = list(grid[row]) if row < len(grid) else []
        context: dict[str, CellValue] = {}
        for index, header in enumerate(headers):
            value = values[index] if index < len(values) else ""
            context[header] = "" if value is None else value
        specs.append(JobSpec(row=row, context=context, target_headers=target_headers, target_cols=target_cols))
    return specs


def job_specs_from_request(request: SubmitRequest) -> list[JobSpec]:
    return [
        JobSpec(
            row=item.row,
            context=dict(item.context),
            target_headers=tuple(item.target_headers),
            target_cols=tuple(item.target_cols),
        )
        for item in request.rows
    ]


def build_submit_request(
    selection: Selection,
    grid: Sequence[Sequence[CellValue]],
    job_specs: Sequence[JobSpec],
    processor: ProcessorTier,
) -> SubmitRequest:
    rows = selection.data_rows()
    return SubmitRequest(
        sheet=SheetSnapshot(
            headers=_header_row(grid),
            rows=[["" if value is None else value for value in row] for row in grid[1:]],
        ),
        selection=SelectionBounds(
            start_row=rows.start,
            end_row=max(rows.start, selection.end.row),
            start_col=selection.start.col,
            end_col=selection.end.col,
        ),
        rows=[
            RowJob(
                row=spec.row,
                context=dict(spec.context),
                target_headers=list(spec.target_headers),
                target_cols=list(spec.target_cols),
            )
            for spec in job_specs
        ],
        processor=processor,
    )
