"""Batch submission of row jobs to a new task group."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Sequence

import httpx

from sheetfill.core.errors import SubmissionError
from sheetfill.core.prompts import build_output_schema, build_prompt
from sheetfill.core.schema import ProcessorTier
from sheetfill.domain import CorrelationTable, JobSpec
from sheetfill.infrastructure.parallel import ParallelAPIError, ParallelClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SubmissionResult:
    group_id: str
    job_ids: list[str]
    correlation: CorrelationTable


class BatchSubmitter:
    """Creates one task group and adds every job to it in a single call."""

    def __init__(self, client: ParallelClient) -> None:
        self._client = client

    @staticmethod
    def build_inputs(job_specs: Sequence[JobSpec], processor: ProcessorTier) -> list[dict[str, Any]]:
        return [
            {
                "input": build_prompt(spec.context, spec.target_headers),
                "task_spec": {"output_schema": build_output_schema(spec.target_headers)},
                "processor": processor.value,
                "metadata": {"row": spec.row, "index": index},
            }
            for index, spec in enumerate(job_specs)
        ]

    async def submit(self, job_specs: Sequence[JobSpec], processor: ProcessorTier) -> SubmissionResult:
        if not job_specs:
            raise SubmissionError("No rows to enrich")

        try:
            group_id = await self._client.create_task_group()
        except (ParallelAPIError, httpx.HTTPError) as exc:
            raise SubmissionError(f"Failed to create task group: {exc}") from exc

        inputs = self.build_inputs(job_specs, processor)
        try:
            job_ids = await self._client.add_runs(group_id, inputs)
        except (ParallelAPIError, httpx.HTTPError) as exc:
            raise SubmissionError(f"Failed to add runs to task group {group_id}: {exc}") from exc

        logger.info("Added %d runs to %s with processor '%s'", len(job_ids), group_id, processor.value)
        if len(job_ids) != len(job_specs):
            logger.warning(
                "Task group %s returned %d run ids for %d jobs", group_id, len(job_ids), len(job_specs)
            )
        correlation = CorrelationTable.build(job_ids, job_specs)
        return SubmissionResult(group_id=group_id, job_ids=job_ids, correlation=correlation)
