"""Run lifecycle: start, natural completion, cancellation, timeout."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import AsyncGenerator, Callable, Protocol

from sheetfill.application.jobs import build_job_specs, build_submit_request
from sheetfill.application.reconciler import EventReconciler
from sheetfill.core.errors import EnrichmentError, RunInProgressError, TransportError
from sheetfill.core.events import decode_frame
from sheetfill.core.schema import CancelResponse, ProcessorTier, SubmitRequest, SubmitResponse
from sheetfill.core.settings import DEFAULT_RUN_TIMEOUT
from sheetfill.core.sse import SSEFrame
from sheetfill.domain import CorrelationTable, GridView, PendingSet, RunOutcome, RunState, RunSummary, Selection

logger = logging.getLogger(__name__)


class EnrichmentGateway(Protocol):
    """Submit / stream / cancel, either in-process or over HTTP."""

    async def submit(self, request: SubmitRequest) -> SubmitResponse: ...

    def stream(self, group_id: str) -> AsyncGenerator[SSEFrame, None]: ...

    async def cancel(self, group_id: str) -> CancelResponse: ...


class EnrichmentController:
    """Owns the single active :class:`RunState` and tears it down exactly once."""

    def __init__(
        self,
        gateway: EnrichmentGateway,
        grid: GridView,
        *,
        timeout: float = DEFAULT_RUN_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._gateway = gateway
        self._grid = grid
        self._timeout = timeout
        self._clock = clock
        self._reconciler = EventReconciler(grid)
        self._run: RunState | None = None
        self._starting = False
        self._consumer: asyncio.Task[None] | None = None
        self._timer: asyncio.TimerHandle | None = None

    @property
    def busy(self) -> bool:
        return self._starting or self._run is not None

    @property
    def run(self) -> RunState | None:
        return self._run

    # ------------------------------------------------------------------
    # start
    # ------------------------------------------------------------------
    async def start(self, selection: Selection, processor: ProcessorTier | str = ProcessorTier.LITE) -> RunState:
        if self.busy:
            raise RunInProgressError("An enrichment run is already in progress")

        tier = ProcessorTier(processor)
        grid_values = self._grid.values()
        job_specs = build_job_specs(selection, grid_values)
        if not job_specs:
            raise ValueError("Selection contains no data rows")
        cells = [cell for spec in job_specs for cell in spec.cells()]
        request = build_submit_request(selection, grid_values, job_specs, tier)

        self._starting = True
        started_at = self._clock()
        self._grid.mark_pending(cells)
        self._grid.report_counts(0, 0)
        self._grid.report_busy(True)
        self._grid.report_status(f"Research started. 0 of {len(cells)} cells filled.")
        try:
            response = await self._gateway.submit(request)
        except Exception:
            self._grid.clear_pending(cells)
            self._grid.report_busy(False)
            self._grid.report_status("Research could not be started")
            raise
        finally:
            self._starting = False

        run = RunState(
            group_id=response.taskgroup_id,
            correlation=CorrelationTable.from_wire(response.model_dump(by_alias=True)["run_map"]),
            pending=PendingSet(cells),
            started_at=started_at,
        )
        self._run = run
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._timeout, self._on_timeout, run)
        self._consumer = loop.create_task(self._consume(run))
        logger.info(
            "Started run for task group %s: %d jobs, %d cells, processor '%s'",
            run.group_id,
            len(job_specs),
            len(cells),
            tier.value,
        )
        return run

    async def wait(self, run: RunState | None = None) -> RunSummary:
        target = run or self._run
        if target is None:
            raise RuntimeError("No enrichment run to wait for")
        await target.done.wait()
        if target.error is not None and not isinstance(target.error, EnrichmentError):
            raise target.error
        return target.summary()

    async def enrich(self, selection: Selection, processor: ProcessorTier | str = ProcessorTier.LITE) -> RunSummary:
        run = await self.start(selection, processor)
        return await self.wait(run)

    # ------------------------------------------------------------------
    # event loop
    # ------------------------------------------------------------------
    async def _consume(self, run: RunState) -> None:
        frames = self._gateway.stream(run.group_id)
        try:
            async for frame in frames:
                if not run.busy:
                    break
                event = decode_frame(frame)
                if event is None:
                    continue
                if self._reconciler.apply(run, event):
                    self._finish(run, RunOutcome.COMPLETED)
                    return
            self._finish(
                run,
                RunOutcome.TRANSPORT_ERROR,
                TransportError("Event stream ended before the task group completed"),
            )
        except TransportError as exc:
            logger.error("Event stream for %s failed: %s", run.group_id, exc)
            self._finish(run, RunOutcome.TRANSPORT_ERROR, exc)
        except Exception as exc:  # pragma: no cover - defensive branch
            logger.exception("Unexpected error while reconciling %s", run.group_id)
            self._finish(run, RunOutcome.TRANSPORT_ERROR, exc)
        finally:
            await frames.aclose()

    # ------------------------------------------------------------------
    # termination
    # ------------------------------------------------------------------
    def _on_timeout(self, run: RunState) -> None:
        if run.busy:
            logger.warning("Task group %s timed out after %.0fs", run.group_id, self._timeout)
            self._finish(run, RunOutcome.TIMED_OUT)

    async def cancel(self) -> bool:
        """Stop listening to the active run; a no-op when idle.

        The remote side is told on a best-effort basis only; its jobs keep
        running but their results are no longer applied.
        """

        run = self._run
        if run is None or not self._finish(run, RunOutcome.CANCELLED):
            return False
        try:
            await self._gateway.cancel(run.group_id)
        except EnrichmentError as exc:
            logger.warning("Could not notify cancellation of %s: %s", run.group_id, exc)
        return True

    def _finish(self, run: RunState, outcome: RunOutcome, error: Exception | None = None) -> bool:
        if run.outcome is not None:
            return False
        run.outcome = outcome
        run.error = error

        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        consumer, self._consumer = self._consumer, None
        if consumer is not None and consumer is not asyncio.current_task():
            consumer.cancel()

        remaining = run.pending.drain()
        run.abandoned = len(remaining)
        self._grid.clear_pending(remaining)

        if outcome is RunOutcome.CANCELLED:
            run.success_count = 0
            run.error_count = 0
            self._grid.report_counts(0, 0)
            self._grid.report_status("Enrichment cancelled")
        else:
            run.elapsed = self._clock() - run.started_at
            self._grid.report_counts(run.success_count, run.error_count)
            self._grid.report_status(self._final_message(run))

        self._grid.report_busy(False)
        if self._run is run:
            self._run = None
        run.done.set()
        logger.info(
            "Run for task group %s ended (%s): %d filled, %d failed, %d abandoned",
            run.group_id,
            outcome.value,
            run.success_count,
            run.error_count,
            run.abandoned,
        )
        return True

    @staticmethod
    def _final_message(run: RunState) -> str:
        if run.outcome is RunOutcome.TIMED_OUT:
            return f"Research timed out. {run.success_count} filled, {run.abandoned} abandoned"
        if run.outcome is RunOutcome.TRANSPORT_ERROR:
            return f"Research stream lost. {run.success_count} filled, {run.abandoned} abandoned"
        return (
            f"Research complete in {run.elapsed or 0.0:.1f}s. "
            f"{run.success_count} filled, {run.error_count} failed"
        )
