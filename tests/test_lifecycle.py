from __future__ import annotations

import asyncio
import json
from pathlib import Path
import sys

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from sheetfill.application import EnrichmentController
from sheetfill.core.errors import RunInProgressError, SubmissionError, TransportError
from sheetfill.core.schema import CancelResponse, SubmitRequest, SubmitResponse
from sheetfill.core.sse import SSEFrame
from sheetfill.domain import Point, RunOutcome, Sheet

GRID = [
    ["Company", "Stage", "Employee Count"],
    ["Mintlify", "", ""],
    ["Etched", "", ""],
    ["LangChain", "", ""],
    ["Mixpanel", "", ""],
]

INACTIVE = {"type": "task_group_status", "status": {"is_active": False}}


def completed(run_id: str, content: dict) -> dict:
    return {
        "type": "task_run.state",
        "run": {"run_id": run_id, "status": "completed"},
        "output": {"content": content},
    }


def failed(run_id: str) -> dict:
    return {"type": "task_run.state", "run": {"run_id": run_id, "status": "failed"}}


class RecordingSheet(Sheet):
    def __init__(self, rows) -> None:
        super().__init__(rows)
        self.history: list[tuple[str, object]] = []

    def mark_pending(self, cells) -> None:
        super().mark_pending(cells)
        self.history.append(("pending", len(self.pending_cells())))

    def clear_pending(self, cells) -> None:
        super().clear_pending(cells)
        self.history.append(("pending", len(self.pending_cells())))

    def report_busy(self, busy: bool) -> None:
        super().report_busy(busy)
        self.history.append(("busy", busy))


class FakeGateway:
    def __init__(self, run_ids: list[str], *, fail_submit: bool = False, fail_cancel: bool = False) -> None:
        self.run_ids = run_ids
        self.fail_submit = fail_submit
        self.fail_cancel = fail_cancel
        self.queue: asyncio.Queue = asyncio.Queue()
        self.requests: list[SubmitRequest] = []
        self.cancelled: list[str] = []
        self.stream_closed = False

    async def submit(self, request: SubmitRequest) -> SubmitResponse:
        self.requests.append(request)
        if self.fail_submit:
            raise SubmissionError("Failed to create task group")
        run_map = {
            run_id: {"row": row.row, "targetCols": row.target_cols, "targetHeaders": row.target_headers}
            for run_id, row in zip(self.run_ids, request.rows)
            if run_id
        }
        return SubmitResponse.model_validate({"taskgroup_id": "tg_1", "run_map": run_map})

    async def stream(self, group_id: str):
        try:
            while True:
                item = await self.queue.get()
                if item is None:
                    return
                if isinstance(item, Exception):
                    raise item
                yield item
        finally:
            self.stream_closed = True

    async def cancel(self, group_id: str) -> CancelResponse:
        if self.fail_cancel:
            raise TransportError("connection refused")
        self.cancelled.append(group_id)
        return CancelResponse()

    def push(self, data: dict, event: str = "task_run.state") -> None:
        self.queue.put_nowait(SSEFrame(event=event, data=json.dumps(data)))


def test_partial_failure_run_is_finalised_by_group_status():
    async def scenario():
        sheet = RecordingSheet(GRID)
        gateway = FakeGateway(["r1", "r2", "r3"])
        controller = EnrichmentController(gateway, sheet, timeout=60)

        run = await controller.start(sheet.select(Point(1, 1), Point(3, 2)), "lite")
        assert sheet.busy and controller.busy
        assert len(run.pending) == 6
        assert len(gateway.requests[0].rows) == 3
        assert set(run.correlation) == {"r1", "r2", "r3"}

        gateway.push(completed("r1", {"Stage": "Seed", "Employee Count": "40"}))
        gateway.push(failed("r2"))
        gateway.push(INACTIVE, event="task_group_status")
        summary = await asyncio.wait_for(controller.wait(run), 2)
        await asyncio.sleep(0.01)
        return sheet, controller, gateway, summary

    sheet, controller, gateway, summary = asyncio.run(scenario())

    assert summary.outcome is RunOutcome.COMPLETED
    assert (summary.success_count, summary.error_count, summary.abandoned) == (2, 1, 2)
    assert summary.elapsed is not None and summary.elapsed >= 0
    assert sheet.pending_cells() == set()
    assert not sheet.busy and not controller.busy
    assert sheet.value(1, 1) == "Seed" and sheet.value(1, 2) == "40"
    assert sheet.value(3, 1) == "" and sheet.value(3, 2) == ""
    assert gateway.stream_closed is True

    sizes = [value for kind, value in sheet.history if kind == "pending"]
    assert sizes[0] == 6
    assert sizes == sorted(sizes, reverse=True)
    assert sheet.history[-1] == ("busy", False)
    assert sheet.history[-2] == ("pending", 0)


def test_timeout_abandons_outstanding_cells():
    async def scenario():
        sheet = Sheet(GRID)
        gateway = FakeGateway(["r1"])
        controller = EnrichmentController(gateway, sheet, timeout=0.05)
        run = await controller.start(sheet.select(Point(1, 2), Point(1, 2)))
        summary = await asyncio.wait_for(controller.wait(run), 2)
        await asyncio.sleep(0.01)
        gateway.push(completed("r1", {"Employee Count": "12"}))
        await asyncio.sleep(0.01)
        return sheet, controller, gateway, summary

    sheet, controller, gateway, summary = asyncio.run(scenario())

    assert summary.outcome is RunOutcome.TIMED_OUT
    assert summary.abandoned == 1
    assert sheet.pending_cells() == set()
    assert not sheet.busy and not controller.busy
    assert sheet.value(1, 2) == ""
    assert gateway.stream_closed is True


def test_cancel_clears_run_immediately_and_is_idempotent():
    async def scenario():
        sheet = Sheet(GRID)
        gateway = FakeGateway(["r1", "r2"])
        controller = EnrichmentController(gateway, sheet, timeout=60)

        assert await controller.cancel() is False
        assert gateway.cancelled == []

        run = await controller.start(sheet.select(Point(1, 1), Point(2, 2)), "pro")
        gateway.push(completed("r1", {"Stage": "Seed"}))
        await asyncio.sleep(0.01)
        assert run.success_count == 1

        assert await controller.cancel() is True
        assert not sheet.busy and not controller.busy
        assert sheet.pending_cells() == set()
        assert await controller.cancel() is False

        summary = await controller.wait(run)
        await asyncio.sleep(0.01)
        return sheet, gateway, summary

    sheet, gateway, summary = asyncio.run(scenario())

    assert summary.outcome is RunOutcome.CANCELLED
    assert (summary.success_count, summary.error_count) == (0, 0)
    assert summary.elapsed is None
    assert (sheet.success_count, sheet.error_count) == (0, 0)
    assert sheet.status == "Enrichment cancelled"
    assert gateway.cancelled == ["tg_1"]
    assert gateway.stream_closed is True


def test_cancel_survives_failed_remote_notification():
    async def scenario():
        sheet = Sheet(GRID)
        controller = EnrichmentController(FakeGateway(["r1"], fail_cancel=True), sheet)
        await controller.start(sheet.select(Point(1, 1), Point(1, 1)))
        return await controller.cancel(), sheet

    cancelled, sheet = asyncio.run(scenario())

    assert cancelled is True
    assert not sheet.busy


def test_submission_failure_leaves_no_run_state():
    async def scenario():
        sheet = Sheet(GRID)
        controller = EnrichmentController(FakeGateway([], fail_submit=True), sheet)
        with pytest.raises(SubmissionError):
            await controller.start(sheet.select(Point(1, 1), Point(2, 2)))
        return sheet, controller

    sheet, controller = asyncio.run(scenario())

    assert controller.run is None and not controller.busy
    assert not sheet.busy
    assert sheet.pending_cells() == set()


def test_new_run_is_rejected_while_busy():
    async def scenario():
        sheet = Sheet(GRID)
        controller = EnrichmentController(FakeGateway(["r1"]), sheet)
        await controller.start(sheet.select(Point(1, 1), Point(1, 1)))
        with pytest.raises(RunInProgressError):
            await controller.start(sheet.select(Point(2, 1), Point(2, 1)))
        await controller.cancel()

    asyncio.run(scenario())


def test_selection_without_data_rows_is_refused():
    async def scenario():
        sheet = Sheet(GRID)
        controller = EnrichmentController(FakeGateway([]), sheet)
        with pytest.raises(ValueError):
            await controller.start(sheet.select(Point(0, 0), Point(0, 2)))
        return sheet, controller

    sheet, controller = asyncio.run(scenario())
    assert not controller.busy and not sheet.busy


def test_stream_failure_ends_run_as_transport_error():
    async def scenario():
        sheet = Sheet(GRID)
        gateway = FakeGateway(["r1", "r2"])
        controller = EnrichmentController(gateway, sheet, timeout=60)
        run = await controller.start(sheet.select(Point(1, 1), Point(2, 1)))
        gateway.push(completed("r1", {"Stage": "Seed"}))
        gateway.queue.put_nowait(TransportError("connection reset"))
        return sheet, await asyncio.wait_for(controller.wait(run), 2)

    sheet, summary = asyncio.run(scenario())

    assert summary.outcome is RunOutcome.TRANSPORT_ERROR
    assert (summary.success_count, summary.abandoned) == (1, 1)
    assert sheet.value(1, 1) == "Seed"
    assert sheet.pending_cells() == set() and not sheet.busy


def test_stream_ending_early_and_malformed_frames():
    async def scenario():
        sheet = Sheet(GRID)
        gateway = FakeGateway(["r1"])
        controller = EnrichmentController(gateway, sheet, timeout=60)
        run = await controller.start(sheet.select(Point(1, 1), Point(1, 1)))
        gateway.queue.put_nowait(SSEFrame(event="task_run.state", data="{not json"))
        gateway.push(completed("ghost", {"Stage": "Wrong"}))
        gateway.push(completed("r1", {"Stage": "Seed"}))
        gateway.queue.put_nowait(None)
        return sheet, await asyncio.wait_for(controller.wait(run), 2)

    sheet, summary = asyncio.run(scenario())

    assert summary.outcome is RunOutcome.TRANSPORT_ERROR
    assert summary.success_count == 1
    assert summary.abandoned == 0
    assert sheet.value(1, 1) == "Seed"


def test_grid_is_locked_against_user_edits_while_busy():
    async def scenario():
        sheet = RecordingSheet(GRID)
        gateway = FakeGateway(["r1", "r2", "r3"])
        controller = EnrichmentController(gateway, sheet, timeout=60)

        run = await controller.start(sheet.select(Point(1, 1), Point(3, 2)))
        edited_while_busy = sheet.edit(0, 0, "Name")
        gateway.push(completed("r1", {"Stage": "Seed"}))
        gateway.push(INACTIVE, event="task_group_status")
        await asyncio.wait_for(controller.wait(run), 2)
        return sheet, edited_while_busy

    sheet, edited_while_busy = asyncio.run(scenario())

    assert edited_while_busy is False
    assert sheet.value(0, 0) == "Company"
    assert sheet.value(1, 1) == "Seed"
    assert sheet.edit(0, 0, "Name") is True
    assert sheet.value(0, 0) == "Name"
