"""Relays a task group's event stream, inlining run results where they are missing."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator

import httpx

from sheetfill.core.events import GROUP_STATUS_EVENT, RUN_STATE_EVENT, is_group_inactive, is_unresolved_completion
from sheetfill.core.sse import KEEP_ALIVE, SSEFrame, SSEParser
from sheetfill.infrastructure.parallel import ParallelAPIError, ParallelClient

logger = logging.getLogger(__name__)

STREAM_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _frame_data(frame: SSEFrame) -> Any:
    if not frame.data:
        return None
    try:
        return frame.json()
    except ValueError:
        return None


class TaskGroupStreamProxy:
    """Re-exposes a task group's event stream, completing run results inline."""

    def __init__(self, client: ParallelClient) -> None:
        self._client = client

    async def _backfill(self, frame: SSEFrame, data: dict[str, Any]) -> SSEFrame:
        run_id = str(data["run"]["run_id"])
        logger.info("Run %s completed, fetching result", run_id)
        try:
            result = await self._client.get_run_result(run_id)
        except (ParallelAPIError, httpx.HTTPError) as exc:
            logger.error("Error fetching result for %s: %s", run_id, exc)
            return frame

        output = result.get("output")
        if not output:
            logger.warning("Result for %s carried no output, forwarding original event", run_id)
            return frame
        enriched = {**data, "output": output}
        return SSEFrame(event=frame.event, id=frame.id, data=json.dumps(enriched, ensure_ascii=False))

    async def frames(self, group_id: str) -> AsyncIterator[SSEFrame]:
        """Yield frames in arrival order until the group reports inactive."""

        parser = SSEParser()
        upstream = self._client.stream_events(group_id)
        try:
            async for chunk in upstream:
                for frame in parser.feed(chunk):
                    data = _frame_data(frame)
                    if frame.event in ("", RUN_STATE_EVENT) and is_unresolved_completion(data):
                        yield await self._backfill(frame, data)
                    elif frame.event in ("", GROUP_STATUS_EVENT) and is_group_inactive(data):
                        logger.info("Task group %s complete, closing stream", group_id)
                        yield frame
                        return
                    else:
                        yield frame
            logger.info("Upstream stream for %s ended", group_id)
        finally:
            await upstream.aclose()

    async def relay(self, group_id: str) -> AsyncIterator[str]:
        """Encoded stream for an HTTP response, starting with a keep-alive comment."""

        yield KEEP_ALIVE
        frames = self.frames(group_id)
        try:
            async for frame in frames:
                yield frame.encode()
        except (asyncio.CancelledError, GeneratorExit):
            logger.info("Consumer disconnected from task group %s", group_id)
            raise
        finally:
            await frames.aclose()
