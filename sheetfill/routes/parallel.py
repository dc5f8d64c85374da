"""Enrichment endpoints: submit, stream and cancel a task group."""
from __future__ import annotations

import logging
from typing import AsyncGenerator, AsyncIterator

from fastapi import APIRouter, Body, HTTPException, Query
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from sheetfill.application import EnrichmentService, get_enrichment_service
from sheetfill.core.errors import ConfigError, SubmissionError, TransportError
from sheetfill.core.schema import SubmitRequest
from sheetfill.workers.stream_proxy import STREAM_HEADERS

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/parallel", tags=["enrichment"])


def _service() -> EnrichmentService:
    try:
        return get_enrichment_service()
    except ConfigError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@router.post("")
async def create_task_group(payload: dict) -> dict:
    """Create a task group with one run per row and return its run map."""
    service = _service()
    try:
        request = SubmitRequest.model_validate(payload)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid enrichment request: {exc}") from exc
    if not request.rows:
        raise HTTPException(status_code=400, detail="rows must not be empty")

    try:
        response = await service.submit(request)
    except SubmissionError as exc:
        logger.error("Submission failed: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return response.model_dump(by_alias=True)


async def _guarded(chunks: AsyncGenerator[str, None], group_id: str) -> AsyncIterator[str]:
    try:
        async for chunk in chunks:
            yield chunk
    except TransportError as exc:
        logger.error("Stream error for task group %s: %s", group_id, exc)
    finally:
        await chunks.aclose()


@router.get("")
async def stream_task_group(taskgroup_id: str | None = Query(default=None)) -> StreamingResponse:
    service = _service()
    if not taskgroup_id:
        raise HTTPException(status_code=400, detail="Missing taskgroup_id")
    logger.info("Streaming events for task group %s", taskgroup_id)
    return StreamingResponse(
        _guarded(service.relay(taskgroup_id), taskgroup_id),
        media_type="text/event-stream",
        headers=STREAM_HEADERS,
    )


@router.delete("")
async def cancel_task_group(payload: dict | None = Body(default=None)) -> dict:
    service = _service()
    taskgroup_id = (payload or {}).get("taskgroup_id")
    if not taskgroup_id:
        raise HTTPException(status_code=400, detail="Missing taskgroup_id")
    response = await service.cancel(str(taskgroup_id))
    return response.model_dump()
