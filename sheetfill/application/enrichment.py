"""Application service behind the ``/api/parallel`` routes."""
from __future__ import annotations

import logging
from typing import AsyncGenerator

from sheetfill.application.jobs import job_specs_from_request
from sheetfill.application.submission import BatchSubmitter
from sheetfill.core.errors import ConfigError
from sheetfill.core.schema import CancelResponse, SubmitRequest, SubmitResponse
from sheetfill.core.sse import SSEFrame
from sheetfill.infrastructure.parallel import ParallelClient
from sheetfill.workers.stream_proxy import TaskGroupStreamProxy

logger = logging.getLogger(__name__)


class EnrichmentService:
    """Coordinates submission, event streaming and cancellation for task groups."""

    def __init__(self, client: ParallelClient) -> None:
        self._client = client
        self._submitter = BatchSubmitter(client)
        self._proxy = TaskGroupStreamProxy(client)

    async def submit(self, request: SubmitRequest) -> SubmitResponse:
        job_specs = job_specs_from_request(request)
        result = await self._submitter.submit(job_specs, request.processor)
        return SubmitResponse.model_validate(
            {"taskgroup_id": result.group_id, "run_map": result.correlation.to_wire()}
        )

    def stream(self, group_id: str) -> AsyncGenerator[SSEFrame, None]:
        return self._proxy.frames(group_id)

    def relay(self, group_id: str) -> AsyncGenerator[str, None]:
        return self._proxy.relay(group_id)

    async def cancel(self, group_id: str) -> CancelResponse:
        logger.info("Client-side cancellation acknowledged for task group %s", group_id)
        return CancelResponse()

    async def aclose(self) -> None:
        await self._client.aclose()


_service: EnrichmentService | None = None


def configure_enrichment_service(service: EnrichmentService | None) -> None:
    """Install the service used by the HTTP routes (``None`` when unconfigured)."""

    global _service
    _service = service


def get_enrichment_service() -> EnrichmentService:
    """Return the configured service or fail when no API key was provided."""

    if _service is None:
        raise ConfigError("Missing PARALLEL_API_KEY")
    return _service
