"""HTTP client for the service's own ``/api/parallel`` endpoints."""
from __future__ import annotations

from typing import AsyncGenerator

import httpx
from pydantic import ValidationError

from sheetfill.core.errors import SubmissionError, TransportError
from sheetfill.core.schema import CancelResponse, SubmitRequest, SubmitResponse
from sheetfill.core.sse import SSEFrame, SSEParser


def _detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text
    if isinstance(payload, dict) and payload.get("detail"):
        return str(payload["detail"])
    return response.text


class EnrichmentAPIClient:
    """Talks to a running sheetfill service; usable as an enrichment gateway."""

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:8000",
        *,
        path: str = "/api/parallel",
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = f"{base_url.rstrip('/')}{path}"
        self._timeout = timeout
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        self._owns_client = http_client is None

    async def submit(self, request: SubmitRequest) -> SubmitResponse:
        try:
            response = await self._client.post(
                self._url,
                json=request.model_dump(by_alias=True, mode="json"),
            )
        except httpx.HTTPError as exc:
            raise SubmissionError(f"Enrichment init failed: {exc}") from exc
        if response.is_error:
            raise SubmissionError(f"Enrichment init failed: {response.status_code} - {_detail(response)}")
        try:
            return SubmitResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise SubmissionError(f"Enrichment init returned an invalid response: {exc}") from exc

    async def stream(self, group_id: str) -> AsyncGenerator[SSEFrame, None]:
        parser = SSEParser()
        try:
            async with self._client.stream(
                "GET",
                self._url,
                params={"taskgroup_id": group_id},
                headers={"Accept": "text/event-stream"},
                timeout=httpx.Timeout(self._timeout, read=None),
            ) as response:
                if response.is_error:
                    await response.aread()
                    raise TransportError(f"Event stream returned {response.status_code}: {_detail(response)}")
                async for chunk in response.aiter_text():
                    for frame in parser.feed(chunk):
                        yield frame
        except httpx.HTTPError as exc:
            raise TransportError(f"Event stream failed: {exc}") from exc

    async def cancel(self, group_id: str) -> CancelResponse:
        try:
            response = await self._client.request("DELETE", self._url, json={"taskgroup_id": group_id})
        except httpx.HTTPError as exc:
            raise TransportError(f"Cancellation request failed: {exc}") from exc
        if response.is_error:
            raise TransportError(f"Cancellation failed: {response.status_code} - {_detail(response)}")
        return CancelResponse.model_validate(response.json())

    async def aclose(self) -> None:  # pragma: no cover - best effort cleanup
        if self._owns_client:
            await self._client.aclose()


__all__ = ["EnrichmentAPIClient"]
