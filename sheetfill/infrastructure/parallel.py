"""Client for the Parallel Task Group HTTP API."""
from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator
from urllib.parse import quote, urlparse

import httpx

from sheetfill.core.errors import TransportError

logger = logging.getLogger(__name__)


class ParallelAPIError(RuntimeError):
    """Raised when the remote Parallel service returns an error."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"Parallel API {status_code}: {message}")
        self.status_code = status_code
        self.message = message


class ParallelClient:
    """Async client for task groups, their runs and their event stream."""

    def __init__(
        self,
        api_key: str,
        *,
        api_base: str = "https://api.parallel.ai",
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        parsed = urlparse(api_base)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError("api_base must include scheme and host")

        self._api_key = api_key
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        self._owns_client = http_client is None

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _headers(self, *, accept: str = "application/json") -> dict[str, str]:
        return {"x-api-key": self._api_key, "Accept": accept}

    def _url(self, path: str) -> str:
        return f"{self._api_base}{path}"

    @staticmethod
    def _error_message(text: str) -> str:
        try:
            payload = json.loads(text)
        except ValueError:
            return text
        if isinstance(payload, dict):
            error = payload.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
            if payload.get("message"):
                return str(payload["message"])
        return text

    async def _request_json(self, method: str, path: str, *, json_body: Any = None) -> Any:
        response = await self._client.request(
            method,
            self._url(path),
            headers=self._headers(),
            json=json_body,
        )
        text = response.text
        if response.is_error:
            raise ParallelAPIError(response.status_code, self._error_message(text))
        try:
            return response.json()
        except ValueError:
            return text

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    async def create_task_group(self) -> str:
        payload = await self._request_json("POST", "/v1beta/tasks/groups", json_body={})
        group_id = payload.get("taskgroup_id") if isinstance(payload, dict) else None
        if not group_id:
            raise ParallelAPIError(200, "task group response did not include taskgroup_id")
        logger.info("Created task group %s", group_id)
        return str(group_id)

    async def add_runs(self, group_id: str, inputs: list[dict[str, Any]]) -> list[str]:
        payload = await self._request_json(
            "POST",
            f"/v1beta/tasks/groups/{quote(group_id, safe='')}/runs",
            json_body={"inputs": inputs},
        )
        if not isinstance(payload, dict):
            raise ParallelAPIError(200, "unexpected add-runs response")
        if payload.get("type") == "error" or payload.get("error"):
            error = payload.get("error") or {}
            message = error.get("message") if isinstance(error, dict) else None
            raise ParallelAPIError(200, message or "Failed to add runs to task group")
        return [str(run_id) if run_id else "" for run_id in payload.get("run_ids") or []]

    async def get_run_result(self, run_id: str) -> dict[str, Any]:
        payload = await self._request_json("GET", f"/v1/tasks/runs/{quote(run_id, safe='')}/result")
        return payload if isinstance(payload, dict) else {}

    async def stream_events(self, group_id: str) -> AsyncIterator[str]:
        """Yield decoded text chunks of the group's event stream as they arrive."""

        url = self._url(f"/v1beta/tasks/groups/{quote(group_id, safe='')}/events")
        try:
            # The event stream stays open for minutes; only its reads are unbounded.
            async with self._client.stream(
                "GET",
                url,
                headers=self._headers(accept="text/event-stream"),
                timeout=httpx.Timeout(self._timeout, read=None),
            ) as response:
                if response.is_error:
                    await response.aread()
                    raise TransportError(
                        f"event stream returned {response.status_code}: {self._error_message(response.text)}"
                    )
                async for chunk in response.aiter_text():
                    yield chunk
        except httpx.HTTPError as exc:
            raise TransportError(f"event stream failed: {exc}") from exc

    async def aclose(self) -> None:  # pragma: no cover - best effort cleanup
        if self._owns_client:
            await self._client.aclose()


__all__ = ["ParallelAPIError", "ParallelClient"]
