from __future__ import annotations

import asyncio
import json
from pathlib import Path
import sys

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

import httpx

from sheetfill.core.errors import TransportError
from sheetfill.infrastructure.parallel import ParallelAPIError, ParallelClient


def _client(handler) -> ParallelClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ParallelClient("secret-key", http_client=http_client)


def test_create_group_and_add_runs():
    captured: list[tuple[str, str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append((request.method, request.url.path, request.headers["x-api-key"]))
        if request.url.path == "/v1beta/tasks/groups":
            return httpx.Response(200, json={"taskgroup_id": "tg_1"})
        body = json.loads(request.content.decode("utf-8"))
        assert [item["input"] for item in body["inputs"]] == ["a", "b"]
        return httpx.Response(200, json={"run_ids": ["r1", "r2"]})

    async def scenario():
        client = _client(handler)
        group_id = await client.create_task_group()
        run_ids = await client.add_runs(group_id, [{"input": "a"}, {"input": "b"}])
        return group_id, run_ids

    assert asyncio.run(scenario()) == ("tg_1", ["r1", "r2"])
    assert captured == [
        ("POST", "/v1beta/tasks/groups", "secret-key"),
        ("POST", "/v1beta/tasks/groups/tg_1/runs", "secret-key"),
    ]


def test_add_runs_error_envelope_raises():
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"type": "error", "error": {"message": "quota exceeded"}})

    with pytest.raises(ParallelAPIError, match="quota exceeded"):
        asyncio.run(_client(handler).add_runs("tg_1", [{"input": "a"}]))


def test_http_errors_surface_the_remote_message():
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": {"message": "invalid api key"}})

    with pytest.raises(ParallelAPIError) as excinfo:
        asyncio.run(_client(handler).create_task_group())

    assert excinfo.value.status_code == 401
    assert excinfo.value.message == "invalid api key"
    assert str(excinfo.value) == "Parallel API 401: invalid api key"


def test_run_result_is_fetched_by_run_id():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "GET"
        assert request.url.path == "/v1/tasks/runs/r1/result"
        return httpx.Response(200, json={"output": {"content": {"Stage": "Seed"}}})

    result = asyncio.run(_client(handler).get_run_result("r1"))
    assert result == {"output": {"content": {"Stage": "Seed"}}}


def test_event_stream_yields_text_and_rejects_error_status():
    def ok_handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["accept"] == "text/event-stream"
        return httpx.Response(200, text="event: a\ndata: 1\n\n")

    def failing_handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="unavailable")

    async def read(client: ParallelClient) -> str:
        return "".join([chunk async for chunk in client.stream_events("tg_1")])

    assert asyncio.run(read(_client(ok_handler))) == "event: a\ndata: 1\n\n"
    with pytest.raises(TransportError, match="503"):
        asyncio.run(read(_client(failing_handler)))


def test_api_base_must_be_absolute():
    with pytest.raises(ValueError):
        ParallelClient("key", api_base="api.parallel.ai")


def test_only_the_event_stream_waits_without_a_read_timeout():
    read_timeouts: dict[str, float | None] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        read_timeouts[request.url.path] = request.extensions["timeout"]["read"]
        if request.url.path.endswith("/events"):
            return httpx.Response(200, text=": keep-alive\n\n")
        return httpx.Response(200, json={"taskgroup_id": "tg_1"})

    async def scenario(client: ParallelClient) -> None:
        await client.create_task_group()
        await client.get_run_result("r1")
        async for _ in client.stream_events("tg_1"):
            pass

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler), timeout=httpx.Timeout(7.0))
    asyncio.run(scenario(ParallelClient("secret-key", timeout=7.0, http_client=http_client)))

    assert read_timeouts == {
        "/v1beta/tasks/groups": 7.0,
        "/v1/tasks/runs/r1/result": 7.0,
        "/v1beta/tasks/groups/tg_1/events": None,
    }


def test_default_client_bounds_reads():
    client = ParallelClient("secret-key", timeout=12.0)
    try:
        assert client._client.timeout.read == 12.0
        assert client._client.timeout.connect == 12.0
    finally:
        asyncio.run(client.aclose())
