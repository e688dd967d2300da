from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from conftest import LMSTUDIO_BASE, OPENAI_BASE, sse_body
from prompt_hub.common.config import Settings
from prompt_hub.common.errors import (
    UnknownProviderError,
    UpstreamHttpError,
    UpstreamPayloadError,
    UpstreamUnavailableError,
)
from prompt_hub.providers.base import parse_model_spec
from prompt_hub.providers.catalog import build_catalog
from prompt_hub.providers.openai_compat import LMStudioClient, OpenAIClient


def _collect(client, *args, **kwargs) -> list[str]:
    async def run() -> list[str]:
        try:
            return [t async for t in client.stream(*args, **kwargs)]
        finally:
            await client.aclose()

    return asyncio.run(run())


@pytest.mark.parametrize(
    "spec, expected",
    [
        ("lmstudio:phi-3", ("lmstudio", "phi-3")),
        ("OpenAI:gpt-4o-mini", ("openai", "gpt-4o-mini")),
        ("lmstudio:org/model:q4", ("lmstudio", "org/model:q4")),
        ("demo", ("demo", "demo")),
        ("demo:demo", ("demo", "demo")),
        ("phi-3", ("demo", "phi-3")),
    ],
)
def test_parse_model_spec(spec: str, expected: tuple[str, str]) -> None:
    assert parse_model_spec(spec) == expected


def test_lmstudio_body_has_system_message_and_optional_fields() -> None:
    body = LMStudioClient(LMSTUDIO_BASE).build_body("phi-3", "Summarise", "some text", 0.5, 100)
    assert body["stream"] is True
    assert body["messages"] == [
        {"role": "system", "content": "You are a helpful assistant."},
        {"role": "user", "content": "Summarise\n\nInput:\nsome text"},
    ]
    assert body["temperature"] == 0.5
    assert body["max_tokens"] == 100


def test_openai_body_single_user_message_without_optional_fields() -> None:
    body = OpenAIClient("sk", OPENAI_BASE).build_body("gpt-4o-mini", "Hi", "   ")
    assert body["messages"] == [{"role": "user", "content": "Hi"}]
    assert "temperature" not in body
    assert "max_tokens" not in body


def test_stream_decodes_chunked_body_and_sends_auth() -> None:
    seen: dict[str, str] = {}
    raw = sse_body("Hel", "lo", "!")

    async def chunks():
        for i in range(0, len(raw), 5):
            yield raw[i:i + 5]

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("authorization", "")
        seen["accept"] = request.headers.get("accept", "")
        seen["model"] = json.loads(request.content)["model"]
        return httpx.Response(200, content=chunks())

    client = OpenAIClient("sk-test", OPENAI_BASE, transport=httpx.MockTransport(handler))
    assert _collect(client, "gpt-4o-mini", "Say hello") == ["Hel", "lo", "!"]
    assert seen == {"auth": "Bearer sk-test", "accept": "text/event-stream", "model": "gpt-4o-mini"}


def test_stream_without_key_sends_no_auth_header() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert "authorization" not in request.headers
        return httpx.Response(200, content=sse_body("ok"))

    client = LMStudioClient(LMSTUDIO_BASE, transport=httpx.MockTransport(handler))
    assert _collect(client, "phi-3", "p") == ["ok"]


def test_stream_http_error_carries_status_and_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, text='{"error": "bad key"}')

    client = OpenAIClient("sk-bad", OPENAI_BASE, transport=httpx.MockTransport(handler))
    with pytest.raises(UpstreamHttpError) as exc:
        _collect(client, "gpt-4o-mini", "p")
    assert exc.value.status == 401
    assert "bad key" in exc.value.body


def test_stream_connect_failure_is_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = LMStudioClient(LMSTUDIO_BASE, transport=httpx.MockTransport(handler))
    with pytest.raises(UpstreamUnavailableError):
        _collect(client, "phi-3", "p")


def test_list_models_keeps_order() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        payload = {"data": [{"id": "phi-3"}, {"object": "model"}, {"id": 7}, {"id": "llama-3"}]}
        return httpx.Response(200, json=payload)

    client = LMStudioClient(LMSTUDIO_BASE, transport=httpx.MockTransport(handler))
    assert client.list_models() == ["phi-3", "llama-3"]


def test_list_models_error_paths() -> None:
    def bad_status(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="internal oops")

    def bad_json(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>")

    def refused(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(UpstreamHttpError) as exc:
        LMStudioClient(LMSTUDIO_BASE, transport=httpx.MockTransport(bad_status)).list_models()
    assert "internal oops" in str(exc.value)

    with pytest.raises(UpstreamPayloadError):
        LMStudioClient(LMSTUDIO_BASE, transport=httpx.MockTransport(bad_json)).list_models()

    with pytest.raises(UpstreamUnavailableError):
        LMStudioClient(LMSTUDIO_BASE, transport=httpx.MockTransport(refused)).list_models()


def test_build_catalog_enables_openai_only_with_key() -> None:
    without_key = build_catalog(Settings(openai_models=["gpt-4o"]))
    with pytest.raises(UnknownProviderError):
        without_key.resolve("openai:gpt-4o")
    assert without_key.list_models("openai") == ["gpt-4o"]

    with_key = build_catalog(Settings(openai_api_key="sk"))
    client, model = with_key.resolve("openai:gpt-4o")
    assert isinstance(client, OpenAIClient)
    assert model == "gpt-4o"
    assert with_key.resolve("demo") == (None, "demo")


def test_stream_waiting_for_a_pooled_connection_times_out() -> None:
    """With every pooled connection busy, a new stream fails instead of hanging."""

    async def scenario() -> None:
        release = asyncio.Event()

        async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
            await reader.read(65536)
            chunk = sse_body("first", done=False)
            writer.write(
                b"HTTP/1.1 200 OK\r\ncontent-type: text/event-stream\r\ntransfer-encoding: chunked\r\n\r\n"
                + b"%x\r\n%s\r\n" % (len(chunk), chunk)
            )
            await writer.drain()
            await release.wait()
            writer.close()

        server = await asyncio.start_server(handle, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        client = LMStudioClient(f"http://127.0.0.1:{port}", connect_timeout=0.2, max_connections=1)
        busy = client.stream("phi-3", "p")
        try:
            assert await busy.__anext__() == "first"
            with pytest.raises(UpstreamUnavailableError):
                await asyncio.wait_for(client.stream("phi-3", "p").__anext__(), timeout=5)
        finally:
            await busy.aclose()
            release.set()
            await client.aclose()
            server.close()
            await server.wait_closed()

    asyncio.run(scenario())


def test_build_catalog_passes_connection_limits() -> None:
    catalog = build_catalog(Settings(connect_timeout=2.0, max_upstream_connections=8))
    client, _ = catalog.resolve("lmstudio:phi-3")
    assert client.timeout.connect == 2.0
    assert client.timeout.pool == 2.0
    assert client.timeout.read is None
    assert client.limits.max_connections == 8

    unbounded, _ = build_catalog(Settings()).resolve("lmstudio:phi-3")
    assert unbounded.limits.max_connections is None
