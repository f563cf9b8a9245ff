"""Tests for the async chat client."""

import asyncio
import json

import httpx
import pytest

from zeto.client.accumulator import Accumulator, StreamState
from zeto.client.chat_client import ChatClient
from zeto.client.transcript import ChatTranscript
from zeto.core.errors import (
    AuthError,
    ChatCancelled,
    StreamError,
    StreamInterrupted,
    TransportError,
    ZetoError,
)
from zeto.core.schemas_documents import DocumentReference
from zeto.main import app

SSE_BODY = (
    b': ping\n\n'
    b'data: {"delta": "Hel"}\n\n'
    b'data: {"delta": "lo"}\n\n'
    b'data: {"done": true}\n\n'
)


async def _split(body: bytes, size: int):
    for i in range(0, len(body), size):
        yield body[i : i + size]


def _mock_client(handler) -> ChatClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://relay.test")
    return ChatClient("http://relay.test", http_client=http)


def _sse_handler(body: bytes, chunk_size: int = 5, seen: list | None = None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(
            200, headers={"content-type": "text/event-stream"}, content=_split(body, chunk_size)
        )

    return handler


# ──────────────────────────────────────────────────────────────────────
# Against the mocked transport
# ──────────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_api_key_header():
    client = ChatClient("http://relay.test", api_key="central-secret")

    assert client._http.headers["X-API-Key"] == "central-secret"
    await client.aclose()


@pytest.mark.asyncio
async def test_stream_returns_concatenated_text():
    seen = []
    async with _mock_client(_sse_handler(SSE_BODY, seen=seen)) as client:
        text = await client.stream(
            "summarize", file_ids=["d1"], project_id="p1"
        )

    assert text == "Hello"
    payload = json.loads(seen[0].content)
    assert payload["stream"] is True
    assert payload["fileIds"] == ["d1"]
    assert payload["projectId"] == "p1"
    assert seen[0].url.path == "/v1/chat"


@pytest.mark.asyncio
async def test_stream_reports_deltas_and_states():
    deltas, states = [], []
    accumulator = Accumulator(on_delta=deltas.append, on_state=states.append)

    async with _mock_client(_sse_handler(SSE_BODY, chunk_size=3)) as client:
        await client.stream("hi", accumulator=accumulator)

    assert deltas == ["Hel", "lo"]
    assert states[-1] == StreamState.COMPLETED


@pytest.mark.asyncio
async def test_truncated_stream_is_interrupted():
    body = b'data: {"delta": "Hel"}\n\n'

    async with _mock_client(_sse_handler(body)) as client:
        with pytest.raises(StreamInterrupted):
            await client.stream("hi")


@pytest.mark.asyncio
async def test_non_sse_body_is_transport_error():
    async with _mock_client(_sse_handler(b"<html>502 Bad Gateway</html>")) as client:
        with pytest.raises(TransportError):
            await client.stream("hi")


@pytest.mark.asyncio
async def test_error_event_raises_stream_error():
    body = b'data: {"delta": "Hel"}\n\ndata: {"error": "Upstream failed"}\n\n'

    async with _mock_client(_sse_handler(body)) as client:
        with pytest.raises(StreamError):
            await client.stream("hi")


@pytest.mark.asyncio
async def test_http_401_raises_auth_error():
    def handler(request):
        return httpx.Response(401, json={"error": "OpenAI rejected the API key."})

    async with _mock_client(handler) as client:
        with pytest.raises(AuthError) as exc_info:
            await client.stream("hi")

    assert exc_info.value.message == "OpenAI rejected the API key."


@pytest.mark.asyncio
async def test_http_400_carries_details():
    def handler(request):
        return httpx.Response(
            400, json={"error": "no text", "details": [{"id": "d1", "reason": "not_found"}]}
        )

    async with _mock_client(handler) as client:
        with pytest.raises(ZetoError) as exc_info:
            await client.send("hi", file_ids=["d1"])

    assert exc_info.value.status_code == 400
    assert exc_info.value.details == [{"id": "d1", "reason": "not_found"}]


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [b"[1, 2]", b"\"Bad gateway\"", b"<html>oops</html>"])
async def test_non_object_error_body(body):
    def handler(request):
        return httpx.Response(502, content=body)

    async with _mock_client(handler) as client:
        with pytest.raises(ZetoError) as exc_info:
            await client.send("hi")

    assert exc_info.value.status_code == 502
    assert exc_info.value.message == "HTTP error 502"


@pytest.mark.asyncio
async def test_accumulator_cancel_closes_silent_stream():
    body_closed = asyncio.Event()

    async def body():
        try:
            yield b'data: {"delta": "Hel"}\n\n'
            await asyncio.Event().wait()
        finally:
            body_closed.set()

    def handler(request):
        return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=body())

    accumulator = Accumulator()
    async with _mock_client(handler) as client:
        task = asyncio.create_task(client.stream("hi", accumulator=accumulator))
        while accumulator.text != "Hel":
            await asyncio.sleep(0.005)

        accumulator.cancel()

        with pytest.raises(ChatCancelled) as exc_info:
            await asyncio.wait_for(task, timeout=1.0)

    assert exc_info.value.partial_text == "Hel"
    assert body_closed.is_set()


@pytest.mark.asyncio
async def test_inline_files_are_sent():
    seen = []
    ref = DocumentReference(id="a", display_name="A.pdf", content="inline")

    async with _mock_client(_sse_handler(SSE_BODY, seen=seen)) as client:
        await client.stream("hi", files=[ref])

    sent = json.loads(seen[0].content)["files"][0]
    assert sent["id"] == "a"
    assert sent["content"] == "inline"
    assert DocumentReference.model_validate(sent) == ref


@pytest.mark.asyncio
async def test_ask_fills_transcript():
    transcript = ChatTranscript()

    async with _mock_client(_sse_handler(SSE_BODY)) as client:
        text = await client.ask(transcript, "hi")

    assert text == "Hello"
    assert [m.content for m in transcript.messages] == ["hi", "Hello"]
    assert transcript.pending is None


@pytest.mark.asyncio
async def test_ask_failure_replaces_placeholder():
    transcript = ChatTranscript()
    body = b'data: {"delta": "Hel"}\n\ndata: {"error": "Upstream failed"}\n\n'

    async with _mock_client(_sse_handler(body)) as client:
        with pytest.raises(StreamError):
            await client.ask(transcript, "hi", file_ids=["d1"])

    assert [m.content for m in transcript.messages] == ["hi", "Error: Upstream failed"]
    assert not any(m.is_provisional for m in transcript.messages)


# ──────────────────────────────────────────────────────────────────────
# Against the application
# ──────────────────────────────────────────────────────────────────────


def _asgi_client() -> ChatClient:
    http = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")
    return ChatClient("http://testserver", http_client=http)


@pytest.mark.asyncio
async def test_send_against_app(client):
    async with _asgi_client() as chat:
        response = await chat.send("hi")

    assert response.response == "Hello"
    assert response.used.file_ids == []


@pytest.mark.asyncio
async def test_stream_against_app(client, conversations):
    transcript = ChatTranscript()

    async with _asgi_client() as chat:
        text = await chat.ask(transcript, "hi", project_id="p1")

    assert text == "Hello"
    assert [m.content for m in conversations.conversations["p1"].messages] == ["hi", "Hello"]
