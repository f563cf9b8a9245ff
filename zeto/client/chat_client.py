"""Async HTTP client for the chat relay."""

import asyncio
from typing import Any

import httpx

from zeto.client.accumulator import Accumulator
from zeto.client.transcript import ChatTranscript
from zeto.core.errors import AuthError, ZetoError
from zeto.core.logging import get_logger
from zeto.core.schemas_chat import ChatResponse
from zeto.core.schemas_documents import DocumentReference

logger = get_logger(__name__)

CHAT_PATH = "/v1/chat"

# Upstream may stay silent between pings; only bound connect/write.
DEFAULT_TIMEOUT = httpx.Timeout(connect=10.0, read=None, write=30.0, pool=10.0)


def _error_from_response(response: httpx.Response) -> ZetoError:
    try:
        payload = response.json()
    except ValueError:
        payload = {}
    if not isinstance(payload, dict):
        payload = {}
    message = payload.get("error") or payload.get("detail") or f"HTTP error {response.status_code}"
    if response.status_code == 401:
        return AuthError(str(message), details=payload.get("details"))
    return ZetoError(str(message), details=payload.get("details"), status_code=response.status_code)


class ChatClient:
    """Talks to ``POST /v1/chat`` in single-shot or streaming mode.

    Usage::

        async with ChatClient("https://api.example.com", api_key="...") as client:
            answer = await client.stream("Summarize", files=[ref])
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        headers = {"X-API-Key": api_key} if api_key else {}
        self._http = http_client or httpx.AsyncClient(
            base_url=base_url, headers=headers, timeout=DEFAULT_TIMEOUT
        )

    async def __aenter__(self) -> "ChatClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    @staticmethod
    def _payload(
        message: str,
        files: list[DocumentReference] | None,
        file_ids: list[str] | None,
        project_id: str | None,
        stream: bool,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "message": message,
            "files": [f.model_dump(exclude_none=True) for f in files or []],
            "fileIds": list(file_ids or []),
            "stream": stream,
        }
        if project_id:
            payload["projectId"] = project_id
        return payload

    async def send(
        self,
        message: str,
        files: list[DocumentReference] | None = None,
        file_ids: list[str] | None = None,
        project_id: str | None = None,
    ) -> ChatResponse:
        """
        Single-shot chat.

        Raises:
            AuthError: On 401
            ZetoError: On any other error response
        """
        response = await self._http.post(
            CHAT_PATH, json=self._payload(message, files, file_ids, project_id, stream=False)
        )
        if response.status_code >= 400:
            raise _error_from_response(response)
        return ChatResponse.model_validate(response.json())

    async def stream(
        self,
        message: str,
        files: list[DocumentReference] | None = None,
        file_ids: list[str] | None = None,
        project_id: str | None = None,
        accumulator: Accumulator | None = None,
        return_partial: bool = False,
    ) -> str:
        """
        Streaming chat.

        Leaving this coroutine (normally, on error, by task cancellation or
        because ``accumulator.cancel()`` was called from elsewhere) closes the
        HTTP response, which the relay sees as a disconnect.

        Returns:
            Final answer text

        Raises:
            ChatCancelled: If the accumulator was cancelled
            StreamError / StreamInterrupted / TransportError: On stream failure
        """
        acc = accumulator or Accumulator()
        acc.start()
        payload = self._payload(message, files, file_ids, project_id, stream=True)

        async with self._http.stream("POST", CHAT_PATH, json=payload) as response:
            if response.status_code >= 400:
                await response.aread()
                raise _error_from_response(response)
            try:
                return await acc.consume(response.aiter_bytes(), return_partial=return_partial)
            except asyncio.CancelledError:
                acc.cancel()
                raise

    async def ask(
        self,
        transcript: ChatTranscript,
        message: str,
        files: list[DocumentReference] | None = None,
        file_ids: list[str] | None = None,
        project_id: str | None = None,
    ) -> str:
        """
        Stream an answer into a transcript.

        The placeholder added by ``begin`` is replaced by the answer, or by
        an error message if the stream fails. When ``project_id`` is given
        the relay persists both messages itself.
        """
        transcript.begin(message, grounded=bool(files or file_ids))
        accumulator = Accumulator(on_delta=transcript.apply_delta, on_state=transcript.on_state)
        try:
            text = await self.stream(
                message,
                files=files,
                file_ids=file_ids,
                project_id=project_id,
                accumulator=accumulator,
            )
        except ZetoError as e:
            transcript.fail(e.message)
            raise
        except httpx.HTTPError as e:
            transcript.fail(str(e) or type(e).__name__)
            raise
        except asyncio.CancelledError:
            transcript.fail("cancelled")
            raise

        transcript.complete(text)
        return text
