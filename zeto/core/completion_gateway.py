"""Completion gateway over the OpenAI Chat Completions API.

Both modes use the same endpoint and the same message layout, so the joined
deltas of a streaming call equal the text of a single-shot call for the same
upstream response.
"""

from collections.abc import AsyncIterator
from typing import Any

import httpx
import openai
from openai import AsyncOpenAI

from zeto.core.config import Settings
from zeto.core.context_assembler import PromptContext
from zeto.core.errors import AuthError, ConfigError, StreamInterrupted, UpstreamError
from zeto.core.logging import get_logger

logger = get_logger(__name__)


def _map_status_error(e: openai.APIStatusError) -> Exception:
    """Translate an SDK status error into the relay taxonomy."""
    if e.status_code == 401:
        return AuthError("Invalid OpenAI API key. Check the server configuration.")
    return UpstreamError(
        f"OpenAI error {e.status_code}: {e.message}",
        upstream_status=e.status_code,
        body=e.body,
    )


class CompletionGateway:
    """Explicitly constructed wrapper around an ``AsyncOpenAI`` client.

    Create once at application startup and close with ``aclose()``.
    """

    def __init__(
        self,
        api_key: str,
        default_model: str = "gpt-4o-mini",
        client: AsyncOpenAI | None = None,
    ):
        if not api_key:
            raise ConfigError("OPENAI_API_KEY is not configured.")
        self.default_model = default_model
        self._client = client or AsyncOpenAI(api_key=api_key)

    @classmethod
    def from_settings(cls, settings: Settings) -> "CompletionGateway":
        """
        Build a gateway from application settings.

        Raises:
            ConfigError: If OPENAI_API_KEY is unset
        """
        if not settings.OPENAI_API_KEY:
            raise ConfigError("OPENAI_API_KEY is not configured.")
        return cls(api_key=settings.OPENAI_API_KEY, default_model=settings.CHAT_MODEL)

    async def aclose(self) -> None:
        await self._client.close()

    async def complete(self, prompt: PromptContext, model: str | None = None) -> str:
        """
        Run one non-streaming completion.

        Args:
            prompt: Assembled prompt context
            model: Model override

        Returns:
            Full answer text

        Raises:
            AuthError: On HTTP 401
            UpstreamError: On any other non-2xx or connection failure
        """
        model_name = model or self.default_model
        try:
            response = await self._client.chat.completions.create(
                model=model_name,
                messages=prompt.to_messages(),
            )
        except openai.APIStatusError as e:
            logger.warning(f"Completion failed: status={e.status_code} model={model_name}")
            raise _map_status_error(e) from e
        except openai.APIConnectionError as e:
            logger.warning(f"Completion connection failed: {e}")
            raise UpstreamError(
                "Could not reach the OpenAI API.", upstream_status=502, body=str(e)
            ) from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def complete_streaming(
        self, prompt: PromptContext, model: str | None = None
    ) -> AsyncIterator[str]:
        """
        Stream a completion as text deltas.

        The iterator is lazy and single-use. It ends normally only once the
        upstream reports a finish reason; a dropped connection or a stream
        that ends without one raises ``StreamInterrupted``.

        Args:
            prompt: Assembled prompt context
            model: Model override

        Yields:
            Non-empty text fragments in upstream order

        Raises:
            AuthError: On HTTP 401
            UpstreamError: On any other non-2xx status
            StreamInterrupted: If the stream breaks off
        """
        model_name = model or self.default_model
        try:
            stream = await self._client.chat.completions.create(
                model=model_name,
                messages=prompt.to_messages(),
                stream=True,
            )
        except openai.APIStatusError as e:
            logger.warning(f"Streaming completion refused: status={e.status_code}")
            raise _map_status_error(e) from e
        except openai.APIConnectionError as e:
            raise StreamInterrupted(f"Could not open the OpenAI stream: {e}") from e

        finished = False
        try:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                delta = getattr(choice.delta, "content", None)
                if delta:
                    yield delta
                if choice.finish_reason:
                    finished = True
        except openai.APIStatusError as e:
            raise _map_status_error(e) from e
        except (openai.APIConnectionError, httpx.HTTPError) as e:
            logger.warning(f"Upstream stream dropped: {e}")
            raise StreamInterrupted("Connection to OpenAI dropped mid-stream.") from e
        finally:
            await _close_quietly(stream)

        if not finished:
            raise StreamInterrupted("OpenAI stream ended without a finish reason.")


async def _close_quietly(stream: Any) -> None:
    close = getattr(stream, "close", None)
    if close is None:
        return
    try:
        await close()
    except Exception as e:
        logger.debug(f"Ignoring error while closing upstream stream: {e}")
