"""Server-Sent-Events relay for streaming chat answers.

Frames emitted:
    data: {"delta": "..."}   one per upstream text fragment
    data: {"done": true}     explicit normal end
    data: {"error": "..."}   single terminal error
    : ping                   liveness comment while upstream is silent
"""

import asyncio
import json
from collections.abc import AsyncGenerator, AsyncIterator, Awaitable, Callable

from zeto.core.errors import ZetoError
from zeto.core.logging import get_logger

logger = get_logger(__name__)

PING_FRAME = ": ping\n\n"

# Bound on deltas buffered between the upstream reader and the HTTP writer
QUEUE_SIZE = 64

_DELTA = "delta"
_ERROR = "error"
_END = "end"


def sse_event(data: dict) -> str:
    """Format a dict as an SSE data line."""
    return f"data: {json.dumps(data, ensure_ascii=False)}\n\n"


async def _pump(deltas: AsyncIterator[str], queue: asyncio.Queue) -> None:
    """Pull deltas from upstream into the queue, then post a terminal item."""
    try:
        async for delta in deltas:
            await queue.put((_DELTA, delta))
    except asyncio.CancelledError:
        raise
    except Exception as e:
        await queue.put((_ERROR, e))
    else:
        await queue.put((_END, None))


async def relay_stream(
    deltas: AsyncIterator[str],
    ping_interval: float = 15.0,
    is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    on_complete: Callable[[str], Awaitable[None]] | None = None,
) -> AsyncGenerator[str, None]:
    """
    Relay upstream deltas as SSE frames.

    A background task reads the upstream iterator so the writer can emit a
    ping whenever ``ping_interval`` passes without a delta. Closing this
    generator (client disconnect) cancels that task, which closes the
    upstream iterator; no further deltas are pulled.

    Args:
        deltas: Upstream text fragments
        ping_interval: Seconds of silence before a ping is sent
        is_disconnected: Optional check run on every ping
        on_complete: Awaited with the full text before the done event

    Yields:
        SSE frames
    """
    queue: asyncio.Queue = asyncio.Queue(maxsize=QUEUE_SIZE)
    producer = asyncio.create_task(_pump(deltas, queue))
    parts: list[str] = []

    try:
        while True:
            try:
                kind, value = await asyncio.wait_for(queue.get(), timeout=ping_interval)
            except asyncio.TimeoutError:
                if is_disconnected is not None and await is_disconnected():
                    logger.info("Client disconnected, stopping chat stream")
                    return
                yield PING_FRAME
                continue

            if kind == _DELTA:
                parts.append(value)
                yield sse_event({"delta": value})
            elif kind == _ERROR:
                if isinstance(value, ZetoError):
                    logger.warning(f"Chat stream failed: {value.message}")
                    message = value.message
                else:
                    logger.error(f"Error in chat stream: {value}", exc_info=value)
                    message = "Error while streaming the answer."
                yield sse_event({"error": message})
                return
            else:
                break

        text = "".join(parts)
        if on_complete is not None:
            try:
                await on_complete(text)
            except Exception as e:
                logger.error(f"Failed to persist streamed answer: {e}", exc_info=True)

        yield sse_event({"done": True})
    finally:
        if not producer.done():
            producer.cancel()
