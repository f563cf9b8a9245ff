"""Client-side accumulator for the chat event stream.

Reads the SSE body in arbitrary chunks, re-assembles lines across chunk
boundaries and folds the events into the final answer text.

State machine::

    idle -> awaiting_first_byte -> streaming -> completed
                     |                 |
                     +-----------------+----> errored | cancelled

Pings are accepted (and ignored) while awaiting or streaming. Terminal
states ignore any further input.
"""

import asyncio
import codecs
import json
from collections.abc import AsyncIterable, AsyncIterator, Callable
from dataclasses import dataclass
from enum import Enum

from zeto.core.errors import (
    ChatCancelled,
    StreamError,
    StreamInterrupted,
    TransportError,
    ZetoError,
)
from zeto.core.logging import get_logger

logger = get_logger(__name__)


class StreamState(str, Enum):
    IDLE = "idle"
    AWAITING_FIRST_BYTE = "awaiting_first_byte"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ERRORED = "errored"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset({StreamState.COMPLETED, StreamState.ERRORED, StreamState.CANCELLED})


class EventKind(str, Enum):
    DELTA = "delta"
    ERROR = "error"
    DONE = "done"
    PING = "ping"


@dataclass(frozen=True)
class StreamEvent:
    """One parsed line of the event stream."""

    kind: EventKind
    value: str = ""


def parse_line(line: str) -> StreamEvent | None:
    """
    Parse a single complete SSE line.

    Returns:
        The event, or None for blank, unknown and malformed lines

    Raises:
        TransportError: If a ``data:`` line does not hold valid JSON
    """
    line = line.rstrip("\r")
    if not line:
        return None
    if line.startswith(":"):
        return StreamEvent(EventKind.PING)
    if not line.startswith("data:"):
        return None

    raw = line[5:].strip()
    if not raw:
        return None
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        raise TransportError(f"Malformed event payload: {raw[:80]}") from e
    if not isinstance(payload, dict):
        raise TransportError(f"Unexpected event payload: {raw[:80]}")

    if payload.get("error"):
        return StreamEvent(EventKind.ERROR, str(payload["error"]))
    if "delta" in payload:
        return StreamEvent(EventKind.DELTA, str(payload["delta"] or ""))
    if payload.get("done"):
        return StreamEvent(EventKind.DONE)
    return None


class Accumulator:
    """Folds a chat event stream into the final answer.

    Args:
        on_delta: Called with each non-empty delta, in arrival order
        on_state: Called with every state transition
    """

    def __init__(
        self,
        on_delta: Callable[[str], None] | None = None,
        on_state: Callable[[StreamState], None] | None = None,
    ):
        self._on_delta = on_delta
        self._on_state = on_state
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._parts: list[str] = []
        self._valid_events = 0
        self.malformed_lines = 0
        self.state = StreamState.IDLE
        self.error: ZetoError | None = None
        self._cancelled = asyncio.Event()

    @property
    def text(self) -> str:
        """Deltas received so far, concatenated."""
        return "".join(self._parts)

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    def _transition(self, state: StreamState) -> None:
        if self.state == state:
            return
        self.state = state
        if self._on_state is not None:
            self._on_state(state)

    def start(self) -> None:
        """Mark the request as sent; the first byte is now awaited."""
        if self.state == StreamState.IDLE:
            self._transition(StreamState.AWAITING_FIRST_BYTE)

    def feed(self, chunk: bytes | str) -> list[StreamEvent]:
        """
        Feed one chunk of the transport body.

        Only complete lines are parsed; a trailing partial line is carried
        over to the next call.

        Returns:
            Events applied from this chunk
        """
        if self.finished:
            return []
        self.start()

        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._buffer += chunk

        *lines, self._buffer = self._buffer.split("\n")
        applied: list[StreamEvent] = []
        for line in lines:
            event = self._parse(line)
            if event is None:
                continue
            self._apply(event)
            applied.append(event)
            if self.finished:
                break
        return applied

    def _parse(self, line: str) -> StreamEvent | None:
        try:
            event = parse_line(line)
        except TransportError as e:
            self.malformed_lines += 1
            logger.debug(f"Skipping line: {e.message}")
            return None
        if event is not None and event.kind != EventKind.PING:
            self._valid_events += 1
        return event

    def _apply(self, event: StreamEvent) -> None:
        if event.kind == EventKind.DELTA:
            if not event.value:
                return
            if self.state == StreamState.AWAITING_FIRST_BYTE:
                self._transition(StreamState.STREAMING)
            self._parts.append(event.value)
            if self._on_delta is not None:
                self._on_delta(event.value)
        elif event.kind == EventKind.ERROR:
            self.error = StreamError(event.value)
            self._transition(StreamState.ERRORED)
        elif event.kind == EventKind.DONE:
            self._transition(StreamState.COMPLETED)

    def close(self) -> None:
        """
        Signal the end of the transport body.

        A final unterminated line is parsed; if the stream still has not
        reached a terminal state it is marked errored (interrupted, or a
        transport error if nothing valid was ever received).
        """
        if self.finished:
            return
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        if tail.strip():
            event = self._parse(tail)
            if event is not None:
                self._apply(event)
        if self.finished:
            return

        if self._valid_events == 0:
            self.error = TransportError("The event stream contained no valid events.")
        else:
            self.error = StreamInterrupted("The event stream ended without a completion marker.")
        self._transition(StreamState.ERRORED)

    def cancel(self) -> None:
        """
        Abort consumption. Has no effect once a terminal state is reached.

        A ``consume`` waiting on the transport returns at once instead of
        waiting for the next chunk.
        """
        if not self.finished:
            self._transition(StreamState.CANCELLED)
            self._cancelled.set()

    def result(self, return_partial: bool = False) -> str:
        """
        Final text of a finished stream.

        Raises:
            ChatCancelled: If cancelled (unless ``return_partial``)
            StreamError / StreamInterrupted / TransportError: If errored
        """
        if self.state == StreamState.COMPLETED:
            return self.text
        if self.state == StreamState.CANCELLED:
            if return_partial:
                return self.text
            raise ChatCancelled(partial_text=self.text)
        if self.state == StreamState.ERRORED and self.error is not None:
            raise self.error
        raise RuntimeError(f"Stream is not finished (state={self.state.value})")

    async def consume(
        self, stream: AsyncIterable[bytes | str], return_partial: bool = False
    ) -> str:
        """
        Consume a transport body until a terminal state.

        Each read is raced against ``cancel()``; a cancelled read is torn
        down before returning, so the caller can close the transport.

        Args:
            stream: Chunks of the SSE body
            return_partial: Return partial text instead of raising on cancel

        Returns:
            The concatenated deltas
        """
        self.start()
        iterator = stream.__aiter__()
        cancelled = asyncio.ensure_future(self._cancelled.wait())
        read: asyncio.Future | None = None
        try:
            while not self.finished:
                read = asyncio.ensure_future(_next_chunk(iterator))
                await asyncio.wait({read, cancelled}, return_when=asyncio.FIRST_COMPLETED)
                if not read.done():
                    break
                chunk = read.result()
                if chunk is None:
                    self.close()
                    break
                self.feed(chunk)
        finally:
            cancelled.cancel()
            if read is not None and not read.done():
                read.cancel()
                await asyncio.wait({read})

        return self.result(return_partial=return_partial)


async def _next_chunk(iterator: AsyncIterator[bytes | str]) -> bytes | str | None:
    """Next chunk of the body, or None at its end."""
    try:
        return await iterator.__anext__()
    except StopAsyncIteration:
        return None
