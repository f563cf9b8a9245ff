"""Tests for the client-side stream accumulator."""

import asyncio

import pytest

from zeto.client.accumulator import (
    Accumulator,
    EventKind,
    StreamEvent,
    StreamState,
    parse_line,
)
from zeto.core.errors import ChatCancelled, StreamError, StreamInterrupted, TransportError

STREAM = (
    ': ping\n\n'
    'data: {"delta": "Hel"}\n\n'
    'data: {"delta": "lo"}\n\n'
    'data: {"done": true}\n\n'
).encode("utf-8")


async def _chunks(*parts):
    for part in parts:
        yield part


class TestParseLine:
    def test_delta(self):
        assert parse_line('data: {"delta": "x"}') == StreamEvent(EventKind.DELTA, "x")

    def test_done(self):
        assert parse_line('data: {"done": true}') == StreamEvent(EventKind.DONE)

    def test_error(self):
        assert parse_line('data: {"error": "boom"}') == StreamEvent(EventKind.ERROR, "boom")

    def test_comment_is_ping(self):
        assert parse_line(": ping") == StreamEvent(EventKind.PING)

    @pytest.mark.parametrize("line", ["", "\r", "event: message", "data:", 'data: {"other": 1}'])
    def test_ignored_lines(self, line):
        assert parse_line(line) is None

    def test_carriage_return_stripped(self):
        assert parse_line('data: {"delta": "x"}\r') == StreamEvent(EventKind.DELTA, "x")

    @pytest.mark.parametrize("line", ["data: {not json", "data: [1, 2]"])
    def test_malformed_payload(self, line):
        with pytest.raises(TransportError):
            parse_line(line)


class TestAccumulator:
    def test_single_chunk(self):
        acc = Accumulator()
        acc.feed(STREAM)

        assert acc.state == StreamState.COMPLETED
        assert acc.result() == "Hello"

    @pytest.mark.parametrize("offset", range(1, len(STREAM)))
    def test_split_at_any_offset(self, offset):
        """Chunk boundaries do not change the outcome."""
        acc = Accumulator()
        acc.feed(STREAM[:offset])
        acc.feed(STREAM[offset:])

        assert acc.state == StreamState.COMPLETED
        assert acc.result() == "Hello"

    def test_byte_by_byte(self):
        acc = Accumulator()
        for i in range(len(STREAM)):
            acc.feed(STREAM[i : i + 1])

        assert acc.result() == "Hello"

    def test_multibyte_character_split_across_chunks(self):
        body = 'data: {"delta": "héllo ✓"}\n\ndata: {"done": true}\n\n'.encode("utf-8")
        split = body.index("é".encode("utf-8")) + 1

        acc = Accumulator()
        acc.feed(body[:split])
        acc.feed(body[split:])

        assert acc.result() == "héllo ✓"

    def test_state_transitions(self):
        states = []
        acc = Accumulator(on_state=states.append)

        acc.start()
        acc.feed(b": ping\n\n")
        assert acc.state == StreamState.AWAITING_FIRST_BYTE
        acc.feed(b'data: {"delta": "a"}\n\n')
        acc.feed(b'data: {"done": true}\n\n')

        assert states == [
            StreamState.AWAITING_FIRST_BYTE,
            StreamState.STREAMING,
            StreamState.COMPLETED,
        ]

    def test_empty_delta_does_not_start_streaming(self):
        acc = Accumulator()
        acc.feed(b'data: {"delta": ""}\n\n')

        assert acc.state == StreamState.AWAITING_FIRST_BYTE

    def test_on_delta_called_in_order(self):
        received = []
        acc = Accumulator(on_delta=received.append)

        acc.feed(STREAM)

        assert received == ["Hel", "lo"]

    def test_malformed_lines_are_skipped(self):
        acc = Accumulator()
        acc.feed(b'data: {"delta": "a"}\n\ndata: {broken\n\ndata: {"delta": "b"}\n\ndata: {"done": true}\n\n')

        assert acc.result() == "ab"
        assert acc.malformed_lines == 1

    def test_error_event(self):
        acc = Accumulator()
        acc.feed(b'data: {"delta": "Hel"}\n\ndata: {"error": "Upstream failed"}\n\n')

        assert acc.state == StreamState.ERRORED
        with pytest.raises(StreamError) as exc_info:
            acc.result()
        assert exc_info.value.message == "Upstream failed"
        assert acc.text == "Hel"

    def test_missing_done_is_interrupted(self):
        acc = Accumulator()
        acc.feed(b'data: {"delta": "Hel"}\n\n')
        acc.close()

        assert acc.state == StreamState.ERRORED
        with pytest.raises(StreamInterrupted):
            acc.result()

    def test_no_valid_events_is_transport_error(self):
        acc = Accumulator()
        acc.feed(b"<html>Bad gateway</html>\ndata: {oops\n")
        acc.close()

        with pytest.raises(TransportError):
            acc.result()

    def test_only_pings_is_transport_error(self):
        acc = Accumulator()
        acc.feed(b": ping\n\n: ping\n\n")
        acc.close()

        with pytest.raises(TransportError):
            acc.result()

    def test_unterminated_final_line_is_parsed_on_close(self):
        acc = Accumulator()
        acc.feed(b'data: {"delta": "a"}\n\ndata: {"done": true}')
        assert acc.state == StreamState.STREAMING

        acc.close()

        assert acc.result() == "a"

    def test_terminal_state_ignores_further_input(self):
        acc = Accumulator()
        acc.feed(STREAM)

        assert acc.feed(b'data: {"delta": "more"}\n\n') == []
        acc.close()
        acc.cancel()

        assert acc.state == StreamState.COMPLETED
        assert acc.result() == "Hello"

    def test_events_after_done_in_same_chunk_are_ignored(self):
        acc = Accumulator()
        acc.feed(b'data: {"done": true}\n\ndata: {"delta": "late"}\n\n')

        assert acc.result() == ""

    def test_cancel_keeps_partial_text(self):
        acc = Accumulator()
        acc.feed(b'data: {"delta": "Hel"}\n\n')

        acc.cancel()

        assert acc.state == StreamState.CANCELLED
        with pytest.raises(ChatCancelled) as exc_info:
            acc.result()
        assert exc_info.value.partial_text == "Hel"
        assert acc.result(return_partial=True) == "Hel"

    def test_result_before_finish_raises(self):
        with pytest.raises(RuntimeError):
            Accumulator().result()


class TestConsume:
    @pytest.mark.asyncio
    async def test_consume_stream(self):
        acc = Accumulator()

        text = await acc.consume(_chunks(STREAM[:7], STREAM[7:30], STREAM[30:]))

        assert text == "Hello"

    @pytest.mark.asyncio
    async def test_consume_truncated_stream(self):
        acc = Accumulator()

        with pytest.raises(StreamInterrupted):
            await acc.consume(_chunks(b'data: {"delta": "Hel"}\n\n'))

        assert acc.text == "Hel"

    @pytest.mark.asyncio
    async def test_cancel_during_consume(self):
        acc = Accumulator()

        async def body():
            yield b'data: {"delta": "Hel"}\n\n'
            acc.cancel()
            yield b'data: {"delta": "lo"}\n\n'
            yield b'data: {"done": true}\n\n'

        with pytest.raises(ChatCancelled) as exc_info:
            await acc.consume(body())

        assert exc_info.value.partial_text == "Hel"

    @pytest.mark.asyncio
    async def test_cancel_during_consume_returns_partial(self):
        acc = Accumulator()

        async def body():
            yield b'data: {"delta": "Hel"}\n\n'
            acc.cancel()
            yield b'data: {"delta": "lo"}\n\n'

        assert await acc.consume(body(), return_partial=True) == "Hel"


class TestCancelWhileWaiting:
    @pytest.mark.asyncio
    async def test_cancel_interrupts_pending_read(self):
        """cancel() returns a silent stream at once, without waiting for a ping."""
        acc = Accumulator()
        body_closed = asyncio.Event()

        async def body():
            try:
                yield b'data: {"delta": "Hel"}\n\n'
                await asyncio.Event().wait()
            finally:
                body_closed.set()

        task = asyncio.create_task(acc.consume(body()))
        while acc.text != "Hel":
            await asyncio.sleep(0.005)

        acc.cancel()

        with pytest.raises(ChatCancelled) as exc_info:
            await asyncio.wait_for(task, timeout=1.0)
        assert exc_info.value.partial_text == "Hel"
        assert body_closed.is_set()
        assert acc.state == StreamState.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_before_consume(self):
        acc = Accumulator()
        acc.cancel()

        async def body():
            yield b'data: {"delta": "never"}\n\n'

        assert await acc.consume(body(), return_partial=True) == ""
