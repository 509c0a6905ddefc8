"""Unit tests for the stream decoder.

Tests cover:
- SSE framing
- Text and tool-call deltas
- Tool-call completion boundaries and the finish tie-break
- Terminal Finish and Error events
- Cancellation
"""

import asyncio
import json

import pytest

from helpers import sse_body, stream_frame, tool_fragment
from sap_ai_provider.models import (
    ErrorEvent,
    Finish,
    FinishReason,
    TextDelta,
    ToolCallComplete,
    ToolCallDelta,
)
from sap_ai_provider.streaming import StreamDecoder, StreamState, decode_stream, iter_sse_data


async def aiter_lines(body: bytes):
    for line in body.decode().split("\n"):
        yield line


async def collect(body: bytes, cancel: asyncio.Event | None = None) -> list:
    return [event async for event in decode_stream(aiter_lines(body), cancel)]


USAGE = {"prompt_tokens": 7, "completion_tokens": 3, "total_tokens": 10}


class TestIterSSEData:
    """Tests for SSE frame grouping."""

    @pytest.mark.asyncio
    async def test_multiline_data(self):
        """Test multiple data lines join with newlines."""

        async def lines():
            for line in ["event: message", "data: a", "data: b", "", ": keepalive", "", "data: c"]:
                yield line

        assert [data async for data in iter_sse_data(lines())] == ["a\nb", "c"]


class TestTextStream:
    """Tests for text streaming."""

    @pytest.mark.asyncio
    async def test_text_deltas_then_finish(self):
        """Test text deltas are emitted and Finish is last."""
        body = sse_body(
            stream_frame(content="Hel"),
            stream_frame(content="lo"),
            stream_frame(finish_reason="stop", usage=USAGE),
        )

        events = await collect(body)

        assert events[:2] == [TextDelta(text="Hel"), TextDelta(text="lo")]
        assert isinstance(events[-1], Finish)
        assert events[-1].reason == FinishReason.STOP
        assert events[-1].usage.total_tokens == 10
        assert len(events) == 3

    @pytest.mark.asyncio
    async def test_usage_in_trailing_frame(self):
        """Test Finish waits for a usage frame after the finish reason."""
        body = sse_body(
            stream_frame(content="Hi", finish_reason="stop"),
            {"orchestration_result": {"choices": [], "usage": USAGE}},
        )

        events = await collect(body)

        assert events == [
            TextDelta(text="Hi"),
            Finish(reason=FinishReason.STOP, usage=USAGE),
        ]

    @pytest.mark.asyncio
    async def test_done_without_usage(self):
        """Test [DONE] emits Finish with zero usage when none arrived."""
        events = await collect(sse_body(stream_frame(content="Hi", finish_reason="length")))

        assert events[-1] == Finish(reason=FinishReason.LENGTH)

    @pytest.mark.asyncio
    async def test_end_without_finish_frame(self):
        """Test a stream ending without finish reason still finishes."""
        events = await collect(sse_body(stream_frame(content="Hi"), done=False))

        assert events == [TextDelta(text="Hi"), Finish(reason=FinishReason.OTHER)]

    @pytest.mark.asyncio
    async def test_module_results_fallback(self):
        """Test frames using module_results.llm are decoded."""
        frame = {
            "module_results": {
                "llm": {"choices": [{"index": 0, "delta": {"content": "x"}, "finish_reason": "stop"}], "usage": USAGE}
            }
        }
        events = await collect(sse_body(frame))
        assert events[0] == TextDelta(text="x")
        assert events[-1].reason == FinishReason.STOP

    @pytest.mark.asyncio
    async def test_metadata_frame_ignored(self):
        """Test frames without an LLM result are skipped."""
        templating_only = {"request_id": "r", "module_results": {"templating": [{"role": "user", "content": "Hi"}]}}
        events = await collect(sse_body(templating_only, stream_frame(content="A", finish_reason="stop", usage=USAGE)))
        assert events[0] == TextDelta(text="A")
        assert len(events) == 2


class TestToolCallStream:
    """Tests for streamed tool calls."""

    @pytest.mark.asyncio
    async def test_three_fragments(self):
        """Test three fragments yield three deltas then one completion."""
        body = sse_body(
            stream_frame(tool_calls=[tool_fragment(0, '{"location":', call_id="call_1", name="get_weather")]),
            stream_frame(tool_calls=[tool_fragment(0, '"Tok')]),
            stream_frame(tool_calls=[tool_fragment(0, 'yo"}')]),
            stream_frame(finish_reason="tool_calls", usage=USAGE),
        )

        events = await collect(body)

        deltas = [e for e in events if isinstance(e, ToolCallDelta)]
        assert [d.arguments_fragment for d in deltas] == ['{"location":', '"Tok', 'yo"}']
        assert all(d.id == "call_1" for d in deltas)
        assert events[3] == ToolCallComplete(
            id="call_1", name="get_weather", arguments_json='{"location":"Tokyo"}'
        )
        assert events[4] == Finish(reason=FinishReason.TOOL_CALLS, usage=USAGE)
        assert len(events) == 5

    @pytest.mark.parametrize("chunk_size", [1, 2, 5, 100])
    @pytest.mark.asyncio
    async def test_chunking_invariance(self, chunk_size):
        """Test split fragments reassemble to the same JSON value."""
        arguments = json.dumps({"city": "São Paulo", "days": [1, 2, 3], "nested": {"a": None}})
        chunks = [arguments[i:i + chunk_size] for i in range(0, len(arguments), chunk_size)]
        frames = [stream_frame(tool_calls=[tool_fragment(0, chunks[0], call_id="call_x", name="forecast")])]
        frames += [stream_frame(tool_calls=[tool_fragment(0, chunk)]) for chunk in chunks[1:]]
        frames.append(stream_frame(finish_reason="tool_calls", usage=USAGE))

        events = await collect(sse_body(*frames))

        (complete,) = [e for e in events if isinstance(e, ToolCallComplete)]
        assert json.loads(complete.arguments_json) == json.loads(arguments)
        assert isinstance(events[-1], Finish)

    @pytest.mark.asyncio
    async def test_new_index_closes_previous_call(self):
        """Test a new tool-call index completes the previous call."""
        body = sse_body(
            stream_frame(tool_calls=[tool_fragment(0, '{"a":1}', call_id="call_a", name="first")]),
            stream_frame(tool_calls=[tool_fragment(1, '{"b":2}', call_id="call_b", name="second")]),
            stream_frame(finish_reason="tool_calls", usage=USAGE),
        )

        events = await collect(body)

        kinds = [type(e).__name__ for e in events]
        assert kinds == ["ToolCallDelta", "ToolCallComplete", "ToolCallDelta", "ToolCallComplete", "Finish"]
        assert events[1].id == "call_a"
        assert events[3].id == "call_b"

    @pytest.mark.asyncio
    async def test_force_complete_on_finish_frame(self):
        """Test an open call is completed before Finish in the same frame."""
        body = sse_body(
            stream_frame(tool_calls=[tool_fragment(0, '{"q":', call_id="call_1", name="search")]),
            stream_frame(tool_calls=[tool_fragment(0, '"x"}')], finish_reason="tool_calls", usage=USAGE),
        )

        events = await collect(body)

        assert isinstance(events[-2], ToolCallComplete)
        assert events[-2].arguments_json == '{"q":"x"}'
        assert isinstance(events[-1], Finish)

    @pytest.mark.asyncio
    async def test_empty_arguments_become_object(self):
        """Test a call without argument fragments completes with {}."""
        body = sse_body(
            stream_frame(tool_calls=[tool_fragment(0, "", call_id="call_1", name="ping")]),
            stream_frame(finish_reason="tool_calls", usage=USAGE),
        )

        events = await collect(body)

        assert events[0] == ToolCallComplete(id="call_1", name="ping", arguments_json="{}")

    @pytest.mark.asyncio
    async def test_stream_end_with_open_call(self):
        """Test end of stream force-completes and reports tool_calls."""
        body = sse_body(
            stream_frame(tool_calls=[tool_fragment(0, '{"a":1}', call_id="call_1", name="f")]),
            done=False,
        )

        events = await collect(body)

        assert isinstance(events[-2], ToolCallComplete)
        assert events[-1] == Finish(reason=FinishReason.TOOL_CALLS)

    @pytest.mark.asyncio
    async def test_invalid_arguments_json(self):
        """Test unparseable arguments end the stream with one decode error."""
        body = sse_body(
            stream_frame(tool_calls=[tool_fragment(0, '{"a":', call_id="call_1", name="f")]),
            stream_frame(finish_reason="tool_calls", usage=USAGE),
        )

        events = await collect(body)

        assert isinstance(events[-1], ErrorEvent)
        assert events[-1].kind == "decode_error"
        assert not any(isinstance(e, (Finish, ToolCallComplete)) for e in events)

    @pytest.mark.asyncio
    async def test_fragment_after_completion(self):
        """Test a fragment for a completed call is a decode error."""
        body = sse_body(
            stream_frame(tool_calls=[tool_fragment(0, "{}", call_id="call_a", name="a")]),
            stream_frame(tool_calls=[tool_fragment(1, "{}", call_id="call_b", name="b")]),
            stream_frame(tool_calls=[tool_fragment(0, "{}")]),
        )

        events = await collect(body)

        assert isinstance(events[-1], ErrorEvent)
        assert sum(isinstance(e, ErrorEvent) for e in events) == 1


class TestStreamErrors:
    """Tests for malformed and error frames."""

    @pytest.mark.asyncio
    async def test_malformed_frame_single_error(self):
        """Test a non-JSON frame yields exactly one Error and nothing after it."""
        body = sse_body(
            stream_frame(content="ok"),
            "{not json",
            stream_frame(content="never"),
            stream_frame(finish_reason="stop", usage=USAGE),
        )

        events = await collect(body)

        assert events[0] == TextDelta(text="ok")
        assert isinstance(events[1], ErrorEvent)
        assert events[1].kind == "decode_error"
        assert len(events) == 2

    @pytest.mark.asyncio
    async def test_non_object_frame(self):
        """Test a JSON array frame is a decode error."""
        events = await collect(sse_body("[1, 2]"))
        assert len(events) == 1
        assert events[0].kind == "decode_error"

    @pytest.mark.asyncio
    async def test_backend_error_frame(self):
        """Test an error envelope frame yields a backend error."""
        error_frame = {"error": {"message": "Content filtered", "code": 400, "location": "Filtering Module"}}

        events = await collect(sse_body(stream_frame(content="a"), error_frame))

        assert events[-1] == ErrorEvent(kind="backend_error", message="Content filtered", status_code=400)
        assert len(events) == 2

    @pytest.mark.asyncio
    async def test_nothing_after_done(self):
        """Test frames after [DONE] are ignored."""
        body = sse_body(stream_frame(content="a", finish_reason="stop")) + sse_body(stream_frame(content="b"))

        events = await collect(body)

        assert events == [TextDelta(text="a"), Finish(reason=FinishReason.STOP)]


class TestCancellation:
    """Tests for cancellation during decoding."""

    @pytest.mark.asyncio
    async def test_cancel_stops_events(self):
        """Test no events, and no Finish, follow cancellation."""
        cancel = asyncio.Event()
        body = sse_body(
            stream_frame(content="a"),
            stream_frame(content="b"),
            stream_frame(finish_reason="stop", usage=USAGE),
        )

        events = []
        async for event in decode_stream(aiter_lines(body), cancel):
            events.append(event)
            cancel.set()

        assert events == [TextDelta(text="a")]

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self):
        """Test a pre-set signal produces no events."""
        cancel = asyncio.Event()
        cancel.set()
        assert await collect(sse_body(stream_frame(content="a")), cancel) == []


class TestStreamDecoderState:
    """Tests for decoder state transitions."""

    def test_states(self):
        """Test IDLE -> STREAMING -> FINISHED, with terminal state final."""
        decoder = StreamDecoder()
        assert decoder.state == StreamState.IDLE

        decoder.feed(json.dumps(stream_frame(content="a")))
        assert decoder.state == StreamState.STREAMING

        decoder.feed("[DONE]")
        assert decoder.state == StreamState.FINISHED
        assert decoder.feed(json.dumps(stream_frame(content="b"))) == []
        assert decoder.close() == []

    def test_failed_is_terminal(self):
        """Test a failed decoder produces nothing further."""
        decoder = StreamDecoder()
        assert len(decoder.feed("oops")) == 1
        assert decoder.state == StreamState.FAILED
        assert decoder.close() == []
