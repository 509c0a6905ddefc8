"""Server-sent event stream decoding.

Turns the orchestration service's SSE stream into provider-agnostic
StreamEvents. The decoder is a small state machine:

    IDLE -> STREAMING -> FINISHED | FAILED

Terminal states are final. Finish is always the last event of a
well-formed stream; a malformed frame produces exactly one ErrorEvent and
nothing after it.

Tool-call argument fragments are buffered per call (keyed by the backend's
tool-call index) and released as ToolCallComplete when the call is closed:
either a fragment for a new call index arrives, or a finish reason does,
whichever comes first. Calls still open at the finish frame are
force-completed before Finish is emitted.
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .decoding import map_finish_reason, parse_usage
from .errors import parse_error_body
from .models import (
    ErrorEvent,
    Finish,
    FinishReason,
    StreamEvent,
    TextDelta,
    ToolCallComplete,
    ToolCallDelta,
    Usage,
)

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


class StreamState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    FINISHED = "finished"
    FAILED = "failed"


class _FrameError(Exception):
    def __init__(self, message: str, kind: str = "decode_error", status_code: int | None = None):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code


@dataclass
class _ToolCallBuffer:
    id: str
    name: str | None = None
    fragments: list[str] = field(default_factory=list)
    completed: bool = False


async def iter_sse_data(lines: AsyncIterator[str]) -> AsyncIterator[str]:
    """Group SSE lines into blank-line terminated frames.

    Yields the data payload of each frame (multiple ``data:`` lines joined
    with newlines). Comment lines and the event/id/retry fields are skipped;
    frames without data yield nothing.
    """
    data_lines: list[str] = []
    async for raw_line in lines:
        line = raw_line.rstrip("\r\n")
        if not line:
            if data_lines:
                yield "\n".join(data_lines)
                data_lines = []
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if name == "data":
            data_lines.append(value[1:] if value.startswith(" ") else value)

    if data_lines:
        yield "\n".join(data_lines)


class StreamDecoder:
    """Incremental decoder for orchestration stream frames.

    Feed it one frame payload at a time; each call returns the events that
    frame produced. Call close() once the input is exhausted.
    """

    def __init__(self) -> None:
        self.state = StreamState.IDLE
        self._calls: dict[int, _ToolCallBuffer] = {}
        self._finish_reason: FinishReason | None = None
        self._usage: Usage | None = None
        self._emitted_tool_call = False

    @property
    def done(self) -> bool:
        return self.state in (StreamState.FINISHED, StreamState.FAILED)

    def feed(self, data: str) -> list[StreamEvent]:
        """Decode one frame payload."""
        if self.done:
            return []
        self.state = StreamState.STREAMING

        try:
            if data.strip() == DONE_SENTINEL:
                return self._finish()
            return self._decode_frame(data)
        except _FrameError as e:
            return self._fail(e)

    def close(self) -> list[StreamEvent]:
        """Signal end of input; emits Finish unless already terminal."""
        if self.done:
            return []
        try:
            return self._finish()
        except _FrameError as e:
            return self._fail(e)

    def _decode_frame(self, data: str) -> list[StreamEvent]:
        try:
            frame = json.loads(data)
        except ValueError as e:
            raise _FrameError(f"Stream frame is not valid JSON: {e}") from e
        if not isinstance(frame, dict):
            raise _FrameError("Stream frame must be a JSON object")

        if "error" in frame or ("message" in frame and "code" in frame):
            details = parse_error_body(data) or {}
            code = details.get("code")
            raise _FrameError(
                details.get("message") or "SAP AI Core reported a stream error",
                kind="backend_error",
                status_code=code if isinstance(code, int) and 100 <= code < 600 else None,
            )

        result = frame.get("orchestration_result")
        if result is None:
            module_results = frame.get("module_results")
            if isinstance(module_results, dict):
                result = module_results.get("llm")
        if result is None:
            # templating echo or other metadata-only frame
            return []
        if not isinstance(result, dict):
            raise _FrameError("orchestration_result must be an object")

        choices = result.get("choices") or []
        if not isinstance(choices, list):
            raise _FrameError("choices must be a list")

        events: list[StreamEvent] = []
        finish_raw: str | None = None
        for choice in choices:
            if not isinstance(choice, dict):
                raise _FrameError("choice must be an object")
            if (choice.get("index") or 0) != 0:
                continue
            delta = choice.get("delta") or {}
            if not isinstance(delta, dict):
                raise _FrameError("choice delta must be an object")

            content = delta.get("content")
            if isinstance(content, str) and content:
                events.append(TextDelta(text=content))

            tool_deltas = delta.get("tool_calls") or []
            if not isinstance(tool_deltas, list):
                raise _FrameError("delta tool_calls must be a list")
            for tool_delta in tool_deltas:
                events.extend(self._on_tool_delta(tool_delta))

            if choice.get("finish_reason"):
                finish_raw = choice["finish_reason"]

        if result.get("usage"):
            self._usage = parse_usage(result["usage"])

        if finish_raw is not None and self._finish_reason is None:
            self._finish_reason = map_finish_reason(finish_raw)
            events.extend(self._complete_open_calls())

        # Finish waits for usage, which may trail the finish reason by a frame
        if self._finish_reason is not None and self._usage is not None:
            events.extend(self._finish())
        return events

    def _on_tool_delta(self, tool_delta: Any) -> list[StreamEvent]:
        if not isinstance(tool_delta, dict):
            raise _FrameError("tool call delta must be an object")

        index = self._resolve_index(tool_delta)
        events: list[StreamEvent] = []

        buffer = self._calls.get(index)
        if buffer is None:
            # A new call index closes the argument stream of earlier calls
            events.extend(self._complete_open_calls())
            buffer = _ToolCallBuffer(id=tool_delta.get("id") or f"tool_{index}")
            self._calls[index] = buffer
        elif buffer.completed:
            raise _FrameError(f"Fragment received for completed tool call {buffer.id}")

        if tool_delta.get("id") and not buffer.fragments:
            buffer.id = tool_delta["id"]

        function = tool_delta.get("function") or {}
        if not isinstance(function, dict):
            raise _FrameError("tool call delta function must be an object")
        if function.get("name"):
            buffer.name = function["name"]

        fragment = function.get("arguments")
        if fragment is not None and not isinstance(fragment, str):
            raise _FrameError("tool call arguments fragment must be a string")
        if fragment:
            buffer.fragments.append(fragment)
            events.append(
                ToolCallDelta(id=buffer.id, name=buffer.name, arguments_fragment=fragment)
            )
        return events

    def _resolve_index(self, tool_delta: dict[str, Any]) -> int:
        index = tool_delta.get("index")
        if isinstance(index, int):
            return index

        call_id = tool_delta.get("id")
        for known_index, buffer in self._calls.items():
            if call_id and buffer.id == call_id:
                return known_index
        if call_id:
            return max(self._calls, default=-1) + 1
        if self._calls:
            return max(self._calls)
        raise _FrameError("tool call delta has neither index nor id")

    def _complete_open_calls(self) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        for buffer in self._calls.values():
            if buffer.completed:
                continue
            arguments = "".join(buffer.fragments) or "{}"
            try:
                json.loads(arguments)
            except ValueError as e:
                raise _FrameError(
                    f"Arguments for tool call {buffer.id} are not valid JSON: {e}"
                ) from e
            if not buffer.name:
                logger.warning(
                    "Tool call completed without a tool name",
                    extra={"tool_call_id": buffer.id},
                )
            buffer.completed = True
            self._emitted_tool_call = True
            events.append(
                ToolCallComplete(id=buffer.id, name=buffer.name or "", arguments_json=arguments)
            )
        return events

    def _finish(self) -> list[StreamEvent]:
        events = self._complete_open_calls()
        reason = self._finish_reason
        if reason is None:
            reason = FinishReason.TOOL_CALLS if self._emitted_tool_call else FinishReason.OTHER
        usage = self._usage or Usage()
        self.state = StreamState.FINISHED
        logger.debug(
            "Stream finished",
            extra={
                "finish_reason": reason.value,
                "prompt_tokens": usage.prompt_tokens,
                "completion_tokens": usage.completion_tokens,
            },
        )
        events.append(Finish(reason=reason, usage=usage))
        return events

    def _fail(self, error: _FrameError) -> list[StreamEvent]:
        self.state = StreamState.FAILED
        logger.warning(
            "Stream failed: %s",
            error,
            extra={"error_kind": error.kind, "status_code": error.status_code},
        )
        return [ErrorEvent(kind=error.kind, message=str(error), status_code=error.status_code)]


async def decode_stream(
    lines: AsyncIterator[str],
    cancel: asyncio.Event | None = None,
) -> AsyncIterator[StreamEvent]:
    """Decode an SSE line stream into StreamEvents.

    Args:
        lines: Decoded text lines of the response body.
        cancel: Optional cancellation signal; once set, no further events
            are produced and the sequence ends without Finish.

    Yields:
        StreamEvents, ending with Finish or a single ErrorEvent.
    """

    def cancelled() -> bool:
        return cancel is not None and cancel.is_set()

    decoder = StreamDecoder()
    async for data in iter_sse_data(lines):
        if cancelled():
            return
        for event in decoder.feed(data):
            if cancelled():
                return
            yield event
        if decoder.done:
            return

    if cancelled():
        return
    for event in decoder.close():
        yield event
