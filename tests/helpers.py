"""Shared helpers for faking SAP AI Core over httpx.MockTransport."""

import json
from collections.abc import Callable
from typing import Any

import httpx

BASE_URL = "https://api.ai.test.example.com/v2"
DEPLOYMENT_ID = "dep-123"
COMPLETION_URL = f"{BASE_URL}/inference/deployments/{DEPLOYMENT_ID}/completion"


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.requests: list[httpx.Request] = []

        def record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(record)

    def json_body(self, index: int = -1) -> dict[str, Any]:
        return json.loads(self.requests[index].content)


def sse_body(*frames: Any, done: bool = True) -> bytes:
    """Render frames (dicts or raw strings) as an SSE body."""
    lines = []
    for frame in frames:
        data = frame if isinstance(frame, str) else json.dumps(frame)
        lines.append(f"data: {data}\n\n")
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode()


def stream_frame(
    content: str | None = None,
    tool_calls: list[dict[str, Any]] | None = None,
    finish_reason: str | None = None,
    usage: dict[str, int] | None = None,
) -> dict[str, Any]:
    """Build one orchestration stream frame."""
    delta: dict[str, Any] = {}
    if content is not None:
        delta["content"] = content
    if tool_calls is not None:
        delta["tool_calls"] = tool_calls
    result: dict[str, Any] = {
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }
    if usage is not None:
        result["usage"] = usage
    return {"request_id": "req-stream", "orchestration_result": result}


def tool_fragment(index: int, arguments: str, call_id: str | None = None, name: str | None = None) -> dict[str, Any]:
    """Build one streamed tool-call delta."""
    function: dict[str, Any] = {"arguments": arguments}
    if name is not None:
        function["name"] = name
    delta: dict[str, Any] = {"index": index, "function": function}
    if call_id is not None:
        delta["id"] = call_id
    return delta
