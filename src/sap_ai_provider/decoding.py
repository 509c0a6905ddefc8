"""Non-streaming response decoding."""

import json
from typing import Any

from .errors import DecodeError
from .models import CompletionResult, FinishReason, ToolCall, Usage

_FINISH_REASON_MAP = {
    "stop": FinishReason.STOP,
    "end_turn": FinishReason.STOP,
    "stop_sequence": FinishReason.STOP,
    "length": FinishReason.LENGTH,
    "max_tokens": FinishReason.LENGTH,
    "tool_calls": FinishReason.TOOL_CALLS,
    "function_call": FinishReason.TOOL_CALLS,
    "tool_use": FinishReason.TOOL_CALLS,
    "content_filter": FinishReason.CONTENT_FILTER,
}


def map_finish_reason(reason: str | None) -> FinishReason:
    """Map a backend finish reason; unknown values become OTHER."""
    if not isinstance(reason, str):
        return FinishReason.OTHER
    return _FINISH_REASON_MAP.get(reason.lower(), FinishReason.OTHER)


def parse_usage(raw: Any) -> Usage:
    """Copy usage counters, defaulting missing or non-integer ones to zero."""
    if not isinstance(raw, dict):
        return Usage()

    def count(key: str) -> int:
        value = raw.get(key)
        return value if isinstance(value, int) else 0

    return Usage(
        prompt_tokens=count("prompt_tokens"),
        completion_tokens=count("completion_tokens"),
        total_tokens=count("total_tokens"),
    )


def extract_text(content: Any) -> str:
    """Concatenate message text; content may be a string, None or a part list."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            part.get("text", "")
            for part in content
            if isinstance(part, dict) and part.get("type", "text") == "text"
        )
    raise DecodeError(f"Unexpected message content type: {type(content).__name__}")


def parse_tool_calls(raw: Any) -> list[ToolCall]:
    """Map message tool_calls, keeping ids and argument JSON text untouched."""
    if not raw:
        return []
    if not isinstance(raw, list):
        raise DecodeError("tool_calls must be a list")

    tool_calls = []
    for entry in raw:
        function = entry.get("function") if isinstance(entry, dict) else None
        if not isinstance(function, dict) or not isinstance(function.get("name"), str):
            raise DecodeError("Tool call entry is missing function.name")
        arguments = function.get("arguments")
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments if arguments is not None else {})
        call_id = entry.get("id")
        tool_calls.append(
            ToolCall(
                id="" if call_id is None else str(call_id),
                name=function["name"],
                arguments=arguments,
            )
        )
    return tool_calls


def decode_completion(body: bytes | str | dict[str, Any]) -> CompletionResult:
    """Decode a completion response body into a CompletionResult.

    Reads ``module_results.llm.choices[0]``.

    Raises:
        DecodeError: Body is not JSON or the expected path is missing.
    """
    if isinstance(body, (bytes, str)):
        try:
            data = json.loads(body)
        except ValueError as e:
            raise DecodeError(f"Completion response is not valid JSON: {e}") from e
    else:
        data = body

    request_id = data.get("request_id") if isinstance(data, dict) else None
    try:
        llm = data["module_results"]["llm"]
        choice = llm["choices"][0]
        message = choice["message"]
    except (KeyError, IndexError, TypeError) as e:
        raise DecodeError(
            "Completion response is missing module_results.llm.choices[0].message",
            request_id=request_id,
        ) from e

    if not isinstance(message, dict):
        raise DecodeError("Choice message must be an object", request_id=request_id)

    return CompletionResult(
        text=extract_text(message.get("content")),
        tool_calls=parse_tool_calls(message.get("tool_calls")),
        finish_reason=map_finish_reason(choice.get("finish_reason")),
        usage=parse_usage(llm.get("usage")),
        model=llm.get("model"),
        request_id=request_id,
        raw=data,
    )
