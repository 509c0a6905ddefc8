"""SAP AI data models.

Provider-agnostic request, result and stream event models. The payload
builder and decoders translate between these and the orchestration wire
format, so nothing here knows about module configs or SSE frames.
"""

from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .errors import StreamError


class TextPart(BaseModel):
    """Plain text content part."""

    type: Literal["text"] = "text"
    text: str


class ImagePart(BaseModel):
    """Image content part.

    Either ``url`` (http(s) URL or data URI, passed through unchanged) or
    ``data`` (base64 payload) together with ``media_type``.
    """

    type: Literal["image"] = "image"
    url: str | None = None
    data: str | None = None
    media_type: str = "image/png"
    detail: str | None = None


ContentPart = Annotated[TextPart | ImagePart, Field(discriminator="type")]


class ToolCall(BaseModel):
    """A tool call requested by the model (or replayed from history)."""

    id: str
    name: str
    arguments: str = "{}"  # raw JSON text, not re-parsed


class ChatMessage(BaseModel):
    """A single conversation turn."""

    role: Literal["system", "user", "assistant", "tool"]
    content: str | list[ContentPart] = ""
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None


class ToolDefinition(BaseModel):
    """A function the model may call."""

    name: str
    description: str | None = None
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )


class ModelParams(BaseModel):
    """Sampling parameters for the LLM module.

    Declared fields are range-checked here, at the settings boundary.
    Unknown keys are kept and forwarded verbatim.
    """

    model_config = ConfigDict(extra="allow")

    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    top_p: float | None = Field(default=None, ge=0.0, le=1.0)
    frequency_penalty: float | None = Field(default=None, ge=-2.0, le=2.0)
    presence_penalty: float | None = Field(default=None, ge=-2.0, le=2.0)
    max_tokens: int | None = Field(default=None, gt=0)
    n: int | None = Field(default=None, gt=0)
    parallel_tool_calls: bool | None = None
    stop: list[str] | None = None
    seed: int | None = None

    def to_wire(self) -> dict[str, Any]:
        """Return the params as a plain mapping, unset keys omitted."""
        return self.model_dump(exclude_none=True)


class ResponseFormat(BaseModel):
    """Structured output format configuration."""

    type: Literal["text", "json_object", "json_schema"]
    json_schema: dict[str, Any] | None = None
    name: str = "response"
    description: str | None = None
    strict: bool | None = None


class GenerationRequest(BaseModel):
    """Provider-agnostic generation request."""

    model_config = ConfigDict(protected_namespaces=())

    messages: list[ChatMessage] = Field(min_length=1)
    tools: list[ToolDefinition] | None = None
    model_params: ModelParams | None = None
    response_format: ResponseFormat | None = None
    safe_prompt: bool = False
    masking: dict[str, Any] | None = None
    filtering: dict[str, Any] | None = None
    grounding: dict[str, Any] | None = None
    translation: dict[str, Any] | None = None


class FinishReason(str, Enum):
    """Provider-agnostic finish reason."""

    STOP = "stop"
    LENGTH = "length"
    TOOL_CALLS = "tool_calls"
    CONTENT_FILTER = "content_filter"
    OTHER = "other"


class Usage(BaseModel):
    """Token usage as reported by the backend."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class CompletionResult(BaseModel):
    """Provider-agnostic completion result."""

    text: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    finish_reason: FinishReason
    usage: Usage = Field(default_factory=Usage)
    model: str | None = None
    request_id: str | None = None
    latency_ms: int | None = None
    raw: dict[str, Any] | None = None


# Stream events


class TextDelta(BaseModel):
    type: Literal["text_delta"] = "text_delta"
    text: str


class ToolCallDelta(BaseModel):
    type: Literal["tool_call_delta"] = "tool_call_delta"
    id: str
    name: str | None = None
    arguments_fragment: str = ""


class ToolCallComplete(BaseModel):
    type: Literal["tool_call_complete"] = "tool_call_complete"
    id: str
    name: str
    arguments_json: str


class Finish(BaseModel):
    type: Literal["finish"] = "finish"
    reason: FinishReason
    usage: Usage = Field(default_factory=Usage)


class ErrorEvent(BaseModel):
    """Terminal in-band error.

    kind is one of ``decode_error``, ``backend_error``, ``transport_error``.
    """

    type: Literal["error"] = "error"
    kind: str
    message: str
    status_code: int | None = None

    def to_exception(self) -> StreamError:
        return StreamError(self.message, kind=self.kind, status_code=self.status_code)


StreamEvent = Annotated[
    TextDelta | ToolCallDelta | ToolCallComplete | Finish | ErrorEvent,
    Field(discriminator="type"),
]
