"""Orchestration payload builder.

Converts a GenerationRequest into the SAP AI Core orchestration request
body: a templating module (conversation + tools) and an LLM module (model,
version, params). Masking, filtering, grounding and translation module
configs ride alongside when configured.
"""

import logging
from typing import Any

from .constants import DEFAULT_MODEL_VERSION, MODEL_PREFIXES_WITHOUT_N
from .errors import InvalidRequestError
from .models import (
    ChatMessage,
    GenerationRequest,
    ImagePart,
    ModelParams,
    ResponseFormat,
    TextPart,
    ToolDefinition,
)
from .settings import ModelSettings

logger = logging.getLogger(__name__)

# Azure Content Safety severity 0 lets only "safe" content through.
SAFE_PROMPT_FILTER_CONFIG: dict[str, int] = {
    "Hate": 0,
    "SelfHarm": 0,
    "Sexual": 0,
    "Violence": 0,
}


def build_payload(
    request: GenerationRequest,
    model_id: str,
    settings: ModelSettings | None = None,
    *,
    stream: bool = False,
) -> dict[str, Any]:
    """Build the orchestration request body.

    Args:
        request: Provider-agnostic generation request.
        model_id: Model name, e.g. "gpt-4o" or "anthropic--claude-3.5-sonnet".
        settings: Per-model defaults; request values override them.
        stream: Whether to ask for a server-sent event stream.

    Returns:
        JSON-serialisable request body.

    Raises:
        InvalidRequestError: Empty conversation or unsupported content part.
    """
    settings = settings or ModelSettings()
    if not request.messages:
        raise InvalidRequestError("Generation request must contain at least one message")

    templating: dict[str, Any] = {
        "template": [convert_message(msg) for msg in request.messages],
        "defaults": {},
    }
    # An empty list would read as "tools present"; omit instead
    if request.tools:
        templating["tools"] = [convert_tool(tool) for tool in request.tools]

    model_params = merge_model_params(settings.model_params, request.model_params, model_id)
    response_format = convert_response_format(request.response_format)
    if response_format is not None:
        model_params["response_format"] = response_format

    module_configurations: dict[str, Any] = {
        "templating_module_config": templating,
        "llm_module_config": {
            "model_name": model_id,
            "model_version": settings.model_version or DEFAULT_MODEL_VERSION,
            "model_params": model_params,
        },
    }

    masking = request.masking or settings.masking
    if masking:
        module_configurations["masking_module_config"] = masking

    filtering = request.filtering or settings.filtering
    if not filtering and request.safe_prompt:
        filtering = safe_prompt_filtering()
    if filtering:
        module_configurations["filtering_module_config"] = filtering

    grounding = request.grounding or settings.grounding
    if grounding:
        module_configurations["grounding_module_config"] = grounding

    translation = request.translation or settings.translation
    if translation:
        module_configurations["translation_module_config"] = translation

    orchestration_config: dict[str, Any] = {
        "module_configurations": module_configurations,
    }
    if stream:
        orchestration_config["stream"] = True
        orchestration_config["stream_options"] = {"include_usage": True}

    return {
        "orchestration_config": orchestration_config,
        "input_params": {},
    }


def convert_message(message: ChatMessage) -> dict[str, Any]:
    """Convert one conversation turn to a templating message."""
    if message.role == "tool":
        tool_msg: dict[str, Any] = {
            "role": "tool",
            "content": _flatten_text(message.content),
        }
        if message.tool_call_id:
            tool_msg["tool_call_id"] = message.tool_call_id
        return tool_msg

    if message.role in ("system", "assistant"):
        sap_msg: dict[str, Any] = {
            "role": message.role,
            "content": _flatten_text(message.content),
        }
        if message.role == "assistant" and message.tool_calls:
            sap_msg["tool_calls"] = [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {"name": tc.name, "arguments": tc.arguments},
                }
                for tc in message.tool_calls
            ]
        return sap_msg

    # user
    if isinstance(message.content, str):
        return {"role": "user", "content": message.content}

    parts = [convert_content_part(part) for part in message.content]
    if len(parts) == 1 and parts[0]["type"] == "text":
        return {"role": "user", "content": parts[0]["text"]}
    return {"role": "user", "content": parts}


def convert_content_part(part: TextPart | ImagePart) -> dict[str, Any]:
    """Convert a text or image part to the templating content-part shape."""
    if isinstance(part, TextPart):
        return {"type": "text", "text": part.text}

    if not part.media_type.startswith("image/"):
        raise InvalidRequestError(
            f"Only image files are supported, got media type {part.media_type!r}"
        )

    if part.url:
        url = part.url
    elif part.data:
        url = f"data:{part.media_type};base64,{part.data}"
    else:
        raise InvalidRequestError("Image part needs either a url or base64 data")

    image_url: dict[str, Any] = {"url": url}
    if part.detail:
        image_url["detail"] = part.detail
    return {"type": "image_url", "image_url": image_url}


def convert_tool(tool: ToolDefinition) -> dict[str, Any]:
    """Convert a tool declaration, keeping its JSON schema verbatim."""
    function: dict[str, Any] = {"name": tool.name, "parameters": tool.parameters}
    if tool.description is not None:
        function["description"] = tool.description
    return {"type": "function", "function": function}


def merge_model_params(
    defaults: ModelParams | None,
    overrides: ModelParams | None,
    model_id: str,
) -> dict[str, Any]:
    """Merge model-level and request-level params, request keys winning."""
    params: dict[str, Any] = {}
    if defaults is not None:
        params.update(defaults.to_wire())
    if overrides is not None:
        params.update(overrides.to_wire())

    if "n" in params and model_id.startswith(MODEL_PREFIXES_WITHOUT_N):
        logger.warning(
            "Dropping unsupported parameter n for model %s",
            model_id,
            extra={"model": model_id},
        )
        del params["n"]

    return params


def convert_response_format(response_format: ResponseFormat | None) -> dict[str, Any] | None:
    """Render a structured-output request, or None for plain text."""
    if response_format is None or response_format.type == "text":
        return None

    if response_format.type == "json_object" or response_format.json_schema is None:
        return {"type": "json_object"}

    json_schema: dict[str, Any] = {
        "name": response_format.name,
        "schema": response_format.json_schema,
    }
    if response_format.description:
        json_schema["description"] = response_format.description
    if response_format.strict is not None:
        json_schema["strict"] = response_format.strict
    return {"type": "json_schema", "json_schema": json_schema}


def safe_prompt_filtering() -> dict[str, Any]:
    """Default input and output content filter for safe-prompt mode."""

    def azure_filter() -> dict[str, Any]:
        return {"type": "azure_content_safety", "config": dict(SAFE_PROMPT_FILTER_CONFIG)}

    return {
        "input": {"filters": [azure_filter()]},
        "output": {"filters": [azure_filter()]},
    }


def _flatten_text(content: str | list[TextPart | ImagePart]) -> str:
    if isinstance(content, str):
        return content
    return "".join(part.text for part in content if isinstance(part, TextPart))
