"""SAP AI Core provider.

Adapts the SAP AI Core orchestration service to a provider-agnostic
language-model interface: one-shot completions, streaming, tool calling,
image input and structured output.
"""

from .client import SAPAIProvider, create_sap_ai_provider, get_provider, reset_provider
from .config import resolve_config
from .errors import (
    AuthError,
    BackendError,
    ConfigError,
    DecodeError,
    InvalidRequestError,
    ModelNotFoundError,
    NetworkError,
    RateLimitError,
    RequestCancelledError,
    SAPAIError,
    StreamError,
)
from .models import (
    ChatMessage,
    CompletionResult,
    ErrorEvent,
    Finish,
    FinishReason,
    GenerationRequest,
    ImagePart,
    ModelParams,
    ResponseFormat,
    StreamEvent,
    TextDelta,
    TextPart,
    ToolCall,
    ToolCallComplete,
    ToolCallDelta,
    ToolDefinition,
    Usage,
)
from .providers import LanguageModel, SAPAIChatModel
from .settings import ModelSettings, ProviderSettings, ResolvedConfig, ServiceKey

__all__ = [
    "SAPAIProvider",
    "SAPAIChatModel",
    "LanguageModel",
    "create_sap_ai_provider",
    "get_provider",
    "reset_provider",
    "resolve_config",
    "ProviderSettings",
    "ModelSettings",
    "ResolvedConfig",
    "ServiceKey",
    "GenerationRequest",
    "ChatMessage",
    "TextPart",
    "ImagePart",
    "ToolCall",
    "ToolDefinition",
    "ModelParams",
    "ResponseFormat",
    "CompletionResult",
    "FinishReason",
    "Usage",
    "StreamEvent",
    "TextDelta",
    "ToolCallDelta",
    "ToolCallComplete",
    "Finish",
    "ErrorEvent",
    "SAPAIError",
    "ConfigError",
    "AuthError",
    "InvalidRequestError",
    "BackendError",
    "RateLimitError",
    "ModelNotFoundError",
    "NetworkError",
    "DecodeError",
    "StreamError",
    "RequestCancelledError",
]
