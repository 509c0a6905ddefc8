"""Abstract base class for language model providers.

Defines the interface the outer language-model abstraction talks to.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from ..models import CompletionResult, GenerationRequest, StreamEvent


class LanguageModel(ABC):
    """Base interface for chat language models.

    Implementations translate a provider-agnostic GenerationRequest to their
    backend and back, for both one-shot and streaming calls.
    """

    @property
    @abstractmethod
    def provider(self) -> str:
        """Provider identifier, e.g. 'sap-ai'."""
        ...

    @property
    @abstractmethod
    def model_id(self) -> str:
        """Model identifier, e.g. 'gpt-4o'."""
        ...

    @abstractmethod
    async def generate(
        self,
        request: GenerationRequest,
        cancel: asyncio.Event | None = None,
    ) -> CompletionResult:
        """Send a completion request and return the decoded result.

        Args:
            request: Provider-agnostic generation request.
            cancel: Optional cancellation signal; setting it aborts the
                in-flight HTTP request.

        Returns:
            Provider-agnostic completion result.

        Raises:
            InvalidRequestError: Request rejected before any network call.
            BackendError: Non-2xx completion response (RateLimitError on 429,
                ModelNotFoundError on 404).
            NetworkError: Transport failure.
            DecodeError: Response body has an unexpected shape.
            RequestCancelledError: The cancellation signal was set.
        """
        ...

    @abstractmethod
    def supports(self, feature: str) -> bool:
        """Check if the model supports a capability.

        Args:
            feature: Feature name. Supported values:
                - 'json_schema': Structured outputs with JSON Schema
                - 'json_object': Basic JSON mode
                - 'tools': Function/tool calling
                - 'vision': Image inputs
                - 'streaming': Streaming responses
                - 'system_message': Dedicated system role

        Returns:
            True if the feature is supported.
        """
        ...

    def stream(
        self,
        request: GenerationRequest,
        cancel: asyncio.Event | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream response events.

        Args:
            request: Provider-agnostic generation request.
            cancel: Optional cancellation signal; once set, the sequence ends
                without a Finish event.

        Returns:
            Lazy, single-use sequence of StreamEvents ending with Finish or
            a single ErrorEvent.

        Raises:
            NotImplementedError: If streaming is not supported.
        """
        raise NotImplementedError("Streaming not supported by this model")
