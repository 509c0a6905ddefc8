"""SAP AI Core chat model.

Implements the LanguageModel interface on top of the orchestration
completion endpoint. Supports:
- Tool calling
- Multi-modal input (text + images)
- Structured outputs via response_format
- Streaming over server-sent events
- Masking, filtering, grounding and translation module configs
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Awaitable
from typing import Any, TypeVar

import httpx

from ..constants import (
    CONTENT_TYPE_EVENT_STREAM,
    CONTENT_TYPE_JSON,
    PROVIDER_NAME,
    RESOURCE_GROUP_HEADER,
)
from ..decoding import decode_completion
from ..errors import NetworkError, RequestCancelledError, backend_error_from_response
from ..models import CompletionResult, ErrorEvent, GenerationRequest, StreamEvent
from ..payload import build_payload
from ..settings import ModelSettings, ResolvedConfig
from ..streaming import decode_stream
from .base import LanguageModel

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SAPAIChatModel(LanguageModel):
    """Chat model served by an SAP AI Core orchestration deployment.

    One instance holds one ResolvedConfig, read-only after construction, so
    any number of concurrent generate/stream calls may share it. Each call
    opens its own HTTP client; connection pooling is left to the transport.
    """

    # Supported capabilities
    SUPPORTED_FEATURES = {
        "json_schema",
        "json_object",
        "tools",
        "vision",
        "streaming",
        "system_message",
    }

    def __init__(
        self,
        model_id: str,
        config: ResolvedConfig,
        settings: ModelSettings | None = None,
    ):
        """Initialize the chat model.

        Args:
            model_id: Model name, e.g. "gpt-4o".
            config: Resolved connection configuration.
            settings: Per-model defaults (version, params, masking, filtering).
        """
        self._model_id = model_id
        self._config = config
        self._settings = settings or ModelSettings()

    @property
    def provider(self) -> str:
        """Provider identifier."""
        return PROVIDER_NAME

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def config(self) -> ResolvedConfig:
        return self._config

    @property
    def settings(self) -> ModelSettings:
        return self._settings

    def supports(self, feature: str) -> bool:
        """Check if feature is supported."""
        return feature in self.SUPPORTED_FEATURES

    def _headers(self, stream: bool = False) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._config.auth_token}",
            "Content-Type": CONTENT_TYPE_JSON,
            RESOURCE_GROUP_HEADER: self._config.resource_group,
        }
        if stream:
            headers["Accept"] = CONTENT_TYPE_EVENT_STREAM
        if self._config.headers:
            headers.update(self._config.headers)
        return headers

    def _log_context(self) -> dict[str, Any]:
        return {
            "provider": PROVIDER_NAME,
            "model": self._model_id,
            "deployment_id": self._config.deployment_id,
            "resource_group": self._config.resource_group,
        }

    async def generate(
        self,
        request: GenerationRequest,
        cancel: asyncio.Event | None = None,
    ) -> CompletionResult:
        """Send a completion request to SAP AI Core.

        Args:
            request: Provider-agnostic generation request.
            cancel: Optional cancellation signal.

        Returns:
            Provider-agnostic completion result.

        Raises:
            Various SAPAIError subclasses based on the error type.
        """
        payload = build_payload(request, self._model_id, self._settings)
        start_time = time.perf_counter()

        logger.debug("Sending completion request", extra=self._log_context())

        try:
            async with httpx.AsyncClient(transport=self._config.transport, timeout=None) as client:
                response = await _cancellable(
                    client.post(
                        self._config.completion_url,
                        json=payload,
                        headers=self._headers(),
                    ),
                    cancel,
                )
        except httpx.RequestError as e:
            raise NetworkError(f"Failed to connect to SAP AI Core: {e}") from e

        latency_ms = int((time.perf_counter() - start_time) * 1000)

        if not response.is_success:
            self._handle_api_error(response)

        result = decode_completion(response.content)
        result = result.model_copy(update={"latency_ms": latency_ms})

        logger.info(
            "SAP AI Core request succeeded",
            extra={
                **self._log_context(),
                "request_id": result.request_id,
                "latency_ms": latency_ms,
                "prompt_tokens": result.usage.prompt_tokens,
                "completion_tokens": result.usage.completion_tokens,
                "finish_reason": result.finish_reason.value,
            },
        )
        return result

    async def stream(
        self,
        request: GenerationRequest,
        cancel: asyncio.Event | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream completion events from SAP AI Core.

        Backend, transport and decode failures are delivered as a final
        ErrorEvent instead of being raised, so iterating to the end is always
        safe. Only an invalid request raises, before any network call.
        """
        payload = build_payload(request, self._model_id, self._settings, stream=True)
        if cancel is not None and cancel.is_set():
            return

        logger.debug("Opening completion stream", extra=self._log_context())

        try:
            async with httpx.AsyncClient(transport=self._config.transport, timeout=None) as client:
                http_request = client.build_request(
                    "POST",
                    self._config.completion_url,
                    json=payload,
                    headers=self._headers(stream=True),
                )
                try:
                    response = await _cancellable(client.send(http_request, stream=True), cancel)
                except RequestCancelledError:
                    return

                try:
                    if not response.is_success:
                        body = (await response.aread()).decode("utf-8", errors="replace")
                        error = backend_error_from_response(
                            response.status_code, body, response.headers.get("retry-after")
                        )
                        logger.error(
                            "SAP AI Core stream request failed",
                            extra={**self._log_context(), "status_code": response.status_code},
                        )
                        yield ErrorEvent(
                            kind="backend_error",
                            message=error.args[0],
                            status_code=response.status_code,
                        )
                        return

                    lines = _cancellable_lines(response.aiter_lines(), cancel)
                    async for event in decode_stream(lines, cancel):
                        yield event
                finally:
                    await response.aclose()
        except httpx.RequestError as e:
            logger.warning(
                "SAP AI Core stream transport failure: %s",
                e,
                extra=self._log_context(),
            )
            yield ErrorEvent(kind="transport_error", message=f"Stream transport failure: {e}")

    def _handle_api_error(self, response: httpx.Response) -> None:
        """Convert a non-2xx completion response to a BackendError."""
        error = backend_error_from_response(
            response.status_code,
            response.text,
            response.headers.get("retry-after"),
        )
        logger.error(
            "SAP AI Core request failed",
            extra={
                **self._log_context(),
                "status_code": response.status_code,
                "request_id": error.request_id,
            },
        )
        raise error


async def _cancellable(awaitable: Awaitable[T], cancel: asyncio.Event | None) -> T:
    """Await ``awaitable`` unless ``cancel`` is set first.

    Raises:
        RequestCancelledError: The signal fired; the pending operation was
            cancelled.
    """
    if cancel is None:
        return await awaitable

    if cancel.is_set():
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise RequestCancelledError("Request cancelled before it was sent")

    task = asyncio.ensure_future(awaitable)

    waiter = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()

    if task in done:
        return task.result()

    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    raise RequestCancelledError("Request cancelled")


async def _cancellable_lines(
    lines: AsyncIterator[str],
    cancel: asyncio.Event | None,
) -> AsyncIterator[str]:
    """Yield lines until the body ends or ``cancel`` is set.

    One waiter on ``cancel`` is shared by every read of the stream.
    """
    if cancel is None:
        async for line in lines:
            yield line
        return

    iterator = lines.__aiter__()
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        while not cancel.is_set():
            read = asyncio.ensure_future(iterator.__anext__())
            try:
                done, _ = await asyncio.wait({read, waiter}, return_when=asyncio.FIRST_COMPLETED)
            except asyncio.CancelledError:
                read.cancel()
                raise

            if read not in done:
                read.cancel()
                try:
                    await read
                except (asyncio.CancelledError, StopAsyncIteration):
                    pass
                return

            try:
                line = read.result()
            except StopAsyncIteration:
                return
            yield line
    finally:
        waiter.cancel()
