"""SAP AI error hierarchy.

Custom exceptions for SAP AI Core operations with provider context.
Callers that layer their own retry policy can use RETRYABLE_ERRORS;
nothing in this package retries on its own.
"""

from __future__ import annotations

import json
from typing import Any

from .constants import PROVIDER_NAME, RETRYABLE_STATUS_CODES


class SAPAIError(Exception):
    """Base exception for SAP AI operations."""

    def __init__(
        self,
        message: str,
        provider: str | None = PROVIDER_NAME,
        request_id: str | None = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.request_id = request_id

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.provider:
            parts.append(f"provider={self.provider}")
        if self.request_id:
            parts.append(f"request_id={self.request_id}")
        return " ".join(parts)


class ConfigError(SAPAIError):
    """Configuration could not be resolved.

    Raised for a malformed service key or a missing environment variable.
    Non-retryable. Fix the settings.
    """

    pass


class AuthError(SAPAIError):
    """OAuth client-credentials exchange returned a non-2xx response.

    Non-retryable. Check the service key's client id and secret.
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        body: str = "",
        provider: str | None = PROVIDER_NAME,
        request_id: str | None = None,
    ):
        super().__init__(message, provider, request_id)
        self.status_code = status_code
        self.body = body


class InvalidRequestError(SAPAIError):
    """Request rejected before any network call.

    Non-retryable. Examples: empty conversation, non-image file part.
    """

    pass


class BackendError(SAPAIError):
    """Completion endpoint returned a non-2xx response.

    Carries the HTTP status and the raw response body.
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        body: str = "",
        location: str | None = None,
        provider: str | None = PROVIDER_NAME,
        request_id: str | None = None,
    ):
        super().__init__(message, provider, request_id)
        self.status_code = status_code
        self.body = body
        self.location = location

    @property
    def retryable(self) -> bool:
        """Whether a caller-side retry is reasonable for this status."""
        return self.status_code in RETRYABLE_STATUS_CODES or 500 <= self.status_code < 600


class RateLimitError(BackendError):
    """429 - Rate limit exceeded.

    Retryable. Respect retry_after if provided.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 429,
        body: str = "",
        location: str | None = None,
        retry_after: float | None = None,
        provider: str | None = PROVIDER_NAME,
        request_id: str | None = None,
    ):
        super().__init__(message, status_code, body, location, provider, request_id)
        self.retry_after = retry_after


class ModelNotFoundError(BackendError):
    """404 - Model or deployment not found.

    Non-retryable. Check the deployment id and model name.
    """

    pass


class NetworkError(SAPAIError):
    """Transport failure before any HTTP status was received.

    Retryable. May be transient connectivity issues.
    """

    pass


class DecodeError(SAPAIError):
    """Response body or stream frame does not match the expected shape."""

    pass


class StreamError(SAPAIError):
    """Exception form of an in-band stream error event.

    The stream decoder never raises this; ErrorEvent.to_exception() builds it
    for consumers that prefer to raise.
    """

    def __init__(
        self,
        message: str,
        kind: str,
        status_code: int | None = None,
        provider: str | None = PROVIDER_NAME,
        request_id: str | None = None,
    ):
        super().__init__(message, provider, request_id)
        self.kind = kind
        self.status_code = status_code


class RequestCancelledError(SAPAIError):
    """Non-streaming call aborted through its cancellation signal."""

    pass


def parse_error_body(body: str) -> dict[str, Any] | None:
    """Extract the backend error envelope from a response body.

    The orchestration service reports failures as ``{"error": {...}}`` where
    the inner value is an object or a list of objects; the first entry wins.

    Returns:
        Dict with ``message``, ``code``, ``location`` and ``request_id`` keys
        (values may be None), or None when the body is not an error envelope.
    """
    try:
        data = json.loads(body)
    except (TypeError, ValueError):
        return None
    if not isinstance(data, dict):
        return None

    error = data.get("error", data if "message" in data else None)
    if isinstance(error, list):
        error = error[0] if error else None
    if not isinstance(error, dict) or not isinstance(error.get("message"), str):
        return None

    return {
        "message": error["message"],
        "code": error.get("code"),
        "location": error.get("location"),
        "request_id": error.get("request_id") or data.get("request_id"),
    }


def backend_error_from_response(
    status_code: int,
    body: str,
    retry_after: str | None = None,
) -> BackendError:
    """Map a non-2xx completion response to a BackendError subclass."""
    details = parse_error_body(body) or {}
    detail_message = details.get("message") or body or "no response body"
    location = details.get("location")
    request_id = details.get("request_id")

    if status_code == 429:
        delay = None
        if retry_after:
            try:
                delay = float(retry_after)
            except ValueError:
                pass
        return RateLimitError(
            f"SAP AI Core rate limit exceeded: {detail_message}",
            body=body,
            location=location,
            retry_after=delay,
            request_id=request_id,
        )

    if status_code == 404:
        return ModelNotFoundError(
            f"Model or deployment not found: {detail_message}",
            status_code=status_code,
            body=body,
            location=location,
            request_id=request_id,
        )

    return BackendError(
        f"SAP AI Core request failed ({status_code}): {detail_message}",
        status_code=status_code,
        body=body,
        location=location,
        request_id=request_id,
    )


# Error classification for caller-side retry logic
RETRYABLE_ERRORS = (RateLimitError, NetworkError)
NON_RETRYABLE_ERRORS = (
    ConfigError,
    AuthError,
    InvalidRequestError,
    ModelNotFoundError,
    DecodeError,
)
