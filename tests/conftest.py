"""Pytest fixtures for testing."""

from collections.abc import Callable
from typing import Any

import httpx
import pytest

from helpers import BASE_URL, DEPLOYMENT_ID
from sap_ai_provider.client import reset_provider
from sap_ai_provider.models import ChatMessage, GenerationRequest
from sap_ai_provider.settings import ResolvedConfig


@pytest.fixture
def completion_body() -> dict[str, Any]:
    """A successful non-streaming completion response."""
    return {
        "request_id": "req-1",
        "module_results": {
            "llm": {
                "model": "gpt-4o",
                "choices": [
                    {
                        "index": 0,
                        "message": {"role": "assistant", "content": "Hello!"},
                        "finish_reason": "stop",
                    }
                ],
                "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
            }
        },
    }


@pytest.fixture
def service_key() -> dict[str, Any]:
    """A minimal service key descriptor."""
    return {
        "url": "https://auth.test.example.com",
        "clientid": "client-id",
        "clientsecret": "client-secret",
        "serviceurls": {"AI_API_URL": "https://api.ai.test.example.com"},
    }


@pytest.fixture
def simple_request() -> GenerationRequest:
    return GenerationRequest(messages=[ChatMessage(role="user", content="Hi")])


@pytest.fixture
def make_config() -> Callable[..., ResolvedConfig]:
    """Build a ResolvedConfig around a transport."""

    def factory(transport: httpx.AsyncBaseTransport | None = None, **overrides: Any) -> ResolvedConfig:
        values: dict[str, Any] = {
            "base_url": BASE_URL,
            "auth_token": "test-token",
            "deployment_id": DEPLOYMENT_ID,
            "resource_group": "default",
            "transport": transport,
        }
        values.update(overrides)
        return ResolvedConfig(**values)

    return factory


@pytest.fixture(autouse=True)
def _reset_default_provider():
    """Keep the module-level default provider from leaking between tests."""
    reset_provider()
    yield
    reset_provider()
