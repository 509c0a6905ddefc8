"""Settings models for the SAP AI provider.

ProviderSettings is what the outer factory receives; ResolvedConfig is the
frozen result of config resolution that every model instance shares.
"""

import os
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import (
    DEFAULT_MODEL_VERSION,
    ENV_BASE_URL,
    ENV_DEPLOYMENT_ID,
    ENV_RESOURCE_GROUP,
    ENV_SERVICE_KEY,
    ENV_TOKEN,
)
from .models import ModelParams


class ServiceUrls(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    AI_API_URL: str


class ServiceKey(BaseModel):
    """Credentials and endpoint roots for one SAP AI Core tenant."""

    model_config = ConfigDict(frozen=True, extra="allow")

    url: str
    clientid: str
    clientsecret: str
    serviceurls: ServiceUrls


class ProviderSettings(BaseModel):
    """Settings supplied to the provider factory."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    service_key: str | ServiceKey | dict[str, Any] | None = None
    token: str | None = None
    base_url: str | None = None
    deployment_id: str | None = None
    resource_group: str | None = None
    headers: dict[str, str] | None = None
    transport: httpx.AsyncBaseTransport | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: Any) -> "ProviderSettings":
        """Build settings from SAP_AI_* environment variables.

        Args:
            environ: Environment mapping. Defaults to os.environ.
            **overrides: Explicit values that win over the environment.
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {
            "service_key": env.get(ENV_SERVICE_KEY) or None,
            "token": env.get(ENV_TOKEN) or None,
            "base_url": env.get(ENV_BASE_URL) or None,
            "deployment_id": env.get(ENV_DEPLOYMENT_ID) or None,
            "resource_group": env.get(ENV_RESOURCE_GROUP) or None,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


class ModelSettings(BaseModel):
    """Per-model defaults applied to every request the model builds."""

    model_config = ConfigDict(protected_namespaces=())

    model_version: str = DEFAULT_MODEL_VERSION
    model_params: ModelParams | None = None
    masking: dict[str, Any] | None = None
    filtering: dict[str, Any] | None = None
    grounding: dict[str, Any] | None = None
    translation: dict[str, Any] | None = None


class ResolvedConfig(BaseModel):
    """Fully resolved, immutable connection configuration."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    base_url: str
    auth_token: str = Field(repr=False)
    deployment_id: str
    resource_group: str
    headers: Mapping[str, str] | None = None
    transport: httpx.AsyncBaseTransport | None = None

    @field_validator("auth_token")
    @classmethod
    def _token_not_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("auth_token must not be empty")
        return value

    @field_validator("headers")
    @classmethod
    def _freeze_headers(cls, value: Mapping[str, str] | None) -> Mapping[str, str] | None:
        # read-only copy; the caller's dict stays decoupled
        return None if value is None else MappingProxyType(dict(value))

    @property
    def completion_url(self) -> str:
        return f"{self.base_url}/inference/deployments/{self.deployment_id}/completion"
