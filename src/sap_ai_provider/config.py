"""Configuration resolution for the SAP AI provider."""

import logging
from collections.abc import Mapping

from .auth import parse_service_key, resolve_token
from .constants import DEFAULT_BASE_URL, DEFAULT_DEPLOYMENT_ID, DEFAULT_RESOURCE_GROUP
from .settings import ProviderSettings, ResolvedConfig, ServiceKey

logger = logging.getLogger(__name__)


def resolve_base_url(base_url: str | None, service_key: ServiceKey | None) -> str:
    """Explicit base URL > service key AI_API_URL + /v2 > default."""
    if base_url:
        return base_url.rstrip("/")

    if service_key is not None:
        return f"{service_key.serviceurls.AI_API_URL.rstrip('/')}/v2"

    return DEFAULT_BASE_URL


async def resolve_config(
    settings: ProviderSettings | None = None,
    environ: Mapping[str, str] | None = None,
) -> ResolvedConfig:
    """Resolve provider settings into an immutable ResolvedConfig.

    Args:
        settings: Provider settings. Defaults to empty settings.
        environ: Environment used for the token fallback. Defaults to os.environ.

    Returns:
        Frozen configuration shared by every model built from it.

    Raises:
        ConfigError: Malformed service key or no token source available.
        AuthError: The OAuth token exchange was rejected.
    """
    settings = settings or ProviderSettings()

    service_key = (
        parse_service_key(settings.service_key)
        if settings.service_key is not None
        else None
    )

    base_url = resolve_base_url(settings.base_url, service_key)
    auth_token = await resolve_token(
        settings.token,
        service_key,
        transport=settings.transport,
        environ=environ,
    )

    config = ResolvedConfig(
        base_url=base_url,
        auth_token=auth_token,
        deployment_id=settings.deployment_id or DEFAULT_DEPLOYMENT_ID,
        resource_group=settings.resource_group or DEFAULT_RESOURCE_GROUP,
        headers=settings.headers,
        transport=settings.transport,
    )

    logger.debug(
        "Resolved SAP AI Core configuration",
        extra={
            "base_url": config.base_url,
            "deployment_id": config.deployment_id,
            "resource_group": config.resource_group,
        },
    )
    return config
