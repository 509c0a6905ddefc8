"""OAuth2 credential resolution for SAP AI Core.

Token priority, first match wins:
1. An explicit token string, used verbatim.
2. A service key, exchanged for a token via client credentials.
3. The SAP_AI_TOKEN environment variable.

No caching or expiry tracking happens here; each resolution performs at
most one token request.
"""

import base64
import json
import logging
import os
from collections.abc import Mapping
from typing import Any

import httpx
from pydantic import ValidationError

from .constants import CONTENT_TYPE_FORM, ENV_TOKEN, OAUTH_ENDPOINT, OAUTH_GRANT_TYPE
from .errors import AuthError, ConfigError, NetworkError
from .settings import ServiceKey

logger = logging.getLogger(__name__)


def parse_service_key(service_key: str | Mapping[str, Any] | ServiceKey) -> ServiceKey:
    """Parse a service key from JSON text or a mapping.

    Raises:
        ConfigError: If the JSON is malformed or required fields are missing.
    """
    if isinstance(service_key, ServiceKey):
        return service_key

    if isinstance(service_key, str):
        try:
            data = json.loads(service_key)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid service key JSON format: {e.msg}") from e
    else:
        data = service_key

    try:
        return ServiceKey.model_validate(data)
    except ValidationError as e:
        raise ConfigError(
            f"Service key is missing required fields: {e.error_count()} error(s)"
        ) from e


def basic_auth_credentials(client_id: str, client_secret: str) -> str:
    """Base64-encode ``client_id:client_secret`` for a Basic auth header."""
    return base64.b64encode(f"{client_id}:{client_secret}".encode()).decode("ascii")


async def fetch_oauth_token(
    service_key: ServiceKey,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    """Exchange service key client credentials for an access token.

    Args:
        service_key: Parsed service key.
        transport: Optional httpx transport (tests, proxies).

    Returns:
        The ``access_token`` from the token endpoint response.

    Raises:
        AuthError: Non-2xx status, or the body carries no access_token.
        NetworkError: The token endpoint could not be reached.
    """
    token_url = f"{service_key.url.rstrip('/')}{OAUTH_ENDPOINT}"
    headers = {
        "Content-Type": CONTENT_TYPE_FORM,
        "Authorization": f"Basic {basic_auth_credentials(service_key.clientid, service_key.clientsecret)}",
    }

    logger.debug("Requesting OAuth token", extra={"token_url": token_url})

    try:
        async with httpx.AsyncClient(transport=transport, timeout=None) as client:
            response = await client.post(
                token_url,
                headers=headers,
                content=f"grant_type={OAUTH_GRANT_TYPE}",
            )
    except httpx.RequestError as e:
        raise NetworkError(f"Failed to reach OAuth token endpoint: {e}") from e

    if not response.is_success:
        logger.error(
            "OAuth token request failed",
            extra={"token_url": token_url, "status_code": response.status_code},
        )
        raise AuthError(
            f"Failed to get OAuth access token: {response.status_code} "
            f"{response.reason_phrase}\n{response.text}",
            status_code=response.status_code,
            body=response.text,
        )

    try:
        token = response.json().get("access_token")
    except (ValueError, AttributeError) as e:
        raise AuthError(
            "OAuth token response is not a JSON object",
            status_code=response.status_code,
            body=response.text,
        ) from e

    if not isinstance(token, str) or not token:
        raise AuthError(
            "OAuth token response has no access_token",
            status_code=response.status_code,
            body=response.text,
        )
    return token


def load_env_token(environ: Mapping[str, str] | None = None) -> str:
    """Read the bearer token from SAP_AI_TOKEN.

    Raises:
        ConfigError: If the variable is unset or empty.
    """
    env = os.environ if environ is None else environ
    token = env.get(ENV_TOKEN)
    if not token:
        raise ConfigError(
            f"SAP AI Core token is missing. Pass a token or service key, "
            f"or set the {ENV_TOKEN} environment variable."
        )
    return token


async def resolve_token(
    token: str | None = None,
    service_key: ServiceKey | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Resolve a bearer token: explicit token > service key > environment."""
    if token:
        return token

    if service_key is not None:
        return await fetch_oauth_token(service_key, transport)

    return load_env_token(environ)
