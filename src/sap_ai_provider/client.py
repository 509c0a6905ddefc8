"""SAP AI provider factory.

Resolves configuration once and hands out chat models that share it.
Nothing here retries; callers that want a retry policy can classify
failures with errors.RETRYABLE_ERRORS.
"""

import logging
from collections.abc import Mapping

from .config import resolve_config
from .constants import PROVIDER_NAME
from .providers.sap_ai import SAPAIChatModel
from .settings import ModelSettings, ProviderSettings, ResolvedConfig

logger = logging.getLogger(__name__)


class SAPAIProvider:
    """Factory for SAP AI Core chat models.

    Holds one ResolvedConfig (endpoint, token, deployment, resource group)
    and builds SAPAIChatModel instances by model id. Calling the provider
    is shorthand for chat():

        provider = await create_sap_ai_provider(ProviderSettings(token="..."))
        model = provider("gpt-4o")
    """

    def __init__(self, config: ResolvedConfig):
        self._config = config

    @property
    def name(self) -> str:
        return PROVIDER_NAME

    @property
    def config(self) -> ResolvedConfig:
        return self._config

    def chat(self, model_id: str, settings: ModelSettings | None = None) -> SAPAIChatModel:
        """Create a chat model.

        Args:
            model_id: Model name, e.g. "gpt-4o" or "anthropic--claude-3.5-sonnet".
            settings: Per-model defaults applied to every request.

        Returns:
            Chat model bound to this provider's configuration.

        Raises:
            ValueError: If model_id is empty.
        """
        if not model_id:
            raise ValueError("model_id must not be empty")
        return SAPAIChatModel(model_id, self._config, settings)

    def __call__(self, model_id: str, settings: ModelSettings | None = None) -> SAPAIChatModel:
        return self.chat(model_id, settings)


async def create_sap_ai_provider(
    settings: ProviderSettings | None = None,
    environ: Mapping[str, str] | None = None,
) -> SAPAIProvider:
    """Resolve settings and create a provider.

    Args:
        settings: Provider settings. Defaults to empty settings, which fall
            back to the SAP_AI_TOKEN environment variable.
        environ: Environment mapping for the token fallback.

    Raises:
        ConfigError: Malformed service key or no token source available.
        AuthError: The OAuth token exchange was rejected.
        NetworkError: The OAuth token endpoint could not be reached.
    """
    config = await resolve_config(settings, environ)
    logger.info(
        "SAP AI provider ready",
        extra={
            "deployment_id": config.deployment_id,
            "resource_group": config.resource_group,
        },
    )
    return SAPAIProvider(config)


# Module-level default provider (lazy initialization)
_default_provider: SAPAIProvider | None = None


async def get_provider() -> SAPAIProvider:
    """Get or create the default provider from SAP_AI_* environment variables."""
    global _default_provider
    if _default_provider is None:
        _default_provider = await create_sap_ai_provider(ProviderSettings.from_env())
    return _default_provider


def reset_provider() -> None:
    """Drop the default provider so the next get_provider() re-reads the environment."""
    global _default_provider
    _default_provider = None
