"""Model routing: resolve a model id to the adapter that serves it."""

import logging
from typing import Mapping, Optional, Sequence

import httpx

from .config import DEFAULT_CATALOG, GatewayConfig, ModelCatalog, ProviderType
from .providers import AnthropicProvider, BaseProvider, GeminiProvider, OpenAIProvider
from .retry import SleepFunc

logger = logging.getLogger(__name__)


class ModelRouter:
    """Small fixed registry of vendor adapters keyed by provider type."""

    def __init__(
        self,
        providers: Sequence[BaseProvider] | Mapping[ProviderType, BaseProvider],
        catalog: ModelCatalog = DEFAULT_CATALOG,
    ):
        """Initialize router.

        Args:
            providers: Adapters, in resolution order
            catalog: Model catalog used for default-model lookups
        """
        if isinstance(providers, Mapping):
            providers = list(providers.values())
        self._providers: dict[ProviderType, BaseProvider] = {
            p.provider_type: p for p in providers
        }
        self.catalog = catalog

    def get_provider(self, provider_type: ProviderType) -> Optional[BaseProvider]:
        """Get the adapter registered for a vendor."""
        return self._providers.get(provider_type)

    def get_provider_for_model(self, model_id: str) -> Optional[BaseProvider]:
        """Get the first adapter claiming support for a model.

        Returns:
            The adapter, or None when no adapter serves the model. None is a
            routing failure and should not be retried.
        """
        for provider in self._providers.values():
            if provider.is_model_supported(model_id):
                logger.debug(f"Routed model={model_id} to provider={provider.name}")
                return provider

        logger.warning(f"No provider found for model: {model_id}")
        return None

    def is_provider_available(self, provider_type: ProviderType) -> bool:
        return provider_type in self._providers

    def get_available_provider_types(self) -> list[ProviderType]:
        return list(self._providers)

    def get_all_providers(self) -> list[BaseProvider]:
        return list(self._providers.values())

    def is_model_available(self, model_id: str) -> bool:
        """Check whether any registered adapter can route a model."""
        return any(p.is_model_supported(model_id) for p in self._providers.values())

    def get_default_model(self, provider_type: ProviderType) -> Optional[str]:
        provider = self.get_provider(provider_type)
        return provider.get_default_model() if provider else None


def create_default_router(
    config: GatewayConfig,
    catalog: ModelCatalog = DEFAULT_CATALOG,
    http_client: Optional[httpx.AsyncClient] = None,
    sleep: Optional[SleepFunc] = None,
) -> ModelRouter:
    """Build the OpenAI / Anthropic / Gemini registry from gateway config.

    Args:
        config: Gateway configuration (base URL, key, retry, timeout)
        catalog: Model catalog
        http_client: Client shared by all adapters
        sleep: Injectable retry sleep

    Returns:
        Configured ModelRouter
    """
    providers = [
        provider_cls(
            base_url=config.base_url,
            api_key=config.api_key,
            models=catalog.models,
            retry_config=config.retry,
            timeout_seconds=config.timeout_seconds,
            http_client=http_client,
            sleep=sleep,
        )
        for provider_cls in (OpenAIProvider, AnthropicProvider, GeminiProvider)
    ]
    return ModelRouter(providers, catalog=catalog)
