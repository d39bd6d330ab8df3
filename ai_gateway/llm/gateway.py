"""Unified gateway over the OpenAI, Anthropic and Gemini adapters.

Wires configuration, the provider registry, the fallback orchestrator and
the streaming client together behind one object.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

import httpx

from .config import DEFAULT_CATALOG, GatewayConfig, ModelCatalog, ProviderType
from .fallback import FallbackConfig, FallbackOrchestrator
from .retry import RetryConfig, SleepFunc
from .router import ModelRouter, create_default_router
from .streaming import StreamingCompletion
from .token_counter import TokenCounter
from .types import CompletionOptions, FallbackCompletionResult, MessageLike

logger = logging.getLogger(__name__)


@dataclass
class UsageReport:
    """Token usage handed to downstream usage/cost consumers."""

    model: str
    provider: ProviderType
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    estimated_cost: float = 0.0


UsageCallback = Callable[[UsageReport], None]


class ModelGateway:
    """Unified gateway for LLM providers.

    Provides a single interface for making LLM calls with:
    - Model-id based routing to the vendor adapter
    - Rate-limit retry with exponential backoff
    - Fallback to equivalent models on other vendors
    - Normalized streaming with cancellation
    - Usage reporting with cost estimates
    """

    def __init__(
        self,
        config: GatewayConfig,
        catalog: ModelCatalog = DEFAULT_CATALOG,
        router: Optional[ModelRouter] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        on_usage: Optional[UsageCallback] = None,
        sleep: Optional[SleepFunc] = None,
    ):
        """Initialize the gateway.

        Args:
            config: Gateway configuration
            catalog: Model catalog
            router: Prebuilt router (defaults to the three standard adapters)
            http_client: Client shared by adapters and streams; the gateway
                creates and owns one when omitted
            on_usage: Downstream consumer of token usage
            sleep: Injectable retry sleep
        """
        self.config = config
        self.catalog = catalog
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=config.timeout_seconds)
        self.router = router or create_default_router(
            config, catalog=catalog, http_client=self._http_client, sleep=sleep
        )
        self.orchestrator = FallbackOrchestrator(
            self.router,
            catalog=catalog,
            config=FallbackConfig(
                enable_fallback=config.enable_fallbacks,
                max_fallback_attempts=config.max_fallback_attempts,
            ),
        )
        self.token_counter = TokenCounter(catalog)
        self.on_usage = on_usage

        logger.info(
            f"ModelGateway initialized with providers: "
            f"{[p.value for p in self.router.get_available_provider_types()]}"
        )

    def default_model(self) -> str:
        """Model used when the caller names none: the first adapter's default."""
        return self.router.get_all_providers()[0].get_default_model()

    async def create_completion(
        self,
        messages: Sequence[MessageLike],
        model_id: Optional[str] = None,
        options: Optional[CompletionOptions] = None,
        fallback_config: Optional[FallbackConfig] = None,
    ) -> FallbackCompletionResult:
        """Create a completion with retry and cross-vendor fallback.

        Args:
            messages: Canonical message list
            model_id: Requested model (defaults to ``default_model()``)
            options: Generation parameters and retry observer
            fallback_config: Per-request fallback overrides

        Returns:
            FallbackCompletionResult, possibly from a substitute vendor

        Raises:
            Exception: The original vendor error when no attempt succeeds
        """
        model = model_id or self.default_model()
        result = await self.orchestrator.create_completion_with_fallback(
            messages, model, options, fallback_config
        )

        usage = result.usage
        logger.info(
            f"[LLM] Generated text | model={result.model} | provider={result.provider.value} | "
            f"fallback={result.used_fallback} | "
            f"input_tokens={usage.prompt_tokens if usage else '-'} | "
            f"output_tokens={usage.completion_tokens if usage else '-'}"
        )

        if usage is not None and self.on_usage is not None:
            self.on_usage(
                UsageReport(
                    model=result.model,
                    provider=result.provider,
                    prompt_tokens=usage.prompt_tokens,
                    completion_tokens=usage.completion_tokens,
                    total_tokens=usage.total_tokens,
                    estimated_cost=self.token_counter.estimate_cost(
                        usage.prompt_tokens, usage.completion_tokens, result.model
                    ),
                )
            )

        return result

    def streaming(self, endpoint: Optional[str] = None) -> StreamingCompletion:
        """Create a streaming client bound to the proxy.

        Each returned instance holds one session at a time.
        """
        return StreamingCompletion(
            endpoint=endpoint or self.config.stream_endpoint,
            api_key=self.config.api_key,
            http_client=self._http_client,
            timeout_seconds=self.config.timeout_seconds,
        )

    async def aclose(self) -> None:
        """Close the shared HTTP client if the gateway created it."""
        if self._owns_client:
            await self._http_client.aclose()


def create_gateway_from_settings(
    on_usage: Optional[UsageCallback] = None,
    configure_logging: bool = False,
) -> ModelGateway:
    """Create a ModelGateway from environment settings.

    Args:
        on_usage: Downstream consumer of token usage
        configure_logging: Also install console/file logging at
            ``settings.log_level``

    Returns:
        Configured ModelGateway instance
    """
    from ai_gateway.config import get_settings
    from ai_gateway.utils.logging import setup_logging

    settings = get_settings()
    if configure_logging:
        setup_logging(level=settings.log_level)
    logger.info(
        f"Loading gateway settings | environment={settings.environment} | "
        f"proxy={settings.base_url}"
    )

    config = GatewayConfig(
        base_url=settings.base_url,
        api_key=settings.microservice_api_key,
        retry=RetryConfig(
            max_retries=settings.llm_max_retries,
            initial_delay=settings.llm_initial_delay,
            max_delay=settings.llm_max_delay,
        ),
        timeout_seconds=settings.llm_timeout_seconds,
        enable_fallbacks=settings.llm_enable_fallbacks,
        max_fallback_attempts=settings.llm_max_fallback_attempts,
    )

    return ModelGateway(config, on_usage=on_usage)
