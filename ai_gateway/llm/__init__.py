"""LLM subsystem for multi-vendor completion access.

This module provides a unified interface for LLM providers with:
- Model-id based routing to OpenAI, Anthropic and Gemini adapters
- Automatic retry with exponential backoff on rate limits
- Fallback to equivalent models on other vendors
- Normalized, cancellable streaming
- Token counting and cost estimates

Example usage:
    from ai_gateway.llm import GatewayConfig, ModelGateway, StreamingOptions

    gateway = ModelGateway(GatewayConfig(base_url="...", api_key="..."))

    # Completion with fallback
    result = await gateway.create_completion(
        messages=[{"role": "user", "content": "Hello"}],
        model_id="gpt-4-turbo",
    )
    print(result.text, result.provider, result.used_fallback)

    # Streaming
    streamer = gateway.streaming()
    await streamer.stream(
        [{"role": "user", "content": "Hello"}],
        StreamingOptions(model="claude-3-haiku-20240307", on_chunk=print),
    )
"""

from .config import (
    ALL_MODELS,
    ANTHROPIC_MODELS,
    DEFAULT_CATALOG,
    GEMINI_MODELS,
    MODEL_EQUIVALENCES,
    OPENAI_MODELS,
    GatewayConfig,
    ModelCatalog,
    ModelInfo,
    ProviderType,
)
from .fallback import (
    FallbackConfig,
    FallbackDecision,
    FallbackErrorType,
    FallbackOrchestrator,
    classify_error,
    get_fallback_info,
    get_fallback_models,
    should_fallback,
)
from .gateway import ModelGateway, UsageReport, create_gateway_from_settings
from .providers import AnthropicProvider, BaseProvider, GeminiProvider, OpenAIProvider
from .retry import (
    RateLimitInfo,
    RateLimitRetry,
    RetryConfig,
    RetryOutcome,
    with_rate_limit_retry,
)
from .router import ModelRouter, create_default_router
from .streaming import (
    SSEDecoder,
    StreamingCompletion,
    StreamingOptions,
    StreamingState,
    StreamingStatus,
    parse_sse_chunk,
    simulate_stream,
)
from .token_counter import TokenCounter, get_token_counter
from .types import (
    CompletionOptions,
    CompletionResult,
    FallbackCompletionResult,
    FallbackFailure,
    Message,
    TokenUsage,
)

__all__ = [
    # Config
    "GatewayConfig",
    "ModelCatalog",
    "ModelInfo",
    "ProviderType",
    "DEFAULT_CATALOG",
    "ALL_MODELS",
    "OPENAI_MODELS",
    "ANTHROPIC_MODELS",
    "GEMINI_MODELS",
    "MODEL_EQUIVALENCES",
    # Types
    "Message",
    "CompletionOptions",
    "CompletionResult",
    "FallbackCompletionResult",
    "FallbackFailure",
    "TokenUsage",
    # Providers
    "BaseProvider",
    "OpenAIProvider",
    "AnthropicProvider",
    "GeminiProvider",
    # Router
    "ModelRouter",
    "create_default_router",
    # Retry
    "RetryConfig",
    "RetryOutcome",
    "RateLimitInfo",
    "RateLimitRetry",
    "with_rate_limit_retry",
    # Fallback
    "FallbackConfig",
    "FallbackDecision",
    "FallbackErrorType",
    "FallbackOrchestrator",
    "classify_error",
    "get_fallback_info",
    "get_fallback_models",
    "should_fallback",
    # Streaming
    "SSEDecoder",
    "StreamingCompletion",
    "StreamingOptions",
    "StreamingState",
    "StreamingStatus",
    "parse_sse_chunk",
    "simulate_stream",
    # Gateway
    "ModelGateway",
    "UsageReport",
    "create_gateway_from_settings",
    # Token Counter
    "TokenCounter",
    "get_token_counter",
]
