"""LLM configuration and model definitions.

This module defines provider types, the static model catalog, the
cross-vendor equivalence table, and the gateway configuration.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional

from .retry import RetryConfig


class ProviderType(str, Enum):
    """Supported LLM vendors."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"


@dataclass(frozen=True)
class ModelInfo:
    """Static catalog entry for a model."""

    id: str
    display_name: str
    provider: ProviderType
    context_window: int
    max_output_tokens: int
    cost_per_1k_input: float = 0.0
    cost_per_1k_output: float = 0.0


OPENAI_MODELS: tuple[ModelInfo, ...] = (
    ModelInfo(
        id="gpt-4o",
        display_name="GPT-4o",
        provider=ProviderType.OPENAI,
        context_window=128000,
        max_output_tokens=16384,
        cost_per_1k_input=0.005,
        cost_per_1k_output=0.015,
    ),
    ModelInfo(
        id="gpt-4o-mini",
        display_name="GPT-4o Mini",
        provider=ProviderType.OPENAI,
        context_window=128000,
        max_output_tokens=16384,
        cost_per_1k_input=0.00015,
        cost_per_1k_output=0.0006,
    ),
    ModelInfo(
        id="gpt-4-turbo",
        display_name="GPT-4 Turbo",
        provider=ProviderType.OPENAI,
        context_window=128000,
        max_output_tokens=4096,
        cost_per_1k_input=0.01,
        cost_per_1k_output=0.03,
    ),
    ModelInfo(
        id="gpt-4",
        display_name="GPT-4",
        provider=ProviderType.OPENAI,
        context_window=8192,
        max_output_tokens=4096,
        cost_per_1k_input=0.03,
        cost_per_1k_output=0.06,
    ),
    ModelInfo(
        id="gpt-3.5-turbo",
        display_name="GPT-3.5 Turbo",
        provider=ProviderType.OPENAI,
        context_window=16385,
        max_output_tokens=4096,
        cost_per_1k_input=0.0005,
        cost_per_1k_output=0.0015,
    ),
    ModelInfo(
        id="gpt-3.5-turbo-16k",
        display_name="GPT-3.5 Turbo 16K",
        provider=ProviderType.OPENAI,
        context_window=16385,
        max_output_tokens=4096,
        cost_per_1k_input=0.0005,
        cost_per_1k_output=0.0015,
    ),
)

ANTHROPIC_MODELS: tuple[ModelInfo, ...] = (
    ModelInfo(
        id="claude-3-5-sonnet-20241022",
        display_name="Claude 3.5 Sonnet",
        provider=ProviderType.ANTHROPIC,
        context_window=200000,
        max_output_tokens=8192,
        cost_per_1k_input=0.003,
        cost_per_1k_output=0.015,
    ),
    ModelInfo(
        id="claude-3-opus-20240229",
        display_name="Claude 3 Opus",
        provider=ProviderType.ANTHROPIC,
        context_window=200000,
        max_output_tokens=4096,
        cost_per_1k_input=0.015,
        cost_per_1k_output=0.075,
    ),
    ModelInfo(
        id="claude-3-sonnet-20240229",
        display_name="Claude 3 Sonnet",
        provider=ProviderType.ANTHROPIC,
        context_window=200000,
        max_output_tokens=4096,
        cost_per_1k_input=0.003,
        cost_per_1k_output=0.015,
    ),
    ModelInfo(
        id="claude-3-haiku-20240307",
        display_name="Claude 3 Haiku",
        provider=ProviderType.ANTHROPIC,
        context_window=200000,
        max_output_tokens=4096,
        cost_per_1k_input=0.00025,
        cost_per_1k_output=0.00125,
    ),
)

GEMINI_MODELS: tuple[ModelInfo, ...] = (
    ModelInfo(
        id="gemini-1.5-pro",
        display_name="Gemini 1.5 Pro",
        provider=ProviderType.GEMINI,
        context_window=1000000,
        max_output_tokens=8192,
        cost_per_1k_input=0.00125,
        cost_per_1k_output=0.005,
    ),
    ModelInfo(
        id="gemini-1.5-flash",
        display_name="Gemini 1.5 Flash",
        provider=ProviderType.GEMINI,
        context_window=1000000,
        max_output_tokens=8192,
        cost_per_1k_input=0.000075,
        cost_per_1k_output=0.0003,
    ),
    ModelInfo(
        id="gemini-pro",
        display_name="Gemini Pro",
        provider=ProviderType.GEMINI,
        context_window=30720,
        max_output_tokens=2048,
        cost_per_1k_input=0.0005,
        cost_per_1k_output=0.0015,
    ),
)

ALL_MODELS: tuple[ModelInfo, ...] = OPENAI_MODELS + ANTHROPIC_MODELS + GEMINI_MODELS

# Model id -> equivalent-capability models on other vendors, in preference order
MODEL_EQUIVALENCES: Mapping[str, tuple[str, ...]] = MappingProxyType({
    # High-capability models
    "gpt-4-turbo": ("claude-3-opus-20240229", "gemini-1.5-pro"),
    "gpt-4": ("claude-3-opus-20240229", "gemini-1.5-pro"),
    "claude-3-opus-20240229": ("gpt-4-turbo", "gemini-1.5-pro"),
    "gemini-1.5-pro": ("gpt-4-turbo", "claude-3-opus-20240229"),
    # Mid-capability models
    "gpt-3.5-turbo": ("claude-3-sonnet-20240229", "gemini-1.5-flash"),
    "gpt-3.5-turbo-16k": ("claude-3-sonnet-20240229", "gemini-1.5-flash"),
    "claude-3-sonnet-20240229": ("gpt-3.5-turbo-16k", "gemini-1.5-flash"),
    "gemini-1.5-flash": ("gpt-3.5-turbo-16k", "claude-3-sonnet-20240229"),
    # Fast/efficient models
    "claude-3-haiku-20240307": ("gpt-3.5-turbo", "gemini-1.5-flash"),
    "gemini-pro": ("gpt-3.5-turbo", "claude-3-haiku-20240307"),
})


class ModelCatalog:
    """Read-only model catalog with its equivalence table.

    Built once and handed to the router and the fallback orchestrator, so a
    test can swap in a smaller catalog without touching module state.
    """

    def __init__(
        self,
        models: tuple[ModelInfo, ...] = ALL_MODELS,
        equivalences: Optional[Mapping[str, tuple[str, ...]]] = None,
    ):
        if equivalences is None:
            equivalences = MODEL_EQUIVALENCES
        self._models = tuple(models)
        self._by_id = MappingProxyType({m.id: m for m in self._models})
        self._equivalences = MappingProxyType(
            {k: tuple(v) for k, v in equivalences.items()}
        )

    @property
    def models(self) -> tuple[ModelInfo, ...]:
        return self._models

    @property
    def equivalences(self) -> Mapping[str, tuple[str, ...]]:
        return self._equivalences

    def get_model_info(self, model_id: str) -> Optional[ModelInfo]:
        """Look up a catalog entry by exact id."""
        return self._by_id.get(model_id)

    def get_provider_from_model(self, model_id: str) -> Optional[ProviderType]:
        """Get the vendor of a cataloged model, or None if unknown."""
        info = self.get_model_info(model_id)
        return info.provider if info else None

    def get_models_for_provider(self, provider: ProviderType) -> tuple[ModelInfo, ...]:
        """All cataloged models served by one vendor."""
        return tuple(m for m in self._models if m.provider == provider)

    def equivalents_for(self, model_id: str) -> Optional[tuple[str, ...]]:
        """Declared equivalents for a model, or None when no entry exists."""
        return self._equivalences.get(model_id)


DEFAULT_CATALOG = ModelCatalog()


@dataclass
class GatewayConfig:
    """Configuration for the LLM gateway."""

    # Proxying backend
    base_url: str = "http://localhost:3001"
    api_key: str = ""

    # Retry configuration (rate limits only)
    retry: RetryConfig = field(default_factory=RetryConfig)

    # Timeout configuration
    timeout_seconds: float = 120.0

    # Fallback behavior
    enable_fallbacks: bool = True
    max_fallback_attempts: int = 2

    # Streaming endpoint path on the proxy
    stream_path: str = "/api/chat/stream"

    @property
    def stream_endpoint(self) -> str:
        return f"{self.base_url.rstrip('/')}{self.stream_path}"
