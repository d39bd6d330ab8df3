"""Cross-vendor fallback for failed completion requests.

When a vendor call fails with a recoverable error (throttling, outage,
timeout, missing model, exhausted quota, network trouble), the orchestrator
retries the request on an equivalent model from another vendor. Errors that
signal a bad request are never rerouted: another vendor cannot fix them and
every extra attempt burns quota.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Sequence

from ai_gateway.utils.errors import NoProviderError

from .config import DEFAULT_CATALOG, ModelCatalog, ModelInfo
from .router import ModelRouter
from .types import (
    CompletionOptions,
    FallbackCompletionResult,
    FallbackFailure,
    MessageLike,
)

logger = logging.getLogger(__name__)


class FallbackErrorType(str, Enum):
    """Error categories that can trigger fallback."""

    RATE_LIMIT = "rate_limit"
    SERVER_ERROR = "server_error"
    TIMEOUT = "timeout"
    MODEL_UNAVAILABLE = "model_unavailable"
    QUOTA_EXCEEDED = "quota_exceeded"
    NETWORK = "network"


DEFAULT_FALLBACK_ERRORS: frozenset[FallbackErrorType] = frozenset(FallbackErrorType)

# (from_model, to_model, error, attempt_number)
FallbackCallback = Callable[[str, str, Exception, int], None]


@dataclass
class FallbackConfig:
    """Fallback behavior for one request (or a gateway default)."""

    max_fallback_attempts: int = 2
    enable_fallback: bool = True
    on_fallback: Optional[FallbackCallback] = None
    fallback_on_errors: frozenset[FallbackErrorType] = field(
        default_factory=lambda: DEFAULT_FALLBACK_ERRORS
    )


@dataclass(frozen=True)
class FallbackDecision:
    """Classification of a failure and whether it may be rerouted."""

    should_fallback: bool
    error_type: Optional[FallbackErrorType]


@dataclass(frozen=True)
class FallbackModel:
    model: ModelInfo
    priority: int


@dataclass(frozen=True)
class FallbackInfo:
    model: Optional[ModelInfo]
    fallback_models: list[FallbackModel]


_SERVER_STATUS_RE = re.compile(r"\b(500|502|503|504)\b")
_RATE_LIMIT_STATUS_RE = re.compile(r"\b429\b")


def get_fallback_models(
    model_id: str, catalog: ModelCatalog = DEFAULT_CATALOG
) -> list[str]:
    """Get the ordered fallback chain for a model.

    Declared equivalences win. Otherwise other-vendor models whose context
    window is at least half the requested model's are used, largest first.
    Unknown models without an equivalence entry have no fallbacks.
    """
    equivalents = catalog.equivalents_for(model_id)
    if equivalents is not None:
        return list(equivalents)

    current = catalog.get_model_info(model_id)
    if current is None:
        return []

    candidates = [
        m
        for m in catalog.models
        if m.provider != current.provider
        and m.context_window >= current.context_window * 0.5
    ]
    candidates.sort(key=lambda m: m.context_window, reverse=True)
    return [m.id for m in candidates]


def classify_error(error: BaseException) -> Optional[FallbackErrorType]:
    """Map an error to a fallback category by status, message and name.

    Returns:
        The category, or None for unclassified errors (including malformed
        requests)
    """
    message = str(error).lower()
    name = type(error).__name__.lower()
    status = getattr(error, "status_code", None)

    if (
        status == 429
        or "rate limit" in message
        or _RATE_LIMIT_STATUS_RE.search(message)
        or "ratelimit" in name
    ):
        return FallbackErrorType.RATE_LIMIT

    if (
        (isinstance(status, int) and 500 <= status < 600)
        or _SERVER_STATUS_RE.search(message)
        or "internal server" in message
    ):
        return FallbackErrorType.SERVER_ERROR

    if "timeout" in message or "timed out" in message or "timeout" in name:
        return FallbackErrorType.TIMEOUT

    if "model" in message and (
        "not found" in message
        or "does not exist" in message
        or "unavailable" in message
    ):
        return FallbackErrorType.MODEL_UNAVAILABLE

    if "quota" in message or "insufficient" in message or "exceeded" in message:
        return FallbackErrorType.QUOTA_EXCEEDED

    if (
        "network" in message
        or "fetch" in message
        or "connection" in message
        or "network" in name
    ):
        return FallbackErrorType.NETWORK

    return None


def should_fallback(
    error: BaseException, config: Optional[FallbackConfig] = None
) -> FallbackDecision:
    """Decide whether an error may be rerouted to another model."""
    config = config or FallbackConfig()
    error_type = classify_error(error)

    if error_type is None:
        return FallbackDecision(should_fallback=False, error_type=None)

    return FallbackDecision(
        should_fallback=error_type in config.fallback_on_errors,
        error_type=error_type,
    )


def get_fallback_info(
    model_id: str, catalog: ModelCatalog = DEFAULT_CATALOG
) -> FallbackInfo:
    """Describe a model and its prioritized fallback candidates."""
    fallback_models = []
    for model in (catalog.get_model_info(i) for i in get_fallback_models(model_id, catalog)):
        if model is not None:
            fallback_models.append(FallbackModel(model=model, priority=len(fallback_models) + 1))

    return FallbackInfo(
        model=catalog.get_model_info(model_id),
        fallback_models=fallback_models,
    )


class FallbackOrchestrator:
    """Runs one completion request across a chain of equivalent models."""

    def __init__(
        self,
        router: ModelRouter,
        catalog: Optional[ModelCatalog] = None,
        config: Optional[FallbackConfig] = None,
    ):
        """Initialize orchestrator.

        Args:
            router: Resolves model ids to adapters
            catalog: Model catalog (defaults to the router's)
            config: Default fallback configuration
        """
        self.router = router
        self.catalog = catalog or router.catalog
        self.config = config or FallbackConfig()

    def build_candidates(self, model: str, config: FallbackConfig) -> list[str]:
        """Requested model first, then its fallback chain, capped."""
        models_to_try = [model]
        if config.enable_fallback:
            models_to_try.extend(
                m for m in get_fallback_models(model, self.catalog) if m != model
            )
        max_tries = min(len(models_to_try), config.max_fallback_attempts + 1)
        return models_to_try[:max_tries]

    async def create_completion_with_fallback(
        self,
        messages: Sequence[MessageLike],
        model: str,
        options: Optional[CompletionOptions] = None,
        fallback_config: Optional[FallbackConfig] = None,
    ) -> FallbackCompletionResult:
        """Create a completion, rerouting to equivalent models on failure.

        Args:
            messages: Canonical message list
            model: Requested model id
            options: Generation parameters passed to every attempt
            fallback_config: Overrides the orchestrator default

        Returns:
            FallbackCompletionResult from whichever model succeeded

        Raises:
            Exception: The original error of the last failed attempt, or of
                the first attempt whose error is not eligible for fallback
            NoProviderError: No candidate could be routed at all
        """
        config = fallback_config or self.config
        candidates = self.build_candidates(model, config)
        errors: list[FallbackFailure] = []

        for attempt, current_model in enumerate(candidates):
            provider = self.router.get_provider_for_model(current_model)
            if provider is None:
                logger.warning(f"No provider found for model: {current_model}, skipping")
                continue

            logger.info(
                f"Attempting completion with {current_model} "
                f"(attempt {attempt + 1}/{len(candidates)}, provider={provider.name})"
            )

            try:
                response = await provider.create_completion(messages, current_model, options)
            except Exception as e:
                errors.append(FallbackFailure(model=current_model, error=e))
                logger.warning(f"Model {current_model} failed: {e}")

                decision = should_fallback(e, config)
                if not decision.should_fallback or not config.enable_fallback:
                    raise

                if attempt < len(candidates) - 1:
                    next_model = candidates[attempt + 1]
                    if config.on_fallback:
                        config.on_fallback(current_model, next_model, e, attempt + 1)
                    logger.info(
                        f"Falling back from {current_model} to {next_model} "
                        f"(error_type={decision.error_type.value}, attempt={attempt + 1})"
                    )
                continue

            if attempt > 0:
                logger.info(
                    f"Fallback succeeded with {current_model} "
                    f"(original_model={model}, attempts={attempt + 1})"
                )

            return FallbackCompletionResult(
                text=response.text,
                model=response.model,
                provider=response.provider,
                usage=response.usage,
                used_fallback=attempt > 0,
                original_model=model,
                fallback_attempts=attempt,
                errors=errors,
            )

        if errors:
            logger.error(f"All {len(errors)} candidate models failed for {model}")
            raise errors[-1].error

        raise NoProviderError(model)
