"""Token counting and cost estimation for LLM requests.

Uses tiktoken for OpenAI models and character-ratio estimation for
Anthropic and Gemini models (neither ships a public local tokenizer).
"""

import logging
from functools import lru_cache
from typing import Optional, Sequence

import tiktoken

from .config import DEFAULT_CATALOG, ModelCatalog, ModelInfo, ProviderType
from .types import MessageLike, coerce_messages

logger = logging.getLogger(__name__)

# Fallback limits for models missing from the catalog
UNKNOWN_CONTEXT_WINDOW = 100000
UNKNOWN_MAX_OUTPUT = 8192


@lru_cache(maxsize=10)
def _get_openai_encoder(model: str) -> tiktoken.Encoding:
    """Get tiktoken encoder for an OpenAI model."""
    try:
        return tiktoken.encoding_for_model(model)
    except KeyError:
        # Fall back to cl100k_base for unknown models
        logger.debug(f"Unknown model {model}, using cl100k_base encoding")
        return tiktoken.get_encoding("cl100k_base")


class TokenCounter:
    """Counts tokens and estimates cost across vendors."""

    # Claude uses roughly 3.5-4 characters per token on average
    ANTHROPIC_CHARS_PER_TOKEN = 3.8
    GEMINI_CHARS_PER_TOKEN = 4.0

    def __init__(self, catalog: ModelCatalog = DEFAULT_CATALOG):
        self.catalog = catalog

    def count_tokens(self, text: str, model: str) -> int:
        """Count tokens in text for a specific model.

        Args:
            text: Text to count tokens for
            model: Model ID

        Returns:
            Estimated token count
        """
        if not text:
            return 0

        provider = self._get_provider(model)

        if provider == ProviderType.OPENAI:
            return self._count_openai_tokens(text, model)
        elif provider == ProviderType.ANTHROPIC:
            return int(len(text) / self.ANTHROPIC_CHARS_PER_TOKEN)
        elif provider == ProviderType.GEMINI:
            return int(len(text) / self.GEMINI_CHARS_PER_TOKEN)
        return self._estimate_tokens(text)

    def _get_provider(self, model: str) -> Optional[ProviderType]:
        provider = self.catalog.get_provider_from_model(model)
        if provider is not None:
            return provider
        for candidate, prefix in (
            (ProviderType.OPENAI, "gpt-"),
            (ProviderType.ANTHROPIC, "claude-"),
            (ProviderType.GEMINI, "gemini-"),
        ):
            if model.startswith(prefix):
                return candidate
        return None

    def _count_openai_tokens(self, text: str, model_id: str) -> int:
        try:
            return len(_get_openai_encoder(model_id).encode(text))
        except Exception as e:
            logger.warning(f"tiktoken encoding failed: {e}, using estimation")
            return self._estimate_tokens(text)

    def _estimate_tokens(self, text: str) -> int:
        # 4 characters per token as a conservative estimate
        return len(text) // 4

    def _get_model_info(self, model: str) -> Optional[ModelInfo]:
        return self.catalog.get_model_info(model)

    def estimate_cost(self, input_tokens: int, output_tokens: int, model: str) -> float:
        """Estimate cost for a request in USD.

        Returns:
            Estimated cost, or 0.0 for models without pricing
        """
        info = self._get_model_info(model)

        if info is None:
            logger.warning(f"Unknown model {model}, cannot estimate cost")
            return 0.0

        input_cost = (input_tokens / 1000) * info.cost_per_1k_input
        output_cost = (output_tokens / 1000) * info.cost_per_1k_output

        return input_cost + output_cost

    def count_messages_tokens(self, messages: Sequence[MessageLike], model: str) -> int:
        """Count tokens in a message list, including per-message overhead."""
        total = 0

        for message in coerce_messages(messages):
            total += self.count_tokens(message.content, model)
            # ~4 tokens of structure per message (role, separators)
            total += 4

        # Overhead for the overall message structure
        total += 3

        return total

    def fits_in_context(
        self,
        messages: Sequence[MessageLike],
        model: str,
        reserved_output_tokens: int = 0,
    ) -> bool:
        """Check if messages fit within the model's context window."""
        info = self._get_model_info(model)
        context_window = info.context_window if info else UNKNOWN_CONTEXT_WINDOW

        token_count = self.count_messages_tokens(messages, model)
        return token_count <= context_window - reserved_output_tokens

    def get_available_output_tokens(self, input_tokens: int, model: str) -> int:
        """Tokens left for output given input size, capped at the model max."""
        info = self._get_model_info(model)

        if info is None:
            context_window = UNKNOWN_CONTEXT_WINDOW
            max_output = UNKNOWN_MAX_OUTPUT
        else:
            context_window = info.context_window
            max_output = info.max_output_tokens

        return max(0, min(context_window - input_tokens, max_output))


# Singleton instance for convenience
_token_counter: Optional[TokenCounter] = None


def get_token_counter() -> TokenCounter:
    """Get the singleton TokenCounter instance."""
    global _token_counter
    if _token_counter is None:
        _token_counter = TokenCounter()
    return _token_counter
