"""Anthropic-style provider adapter."""

from typing import Any, Optional

from ..config import ProviderType
from ..types import CompletionOptions, Message, TokenUsage
from .base import BaseProvider

DEFAULT_MAX_TOKENS = 4096


class AnthropicProvider(BaseProvider):
    """Claude messages API via the proxy.

    Claude requires ``max_tokens`` and takes the system prompt as a
    top-level field rather than a turn.
    """

    provider_type = ProviderType.ANTHROPIC
    model_prefix = "claude-"
    default_model = "claude-3-sonnet-20240229"
    endpoint_path = "/api/anthropic/completion"

    def build_request_body(
        self,
        system: Optional[str],
        turns: list[Message],
        model: str,
        options: CompletionOptions,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": model,
            "max_tokens": options.max_tokens or DEFAULT_MAX_TOKENS,
            "messages": [{"role": m.role, "content": m.content} for m in turns],
        }
        if options.temperature is not None:
            body["temperature"] = options.temperature
        if system is not None:
            body["system"] = system
        return body

    def parse_usage(self, usage: dict[str, Any]) -> TokenUsage:
        input_tokens = usage.get("input_tokens", 0)
        output_tokens = usage.get("output_tokens", 0)
        return TokenUsage(
            prompt_tokens=input_tokens,
            completion_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
        )
