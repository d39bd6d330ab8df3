"""OpenAI-style provider adapter."""

from typing import Any, Optional

from ..config import ProviderType
from ..types import CompletionOptions, Message, TokenUsage
from .base import BaseProvider


class OpenAIProvider(BaseProvider):
    """OpenAI chat completions via the proxy.

    OpenAI takes the system instruction as a regular ``system`` turn, so it
    is placed back at the head of the message list.
    """

    provider_type = ProviderType.OPENAI
    model_prefix = "gpt-"
    default_model = "gpt-3.5-turbo-16k"
    endpoint_path = "/api/openai/completion"

    def build_request_body(
        self,
        system: Optional[str],
        turns: list[Message],
        model: str,
        options: CompletionOptions,
    ) -> dict[str, Any]:
        messages = [{"role": m.role, "content": m.content} for m in turns]
        if system is not None:
            messages.insert(0, {"role": "system", "content": system})

        body: dict[str, Any] = {"model": model, "messages": messages}
        if options.max_tokens is not None:
            body["max_tokens"] = options.max_tokens
        if options.temperature is not None:
            body["temperature"] = options.temperature
        return body

    def parse_usage(self, usage: dict[str, Any]) -> TokenUsage:
        prompt_tokens = usage.get("prompt_tokens", 0)
        completion_tokens = usage.get("completion_tokens", 0)
        total_tokens = usage.get("total_tokens")
        return TokenUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=(
                total_tokens
                if total_tokens is not None
                else prompt_tokens + completion_tokens
            ),
        )
