"""Gemini-style provider adapter."""

from typing import Any, Optional

from ..config import ProviderType
from ..types import CompletionOptions, Message, TokenUsage
from .base import BaseProvider

DEFAULT_MAX_OUTPUT_TOKENS = 8192


class GeminiProvider(BaseProvider):
    """Gemini generateContent via the proxy.

    Gemini calls the assistant role ``model``, wraps text in ``parts``, and
    nests generation parameters under ``generationConfig``.
    """

    provider_type = ProviderType.GEMINI
    model_prefix = "gemini-"
    default_model = "gemini-1.5-flash"
    endpoint_path = "/api/gemini/completion"

    def build_request_body(
        self,
        system: Optional[str],
        turns: list[Message],
        model: str,
        options: CompletionOptions,
    ) -> dict[str, Any]:
        generation_config: dict[str, Any] = {
            "maxOutputTokens": options.max_tokens or DEFAULT_MAX_OUTPUT_TOKENS,
        }
        if options.temperature is not None:
            generation_config["temperature"] = options.temperature

        body: dict[str, Any] = {
            "model": model,
            "generationConfig": generation_config,
            "contents": [
                {
                    "role": "model" if m.role == "assistant" else "user",
                    "parts": [{"text": m.content}],
                }
                for m in turns
            ],
        }
        if system is not None:
            body["systemInstruction"] = {"parts": [{"text": system}]}
        return body

    def parse_usage(self, usage: dict[str, Any]) -> TokenUsage:
        prompt_tokens = usage.get("promptTokenCount", 0)
        completion_tokens = usage.get("candidatesTokenCount", 0)
        total_tokens = usage.get("totalTokenCount")
        return TokenUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=(
                total_tokens
                if total_tokens is not None
                else prompt_tokens + completion_tokens
            ),
        )
