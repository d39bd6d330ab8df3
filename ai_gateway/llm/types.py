"""Canonical request and response shapes shared by every provider."""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Literal, Optional, Sequence, Union

from pydantic import BaseModel

from .config import ProviderType

logger = logging.getLogger(__name__)


class Message(BaseModel):
    """Vendor-neutral conversation turn."""

    role: Literal["system", "user", "assistant"]
    content: str


MessageLike = Union[Message, dict[str, Any]]

# (attempt_number, delay_ms, rate_limit_info)
RateLimitRetryCallback = Callable[[int, int, Any], None]


@dataclass
class CompletionOptions:
    """Per-request generation parameters."""

    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    on_rate_limit_retry: Optional[RateLimitRetryCallback] = None


@dataclass
class TokenUsage:
    """Token usage statistics for a request."""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class CompletionResult:
    """Result of a completion request.

    ``provider`` is the vendor that actually produced ``text``.
    """

    text: str
    model: str
    provider: ProviderType
    usage: Optional[TokenUsage] = None


@dataclass
class FallbackFailure:
    """One failed attempt recorded during fallback."""

    model: str
    error: Exception


@dataclass
class FallbackCompletionResult(CompletionResult):
    """Completion result annotated with fallback history."""

    used_fallback: bool = False
    original_model: str = ""
    fallback_attempts: int = 0
    errors: list[FallbackFailure] = field(default_factory=list)


def coerce_messages(messages: Sequence[MessageLike]) -> list[Message]:
    """Validate a message list, accepting plain ``{"role", "content"}`` dicts."""
    return [m if isinstance(m, Message) else Message.model_validate(m) for m in messages]


def split_system_message(
    messages: Sequence[MessageLike],
) -> tuple[Optional[str], list[Message]]:
    """Separate the system instruction from the conversation turns.

    The first system message wins; any later system messages are dropped.
    Turn order is preserved and turns are never merged.

    Returns:
        Tuple of (system text or None, non-system turns)
    """
    system: Optional[str] = None
    turns: list[Message] = []

    for message in coerce_messages(messages):
        if message.role == "system":
            if system is None:
                system = message.content
            else:
                logger.debug("Ignoring additional system message")
            continue
        turns.append(message)

    return system, turns
