"""Custom exception classes."""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ai_gateway.llm.retry import RateLimitInfo


class GatewayError(Exception):
    """Base exception for gateway errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ProviderError(GatewayError):
    """A vendor call failed."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        details: dict | None = None,
    ):
        self.provider = provider
        super().__init__(message, details)


class ProviderHTTPError(ProviderError):
    """Vendor endpoint answered with a non-success status."""

    def __init__(
        self,
        status_code: int,
        response_text: str,
        provider: Optional[str] = None,
        retry_after_ms: Optional[int] = None,
    ):
        self.status_code = status_code
        self.response_text = response_text
        self.retry_after_ms = retry_after_ms
        super().__init__(
            f"HTTP error! status: {status_code}, message: {response_text}",
            provider=provider,
            details={"status_code": status_code},
        )


class RateLimitedError(ProviderError):
    """Vendor kept throttling the caller after the retry budget was spent."""

    def __init__(
        self,
        message: str,
        rate_limit: "RateLimitInfo",
        attempts: int,
        total_delay_ms: int,
        provider: Optional[str] = None,
    ):
        self.rate_limit = rate_limit
        self.attempts = attempts
        self.total_delay_ms = total_delay_ms
        self.status_code = rate_limit.status
        super().__init__(
            message,
            provider=provider,
            details={
                "status_code": rate_limit.status,
                "attempts": attempts,
                "total_delay_ms": total_delay_ms,
            },
        )


class ProviderTimeoutError(ProviderError):
    """Request to a vendor timed out at the transport level."""

    pass


class ProviderNetworkError(ProviderError):
    """Network connection to a vendor failed."""

    pass


class NoProviderError(GatewayError):
    """No registered adapter serves the requested model."""

    def __init__(self, model_id: str):
        self.model_id = model_id
        super().__init__(
            f"No provider found for model: {model_id}",
            details={"model": model_id},
        )
